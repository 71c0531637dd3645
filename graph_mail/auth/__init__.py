from .token_manager import TokenManager

__all__ = ["TokenManager"]
