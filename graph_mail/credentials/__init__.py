from .env import delivery_method_from_env, load_config_from_env
from .models import GraphMailConfig, TokenRecord

__all__ = ["GraphMailConfig", "TokenRecord", "load_config_from_env", "delivery_method_from_env"]
