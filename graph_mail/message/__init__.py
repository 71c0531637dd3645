from .builder import EmailMessageBuilder
from .models import Attachment

__all__ = ["EmailMessageBuilder", "Attachment"]
