from .ms_graph_transport import MSGraphTransport
from .registry import DeliveryMethodRegistry

__all__ = ["MSGraphTransport", "DeliveryMethodRegistry"]
