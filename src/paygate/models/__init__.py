from .payment import (
    Customer,
    PaymentRequest,
    PaymentResponse,
    from_minor_units,
    minor_unit_exponent,
    to_minor_units,
)
from .webhook import WebhookEvent, WebhookRequest
from .config import GatewayConfig, Mode, load_gateway_configs
from .call import ProviderCall

__all__ = [
    "Customer", "PaymentRequest", "PaymentResponse",
    "minor_unit_exponent", "to_minor_units", "from_minor_units",
    "WebhookEvent", "WebhookRequest",
    "GatewayConfig", "Mode", "load_gateway_configs",
    "ProviderCall",
]
