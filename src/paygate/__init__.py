from .errors import (
    ConfigurationError,
    GatewayNotFoundError,
    NetworkError,
    PaymentError,
    ProviderRejectedError,
    RefundNotEligibleError,
    ReplayError,
    UnsupportedCurrencyError,
    ValidationError,
    WebhookAuthError,
)
from .gateway import Gateway, GatewayRegistry, OAuthTokenCache, default_registry
from .manager import PaymentManager
from .models import (
    Customer,
    GatewayConfig,
    Mode,
    PaymentRequest,
    PaymentResponse,
    WebhookEvent,
    WebhookRequest,
    load_gateway_configs,
)
from .result import Err, Ok, Outcome
from .status import CanonicalStatus, StatusMap, can_transition, reconcile

__version__ = "0.1.0"

__all__ = [
    "PaymentError", "ValidationError", "UnsupportedCurrencyError", "GatewayNotFoundError",
    "ConfigurationError", "NetworkError", "ProviderRejectedError", "WebhookAuthError",
    "ReplayError", "RefundNotEligibleError",
    "Gateway", "GatewayRegistry", "OAuthTokenCache", "default_registry",
    "PaymentManager",
    "Customer", "GatewayConfig", "Mode", "PaymentRequest", "PaymentResponse",
    "WebhookEvent", "WebhookRequest", "load_gateway_configs",
    "Ok", "Err", "Outcome",
    "CanonicalStatus", "StatusMap", "can_transition", "reconcile",
]
