from .cashfree import CashfreeGateway
from .payfast import PayfastGateway
from .paypal import PaypalGateway
from .paystack import PaystackGateway

BUILTIN_GATEWAYS = (PaystackGateway, CashfreeGateway, PayfastGateway, PaypalGateway)

__all__ = [
    "BUILTIN_GATEWAYS",
    "PaystackGateway", "CashfreeGateway", "PayfastGateway", "PaypalGateway",
]
