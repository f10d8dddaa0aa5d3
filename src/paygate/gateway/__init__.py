from .auth import OAuthTokenCache
from .base import Gateway
from .registry import GatewayRegistry, default_registry

__all__ = ["Gateway", "GatewayRegistry", "default_registry", "OAuthTokenCache"]
