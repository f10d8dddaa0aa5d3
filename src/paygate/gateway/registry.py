import logging
import threading
from collections.abc import Callable

from paygate.errors import ConfigurationError, GatewayNotFoundError
from paygate.gateway.base import Gateway
from paygate.models.config import GatewayConfig

logger = logging.getLogger(__name__)

GatewayFactory = Callable[..., Gateway]


def _normalize(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise GatewayNotFoundError(str(name))
    return name.strip().lower()


class GatewayRegistry:
    """Explicit name -> factory map.

    A factory is any callable taking ``(config, **kwargs)`` and returning a
    ``Gateway``; a Gateway subclass qualifies. Names are case-insensitive
    and surrounding whitespace is ignored.
    """

    def __init__(self):
        self._factories: dict[str, GatewayFactory] = {}
        self._lock = threading.Lock()

    def register(self, name: str, factory: GatewayFactory, replace: bool = False) -> None:
        """Add a gateway factory.

        Raises:
            ValueError: ``name`` is already registered and ``replace`` is False.
            TypeError: ``factory`` is not callable.
        """
        key = _normalize(name)
        if not callable(factory):
            raise TypeError(f"Gateway factory for '{key}' must be callable")
        with self._lock:
            if key in self._factories and not replace:
                raise ValueError(f"Gateway '{key}' is already registered")
            self._factories[key] = factory
        logger.debug("Registered gateway", extra={"gateway": key})

    def unregister(self, name: str) -> None:
        key = _normalize(name)
        with self._lock:
            if self._factories.pop(key, None) is None:
                raise GatewayNotFoundError(key, self.names())

    def resolve(self, name: str, config: GatewayConfig, **kwargs) -> Gateway:
        """Build the gateway registered under ``name`` from ``config``.

        ``kwargs`` (transport, monitor, replay_guard) are passed to the factory.

        Raises:
            GatewayNotFoundError: ``name`` is not registered.
            ConfigurationError: ``config`` is not a GatewayConfig.
        """
        key = _normalize(name)
        factory = self._factories.get(key)
        if factory is None:
            raise GatewayNotFoundError(key, self.names())
        if not isinstance(config, GatewayConfig):
            raise ConfigurationError(
                f"resolve() expects a GatewayConfig for '{key}'", gateway=key,
            )
        return factory(config, **kwargs)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._factories)

    def __contains__(self, name) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._factories

    def __len__(self) -> int:
        return len(self._factories)


def default_registry() -> GatewayRegistry:
    """A fresh registry holding the bundled adapters."""
    from paygate.adapters import BUILTIN_GATEWAYS

    registry = GatewayRegistry()
    for gateway_class in BUILTIN_GATEWAYS:
        registry.register(gateway_class.name, gateway_class)
    return registry
