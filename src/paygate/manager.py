"""Host-facing facade over the registry and the configured gateways.

Every operation returns an ``Outcome``: ``Ok(PaymentResponse)`` or
``Err(PaymentError)``. Taxonomy errors never escape, so callers handle
each case explicitly::

    match manager.pay("paystack", request):
        case Ok(response) if response.requires_redirect:
            return redirect(response.redirect_url)
        case Err(UnsupportedCurrencyError() as error):
            ...
"""

import logging
import threading
from collections.abc import Mapping
from typing import Any

from paygate.errors import GatewayNotFoundError, PaymentError
from paygate.gateway.base import Gateway
from paygate.gateway.registry import GatewayRegistry, default_registry
from paygate.models.config import GatewayConfig
from paygate.models.payment import PaymentRequest, PaymentResponse
from paygate.models.webhook import WebhookRequest
from paygate.observability.monitor import RejectionMonitor
from paygate.result import Err, Ok, Outcome

logger = logging.getLogger(__name__)


class PaymentManager:
    """Resolves gateways by name and runs operations on them.

    Gateways are built lazily from ``configs`` and reused afterwards, so
    each one keeps its token cache and replay window across calls.
    """

    def __init__(
        self,
        configs: Mapping[str, GatewayConfig],
        registry: GatewayRegistry | None = None,
        monitor: RejectionMonitor | None = None,
        default_gateway: str | None = None,
        **gateway_kwargs,
    ):
        self.configs = {name.strip().lower(): config for name, config in configs.items()}
        self.registry = registry if registry is not None else default_registry()
        self.monitor = monitor
        self.default_gateway = default_gateway.strip().lower() if default_gateway else None
        self._gateway_kwargs = gateway_kwargs
        self._gateways: dict[str, Gateway] = {}
        self._lock = threading.Lock()

    def gateway(self, name: str | None = None) -> Gateway:
        """Return the gateway instance for ``name`` (or the default).

        Raises:
            GatewayNotFoundError: not registered, or registered without a config.
        """
        name = name or self.default_gateway
        if not name:
            raise GatewayNotFoundError("", self.available_gateways())
        key = name.strip().lower()
        with self._lock:
            gateway = self._gateways.get(key)
            if gateway is not None:
                return gateway
            if key not in self.registry:
                raise GatewayNotFoundError(key, self.available_gateways())
            config = self.configs.get(key)
            if config is None:
                raise GatewayNotFoundError(key, self.available_gateways())
            kwargs = dict(self._gateway_kwargs)
            if self.monitor is not None:
                kwargs.setdefault("monitor", self.monitor)
            gateway = self.registry.resolve(key, config, **kwargs)
            self._gateways[key] = gateway
            logger.debug("Resolved gateway", extra={"gateway": key, "mode": config.mode.value})
            return gateway

    def available_gateways(self) -> list[str]:
        """Registered gateways that also have a config."""
        return [name for name in self.registry.names() if name in self.configs]

    def _run(self, operation: str, name: str | None, call) -> Outcome[PaymentResponse]:
        try:
            return Ok(call(self.gateway(name)))
        except PaymentError as e:
            logger.info(
                "Payment operation failed",
                extra={
                    "operation": operation,
                    "gateway": e.gateway or name,
                    "error": e.code,
                    "transaction_id": e.transaction_id,
                },
            )
            return Err(e)

    def pay(self, gateway: str | None, request: PaymentRequest | Mapping[str, Any]) -> Outcome[PaymentResponse]:
        def call(gw: Gateway) -> PaymentResponse:
            req = request if isinstance(request, PaymentRequest) else PaymentRequest.from_mapping(request)
            return gw.pay(req)

        return self._run("pay", gateway, call)

    def verify(self, gateway: str | None, identifier: str | Mapping[str, Any]) -> Outcome[PaymentResponse]:
        return self._run("verify", gateway, lambda gw: gw.verify(identifier))

    def refund(self, gateway: str | None, transaction_id: str, amount=None) -> Outcome[PaymentResponse]:
        return self._run("refund", gateway, lambda gw: gw.refund(transaction_id, amount))

    def process_webhook(self, gateway: str | None, request: WebhookRequest) -> Outcome[PaymentResponse]:
        return self._run("process_webhook", gateway, lambda gw: gw.process_webhook(request))
