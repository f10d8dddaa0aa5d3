from datetime import datetime, timedelta, timezone

import pytest

from paygate.gateway.registry import GatewayRegistry, default_registry
from paygate.manager import PaymentManager
from paygate.observability.alerting import RejectionAlert
from paygate.observability.monitor import RejectionMonitor
from paygate.replay.guard import ReplayGuard
from paygate.sandbox import ProviderSandbox, SandboxGateway
from paygate.utils.factories import (
    GatewayConfigFactory,
    PaymentRequestFactory,
    RecordingTransport,
    WebhookFactory,
)


WEBHOOK_SECRET = "whsec_test"


class FrozenClock:
    """Settable clock for replay-window tests."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def replay_guard(clock):
    return ReplayGuard(window=timedelta(minutes=5), clock=clock)


@pytest.fixture
def recording_transport():
    return RecordingTransport()


@pytest.fixture
def provider_sandbox():
    server = ProviderSandbox()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def payments_sandbox(provider_sandbox):
    """Sandbox serving the stateful /payments API with SUCCEEDED payments."""
    return provider_sandbox.install_payments(raw_status="SUCCEEDED")


@pytest.fixture
def sandbox_config(provider_sandbox):
    return GatewayConfigFactory.create("sandbox", base_url=provider_sandbox.base_url)


@pytest.fixture
def sandbox_gateway(sandbox_config, monitor):
    return SandboxGateway(sandbox_config, monitor=monitor)


@pytest.fixture
def registry():
    reg = default_registry()
    reg.register("sandbox", SandboxGateway)
    return reg


@pytest.fixture
def empty_registry():
    return GatewayRegistry()


@pytest.fixture
def manager(registry, sandbox_config, monitor):
    return PaymentManager({"sandbox": sandbox_config}, registry=registry, monitor=monitor)


@pytest.fixture
def monitor():
    return RejectionMonitor(window_seconds=300)


@pytest.fixture
def rejection_alert(monitor):
    return RejectionAlert(monitor=monitor, threshold=0.10)


@pytest.fixture
def payment_factory():
    return PaymentRequestFactory


@pytest.fixture
def config_factory():
    return GatewayConfigFactory


@pytest.fixture
def webhook_factory():
    return WebhookFactory
