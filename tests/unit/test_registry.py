import pytest

from paygate.adapters import BUILTIN_GATEWAYS, PaystackGateway
from paygate.errors import ConfigurationError, GatewayNotFoundError
from paygate.sandbox import SandboxGateway


class TestRegistration:
    """Tests for GatewayRegistry.register() and unregister()."""

    @pytest.mark.unit
    def test_register_and_resolve(self, empty_registry, config_factory):
        empty_registry.register("sandbox", SandboxGateway)
        gateway = empty_registry.resolve("sandbox", config_factory.create("sandbox"))
        assert isinstance(gateway, SandboxGateway)

    @pytest.mark.unit
    def test_names_are_case_insensitive(self, empty_registry, config_factory):
        empty_registry.register("  Sandbox ", SandboxGateway)
        assert "SANDBOX" in empty_registry
        assert isinstance(empty_registry.resolve("sandbox", config_factory.create()), SandboxGateway)

    @pytest.mark.unit
    def test_duplicate_registration_is_refused(self, empty_registry):
        empty_registry.register("sandbox", SandboxGateway)
        with pytest.raises(ValueError, match="already registered"):
            empty_registry.register("sandbox", SandboxGateway)

    @pytest.mark.unit
    def test_replace_overrides(self, empty_registry, config_factory):
        empty_registry.register("sandbox", SandboxGateway)
        sentinel = object()
        empty_registry.register("sandbox", lambda config, **kwargs: sentinel, replace=True)
        assert empty_registry.resolve("sandbox", config_factory.create()) is sentinel

    @pytest.mark.unit
    def test_factory_must_be_callable(self, empty_registry):
        with pytest.raises(TypeError):
            empty_registry.register("sandbox", "not a factory")

    @pytest.mark.unit
    def test_unregister(self, empty_registry):
        empty_registry.register("sandbox", SandboxGateway)
        empty_registry.unregister("sandbox")
        assert "sandbox" not in empty_registry
        with pytest.raises(GatewayNotFoundError):
            empty_registry.unregister("sandbox")


class TestResolve:
    """Tests for GatewayRegistry.resolve()."""

    @pytest.mark.unit
    def test_unknown_name_lists_available(self, registry, config_factory):
        with pytest.raises(GatewayNotFoundError) as exc_info:
            registry.resolve("stripe", config_factory.create("stripe"))
        assert "paystack" in str(exc_info.value)

    @pytest.mark.unit
    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_blank_name_is_not_found(self, registry, config_factory, name):
        with pytest.raises(GatewayNotFoundError):
            registry.resolve(name, config_factory.create())

    @pytest.mark.unit
    def test_config_must_be_a_gateway_config(self, registry):
        with pytest.raises(ConfigurationError):
            registry.resolve("paystack", {"secret_key": "sk"})

    @pytest.mark.unit
    def test_kwargs_reach_the_gateway(self, registry, config_factory, recording_transport, monitor):
        gateway = registry.resolve(
            "paystack", config_factory.create("paystack"),
            transport=recording_transport, monitor=monitor,
        )
        assert isinstance(gateway, PaystackGateway)
        assert gateway.transport is recording_transport
        assert gateway.monitor is monitor


class TestDefaultRegistry:
    """Tests for the bundled adapter set."""

    @pytest.mark.unit
    def test_holds_every_builtin_adapter(self):
        from paygate.gateway import default_registry

        registry = default_registry()
        assert registry.names() == sorted(g.name for g in BUILTIN_GATEWAYS)
        assert len(registry) == 4

    @pytest.mark.unit
    def test_each_call_returns_a_fresh_registry(self):
        from paygate.gateway import default_registry

        first = default_registry()
        first.register("sandbox", SandboxGateway)
        assert "sandbox" not in default_registry()
