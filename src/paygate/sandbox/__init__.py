from .gateway import SandboxGateway, sandbox_signature
from .server import ProviderSandbox

__all__ = ["ProviderSandbox", "SandboxGateway", "sandbox_signature"]
