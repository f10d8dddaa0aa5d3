from .alerting import RejectionAlert
from .monitor import RejectionMonitor, WebhookOutcome

__all__ = ["RejectionMonitor", "RejectionAlert", "WebhookOutcome"]
