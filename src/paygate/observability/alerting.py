import logging

from paygate.observability.monitor import RejectionMonitor

logger = logging.getLogger("paygate.security")


class RejectionAlert:
    """Fires once when the webhook rejection rate crosses ``threshold``.

    Re-arms when the rate drops back to or below the threshold.
    """

    def __init__(
        self,
        monitor: RejectionMonitor,
        threshold: float = 0.10,
        callback=None,
        gateway: str | None = None,
        min_samples: int = 1,
    ):
        self.monitor = monitor
        self.threshold = threshold
        self.callback = callback
        self.gateway = gateway
        self.min_samples = min_samples
        self._fired = False
        self._alerts: list[dict] = []

    def check(self) -> dict | None:
        """Return the alert dict when one fires, otherwise None."""
        total = self.monitor.total_in_window(self.gateway)
        if total == 0 or total < self.min_samples:
            return None

        rate = self.monitor.rejection_rate(self.gateway)
        if rate <= self.threshold:
            self._fired = False
            return None
        if self._fired:
            return None

        rejected = self.monitor.rejected_count_in_window(self.gateway)
        scope = self.gateway or "all gateways"
        alert = {
            "type": "webhook_rejection_rate",
            "gateway": self.gateway,
            "rejection_rate": rate,
            "threshold": self.threshold,
            "total_webhooks": total,
            "rejected_webhooks": rejected,
            "reasons": self.monitor.rejection_reasons(self.gateway),
            "message": (
                f"Webhook rejection rate {rate:.1%} for {scope} exceeds "
                f"threshold {self.threshold:.1%} ({rejected}/{total} rejected)"
            ),
        }
        self._fired = True
        self._alerts.append(alert)
        logger.warning(alert["message"], extra={"alert": alert["type"], "gateway": self.gateway})

        if self.callback:
            self.callback(alert)
        return alert

    def get_alerts(self) -> list[dict]:
        return list(self._alerts)

    def reset(self) -> None:
        self._fired = False
        self._alerts.clear()
