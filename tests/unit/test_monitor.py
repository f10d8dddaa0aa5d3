import pytest

from paygate.observability import RejectionMonitor


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestRejectionMonitor:
    """Tests for RejectionMonitor counts and rates."""

    @pytest.mark.unit
    def test_empty_monitor_has_zero_rate(self, monitor):
        assert monitor.rejection_rate() == 0.0
        assert monitor.total_in_window() == 0

    @pytest.mark.unit
    def test_rate_counts_rejections(self, monitor):
        monitor.record_accepted("paystack")
        monitor.record_accepted("paystack")
        monitor.record_accepted("paystack")
        monitor.record_rejected("paystack", "signature")
        assert monitor.rejection_rate() == 0.25
        assert monitor.accepted_count_in_window() == 3
        assert monitor.rejected_count_in_window() == 1

    @pytest.mark.unit
    def test_gateway_filter(self, monitor):
        monitor.record_accepted("paystack")
        monitor.record_rejected("payfast", "signature")
        assert monitor.rejection_rate("paystack") == 0.0
        assert monitor.rejection_rate("payfast") == 1.0
        assert monitor.total_in_window("payfast") == 1

    @pytest.mark.unit
    def test_reasons_are_tallied(self, monitor):
        monitor.record_rejected("paystack", "signature")
        monitor.record_rejected("paystack", "signature")
        monitor.record_rejected("paystack", "replay")
        assert monitor.rejection_reasons() == {"signature": 2, "replay": 1}

    @pytest.mark.unit
    def test_old_outcomes_leave_the_window(self):
        clock = FakeClock()
        monitor = RejectionMonitor(window_seconds=60, clock=clock)
        monitor.record_rejected("paystack", "signature")
        clock.now = 30
        monitor.record_accepted("paystack")
        clock.now = 61
        assert monitor.total_in_window() == 1
        assert monitor.rejection_rate() == 0.0

    @pytest.mark.unit
    def test_reset(self, monitor):
        monitor.record_rejected("paystack", "signature")
        monitor.reset()
        assert monitor.total_in_window() == 0

    @pytest.mark.unit
    def test_recording_alone_keeps_memory_bounded(self):
        clock = FakeClock()
        monitor = RejectionMonitor(window_seconds=60, clock=clock)
        for second in range(600):
            clock.now = float(second)
            monitor.record_accepted("paystack")
            if second % 7 == 0:
                monitor.record_rejected("paystack", "signature")

        assert monitor.retained_count() <= 61 + 61 // 7 + 1
        assert monitor.total_in_window() == monitor.retained_count()
