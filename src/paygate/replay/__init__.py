from .guard import ReplayCheck, ReplayGuard, parse_timestamp

__all__ = ["ReplayCheck", "ReplayGuard", "parse_timestamp"]
