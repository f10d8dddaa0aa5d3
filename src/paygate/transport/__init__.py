from .http import HttpTransport, default_error_extractor
from .log import CallLog

__all__ = ["HttpTransport", "default_error_extractor", "CallLog"]
