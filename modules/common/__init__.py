from .async_utils import guarded_call
from .logging import LOGGER_NAME, get_logger, log_event, sanitize_text, sanitize_value

__all__ = [
    "LOGGER_NAME",
    "get_logger",
    "guarded_call",
    "log_event",
    "sanitize_text",
    "sanitize_value",
]
