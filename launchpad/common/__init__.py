from .async_utils import guarded_call
from .logging import log_event

__all__ = [
    "guarded_call",
    "log_event",
]
