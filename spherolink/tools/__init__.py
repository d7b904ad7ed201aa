from .utilities import log_exceptions, notify_safely
from .mathtools import clamp, unit_to_byte, hsv_transition

__all__ = [
    "log_exceptions",
    "notify_safely",
    "clamp",
    "unit_to_byte",
    "hsv_transition",
]
