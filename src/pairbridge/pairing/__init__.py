"""Pairing module for pairbridge.

Provides:
- Phone validation against calling-code prefixes
- The session record state machine
"""

from .calling_codes import CALLING_CODES
from .state import ConnectionState, SessionRecord, UserAction
from .validator import PhoneValidator

__all__ = [
    "CALLING_CODES",
    "ConnectionState",
    "PhoneValidator",
    "SessionRecord",
    "UserAction",
]
