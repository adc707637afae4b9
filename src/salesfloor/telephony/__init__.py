"""
Telephony provider adapters and webhook processing.
"""

from salesfloor.telephony.events import CallEvent, CallEventType
from salesfloor.telephony.interface import (
    CallInitiationRequest,
    CallInitiationResponse,
    TelephonyProvider,
    TelephonyProviderError,
)

__all__ = [
    "CallEvent",
    "CallEventType",
    "CallInitiationRequest",
    "CallInitiationResponse",
    "TelephonyProvider",
    "TelephonyProviderError",
]
