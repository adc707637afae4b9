"""
Concrete telephony provider adapters.
"""

from salesfloor.telephony.adapters.mock import MockTelephonyProvider
from salesfloor.telephony.adapters.telnyx import TelnyxAdapter
from salesfloor.telephony.adapters.twilio import TwilioAdapter

__all__ = ["MockTelephonyProvider", "TelnyxAdapter", "TwilioAdapter"]
