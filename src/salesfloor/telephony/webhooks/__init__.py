"""
Telephony webhook handling.
"""

from salesfloor.telephony.webhooks.handler import HandlingResult, WebhookHandler

__all__ = ["HandlingResult", "WebhookHandler"]
