"""
Telephony provider configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported telephony provider types."""

    TWILIO = "twilio"
    TELNYX = "telnyx"
    MOCK = "mock"


class TelephonyConfig(BaseSettings):
    """Telephony provider configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="TELEPHONY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider selection
    provider_type: ProviderType = Field(default=ProviderType.MOCK)

    # Twilio
    twilio_account_sid: str = Field(default="")
    twilio_auth_token: str = Field(default="")
    twilio_from_number: str = Field(default="")
    twilio_base_url: str = Field(default="https://api.twilio.com")

    # Telnyx
    telnyx_api_key: str = Field(default="")
    telnyx_connection_id: str = Field(default="")
    telnyx_from_number: str = Field(default="")
    telnyx_public_key: str = Field(
        default="",
        description="Base64 Ed25519 public key used to verify webhook signatures",
    )
    telnyx_base_url: str = Field(default="https://api.telnyx.com")

    # Webhook base URL (HTTP) used for provider callbacks
    webhook_base_url: str = Field(default="http://localhost:8000")
    verify_signatures: bool = Field(default=True)

    request_timeout_seconds: float = Field(default=30.0, gt=0, le=300)

    def get_webhook_url(self, provider: str) -> str:
        base = self.webhook_base_url.rstrip("/")
        return f"{base}/webhooks/telephony/{provider}/events"

    def default_from_number(self) -> str:
        if self.provider_type == ProviderType.TELNYX:
            return self.telnyx_from_number
        return self.twilio_from_number
