"""
Telephony provider factory.

Configuration comes only from TelephonyConfig (environment + .env).
"""

from functools import lru_cache

from salesfloor.shared.logging import get_logger
from salesfloor.telephony.adapters.mock import MockTelephonyProvider
from salesfloor.telephony.adapters.telnyx import TelnyxAdapter
from salesfloor.telephony.adapters.twilio import TwilioAdapter
from salesfloor.telephony.config import ProviderType, TelephonyConfig
from salesfloor.telephony.interface import TelephonyProvider

logger = get_logger(__name__)


def _mask(s: str, keep: int = 6) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return f"{s[:keep]}***"


@lru_cache(maxsize=1)
def get_telephony_config() -> TelephonyConfig:
    """Return cached TelephonyConfig."""
    return TelephonyConfig()


def create_telephony_provider(cfg: TelephonyConfig) -> TelephonyProvider:
    """Build the provider selected by ``cfg.provider_type``."""
    if cfg.provider_type == ProviderType.TWILIO:
        return TwilioAdapter(
            account_sid=cfg.twilio_account_sid,
            auth_token=cfg.twilio_auth_token,
            base_url=cfg.twilio_base_url,
            timeout=cfg.request_timeout_seconds,
        )

    if cfg.provider_type == ProviderType.TELNYX:
        return TelnyxAdapter(
            api_key=cfg.telnyx_api_key,
            connection_id=cfg.telnyx_connection_id,
            public_key=cfg.telnyx_public_key,
            base_url=cfg.telnyx_base_url,
            timeout=cfg.request_timeout_seconds,
        )

    if cfg.provider_type == ProviderType.MOCK:
        return MockTelephonyProvider()

    raise ValueError(f"Unsupported telephony provider_type: {cfg.provider_type}")


@lru_cache(maxsize=1)
def get_telephony_provider() -> TelephonyProvider:
    """Create and cache the configured telephony provider."""
    cfg = get_telephony_config()

    logger.info(
        "Telephony config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "twilio_account_sid": _mask(cfg.twilio_account_sid),
            "telnyx_connection_id": _mask(cfg.telnyx_connection_id),
            "webhook_base_url": cfg.webhook_base_url,
            "verify_signatures": cfg.verify_signatures,
        },
    )
    return create_telephony_provider(cfg)


async def close_telephony_provider() -> None:
    """Close the cached provider, if one was created."""
    if get_telephony_provider.cache_info().currsize:
        await get_telephony_provider().close()
        get_telephony_provider.cache_clear()
