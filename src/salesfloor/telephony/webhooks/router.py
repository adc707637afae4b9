"""
FastAPI router for telephony webhook endpoints.

Providers authenticate with request signatures, not bearer tokens.
"""

import json
from typing import Annotated, Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.shared.database import get_db_session
from salesfloor.shared.logging import get_logger
from salesfloor.telephony.config import TelephonyConfig
from salesfloor.telephony.factory import get_telephony_config, get_telephony_provider
from salesfloor.telephony.interface import TelephonyProvider, WebhookParseError
from salesfloor.telephony.webhooks.handler import HandlingResult, WebhookHandler

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks/telephony", tags=["webhooks"])


def _decode_payload(request: Request, body: bytes) -> dict[str, Any]:
    """Form callbacks (Twilio) merge in the query string; JSON is used as-is."""
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type:
        try:
            form = body.decode("utf-8")
        except UnicodeDecodeError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "INVALID_PAYLOAD", "message": "Webhook form body is not valid UTF-8"},
            )
        payload: dict[str, Any] = dict(request.query_params)
        payload.update(parse_qsl(form, keep_blank_values=True))
        return payload

    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_PAYLOAD", "message": "Webhook body is not valid JSON"},
        )
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_PAYLOAD", "message": "Webhook body must be an object"},
        )
    for key, value in request.query_params.items():
        payload.setdefault(key, value)
    return payload


@router.post(
    "/{provider_name}/events",
    summary="Receive call status callbacks from a telephony provider",
)
async def receive_call_event(
    provider_name: str,
    request: Request,
    provider: Annotated[TelephonyProvider, Depends(get_telephony_provider)],
    telephony_config: Annotated[TelephonyConfig, Depends(get_telephony_config)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> dict[str, str]:
    if provider_name != provider.name:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "code": "UNKNOWN_PROVIDER",
                "message": f"Provider '{provider_name}' is not configured",
            },
        )

    body = await request.body()
    if telephony_config.verify_signatures and not provider.validate_webhook_signature(
        body, request.headers, str(request.url)
    ):
        logger.warning(
            "Rejected webhook with invalid signature",
            extra={"provider": provider_name, "endpoint": request.url.path},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "INVALID_SIGNATURE", "message": "Webhook signature verification failed"},
        )

    payload = _decode_payload(request, body)
    try:
        event = provider.parse_webhook_event(payload)
    except WebhookParseError as e:
        if e.error_code == "unsupported_event":
            return {"status": HandlingResult.IGNORED.value}
        logger.warning(
            "Unparseable webhook payload",
            extra={"provider": provider_name, "error": e.message},
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_PAYLOAD", "message": e.message},
        )

    result = await WebhookHandler(session).handle_event(event)
    return {"status": result.value}
