"""
Webhook API Routes

Called by external services (the Jitsi meeting provider). No bearer auth;
the optional shared-secret signature is verified by the presence service.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from ..services.presence import PresenceWebhookService


router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_presence_service = PresenceWebhookService()


def get_presence_service() -> PresenceWebhookService:
    return _presence_service


@router.post("/jitsi", response_model=dict)
async def handle_jitsi_webhook(
    request: Request,
    x_jitsi_signature: Optional[str] = Header(None),
    service: PresenceWebhookService = Depends(get_presence_service),
):
    """
    Receive participant-joined / participant-left / recording-status-changed.

    Always acknowledged with 200 so the provider does not retry, except for
    a bad signature (401).
    """
    raw_body = await request.body()
    return await run_in_threadpool(service.handle, raw_body, x_jitsi_signature)
