"""Inbound email webhook for the Hausdog API.

POST /v1/webhooks/email receives the provider's signed delivery. It is not
behind API key auth; the signature is the credential. The route always
answers 200 so the provider does not redeliver; what happened is reported in
the body and the logs.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel

from hausdog.api.dependencies import Context
from hausdog.services.ingestion.signature import SIGNATURE_HEADER

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/webhooks", tags=["Webhooks"])


class EmailWebhookResponse(BaseModel):
    status: str
    document_ids: list[str] = []
    reason: str | None = None


@router.post("/email", response_model=EmailWebhookResponse)
async def receive_email(request: Request, context: Context) -> EmailWebhookResponse:
    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        outcome = await context.email_ingest.handle_webhook(raw_body, signature)
    except Exception:
        logger.exception("Inbound email webhook failed")
        return EmailWebhookResponse(status="error", reason="internal_error")

    return EmailWebhookResponse(
        status=outcome.status.value,
        document_ids=list(outcome.document_ids),
        reason=outcome.reason,
    )
