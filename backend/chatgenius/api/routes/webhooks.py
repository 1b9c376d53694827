"""
Webhook API Routes

Ingress for row change events sent by the database webhooks:
- POST /webhooks/message-events: chat message created, edited or deleted
- POST /webhooks/document-events: avatar document uploaded, re-triggered or deleted

Every request must carry the shared secret in ``x-webhook-secret``.
After the pipeline has handled an event the route waits (bounded) until
the index reflects it, so a query issued right after the response sees
the change.
"""

from typing import Callable

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from chatgenius.api.deps import Services
from chatgenius.core.exceptions import ChatGeniusError
from chatgenius.core.logging import get_logger
from chatgenius.core.security import verify_webhook_secret
from chatgenius.models.index_record import Namespace
from chatgenius.schemas.events import WebhookPayload, WebhookResponse
from chatgenius.services.container import ServiceContainer
from chatgenius.services.indexing.pipeline import IndexingAction, IndexingOutcome

logger = get_logger(__name__)

router = APIRouter(
    prefix="/webhooks",
    tags=["webhooks"],
    dependencies=[Depends(verify_webhook_secret)],
)


async def _settle(services: ServiceContainer, outcome: IndexingOutcome) -> bool:
    if outcome.action not in (IndexingAction.INDEXED, IndexingAction.DELETED):
        return True
    return await services.vector_index.wait_for_consistency(
        outcome.namespace,
        outcome.item_id,
        present=outcome.expects_record,
    )


def _error_response(status_code: int, error: str, code: str, details: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "code": code, "details": details},
    )


async def _handle(
    payload: WebhookPayload,
    services: ServiceContainer,
    namespace: Namespace,
    to_event: Callable,
    handler: Callable,
):
    try:
        event = to_event()
    except ValidationError as e:
        logger.warning("webhook_payload_invalid", namespace=namespace.value, error=str(e))
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            "Invalid change event",
            "invalid_change_event",
            str(e),
        )

    logger.info(
        "webhook_event_received",
        namespace=namespace.value,
        event_type=event.event_type.value,
        item_id=event.item_id,
    )

    try:
        outcome = await handler(event)
        consistent = await _settle(services, outcome)
    except Exception as e:
        logger.error(
            "webhook_event_failed",
            namespace=namespace.value,
            item_id=event.item_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"Failed to process {namespace.value} event",
            e.code if isinstance(e, ChatGeniusError) else "internal_error",
            str(e),
        )

    return WebhookResponse(
        item_id=outcome.item_id,
        namespace=outcome.namespace.value,
        action=outcome.action.value,
        index_consistent=consistent,
    )


@router.post("/message-events", response_model=WebhookResponse)
async def message_events(payload: WebhookPayload, services: Services):
    """
    Apply a message change to the ``messages`` namespace.

    INSERT/UPDATE embed and upsert the message (an edit overwrites the
    existing record); DELETE removes it.
    """
    return await _handle(
        payload,
        services,
        Namespace.MESSAGES,
        payload.to_message_event,
        services.pipeline.handle_message_event,
    )


@router.post("/document-events", response_model=WebhookResponse)
async def document_events(payload: WebhookPayload, services: Services):
    """
    Apply an avatar document change to the ``avatar_documents`` namespace.

    INSERT and re-triggered UPDATEs run extraction and embedding; other
    UPDATEs are ignored; DELETE removes the record.
    """
    return await _handle(
        payload,
        services,
        Namespace.AVATAR_DOCUMENTS,
        payload.to_document_event,
        services.pipeline.handle_document_event,
    )
