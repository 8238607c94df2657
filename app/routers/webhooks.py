"""
Webhook endpoints.

Route summary
-------------
POST /document          - ``{"documentId": ...}``; queues background processing.
POST /drive             - Drive push-notification receiver.
POST /drive/watch/{id}  - register a Drive watch channel pointing at /drive.
"""
from __future__ import annotations

import logging
import re
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, status

from app.config import settings
from app.dependencies.services import get_docs_client, get_pipeline, get_processing_manager
from app.models.schemas import (
    DocumentWebhookRequest,
    WatchChannelResponse,
    WebhookAcceptedResponse,
)
from app.services.google_docs import GoogleDocsClient
from app.services.pipeline import DocumentAnswerPipeline
from app.services.processing_manager import ProcessingManager, ProcessingStatus

logger = logging.getLogger(__name__)

router = APIRouter()

_RESOURCE_URI_FILE_RE = re.compile(r"/files/([^/?#]+)")

# Drive sends "sync" once when a channel is created; it carries no change.
_IGNORED_RESOURCE_STATES = frozenset({"sync"})


def parse_file_id(resource_uri: Optional[str]) -> Optional[str]:
    """Extract the file id from an ``X-Goog-Resource-URI`` header."""
    if not resource_uri:
        return None
    match = _RESOURCE_URI_FILE_RE.search(resource_uri)
    return match.group(1) if match else None


def _queue(
    document_id: str,
    pipeline: DocumentAnswerPipeline,
    manager: ProcessingManager,
) -> WebhookAcceptedResponse:
    if manager.is_running(document_id) or pipeline.is_processing(document_id):
        return WebhookAcceptedResponse(
            document_id=document_id,
            accepted=False,
            message="Document is already being processed.",
        )
    current = ProcessingStatus(document_id=document_id)
    manager.start(document_id, pipeline.process_document(document_id, current), current)
    return WebhookAcceptedResponse(
        document_id=document_id,
        accepted=True,
        message="Processing started.",
    )


@router.post(
    "/document",
    response_model=WebhookAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def document_webhook(
    body: DocumentWebhookRequest,
    pipeline: DocumentAnswerPipeline = Depends(get_pipeline),
    manager: ProcessingManager = Depends(get_processing_manager),
) -> WebhookAcceptedResponse:
    if not body.document_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing documentId")
    return _queue(body.document_id, pipeline, manager)


@router.post(
    "/drive",
    response_model=WebhookAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def drive_webhook(
    x_goog_resource_state: Optional[str] = Header(None, alias="X-Goog-Resource-State"),
    x_goog_resource_uri: Optional[str] = Header(None, alias="X-Goog-Resource-URI"),
    x_goog_channel_id: Optional[str] = Header(None, alias="X-Goog-Channel-ID"),
    pipeline: DocumentAnswerPipeline = Depends(get_pipeline),
    manager: ProcessingManager = Depends(get_processing_manager),
) -> WebhookAcceptedResponse:
    logger.info(
        "Drive notification: channel=%s state=%s uri=%s",
        x_goog_channel_id,
        x_goog_resource_state,
        x_goog_resource_uri,
    )
    if (x_goog_resource_state or "").lower() in _IGNORED_RESOURCE_STATES:
        return WebhookAcceptedResponse(accepted=False, message="Sync notification ignored.")

    document_id = parse_file_id(x_goog_resource_uri)
    if document_id is None:
        return WebhookAcceptedResponse(
            accepted=False, message="Notification does not reference a file."
        )
    return _queue(document_id, pipeline, manager)


@router.post(
    "/drive/watch/{document_id}",
    response_model=WatchChannelResponse,
    status_code=status.HTTP_201_CREATED,
)
async def watch_document(
    document_id: str,
    docs: GoogleDocsClient = Depends(get_docs_client),
) -> WatchChannelResponse:
    if not settings.WEBHOOK_BASE_URL:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="WEBHOOK_BASE_URL is not configured.",
        )

    address = f"{settings.WEBHOOK_BASE_URL.rstrip('/')}/api/webhooks/drive"
    try:
        channel = await docs.watch_file(document_id, address)
    except httpx.HTTPError as exc:
        logger.error("Error setting up watch for %s: %s", document_id, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Drive rejected the watch request: {exc}",
        ) from exc

    return WatchChannelResponse(
        document_id=document_id,
        channel_id=str(channel.get("id", "")),
        resource_id=channel.get("resourceId"),
        expiration=str(channel["expiration"]) if channel.get("expiration") else None,
    )
