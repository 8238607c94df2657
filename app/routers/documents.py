"""
Document processing endpoints.

Route summary
-------------
POST /{document_id}/process        - answer the document's questions, wait for the result.
POST /{document_id}/process-async  - start processing in the background (202).
GET  /{document_id}/status         - phase and progress of a background run.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies.services import get_pipeline, get_processing_manager
from app.models.schemas import ProcessDocumentResponse, ProcessingStatusResponse
from app.services.exceptions import AccessDenied, DocumentBusy, FetchFailure
from app.services.pipeline import DocumentAnswerPipeline
from app.services.processing_manager import ProcessingManager, ProcessingStatus

logger = logging.getLogger(__name__)

router = APIRouter()


def _is_busy(
    document_id: str,
    pipeline: DocumentAnswerPipeline,
    manager: ProcessingManager,
) -> bool:
    return manager.is_running(document_id) or pipeline.is_processing(document_id)


def _conflict(document_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Document {document_id} is already being processed.",
    )


def _status_response(current: ProcessingStatus) -> ProcessingStatusResponse:
    return ProcessingStatusResponse(
        document_id=current.document_id,
        phase=current.phase.value,
        questions_total=current.questions_total,
        questions_answered=current.questions_answered,
        current_question=current.current_question,
        errors=list(current.errors),
        elapsed_seconds=current.elapsed_seconds,
    )


# ---------------------------------------------------------------------------
# POST /{document_id}/process
# ---------------------------------------------------------------------------

@router.post(
    "/{document_id}/process",
    response_model=ProcessDocumentResponse,
    status_code=status.HTTP_200_OK,
    summary="Answer every open question in a document",
)
async def process_document(
    document_id: str,
    pipeline: DocumentAnswerPipeline = Depends(get_pipeline),
    manager: ProcessingManager = Depends(get_processing_manager),
) -> ProcessDocumentResponse:
    """
    Run the full pipeline synchronously.

    - 403 if no owner of the document is on the approved list.
    - 404 if the document cannot be fetched.
    - 409 if a run for the same document is already in flight.

    Questions that cannot be located or answered are reported in the
    summary; they never fail the request.
    """
    if _is_busy(document_id, pipeline, manager):
        raise _conflict(document_id)

    try:
        summary = await pipeline.process_document(document_id)
    except DocumentBusy as exc:
        raise _conflict(document_id) from exc
    except AccessDenied as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Document owner not approved for processing.",
        ) from exc
    except FetchFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document {document_id} not found or not accessible.",
        ) from exc

    return ProcessDocumentResponse.model_validate(summary)


# ---------------------------------------------------------------------------
# POST /{document_id}/process-async
# ---------------------------------------------------------------------------

@router.post(
    "/{document_id}/process-async",
    response_model=ProcessingStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start processing a document in the background",
)
async def process_document_async(
    document_id: str,
    pipeline: DocumentAnswerPipeline = Depends(get_pipeline),
    manager: ProcessingManager = Depends(get_processing_manager),
) -> ProcessingStatusResponse:
    if _is_busy(document_id, pipeline, manager):
        raise _conflict(document_id)

    current = ProcessingStatus(document_id=document_id)
    manager.start(document_id, pipeline.process_document(document_id, current), current)
    return _status_response(current)


# ---------------------------------------------------------------------------
# GET /{document_id}/status
# ---------------------------------------------------------------------------

@router.get(
    "/{document_id}/status",
    response_model=ProcessingStatusResponse,
    summary="Background processing status",
)
async def processing_status(
    document_id: str,
    manager: ProcessingManager = Depends(get_processing_manager),
) -> ProcessingStatusResponse:
    current = manager.get_status(document_id)
    if current is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No processing run recorded for document {document_id}.",
        )
    return _status_response(current)
