"""
In-memory tracker for background document-processing tasks.

Usage
-----
    from app.services.processing_manager import processing_manager, ProcessingStatus

    status = ProcessingStatus(document_id=doc_id)
    processing_manager.start(doc_id, pipeline.process_document(doc_id, status), status)
    # ... later ...
    current = processing_manager.get_status(doc_id)
"""
from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import time
from typing import Any, Coroutine, Dict, List, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Processing phase enum
# ---------------------------------------------------------------------------

class ProcessingPhase(str, enum.Enum):
    QUEUED = "queued"
    CHECKING_ACCESS = "checking_access"
    FETCHING = "fetching"
    DETECTING = "detecting"
    LOCATING = "locating"
    ANSWERING = "answering"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


TERMINAL_PHASES = (
    ProcessingPhase.COMPLETED,
    ProcessingPhase.REJECTED,
    ProcessingPhase.FAILED,
)


# ---------------------------------------------------------------------------
# Processing status (mutable dataclass shared between task and poller)
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class ProcessingStatus:
    document_id: str
    phase: ProcessingPhase = ProcessingPhase.QUEUED
    questions_total: int = 0
    questions_answered: int = 0
    current_question: Optional[str] = None
    errors: List[str] = dataclasses.field(default_factory=list)
    started_at: float = dataclasses.field(default_factory=time.monotonic)
    completed_at: Optional[float] = None

    @property
    def elapsed_seconds(self) -> float:
        end = self.completed_at if self.completed_at else time.monotonic()
        return round(end - self.started_at, 2)


# ---------------------------------------------------------------------------
# Processing manager
# ---------------------------------------------------------------------------

class ProcessingManager:
    """Manages background processing asyncio.Tasks per document id."""

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}
        self._status: Dict[str, ProcessingStatus] = {}

    def is_running(self, document_id: str) -> bool:
        task = self._tasks.get(document_id)
        return task is not None and not task.done()

    def get_status(self, document_id: str) -> Optional[ProcessingStatus]:
        return self._status.get(document_id)

    def start(
        self,
        document_id: str,
        coro: Coroutine[Any, Any, Any],
        status: Optional[ProcessingStatus] = None,
    ) -> ProcessingStatus:
        """
        Launch a background processing task for *document_id*.

        If *status* is provided (pre-created by the caller so it could be
        passed into the coroutine before this method is called), it is
        registered as-is.  Otherwise a fresh ProcessingStatus is created.

        Returns the ProcessingStatus object (shared with the running task so
        fields update in real time).
        """
        if self.is_running(document_id):
            coro.close()
            raise RuntimeError(f"Processing already running for document {document_id}")

        if status is None:
            status = ProcessingStatus(document_id=document_id)
        self._status[document_id] = status

        async def _wrapper() -> None:
            try:
                await coro
            except Exception as exc:
                logger.error(
                    "Processing task failed for document %s: %s",
                    document_id,
                    exc,
                    exc_info=True,
                )
                if status.phase != ProcessingPhase.REJECTED:
                    status.phase = ProcessingPhase.FAILED
                status.errors.append(f"processing crash: {str(exc)[:200]}")
            finally:
                status.completed_at = time.monotonic()
                if status.phase not in TERMINAL_PHASES:
                    status.phase = ProcessingPhase.FAILED

        task = asyncio.create_task(_wrapper())
        self._tasks[document_id] = task

        # Cleanup reference when done
        task.add_done_callback(lambda _t: self._cleanup(document_id))

        logger.info("Processing task started for document %s", document_id)
        return status

    async def wait(self, document_id: str) -> None:
        task = self._tasks.get(document_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def _cleanup(self, document_id: str) -> None:
        """Remove the task reference (status is kept for polling)."""
        self._tasks.pop(document_id, None)


# Module-level instance shared by the routers
processing_manager = ProcessingManager()
