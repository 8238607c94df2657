"""
Periodic Drive poller.

Each cycle lists the most recently modified Google Docs visible to the
service account and processes every document id not yet in the
ProcessedDocumentStore.  Documents are processed one after another; a
failure on one document is logged and the cycle moves on.  A document
that another trigger is already processing is skipped for this cycle.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Dict, List, Optional, Protocol

from app.services.document_store import ProcessedDocumentStore
from app.services.exceptions import (
    AccessDenied,
    DocumentBusy,
    DocumentProcessingError,
    FetchFailure,
)
from app.services.pipeline import DocumentAnswerPipeline

logger = logging.getLogger(__name__)


class DocumentLister(Protocol):
    async def list_recent_documents(self, page_size: int = 25) -> List[Dict[str, Any]]:
        ...


@dataclasses.dataclass
class PollResult:
    listed: int = 0
    processed: List[str] = dataclasses.field(default_factory=list)
    rejected: List[str] = dataclasses.field(default_factory=list)
    failed: List[str] = dataclasses.field(default_factory=list)
    skipped: int = 0
    busy: List[str] = dataclasses.field(default_factory=list)


class DrivePoller:
    def __init__(
        self,
        lister: DocumentLister,
        pipeline: DocumentAnswerPipeline,
        store: ProcessedDocumentStore,
        *,
        interval_seconds: float = 60.0,
        page_size: int = 25,
        clear_each_run: bool = False,
    ) -> None:
        self.lister = lister
        self.pipeline = pipeline
        self.store = store
        self.interval_seconds = interval_seconds
        self.page_size = page_size
        self.clear_each_run = clear_each_run
        self.runs = 0
        self.last_result: Optional[PollResult] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> PollResult:
        if self.clear_each_run:
            self.store.clear()

        result = PollResult()
        try:
            files = await self.lister.list_recent_documents(self.page_size)
        except FetchFailure as exc:
            logger.error("Polling: could not list documents: %s", exc)
            self.last_result = result
            return result

        result.listed = len(files)
        for item in files:
            document_id = item.get("id")
            if not document_id:
                continue
            if document_id in self.store:
                result.skipped += 1
                continue

            try:
                await self.pipeline.process_document(document_id)
                result.processed.append(document_id)
            except AccessDenied:
                result.rejected.append(document_id)
            except DocumentBusy:
                # Left out of the store so the next cycle looks at it again.
                logger.info("Polling: document %s is busy, skipped this cycle", document_id)
                result.busy.append(document_id)
                continue
            except DocumentProcessingError as exc:
                logger.error("Polling: ✗ document %s: %s", document_id, exc)
                result.failed.append(document_id)
                continue
            # Rejected documents are remembered too; ownership rarely changes.
            self.store.add(document_id)

        self.runs += 1
        self.last_result = result
        logger.info(
            "Polling run %d: %d listed, %d processed, %d rejected, %d failed, %d busy, %d already seen",
            self.runs,
            result.listed,
            len(result.processed),
            len(result.rejected),
            len(result.failed),
            len(result.busy),
            result.skipped,
        )
        return result

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("Polling run crashed: %s", exc, exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Drive poller started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Drive poller stopped")
