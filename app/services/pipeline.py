"""
Pipeline orchestrator: answers the open questions of one document.

Public API
----------
DocumentAnswerPipeline.process_document(document_id, status=None)
    → ProcessingSummary
    approve owner → fetch → flatten → detect → locate → answered-check
    → reconcile → generate + insert answers (strictly sequential).

Document-level failures (AccessDenied, FetchFailure, DocumentBusy) are
raised before any write.  Failures local to one question are logged,
counted in the summary and never abort the rest of the batch.

At most one run per document id is in flight on a pipeline instance; a
second concurrent call raises DocumentBusy.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Awaitable, Callable, List, Optional, Protocol, Set

from app.config import settings
from app.models.document import Document, InsertionStatus, Question
from app.services.answered_check import mark_answered
from app.services.exceptions import AccessDenied, DocumentBusy
from app.services.flattener import flatten
from app.services.insertion_driver import InsertionDriver, format_answer
from app.services.processing_manager import ProcessingPhase, ProcessingStatus
from app.services.question_detector import QuestionDetector
from app.services.question_locator import QuestionLocator
from app.services.reconciler import OffsetReconciler

logger = logging.getLogger(__name__)


class DocumentSource(Protocol):
    async def fetch_document(self, document_id: str) -> Document:
        ...

    async def is_owner_approved(self, document_id: str) -> bool:
        ...

    async def insert_text(self, document_id: str, offset: int, text: str) -> None:
        ...


class AnswerSource(Protocol):
    async def generate_answer(self, question_text: str) -> Optional[str]:
        ...


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class InsertionRecord:
    question: str
    strategy: str
    original_offset: int
    actual_offset: Optional[int]
    characters_inserted: int
    status: str


@dataclasses.dataclass
class ProcessingSummary:
    """Result of answering the questions of one document."""

    document_id: str
    document_title: str = ""
    questions_detected: int = 0
    questions_located: int = 0
    already_answered: int = 0
    answers_inserted: int = 0
    questions_skipped: int = 0
    characters_inserted: int = 0
    insertions: List[InsertionRecord] = dataclasses.field(default_factory=list)
    errors: List[str] = dataclasses.field(default_factory=list)
    processing_time_seconds: float = 0.0
    message: str = ""


# ---------------------------------------------------------------------------
# DocumentAnswerPipeline
# ---------------------------------------------------------------------------

class DocumentAnswerPipeline:
    """
    Coordinates the document client, the LLM and the offset engine.

    One instance can serve many documents.  The only per-document state it
    keeps is the set of ids currently being processed.
    """

    def __init__(
        self,
        docs: DocumentSource,
        llm: AnswerSource,
        *,
        detector: Optional[QuestionDetector] = None,
        locator: Optional[QuestionLocator] = None,
        driver: Optional[InsertionDriver] = None,
        reconciler: Optional[OffsetReconciler] = None,
        answer_marker: Optional[str] = None,
        question_pause_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.docs = docs
        self.llm = llm
        self.detector = detector or QuestionDetector(llm=llm)
        self.locator = locator or QuestionLocator()
        self.driver = driver or InsertionDriver(docs)
        self.reconciler = reconciler or OffsetReconciler()
        self.answer_marker = answer_marker if answer_marker is not None else settings.ANSWER_MARKER
        self.question_pause_seconds = (
            question_pause_seconds
            if question_pause_seconds is not None
            else settings.QUESTION_PAUSE_SECONDS
        )
        self._sleep = sleep
        self._active: Set[str] = set()

    def is_processing(self, document_id: str) -> bool:
        return document_id in self._active

    async def process_document(
        self,
        document_id: str,
        status: Optional[ProcessingStatus] = None,
    ) -> ProcessingSummary:
        """
        Answer every unanswered question in *document_id*.

        Raises
        ------
        AccessDenied   when no owner is on the approved list.
        FetchFailure   when the document cannot be read.
        DocumentBusy   when the document is already being processed.
        """
        if document_id in self._active:
            logger.warning("Document %s is already being processed; run refused.", document_id)
            raise DocumentBusy("document is already being processed", document_id)

        self._active.add(document_id)
        try:
            return await self._process(document_id, status)
        finally:
            self._active.discard(document_id)

    async def _process(
        self,
        document_id: str,
        status: Optional[ProcessingStatus],
    ) -> ProcessingSummary:
        t0 = time.monotonic()
        status = status or ProcessingStatus(document_id=document_id)

        # 1 - Owner approval (before any read or write)
        status.phase = ProcessingPhase.CHECKING_ACCESS
        if not await self.docs.is_owner_approved(document_id):
            status.phase = ProcessingPhase.REJECTED
            logger.info("Document %s is not from an approved owner.", document_id)
            raise AccessDenied("document owner not approved for processing", document_id)

        # 2 - Snapshot
        status.phase = ProcessingPhase.FETCHING
        logger.info("Starting processing for document: %s", document_id)
        document = await self.docs.fetch_document(document_id)
        summary = ProcessingSummary(document_id=document_id, document_title=document.title)

        # 3 - Detect + locate
        status.phase = ProcessingPhase.DETECTING
        flattened = flatten(document)
        candidates = await self.detector.detect(flattened.text)
        summary.questions_detected = len(candidates)

        status.phase = ProcessingPhase.LOCATING
        questions = self.locator.locate(flattened, candidates)
        summary.questions_located = len(questions)
        summary.already_answered = mark_answered(document, questions, self.answer_marker)

        plan = self.reconciler.reconcile(questions)
        status.questions_total = len(plan)
        logger.info(
            "Document %s: %d detected, %d located, %d already answered, %d to answer",
            document_id,
            summary.questions_detected,
            summary.questions_located,
            summary.already_answered,
            len(plan),
        )

        # 4 - Answer in ascending offset order
        status.phase = ProcessingPhase.ANSWERING
        applied = 0

        async def _apply(question: Question, offset: int) -> int:
            nonlocal applied
            # Pause between applied insertions only.
            if applied and self.question_pause_seconds > 0:
                await self._sleep(self.question_pause_seconds)
            applied += 1
            status.current_question = question.text
            inserted = await self._answer_one(document_id, question, offset, summary)
            if inserted:
                status.questions_answered += 1
            return inserted

        await self.reconciler.execute(plan, _apply)

        # 5 - Summary
        for entry in plan:
            summary.insertions.append(InsertionRecord(
                question=entry.question.text,
                strategy=entry.question.strategy.value,
                original_offset=entry.original_offset,
                actual_offset=entry.actual_offset,
                characters_inserted=entry.characters_inserted,
                status=entry.status.value,
            ))
            if entry.status == InsertionStatus.INSERTED:
                summary.answers_inserted += 1
            else:
                summary.questions_skipped += 1
                if entry.status == InsertionStatus.INVALID_OFFSET:
                    summary.errors.append(
                        f"invalid offset {entry.actual_offset} for {entry.question.text!r}"
                    )
        summary.characters_inserted = plan.cumulative_offset
        summary.processing_time_seconds = round(time.monotonic() - t0, 2)
        summary.message = (
            f"Answered {summary.answers_inserted} question(s) in document {document_id} "
            f"({summary.already_answered} already answered, "
            f"{summary.questions_skipped} skipped) in {summary.processing_time_seconds}s."
        )

        status.current_question = None
        status.errors.extend(summary.errors)
        status.phase = ProcessingPhase.COMPLETED
        logger.info("Finished processing document: %s - %s", document_id, summary.message)
        return summary

    async def _answer_one(
        self,
        document_id: str,
        question: Question,
        offset: int,
        summary: ProcessingSummary,
    ) -> int:
        logger.info("Processing question: %r", question.text)
        answer = await self.llm.generate_answer(question.text)
        if not answer:
            logger.warning("No answer generated for %r", question.text)
            summary.errors.append(f"no answer generated for {question.text!r}")
            return 0

        text = format_answer(answer, self.answer_marker)
        logger.info("Inserting answer at index %d", offset)
        result = await self.driver.insert(document_id, offset, text)
        if not result.complete:
            summary.errors.append(
                f"partial answer for {question.text!r}: "
                f"{result.chunks_committed}/{result.chunks_total} chunk(s) committed"
            )
        return result.characters_inserted
