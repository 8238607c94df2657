"""
Offset reconciliation for a batch of insertions into one document.

Insertions are applied in ascending original-offset order.  A running
cumulative offset holds the number of characters inserted so far, so the
target of every later question is shifted by exactly what earlier
insertions added:

    actual_offset = insertion_offset - 1 + cumulative_offset

The ``- 1`` puts the answer just before the paragraph's terminating
newline instead of after it.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable

from app.models.document import (
    InsertionPlan,
    InsertionStatus,
    PlannedInsertion,
    Question,
)

logger = logging.getLogger(__name__)

# (question, actual_offset) -> characters committed to the document
ApplyFn = Callable[[Question, int], Awaitable[int]]


class OffsetReconciler:
    """Builds and executes insertion plans; strictly sequential."""

    @staticmethod
    def reconcile(questions: Iterable[Question]) -> InsertionPlan:
        """
        Filter answered / unlocated questions and order the rest by offset.

        ``sorted`` is stable, so questions sharing an offset keep their
        detection order.
        """
        pending = [
            q for q in questions
            if not q.answered and q.is_located
        ]
        pending = sorted(pending, key=lambda q: q.insertion_offset)
        return InsertionPlan(entries=[PlannedInsertion(question=q) for q in pending])

    @staticmethod
    def next_offset(plan: InsertionPlan, entry: PlannedInsertion) -> int:
        return entry.original_offset - 1 + plan.cumulative_offset

    async def execute(self, plan: InsertionPlan, apply: ApplyFn) -> InsertionPlan:
        """
        Apply every entry in order, updating ``plan.cumulative_offset`` by the
        characters each insertion actually committed.
        """
        for entry in plan.entries:
            offset = self.next_offset(plan, entry)
            entry.actual_offset = offset

            if offset < 0:
                entry.status = InsertionStatus.INVALID_OFFSET
                logger.warning(
                    "Invalid insertion offset %d for question %r - skipping",
                    offset,
                    entry.question.text,
                )
                continue

            inserted = await apply(entry.question, offset)
            entry.characters_inserted = inserted
            plan.cumulative_offset += inserted

            entry.status = (
                InsertionStatus.INSERTED if inserted > 0 else InsertionStatus.SKIPPED
            )

            logger.debug(
                "Inserted %d char(s) at %d; cumulative offset now %d",
                inserted,
                offset,
                plan.cumulative_offset,
            )

        return plan
