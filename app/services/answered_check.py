"""
Answered-check: has a question already received an answer paragraph?

A question counts as answered when the block right after the question's
paragraph is a paragraph whose trimmed text starts with the answer marker.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from app.config import settings
from app.models.document import Document, Paragraph, Question

logger = logging.getLogger(__name__)


def is_answered(document: Document, insertion_offset: int, marker: Optional[str] = None) -> bool:
    """Return True if the block after the one ending at *insertion_offset* is an answer."""
    marker = marker if marker is not None else settings.ANSWER_MARKER
    blocks = document.blocks

    for i, block in enumerate(blocks):
        if block.end_offset != insertion_offset:
            continue
        if i + 1 >= len(blocks):
            return False
        following = blocks[i + 1]
        if not isinstance(following, Paragraph):
            return False
        return following.text.strip().startswith(marker)

    return False


def mark_answered(
    document: Document,
    questions: Iterable[Question],
    marker: Optional[str] = None,
) -> int:
    """Set ``answered`` on each located question; returns how many were answered."""
    answered = 0
    for question in questions:
        if question.insertion_offset is None:
            continue
        question.answered = is_answered(document, question.insertion_offset, marker)
        if question.answered:
            answered += 1
            logger.info("Question already answered, skipping: %r", question.text)
    return answered
