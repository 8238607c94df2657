"""
Question detection front-end.

Two strategies:
  * ``llm``       - ask the chat model for every question in the text.
  * ``heuristic`` - every line whose stripped text ends with "?".

Detection never fails a request: a DetectionError is logged and treated
as "no questions found".
"""
from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from app.config import settings
from app.services.exceptions import DetectionError

logger = logging.getLogger(__name__)

STRATEGIES = ("llm", "heuristic")


class QuestionSource(Protocol):
    async def detect_questions(self, document_text: str) -> List[str]:
        ...


def detect_questions_heuristic(text: str) -> List[str]:
    """Lines ending in a question mark, in document order."""
    return [
        line.strip()
        for line in text.splitlines()
        if line.strip().endswith("?")
    ]


class QuestionDetector:
    def __init__(self, llm: Optional[QuestionSource] = None, strategy: Optional[str] = None) -> None:
        self.strategy = (strategy or settings.QUESTION_DETECTOR).lower()
        if self.strategy not in STRATEGIES:
            raise ValueError(
                f"Unknown question detector {self.strategy!r}; expected one of {STRATEGIES}"
            )
        if self.strategy == "llm" and llm is None:
            raise ValueError("The llm detector needs a question source")
        self.llm = llm

    async def detect(self, text: str) -> List[str]:
        if not text or not text.strip():
            return []

        if self.strategy == "heuristic":
            questions = detect_questions_heuristic(text)
            logger.info("detect: %d question(s) by heuristic", len(questions))
            return questions

        try:
            return list(await self.llm.detect_questions(text))
        except DetectionError as exc:
            logger.error("Question detection failed, continuing with none: %s", exc)
            return []
