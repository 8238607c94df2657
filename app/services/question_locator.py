"""
Question location: maps candidate question strings onto structural offsets.

Matching strategy (in priority order):
  1. Literal   - case-insensitive search of the candidate in the flat text,
                 with trailing punctuation stretched to absorb 0+ marks.
                 Every occurrence yields its own Question.
  2. Fuzzy     - only when the literal search finds nothing: Levenshtein
                 similarity against every paragraph, best paragraph accepted
                 when similarity >= threshold.

Candidates matched by neither strategy are logged and dropped; an offset
is never guessed.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Iterable, List, Optional, Tuple

from app.config import settings
from app.models.document import MatchStrategy, Question
from app.services.exceptions import LocationFailure
from app.services.flattener import FlattenedText
from app.utils.helpers import dedupe_questions, normalize_question, similarity

logger = logging.getLogger(__name__)

_TRAILING_PUNCTUATION = "?!.,;:…"
_TRAILING_PUNCTUATION_CLASS = "[" + re.escape(_TRAILING_PUNCTUATION) + "]*"


def sanitize_candidates(candidates: Iterable[Any]) -> List[str]:
    """Drop non-string and blank detector output, strip the rest."""
    cleaned: List[str] = []
    for candidate in candidates or []:
        if not isinstance(candidate, str):
            logger.debug("Ignoring non-string question candidate: %r", candidate)
            continue
        text = candidate.strip()
        if text:
            cleaned.append(text)
    return cleaned


def build_question_pattern(candidate: str) -> Optional[re.Pattern]:
    """
    Regex matching *candidate* case-insensitively, with any trailing
    punctuation made optional and repeatable.
    """
    core = candidate.strip().rstrip(_TRAILING_PUNCTUATION).strip()
    if not core:
        return None
    return re.compile(re.escape(core) + _TRAILING_PUNCTUATION_CLASS, re.IGNORECASE)


class QuestionLocator:
    """
    Resolves detected questions to insertion offsets.

    Parameters
    ----------
    similarity_threshold:
        Minimum normalized Levenshtein similarity for a fuzzy match.
        Defaults to ``settings.FUZZY_MATCH_THRESHOLD`` (0.8).
    """

    def __init__(self, similarity_threshold: Optional[float] = None) -> None:
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else settings.FUZZY_MATCH_THRESHOLD
        )
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def locate(self, flattened: FlattenedText, candidates: Iterable[Any]) -> List[Question]:
        """
        Locate every candidate in *flattened*.

        Returns questions in detection order; each has a resolved
        insertion offset.
        """
        unique = dedupe_questions(sanitize_candidates(candidates))
        questions: List[Question] = []

        for order, candidate in enumerate(unique):
            try:
                questions.extend(self._locate_one(flattened, candidate, order))
            except LocationFailure as exc:
                logger.warning("Dropping question: %s", exc)

        logger.info(
            "locate: %d question(s) resolved from %d unique candidate(s)",
            len(questions),
            len(unique),
        )
        return questions

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _locate_one(self, flattened: FlattenedText, candidate: str, order: int) -> List[Question]:
        literal = self.find_literal(flattened, candidate, order)
        if literal:
            return literal

        fuzzy = self.find_fuzzy(flattened, candidate, order)
        if fuzzy is not None:
            return [fuzzy]

        raise LocationFailure(f"no literal or fuzzy match for {candidate!r}")

    def find_literal(self, flattened: FlattenedText, candidate: str, order: int = 0) -> List[Question]:
        pattern = build_question_pattern(candidate)
        if pattern is None:
            return []

        found: List[Question] = []
        for match in pattern.finditer(flattened.text):
            entry = flattened.index_map.resolve_span_end(match.end())
            if entry is None:
                logger.debug(
                    "Literal match for %r at %d has no owning paragraph",
                    candidate,
                    match.start(),
                )
                continue
            found.append(Question(
                text=candidate,
                insertion_offset=entry.end_offset,
                order=order,
                strategy=MatchStrategy.LITERAL,
                similarity=1.0,
                match_start=match.start(),
            ))
        return found

    def find_fuzzy(self, flattened: FlattenedText, candidate: str, order: int = 0) -> Optional[Question]:
        best = self.best_paragraph(flattened, candidate)
        if best is None:
            return None

        entry_index, score = best
        if score < self.similarity_threshold:
            logger.debug(
                "Best fuzzy match for %r is %.3f (< %.2f)",
                candidate,
                score,
                self.similarity_threshold,
            )
            return None

        entry = flattened.index_map[entry_index]
        logger.info(
            "Fuzzy-matched %r to paragraph ending at %d (similarity %.3f)",
            candidate,
            entry.end_offset,
            score,
        )
        return Question(
            text=candidate,
            insertion_offset=entry.end_offset,
            order=order,
            strategy=MatchStrategy.FUZZY,
            similarity=score,
        )

    @staticmethod
    def best_paragraph(flattened: FlattenedText, candidate: str) -> Optional[Tuple[int, float]]:
        """(entry index, similarity) of the most similar non-empty paragraph."""
        target = normalize_question(candidate)
        if not target:
            return None

        best: Optional[Tuple[int, float]] = None
        for i, text in enumerate(flattened.paragraph_texts()):
            norm = normalize_question(text)
            if not norm:
                continue
            score = similarity(target, norm)
            if best is None or score > best[1]:
                best = (i, score)
        return best
