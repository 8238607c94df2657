"""
Insertion driver: writes one answer into a document in typed-looking chunks.

The answer is split on single spaces into chunks of ``chunk_words`` words.
Every chunk except the last carries one trailing separating space, so a
fully committed answer inserts exactly ``len(text)`` characters.  Between
chunks the driver pauses ``60 / wpm * words_in_chunk`` seconds, with the
words-per-minute rate sampled once per answer.

When a chunk is rejected, each recovery transform is tried once at the
same offset.  If every transform fails the remaining chunks are abandoned;
whatever was already committed stays in the document.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import random
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from app.config import settings
from app.services.exceptions import InsertionFailure

logger = logging.getLogger(__name__)


class TextInserter(Protocol):
    async def insert_text(self, document_id: str, offset: int, text: str) -> None:
        ...


RecoveryTransform = Callable[[str], str]
SleepFn = Callable[[float], Awaitable[None]]


def prefix_newline(chunk: str) -> str:
    """Start the chunk on a fresh line; the API rejects some mid-run insertions."""
    return "\n" + chunk


DEFAULT_RECOVERY_TRANSFORMS: Sequence[RecoveryTransform] = (prefix_newline,)


def format_answer(answer: str, marker: Optional[str] = None) -> str:
    """Answer text as written into the document: its own paragraph after the question."""
    marker = marker if marker is not None else settings.ANSWER_MARKER
    return f"\n{marker} {answer.strip()}\n"


def split_into_chunks(text: str, chunk_words: int) -> List[str]:
    """
    Group the space-separated words of *text* into chunks.

    ``"".join(chunks) == text`` for any input: newlines and repeated spaces
    are preserved inside the words they belong to.
    """
    if chunk_words < 1:
        raise ValueError("chunk_words must be >= 1")
    if not text:
        return []

    words = text.split(" ")
    chunks: List[str] = []
    for i in range(0, len(words), chunk_words):
        chunk = " ".join(words[i:i + chunk_words])
        if i + chunk_words < len(words):
            chunk += " "
        chunks.append(chunk)
    return chunks


@dataclasses.dataclass
class InsertionResult:
    characters_inserted: int = 0
    chunks_total: int = 0
    chunks_committed: int = 0
    recovered_chunks: int = 0
    aborted: bool = False

    @property
    def complete(self) -> bool:
        return not self.aborted and self.chunks_committed == self.chunks_total


class InsertionDriver:
    """
    Sequential chunked writer over a TextInserter.

    Parameters
    ----------
    inserter:
        Collaborator performing a single insertion (GoogleDocsClient).
    chunk_words, wpm_range:
        Default to ``settings.TYPING_CHUNK_WORDS`` and
        ``(settings.TYPING_WPM_MIN, settings.TYPING_WPM_MAX)``.
    recovery_transforms:
        Applied in order to a rejected chunk, one attempt each.
    sleep, rng:
        Injectable for tests.
    """

    def __init__(
        self,
        inserter: TextInserter,
        *,
        chunk_words: Optional[int] = None,
        wpm_range: Optional[tuple] = None,
        recovery_transforms: Sequence[RecoveryTransform] = DEFAULT_RECOVERY_TRANSFORMS,
        sleep: SleepFn = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.inserter = inserter
        self.chunk_words = chunk_words if chunk_words is not None else settings.TYPING_CHUNK_WORDS
        if self.chunk_words < 1:
            raise ValueError("chunk_words must be >= 1")
        low, high = wpm_range or (settings.TYPING_WPM_MIN, settings.TYPING_WPM_MAX)
        if low <= 0 or high < low:
            raise ValueError("wpm_range must be positive and ordered (low, high)")
        self.wpm_range = (float(low), float(high))
        self.recovery_transforms = list(recovery_transforms)
        self._sleep = sleep
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def apply_answer(self, document_id: str, offset: int, text: str) -> int:
        """Insert *text* at *offset*; returns the characters actually committed."""
        result = await self.insert(document_id, offset, text)
        return result.characters_inserted

    async def insert(self, document_id: str, offset: int, text: str) -> InsertionResult:
        chunks = split_into_chunks(text, self.chunk_words)
        result = InsertionResult(chunks_total=len(chunks))
        if not chunks:
            return result

        wpm = self.sample_wpm()
        cursor = offset

        for i, chunk in enumerate(chunks):
            committed = await self._insert_chunk(document_id, cursor, chunk)
            if committed is None:
                result.aborted = True
                logger.error(
                    "Aborting answer in document %s after %d/%d chunk(s) "
                    "(%d char(s) committed)",
                    document_id,
                    result.chunks_committed,
                    result.chunks_total,
                    result.characters_inserted,
                )
                break

            if committed != chunk:
                result.recovered_chunks += 1
            result.chunks_committed += 1
            result.characters_inserted += len(committed)
            cursor += len(committed)

            if i < len(chunks) - 1:
                await self._sleep(self.chunk_delay(chunk, wpm))

        return result

    # ------------------------------------------------------------------
    # Pacing
    # ------------------------------------------------------------------

    def sample_wpm(self) -> float:
        low, high = self.wpm_range
        return self._rng.uniform(low, high)

    @staticmethod
    def chunk_delay(chunk: str, wpm: float) -> float:
        """Seconds to pause after *chunk*: proportional to its word count."""
        words = len(chunk.split())
        return (60.0 / wpm) * max(words, 1)

    # ------------------------------------------------------------------
    # Single chunk with recovery
    # ------------------------------------------------------------------

    async def _insert_chunk(self, document_id: str, offset: int, chunk: str) -> Optional[str]:
        """Return the text actually committed, or None when every attempt failed."""
        try:
            await self.inserter.insert_text(document_id, offset, chunk)
            return chunk
        except InsertionFailure as exc:
            logger.warning("Insert at %d failed: %s", offset, exc)

        for transform in self.recovery_transforms:
            candidate = transform(chunk)
            try:
                await self.inserter.insert_text(document_id, offset, candidate)
                logger.info(
                    "Recovered insert at %d using %s", offset, transform.__name__
                )
                return candidate
            except InsertionFailure as exc:
                logger.warning(
                    "Recovery %s at %d failed: %s", transform.__name__, offset, exc
                )
        return None
