"""
Text flattening: projects a structured Document onto a single string.

Each paragraph contributes its run text followed by one separator
character.  The separator belongs to no paragraph, so the resulting
IndexMap has a one-character gap after every entry.  Non-text blocks
contribute nothing and are invisible to question search.

Public API
----------
flatten(document) -> FlattenedText
IndexMap.resolve(char_index)        -> IndexEntry | None
IndexMap.resolve_span_end(end)      -> IndexEntry | None
"""
from __future__ import annotations

import bisect
import dataclasses
import logging
from typing import Iterator, List, Optional

from app.models.document import Document, Paragraph

logger = logging.getLogger(__name__)

PARAGRAPH_SEPARATOR = "\n"


# ---------------------------------------------------------------------------
# Index map
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class IndexEntry:
    """Flat-text span [start, end) contributed by one paragraph."""

    start: int
    end: int
    block: Paragraph

    @property
    def end_offset(self) -> int:
        return self.block.end_offset

    def __contains__(self, char_index: int) -> bool:
        return self.start <= char_index < self.end


class IndexMap:
    """Ordered, non-overlapping IndexEntry sequence with binary-search lookup."""

    def __init__(self, entries: Optional[List[IndexEntry]] = None) -> None:
        self._entries: List[IndexEntry] = list(entries or [])
        self._starts: List[int] = [e.start for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[IndexEntry]:
        return iter(self._entries)

    def __getitem__(self, i: int) -> IndexEntry:
        return self._entries[i]

    def append(self, entry: IndexEntry) -> None:
        if self._entries and entry.start < self._entries[-1].end:
            raise ValueError(
                f"IndexEntry at {entry.start} overlaps previous entry ending at "
                f"{self._entries[-1].end}"
            )
        self._entries.append(entry)
        self._starts.append(entry.start)

    def _position(self, char_index: int) -> int:
        """Index of the last entry starting at or before *char_index* (-1 if none)."""
        return bisect.bisect_right(self._starts, char_index) - 1

    def resolve(self, char_index: int) -> Optional[IndexEntry]:
        """Return the entry owning *char_index*, or None for separator gaps."""
        if char_index < 0:
            return None
        pos = self._position(char_index)
        if pos < 0:
            return None
        entry = self._entries[pos]
        return entry if char_index in entry else None

    def resolve_span_end(self, end: int) -> Optional[IndexEntry]:
        """
        Resolve the exclusive end of a matched span.

        The last matched character is ``end - 1``.  When that character is a
        separator, the span ended exactly at a paragraph boundary and the
        preceding paragraph owns it.
        """
        if end <= 0:
            return None
        pos = self._position(end - 1)
        if pos < 0:
            return None
        return self._entries[pos]


@dataclasses.dataclass
class FlattenedText:
    text: str
    index_map: IndexMap

    def paragraph_texts(self) -> List[str]:
        """Flat text of each indexed paragraph, in document order."""
        return [self.text[e.start:e.end] for e in self.index_map]


# ---------------------------------------------------------------------------
# Flattening
# ---------------------------------------------------------------------------

def flatten(document: Document, separator: str = PARAGRAPH_SEPARATOR) -> FlattenedText:
    """
    Concatenate all paragraph text of *document* into one string.

    Returns the flat text and an IndexMap whose entries cover every
    non-separator character exactly once.
    """
    parts: List[str] = []
    index_map = IndexMap()
    cursor = 0

    for block in document.blocks:
        if not isinstance(block, Paragraph):
            continue

        text = block.text
        parts.append(text)
        index_map.append(IndexEntry(start=cursor, end=cursor + len(text), block=block))
        cursor += len(text)

        parts.append(separator)
        cursor += len(separator)

    flat = "".join(parts)
    logger.debug(
        "flatten: %d paragraph(s), %d character(s) for document %s",
        len(index_map),
        len(flat),
        document.document_id,
    )
    return FlattenedText(text=flat, index_map=index_map)
