"""
In-memory document model.

A Document is an ordered list of blocks.  Paragraph blocks carry text runs;
everything else (tables, section breaks, tables of contents) is kept as an
OpaqueBlock so that block adjacency and structural offsets stay faithful to
the source document, but its content is never searched.

Every block records its structural end offset: the position in the
document's native index space immediately after the block.
"""
from __future__ import annotations

import dataclasses
import enum
from typing import Any, Dict, List, Optional, Union


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class Paragraph:
    runs: List[str]
    end_offset: int
    start_offset: int = 0

    @property
    def text(self) -> str:
        return "".join(self.runs)


@dataclasses.dataclass
class OpaqueBlock:
    kind: str
    end_offset: int
    start_offset: int = 0


Block = Union[Paragraph, OpaqueBlock]


@dataclasses.dataclass
class Document:
    document_id: str
    blocks: List[Block] = dataclasses.field(default_factory=list)
    title: str = ""

    @property
    def paragraphs(self) -> List[Paragraph]:
        return [b for b in self.blocks if isinstance(b, Paragraph)]

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Document":
        """
        Build a Document from a Google Docs v1 ``documents.get`` payload.

        Paragraph elements other than text runs (inline images, page breaks,
        footnote references) are ignored; they do not contribute text.
        """
        blocks: List[Block] = []
        content = (payload.get("body") or {}).get("content") or []

        for element in content:
            start = int(element.get("startIndex", 0) or 0)
            end = int(element.get("endIndex", 0) or 0)

            paragraph = element.get("paragraph")
            if paragraph is not None:
                runs = [
                    el["textRun"]["content"]
                    for el in paragraph.get("elements") or []
                    if el.get("textRun") and el["textRun"].get("content")
                ]
                blocks.append(Paragraph(runs=runs, end_offset=end, start_offset=start))
                continue

            kind = next(
                (k for k in element if k not in ("startIndex", "endIndex")),
                "unknown",
            )
            blocks.append(OpaqueBlock(kind=kind, end_offset=end, start_offset=start))

        return cls(
            document_id=str(payload.get("documentId", "")),
            blocks=blocks,
            title=str(payload.get("title", "")),
        )


# ---------------------------------------------------------------------------
# Questions and insertion plans
# ---------------------------------------------------------------------------

class MatchStrategy(str, enum.Enum):
    LITERAL = "literal"
    FUZZY = "fuzzy"


@dataclasses.dataclass
class Question:
    text: str
    insertion_offset: Optional[int] = None
    answered: bool = False
    # Position of the candidate in the detector's output
    order: int = 0
    strategy: MatchStrategy = MatchStrategy.LITERAL
    similarity: float = 1.0
    # Flat-text position of the match (None for fuzzy matches)
    match_start: Optional[int] = None

    @property
    def is_located(self) -> bool:
        return self.insertion_offset is not None


class InsertionStatus(str, enum.Enum):
    PENDING = "pending"
    INSERTED = "inserted"
    SKIPPED = "skipped"
    INVALID_OFFSET = "invalid_offset"


@dataclasses.dataclass
class PlannedInsertion:
    question: Question
    actual_offset: Optional[int] = None
    characters_inserted: int = 0
    status: InsertionStatus = InsertionStatus.PENDING

    @property
    def original_offset(self) -> int:
        return self.question.insertion_offset or 0


@dataclasses.dataclass
class InsertionPlan:
    entries: List[PlannedInsertion] = dataclasses.field(default_factory=list)
    cumulative_offset: int = 0

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def applied(self) -> List[PlannedInsertion]:
        return [e for e in self.entries if e.status == InsertionStatus.INSERTED]
