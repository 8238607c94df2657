"""
Processed-document store used by the Drive poller.

Remembers which document ids have already been handled so a polling cycle
does not process the same document again.  The store is passed explicitly
to whoever needs it; it is in-memory only and optionally bounded, evicting
the oldest ids first.
"""
from __future__ import annotations

from collections import OrderedDict
from typing import Iterator, Optional


class ProcessedDocumentStore:
    def __init__(self, max_size: Optional[int] = None) -> None:
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self._ids: "OrderedDict[str, None]" = OrderedDict()

    def add(self, document_id: str) -> None:
        self._ids[document_id] = None
        self._ids.move_to_end(document_id)
        if self.max_size is not None:
            while len(self._ids) > self.max_size:
                self._ids.popitem(last=False)

    def discard(self, document_id: str) -> None:
        self._ids.pop(document_id, None)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)
