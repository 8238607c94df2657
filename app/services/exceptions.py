"""
Domain errors raised while processing a document.

Document-level errors (AccessDenied, FetchFailure, DocumentBusy) abort a
request before anything is written.  Question-level errors
(DetectionError, LocationFailure, InsertionFailure) are handled inside the
pipeline and only show up in logs and the processing summary.
"""
from __future__ import annotations

from typing import Optional


class DocumentProcessingError(Exception):
    """Base class for all processing errors."""

    def __init__(self, message: str, document_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.document_id = document_id

    def __str__(self) -> str:
        if self.document_id:
            return f"{self.message} (document={self.document_id})"
        return self.message


class DetectionError(DocumentProcessingError):
    """The question detector was unreachable or returned unparseable output."""


class LocationFailure(DocumentProcessingError):
    """A candidate question could not be matched anywhere in the document."""


class InsertionFailure(DocumentProcessingError):
    """A single text insertion was rejected by the document API."""

    def __init__(
        self,
        message: str,
        document_id: Optional[str] = None,
        offset: Optional[int] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, document_id)
        self.offset = offset
        self.status_code = status_code


class AccessDenied(DocumentProcessingError):
    """The document owner is not on the approved list."""


class FetchFailure(DocumentProcessingError):
    """The document does not exist or is not readable by the service account."""

    def __init__(
        self,
        message: str,
        document_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, document_id)
        self.status_code = status_code


class DocumentBusy(DocumentProcessingError):
    """Another run is already answering questions in this document."""
