"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime


# Processing Schemas
class InsertionRecordResponse(BaseModel):
    """One planned insertion and what happened to it."""

    question: str
    strategy: str
    original_offset: int
    actual_offset: Optional[int] = None
    characters_inserted: int = 0
    status: str

    model_config = ConfigDict(from_attributes=True)


class ProcessDocumentResponse(BaseModel):
    """Schema for a completed processing run."""

    document_id: str
    document_title: str = ""
    questions_detected: int = 0
    questions_located: int = 0
    already_answered: int = 0
    answers_inserted: int = 0
    questions_skipped: int = 0
    characters_inserted: int = 0
    insertions: List[InsertionRecordResponse] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    processing_time_seconds: float = 0.0
    message: str = ""

    model_config = ConfigDict(from_attributes=True)


class ProcessingStatusResponse(BaseModel):
    """Schema for background processing status."""

    document_id: str
    phase: str
    questions_total: int = 0
    questions_answered: int = 0
    current_question: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    elapsed_seconds: float = 0.0


# Webhook Schemas
class DocumentWebhookRequest(BaseModel):
    """Body of the document webhook: ``{"documentId": "..."}``."""

    document_id: Optional[str] = Field(None, alias="documentId")

    model_config = ConfigDict(populate_by_name=True)


class WebhookAcceptedResponse(BaseModel):
    document_id: Optional[str] = None
    accepted: bool
    message: str


class WatchChannelResponse(BaseModel):
    document_id: str
    channel_id: str
    resource_id: Optional[str] = None
    expiration: Optional[str] = None


# Poller Schemas
class PollRunResponse(BaseModel):
    listed: int = 0
    processed: List[str] = Field(default_factory=list)
    rejected: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    skipped: int = 0
    busy: List[str] = Field(default_factory=list)


class PollerStatusResponse(BaseModel):
    enabled: bool
    running: bool
    runs: int
    seen_documents: int
    interval_seconds: float
    last_result: Optional[PollRunResponse] = None


# Health Check Schema
class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    llm: str
    google: str
    timestamp: datetime
    version: str = "0.1.0"
