"""Document and schema models."""
from app.models.document import (
    Document,
    Paragraph,
    OpaqueBlock,
    Question,
    MatchStrategy,
    PlannedInsertion,
    InsertionPlan,
    InsertionStatus,
)
from app.models.schemas import (
    ProcessDocumentResponse,
    ProcessingStatusResponse,
    DocumentWebhookRequest,
    WebhookAcceptedResponse,
    HealthCheckResponse,
)

__all__ = [
    # Document model
    "Document",
    "Paragraph",
    "OpaqueBlock",
    "Question",
    "MatchStrategy",
    "PlannedInsertion",
    "InsertionPlan",
    "InsertionStatus",
    # Pydantic schemas
    "ProcessDocumentResponse",
    "ProcessingStatusResponse",
    "DocumentWebhookRequest",
    "WebhookAcceptedResponse",
    "HealthCheckResponse",
]
