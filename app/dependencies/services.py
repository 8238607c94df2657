"""
Service dependencies for FastAPI routes.

Each provider returns a process-wide instance built from settings.  Tests
replace them through ``app.dependency_overrides``.
"""
from __future__ import annotations

from functools import lru_cache

from app.config import settings
from app.services.document_store import ProcessedDocumentStore
from app.services.google_docs import GoogleDocsClient
from app.services.llm_service import OpenAIChatService
from app.services.pipeline import DocumentAnswerPipeline
from app.services.poller import DrivePoller
from app.services.processing_manager import ProcessingManager, processing_manager


@lru_cache
def get_docs_client() -> GoogleDocsClient:
    return GoogleDocsClient()


@lru_cache
def get_llm_service() -> OpenAIChatService:
    return OpenAIChatService()


@lru_cache
def get_pipeline() -> DocumentAnswerPipeline:
    return DocumentAnswerPipeline(get_docs_client(), get_llm_service())


@lru_cache
def get_document_store() -> ProcessedDocumentStore:
    return ProcessedDocumentStore(max_size=settings.SEEN_DOCUMENTS_MAX)


@lru_cache
def get_poller() -> DrivePoller:
    return DrivePoller(
        get_docs_client(),
        get_pipeline(),
        get_document_store(),
        interval_seconds=settings.POLL_INTERVAL_SECONDS,
        page_size=settings.POLL_PAGE_SIZE,
    )


def get_processing_manager() -> ProcessingManager:
    return processing_manager
