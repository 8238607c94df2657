"""
Shared fixtures for the document answering service tests.

FakeGoogleDoc keeps a document body as one string and rebuilds the Google
Docs ``documents.get`` JSON from it, using the same index space as the real
API: a section break occupies index 0, the first paragraph starts at 1 and
every paragraph ends with "\\n".  Insertions really shift the text, so
offset bugs show up as misplaced answers.
"""
from __future__ import annotations

import asyncio
import os
from typing import AsyncGenerator, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# The background poller must never start inside the test process.
os.environ["POLL_ENABLED"] = "false"

from app.dependencies.services import (  # noqa: E402
    get_docs_client,
    get_llm_service,
    get_pipeline,
    get_poller,
    get_processing_manager,
)
from app.main import app  # noqa: E402
from app.models.document import Document  # noqa: E402
from app.services.document_store import ProcessedDocumentStore  # noqa: E402
from app.services.exceptions import DetectionError, FetchFailure, InsertionFailure  # noqa: E402
from app.services.insertion_driver import InsertionDriver  # noqa: E402
from app.services.pipeline import DocumentAnswerPipeline  # noqa: E402
from app.services.poller import DrivePoller  # noqa: E402
from app.services.processing_manager import ProcessingManager  # noqa: E402
from app.services.question_detector import QuestionDetector  # noqa: E402
from app.services.question_locator import QuestionLocator  # noqa: E402


# ---------------------------------------------------------------------------
# In-memory Google Doc
# ---------------------------------------------------------------------------

class FakeGoogleDoc:
    def __init__(self, document_id: str, paragraphs: List[str], title: str = "Test Doc") -> None:
        self.document_id = document_id
        self.title = title
        self.text = "".join(p + "\n" for p in paragraphs)

    @property
    def paragraphs(self) -> List[str]:
        return self.text.split("\n")[:-1]

    def insert(self, index: int, text: str) -> None:
        if index < 1 or index > len(self.text):
            raise InsertionFailure(
                f"index {index} out of range", self.document_id, offset=index, status_code=400
            )
        self.text = self.text[: index - 1] + text + self.text[index - 1:]

    def to_api(self) -> Dict:
        content = [{"endIndex": 1, "sectionBreak": {"sectionStyle": {}}}]
        cursor = 1
        for line in self.paragraphs:
            run = line + "\n"
            content.append({
                "startIndex": cursor,
                "endIndex": cursor + len(run),
                "paragraph": {
                    "elements": [{
                        "startIndex": cursor,
                        "endIndex": cursor + len(run),
                        "textRun": {"content": run, "textStyle": {}},
                    }],
                },
            })
            cursor += len(run)
        return {"documentId": self.document_id, "title": self.title, "body": {"content": content}}


def make_document(paragraphs: List[str], document_id: str = "doc-1") -> Document:
    """Document snapshot with Google Docs offsets for the given paragraphs."""
    return Document.from_api(FakeGoogleDoc(document_id, paragraphs).to_api())


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeDocsClient:
    def __init__(self, approved: Optional[set] = None) -> None:
        self.docs: Dict[str, FakeGoogleDoc] = {}
        self.approved = approved if approved is not None else set()
        self.inserts: List[tuple] = []
        self.fetches: List[str] = []
        # Return True to reject an insert: (document_id, offset, text) -> bool
        self.reject: Optional[Callable[[str, int, str], bool]] = None

    def add(self, document_id: str, paragraphs: List[str], approved: bool = True) -> FakeGoogleDoc:
        doc = FakeGoogleDoc(document_id, paragraphs)
        self.docs[document_id] = doc
        if approved:
            self.approved.add(document_id)
        return doc

    async def is_owner_approved(self, document_id: str) -> bool:
        return document_id in self.approved

    async def fetch_document(self, document_id: str) -> Document:
        self.fetches.append(document_id)
        if document_id not in self.docs:
            raise FetchFailure("document not found", document_id, status_code=404)
        return Document.from_api(self.docs[document_id].to_api())

    async def insert_text(self, document_id: str, offset: int, text: str) -> None:
        if self.reject is not None and self.reject(document_id, offset, text):
            raise InsertionFailure("rejected", document_id, offset=offset, status_code=400)
        self.docs[document_id].insert(offset, text)
        self.inserts.append((document_id, offset, text))

    async def list_recent_documents(self, page_size: int = 25) -> List[Dict]:
        return [{"id": doc_id, "name": doc.title} for doc_id, doc in self.docs.items()][:page_size]


class FakeLLM:
    """Answers from a dict; detects questions with the line heuristic unless told otherwise."""

    def __init__(self, answers: Optional[Dict[str, str]] = None) -> None:
        self.answers = answers or {}
        self.detected: Optional[List] = None
        self.detect_error = False
        self.asked: List[str] = []
        self.healthy = True

    async def detect_questions(self, document_text: str) -> List:
        if self.detect_error:
            raise DetectionError("detector unreachable")
        if self.detected is not None:
            return list(self.detected)
        return [line.strip() for line in document_text.splitlines() if line.strip().endswith("?")]

    async def generate_answer(self, question_text: str) -> Optional[str]:
        self.asked.append(question_text)
        return self.answers.get(question_text)

    async def check_health(self) -> bool:
        return self.healthy


class GatedLLM(FakeLLM):
    """FakeLLM whose answers wait until ``release`` is set; ``started`` is set on the first request."""

    def __init__(self, answers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(answers)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def generate_answer(self, question_text: str) -> Optional[str]:
        self.started.set()
        await self.release.wait()
        return await super().generate_answer(question_text)


async def no_sleep(_seconds: float) -> None:
    return None


def build_pipeline(docs: FakeDocsClient, llm: FakeLLM, **kwargs) -> DocumentAnswerPipeline:
    return DocumentAnswerPipeline(
        docs,
        llm,
        detector=QuestionDetector(llm=llm, strategy="llm"),
        locator=QuestionLocator(similarity_threshold=0.8),
        driver=InsertionDriver(docs, chunk_words=5, wpm_range=(100, 120), sleep=no_sleep),
        answer_marker="Answer:",
        question_pause_seconds=0,
        sleep=no_sleep,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_docs() -> FakeDocsClient:
    return FakeDocsClient()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM(answers={
        "What is 2+2?": "4",
        "What is 3+3?": "6",
        "What colour is the sky?": "Blue on a clear day.",
    })


@pytest.fixture
def pipeline(fake_docs: FakeDocsClient, fake_llm: FakeLLM) -> DocumentAnswerPipeline:
    return build_pipeline(fake_docs, fake_llm)


@pytest.fixture
def manager() -> ProcessingManager:
    return ProcessingManager()


@pytest.fixture
def poller(fake_docs: FakeDocsClient, pipeline: DocumentAnswerPipeline) -> DrivePoller:
    return DrivePoller(fake_docs, pipeline, ProcessedDocumentStore(max_size=10))


@pytest_asyncio.fixture
async def client(
    fake_docs: FakeDocsClient,
    fake_llm: FakeLLM,
    pipeline: DocumentAnswerPipeline,
    manager: ProcessingManager,
    poller: DrivePoller,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with every service
    dependency overridden by the in-memory fakes.
    """
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_docs_client] = lambda: fake_docs
    app.dependency_overrides[get_llm_service] = lambda: fake_llm
    app.dependency_overrides[get_processing_manager] = lambda: manager
    app.dependency_overrides[get_poller] = lambda: poller

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
