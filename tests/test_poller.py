"""Tests for the processed-document store and the Drive poller."""
import pytest

from app.services.document_store import ProcessedDocumentStore
from app.services.exceptions import FetchFailure
from app.services.poller import DrivePoller
from tests.conftest import build_pipeline


# ---------------------------------------------------------------------------
# ProcessedDocumentStore
# ---------------------------------------------------------------------------

def test_store_membership_and_discard():
    store = ProcessedDocumentStore()
    store.add("a")
    store.add("a")
    assert "a" in store
    assert len(store) == 1
    store.discard("a")
    store.discard("never-added")
    assert "a" not in store


def test_bounded_store_evicts_oldest_first():
    store = ProcessedDocumentStore(max_size=2)
    for doc_id in ("a", "b", "c"):
        store.add(doc_id)
    assert list(store) == ["b", "c"]


def test_re_adding_refreshes_position():
    store = ProcessedDocumentStore(max_size=2)
    store.add("a")
    store.add("b")
    store.add("a")
    store.add("c")
    assert list(store) == ["a", "c"]


def test_store_size_must_be_positive():
    with pytest.raises(ValueError):
        ProcessedDocumentStore(max_size=0)


# ---------------------------------------------------------------------------
# DrivePoller
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_poll_processes_new_documents_once(fake_docs, poller):
    fake_docs.add("doc-1", ["What is 2+2?"])
    fake_docs.add("doc-2", ["Nothing to see"])

    first = await poller.run_once()
    second = await poller.run_once()

    assert first.listed == 2
    assert first.processed == ["doc-1", "doc-2"]
    assert second.processed == []
    assert second.skipped == 2
    assert fake_docs.docs["doc-1"].text == "What is 2+2?\nAnswer: 4\n\n"
    assert poller.runs == 2
    assert poller.last_result is second


@pytest.mark.asyncio
async def test_poll_remembers_rejected_documents(fake_docs, poller):
    fake_docs.add("doc-x", ["What is 2+2?"], approved=False)

    result = await poller.run_once()

    assert result.rejected == ["doc-x"]
    assert "doc-x" in poller.store
    assert fake_docs.fetches == []


@pytest.mark.asyncio
async def test_poll_retries_failed_documents(fake_docs, poller):
    fake_docs.approved.add("ghost")
    fake_docs.list_recent_documents = _listing(["ghost"])

    result = await poller.run_once()

    assert result.failed == ["ghost"]
    assert "ghost" not in poller.store


@pytest.mark.asyncio
async def test_poll_survives_listing_failure(fake_docs, poller):
    async def broken(page_size=25):
        raise FetchFailure("drive unavailable")

    fake_docs.list_recent_documents = broken

    result = await poller.run_once()

    assert result.listed == 0
    assert result.processed == []


@pytest.mark.asyncio
async def test_clear_each_run_reprocesses_documents(fake_docs, fake_llm):
    fake_docs.add("doc-1", ["What is 2+2?"])
    poller = DrivePoller(
        fake_docs,
        build_pipeline(fake_docs, fake_llm),
        ProcessedDocumentStore(),
        clear_each_run=True,
    )

    await poller.run_once()
    second = await poller.run_once()

    assert second.processed == ["doc-1"]
    # already answered, so nothing new was written
    assert len(fake_docs.inserts) == 1


def _listing(ids):
    async def list_recent_documents(page_size=25):
        return [{"id": doc_id} for doc_id in ids]
    return list_recent_documents


@pytest.mark.asyncio
async def test_poll_skips_busy_document_and_retries_it(fake_docs, fake_llm, poller):
    fake_docs.add("doc-1", ["What is 2+2?"])
    poller.pipeline._active.add("doc-1")

    busy = await poller.run_once()

    assert busy.busy == ["doc-1"]
    assert "doc-1" not in poller.store
    assert fake_docs.inserts == []

    poller.pipeline._active.discard("doc-1")
    retried = await poller.run_once()

    assert retried.processed == ["doc-1"]
    assert "doc-1" in poller.store
