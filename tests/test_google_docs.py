"""Tests for the Google Docs / Drive REST client, using httpx.MockTransport."""
import json

import httpx
import pytest

from app.models.document import Paragraph
from app.services.exceptions import FetchFailure, InsertionFailure
from app.services.google_docs import GoogleDocsClient
from tests.conftest import FakeGoogleDoc


async def _token() -> str:
    return "test-token"


def _client(handler, approved=("owner@example.com",)) -> GoogleDocsClient:
    return GoogleDocsClient(
        token_provider=_token,
        approved_emails=approved,
        transport=httpx.MockTransport(handler),
    )


def _owners(*emails):
    return {"owners": [{"emailAddress": e, "displayName": e.split("@")[0]} for e in emails]}


# ---------------------------------------------------------------------------
# fetch_document
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_fetch_document_builds_document():
    payload = FakeGoogleDoc("doc-1", ["What is 2+2?", "Notes"], title="Maths").to_api()

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/documents/doc-1"
        assert request.headers["Authorization"] == "Bearer test-token"
        return httpx.Response(200, json=payload)

    doc = await _client(handler).fetch_document("doc-1")

    assert doc.document_id == "doc-1"
    assert doc.title == "Maths"
    assert isinstance(doc.blocks[1], Paragraph)
    assert [p.end_offset for p in doc.paragraphs] == [14, 20]


@pytest.mark.asyncio
async def test_fetch_document_missing_raises_fetch_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"message": "not found"}})

    with pytest.raises(FetchFailure) as exc_info:
        await _client(handler).fetch_document("missing")
    assert exc_info.value.status_code == 404
    assert exc_info.value.document_id == "missing"


@pytest.mark.asyncio
async def test_fetch_document_transport_error_raises_fetch_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(FetchFailure):
        await _client(handler).fetch_document("doc-1")


# ---------------------------------------------------------------------------
# insert_text
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_insert_text_sends_batch_update():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"replies": [{}]})

    await _client(handler).insert_text("doc-1", 13, "\nAnswer: 4\n")

    assert seen["path"] == "/v1/documents/doc-1:batchUpdate"
    assert seen["body"] == {
        "requests": [{"insertText": {"location": {"index": 13}, "text": "\nAnswer: 4\n"}}]
    }


@pytest.mark.asyncio
async def test_insert_text_rejected_raises_insertion_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "Index 99 must be less than 20"}})

    with pytest.raises(InsertionFailure) as exc_info:
        await _client(handler).insert_text("doc-1", 99, "x")
    assert exc_info.value.offset == 99
    assert exc_info.value.status_code == 400


# ---------------------------------------------------------------------------
# Owner approval
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_owner_on_list_is_approved_case_insensitively():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/drive/v3/files/doc-1"
        return httpx.Response(200, json=_owners("Owner@Example.com"))

    assert await _client(handler).is_owner_approved("doc-1") is True


@pytest.mark.asyncio
async def test_any_approved_owner_is_enough():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_owners("stranger@example.org", "owner@example.com"))

    assert await _client(handler).is_owner_approved("doc-1") is True


@pytest.mark.asyncio
async def test_unknown_owner_is_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_owners("stranger@example.org"))

    assert await _client(handler).is_owner_approved("doc-1") is False


@pytest.mark.asyncio
async def test_owner_lookup_failure_fails_closed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"message": "forbidden"}})

    assert await _client(handler).is_owner_approved("doc-1") is False


@pytest.mark.asyncio
async def test_empty_allowlist_rejects_everyone():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_owners("owner@example.com"))

    assert await _client(handler, approved=()).is_owner_approved("doc-1") is False


# ---------------------------------------------------------------------------
# Drive listing and watch channels
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_recent_documents_queries_google_docs_only():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"files": [{"id": "a"}, {"id": "b"}]})

    files = await _client(handler).list_recent_documents(page_size=2)

    assert [f["id"] for f in files] == ["a", "b"]
    assert "application/vnd.google-apps.document" in seen["params"]["q"]
    assert seen["params"]["pageSize"] == "2"
    assert seen["params"]["orderBy"] == "modifiedTime desc"


@pytest.mark.asyncio
async def test_list_recent_documents_failure_raises_fetch_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    with pytest.raises(FetchFailure):
        await _client(handler).list_recent_documents()


@pytest.mark.asyncio
async def test_watch_file_registers_web_hook_channel():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": seen["body"]["id"], "resourceId": "r-1"})

    channel = await _client(handler).watch_file(
        "doc-1", "https://hooks.test/api/webhooks/drive", channel_id="chan-1"
    )

    assert seen["path"] == "/drive/v3/files/doc-1/watch"
    assert seen["body"] == {
        "id": "chan-1",
        "type": "web_hook",
        "address": "https://hooks.test/api/webhooks/drive",
    }
    assert channel["resourceId"] == "r-1"
