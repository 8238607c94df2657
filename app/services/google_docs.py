"""
Google Docs / Drive REST client.

Authenticates as a service account (google-auth JWT credentials) and calls
the Docs v1 and Drive v3 REST endpoints with httpx.

Provides:
- fetch_document         : documents.get → Document          (raises FetchFailure)
- is_owner_approved      : drive files.get owners → bool      (fails closed)
- insert_text            : documents.batchUpdate insertText   (raises InsertionFailure)
- list_recent_documents  : drive files.list for polling       (raises FetchFailure)
- watch_file             : drive files.watch push channel
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from app.config import settings
from app.models.document import Document
from app.services.exceptions import FetchFailure, InsertionFailure

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/documents",
    "https://www.googleapis.com/auth/drive",
]

DOCS_API_URL = "https://docs.googleapis.com/v1/documents"
DRIVE_API_URL = "https://www.googleapis.com/drive/v3/files"
GOOGLE_DOC_MIME_TYPE = "application/vnd.google-apps.document"

TokenProvider = Callable[[], Awaitable[str]]


def build_credentials() -> service_account.Credentials:
    """Service-account credentials from CLIENT_EMAIL / PRIVATE_KEY / TOKEN_URI."""
    if not settings.has_google_credentials():
        raise GoogleAuthError("CLIENT_EMAIL and PRIVATE_KEY must be configured")
    info = {
        "client_email": settings.CLIENT_EMAIL,
        "private_key": settings.get_private_key(),
        "token_uri": settings.TOKEN_URI,
    }
    return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)


class ServiceAccountTokenProvider:
    """Caches an access token and refreshes it off the event loop when expired."""

    def __init__(self, credentials: Optional[service_account.Credentials] = None) -> None:
        self._credentials = credentials
        self._lock = asyncio.Lock()

    async def __call__(self) -> str:
        async with self._lock:
            if self._credentials is None:
                self._credentials = build_credentials()
            if not self._credentials.valid:
                await asyncio.to_thread(self._credentials.refresh, GoogleAuthRequest())
            return self._credentials.token


class GoogleDocsClient:
    """Thin async wrapper over the Docs and Drive REST APIs."""

    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        approved_emails: Optional[Iterable[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._token_provider = token_provider or ServiceAccountTokenProvider()
        self.approved_emails = (
            {e.strip().lower() for e in approved_emails if e.strip()}
            if approved_emails is not None
            else settings.get_approved_emails()
        )
        self._transport = transport
        self.timeout = httpx.Timeout(float(timeout or settings.GOOGLE_API_TIMEOUT), connect=10.0)

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _headers(self) -> Dict[str, str]:
        token = await self._token_provider()
        return {"Authorization": f"Bearer {token}"}

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def fetch_document(self, document_id: str) -> Document:
        try:
            headers = await self._headers()
            async with self._client() as client:
                resp = await client.get(f"{DOCS_API_URL}/{document_id}", headers=headers)
        except (httpx.HTTPError, GoogleAuthError) as exc:
            logger.error("Failed to fetch document %s: %s", document_id, exc)
            raise FetchFailure(f"document request failed: {exc}", document_id) from exc

        if resp.status_code != 200:
            logger.error(
                "Failed to fetch document %s: HTTP %d %s",
                document_id,
                resp.status_code,
                resp.text[:300],
            )
            raise FetchFailure(
                f"document not found or not accessible (HTTP {resp.status_code})",
                document_id,
                status_code=resp.status_code,
            )

        return Document.from_api(resp.json())

    async def insert_text(self, document_id: str, offset: int, text: str) -> None:
        body = {
            "requests": [
                {"insertText": {"location": {"index": offset}, "text": text}}
            ]
        }
        try:
            headers = await self._headers()
            async with self._client() as client:
                resp = await client.post(
                    f"{DOCS_API_URL}/{document_id}:batchUpdate",
                    json=body,
                    headers=headers,
                )
        except (httpx.HTTPError, GoogleAuthError) as exc:
            raise InsertionFailure(
                f"insert request failed: {exc}", document_id, offset=offset
            ) from exc

        if resp.status_code != 200:
            raise InsertionFailure(
                f"insert rejected with HTTP {resp.status_code}: {resp.text[:200]}",
                document_id,
                offset=offset,
                status_code=resp.status_code,
            )

    # ------------------------------------------------------------------
    # Drive
    # ------------------------------------------------------------------

    async def get_owners(self, document_id: str) -> List[Dict[str, Any]]:
        headers = await self._headers()
        async with self._client() as client:
            resp = await client.get(
                f"{DRIVE_API_URL}/{document_id}",
                params={"fields": "owners(emailAddress, displayName)"},
                headers=headers,
            )
        resp.raise_for_status()
        return resp.json().get("owners") or []

    async def is_owner_approved(self, document_id: str) -> bool:
        """True if any owner's email is on the approved list; False on any error."""
        try:
            owners = await self.get_owners(document_id)
        except (httpx.HTTPError, GoogleAuthError, ValueError) as exc:
            logger.error("Error checking owner of document %s: %s", document_id, exc)
            return False

        emails = [str(o.get("emailAddress", "")) for o in owners]
        logger.info("Owners of document %s: %s", document_id, emails)

        approved = any(email.lower() in self.approved_emails for email in emails if email)
        if not approved:
            logger.warning(
                "Document %s has unapproved owners: %s",
                document_id,
                [f"{o.get('displayName', '')} <{o.get('emailAddress', '')}>" for o in owners],
            )
        return approved

    async def list_recent_documents(self, page_size: int = 25) -> List[Dict[str, Any]]:
        """Google Docs visible to the service account, most recently modified first."""
        params = {
            "q": f"mimeType='{GOOGLE_DOC_MIME_TYPE}' and trashed=false",
            "orderBy": "modifiedTime desc",
            "pageSize": page_size,
            "fields": "files(id, name, modifiedTime)",
        }
        try:
            headers = await self._headers()
            async with self._client() as client:
                resp = await client.get(DRIVE_API_URL, params=params, headers=headers)
            resp.raise_for_status()
        except (httpx.HTTPError, GoogleAuthError) as exc:
            raise FetchFailure(f"listing documents failed: {exc}") from exc
        return resp.json().get("files") or []

    async def watch_file(
        self,
        file_id: str,
        address: str,
        channel_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Register a Drive push-notification channel for *file_id*."""
        body = {
            "id": channel_id or f"doc-answerer-{uuid.uuid4().hex[:12]}-{int(time.time())}",
            "type": "web_hook",
            "address": address,
        }
        headers = await self._headers()
        async with self._client() as client:
            resp = await client.post(
                f"{DRIVE_API_URL}/{file_id}/watch", json=body, headers=headers
            )
        resp.raise_for_status()
        logger.info("Watch channel established for %s: %s", file_id, resp.json())
        return resp.json()
