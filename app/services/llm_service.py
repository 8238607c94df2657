"""
LLM service for question detection and answer generation.

Uses an OpenAI-compatible ``/chat/completions`` endpoint (OPENAI_BASE_URL).
Prompts are module-level constants so they can be tuned without touching
logic code.

Public API
----------
OpenAIChatService.detect_questions(document_text) -> List[str]   (raises DetectionError)
OpenAIChatService.generate_answer(question_text)  -> Optional[str]
OpenAIChatService.check_health()                  -> bool
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional

import httpx

from app.config import settings
from app.services.exceptions import DetectionError
from app.utils.helpers import truncate_text

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt templates - edit these to tune LLM output without touching logic
# ---------------------------------------------------------------------------

_DETECT_SYSTEM_PROMPT = (
    "You are an assistant that extracts all unique questions from the provided text."
)

_DETECT_PROMPT = """\
Extract all the unique questions from the following document text. \
Copy each question exactly as it appears in the text. \
Provide them as a JSON array of strings without any additional text.

{document_text}\
"""

_ANSWER_SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions from provided context."
)

_ANSWER_PROMPT = "Answer the following question: {question_text}"


class OpenAIChatService:
    """
    Chat-completions client via httpx.

    Limits concurrency to MAX_CONCURRENT simultaneous LLM calls.
    Replies are read with parse_json_array, which tolerates fences and prose.
    """

    MAX_CONCURRENT: int = 2

    DETECT_SYSTEM_PROMPT = _DETECT_SYSTEM_PROMPT
    DETECT_PROMPT = _DETECT_PROMPT
    ANSWER_SYSTEM_PROMPT = _ANSWER_SYSTEM_PROMPT
    ANSWER_PROMPT = _ANSWER_PROMPT

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.detect_model = settings.OPENAI_DETECT_MODEL
        self.answer_model = settings.OPENAI_ANSWER_MODEL
        self.timeout = httpx.Timeout(float(settings.OPENAI_TIMEOUT), connect=10.0)
        self._transport = transport
        self._semaphore = asyncio.Semaphore(self.MAX_CONCURRENT)

    # ------------------------------------------------------------------
    # Public methods
    # ------------------------------------------------------------------

    async def detect_questions(self, document_text: str) -> List[str]:
        """
        Ask the model for every question in *document_text*.

        Long documents are sent in line-aligned windows of at most
        MAX_DETECTION_CHARS and the answers are concatenated in document
        order.  Raises DetectionError when the model is unreachable or any
        reply is not a JSON array.  Non-string entries are dropped; order
        and duplicates are preserved for the locator to handle.
        """
        if not document_text.strip():
            return []

        windows = split_detection_windows(document_text, settings.MAX_DETECTION_CHARS)
        if len(windows) > 1:
            logger.info("detect_questions: document split into %d windows", len(windows))

        questions: List[str] = []
        for window in windows:
            if not window.strip():
                continue
            questions.extend(await self._detect_in_window(window))
        logger.info("detect_questions: %d candidate(s) from LLM", len(questions))
        return questions

    async def _detect_in_window(self, window: str) -> List[str]:
        response_text = await self._call_llm(
            model=self.detect_model,
            system_prompt=self.DETECT_SYSTEM_PROMPT,
            prompt=self.DETECT_PROMPT.format(document_text=window),
            max_tokens=settings.DETECT_MAX_TOKENS,
            temperature=0.0,
        )
        if not response_text:
            raise DetectionError("question detector returned no response")

        parsed = parse_json_array(response_text)
        if parsed is None:
            raise DetectionError(
                f"question detector returned unparseable output: {truncate_text(response_text)!r}"
            )
        return [q.strip() for q in parsed if isinstance(q, str) and q.strip()]

    async def generate_answer(self, question_text: str) -> Optional[str]:
        """Return the model's answer, or None when no answer could be generated."""
        response_text = await self._call_llm(
            model=self.answer_model,
            system_prompt=self.ANSWER_SYSTEM_PROMPT,
            prompt=self.ANSWER_PROMPT.format(question_text=question_text),
            max_tokens=settings.ANSWER_MAX_TOKENS,
        )
        answer = response_text.strip()
        return answer or None

    async def check_health(self) -> bool:
        """True if the models endpoint answers 200 with our API key."""
        try:
            async with self._client(timeout=10.0) as client:
                resp = await client.get(f"{self.base_url}/models", headers=self._headers())
            return resp.status_code == 200
        except httpx.HTTPError as exc:
            logger.warning("LLM health check failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Core LLM caller
    # ------------------------------------------------------------------

    def _client(self, timeout: Any = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout if timeout is not None else self.timeout,
            transport=self._transport,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def _call_llm(
        self,
        model: str,
        system_prompt: str,
        prompt: str,
        max_tokens: int = 1000,
        temperature: Optional[float] = None,
    ) -> str:
        """
        POST to /chat/completions and return the first choice's content.

        Uses semaphore to cap concurrent LLM calls.  Returns empty string
        on any error (timeout, connection failure, non-200 response).
        """
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            payload["temperature"] = temperature

        async with self._semaphore:
            try:
                async with self._client() as client:
                    resp = await client.post(
                        f"{self.base_url}/chat/completions",
                        json=payload,
                        headers=self._headers(),
                    )

                if resp.status_code != 200:
                    logger.error(
                        "_call_llm: API returned HTTP %d: %s",
                        resp.status_code,
                        resp.text[:300],
                    )
                    return ""

                choices = resp.json().get("choices") or []
                if not choices:
                    logger.error("_call_llm: response has no choices")
                    return ""
                content = (choices[0].get("message") or {}).get("content")
                return str(content or "")

            except httpx.TimeoutException:
                logger.error("_call_llm: request timed out after %s", self.timeout)
                return ""
            except httpx.HTTPError as exc:
                logger.error("_call_llm: transport error - %s", exc)
                return ""
            except ValueError as exc:
                logger.error("_call_llm: invalid JSON body - %s", exc)
                return ""


# ---------------------------------------------------------------------------
# Detection windows
# ---------------------------------------------------------------------------

def split_detection_windows(text: str, max_chars: int) -> List[str]:
    """
    Cut *text* into windows of at most *max_chars*, breaking only between
    lines so a question is never split across two windows.

    A single line longer than *max_chars* becomes a window of its own.
    ``"".join(windows) == text``.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be >= 1")

    windows: List[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        if current and len(current) + len(line) > max_chars:
            windows.append(current)
            current = ""
        current += line
    if current:
        windows.append(current)
    return windows


# ---------------------------------------------------------------------------
# Parsing model output
# ---------------------------------------------------------------------------

_CODE_FENCE_RE = re.compile(r"^```[A-Za-z]*\s*\n?|\n?```\s*$")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


def first_json_array(text: str) -> str:
    """The first balanced ``[...]`` in *text*; brackets inside strings are ignored."""
    start = text.find("[")
    if start == -1:
        return ""

    depth = 0
    in_string = escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return ""


def _payload_candidates(response: str) -> Iterator[str]:
    """Increasingly repaired readings of a model reply, most literal first."""
    text = response.strip()
    yield text

    unfenced = _CODE_FENCE_RE.sub("", text).strip()
    if unfenced != text:
        yield unfenced
    yield _TRAILING_COMMA_RE.sub(r"\1", unfenced)

    fragment = first_json_array(unfenced)
    if fragment:
        yield fragment
        yield _TRAILING_COMMA_RE.sub(r"\1", fragment)


def parse_json_array(response: str) -> Optional[List[Any]]:
    """
    Read a JSON array out of a chat reply.

    Models wrap arrays in markdown fences, add prose around them or leave
    trailing commas; each of these is tolerated.  Returns None when no
    reading yields a list.
    """
    if not response:
        return None
    for payload in _payload_candidates(response):
        try:
            value = json.loads(payload)
        except ValueError:
            continue
        if isinstance(value, list):
            return value

    logger.warning("parse_json_array: no JSON array in reply: %s", truncate_text(response, 400))
    return None
