"""
Client for the language generation capability.

Talks to any OpenAI-compatible ``/chat/completions`` endpoint over httpx.
Every call is bounded by a timeout; transport failures, HTTP errors,
timeouts and non-JSON output all surface as ``UpstreamGenerationError`` so
callers have exactly one exception to turn into fallback content.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Protocol

import httpx
from loguru import logger

from config import get_settings
from cloop_tutor.tutoring.errors import UpstreamGenerationError

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?|```")


class Generator(Protocol):
    """What the tutoring components need from the generation capability."""

    async def complete_json(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 800,
    ) -> dict[str, Any]: ...

    async def complete_text(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 200,
    ) -> str: ...


def strip_code_fences(content: str) -> str:
    """Remove markdown code fences some models wrap around JSON."""
    return _CODE_FENCE.sub("", content).strip()


class GenerationClient:
    """HTTP client for an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str | None = None,
        timeout_seconds: float | None = None,
        retry_attempts: int | None = None,
        backoff_base_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the generation client.

        Args:
            api_key: Bearer token for the API (settings.llm_api_key if omitted)
            base_url: API base URL, e.g. https://api.openai.com/v1
            default_model: Model used when a call does not name one
            timeout_seconds: Upper bound for one completion call
            retry_attempts: Attempts per call; retries only on timeouts and 5xx
            backoff_base_seconds: First retry delay, doubled per attempt
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.llm_api_key
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.default_model = default_model or settings.llm_evaluation_model
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds
        self.retry_attempts = max(1, retry_attempts or settings.llm_retry_attempts)
        self.backoff_base_seconds = backoff_base_seconds

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=transport,
        )

    async def __aenter__(self) -> GenerationClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    # =========================================================================
    # Public API
    # =========================================================================

    async def complete_json(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 800,
    ) -> dict[str, Any]:
        """Run a JSON-mode completion and return the decoded object."""
        content = await self._chat(
            prompt,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
        )
        try:
            data = json.loads(strip_code_fences(content))
        except json.JSONDecodeError as e:
            raise UpstreamGenerationError(f"Generation returned non-JSON content: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamGenerationError(
                f"Generation returned {type(data).__name__}, expected a JSON object"
            )
        return data

    async def complete_text(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 200,
    ) -> str:
        """Run a plain-text completion."""
        content = await self._chat(
            prompt,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=False,
        )
        return content.strip()

    # =========================================================================
    # Transport
    # =========================================================================

    async def _chat(
        self,
        prompt: str,
        *,
        model: str | None,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> str:
        payload: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": [{"role": "system", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = await asyncio.wait_for(
                    self.client.post("/chat/completions", json=payload),
                    timeout=self.timeout_seconds,
                )
                response.raise_for_status()
                return self._extract_content(response.json())

            except (httpx.TimeoutException, asyncio.TimeoutError) as e:
                last_error = e
                logger.warning(
                    "Generation timeout on attempt {}/{} (model={})",
                    attempt + 1,
                    self.retry_attempts,
                    payload["model"],
                )

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code < 500:
                    # Don't retry on 4xx client errors
                    raise UpstreamGenerationError(
                        f"Generation request rejected: HTTP {e.response.status_code}"
                    ) from e
                logger.warning(
                    "Generation server error {} on attempt {}/{}",
                    e.response.status_code,
                    attempt + 1,
                    self.retry_attempts,
                )

            except httpx.HTTPError as e:
                raise UpstreamGenerationError(f"Generation transport error: {e}") from e

            except ValueError as e:
                # response.json() on a non-JSON body
                raise UpstreamGenerationError(f"Malformed completion response: {e}") from e

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(self.backoff_base_seconds * (2**attempt))

        raise UpstreamGenerationError(
            f"Generation failed after {self.retry_attempts} attempt(s)"
        ) from last_error

    @staticmethod
    def _extract_content(data: Any) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamGenerationError("Completion response has no message content") from e
        if not isinstance(content, str):
            raise UpstreamGenerationError("Completion message content is not text")
        return content
