"""LLM client — HTTP connection to a language-model backend.

The collaborators are given an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str, system: str = "") -> str: ...

`stage` identifies which step is calling ("character", "timeline",
"objective"). Implementations may use it for logging; the HTTP client does.

Failures are split in two, because the turn orchestrator treats them
differently:

    LLMConnectionError — the request never completed (connect error, timeout).
                         The player's spent message is refunded.
    LLMError           — the backend answered, but with an HTTP error or a
                         body we cannot read. The spent message is kept.

Production code constructs an HttpLLM from config and hands it to
LLMCollaborator. Tests use stub collaborators instead.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol — every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str, system: str = "") -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["openai", "koboldcpp"]


class HttpLLM:
    """Async HTTP client for language-model backends.

    Supported formats:
      "openai"     — POST /v1/chat/completions
                     {"model": ..., "messages": [...], "response_format": {"type": "json_object"}}
                     Response: {"choices": [{"message": {"content": "..."}}]}
      "koboldcpp"  — POST /api/v1/generate  {"prompt": ...}
                     The system prompt is prepended to the prompt.
                     Response: {"results": [{"text": "..."}]}

    Args:
        provider_url:    Base URL of the backend, e.g. "https://api.openai.com".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "openai".
        model:           Model identifier, used only by the openai format.
        temperature:     Sampling temperature, openai format only.
        timeout:         HTTP timeout in seconds. Defaults to 60.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "",
        temperature: float = 0.8,
        timeout: float = 60.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._temperature = temperature
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, prompt: str, system: str) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "koboldcpp":
            url = f"{self._base_url}/api/v1/generate"
            text = f"{system}\n\n{prompt}" if system else prompt
            return url, {"prompt": text}

        # openai (default)
        url = f"{self._base_url}/v1/chat/completions"
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        body: dict = {
            "messages": messages,
            "temperature": self._temperature,
            "response_format": {"type": "json_object"},
        }
        if self._model:
            body["model"] = self._model
        return url, body

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if self._format == "koboldcpp":
            results = data.get("results")
            if not results or "text" not in results[0]:
                raise LLMError("Unexpected response format from KoboldCpp backend")
            return results[0]["text"]

        choices = data.get("choices")
        if not choices:
            raise LLMError("Unexpected response format from OpenAI-compatible backend")
        content = (choices[0].get("message") or {}).get("content")
        if not content:
            raise LLMError("Empty completion from OpenAI-compatible backend")
        return content

    async def __call__(self, stage: str, prompt: str, system: str = "") -> str:
        url, body = self._build_request(prompt, system)
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMConnectionError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.TimeoutException as e:
            raise LLMConnectionError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TransportError as e:
            raise LLMConnectionError(f"Network error talking to LLM backend: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e
        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend returns an error or an unreadable response."""


class LLMConnectionError(LLMError):
    """Raised when the request to the LLM backend never completed."""
