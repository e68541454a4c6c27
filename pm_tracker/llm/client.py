"""
Async client for the Anthropic Messages API.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Optional

import anthropic
import httpx

from pm_tracker.core.config import LLMSettings
from pm_tracker.core.exceptions import ConfigurationError, LLMError, MalformedResponseError, TimeoutError
from pm_tracker.core.logging import get_logger

logger = get_logger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")
_BARE_ARRAY = re.compile(r"\[[\s\S]*\]")


@dataclass
class LLMResponse:
    """Text completion plus token accounting."""

    text: str
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def extract_json(text: str, collaborator: str = "LLM") -> Any:
    """
    Pull a JSON document out of model output.

    Prefers a fenced ```json block, then whichever outermost object or
    array starts first, then the raw text.

    Raises:
        MalformedResponseError: if nothing parses
    """
    match = _FENCED_JSON.search(text)
    if match:
        candidate = match.group(1).strip()
    else:
        found = [m for m in (_BARE_OBJECT.search(text), _BARE_ARRAY.search(text)) if m]
        if found:
            candidate = min(found, key=lambda m: m.start()).group(0)
        else:
            candidate = text.strip()

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug("Unparsable model output", preview=text[:500])
        raise MalformedResponseError(collaborator, f"invalid JSON ({e.msg})") from e


def read_message(message: Any, default_model: str = "") -> LLMResponse:
    """
    Flatten a Messages API reply into an ``LLMResponse``.

    Only ``text`` blocks contribute to the text. Missing usage counts as
    zero tokens.

    Raises:
        LLMError: if the reply does not carry a list of typed content blocks
    """
    content = getattr(message, "content", None)
    if not isinstance(content, list):
        raise LLMError(
            "Response has no content blocks",
            details={"content_type": type(content).__name__},
        )

    parts: list[str] = []
    for position, block in enumerate(content):
        block_type = getattr(block, "type", None)
        if not isinstance(block_type, str):
            raise LLMError("Content block has no type", details={"block": position})
        if block_type != "text":
            continue
        text = getattr(block, "text", None)
        if not isinstance(text, str):
            raise LLMError("Text block has no text", details={"block": position})
        parts.append(text)

    usage = getattr(message, "usage", None)
    return LLMResponse(
        text="".join(parts),
        model=getattr(message, "model", None) or default_model,
        input_tokens=getattr(usage, "input_tokens", None) or 0,
        output_tokens=getattr(usage, "output_tokens", None) or 0,
        stop_reason=getattr(message, "stop_reason", None),
    )


class LLMClient:
    """
    Thin wrapper around ``AsyncAnthropic.messages.create``.

    One request per call: the SDK's own retries are switched off, so the
    caller decides whether to fall back or surface the error.
    """

    def __init__(self, config: LLMSettings, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._http_client = http_client
        self._client: Optional[anthropic.AsyncAnthropic] = None

    async def _get_client(self) -> anthropic.AsyncAnthropic:
        """Get or create the SDK client."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                max_retries=0,
                default_headers={"anthropic-version": self.config.api_version},
                http_client=self._http_client,
            )
        return self._client

    async def close(self) -> None:
        """Close the SDK client."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def complete(
        self,
        system: str,
        prompt: str,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Send a single-turn request and return the concatenated text blocks.

        Raises:
            ConfigurationError: if no API key is configured
            TimeoutError: if the provider does not answer in time
            LLMError: on HTTP or transport failures, or a reply that is not a message
        """
        if not self.config.api_key:
            raise ConfigurationError("LLM_API_KEY is not set")

        client = await self._get_client()

        try:
            message = await client.messages.create(
                model=self.config.model,
                max_tokens=max_tokens or self.config.max_tokens,
                temperature=self.config.temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )

        except anthropic.APITimeoutError as e:
            logger.error("LLM request timed out", timeout=self.config.timeout)
            raise TimeoutError("llm_completion", self.config.timeout) from e

        except anthropic.APIStatusError as e:
            logger.error(
                "LLM request failed",
                status_code=e.status_code,
                error=e.message[:500],
            )
            raise LLMError(
                f"HTTP {e.status_code}",
                details={"status_code": e.status_code},
            ) from e

        except anthropic.APIConnectionError as e:
            logger.error("LLM request error", error=str(e))
            raise LLMError(f"Request failed: {e}") from e

        except anthropic.APIError as e:
            logger.error("LLM response rejected", error=str(e))
            raise LLMError(f"Unusable response: {e}") from e

        result = read_message(message, default_model=self.config.model)

        logger.debug(
            "LLM completion received",
            model=result.model,
            total_tokens=result.total_tokens,
            stop_reason=result.stop_reason,
        )
        return result

    async def complete_json(
        self,
        system: str,
        prompt: str,
        collaborator: str = "LLM",
        max_tokens: Optional[int] = None,
    ) -> tuple[Any, LLMResponse]:
        """Complete and parse the answer as JSON."""
        response = await self.complete(system, prompt, max_tokens=max_tokens)
        return extract_json(response.text, collaborator), response

    async def __aenter__(self) -> "LLMClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
