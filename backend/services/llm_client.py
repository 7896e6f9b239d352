"""
LLM Clients - reasoning model (Anthropic Messages API) and fast classifier.

ReasoningClient speaks the Messages API directly over httpx:
    request:  {system, messages, tools?, tool_choice?}
    response: {"content": [{"type": "text"|"tool_use", ...}], "stop_reason": ...}

FastClassifierClient wraps the OpenAI SDK pointed at an OpenAI-compatible
low-latency endpoint and returns the raw short label.

Failures:
- Non-2xx from the reasoning model -> LLMError(status_code, body_text)
- Transport errors and 429/5xx overload replies are retried with
  exponential backoff before giving up
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from openai import AsyncOpenAI

from errors import LLMError
from logging_config import log_llm

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 529}


def is_retryable_error(error: Exception) -> bool:
    """Check if error is transient and worth retrying."""
    if isinstance(error, LLMError):
        return error.status_code in _RETRYABLE_STATUS
    return isinstance(error, (httpx.ConnectError, httpx.ReadError, httpx.RemoteProtocolError))


@dataclass
class ReasoningResponse:
    """Parsed Messages API reply."""

    content: List[Dict[str, Any]] = field(default_factory=list)
    stop_reason: Optional[str] = None
    model: str = ""

    @property
    def text(self) -> str:
        return "".join(block.get("text", "") for block in self.content if block.get("type") == "text")

    @property
    def tool_uses(self) -> List[Dict[str, Any]]:
        return [block for block in self.content if block.get("type") == "tool_use"]

    def find_tool_use(self, name: str) -> Optional[Dict[str, Any]]:
        for block in self.tool_uses:
            if block.get("name") == name:
                return block
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReasoningResponse":
        return cls(
            content=list(data.get("content") or []),
            stop_reason=data.get("stop_reason"),
            model=data.get("model", ""),
        )


class ReasoningClient:
    """Async client for the reasoning model."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.anthropic.com",
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 4096,
        api_version: str = "2023-06-01",
        timeout: float = 120.0,
        retry_max: int = 2,
        retry_delay: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: Messages API key
            base_url: API root (no trailing /v1)
            model: Model id used for every call
            max_tokens: Default completion budget
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.retry_max = retry_max
        self.retry_delay = retry_delay
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "x-api-key": api_key,
                "anthropic-version": api_version,
                "content-type": "application/json",
            },
        )

    @classmethod
    def from_config(cls, config) -> "ReasoningClient":
        return cls(
            api_key=config.anthropic_api_key,
            base_url=config.anthropic_base_url,
            model=config.model_reasoning,
            max_tokens=config.max_output_tokens,
            api_version=config.anthropic_version,
            timeout=config.reasoning_timeout_s,
            retry_max=config.reasoning_retry_max,
            retry_delay=config.reasoning_retry_delay,
        )

    async def create_message(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        forced_tool: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> ReasoningResponse:
        """Send one Messages API request.

        Args:
            system_prompt: System prompt text
            messages: Conversation so far (Messages API format)
            tools: Tool catalog in Messages API format
            forced_tool: Name of a tool the reply must invoke
            max_tokens: Override the default completion budget

        Raises:
            LLMError: On timeout, non-2xx reply, or an unreadable body
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "system": system_prompt,
            "messages": messages,
        }
        if tools:
            payload["tools"] = tools
        if forced_tool:
            payload["tool_choice"] = {"type": "tool", "name": forced_tool}

        last_error: Optional[Exception] = None
        for attempt in range(self.retry_max + 1):
            if attempt > 0:
                delay = self.retry_delay * (2 ** (attempt - 1))
                logger.info(f"Retry {attempt}/{self.retry_max} for {self.model} after {delay:.1f}s")
                await asyncio.sleep(delay)

            start_time = time.time()
            log_llm(logger, "start", model=self.model)
            try:
                return await self._post(payload, start_time)
            except httpx.TimeoutException:
                raise LLMError(
                    f"Model response timed out after {time.time() - start_time:.1f}s",
                    error_type="timeout",
                    model=self.model,
                ) from None
            except Exception as e:
                last_error = e
                if is_retryable_error(e) and attempt < self.retry_max:
                    logger.warning(f"Retryable error on {self.model}: {e}")
                    continue
                if isinstance(e, LLMError):
                    raise
                raise LLMError(f"Model request failed: {e}", model=self.model) from e

        # Loop always returns or raises
        raise last_error  # pragma: no cover

    async def _post(self, payload: Dict[str, Any], start_time: float) -> ReasoningResponse:
        resp = await self._client.post("/v1/messages", json=payload)
        if resp.status_code >= 400:
            raise LLMError(
                f"Model request failed: {resp.status_code}",
                details=resp.text[:500],
                model=self.model,
                status_code=resp.status_code,
                body_text=resp.text,
            )
        try:
            data = resp.json()
        except ValueError:
            raise LLMError(
                "Model returned a non-JSON body",
                error_type="invalid",
                model=self.model,
                body_text=resp.text,
            ) from None

        log_llm(logger, "end", model=self.model, duration=time.time() - start_time)
        return ReasoningResponse.from_dict(data)

    async def aclose(self) -> None:
        await self._client.aclose()


class FastClassifierClient:
    """Wraps the OpenAI SDK pointed at a fast OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.cerebras.ai/v1",
        model: str = "llama-4-scout-17b-16e-instruct",
        max_tokens: int = 10,
        timeout: float = 5.0,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._openai = AsyncOpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            max_retries=0,  # Failures fall through to the regex heuristic
        )

    @classmethod
    def from_config(cls, config) -> Optional["FastClassifierClient"]:
        """Build from config, or None when no key is configured."""
        if not config.classifier_api_key:
            return None
        return cls(
            api_key=config.classifier_api_key,
            base_url=config.classifier_base_url,
            model=config.model_classifier,
            max_tokens=config.classifier_max_tokens,
            timeout=config.classifier_timeout_s,
        )

    async def classify(self, system_prompt: str, text: str) -> str:
        """Return the model's raw label for text."""
        response = await self._openai.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": text},
            ],
            max_tokens=self.max_tokens,
            temperature=0,
        )
        return response.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self._openai.close()
