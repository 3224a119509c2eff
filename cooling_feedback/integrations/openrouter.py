"""OpenRouter LLM client with multi-model support and fallback."""

import asyncio
import json
import logging
from typing import Any, Awaitable, TypeVar

import httpx

from config import settings
from cooling_feedback.exceptions import LLMError, LLMFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_deadline(call: Awaitable[T], timeout: float, what: str = "LLM call") -> T:
    """Race ``call`` against a timer.

    On expiry the call is cancelled, its eventual result is discarded and
    LLMError(TIMEOUT) is raised instead.
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise LLMError(LLMFailure.TIMEOUT, f"{what} timed out after {timeout:g}s") from e


class OpenRouterClient:
    """Client for OpenRouter API with multi-model fallback."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str | None = None,
        fallback_models: list[str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_key = settings.openrouter_api_key if api_key is None else api_key
        self._base_url = base_url or settings.openrouter_base_url
        self._default_model = default_model or settings.openrouter_default_model
        self._fallback_models = (
            settings.openrouter_fallback_models if fallback_models is None else fallback_models
        )
        self._client = http_client or httpx.AsyncClient(timeout=30.0)
        self._request_count = 0

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key) and self._api_key != "your_openrouter_api_key_here"

    async def chat(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        response_format: dict | None = None,
    ) -> str:
        """Send a chat completion request with automatic fallback.

        Raises LLMError when every model fails; the reason reflects the
        last failure.
        """
        if not self.is_configured:
            raise LLMError(LLMFailure.ERROR, "OpenRouter API key not configured")

        models_to_try = [model or self._default_model] + self._fallback_models
        last_error: LLMError | None = None

        for m in models_to_try:
            try:
                return await self._send_request(
                    m, messages, temperature, max_tokens, response_format
                )
            except Exception as e:
                logger.warning(f"Model {m} failed: {e}")
                last_error = self._as_llm_error(e, m)

        logger.error("All models failed")
        raise last_error or LLMError(LLMFailure.ERROR, "No model available")

    async def chat_json(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 300,
    ) -> dict[str, Any]:
        """Send a chat request and parse JSON response."""
        response = await self.chat(
            messages=messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
        )

        # Handle markdown code blocks
        if "```json" in response:
            response = response.split("```json")[1].split("```")[0]
        elif "```" in response:
            response = response.split("```")[1].split("```")[0]

        try:
            parsed = json.loads(response.strip())
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON response: {response[:200]}")
            raise LLMError(LLMFailure.ERROR, "Failed to parse JSON response") from e

        if not isinstance(parsed, dict):
            raise LLMError(LLMFailure.ERROR, "Expected a JSON object")
        return parsed

    async def _send_request(
        self,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        response_format: dict | None = None,
    ) -> str:
        """Send a single request to OpenRouter."""
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "http://localhost:3001",
            "X-Title": "Cooling Feedback Assistant",
        }

        body: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if response_format:
            body["response_format"] = response_format

        resp = await self._client.post(
            f"{self._base_url}/chat/completions",
            headers=headers,
            json=body,
        )
        resp.raise_for_status()
        data = resp.json()

        self._request_count += 1
        choice = (data.get("choices") or [{}])[0]
        content = (choice.get("message") or {}).get("content") or ""

        logger.debug(f"OpenRouter [{model}] response: {content[:100]}...")
        return content

    @staticmethod
    def _as_llm_error(error: Exception, model: str) -> LLMError:
        if isinstance(error, LLMError):
            return error
        if isinstance(error, httpx.TimeoutException):
            return LLMError(LLMFailure.TIMEOUT, f"{model} timed out", model=model)
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            if status == 429:
                return LLMError(LLMFailure.RATE_LIMIT, f"{model} rate limited", model=model)
            if status == 504:
                return LLMError(LLMFailure.TIMEOUT, f"{model} gateway timeout", model=model)
            return LLMError(LLMFailure.ERROR, f"{model} returned HTTP {status}", model=model)
        return LLMError(LLMFailure.ERROR, str(error) or type(error).__name__, model=model)

    @property
    def request_count(self) -> int:
        return self._request_count

    async def close(self) -> None:
        await self._client.aclose()


# Singleton
llm_client = OpenRouterClient()
