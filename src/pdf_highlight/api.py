"""OpenRouter API client with retry logic and cache control.

Features:
- Async httpx client with exponential backoff
- Cache control for Anthropic prompt caching
- Configurable reasoning_effort
- Usage tracking and finish_reason passthrough

Example:
    client = OpenRouterClient()
    response = await client.chat(
        model="google/gemini-3-flash-preview",
        messages=[{"role": "user", "content": "Hello"}],
        tools=[...],
    )
    message = response["message"]
    finish_reason = response["finish_reason"]
"""

import copy
import json
import os
import sys
from typing import Any

import httpx

from .agent_loop import ModelTurn
from .errors import ConfigurationError, TransportError
from .retry import INITIAL_BACKOFF, backoff_sleep

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"


def get_headers() -> dict:
    """Get API request headers."""
    api_key = os.environ.get("OPENROUTER_API_KEY")
    if not api_key:
        raise ConfigurationError("OPENROUTER_API_KEY environment variable is required")

    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": "https://github.com/pdf-highlight",
    }


def add_cache_control(messages: list[dict]) -> list[dict]:
    """Add cache_control breakpoint to the last cacheable message.

    Finds the last user or system message and adds cache_control to it.
    This tells Anthropic models to cache everything up to this point.
    """
    messages = copy.deepcopy(messages)  # nested content blocks are mutated below

    for i in range(len(messages) - 1, -1, -1):
        role = messages[i].get("role")
        if role in ("user", "system"):
            content = messages[i].get("content", "")

            if isinstance(content, str):
                messages[i]["content"] = [
                    {
                        "type": "text",
                        "text": content,
                        "cache_control": {"type": "ephemeral"},
                    }
                ]
            elif isinstance(content, list):
                for j in range(len(content) - 1, -1, -1):
                    if content[j].get("type") == "text":
                        content[j]["cache_control"] = {"type": "ephemeral"}
                        break
            break

    return messages


class OpenRouterClient:
    """Async client for OpenRouter API with reasoning and caching."""

    def __init__(
        self,
        reasoning_effort: str | None = "medium",
        enable_cache: bool = True,
        timeout: float = 600.0,
        max_retries: int = 8,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.reasoning_effort = reasoning_effort
        self.enable_cache = enable_cache
        self.timeout = timeout
        self.max_retries = max_retries
        self.transport = transport

        # Status codes that should NOT be retried
        self.no_retry_codes = {400, 401, 403, 404}

    async def chat(
        self,
        model: str,
        messages: list[dict],
        tools: list[dict] | None = None,
        tool_choice: str = "auto",
        reasoning_effort: str | None = None,
    ) -> dict[str, Any]:
        """
        Make a chat completion request.

        Args:
            model: Model identifier (e.g., "google/gemini-3-flash-preview")
            messages: List of message dicts
            tools: Optional list of tool definitions
            tool_choice: "auto", "none", or "required"
            reasoning_effort: Override instance default

        Returns:
            {
                "message": assistant message dict with 'content' and 'tool_calls',
                "usage": usage dict with token counts,
                "finish_reason": stop signal reported for the choice
            }

        Raises:
            TransportError: on non-retryable HTTP errors, malformed bodies,
                or once retries are exhausted
        """
        if self.enable_cache and "anthropic" in model.lower():
            messages = add_cache_control(messages)

        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
        }

        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = tool_choice

        effort = reasoning_effort or self.reasoning_effort
        if effort:
            payload["reasoning"] = {"effort": effort}

        headers = get_headers()
        backoff = INITIAL_BACKOFF
        attempt = 0

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            while True:
                try:
                    response = await client.post(
                        OPENROUTER_API_URL,
                        headers=headers,
                        json=payload,
                    )
                except (httpx.TimeoutException, httpx.RequestError) as e:
                    if attempt < self.max_retries:
                        attempt += 1
                        print(
                            f"[Retry {attempt}/{self.max_retries}] Network error: {type(e).__name__}: {e}",
                            file=sys.stderr,
                        )
                        backoff = await backoff_sleep(backoff)
                        continue
                    raise TransportError(
                        f"API error after {self.max_retries} retries: {e}"
                    ) from e

                response_text = response.text
                # Retry empty/whitespace-only responses (transient proxy issue)
                if not response_text or not response_text.strip():
                    if attempt < self.max_retries:
                        attempt += 1
                        print(
                            f"[Retry {attempt}/{self.max_retries}] Empty response (status {response.status_code})",
                            file=sys.stderr,
                        )
                        backoff = await backoff_sleep(backoff)
                        continue
                    raise TransportError(
                        f"Empty response after {self.max_retries} retries (status {response.status_code})"
                    )

                try:
                    response_data = json.loads(response_text)
                except json.JSONDecodeError:
                    # Non-empty but malformed: not transient
                    raise TransportError(
                        f"Invalid JSON response (status {response.status_code}): {response_text[:200]}"
                    )

                if response.status_code == 200:
                    choices = response_data.get("choices") or [{}]
                    choice = choices[0]
                    return {
                        "message": choice.get("message", {}),
                        "usage": response_data.get("usage", {}),
                        "finish_reason": choice.get("finish_reason"),
                    }

                error_detail = _error_detail(response_data, response_text)

                if response.status_code in self.no_retry_codes:
                    raise TransportError(
                        f"OpenRouter API error: {response.status_code} - {response.reason_phrase}: {error_detail}"
                    )

                if attempt < self.max_retries:
                    attempt += 1
                    print(
                        f"[Retry {attempt}/{self.max_retries}] HTTP {response.status_code}: {error_detail[:200]}",
                        file=sys.stderr,
                    )
                    backoff = await backoff_sleep(backoff, jitter=5.0)
                    continue

                raise TransportError(
                    f"OpenRouter API error after {self.max_retries} retries: {response.status_code}: {error_detail}"
                )


def _error_detail(response_data: Any, response_text: str) -> str:
    if isinstance(response_data, dict):
        error = response_data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return response_text[:500]


def create_model_callable(
    client: OpenRouterClient,
    model: str,
    tools: list[dict] | None = None,
):
    """Create a model callable for use with run_conversation.

    Returns an async function (messages) -> ModelTurn
    """

    async def call_model(messages: list[dict]) -> ModelTurn:
        response = await client.chat(
            model=model,
            messages=messages,
            tools=tools,
        )
        return ModelTurn(
            message=response["message"],
            usage=response["usage"],
            finish_reason=response["finish_reason"],
        )

    return call_model
