"""Async completion clients for the supported LLM providers.

Each client wraps one provider's HTTP chat API with proper timeout handling
and returns a structured :class:`CompletionResponse`. Transport failures are
reported through ``success=False`` rather than raised, so the pipeline can
always turn them into a terminal build record.

Typical usage::

    client = create_client("anthropic", api_key="...")
    resp = await client.complete(
        [{"role": "user", "content": "Write a PowerShell hello world"}],
        model="claude-sonnet-4-20250514",
        max_tokens=8192,
    )
    if resp.truncated:
        ...
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

# Provider stop reasons meaning the output ceiling was hit.
TRUNCATION_STOP_REASONS: frozenset[str] = frozenset({"max_tokens", "length"})


class CompletionResponse(BaseModel):
    """Structured response from a completion call."""

    content: str = Field(default="", description="Generated text")
    stop_reason: Optional[str] = Field(default=None, description="Provider stop/finish reason")
    usage: dict[str, int] = Field(default_factory=dict, description="Token usage counters")
    model: str = Field(default="", description="Model that produced the response")
    success: bool = Field(default=True, description="Whether the request succeeded")
    error: Optional[str] = Field(default=None, description="Error message on failure")

    @property
    def truncated(self) -> bool:
        """True when the provider stopped because it hit the output ceiling."""
        return (self.stop_reason or "").lower() in TRUNCATION_STOP_REASONS


class CompletionClient:
    """Base class for provider clients.

    Subclasses implement :meth:`_build_request` and :meth:`_parse_response`;
    transport and error mapping are shared.
    """

    provider_name = "base"
    default_base_url = ""

    def __init__(self, api_key: str = "", base_url: str = "", timeout: int = 300) -> None:
        self.api_key = api_key
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )

    def _headers(self) -> dict[str, str]:
        return {"content-type": "application/json"}

    def _build_request(
        self,
        messages: list[dict[str, str]],
        model: str,
        max_tokens: int,
        system_prompt: Optional[str],
    ) -> tuple[str, dict[str, Any]]:
        raise NotImplementedError

    def _parse_response(self, data: dict[str, Any], model: str) -> CompletionResponse:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(
        self,
        messages: list[dict[str, str]],
        model: str,
        max_tokens: int,
        system_prompt: Optional[str] = None,
    ) -> CompletionResponse:
        """Request one completion.

        Args:
            messages: Chat messages (``{"role": ..., "content": ...}``).
            model: Provider model identifier.
            max_tokens: Output token ceiling.
            system_prompt: Optional system prompt.

        Returns:
            A ``CompletionResponse`` with the generated text or an error.
        """
        path, payload = self._build_request(messages, model, max_tokens, system_prompt)
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload, headers=self._headers())
                response.raise_for_status()
                return self._parse_response(response.json(), model)
        except httpx.ConnectError:
            return CompletionResponse(
                model=model,
                success=False,
                error=f"Cannot connect to {self.provider_name} at {self.base_url}.",
            )
        except httpx.TimeoutException:
            return CompletionResponse(
                model=model,
                success=False,
                error=f"Request to {self.provider_name} timed out after {self.timeout}s.",
            )
        except httpx.HTTPStatusError as exc:
            return CompletionResponse(
                model=model,
                success=False,
                error=(
                    f"{self.provider_name} returned HTTP {exc.response.status_code}: "
                    f"{exc.response.text[:500]}"
                ),
            )
        except Exception as exc:  # noqa: BLE001
            return CompletionResponse(
                model=model,
                success=False,
                error=f"Unexpected error during {self.provider_name} completion: {exc}",
            )


class AnthropicClient(CompletionClient):
    """Client for the Anthropic Messages API (``/v1/messages``)."""

    provider_name = "anthropic"
    default_base_url = "https://api.anthropic.com"

    def _headers(self) -> dict[str, str]:
        return {
            "content-type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
        }

    def _build_request(self, messages, model, max_tokens, system_prompt):
        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system_prompt:
            payload["system"] = system_prompt
        return "/v1/messages", payload

    def _parse_response(self, data, model):
        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return CompletionResponse(
            content=text,
            stop_reason=data.get("stop_reason"),
            usage={
                "input_tokens": int(usage.get("input_tokens", 0)),
                "output_tokens": int(usage.get("output_tokens", 0)),
            },
            model=data.get("model", model),
        )


class OpenAIClient(CompletionClient):
    """Client for OpenAI-compatible chat completions (``/v1/chat/completions``)."""

    provider_name = "openai"
    default_base_url = "https://api.openai.com"

    def _headers(self) -> dict[str, str]:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_request(self, messages, model, max_tokens, system_prompt):
        chat = list(messages)
        if system_prompt:
            chat.insert(0, {"role": "system", "content": system_prompt})
        payload = {"model": model, "max_tokens": max_tokens, "messages": chat}
        return "/v1/chat/completions", payload

    def _parse_response(self, data, model):
        choices = data.get("choices") or [{}]
        first = choices[0]
        usage = data.get("usage") or {}
        return CompletionResponse(
            content=(first.get("message") or {}).get("content") or "",
            stop_reason=first.get("finish_reason"),
            usage={
                "input_tokens": int(usage.get("prompt_tokens", 0)),
                "output_tokens": int(usage.get("completion_tokens", 0)),
            },
            model=data.get("model", model),
        )


class OllamaClient(CompletionClient):
    """Client for a local Ollama server (``/api/chat``)."""

    provider_name = "ollama"
    default_base_url = "http://localhost:11434"

    def _build_request(self, messages, model, max_tokens, system_prompt):
        chat = list(messages)
        if system_prompt:
            chat.insert(0, {"role": "system", "content": system_prompt})
        payload = {
            "model": model,
            "messages": chat,
            "stream": False,
            "options": {"num_predict": max_tokens},
        }
        return "/api/chat", payload

    def _parse_response(self, data, model):
        return CompletionResponse(
            content=(data.get("message") or {}).get("content", ""),
            stop_reason=data.get("done_reason"),
            usage={
                "input_tokens": int(data.get("prompt_eval_count", 0)),
                "output_tokens": int(data.get("eval_count", 0)),
            },
            model=data.get("model", model),
        )


_CLIENTS: dict[str, type[CompletionClient]] = {
    "anthropic": AnthropicClient,
    "openai": OpenAIClient,
    "ollama": OllamaClient,
}


def create_client(
    name: str, api_key: str = "", base_url: str = "", timeout: int = 300
) -> CompletionClient:
    """Instantiate the client registered under *name*.

    Raises:
        ValueError: If *name* is not a known provider.
    """
    try:
        cls = _CLIENTS[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown provider '{name}'. Expected one of: {', '.join(sorted(_CLIENTS))}"
        ) from None
    return cls(api_key=api_key, base_url=base_url, timeout=timeout)
