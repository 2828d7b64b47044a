# llama_client.py — chat completions against a self-hosted OpenAI-compatible endpoint

from typing import List, Optional, Sequence

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIStatusError

from llm_config import LLMProvider, ProviderConfig
from llm_errors import (
    ClientNotInitializedError, LLMConfigurationError, LLMInvalidResponseError, LLMTransportError
)
from llm_retry import is_retryable_status, with_retries
from models import ChatMessage
from structured_log import log_event


class LlamaChatClient:
    """
    Sends role-tagged messages to `{LLAMA_API_ENDPOINT}/chat/completions`
    with bearer auth and returns the assistant text.

    The OpenAI SDK's own retries are disabled; backoff is `with_retries`.
    """

    label = "llama"

    def __init__(self, config: ProviderConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client: Optional[AsyncOpenAI] = None
        if config.llama_api_endpoint and config.llama_api_key:
            self._client = AsyncOpenAI(
                api_key=config.llama_api_key,
                base_url=config.llama_api_endpoint.rstrip("/"),
                max_retries=0,
                http_client=http_client,
            )

    async def close(self):
        if self._client is not None:
            await self._client.close()

    def _check_ready(self) -> AsyncOpenAI:
        if self.config.provider is not LLMProvider.llama:
            raise LLMConfigurationError(
                f"Llama client called when LLM provider is {self.config.provider.value}, not LLAMA."
            )
        if not self.config.llama_api_endpoint or not self.config.llama_api_key:
            raise LLMConfigurationError("LLAMA_API_ENDPOINT and LLAMA_API_KEY must both be set.")
        if self._client is None:
            raise ClientNotInitializedError("Llama client (OpenAI SDK) is not initialized.")
        return self._client

    async def send(self, messages: Sequence[ChatMessage]) -> str:
        client = self._check_ready()
        payload: List[dict] = [m.model_dump() for m in messages]
        model = self.config.llama_model_name

        async def attempt() -> str:
            try:
                completion = await client.chat.completions.create(model=model, messages=payload)
            except APIStatusError as e:
                raise LLMTransportError(
                    f"Llama API returned status {e.status_code}: {e.message}",
                    status_code=e.status_code,
                    retryable=is_retryable_status(e.status_code),
                ) from e
            except APIConnectionError as e:
                raise LLMTransportError(f"Llama API connection failed: {e}", retryable=True) from e

            choices = getattr(completion, "choices", None) or []
            message = getattr(choices[0], "message", None) if choices else None
            content = getattr(message, "content", None)
            if not isinstance(content, str) or not content.strip():
                log_event("WARNING", "llm_invalid_response", client=self.label, model=model)
                raise LLMInvalidResponseError("Invalid response structure received from Llama API.")
            return content.strip()

        return await with_retries(
            attempt,
            lambda e: isinstance(e, LLMTransportError) and e.retryable,
            max_retries=self.config.max_retries,
            initial_delay_ms=self.config.retry_initial_delay_ms,
            label=self.label,
        )
