# azure_llama_client.py — Llama models served through Azure AI Inference

from typing import Any, Optional, Sequence

from azure.ai.inference.aio import ChatCompletionsClient
from azure.ai.inference.models import AssistantMessage, SystemMessage, UserMessage
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import HttpResponseError, ServiceRequestError, ServiceResponseError

from llm_config import LLMProvider, ProviderConfig
from llm_errors import (
    ClientNotInitializedError, LLMConfigurationError, LLMInvalidResponseError, LLMTransportError
)
from llm_retry import is_retryable_status, with_retries
from models import ChatMessage
from structured_log import log_event

_MESSAGE_TYPES = {
    "system": SystemMessage,
    "user": UserMessage,
    "assistant": AssistantMessage,
}


def to_azure_messages(messages: Sequence[ChatMessage]) -> list:
    return [_MESSAGE_TYPES[m.role](content=m.content) for m in messages]


class AzureLlamaChatClient:
    """
    Same contract as LlamaChatClient, over the Azure AI Inference SDK.

    The SDK client is built once, here, with the azure-core retry policy
    off so every request is one `with_retries` attempt. If that fails, or
    the endpoint/key are missing, every `send` fails fast with
    ClientNotInitializedError.
    """

    label = "azure_llama"
    temperature = 0.7
    top_p = 1.0
    max_tokens = 1024

    def __init__(self, config: ProviderConfig, sdk_client: Optional[Any] = None):
        self.config = config
        self._client = sdk_client

        if self._client is None and config.provider is LLMProvider.llama_azure:
            if config.azure_ai_endpoint and config.azure_ai_key:
                try:
                    self._client = ChatCompletionsClient(
                        endpoint=config.azure_ai_endpoint,
                        credential=AzureKeyCredential(config.azure_ai_key),
                        retry_total=0,
                    )
                    log_event("INFO", "azure_client_initialized", model=config.azure_llama_model_name)
                except Exception as e:
                    log_event("ERROR", "azure_client_init_failed", error=str(e))
            else:
                log_event("WARNING", "azure_client_not_configured")

    async def send(self, messages: Sequence[ChatMessage]) -> str:
        if self.config.provider is not LLMProvider.llama_azure:
            raise LLMConfigurationError(
                f"Azure Llama client called when LLM provider is {self.config.provider.value}, not LLAMA_AZURE."
            )
        if self._client is None:
            raise ClientNotInitializedError(
                "Azure Llama client is not initialized. AZURE_AI_ENDPOINT or AZURE_AI_KEY "
                "might be missing or invalid."
            )

        client = self._client
        azure_messages = to_azure_messages(messages)
        model = self.config.azure_llama_model_name

        async def attempt() -> str:
            try:
                response = await client.complete(
                    messages=azure_messages,
                    model=model,
                    temperature=self.temperature,
                    top_p=self.top_p,
                    max_tokens=self.max_tokens,
                )
            except HttpResponseError as e:
                status = e.status_code
                error = getattr(e, "error", None)
                detail = getattr(error, "message", None) or e.message or "Unknown Azure API error"
                raise LLMTransportError(
                    f"Azure API request failed with status {status}: {detail}",
                    status_code=status,
                    retryable=is_retryable_status(status),
                ) from e
            except (ServiceRequestError, ServiceResponseError) as e:
                raise LLMTransportError(f"Azure API connection failed: {e}", retryable=True) from e

            choices = getattr(response, "choices", None) or []
            message = getattr(choices[0], "message", None) if choices else None
            content = getattr(message, "content", None)
            if not isinstance(content, str) or not content.strip():
                log_event("WARNING", "llm_invalid_response", client=self.label, model=model)
                raise LLMInvalidResponseError(
                    "Invalid response structure or empty content received from Azure Llama API."
                )
            return content.strip()

        return await with_retries(
            attempt,
            lambda e: isinstance(e, LLMTransportError) and e.retryable,
            max_retries=self.config.max_retries,
            initial_delay_ms=self.config.retry_initial_delay_ms,
            label=self.label,
        )

    async def close(self):
        if self._client is not None:
            await self._client.close()
