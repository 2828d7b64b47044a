# llm_backends.py — one interface over the managed (Gemini) and self-hosted backends

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple, Type, TypeVar, Union

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPICallError, ServerError, TooManyRequests
from google.generativeai.types import GenerationConfig
from pydantic import BaseModel, ValidationError

from azure_llama_client import AzureLlamaChatClient
from llama_client import LlamaChatClient
from llm_config import LLMProvider, ProviderConfig
from llm_errors import LLMConfigurationError, LLMTransportError, MalformedOutputError
from llm_retry import with_retries
from models import ChatMessage
from structured_log import log_event

M = TypeVar("M", bound=BaseModel)

ChatClient = Union[LlamaChatClient, AzureLlamaChatClient]


@dataclass(frozen=True)
class PromptSpec:
    """
    A provider-neutral prompt.

    `json_shape` is an example of the expected JSON object; only the
    self-hosted backend spells it out, Gemini gets the schema instead.
    `media` holds inline blobs ({"mime_type", "data"}) for Gemini.
    """
    system: str
    user: str
    json_shape: str = ""
    media: Tuple[dict, ...] = field(default_factory=tuple)


# ─────────────────────────────────────────────────────────────
# PARSE & VALIDATE (free-text model output → typed result)
# ─────────────────────────────────────────────────────────────

_FENCED = re.compile(r"```[ \t]*(?:json|JSON)?[ \t]*\n?(.*?)\n?[ \t]*```", re.DOTALL)


def strip_code_fences(text: str) -> str:
    t = (text or "").strip()
    match = _FENCED.search(t)
    if match:
        return match.group(1).strip()
    return t


def _loads_object(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Models sometimes wrap the object in prose; take the outermost braces.
        start, end = text.find("{"), text.rfind("}")
        if 0 <= start < end:
            return json.loads(text[start:end + 1])
        raise


def parse_and_validate(raw_text: str, output_model: Type[M]) -> M:
    text = strip_code_fences(raw_text)
    try:
        data = _loads_object(text)
    except json.JSONDecodeError as e:
        raise MalformedOutputError(f"Model output is not valid JSON: {e}", raw_text) from e

    try:
        return output_model.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "<root>" for err in e.errors()})
        raise MalformedOutputError(
            f"Model output failed {output_model.__name__} validation ({', '.join(fields)})", raw_text
        ) from e


# ─────────────────────────────────────────────────────────────
# BACKEND INTERFACE
# ─────────────────────────────────────────────────────────────

class GenerationBackend(ABC):
    name: str = "backend"
    managed: bool = False

    @abstractmethod
    async def generate_structured(self, prompt: PromptSpec, output_model: Type[M]) -> M:
        """Return an instance of `output_model` or raise an LLMError."""

    @abstractmethod
    async def generate_text(self, system: str, messages: Sequence[ChatMessage]) -> str:
        """Free-text reply to a conversation (user/assistant turns, oldest first)."""

    async def close(self):
        pass


# ─────────────────────────────────────────────────────────────
# MANAGED: GEMINI
# ─────────────────────────────────────────────────────────────

def extract_text(resp) -> Optional[str]:
    """
    `.text` raises when the candidate has no parts (safety stop, empty
    output); fall back to walking candidates/parts.
    """
    try:
        t = getattr(resp, "text", None)
    except ValueError:
        t = None
    if t:
        return t
    cand = getattr(resp, "candidates", None)
    if cand:
        content = getattr(cand[0], "content", None)
        if content and getattr(content, "parts", None):
            return "".join(getattr(p, "text", "") for p in content.parts if getattr(p, "text", None))
    return None


# The gapic default retries 503s for up to 600 s; `with_retries` is the only loop.
NO_SDK_RETRY = {"retry": None}


def configure_gemini(config: ProviderConfig) -> bool:
    """Set the process-wide Gemini API key. Called once, at startup."""
    if not config.gemini_api_key:
        return False
    genai.configure(api_key=config.gemini_api_key)
    return True


def _is_transient_google_error(e: BaseException) -> bool:
    return isinstance(e, LLMTransportError) and e.retryable


class GeminiBackend(GenerationBackend):
    name = "gemini"
    managed = True

    def __init__(self, config: ProviderConfig, temperature: float = 0.2):
        self.config = config
        self.temperature = temperature

    def _model(self, system: str):
        if not self.config.gemini_api_key:
            raise LLMConfigurationError("GEMINI_API_KEY is not set; the Gemini backend cannot be used.")
        return genai.GenerativeModel(self.config.gemini_model_name, system_instruction=system)

    async def _generate(self, model, contents, generation_config: Optional[GenerationConfig] = None):
        async def attempt():
            try:
                return await model.generate_content_async(
                    contents, generation_config=generation_config, request_options=NO_SDK_RETRY
                )
            except (ServerError, TooManyRequests) as e:
                raise LLMTransportError(
                    f"Gemini API error {e.code}: {e.message}", status_code=e.code, retryable=True
                ) from e
            except GoogleAPICallError as e:
                raise LLMTransportError(f"Gemini API error {e.code}: {e.message}", status_code=e.code) from e

        return await with_retries(
            attempt,
            _is_transient_google_error,
            max_retries=self.config.max_retries,
            initial_delay_ms=self.config.retry_initial_delay_ms,
            label=self.name,
        )

    async def generate_structured(self, prompt: PromptSpec, output_model: Type[M]) -> M:
        model = self._model(prompt.system)
        cfg = GenerationConfig(
            response_mime_type="application/json",
            response_schema=output_model,
            temperature=self.temperature,
        )
        contents = [prompt.user, *prompt.media]
        resp = await self._generate(model, contents, cfg)
        text = extract_text(resp)
        if not text:
            raise MalformedOutputError("Gemini returned no content (blocked or empty).")
        # Schema-constrained decoding is not taken on trust.
        return parse_and_validate(text, output_model)

    async def generate_text(self, system: str, messages: Sequence[ChatMessage]) -> str:
        model = self._model(system)
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [m.content]}
            for m in messages
            if m.role != "system"
        ]
        resp = await self._generate(model, contents)
        return (extract_text(resp) or "").strip()


# ─────────────────────────────────────────────────────────────
# SELF-HOSTED: OPENAI-COMPATIBLE OR AZURE CHAT COMPLETIONS
# ─────────────────────────────────────────────────────────────

JSON_INSTRUCTIONS = """

Respond with ONLY a single valid JSON object and nothing else: no markdown,
no code fences, no commentary. The object must have exactly this shape:
{shape}"""


class ChatCompletionBackend(GenerationBackend):
    managed = False

    def __init__(self, client: ChatClient):
        self.client = client
        self.name = client.label

    async def generate_structured(self, prompt: PromptSpec, output_model: Type[M]) -> M:
        if prompt.media:
            raise LLMConfigurationError(f"The {self.name} backend cannot accept media input.")
        system = prompt.system
        if prompt.json_shape:
            system += JSON_INSTRUCTIONS.format(shape=prompt.json_shape)
        raw = await self.client.send([
            ChatMessage(role="system", content=system),
            ChatMessage(role="user", content=prompt.user),
        ])
        return parse_and_validate(raw, output_model)

    async def generate_text(self, system: str, messages: Sequence[ChatMessage]) -> str:
        return await self.client.send([ChatMessage(role="system", content=system), *messages])

    async def close(self):
        await self.client.close()


def build_backend(config: ProviderConfig, llama_http_client=None) -> GenerationBackend:
    """Pick the backend for the configured provider. Called once at startup."""
    if config.provider is LLMProvider.llama:
        backend = ChatCompletionBackend(LlamaChatClient(config, http_client=llama_http_client))
    elif config.provider is LLMProvider.llama_azure:
        backend = ChatCompletionBackend(AzureLlamaChatClient(config))
    else:
        backend = GeminiBackend(config)
    log_event("INFO", "llm_backend_selected", backend=backend.name, model=config.active_model_name)
    return backend
