# llm_config.py — which LLM backend is active, and with which credentials

import os
from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

from structured_log import log_event


class LLMProvider(str, Enum):
    gemini = "GEMINI"
    llama = "LLAMA"
    llama_azure = "LLAMA_AZURE"


DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_LLAMA_MODEL = "meta-llama/Llama-4-Scout-17B-16E-Instruct"
DEFAULT_AZURE_LLAMA_MODEL = "Llama-4-Scout-17B-16E-Instruct"
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_INITIAL_DELAY_MS = 1000


class ProviderConfig(BaseModel):
    """
    Connection parameters for every supported backend.

    Built once at process start by `load_provider_config` and handed by
    reference to clients and backends. Frozen: there is no hot reload.
    """
    model_config = ConfigDict(frozen=True)

    provider: LLMProvider = LLMProvider.gemini

    gemini_api_key: str = ""
    gemini_model_name: str = DEFAULT_GEMINI_MODEL

    llama_api_endpoint: str = ""
    llama_api_key: str = "EMPTY"
    llama_model_name: str = DEFAULT_LLAMA_MODEL

    azure_ai_endpoint: str = ""
    azure_ai_key: str = ""
    azure_llama_model_name: str = DEFAULT_AZURE_LLAMA_MODEL

    max_retries: int = DEFAULT_MAX_RETRIES
    retry_initial_delay_ms: int = DEFAULT_RETRY_INITIAL_DELAY_MS

    @property
    def is_self_hosted(self) -> bool:
        return self.provider is not LLMProvider.gemini

    @property
    def active_model_name(self) -> str:
        if self.provider is LLMProvider.llama:
            return self.llama_model_name
        if self.provider is LLMProvider.llama_azure:
            return self.azure_llama_model_name
        return self.gemini_model_name


def resolve_provider(value: Optional[str]) -> LLMProvider:
    try:
        return LLMProvider((value or "").strip().upper())
    except ValueError:
        return LLMProvider.gemini


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        log_event("WARNING", "llm_config_invalid_int", variable=name, value=raw, default=default)
        return default
    if value < 0:
        log_event("WARNING", "llm_config_negative_int", variable=name, value=value, default=default)
        return default
    return value


def load_provider_config(env: Optional[Mapping[str, str]] = None) -> ProviderConfig:
    """Resolve the provider configuration. Never raises; gaps become warnings."""
    env = os.environ if env is None else env

    selector = env.get("LLM_PROVIDER")
    provider = resolve_provider(selector)
    if selector and selector.strip().upper() != provider.value:
        log_event("WARNING", "llm_config_unknown_provider", requested=selector, using=provider.value)

    config = ProviderConfig(
        provider=provider,
        gemini_api_key=env.get("GEMINI_API_KEY") or env.get("GOOGLE_API_KEY") or "",
        gemini_model_name=env.get("GEMINI_MODEL_NAME") or DEFAULT_GEMINI_MODEL,
        llama_api_endpoint=env.get("LLAMA_API_ENDPOINT") or "",
        llama_api_key=env.get("LLAMA_API_KEY") or "EMPTY",
        llama_model_name=env.get("LLAMA_MODEL_NAME") or DEFAULT_LLAMA_MODEL,
        azure_ai_endpoint=env.get("AZURE_AI_ENDPOINT") or "",
        azure_ai_key=env.get("AZURE_AI_KEY") or "",
        azure_llama_model_name=env.get("AZURE_LLAMA_MODEL_NAME") or DEFAULT_AZURE_LLAMA_MODEL,
        max_retries=_int_setting(env, "LLM_MAX_RETRIES", DEFAULT_MAX_RETRIES),
        retry_initial_delay_ms=_int_setting(env, "LLM_RETRY_INITIAL_DELAY_MS", DEFAULT_RETRY_INITIAL_DELAY_MS),
    )

    _warn_on_missing(config)
    log_event("INFO", "llm_config_resolved", provider=config.provider.value, model=config.active_model_name)
    return config


def _warn_on_missing(config: ProviderConfig):
    if config.provider is LLMProvider.llama:
        if not config.llama_api_endpoint:
            log_event(
                "WARNING", "llm_config_missing_endpoint", provider=config.provider.value,
                hint="LLAMA_API_ENDPOINT should be the base URL, e.g. http://host:port/v1",
            )
        if not config.llama_api_key:
            log_event("WARNING", "llm_config_missing_key", provider=config.provider.value)
    elif config.provider is LLMProvider.llama_azure:
        if not config.azure_ai_endpoint:
            log_event("WARNING", "llm_config_missing_endpoint", provider=config.provider.value)
        if not config.azure_ai_key:
            log_event("WARNING", "llm_config_missing_key", provider=config.provider.value)

    # Transcription always runs on Gemini, so its key matters for every provider.
    if not config.gemini_api_key:
        log_event("WARNING", "llm_config_missing_key", provider=LLMProvider.gemini.value)
