# llm_errors.py — error taxonomy shared by clients, backends and flows

from typing import List, Optional


class LLMError(Exception):
    """Base class for every failure raised by the generation layer."""


class LLMConfigurationError(LLMError):
    """Provider parameters missing, or a client called for the wrong provider."""


class ClientNotInitializedError(LLMConfigurationError):
    pass


class LLMTransportError(LLMError):
    """A remote call failed. `attempts` counts every request actually sent."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        attempts: int = 1,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts
        self.retryable = retryable


class LLMInvalidResponseError(LLMError):
    """Transport succeeded but the payload had no usable message content."""


class MalformedOutputError(LLMError):
    """Model text was not JSON, or JSON that failed output-schema validation."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class FlowValidationError(LLMError):
    def __init__(self, flow: str, fields: List[str], message: str):
        super().__init__(f"{flow}: invalid input ({', '.join(fields) or 'input'}): {message}")
        self.flow = flow
        self.fields = fields


class FlowError(LLMError):
    def __init__(self, flow: str, cause: Exception):
        super().__init__(f"{flow} failed: {cause}")
        self.flow = flow
        self.cause = cause
