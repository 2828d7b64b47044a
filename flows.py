# flows.py — schema-typed generation flows (transcribe, SOAP, billing, chat)

"""
Every flow validates its input, dispatches to a GenerationBackend, and
returns a typed result.

Failure policy per flow:
  - transcription, SOAP note: malformed output is an error (FlowError).
  - billing codes: malformed output degrades to an empty list.
  - chat, contextual chat: empty output degrades to a fixed apology text.
Transport and configuration failures always surface as FlowError, whose
message starts with the flow name.
"""

from typing import Any, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from llm_backends import GenerationBackend, PromptSpec
from llm_errors import FlowError, FlowValidationError, LLMError, MalformedOutputError
from models import (
    BillingCodesInput, BillingCodesOutput, ChatInput, ChatMessage, ChatOutput, ContextualChatInput,
    HistoryMessage, SoapNoteInput, SoapNoteOutput, TranscribeInput, TranscribeOutput,
)
import prompts
from structured_log import log_event

I = TypeVar("I", bound=BaseModel)

CHAT_EMPTY_RESPONSE = "Sorry, I couldn't generate a valid response."
CONTEXTUAL_EMPTY_RESPONSE = "Sorry, I couldn't generate a response at this time. Please try again."
MISSING_PATIENT_CONTEXT_RESPONSE = (
    "Cannot assist with patient data as it was not provided. Please select a patient."
)


def validate_input(flow: str, model_cls: Type[I], data: Any) -> I:
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "<root>" for err in e.errors()})
        log_event("WARNING", "flow_invalid_input", flow=flow, fields=fields)
        raise FlowValidationError(flow, fields, "; ".join(err["msg"] for err in e.errors())) from e


def history_to_messages(history: Optional[Sequence[HistoryMessage]], skip_blank: bool = False) -> List[ChatMessage]:
    """Keep user/model turns only; `model` becomes `assistant`."""
    messages = []
    for msg in history or []:
        if msg.role not in ("user", "model"):
            continue
        if skip_blank and not msg.content.strip():
            continue
        role = "assistant" if msg.role == "model" else "user"
        messages.append(ChatMessage(role=role, content=msg.content))
    return messages


class GenerationFlows:
    """
    The flow call surface used by the HTTP layer.

    `backend` is the one selected from LLM_PROVIDER; `transcriber` is always
    a managed backend, since self-hosted chat endpoints cannot take audio.
    """

    def __init__(self, backend: GenerationBackend, transcriber: GenerationBackend):
        self.backend = backend
        self.transcriber = transcriber

    async def close(self):
        await self.backend.close()
        if self.transcriber is not None and self.transcriber is not self.backend:
            await self.transcriber.close()

    # ---------- state tracing ----------

    def _state(self, flow: str, state: str, **details):
        log_event("INFO", "flow_state", flow=flow, state=state, **details)

    async def _dispatch(self, flow: str, backend: GenerationBackend, prompt: PromptSpec, output_model):
        self._state(flow, "dispatching", backend=backend.name)
        awaiting = "awaiting_managed_response" if backend.managed else "awaiting_self_hosted_response"
        self._state(flow, awaiting)
        result = await backend.generate_structured(prompt, output_model)
        self._state(flow, "validating_output")
        return result

    # ---------- flows ----------

    async def transcribe_patient_encounter(self, data: Any) -> TranscribeOutput:
        flow = "transcribePatientEncounter"
        self._state(flow, "validating")
        inp = validate_input(flow, TranscribeInput, data)

        prompt = PromptSpec(
            system=prompts.TRANSCRIBE_SYSTEM,
            user=prompts.TRANSCRIBE_USER,
            media=({"mime_type": inp.mime_type, "data": inp.audio_bytes},),
        )
        try:
            result = await self._dispatch(flow, self.transcriber, prompt, TranscribeOutput)
        except LLMError as e:
            self._state(flow, "error", error=str(e))
            raise FlowError(flow, e) from e

        self._state(flow, "success", chars=len(result.transcript))
        return result

    async def generate_soap_note(self, data: Any) -> SoapNoteOutput:
        flow = "generateSoapNote"
        self._state(flow, "validating")
        inp = validate_input(flow, SoapNoteInput, data)

        prompt = PromptSpec(
            system=prompts.SOAP_SYSTEM,
            user=prompts.SOAP_USER.format(
                patient_id=inp.patient_id,
                patient_history=inp.patient_history,
                encounter_transcript=inp.encounter_transcript,
            ),
            json_shape=prompts.SOAP_JSON_SHAPE,
        )
        try:
            result = await self._dispatch(flow, self.backend, prompt, SoapNoteOutput)
        except LLMError as e:
            # A SOAP note has no sensible empty value: never fabricate one.
            self._state(flow, "error", error=str(e))
            raise FlowError(flow, e) from e

        self._state(flow, "success", patient_id=inp.patient_id, chars=len(result.soap_note))
        return result

    async def generate_billing_codes(self, data: Any) -> BillingCodesOutput:
        flow = "generateBillingCodes"
        self._state(flow, "validating")
        inp = validate_input(flow, BillingCodesInput, data)

        prompt = PromptSpec(
            system=prompts.BILLING_SYSTEM,
            user=prompts.BILLING_USER.format(soap_note=inp.soap_note),
            json_shape=prompts.BILLING_JSON_SHAPE,
        )
        try:
            result = await self._dispatch(flow, self.backend, prompt, BillingCodesOutput)
        except MalformedOutputError as e:
            self._state(flow, "fallback_empty", error=str(e), raw=e.raw_text[:500])
            return BillingCodesOutput(billing_codes=[])
        except LLMError as e:
            self._state(flow, "error", error=str(e))
            raise FlowError(flow, e) from e

        self._state(flow, "success", codes=len(result.billing_codes))
        return result

    async def chat_with_assistant(self, data: Any) -> ChatOutput:
        flow = "chatWithAssistant"
        self._state(flow, "validating")
        inp = validate_input(flow, ChatInput, data)

        messages = history_to_messages(inp.history)
        messages.append(ChatMessage(role="user", content=inp.message))
        return await self._chat(flow, prompts.ASSISTANT_SYSTEM, messages, CHAT_EMPTY_RESPONSE)

    async def contextual_chat_with_assistant(self, data: Any) -> ChatOutput:
        flow = "contextualChatWithAssistant"
        self._state(flow, "validating")
        inp = validate_input(flow, ContextualChatInput, data)

        if inp.context_type == "dashboard":
            if not (inp.patient_data_context or "").strip():
                log_event("WARNING", "contextual_chat_missing_patient_context")
                return ChatOutput(response=MISSING_PATIENT_CONTEXT_RESPONSE)
            system = prompts.DASHBOARD_SYSTEM.format(patient_data_context=inp.patient_data_context)
        else:
            system = prompts.LANDING_PAGE_SYSTEM

        messages = history_to_messages(inp.history, skip_blank=True)
        messages.append(ChatMessage(role="user", content=inp.message))
        return await self._chat(flow, system, messages, CONTEXTUAL_EMPTY_RESPONSE)

    async def _chat(self, flow: str, system: str, messages: List[ChatMessage], empty_response: str) -> ChatOutput:
        self._state(flow, "dispatching", backend=self.backend.name, turns=len(messages))
        try:
            text = await self.backend.generate_text(system, messages)
        except LLMError as e:
            self._state(flow, "error", error=str(e))
            raise FlowError(flow, e) from e

        if not text or not text.strip():
            self._state(flow, "fallback_empty")
            return ChatOutput(response=empty_response)

        self._state(flow, "success", chars=len(text))
        return ChatOutput(response=text.strip())
