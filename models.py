# models.py — request/response shapes for the generation flows and the EHR store

import base64
import binascii
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


# ─────────────────────────────────────────────────────────────
# CHAT MESSAGES
# ─────────────────────────────────────────────────────────────

class ChatMessage(BaseModel):
    """One turn sent to a chat-completion endpoint. Order within a request matters."""
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class HistoryMessage(BaseModel):
    role: Literal["user", "model", "system"]
    content: StrictStr


# ─────────────────────────────────────────────────────────────
# FLOW INPUTS (StrictStr: a number is never turned into text)
# ─────────────────────────────────────────────────────────────

class FlowInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[\w.+-]+=[\w.+-]+)*;base64,(?P<data>.+)$", re.DOTALL)


class TranscribeInput(FlowInput):
    audio_data_uri: StrictStr = Field(
        alias="audioDataUri",
        description="Audio as a data URI: 'data:<mimetype>;base64,<encoded_data>'.",
    )

    @field_validator("audio_data_uri")
    @classmethod
    def must_be_base64_data_uri(cls, value: str) -> str:
        match = _DATA_URI.match(value.strip())
        if not match:
            raise ValueError("must be a data URI of the form data:<mimetype>;base64,<data>")
        try:
            base64.b64decode(match.group("data"), validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("data URI payload is not valid base64")
        return value.strip()

    @property
    def mime_type(self) -> str:
        return _DATA_URI.match(self.audio_data_uri).group("mime")

    @property
    def audio_bytes(self) -> bytes:
        return base64.b64decode(_DATA_URI.match(self.audio_data_uri).group("data"))


class SoapNoteInput(FlowInput):
    patient_id: StrictStr = Field(alias="patientId", min_length=1, description="The ID of the patient.")
    encounter_transcript: StrictStr = Field(
        alias="encounterTranscript", min_length=1, description="The transcript of the patient encounter."
    )
    patient_history: StrictStr = Field(
        alias="patientHistory", min_length=1, description="The patient medical history."
    )


class BillingCodesInput(FlowInput):
    soap_note: StrictStr = Field(alias="soapNote", min_length=1, description="The generated SOAP note.")


class ChatInput(FlowInput):
    message: StrictStr = Field(min_length=1, description="The latest message from the user.")
    history: Optional[List[HistoryMessage]] = None


class ContextualChatInput(ChatInput):
    context_type: Literal["landingPage", "dashboard"] = Field(alias="contextType")
    patient_data_context: Optional[StrictStr] = Field(None, alias="patientDataContext")


# ─────────────────────────────────────────────────────────────
# FLOW OUTPUTS
# No defaults or length constraints here: these classes double as the
# response_schema sent to Gemini. Non-empty checks live in validators.
# ─────────────────────────────────────────────────────────────

class FlowOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TranscribeOutput(FlowOutput):
    transcript: str = Field(description="The transcript of the patient encounter.")


class SoapNoteOutput(FlowOutput):
    soap_note: str = Field(alias="soapNote", description="The generated SOAP note.")

    @field_validator("soap_note")
    @classmethod
    def note_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("SOAP note must not be empty")
        return value.strip()


class BillingCode(FlowOutput):
    code: str = Field(description="The suggested billing code (e.g., CPT or ICD-10).")
    description: str = Field(description="A brief description of the billing code.")
    estimated_bill_amount_range: str = Field(
        alias="estimatedBillAmountRange",
        description='An estimated billing amount range for this code (e.g., "$100 - $150").',
    )

    @field_validator("code", "description")
    @classmethod
    def text_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()


class BillingCodesOutput(FlowOutput):
    billing_codes: List[BillingCode] = Field(
        alias="billingCodes",
        description="Suggested billing codes, each with its description and estimated amount range.",
    )


class ChatOutput(FlowOutput):
    response: str = Field(description="The assistant's response message.")


# ─────────────────────────────────────────────────────────────
# EHR RECORDS (Firestore documents)
# ─────────────────────────────────────────────────────────────

class EhrRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PatientData(EhrRecord):
    name: str = Field(min_length=1)
    date_of_birth: str = Field(alias="dateOfBirth")
    gender: str


class Patient(PatientData):
    id: str


class ObservationData(EhrRecord):
    code: str
    value: str
    units: Optional[str] = None
    date: str


class Observation(ObservationData):
    id: str
    patient_id: str = Field(alias="patientId")


class EncounterData(EhrRecord):
    encounter_class: str = Field(alias="class")
    start_date: str = Field(alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    reason: Optional[str] = None


class Encounter(EncounterData):
    id: str
    patient_id: str = Field(alias="patientId")

