# dashboard.py — orchestration behind the clinician dashboard
# transcribe → SOAP note → persist encounter/observations → billing codes

import json
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from ehr_client import EhrClient, EhrError, current_date_string
from flows import GenerationFlows
from llm_errors import (
    FlowError, FlowValidationError, LLMConfigurationError, LLMInvalidResponseError, LLMTransportError,
    MalformedOutputError,
)
from models import (
    BillingCode, BillingCodesOutput, ChatOutput, Encounter, EncounterData, Observation, ObservationData,
    Patient, TranscribeOutput,
)
from structured_log import log_event

router = APIRouter(prefix="/v1")

DEFAULT_ENCOUNTER_REASON = "Clinical Documentation Session"


# ─────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────

class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PatientContext(CamelModel):
    patient: Patient
    observations: List[Observation]
    encounters: List[Encounter]
    patient_history: str = Field(alias="patientHistory")
    patient_data_context: str = Field(alias="patientDataContext")


class DocumentationRequest(CamelModel):
    encounter_transcript: str = Field(alias="encounterTranscript")


class DocumentationResponse(CamelModel):
    soap_note: str = Field(alias="soapNote")
    billing_codes: List[BillingCode] = Field(default_factory=list, alias="billingCodes")
    billing_error: Optional[str] = Field(None, alias="billingError")
    patient_data_context: str = Field(alias="patientDataContext")


class SaveNoteRequest(CamelModel):
    content: str = Field(min_length=1)


class SaveNoteResponse(CamelModel):
    note_id: str = Field(alias="noteId")


@dataclass
class SoapSummary:
    subjective: Optional[str] = None
    objective: Optional[str] = None
    assessment: Optional[str] = None
    plan: Optional[str] = None


# ---------- Helper: pull section summaries out of a SOAP note ----------

_SECTIONS = ("Subjective", "Objective", "Assessment", "Plan")


def _section(note: str, name: str) -> Optional[str]:
    others = "|".join(f"{s}:" for s in _SECTIONS if s != name)
    match = re.search(rf"{name}:\s*(.*?)(?:{others}|$)", note, flags=re.IGNORECASE | re.DOTALL)
    return match.group(1).strip() if match else None


def _first_lines(text: Optional[str], count: int, sep: str = ". ") -> Optional[str]:
    if text is None:
        return None
    return sep.join(text.split("\n")[:count]).strip() or None


def parse_soap_note_for_data(note: str) -> SoapSummary:
    return SoapSummary(
        subjective=_first_lines(_section(note, "Subjective"), 1),
        objective=_first_lines(_section(note, "Objective"), 2),
        assessment=_first_lines(_section(note, "Assessment"), 1),
        plan=_first_lines(_section(note, "Plan"), 1),
    )


# ---------- Helper: patient summaries for prompts and chat ----------

def build_patient_history(patient: Patient, observations: Sequence[Observation], encounters: Sequence[Encounter]) -> str:
    obs_summary = "; ".join(
        f"{o.code}: {o.value} {o.units or ''} ({o.date})" for o in observations[:3]
    ) or "None"
    enc_summary = "; ".join(
        f"{e.start_date}: {e.encounter_class} - {e.reason or 'N/A'}" for e in encounters[:3]
    ) or "None"
    return (
        f"Patient: {patient.name or 'N/A'}, DOB: {patient.date_of_birth or 'N/A'}, Gender: {patient.gender or 'N/A'}\n"
        f"Recent Observations: {obs_summary}\n"
        f"Recent Encounters: {enc_summary}"
    ).strip()


def serialize_patient_data_for_chat(
    patient: Patient,
    observations: Sequence[Observation],
    encounters: Sequence[Encounter],
    soap_note: str,
    history: str,
) -> str:
    return json.dumps({
        "patientSummary": {
            "id": patient.id,
            "name": patient.name,
            "dob": patient.date_of_birth,
            "gender": patient.gender,
        },
        "patientHistorySummary": history,
        "recentObservations": [
            {"code": o.code, "value": o.value, "units": o.units, "date": o.date} for o in observations[:5]
        ],
        "recentEncounters": [
            {"class": e.encounter_class, "startDate": e.start_date, "reason": e.reason} for e in encounters[:5]
        ],
        "currentSoapNote": soap_note,
    })


# ─────────────────────────────────────────────────────────────
# PIPELINE
# ─────────────────────────────────────────────────────────────

class PatientNotFound(Exception):
    pass


class DocumentationPipeline:
    def __init__(self, flows: GenerationFlows, ehr: EhrClient):
        self.flows = flows
        self.ehr = ehr

    def load_patient_context(self, patient_id: str, soap_note: str = "") -> PatientContext:
        patient = self.ehr.get_patient(patient_id)
        if patient is None:
            raise PatientNotFound(patient_id)
        observations = self.ehr.get_observations(patient_id)
        encounters = self.ehr.get_encounters(patient_id)
        history = build_patient_history(patient, observations, encounters)
        return PatientContext(
            patient=patient,
            observations=observations,
            encounters=encounters,
            patient_history=history,
            patient_data_context=serialize_patient_data_for_chat(
                patient, observations, encounters, soap_note, history
            ),
        )

    def _record_documentation(self, patient_id: str, soap_note: str):
        summary = parse_soap_note_for_data(soap_note)
        today = current_date_string()

        reason = summary.assessment or summary.subjective or DEFAULT_ENCOUNTER_REASON
        self.ehr.add_encounter(
            patient_id, EncounterData(encounter_class="documentation", start_date=today, reason=reason)
        )
        for code, value in (
            ("Diagnosis", summary.assessment),
            ("ChiefComplaint", summary.subjective),
            ("ObjectiveSummary", summary.objective),
            ("PlanSummary", summary.plan),
        ):
            if value:
                self.ehr.add_observation(patient_id, ObservationData(code=code, value=value, date=today))

    async def generate_documentation(self, patient_id: str, transcript: str) -> DocumentationResponse:
        context = self.load_patient_context(patient_id)
        log_event("INFO", "documentation_start", patient_id=patient_id, transcript_chars=len(transcript))

        soap = await self.flows.generate_soap_note({
            "patientId": patient_id,
            "encounterTranscript": transcript,
            "patientHistory": context.patient_history,
        })
        self._record_documentation(patient_id, soap.soap_note)

        billing_codes: List[BillingCode] = []
        billing_error = None
        try:
            billing_codes = (await self.flows.generate_billing_codes({"soapNote": soap.soap_note})).billing_codes
        except FlowError as e:
            # The note is already saved; billing can be retried on its own.
            billing_error = str(e)
            log_event("ERROR", "documentation_billing_failed", patient_id=patient_id, error=billing_error)

        refreshed = self.load_patient_context(patient_id, soap_note=soap.soap_note)
        log_event("INFO", "documentation_complete", patient_id=patient_id, codes=len(billing_codes))
        return DocumentationResponse(
            soap_note=soap.soap_note,
            billing_codes=billing_codes,
            billing_error=billing_error,
            patient_data_context=refreshed.patient_data_context,
        )


def _pipeline(request: Request) -> DocumentationPipeline:
    return DocumentationPipeline(request.app.state.flows, request.app.state.ehr)


def friendly_chat_error(e: Exception) -> str:
    cause = getattr(e, "cause", e)
    message = str(cause)
    if isinstance(cause, LLMConfigurationError) or "API key" in message or "Authentication" in message:
        return "There seems to be an issue connecting to the AI service. Please check the configuration."
    if isinstance(cause, (LLMInvalidResponseError, MalformedOutputError)):
        return "Received an unexpected response format from the AI. Please try again."
    if isinstance(cause, LLMTransportError) and cause.status_code is None:
        return "The request to the AI service timed out. Please check your connection and try again."
    return f"Error: {message}"


# ─────────────────────────────────────────────────────────────
# ENDPOINTS
# ─────────────────────────────────────────────────────────────

@router.post("/transcribe", response_model=TranscribeOutput)
async def transcribe(request: Request, payload: dict):
    try:
        return await request.app.state.flows.transcribe_patient_encounter(payload)
    except FlowValidationError as e:
        raise HTTPException(422, str(e))
    except FlowError as e:
        raise HTTPException(502, str(e))


@router.get("/patients/{patient_id}/context", response_model=PatientContext)
async def patient_context(patient_id: str, request: Request):
    try:
        return _pipeline(request).load_patient_context(patient_id)
    except PatientNotFound:
        raise HTTPException(404, "Patient not found")


@router.post("/patients/{patient_id}/documentation", response_model=DocumentationResponse)
async def generate_documentation(patient_id: str, body: DocumentationRequest, request: Request):
    try:
        return await _pipeline(request).generate_documentation(patient_id, body.encounter_transcript)
    except PatientNotFound:
        raise HTTPException(404, "Patient not found")
    except FlowValidationError as e:
        raise HTTPException(422, str(e))
    except FlowError as e:
        raise HTTPException(502, str(e))
    except EhrError as e:
        raise HTTPException(500, str(e))


@router.post("/billing-codes", response_model=BillingCodesOutput)
async def billing_codes(request: Request, payload: dict):
    try:
        return await request.app.state.flows.generate_billing_codes(payload)
    except FlowValidationError as e:
        raise HTTPException(422, str(e))
    except FlowError as e:
        raise HTTPException(502, str(e))


@router.post("/patients/{patient_id}/notes", response_model=SaveNoteResponse)
async def save_note(patient_id: str, body: SaveNoteRequest, request: Request):
    try:
        note_id = request.app.state.ehr.post_note(patient_id, body.content)
    except EhrError as e:
        raise HTTPException(500, str(e))
    return SaveNoteResponse(note_id=note_id)


@router.post("/chat", response_model=ChatOutput)
async def chat(request: Request, payload: dict):
    try:
        return await request.app.state.flows.chat_with_assistant(payload)
    except FlowValidationError as e:
        return ChatOutput(response=f"Invalid input: {e}")
    except FlowError as e:
        log_event("ERROR", "chat_failed", error=str(e))
        return ChatOutput(response=friendly_chat_error(e))


@router.post("/contextual-chat", response_model=ChatOutput)
async def contextual_chat(request: Request, payload: dict):
    try:
        return await request.app.state.flows.contextual_chat_with_assistant(payload)
    except FlowValidationError as e:
        return ChatOutput(response=f"Invalid input: {e}")
    except FlowError as e:
        log_event("ERROR", "contextual_chat_failed", error=str(e))
        return ChatOutput(response=f"An error occurred while processing your request. Details: {e.cause}")
