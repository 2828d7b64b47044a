# ehr_client.py — Firestore-backed simulated EHR (patients, observations, encounters, notes)

from datetime import date
from typing import List, Optional

from google.cloud.firestore_v1.base_query import FieldFilter
from firebase_admin import firestore

from models import (
    Encounter, EncounterData, Observation, ObservationData, Patient, PatientData,
)
from structured_log import log_event

PATIENTS = "patients"
OBSERVATIONS = "observations"
ENCOUNTERS = "encounters"
NOTES = "notes"


class EhrError(Exception):
    pass


def current_date_string() -> str:
    return date.today().isoformat()


def _doc_to_dict(doc) -> dict:
    return {"id": doc.id, **(doc.to_dict() or {})}


class EhrClient:
    """Thin CRUD layer over a Firestore client (firestore.Client or a test double)."""

    def __init__(self, db):
        self.db = db

    # ---------- patients ----------

    def list_patients(self) -> List[Patient]:
        try:
            docs = self.db.collection(PATIENTS).stream()
            patients = [Patient.model_validate(_doc_to_dict(d)) for d in docs]
        except Exception as e:
            log_event("ERROR", "ehr_list_patients_failed", error=str(e))
            raise EhrError("Failed to fetch patients list from Firestore.") from e
        log_event("INFO", "ehr_list_patients", count=len(patients))
        return patients

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        """None when the patient does not exist or cannot be read."""
        try:
            doc = self.db.collection(PATIENTS).document(patient_id).get()
            if not doc.exists:
                log_event("WARNING", "ehr_patient_not_found", patient_id=patient_id)
                return None
            return Patient.model_validate(_doc_to_dict(doc))
        except Exception as e:
            log_event("ERROR", "ehr_get_patient_failed", patient_id=patient_id, error=str(e))
            return None

    def create_patient(self, data: PatientData) -> Patient:
        try:
            _, ref = self.db.collection(PATIENTS).add(data.model_dump(by_alias=True))
        except Exception as e:
            log_event("ERROR", "ehr_create_patient_failed", error=str(e))
            raise EhrError("Failed to create patient in Firestore.") from e
        log_event("INFO", "ehr_patient_created", patient_id=ref.id)
        return Patient(id=ref.id, **data.model_dump())

    def update_patient(self, patient_id: str, data: PatientData) -> Patient:
        try:
            self.db.collection(PATIENTS).document(patient_id).update(data.model_dump(by_alias=True))
        except Exception as e:
            log_event("ERROR", "ehr_update_patient_failed", patient_id=patient_id, error=str(e))
            raise EhrError(f"Failed to update patient {patient_id} in Firestore.") from e
        log_event("INFO", "ehr_patient_updated", patient_id=patient_id)
        return Patient(id=patient_id, **data.model_dump())

    def delete_patient_and_related_data(self, patient_id: str):
        """Delete the patient and every observation, encounter and note in one batch."""
        batch = self.db.batch()
        try:
            batch.delete(self.db.collection(PATIENTS).document(patient_id))
            counts = {}
            for collection in (OBSERVATIONS, ENCOUNTERS, NOTES):
                docs = list(self._for_patient(collection, patient_id).stream())
                for doc in docs:
                    batch.delete(doc.reference)
                counts[collection] = len(docs)
            batch.commit()
        except Exception as e:
            log_event("ERROR", "ehr_delete_patient_failed", patient_id=patient_id, error=str(e))
            raise EhrError(f"Failed to delete patient {patient_id}.") from e
        log_event("INFO", "ehr_patient_deleted", patient_id=patient_id, **counts)

    # ---------- observations / encounters ----------

    def _for_patient(self, collection: str, patient_id: str):
        return self.db.collection(collection).where(filter=FieldFilter("patientId", "==", patient_id))

    def get_observations(self, patient_id: str, count: int = 5) -> List[Observation]:
        try:
            query = (
                self._for_patient(OBSERVATIONS, patient_id)
                .order_by("date", direction=firestore.Query.DESCENDING)
                .limit(count)
            )
            return [Observation.model_validate(_doc_to_dict(d)) for d in query.stream()]
        except Exception as e:
            log_event("ERROR", "ehr_get_observations_failed", patient_id=patient_id, error=str(e))
            return []

    def get_encounters(self, patient_id: str, count: int = 5) -> List[Encounter]:
        try:
            query = (
                self._for_patient(ENCOUNTERS, patient_id)
                .order_by("startDate", direction=firestore.Query.DESCENDING)
                .limit(count)
            )
            return [Encounter.model_validate(_doc_to_dict(d)) for d in query.stream()]
        except Exception as e:
            log_event("ERROR", "ehr_get_encounters_failed", patient_id=patient_id, error=str(e))
            return []

    def add_observation(self, patient_id: str, data: ObservationData) -> Observation:
        try:
            payload = {**data.model_dump(by_alias=True, exclude_none=True), "patientId": patient_id}
            _, ref = self.db.collection(OBSERVATIONS).add(payload)
        except Exception as e:
            log_event("ERROR", "ehr_add_observation_failed", patient_id=patient_id, error=str(e))
            raise EhrError(f"Failed to add observation for patient {patient_id} to Firestore.") from e
        log_event("INFO", "ehr_observation_added", patient_id=patient_id, code=data.code, id=ref.id)
        return Observation(id=ref.id, patient_id=patient_id, **data.model_dump())

    def add_encounter(self, patient_id: str, data: EncounterData) -> Encounter:
        try:
            payload = {**data.model_dump(by_alias=True, exclude_none=True), "patientId": patient_id}
            _, ref = self.db.collection(ENCOUNTERS).add(payload)
        except Exception as e:
            log_event("ERROR", "ehr_add_encounter_failed", patient_id=patient_id, error=str(e))
            raise EhrError(f"Failed to add encounter for patient {patient_id} to Firestore.") from e
        log_event("INFO", "ehr_encounter_added", patient_id=patient_id, id=ref.id)
        return Encounter(id=ref.id, patient_id=patient_id, **data.model_dump())

    # ---------- notes ----------

    def post_note(self, patient_id: str, content: str) -> str:
        try:
            _, ref = self.db.collection(NOTES).add({
                "patientId": patient_id,
                "content": content,
                "createdAt": firestore.SERVER_TIMESTAMP,
            })
        except Exception as e:
            log_event("ERROR", "ehr_post_note_failed", patient_id=patient_id, error=str(e))
            raise EhrError(f"Failed to post note for patient {patient_id} to Firestore.") from e
        log_event("INFO", "ehr_note_posted", patient_id=patient_id, id=ref.id)
        return ref.id
