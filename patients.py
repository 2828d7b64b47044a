# patients.py — patient CRUD for the dashboard sidebar

from typing import List

from fastapi import APIRouter, HTTPException, Request

from ehr_client import EhrError
from models import Patient, PatientData

# ─────────────────────────────────────────────
# Router only (NO FastAPI app here)
# ─────────────────────────────────────────────

router = APIRouter(prefix="/v1/patients")


@router.get("", response_model=List[Patient])
async def list_patients(request: Request):
    try:
        return request.app.state.ehr.list_patients()
    except EhrError as e:
        raise HTTPException(500, str(e))


@router.post("", response_model=Patient, status_code=201)
async def create_patient(body: PatientData, request: Request):
    try:
        return request.app.state.ehr.create_patient(body)
    except EhrError as e:
        raise HTTPException(500, str(e))


@router.get("/{patient_id}", response_model=Patient)
async def get_patient(patient_id: str, request: Request):
    patient = request.app.state.ehr.get_patient(patient_id)
    if patient is None:
        raise HTTPException(404, "Patient not found")
    return patient


@router.put("/{patient_id}", response_model=Patient)
async def update_patient(patient_id: str, body: PatientData, request: Request):
    ehr = request.app.state.ehr
    if ehr.get_patient(patient_id) is None:
        raise HTTPException(404, "Patient not found")
    try:
        return ehr.update_patient(patient_id, body)
    except EhrError as e:
        raise HTTPException(500, str(e))


@router.delete("/{patient_id}")
async def delete_patient(patient_id: str, request: Request):
    try:
        request.app.state.ehr.delete_patient_and_related_data(patient_id)
    except EhrError as e:
        raise HTTPException(500, str(e))
    return {"deleted": patient_id}
