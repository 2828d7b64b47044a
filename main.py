# main.py — MedScribeAI Backend
# Clinical documentation API: transcription, SOAP notes, billing codes, simulated EHR

import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from dotenv import load_dotenv
import firebase_admin
from firebase_admin import firestore

from dashboard import router as dashboard_router
from ehr_client import EhrClient
from flows import GenerationFlows
from llm_backends import GeminiBackend, build_backend, configure_gemini
from llm_config import ProviderConfig, load_provider_config
from patients import router as patients_router
from structured_log import log_event


# ─────────────────────────────────────────────────────────────
# SETUP & INITIALIZATION
# ─────────────────────────────────────────────────────────────

load_dotenv()

PROJECT_ID = os.getenv("GCP_PROJECT_ID", "medscribe-ehr")

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:9002",
]


def init_firestore():
    try:
        firebase_admin.initialize_app(options={"projectId": PROJECT_ID})
    except ValueError:
        log_event("INFO", "firebase_already_initialized")
    return firestore.Client(project=PROJECT_ID)


def build_flows(config: ProviderConfig) -> GenerationFlows:
    configure_gemini(config)
    backend = build_backend(config)
    # Transcription needs audio input, which only the managed backend takes.
    transcriber = backend if isinstance(backend, GeminiBackend) else GeminiBackend(config)
    return GenerationFlows(backend=backend, transcriber=transcriber)


def create_app(
    config: Optional[ProviderConfig] = None,
    flows: Optional[GenerationFlows] = None,
    ehr: Optional[EhrClient] = None,
) -> FastAPI:
    config = config or load_provider_config()

    app = FastAPI(title="MedScribeAI Backend")
    app.state.llm_config = config
    app.state.flows = flows or build_flows(config)
    app.state.ehr = ehr

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _start():
        if app.state.ehr is None:
            app.state.ehr = EhrClient(init_firestore())
        log_event("INFO", "app_started", provider=config.provider.value, project=PROJECT_ID)

    @app.on_event("shutdown")
    async def _stop():
        await app.state.flows.close()
        log_event("INFO", "app_stopped")

    # ─────────────────────────────────────────────
    # UNIVERSAL PREFLIGHT (Cloud Run safe)
    # ─────────────────────────────────────────────

    @app.options("/{rest_of_path:path}")
    async def universal_preflight(request: Request, rest_of_path: str):
        origin = request.headers.get("origin", "*")
        response = Response()
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
        response.headers["Access-Control-Allow-Credentials"] = "true"
        return response

    @app.get("/")
    async def root():
        return {"message": "MedScribeAI Backend running ✅"}

    @app.get("/health")
    async def health():
        cfg: ProviderConfig = app.state.llm_config
        return {
            "status": "ok",
            "provider": cfg.provider.value,
            "model": cfg.active_model_name,
            "transcriptionModel": cfg.gemini_model_name,
        }

    # ─────────────────────────────────────────────
    # MOUNT ROUTERS (must be last)
    # ─────────────────────────────────────────────

    app.include_router(patients_router)
    app.include_router(dashboard_router)
    return app


app = create_app()
