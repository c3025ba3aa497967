"""
main.py
-------
CoverageBridge — EHR Insurance Verification Gateway — FastAPI server
---------------------------------------------------------------------
Exposes the insurance verification flow as a REST API. Patient and
Coverage resources are read from a remote FHIR R4 server, normalised, and
combined with the mock eligibility service.

Endpoints:
    GET  /health                     — Service health check
    GET  /api/patients/search        — Proxy a Patient search (name/family/given/limit)
    GET  /api/patient/{id}           — One normalised patient; 404 if unknown
    GET  /api/coverage/{patientId}   — Normalised coverage or null; never 404
    POST /api/verify-insurance       — Full verification for {patientId}
    POST /api/verify-batch           — Verification for {patientIds: [...]}, per-item errors

Error responses always have the shape {"success": false, "error": "<message>"}:
    400 invalid input · 404 patient not found · 500 upstream / unexpected errors.

Run:
    python main.py                     (uses PORT, default 3000)
    uvicorn main:app --port 3000

Author: Shreelakshmi Gopinatha Rao
Project: CoverageBridge — EHR Insurance Verification Gateway
"""

import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from dotenv import load_dotenv

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from eligibility import DEFAULT_DELAY_S, EligibilityService
from fhir_client import (
    DEFAULT_FHIR_BASE_URL,
    DEFAULT_SEARCH_LIMIT,
    FHIRClient,
    FHIRUpstreamError,
    PatientNotFoundError,
)
from fhir_mapper import extract_coverage, extract_patient, extract_patients
from verification import InsuranceVerifier, InvalidInputError

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# ── Config ─────────────────────────────────────────────────────────────────────

VERSION = "1.0.0"
SERVICE_NAME = "EHR Insurance Verification API"

PORT = int(os.getenv("PORT", "3000"))
FHIR_BASE_URL = os.getenv("FHIR_BASE_URL", DEFAULT_FHIR_BASE_URL).rstrip("/")
ELIGIBILITY_DELAY_S = float(os.getenv("ELIGIBILITY_DELAY_SECONDS", str(DEFAULT_DELAY_S)))
CORS_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
]


# ── App lifespan: shared FHIR client ────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    client = FHIRClient(base_url=FHIR_BASE_URL)
    await client.connect()
    app.state.fhir_client = client
    app.state.verifier = InsuranceVerifier(
        client=client,
        eligibility=EligibilityService(delay_s=ELIGIBILITY_DELAY_S),
    )
    logger.info("%s running on port %d", SERVICE_NAME, PORT)
    logger.info("Health check: http://localhost:%d/health", PORT)
    logger.info("FHIR Server: %s", FHIR_BASE_URL)
    try:
        yield
    finally:
        await client.close()


app = FastAPI(
    title=SERVICE_NAME,
    version=VERSION,
    description="EHR-to-payer insurance verification prototype over FHIR R4.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS or ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Dependencies ───────────────────────────────────────────────────────────────

def get_fhir_client(request: Request) -> FHIRClient:
    return request.app.state.fhir_client


def get_verifier(request: Request) -> InsuranceVerifier:
    return request.app.state.verifier


# ── Request models ─────────────────────────────────────────────────────────────

class VerifyInsuranceRequest(BaseModel):
    """Request body for POST /api/verify-insurance."""
    model_config = ConfigDict(populate_by_name=True)

    patient_id: Optional[Any] = Field(default=None, alias="patientId")


class VerifyBatchRequest(BaseModel):
    """Request body for POST /api/verify-batch. Validated by the verifier, not here."""
    model_config = ConfigDict(populate_by_name=True)

    patient_ids: Optional[Any] = Field(default=None, alias="patientIds")


# ── Error handlers ─────────────────────────────────────────────────────────────

def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
    )


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    return _error_response(400, str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies or query parameters are invalid input, not 422."""
    errors = exc.errors()
    if not errors:
        return _error_response(400, "Invalid request")
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ())]
    field = ".".join(loc[1:]) or ".".join(loc) or "request"
    return _error_response(400, f"Invalid request parameter '{field}': {first.get('msg', 'invalid value')}")


@app.exception_handler(PatientNotFoundError)
async def not_found_handler(request: Request, exc: PatientNotFoundError) -> JSONResponse:
    return _error_response(404, str(exc))


@app.exception_handler(FHIRUpstreamError)
async def upstream_error_handler(request: Request, exc: FHIRUpstreamError) -> JSONResponse:
    return _error_response(500, str(exc))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, str(exc))


# ── Routes ─────────────────────────────────────────────────────────────────────

@app.get("/health")
def health_check() -> dict:
    """
    Return service health status.

    Returns:
        dict: status, service, version, fhirServer, timestamp.
    """
    return {
        "status": "OK",
        "service": SERVICE_NAME,
        "version": VERSION,
        "fhirServer": FHIR_BASE_URL,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/patients/search")
async def search_patients(
    name: Optional[str] = None,
    family: Optional[str] = None,
    given: Optional[str] = None,
    limit: int = Query(default=DEFAULT_SEARCH_LIMIT, ge=1),
    client: FHIRClient = Depends(get_fhir_client),
) -> dict:
    """
    Search the FHIR server for patients, useful for finding valid ids.

    Returns:
        dict: success, patients (normalised), total, searchUrl.
    """
    result = await client.search_patients(name=name, family=family, given=given, limit=limit)
    patients = [p.to_wire() for p in extract_patients(result.bundle)]
    return {
        "success": True,
        "patients": patients,
        "total": result.bundle.get("total") or len(patients),
        "searchUrl": result.url,
    }


@app.get("/api/patient/{patient_id}")
async def get_patient(
    patient_id: str,
    client: FHIRClient = Depends(get_fhir_client),
) -> dict:
    raw = await client.get_patient(patient_id)
    return {"success": True, "patient": extract_patient(raw).to_wire()}


@app.get("/api/coverage/{patient_id}")
async def get_coverage(
    patient_id: str,
    client: FHIRClient = Depends(get_fhir_client),
) -> dict:
    """Coverage lookups soft-fail: an upstream error reports coverage=null."""
    bundle = await client.get_coverage(patient_id)
    coverage = extract_coverage(bundle)
    return {
        "success": True,
        "coverage": coverage.to_wire() if coverage else None,
    }


@app.post("/api/verify-insurance")
async def verify_insurance(
    req: Optional[VerifyInsuranceRequest] = Body(default=None),
    verifier: InsuranceVerifier = Depends(get_verifier),
) -> dict:
    """
    Fetch patient and coverage, then run the eligibility check.

    Returns:
        dict: success, patient, coverage (omitted when none), verification.
    """
    patient_id = req.patient_id if req else None
    result = await verifier.verify_patient(patient_id)
    return {"success": True, **result.to_wire()}


@app.post("/api/verify-batch")
async def verify_batch(
    req: Optional[VerifyBatchRequest] = Body(default=None),
    verifier: InsuranceVerifier = Depends(get_verifier),
) -> dict:
    """
    Verify several patients in order; one failure never aborts the batch.

    Returns:
        dict: success, results (one entry per patient id, input order).
    """
    patient_ids = req.patient_ids if req else None
    results = await verifier.verify_batch(patient_ids)
    return {"success": True, "results": [r.to_wire() for r in results]}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=PORT)
