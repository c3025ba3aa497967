"""
fhir_client.py
--------------
CoverageBridge — EHR Insurance Verification Gateway — FHIR R4 Gateway Client
-----------------------------------------------------------------------------
Async read-only FHIR R4 client for the remote EHR server (SMART Health IT
sandbox by default). Three reads are supported:

    GET {base}/Patient/{id}            → get_patient()
    GET {base}/Coverage?patient={id}   → search_coverage() / get_coverage()
    GET {base}/Patient?_count=…        → search_patients()

Error translation happens here and nowhere else:
  - Patient 404                → PatientNotFoundError
  - Any other patient failure  → FHIRUpstreamError
  - Any Coverage failure       → empty bundle, never raised. The
    CoverageSearch result keeps ``failed=True`` so callers can tell a failed
    lookup from a patient without coverage.

Usage (async context manager, preferred):
    async with FHIRClient() as client:
        patient = await client.get_patient("87a339d0-8cae-418e-89c7-8651e6aab3c6")
        search  = await client.search_coverage(patient["id"])

Usage (manual lifecycle):
    client = FHIRClient()
    await client.connect()
    bundle = await client.get_coverage("p1")
    await client.close()

Author: Shreelakshmi Gopinatha Rao
Project: CoverageBridge — EHR Insurance Verification Gateway
"""

from __future__ import annotations

import logging
import os
from typing import Any, NamedTuple, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_FHIR_BASE_URL = "https://launch.smarthealthit.org/v/r4/fhir"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_SEARCH_LIMIT = 10


class FHIRClientError(Exception):
    """Base class for every error raised by FHIRClient."""


class PatientNotFoundError(FHIRClientError):
    """Raised when the server reports 404 for a Patient read."""

    def __init__(self, patient_id: str) -> None:
        self.patient_id = patient_id
        super().__init__(
            f"Patient with ID '{patient_id}' not found. "
            "Try searching for patients first."
        )


class FHIRUpstreamError(FHIRClientError):
    """Raised for transport failures, non-2xx responses and malformed bodies."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class CoverageSearch(NamedTuple):
    """Outcome of a Coverage search. ``bundle`` is always a dict with ``entry``."""

    bundle: dict[str, Any]
    failed: bool = False
    error:  Optional[str] = None


class PatientSearch(NamedTuple):
    bundle: dict[str, Any]
    url:    str


def _empty_bundle() -> dict[str, Any]:
    return {"entry": []}


class FHIRClient:
    """
    Async FHIR R4 read client.

    Args:
        base_url:  FHIR base URL. Defaults to ``FHIR_BASE_URL`` env var, then
                   the SMART Health IT R4 sandbox.
        timeout:   HTTP request timeout in seconds. Defaults to
                   ``FHIR_TIMEOUT_SECONDS`` env var, then 30.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (
            base_url
            or os.getenv("FHIR_BASE_URL", DEFAULT_FHIR_BASE_URL)
        ).rstrip("/")
        self.timeout = (
            timeout
            if timeout is not None
            else float(os.getenv("FHIR_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_S))
        )
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the underlying HTTP connection pool."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": "application/fhir+json"},
            )
            logger.debug("FHIRClient: HTTP transport initialised (%s).", self.base_url)

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.debug("FHIRClient: HTTP transport closed.")

    async def __aenter__(self) -> "FHIRClient":
        await self.connect()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    # ── Internal request helper ──────────────────────────────────────────────

    async def _get(
        self,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        GET *path* relative to the FHIR base URL and return the parsed body.

        Raises:
            RuntimeError:       if ``connect()`` / ``__aenter__`` was not called.
            FHIRUpstreamError:  on transport failure, non-2xx status (with
                                ``status_code`` set), or a non-JSON body.
        """
        if self._http is None:
            raise RuntimeError(
                "FHIRClient is not connected. "
                "Use 'async with FHIRClient() as client:' or call connect() first."
            )

        url = f"{self.base_url}{path}"
        try:
            resp = await self._http.get(url, params=params)
        except httpx.HTTPError as exc:
            raise FHIRUpstreamError(f"FHIR request failed: {exc}") from exc

        if resp.status_code not in range(200, 300):
            raise FHIRUpstreamError(
                f"FHIR server returned {resp.status_code} for GET {path}",
                status_code=resp.status_code,
            )

        try:
            body = resp.json() if resp.content else {}
        except ValueError as exc:
            raise FHIRUpstreamError(f"Malformed FHIR response for GET {path}") from exc
        if not isinstance(body, dict):
            raise FHIRUpstreamError(f"Malformed FHIR response for GET {path}")
        return body

    # ── FHIR R4 reads ────────────────────────────────────────────────────────

    async def get_patient(self, patient_id: str) -> dict[str, Any]:
        """
        Read one Patient  →  ``GET {base}/Patient/{id}``.

        Raises:
            PatientNotFoundError: the server answered 404.
            FHIRUpstreamError:    any other failure.
        """
        try:
            return await self._get(f"/Patient/{patient_id}")
        except FHIRUpstreamError as exc:
            if exc.status_code == 404:
                logger.error(
                    "FHIRClient: patient %s not found on server %s",
                    patient_id, self.base_url,
                )
                raise PatientNotFoundError(patient_id) from exc
            logger.error("FHIRClient: error fetching patient %s: %s", patient_id, exc)
            raise FHIRUpstreamError(
                "Failed to fetch patient data", status_code=exc.status_code
            ) from exc

    async def search_coverage(self, patient_id: str) -> CoverageSearch:
        """
        Search Coverage for a patient  →  ``GET {base}/Coverage?patient={id}``.

        Never raises for upstream failures: the result carries an empty
        bundle with ``failed=True`` instead.
        """
        try:
            bundle = await self._get("/Coverage", params={"patient": patient_id})
        except FHIRUpstreamError as exc:
            logger.error("FHIRClient: error fetching coverage for %s: %s", patient_id, exc)
            return CoverageSearch(bundle=_empty_bundle(), failed=True, error=str(exc))

        bundle.setdefault("entry", [])
        return CoverageSearch(bundle=bundle)

    async def get_coverage(self, patient_id: str) -> dict[str, Any]:
        """Coverage search bundle; ``{"entry": []}`` when the lookup failed."""
        return (await self.search_coverage(patient_id)).bundle

    @staticmethod
    def _patient_search_params(
        name: Optional[str],
        family: Optional[str],
        given: Optional[str],
        limit: int,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"_count": limit}
        if name:
            params["name"] = name
        if family:
            params["family"] = family
        if given:
            params["given"] = given
        return params

    def patient_search_url(
        self,
        name: Optional[str] = None,
        family: Optional[str] = None,
        given: Optional[str] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> str:
        """Full upstream URL for a Patient search, parameters percent-encoded."""
        params = self._patient_search_params(name, family, given, limit)
        return str(httpx.URL(f"{self.base_url}/Patient", params=params))

    async def search_patients(
        self,
        name: Optional[str] = None,
        family: Optional[str] = None,
        given: Optional[str] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> PatientSearch:
        """
        Search Patients  →  ``GET {base}/Patient?_count={limit}&name=…``.

        Returns:
            PatientSearch with the searchset bundle and the upstream URL.

        Raises:
            FHIRUpstreamError: on any failure.
        """
        url = self.patient_search_url(name=name, family=family, given=given, limit=limit)
        logger.debug("FHIRClient: GET %s", url)
        bundle = await self._get(
            "/Patient",
            params=self._patient_search_params(name, family, given, limit),
        )
        return PatientSearch(bundle=bundle, url=url)
