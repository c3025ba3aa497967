"""
verification.py
---------------
CoverageBridge — EHR Insurance Verification Gateway — Verification Orchestrator
--------------------------------------------------------------------------------
Sequences one insurance verification:

    fetch Patient → normalise → fetch Coverage → normalise
        → no coverage?  short-circuit with a no_coverage outcome
        → otherwise     run the eligibility check

and the batch variant that repeats the same sequence per patient id while
isolating failures per item.

Error policy:
    - Patient fetch errors propagate (PatientNotFoundError, FHIRUpstreamError).
    - Coverage fetch errors are downgraded to "no coverage" by the gateway
      client; the result is tagged coverage_lookup="failed".
    - In batch mode every per-item exception becomes a BatchFailure entry;
      the batch itself only fails for invalid input.

Key classes / functions:
    - InvalidInputError:   malformed or missing request parameters
    - InsuranceVerifier:   verify_patient (single) and verify_batch

Author: Shreelakshmi Gopinatha Rao
Project: CoverageBridge — EHR Insurance Verification Gateway
"""

from __future__ import annotations

import logging
from typing import Any, List, Union

from langsmith import traceable

from eligibility import EligibilityService
from fhir_client import FHIRClient
from fhir_mapper import extract_coverage, extract_patient
from schemas import (
    COVERAGE_FAILED,
    COVERAGE_FOUND,
    COVERAGE_NONE,
    BatchFailure,
    BatchResult,
    BatchSuccess,
    NoCoverageOutcome,
    VerificationResult,
)

logger = logging.getLogger(__name__)


class InvalidInputError(ValueError):
    """Raised for a missing patient id or a patient id list that is not a non-empty list."""


class InsuranceVerifier:
    """
    Combines the gateway client and the eligibility service.

    Args:
        client:      Connected FHIRClient (or any object exposing
                     ``get_patient`` and ``search_coverage``).
        eligibility: EligibilityService used for patients with coverage.
    """

    def __init__(self, client: FHIRClient, eligibility: EligibilityService) -> None:
        self.client = client
        self.eligibility = eligibility

    @traceable
    async def verify_patient(self, patient_id: Union[str, int]) -> VerificationResult:
        """
        Verify insurance for one patient.

        Args:
            patient_id: FHIR Patient id. Integer ids are accepted and
                        converted to their string form.

        Returns:
            VerificationResult. verification is a NoCoverageOutcome when the
            patient has no coverage (the eligibility service is not called).

        Raises:
            InvalidInputError:    patient_id missing, blank, or neither str nor int.
            PatientNotFoundError: the server has no such patient.
            FHIRUpstreamError:    any other patient fetch failure.
        """
        # HAPI-style servers use numeric ids
        if isinstance(patient_id, int) and not isinstance(patient_id, bool):
            patient_id = str(patient_id)
        if not isinstance(patient_id, str) or not patient_id.strip():
            raise InvalidInputError("Patient ID is required")

        raw_patient = await self.client.get_patient(patient_id)
        patient = extract_patient(raw_patient)

        search = await self.client.search_coverage(patient_id)
        coverage = extract_coverage(search.bundle)

        if coverage is None:
            lookup = COVERAGE_FAILED if search.failed else COVERAGE_NONE
            logger.info(
                "verification: no coverage for patient %s (lookup=%s).",
                patient_id, lookup,
            )
            return VerificationResult(
                patient=patient,
                verification=NoCoverageOutcome(),
                coverage_lookup=lookup,
            )

        report = await self.eligibility.verify_eligibility(patient, coverage)
        return VerificationResult(
            patient=patient,
            coverage=coverage,
            verification=report,
            coverage_lookup=COVERAGE_FOUND,
        )

    @traceable
    async def verify_batch(self, patient_ids: Any) -> List[BatchResult]:
        """
        Verify a list of patients one at a time, in input order.

        Args:
            patient_ids: Non-empty list of FHIR Patient ids.

        Returns:
            One entry per input id, same order: BatchSuccess, or BatchFailure
            carrying the error message when that id's verification raised.

        Raises:
            InvalidInputError: patient_ids is not a non-empty list.
        """
        if not isinstance(patient_ids, list) or not patient_ids:
            raise InvalidInputError("Array of patient IDs is required")

        results: List[BatchResult] = []
        for patient_id in patient_ids:
            try:
                outcome = await self.verify_patient(patient_id)
            except Exception as exc:
                logger.warning("verification: batch item %r failed: %s", patient_id, exc)
                results.append(BatchFailure(patient_id=str(patient_id), error=str(exc)))
                continue

            results.append(
                BatchSuccess(
                    patient_id=str(patient_id),
                    patient=outcome.patient,
                    coverage=outcome.coverage,
                    verification=outcome.verification,
                )
            )

        failed = sum(1 for r in results if isinstance(r, BatchFailure))
        logger.info(
            "verification: batch of %d complete: %d verified, %d failed.",
            len(results), len(results) - failed, failed,
        )
        return results
