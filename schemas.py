"""
schemas.py
----------
CoverageBridge — EHR Insurance Verification Gateway — Pydantic Data Contracts
------------------------------------------------------------------------------
Pydantic v2 models that act as the data contract between the FHIR
normalisation layer, the eligibility stub, the verification orchestrator
and the HTTP surface.

Naming policy
-------------
Python attributes are snake_case.  The JSON wire format is camelCase
(``firstName``, ``subscriberId``, ``payerName`` …) to stay compatible with
the FHIR field names the records are derived from.  Every model accepts
either spelling on construction (``populate_by_name=True``) and
``to_wire()`` emits the camelCase form with absent top-level optional
values omitted.  Pass-through FHIR structures (``address``, ``payor``,
``period`` …) are emitted verbatim, including any nulls inside them.

Immutability
------------
Records (PatientRecord, CoverageRecord, EligibilityReport …) are frozen.
A record lives for one request and is never mutated after construction.

Public API
----------
    PatientRecord       Flat Patient (first name entry, first phone, first address).
    CoverageRecord      Flat Coverage from entry[0] of a Coverage search bundle.
    BenefitLine         One per-service benefit line item.
    EligibilityReport   Output of the eligibility stub (success or error).
    NoCoverageOutcome   Terminal "no coverage" outcome, not an error.
    VerificationResult  Patient + coverage + verification for one patient.
    BatchSuccess        Batch entry for a patient that verified end to end.
    BatchFailure        Batch entry for a patient whose verification raised.
    PayerInfo           One row of the payer lookup table.

Author: Shreelakshmi Gopinatha Rao
Project: CoverageBridge — EHR Insurance Verification Gateway
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Tag values for VerificationResult.coverage_lookup
COVERAGE_FOUND = "found"
COVERAGE_NONE = "none"
COVERAGE_FAILED = "failed"

NO_COVERAGE_MESSAGE = "No insurance coverage found for patient"
PAYER_NOT_RECOGNIZED = "Payer not recognized"


class _Record(BaseModel):
    """Base for every frozen, alias-serialised record."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,   # some servers emit numeric ids
    )

    def to_wire(self) -> Dict[str, Any]:
        """Return the camelCase JSON-ready dict, omitting None values."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Normalised FHIR records
# ---------------------------------------------------------------------------

class PatientRecord(_Record):
    """
    Flat view of a FHIR R4 Patient resource.

    first_name / last_name default to empty string when the resource has no
    usable name entry.  phone and address are omitted from the wire payload
    when absent.  address is passed through verbatim (FHIR ``Address``) and
    is not type-checked.
    """

    id:          Optional[str] = None
    first_name:  str           = Field(default="", alias="firstName")
    last_name:   str           = Field(default="", alias="lastName")
    birth_date:  Optional[str] = Field(default=None, alias="birthDate")
    gender:      Optional[str] = None
    phone:       Optional[str] = None
    address:     Any           = None


class CoverageRecord(_Record):
    """
    Flat view of the first Coverage resource in a search bundle.

    status, subscriber_id, payor and period are copied from the resource
    untouched, whatever their shape (an R5 Identifier ``subscriberId``
    stays an object).
    """

    id:            Optional[str] = None
    status:        Any           = None
    subscriber_id: Any           = Field(default=None, alias="subscriberId")
    payor:         Any           = None
    period:        Any           = None


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------

class PayerInfo(_Record):
    """One payer table row."""

    name:                  str
    active:                bool = True
    verification_endpoint: str  = Field(default="mock", alias="verificationEndpoint")


class BenefitLine(_Record):
    service:  str
    coverage: str
    copay:    str


class EligibilityReport(_Record):
    """
    Result of an eligibility check.

    An ``error`` report carries only status, message and eligible=False.
    A ``success`` report carries every demo field and exactly the benefit
    lines produced by the stub.
    """

    status:            Literal["success", "error"]
    eligible:          bool                        = False
    message:           Optional[str]               = None
    payer_name:        Optional[str]               = Field(default=None, alias="payerName")
    effective_date:    Optional[str]               = Field(default=None, alias="effectiveDate")
    termination_date:  Optional[str]               = Field(default=None, alias="terminationDate")
    copay:             Optional[str]               = None
    deductible:        Optional[str]               = None
    deductible_met:    Optional[str]               = Field(default=None, alias="deductibleMet")
    benefits:          Optional[List[BenefitLine]] = None
    verification_date: Optional[str]               = Field(default=None, alias="verificationDate")


class NoCoverageOutcome(_Record):
    """Valid terminal outcome when the patient has no coverage on file."""

    status:  Literal["no_coverage"] = "no_coverage"
    message: str                    = NO_COVERAGE_MESSAGE


# ---------------------------------------------------------------------------
# Orchestrator results
# ---------------------------------------------------------------------------

class VerificationResult(_Record):
    """
    Combined outcome of one single-patient verification.

    coverage_lookup distinguishes "no coverage exists" (``none``) from
    "coverage lookup failed and was downgraded" (``failed``).  It is kept
    out of the wire payload, which reports both as ``no_coverage``.
    """

    patient:         PatientRecord
    coverage:        Optional[CoverageRecord]                    = None
    verification:    Union[EligibilityReport, NoCoverageOutcome]
    coverage_lookup: Literal["found", "none", "failed"]          = Field(
        default=COVERAGE_FOUND, exclude=True
    )


class BatchSuccess(_Record):
    patient_id:   str                                         = Field(alias="patientId")
    patient:      PatientRecord
    coverage:     Optional[CoverageRecord]                    = None
    verification: Union[EligibilityReport, NoCoverageOutcome]

    def to_wire(self) -> Dict[str, Any]:
        """Success entries always carry the coverage key, null when absent."""
        data = super().to_wire()
        data.setdefault("coverage", None)
        return data


class BatchFailure(_Record):
    patient_id: str = Field(alias="patientId")
    error:      str


BatchResult = Union[BatchSuccess, BatchFailure]
