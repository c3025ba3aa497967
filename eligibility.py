"""
eligibility.py
--------------
CoverageBridge — EHR Insurance Verification Gateway — Mock Eligibility Service
-------------------------------------------------------------------------------
Stands in for a payer eligibility inquiry (the EDI 270/271 round trip). No
real I/O happens: the service sleeps for a fixed delay to model remote
latency, resolves the payer from the normalised coverage, and synthesises a
report with fixed demo values.

Behaviour:
    - Payer id is read from coverage.payor[0].identifier[0].value.
    - Unknown / absent payer → status="error", message="Payer not recognized",
      eligible=False, nothing else populated.
    - Known payer → status="success", payerName from the table, two fixed
      benefit lines, eligible decided by the injected decision source
      (default: True with probability 0.80).

Both the payer table and the decision source are constructor arguments so
tests can pin either eligibility branch without patching module state.

Author: Shreelakshmi Gopinatha Rao
Project: CoverageBridge — EHR Insurance Verification Gateway
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from langsmith import traceable

from fhir_mapper import payer_identifier
from mock_data.payers import SEED_PAYERS
from schemas import (
    PAYER_NOT_RECOGNIZED,
    BenefitLine,
    CoverageRecord,
    EligibilityReport,
    PatientRecord,
    PayerInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_DELAY_S = 1.0
DEFAULT_ELIGIBILITY_RATE = 0.80

# Fixed demo plan values returned for every recognised payer.
_DEMO_PLAN: Dict[str, Any] = {
    "effective_date":   "2024-01-01",
    "termination_date": "2024-12-31",
    "copay":            "$25.00",
    "deductible":       "$1,500.00",
    "deductible_met":   "$450.00",
}

_DEMO_BENEFITS = (
    BenefitLine(service="Office Visit", coverage="Covered", copay="$25.00"),
    BenefitLine(service="Preventive Care", coverage="Covered 100%", copay="$0.00"),
)


def build_payer_table(rows: Mapping[str, Any]) -> Mapping[str, PayerInfo]:
    """Validate raw payer rows and freeze them into a read-only mapping."""
    table = {
        payer_id: row if isinstance(row, PayerInfo) else PayerInfo(**row)
        for payer_id, row in rows.items()
    }
    return MappingProxyType(table)


def random_decision(
    rate: float = DEFAULT_ELIGIBILITY_RATE,
    rng: Optional[random.Random] = None,
) -> Callable[[], bool]:
    """Decision source that returns True with probability *rate*."""
    source = rng or random.Random()

    def decide() -> bool:
        return source.random() < rate

    return decide


def _utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision and a trailing Z."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class EligibilityService:
    """
    Mock payer eligibility checker.

    Args:
        payers:   Payer table keyed by payer id. Defaults to the three seed
                  payers in mock_data/payers.py. Stored read-only.
        decide:   Zero-arg callable returning the ``eligible`` flag for a
                  recognised payer. Defaults to ``random_decision()``.
        delay_s:  Artificial latency per call, in seconds.
    """

    def __init__(
        self,
        payers: Optional[Mapping[str, Any]] = None,
        decide: Optional[Callable[[], bool]] = None,
        delay_s: float = DEFAULT_DELAY_S,
    ) -> None:
        self._payers = build_payer_table(SEED_PAYERS if payers is None else payers)
        self._decide = decide or random_decision()
        self.delay_s = delay_s

    @property
    def payers(self) -> Mapping[str, PayerInfo]:
        return self._payers

    def lookup_payer(self, payer_id: Optional[str]) -> Optional[PayerInfo]:
        if not payer_id:
            return None
        return self._payers.get(payer_id)

    @traceable
    async def verify_eligibility(
        self,
        patient: PatientRecord,
        coverage: CoverageRecord,
    ) -> EligibilityReport:
        """
        Run the mock eligibility inquiry for one patient / coverage pair.

        Args:
            patient:  Normalised patient (unused by the mock; kept so a real
                      payer adapter can use demographics for matching).
            coverage: Normalised, non-null coverage record.

        Returns:
            EligibilityReport: ``error`` for an unrecognised payer,
            otherwise ``success`` with the demo plan values.
        """
        if self.delay_s > 0:
            await asyncio.sleep(self.delay_s)

        payer_id = payer_identifier(coverage)
        payer = self.lookup_payer(payer_id)

        if payer is None:
            logger.info(
                "eligibility: payer %r not recognized (patient=%s, coverage=%s).",
                payer_id, patient.id, coverage.id,
            )
            return EligibilityReport(
                status="error",
                message=PAYER_NOT_RECOGNIZED,
                eligible=False,
            )

        eligible = bool(self._decide())
        logger.info(
            "eligibility: %s → %s (patient=%s).",
            payer_id, "eligible" if eligible else "not eligible", patient.id,
        )
        return EligibilityReport(
            status="success",
            eligible=eligible,
            payer_name=payer.name,
            benefits=list(_DEMO_BENEFITS),
            verification_date=_utc_timestamp(),
            **_DEMO_PLAN,
        )
