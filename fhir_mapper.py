"""
fhir_mapper.py
--------------
CoverageBridge — EHR Insurance Verification Gateway — FHIR R4 Normalisation
----------------------------------------------------------------------------
Translates raw FHIR R4 resources read from the remote server into the flat
records defined in schemas.py.

Two resource types are consumed:
  • Patient   — the first HumanName, the first telecom entry whose system is
                "phone", and the first Address (passed through verbatim).
  • Coverage  — entry[0] of a ``Coverage?patient=`` search bundle; an empty
                bundle yields ``None``, the first-class "no coverage" signal.

Every function here is total: missing or malformed optional input produces
empty / absent output, never an exception.

Public API:
    extract_patient()    — Patient resource     → PatientRecord
    extract_patients()   — Patient search bundle → List[PatientRecord]
    extract_coverage()   — Coverage bundle      → CoverageRecord | None
    payer_identifier()   — CoverageRecord       → payor[0].identifier[0].value

Author: Shreelakshmi Gopinatha Rao
Project: CoverageBridge — EHR Insurance Verification Gateway
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from langsmith import traceable

from schemas import CoverageRecord, PatientRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _first(value: Any) -> Any:
    """Return value[0] for a non-empty list, else None."""
    if isinstance(value, list) and value:
        return value[0]
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _resource_id(value: Any) -> Optional[str]:
    """Resource id as a string; numeric ids are stringified, anything else is dropped."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    return _text(value)


def _find_phone(telecom: Any) -> Optional[str]:
    """Value of the first ContactPoint with system == "phone"."""
    if not isinstance(telecom, list):
        return None
    for contact in telecom:
        if isinstance(contact, dict) and contact.get("system") == "phone":
            return _text(contact.get("value"))
    return None


# ---------------------------------------------------------------------------
# Patient
# ---------------------------------------------------------------------------

@traceable
def extract_patient(raw: Dict[str, Any]) -> PatientRecord:
    """
    Normalise a FHIR R4 Patient resource.

    Args:
        raw: Patient resource dict as returned by ``GET /Patient/{id}``.

    Returns:
        PatientRecord. firstName / lastName are "" when the resource has no
        name entry, or when given[0] / family is missing or not a string
        (DSTU2 servers send ``family`` as a list). phone and address are
        None when absent.

    Example::

        rec = extract_patient({
            "id": "p1",
            "name": [{"family": "Smith", "given": ["John", "Q"]}],
            "telecom": [{"system": "email", "value": "j@x.org"},
                        {"system": "phone", "value": "555-0100"}],
        })
        rec.first_name   # "John"
        rec.phone        # "555-0100"
    """
    patient = _as_dict(raw)
    name = _as_dict(_first(patient.get("name")))
    address = _first(patient.get("address"))

    return PatientRecord(
        id=_resource_id(patient.get("id")),
        first_name=_text(_first(name.get("given"))) or "",
        last_name=_text(name.get("family")) or "",
        birth_date=_text(patient.get("birthDate")),
        gender=_text(patient.get("gender")),
        phone=_find_phone(patient.get("telecom")),
        address=address if isinstance(address, dict) else None,
    )


def extract_patients(bundle: Dict[str, Any]) -> List[PatientRecord]:
    """Normalise every Patient entry of a search bundle; [] for an empty bundle."""
    entries = _as_dict(bundle).get("entry") or []
    return [
        extract_patient(_as_dict(entry).get("resource"))
        for entry in entries
        if isinstance(entry, dict)
    ]


# ---------------------------------------------------------------------------
# Coverage
# ---------------------------------------------------------------------------

@traceable
def extract_coverage(bundle: Dict[str, Any]) -> Optional[CoverageRecord]:
    """
    Normalise the first Coverage resource of a ``Coverage?patient=`` bundle.

    Args:
        bundle: FHIR searchset Bundle (or the ``{"entry": []}`` the gateway
                client substitutes when the lookup failed).

    Returns:
        CoverageRecord built from ``entry[0].resource`` only, or None when
        the bundle has no entries. None is not an error: it means the
        patient has no coverage on file.
    """
    entries = _as_dict(bundle).get("entry")
    if not isinstance(entries, list) or not entries:
        return None

    resource = _as_dict(_as_dict(entries[0]).get("resource"))
    if len(entries) > 1:
        logger.debug(
            "fhir_mapper: %d Coverage entries returned, using entry[0] (id=%s).",
            len(entries),
            resource.get("id"),
        )

    return CoverageRecord(
        id=_resource_id(resource.get("id")),
        status=resource.get("status"),
        subscriber_id=resource.get("subscriberId"),
        payor=resource.get("payor"),
        period=resource.get("period"),
    )


def payer_identifier(coverage: Optional[CoverageRecord]) -> Optional[str]:
    """
    Resolve ``payor[0].identifier[0].value``; None when any segment is missing.

    FHIR R4 types ``Reference.identifier`` as a single Identifier rather than
    a list, so a dict at that position is read directly.
    """
    if coverage is None:
        return None
    payor = _as_dict(_first(coverage.payor))
    identifier = payor.get("identifier")
    if isinstance(identifier, list):
        identifier = _first(identifier)
    value = _as_dict(identifier).get("value")
    return value if isinstance(value, str) and value else None
