# Registration validation - guarantor linkage and pediatric profile rules
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from models import (
    HARD_STOP,
    SEVERITY_NONE,
    SOFT_STOP,
    WARNING,
    Patient,
    ValidationRecord,
    Verdict,
    calculate_age,
    guarantors,
    patients,
    store_lock,
    system_defaults,
    utcnow,
    validation_records,
)

logger = logging.getLogger(__name__)

PEDIATRIC_AGE_THRESHOLD = 18
MAX_VALIDATIONS_RETURNED = 50


def pediatric_age_threshold() -> int:
    """System default pediatricAgeThreshold when configured as an int, else 18"""
    default = system_defaults.get("pediatricAgeThreshold")
    if default is not None and isinstance(default.value, int):
        return default.value
    return PEDIATRIC_AGE_THRESHOLD


def check_guarantor_linkage(patient: Patient) -> Verdict:
    """Hard Stop: every EPT record must link to an existing EAR record"""
    if not patient.guarantorId:
        return Verdict(False, HARD_STOP, "EPT_GUARANTOR_MISSING",
                       "Patient record must be linked to a guarantor (EAR).")
    if guarantors.get_by_key(patient.guarantorId) is None:
        return Verdict(False, HARD_STOP, "EPT_GUARANTOR_INVALID",
                       "Linked guarantor (EAR) record does not exist.")
    return Verdict(True, SEVERITY_NONE, "EPT_GUARANTOR_VALID", "Guarantor linkage is valid.")


def check_pediatric_guarantor(patient: Patient, today: Optional[date] = None) -> Verdict:
    """Hard Stop: a minor needs a guarantor and cannot be their own guarantor"""
    age = calculate_age(patient.dateOfBirth, today)
    threshold = pediatric_age_threshold()
    if age < threshold:
        if not patient.guarantorId:
            return Verdict(False, HARD_STOP, "PEDIATRIC_GUARANTOR_REQUIRED",
                           f"Pediatric patients (age < {threshold}) must have a separate guarantor.")
        if patient.guarantorId == patient.eptId:
            return Verdict(False, HARD_STOP, "PEDIATRIC_SELF_GUARANTOR",
                           f"Pediatric patients cannot be their own guarantor. Age: {age}")
    return Verdict(True, SEVERITY_NONE, "PEDIATRIC_GUARANTOR_VALID",
                   "Pediatric guarantor validation passed.")


def check_address_mismatch(patient: Patient) -> Verdict:
    """Soft Stop: guarantor address differs from the patient's"""
    if not patient.guarantorId:
        return Verdict(True, SEVERITY_NONE, "ADDRESS_CHECK_SKIPPED",
                       "Address validation skipped - no guarantor linked.")
    guarantor = guarantors.get_by_key(patient.guarantorId)
    if guarantor is None:
        return Verdict(True, SEVERITY_NONE, "ADDRESS_CHECK_SKIPPED",
                       "Address validation skipped - guarantor not found.")
    if patient.address and guarantor.address and patient.address != guarantor.address:
        return Verdict(False, SOFT_STOP, "ADDRESS_MISMATCH",
                       "Compliance Warning: Patient address differs from Guarantor address.")
    return Verdict(True, SEVERITY_NONE, "ADDRESS_MATCH", "Address validation passed.")


def validate_patient_registration(patient_id: str, today: Optional[date] = None) -> Dict:
    """
    Run every registration rule and report all failures together.
    isValid: no Hard Stop. canProceedWithWarning: valid with at least one Soft Stop.
    """
    patient = patients.find(patient_id)
    if patient is None:
        verdicts = [Verdict(False, HARD_STOP, "EPT_NOT_FOUND", "Patient record not found.")]
    else:
        checks = [
            check_guarantor_linkage(patient),
            check_pediatric_guarantor(patient, today),
            check_address_mismatch(patient),
        ]
        verdicts = [v for v in checks if not v.isValid or v.severity != SEVERITY_NONE]

    hard_stops = sum(1 for v in verdicts if v.severity == HARD_STOP)
    soft_stops = sum(1 for v in verdicts if v.severity == SOFT_STOP)
    return {
        "isValid": hard_stops == 0,
        "canProceedWithWarning": hard_stops == 0 and soft_stops > 0,
        "validations": [v.to_dict() for v in verdicts],
        "summary": {
            "hardStops": hard_stops,
            "softStops": soft_stops,
            "warnings": sum(1 for v in verdicts if v.severity == WARNING),
        },
    }


def record_validation(
    record_type: str,
    record_id: str,
    severity: str,
    message: str,
    code: str,
    timestamp: Optional[datetime] = None,
) -> ValidationRecord:
    """Store a validation result; mitosis purges these after 24 hours"""
    record = ValidationRecord(
        recordType=record_type,
        recordId=record_id,
        severity=severity,
        message=message,
        code=code,
        timestamp=timestamp or utcnow(),
    )
    with store_lock:
        validation_records.append(record)
    return record


def record_registration_validation(patient_id: str, today: Optional[date] = None) -> Dict:
    """Validate a registration and store each reported failure against the patient"""
    result = validate_patient_registration(patient_id, today)
    patient = patients.find(patient_id)
    record_id = patient.eptId if patient else patient_id
    for v in result["validations"]:
        record_validation("EPT", record_id, v["severity"], v["message"], v["code"])
    return result


def get_validations(record_type: str, record_id: str) -> List[ValidationRecord]:
    """Stored validations for a record, newest first"""
    matching = [
        r for r in validation_records
        if r.recordType == record_type and r.recordId == record_id
    ]
    matching.sort(key=lambda r: r.timestamp, reverse=True)
    return matching[:MAX_VALIDATIONS_RETURNED]


def clear_validations(record_type: str, record_id: str) -> Dict:
    with store_lock:
        keep = [
            r for r in validation_records
            if not (r.recordType == record_type and r.recordId == record_id)
        ]
        deleted = len(validation_records) - len(keep)
        validation_records[:] = keep
    return {"deleted": deleted}


def purge_validations_older_than(cutoff: datetime) -> int:
    """Delete stored validations with timestamp before cutoff; returns how many"""
    with store_lock:
        keep = [r for r in validation_records if r.timestamp >= cutoff]
        purged = len(validation_records) - len(keep)
        validation_records[:] = keep
    if purged:
        logger.info("Purged %d validation record(s) older than %s", purged, cutoff.isoformat())
    return purged
