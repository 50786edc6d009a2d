# Registration records - patients, guarantors and hospital accounts (all DYNAMIC)
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from audit import record_audit
from errors import HardStopError, NotFoundError
from models import (
    SYSTEM_ACTOR,
    Guarantor,
    HospitalAccount,
    Patient,
    guarantors,
    hospital_accounts,
    patients,
    store_lock,
    to_dict,
)

logger = logging.getLogger(__name__)

# Fields a patient update may change; identity (eptId, mrn) and bed links are not editable here
PATIENT_UPDATABLE_FIELDS = {
    "firstName", "lastName", "dateOfBirth", "sex", "guarantorId", "address", "relativeAge",
}


def create_patient(actor_id: str = SYSTEM_ACTOR, **fields: Any) -> Patient:
    with store_lock:
        if patients.get_by_key(fields.get("eptId")) is not None:
            raise HardStopError(f"Patient {fields['eptId']} already exists", code="EPT_DUPLICATE")
        patient = patients.insert(Patient(**fields))
        record_audit("PATIENT_CREATED", "EPT", patient.eptId, fields, user_id=actor_id)
    logger.info("Created patient %s", patient.eptId)
    return patient


def get_patient(patient_id: str) -> Optional[Patient]:
    return patients.find(patient_id)


def list_patients(include_templates: bool = False, limit: int = 50) -> List[Patient]:
    rows = [p for p in patients.values() if include_templates or not p.isTemplate]
    return rows[:limit]


def update_patient(patient_id: str, updates: Dict[str, Any], actor_id: str = SYSTEM_ACTOR) -> Patient:
    with store_lock:
        patient = patients.find(patient_id)
        if patient is None:
            raise NotFoundError("Patient not found", code="PATIENT_NOT_FOUND")
        changes = {k: v for k, v in updates.items() if k in PATIENT_UPDATABLE_FIELDS}
        for key, value in changes.items():
            setattr(patient, key, value)
        record_audit("PATIENT_UPDATED", "EPT", patient.eptId, changes, user_id=actor_id)
    return patient


def delete_patient(patient_id: str, actor_id: str = SYSTEM_ACTOR) -> Dict:
    with store_lock:
        patient = patients.find(patient_id)
        if patient is None:
            raise NotFoundError("Patient not found", code="PATIENT_NOT_FOUND")
        patients.delete(patient.id)
        record_audit("PATIENT_DELETED", "EPT", patient.eptId, {}, user_id=actor_id)
    return {"success": True}


def create_guarantor(actor_id: str = SYSTEM_ACTOR, **fields: Any) -> Guarantor:
    with store_lock:
        if guarantors.get_by_key(fields.get("earId")) is not None:
            raise HardStopError(f"Guarantor {fields['earId']} already exists", code="EAR_DUPLICATE")
        guarantor = guarantors.insert(Guarantor(**fields))
        record_audit("GUARANTOR_CREATED", "EAR", guarantor.earId, fields, user_id=actor_id)
    return guarantor


def list_guarantors(limit: int = 50) -> List[Guarantor]:
    return guarantors.values()[:limit]


def create_hospital_account(actor_id: str = SYSTEM_ACTOR, **fields: Any) -> HospitalAccount:
    """Open an HSP for an existing patient"""
    with store_lock:
        patient = patients.find(fields.get("patientId"))
        if patient is None:
            raise NotFoundError("Patient not found", code="PATIENT_NOT_FOUND")
        fields["patientId"] = patient.eptId
        if hospital_accounts.get_by_key(fields.get("hspId")) is not None:
            raise HardStopError(f"Hospital account {fields['hspId']} already exists", code="HSP_DUPLICATE")
        account = hospital_accounts.insert(HospitalAccount(**fields))
        record_audit("HOSPITAL_ACCOUNT_CREATED", "HSP", account.hspId, fields, user_id=actor_id)
    return account


def list_hospital_accounts(patient_id: Optional[str] = None) -> List[HospitalAccount]:
    if patient_id is None:
        return hospital_accounts.values()
    patient = patients.find(patient_id)
    ept_id = patient.eptId if patient else patient_id
    return [a for a in hospital_accounts.values() if a.patientId == ept_id]


def serialize(records) -> List[dict]:
    return [to_dict(r) for r in records]
