# Bed management - gender/availability hard stops, assign and release
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from audit import record_audit
from errors import HardStopError, NotFoundError, error_for_verdict
from models import (
    BED_AVAILABLE,
    BED_HOUSEKEEPING,
    BED_OCCUPIED,
    FEMALE,
    GENDER_NONE,
    HARD_STOP,
    MALE,
    SEVERITY_NONE,
    SYSTEM_ACTOR,
    Bed,
    Patient,
    Room,
    Verdict,
    beds,
    departments,
    patients,
    rooms,
    store_lock,
    to_dict,
    utcnow,
)

logger = logging.getLogger(__name__)


def gender_blocks(restriction: Optional[str], sex: str) -> bool:
    """True when a Male/Female restriction excludes a patient of this sex"""
    return bool(restriction) and restriction != GENDER_NONE and restriction != sex


def _hard_stop(code: str, message: str, details: Optional[Dict] = None) -> Verdict:
    return Verdict(isValid=False, severity=HARD_STOP, code=code, message=message, details=details)


def validate_bed_assignment(bed_id: str, patient_id: str) -> Verdict:
    """
    Check a patient-to-bed assignment. Rules run in order and the first
    failure is returned:
    bed exists, patient exists, bed Available, room exists,
    bed gender restriction, room gender restriction.
    """
    bed = beds.find(bed_id)
    if bed is None:
        return _hard_stop("BED_NOT_FOUND", "Bed not found.")

    patient = patients.find(patient_id)
    if patient is None:
        return _hard_stop("PATIENT_NOT_FOUND", "Patient not found.")

    if bed.status != BED_AVAILABLE:
        return _hard_stop(
            "BED_NOT_AVAILABLE",
            f"Bed is {bed.status}, not available for assignment.",
            {"bedName": bed.name, "bedStatus": bed.status},
        )

    room = rooms.get(bed.roomId)
    if room is None:
        return _hard_stop("ROOM_NOT_FOUND", "Room not found for this bed.")

    if gender_blocks(bed.genderRestriction, patient.sex):
        return _hard_stop(
            "BED_GENDER_MISMATCH",
            f"Cannot assign {patient.sex} patient to {bed.genderRestriction}-only bed.",
            {
                "bedName": bed.name,
                "bedGenderRestriction": bed.genderRestriction,
                "patientSex": patient.sex,
                "patientName": patient.full_name(),
            },
        )

    if gender_blocks(room.genderRestriction, patient.sex):
        return _hard_stop(
            "ROOM_GENDER_MISMATCH",
            f"Cannot assign {patient.sex} patient to {room.genderRestriction}-only room.",
            {
                "roomName": room.name,
                "roomGenderRestriction": room.genderRestriction,
                "patientSex": patient.sex,
                "patientName": patient.full_name(),
            },
        )

    return Verdict(
        isValid=True,
        severity=SEVERITY_NONE,
        code="BED_ASSIGNMENT_VALID",
        message="Bed assignment validation passed.",
        details={"bedName": bed.name, "roomName": room.name, "patientName": patient.full_name()},
    )


def assign_patient_to_bed(
    bed_id: str,
    patient_id: str,
    actor_id: str = SYSTEM_ACTOR,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Re-validate and occupy the bed. Validation and every write happen under the
    store lock, so a bed can never be handed to two patients.
    """
    now = now or utcnow()
    with store_lock:
        verdict = validate_bed_assignment(bed_id, patient_id)
        if not verdict.isValid:
            logger.info("Bed assignment refused (%s): %s", verdict.code, verdict.message)
            raise error_for_verdict(verdict)

        bed = beds.find(bed_id)
        patient = patients.find(patient_id)
        room = rooms.get(bed.roomId)

        bed.status = BED_OCCUPIED
        bed.occupiedBy = patient.eptId
        bed.occupiedAt = now

        patient.currentBedId = bed.bedId
        patient.currentRoomId = room.romId

        record_audit(
            "BED_ASSIGNMENT", "BED", bed.bedId,
            {
                "patientId": patient.eptId,
                "patientName": patient.full_name(),
                "bedId": bed.bedId,
                "bedName": bed.name,
            },
            user_id=actor_id,
            timestamp=now,
        )

    logger.info("Assigned %s to %s", patient.eptId, bed.bedId)
    return {
        "success": True,
        "bedId": bed.bedId,
        "patientId": patient.eptId,
        "message": f"Patient {patient.full_name()} assigned to bed {bed.name}",
    }


def release_patient_from_bed(
    bed_id: str,
    actor_id: str = SYSTEM_ACTOR,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Send the bed to Housekeeping and clear the occupant's bed/room links.
    Succeeds even when the occupant no longer exists.
    """
    now = now or utcnow()
    with store_lock:
        bed = beds.find(bed_id)
        if bed is None:
            raise NotFoundError("Bed not found", code="BED_NOT_FOUND")

        previous_patient_id = bed.occupiedBy
        bed.status = BED_HOUSEKEEPING
        bed.occupiedBy = None
        bed.releasedAt = now
        bed.previousPatient = previous_patient_id

        patient = patients.get_by_key(previous_patient_id)
        if patient is not None:
            patient.currentBedId = None
            patient.currentRoomId = None
            patient.previousBedId = bed.bedId

        record_audit(
            "BED_RELEASE", "BED", bed.bedId,
            {"previousPatientId": previous_patient_id, "bedId": bed.bedId, "bedName": bed.name},
            user_id=actor_id,
            timestamp=now,
        )

    logger.info("Released %s (previous occupant %s)", bed.bedId, previous_patient_id)
    return {
        "success": True,
        "bedId": bed.bedId,
        "message": f"Bed {bed.name} released and marked for housekeeping",
    }


def mark_bed_clean(bed_id: str, actor_id: str = SYSTEM_ACTOR) -> Dict:
    """Housekeeping -> Available"""
    with store_lock:
        bed = beds.find(bed_id)
        if bed is None:
            raise NotFoundError("Bed not found", code="BED_NOT_FOUND")
        if bed.status != BED_HOUSEKEEPING:
            raise HardStopError(
                f"Bed is {bed.status}, only Housekeeping beds can be marked clean.",
                code="BED_NOT_IN_HOUSEKEEPING",
            )
        bed.status = BED_AVAILABLE
        record_audit("BED_CLEANED", "BED", bed.bedId, {"bedId": bed.bedId}, user_id=actor_id)
    return {"success": True, "bedId": bed.bedId, "message": f"Bed {bed.name} is available"}


def _is_compatible(bed: Bed, room: Room, patient: Patient) -> bool:
    return not gender_blocks(bed.genderRestriction, patient.sex) and not gender_blocks(
        room.genderRestriction, patient.sex
    )


def list_available_beds_for_patient(patient_id: str, department_id: Optional[str] = None) -> Dict:
    """Available beds whose bed and room restrictions both accept the patient"""
    patient = patients.find(patient_id)
    if patient is None:
        return {"error": "Patient not found", "availableBeds": [], "totalAvailable": 0}

    department_key = None
    if department_id:
        department = departments.find(department_id)
        department_key = department.id if department else department_id

    available: List[Dict] = []
    for bed in beds.values():
        if bed.status != BED_AVAILABLE:
            continue
        room = rooms.get(bed.roomId)
        if room is None:
            continue
        if department_key and room.departmentId != department_key:
            continue
        if not _is_compatible(bed, room, patient):
            continue
        available.append({"bed": to_dict(bed), "room": to_dict(room), "isCompatible": True})

    return {
        "patient": {
            "id": patient.id,
            "eptId": patient.eptId,
            "name": patient.full_name(),
            "sex": patient.sex,
        },
        "availableBeds": available,
        "totalAvailable": len(available),
    }


def get_room_bed_status(room_id: str) -> Dict:
    """Beds of a room with their occupants and a per-status count"""
    room = rooms.find(room_id)
    if room is None:
        return {"error": "Room not found"}

    room_beds = [b for b in beds.values() if b.roomId == room.id]
    bed_statuses = []
    for bed in room_beds:
        patient_info = None
        if bed.status == BED_OCCUPIED and bed.occupiedBy:
            patient = patients.get_by_key(bed.occupiedBy)
            if patient is not None:
                patient_info = {
                    "eptId": patient.eptId,
                    "name": patient.full_name(),
                    "sex": patient.sex,
                    "mrn": patient.mrn,
                }
        bed_statuses.append({"bed": to_dict(bed), "patient": patient_info})

    return {
        "room": to_dict(room),
        "beds": bed_statuses,
        "summary": {
            "total": len(room_beds),
            "available": sum(1 for b in room_beds if b.status == BED_AVAILABLE),
            "occupied": sum(1 for b in room_beds if b.status == BED_OCCUPIED),
            "housekeeping": sum(1 for b in room_beds if b.status == BED_HOUSEKEEPING),
        },
    }


def create_bed_logic_fail_scenario(room_id: str, patient_id: str, actor_id: str = SYSTEM_ACTOR) -> Dict:
    """Bed Logic Fail training scenario: Female-only room, Male patient"""
    with store_lock:
        room = rooms.find(room_id)
        patient = patients.find(patient_id)
        if room is None or patient is None:
            raise NotFoundError("Room or patient not found")
        room.genderRestriction = FEMALE
        patient.sex = MALE
        record_audit(
            "SCENARIO_CREATED", "ROM", room.romId,
            {"type": "BedLogicFail", "patientId": patient.eptId},
            user_id=actor_id,
        )
    return {
        "scenarioCreated": True,
        "type": "BedLogicFail",
        "message": "Attempting to assign Male patient to Female-only room will fail",
        "room": {"id": room.romId, "name": room.name, "genderRestriction": FEMALE},
        "patient": {"id": patient.eptId, "name": patient.full_name(), "sex": MALE},
    }
