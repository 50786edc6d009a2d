# Facility structure and the Rule of Specificity (settings bubble-up)
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from audit import record_audit
from errors import NotFoundError
from models import (
    SYSTEM_ACTOR,
    Department,
    Facility,
    departments,
    facilities,
    store_lock,
    system_defaults,
)

logger = logging.getLogger(__name__)

# Upper bound on facility levels walked above a department
MAX_HIERARCHY_DEPTH = 32

SOURCE_DEPARTMENT = "DEPARTMENT"
SOURCE_SYSTEM_DEFAULT = "SYSTEM_DEFAULT"
SOURCE_NOT_CONFIGURED = "NOT_CONFIGURED"
SOURCE_NOT_FOUND = "NOT_FOUND"


def facility_source(facility: Facility) -> str:
    """Source label for a facility tier, e.g. FACILITY_REVENUELOCATION"""
    return f"FACILITY_{facility.type.upper()}"


@dataclass
class ResolvedSetting:
    """
    Effective value of one setting for a department.
    blankedAt lists the tiers holding an explicit None that resolution skipped.
    """
    value: Any
    source: str
    blankedAt: List[str] = field(default_factory=list)
    departmentId: Optional[str] = None
    departmentName: Optional[str] = None
    facilityId: Optional[str] = None
    facilityName: Optional[str] = None
    facilityType: Optional[str] = None
    description: Optional[str] = None
    error: Optional[str] = None

    @property
    def explicitly_blanked(self) -> bool:
        return bool(self.blankedAt)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None or k == "value"}


def walk_facility_chain(facility_id: Optional[str]) -> List[Facility]:
    """
    Facilities from facility_id up to the root, nearest first.
    Stops at a missing parent, a repeated facility or MAX_HIERARCHY_DEPTH levels.
    """
    chain: List[Facility] = []
    seen = set()
    current_id = facility_id
    while current_id:
        if current_id in seen:
            logger.warning("Facility hierarchy cycle at %s; stopping bubble-up", current_id)
            break
        if len(chain) >= MAX_HIERARCHY_DEPTH:
            logger.warning(
                "Facility hierarchy deeper than %d levels; stopping bubble-up", MAX_HIERARCHY_DEPTH
            )
            break
        facility = facilities.get(current_id)
        if facility is None:
            break
        seen.add(current_id)
        chain.append(facility)
        current_id = facility.parentId
    return chain


def resolve_setting(department_id: str, key: str) -> ResolvedSetting:
    """
    Resolve a setting for a department:
    Department -> Revenue Location -> Service Area -> Facility -> System Default.
    The first non-None value wins; an explicit None falls through to the next tier.
    """
    department = departments.find(department_id)
    if department is None:
        return ResolvedSetting(value=None, source=SOURCE_NOT_FOUND, error="Department not found")

    blanked: List[str] = []

    if key in department.settings:
        if department.settings[key] is not None:
            return ResolvedSetting(
                value=department.settings[key],
                source=SOURCE_DEPARTMENT,
                departmentId=department.id,
                departmentName=department.name,
            )
        blanked.append(SOURCE_DEPARTMENT)

    for facility in walk_facility_chain(department.facilityId):
        if key not in facility.settings:
            continue
        if facility.settings[key] is None:
            blanked.append(facility_source(facility))
            continue
        return ResolvedSetting(
            value=facility.settings[key],
            source=facility_source(facility),
            blankedAt=blanked,
            facilityId=facility.id,
            facilityName=facility.name,
            facilityType=facility.type,
        )

    default = system_defaults.get(key)
    if default is not None:
        return ResolvedSetting(
            value=default.value,
            source=SOURCE_SYSTEM_DEFAULT,
            blankedAt=blanked,
            description=default.description,
        )

    return ResolvedSetting(
        value=None,
        source=SOURCE_NOT_CONFIGURED,
        blankedAt=blanked,
        error=f"Setting '{key}' not found in hierarchy",
    )


def department_summary(department: Department) -> Dict[str, Any]:
    return {"id": department.id, "name": department.name, "depId": department.depId}


def get_department_settings(department_id: str) -> Dict:
    """All settings for a department with their sources (department keys + system default keys)."""
    department = departments.find(department_id)
    if department is None:
        return {"error": "Department not found"}

    # dict.fromkeys keeps first-seen order while removing duplicates
    keys = list(dict.fromkeys(list(department.settings.keys()) + list(system_defaults.keys())))
    return {
        "department": department_summary(department),
        "settings": {key: resolve_setting(department.id, key).to_dict() for key in keys},
    }


def get_facility_hierarchy(department_id: str) -> Optional[List[Dict]]:
    """Department, each ancestor facility, then the system defaults tier."""
    department = departments.find(department_id)
    if department is None:
        return None

    hierarchy: List[Dict] = [
        {
            "level": "Department",
            "id": department.id,
            "name": department.name,
            "identifier": department.depId,
            "settings": dict(department.settings),
        }
    ]
    for facility in walk_facility_chain(department.facilityId):
        hierarchy.append({
            "level": facility.type,
            "id": facility.id,
            "name": facility.name,
            "identifier": facility.eafId,
            "settings": dict(facility.settings),
            "parentId": facility.parentId,
        })
    hierarchy.append({
        "level": "System Defaults",
        "settings": {d.key: d.value for d in system_defaults.values()},
    })
    return hierarchy


def set_department_setting(
    department_id: str, key: str, value: Any, actor_id: str = SYSTEM_ACTOR
) -> Dict:
    """Set (or blank, with value=None) a department-level setting"""
    with store_lock:
        department = departments.find(department_id)
        if department is None:
            raise NotFoundError("Department not found", code="DEPARTMENT_NOT_FOUND")
        old_value = department.settings.get(key)
        department.settings[key] = value
        record_audit(
            "SETTING_UPDATE", "DEP", department.depId,
            {"settingKey": key, "oldValue": old_value, "newValue": value},
            user_id=actor_id,
        )
    logger.info("Department %s setting %s: %r -> %r", department.depId, key, old_value, value)
    return {"success": True, "departmentId": department.id, "settingKey": key, "settingValue": value}


def clear_department_setting(department_id: str, key: str, actor_id: str = SYSTEM_ACTOR) -> Dict:
    """Remove a department-level setting so the key inherits again"""
    with store_lock:
        department = departments.find(department_id)
        if department is None:
            raise NotFoundError("Department not found", code="DEPARTMENT_NOT_FOUND")
        existed = key in department.settings
        old_value = department.settings.pop(key, None)
        if existed:
            record_audit(
                "SETTING_CLEARED", "DEP", department.depId,
                {"settingKey": key, "oldValue": old_value},
                user_id=actor_id,
            )
    return {"success": True, "departmentId": department.id, "settingKey": key, "removed": existed}


def set_facility_setting(
    facility_id: str, key: str, value: Any, actor_id: str = SYSTEM_ACTOR
) -> Dict:
    """Set a facility-level setting; it bubbles down to every department below"""
    with store_lock:
        facility = facilities.find(facility_id)
        if facility is None:
            raise NotFoundError("Facility not found", code="FACILITY_NOT_FOUND")
        old_value = facility.settings.get(key)
        facility.settings[key] = value
        record_audit(
            "SETTING_UPDATE", "EAF", facility.eafId,
            {"settingKey": key, "oldValue": old_value, "newValue": value},
            user_id=actor_id,
        )
    logger.info("Facility %s setting %s: %r -> %r", facility.eafId, key, old_value, value)
    return {"success": True, "facilityId": facility.id, "settingKey": key, "settingValue": value}


def validate_inheritance(department_id: str, expected_settings: List[Dict[str, str]]) -> Dict:
    """Compare the actual source of each setting with the source a trainee expects"""
    results = []
    for expected in expected_settings:
        actual = resolve_setting(department_id, expected["key"])
        results.append({
            "settingKey": expected["key"],
            "expectedSource": expected["expectedSource"],
            "actualSource": actual.source,
            "actualValue": actual.value,
            "isValid": actual.source == expected["expectedSource"],
        })

    valid = sum(1 for r in results if r["isValid"])
    return {
        "isValid": valid == len(results),
        "results": results,
        "summary": {"total": len(results), "valid": valid, "invalid": len(results) - valid},
    }


def create_inheritance_fail_scenario(
    facility_id: str, department_id: str, key: str, actor_id: str = SYSTEM_ACTOR
) -> Dict:
    """
    Inheritance Fail training scenario: a facility carries a value and the
    department blanks it. Resolution skips the blank and reports it in blankedAt.
    """
    with store_lock:
        set_facility_setting(facility_id, key, "EXPECTED_VALUE", actor_id=actor_id)
        set_department_setting(department_id, key, None, actor_id=actor_id)
        resolved = resolve_setting(department_id, key)
    return {
        "scenarioCreated": True,
        "type": "InheritanceFail",
        "message": f"Setting '{key}' is blanked at the department and resolves from {resolved.source}",
        "resolved": resolved.to_dict(),
    }
