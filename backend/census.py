# Bed census - status distribution per department and across the house
from __future__ import annotations

from collections import Counter
from typing import Dict, List, Optional

from models import BED_AVAILABLE, BED_HOUSEKEEPING, BED_OCCUPIED, beds, departments, rooms

ZERO_DIST = {BED_AVAILABLE: 0.0, BED_OCCUPIED: 0.0, BED_HOUSEKEEPING: 0.0}


def _department_bed_statuses(department_id: str) -> List[str]:
    room_ids = {r.id for r in rooms.values() if r.departmentId == department_id}
    return [b.status for b in beds.values() if b.roomId in room_ids]


def get_status_distribution(statuses: List[str]) -> Dict[str, float]:
    """Share of beds in each status, rounded to 2 places."""
    if not statuses:
        return dict(ZERO_DIST)
    total = len(statuses)
    counter = Counter(statuses)
    return {status: round(counter.get(status, 0) / total, 2) for status in ZERO_DIST}


def get_department_census(department_id: str) -> Optional[Dict]:
    department = departments.find(department_id)
    if department is None:
        return None

    statuses = _department_bed_statuses(department.id)
    counter = Counter(statuses)
    return {
        "departmentId": department.id,
        "depId": department.depId,
        "name": department.name,
        "total": len(statuses),
        "available": counter.get(BED_AVAILABLE, 0),
        "occupied": counter.get(BED_OCCUPIED, 0),
        "housekeeping": counter.get(BED_HOUSEKEEPING, 0),
        "distribution": get_status_distribution(statuses),
    }


def get_census_summary() -> Dict:
    """
    Census for every department plus the house-wide distribution.
    Beds whose room has no department only count toward the house totals.
    """
    all_statuses = [b.status for b in beds.values()]
    return {
        "departments": [get_department_census(d.id) for d in departments.values()],
        "total": len(all_statuses),
        "distribution": get_status_distribution(all_statuses),
    }
