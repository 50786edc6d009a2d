# In-memory data model - facility structure, beds, registration records
from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Generic, Iterator, List, Optional, TypeVar
from uuid import uuid4

SYSTEM_ACTOR = "SYSTEM"

# Sex / gender restriction values
MALE = "Male"
FEMALE = "Female"
GENDER_NONE = "None"

# Bed status cycle: Available -> Occupied -> Housekeeping -> Available
BED_AVAILABLE = "Available"
BED_OCCUPIED = "Occupied"
BED_HOUSEKEEPING = "Housekeeping"

FACILITY_TYPES = ("Facility", "ServiceArea", "RevenueLocation")

# Validation severity tiers
HARD_STOP = "HardStop"
SOFT_STOP = "SoftStop"
WARNING = "Warning"
SEVERITY_NONE = "None"

# Every mutation (and the whole mitosis batch) runs while holding this lock
store_lock = threading.RLock()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Facility:
    """EAF record: Facility, Service Area or Revenue Location"""
    eafId: str
    name: str
    type: str
    parentId: Optional[str] = None  # internal id of the parent facility
    settings: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: new_id("eaf"))


@dataclass
class Department:
    """DEP record - leaf of the facility tree"""
    depId: str
    name: str
    facilityId: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)
    description: str = ""
    id: str = field(default_factory=lambda: new_id("dep"))


@dataclass
class SystemDefault:
    """Global fallback tier, one entry per key"""
    key: str
    value: Any
    description: str = ""
    category: str = "General"


@dataclass
class Room:
    romId: str
    name: str
    departmentId: Optional[str] = None
    genderRestriction: str = GENDER_NONE
    privacyLevel: Optional[str] = None
    id: str = field(default_factory=lambda: new_id("rom"))


@dataclass
class Bed:
    bedId: str
    roomId: str
    name: str
    status: str = BED_AVAILABLE
    genderRestriction: str = GENDER_NONE
    occupiedBy: Optional[str] = None  # patient eptId; source of truth for occupancy
    occupiedAt: Optional[datetime] = None
    releasedAt: Optional[datetime] = None
    previousPatient: Optional[str] = None
    id: str = field(default_factory=lambda: new_id("bed"))


@dataclass
class Patient:
    """EPT record. isTemplate marks a Golden Record kept across mitosis."""
    eptId: str
    mrn: str
    firstName: str
    lastName: str
    dateOfBirth: str  # YYYY-MM-DD
    sex: str
    guarantorId: Optional[str] = None  # earId
    isTemplate: bool = False
    relativeAge: Optional[float] = None  # years; < 1 means days / 365
    address: Optional[str] = None
    description: str = ""
    # Projection of bed occupancy, co-updated with Bed.occupiedBy
    currentBedId: Optional[str] = None
    currentRoomId: Optional[str] = None
    previousBedId: Optional[str] = None
    id: str = field(default_factory=lambda: new_id("ept"))

    def full_name(self) -> str:
        return f"{self.firstName} {self.lastName}"


@dataclass
class Guarantor:
    """EAR record - financially responsible party"""
    earId: str
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    isTemplate: bool = False
    id: str = field(default_factory=lambda: new_id("ear"))


@dataclass
class HospitalAccount:
    """HSP record - always dynamic"""
    hspId: str
    patientId: str  # eptId
    accountType: str
    admitDate: Optional[str] = None
    dischargeDate: Optional[str] = None
    id: str = field(default_factory=lambda: new_id("hsp"))


@dataclass
class ValidationRecord:
    recordType: str
    recordId: str
    severity: str
    message: str
    code: str
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: new_id("val"))


@dataclass
class AuditEntry:
    action: str
    recordType: str
    recordId: str
    changes: Dict[str, Any] = field(default_factory=dict)
    userId: str = SYSTEM_ACTOR
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: new_id("aud"))


@dataclass
class SecurityClass:
    classId: str
    name: str
    permissions: List[str] = field(default_factory=list)
    description: str = ""
    id: str = field(default_factory=lambda: new_id("ecl"))


@dataclass
class User:
    empId: str
    username: str
    name: str
    securityClasses: List[str] = field(default_factory=list)  # classIds
    departmentId: Optional[str] = None
    isActive: bool = True
    id: str = field(default_factory=lambda: new_id("emp"))


@dataclass
class Scenario:
    """Training scenario shown to trainees"""
    scenarioId: str
    name: str
    description: str
    type: str
    expectedOutcome: str
    setupData: Dict[str, Any] = field(default_factory=dict)
    isActive: bool = True
    id: str = field(default_factory=lambda: new_id("scn"))


@dataclass
class Verdict:
    """Result of a single validation rule"""
    isValid: bool
    severity: str
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["details"] is None:
            del data["details"]
        return data


R = TypeVar("R")


class Table(Generic[R]):
    """Records keyed by internal id, with an index on their external id field."""

    def __init__(self, key_field: str) -> None:
        self.key_field = key_field
        self._rows: Dict[str, R] = {}
        self._by_key: Dict[str, str] = {}

    def insert(self, record: R) -> R:
        key = getattr(record, self.key_field)
        if key in self._by_key:
            raise ValueError(f"Duplicate {self.key_field}: {key}")
        self._rows[record.id] = record
        self._by_key[key] = record.id
        return record

    def get(self, record_id: Optional[str]) -> Optional[R]:
        if record_id is None:
            return None
        return self._rows.get(record_id)

    def get_by_key(self, key: Optional[str]) -> Optional[R]:
        if key is None:
            return None
        record_id = self._by_key.get(key)
        return self._rows.get(record_id) if record_id else None

    def find(self, ref: Optional[str]) -> Optional[R]:
        """Look up by internal id first, then by external id."""
        return self.get(ref) or self.get_by_key(ref)

    def delete(self, record_id: str) -> Optional[R]:
        record = self._rows.pop(record_id, None)
        if record is not None:
            self._by_key.pop(getattr(record, self.key_field), None)
        return record

    def values(self) -> List[R]:
        return list(self._rows.values())

    def clear(self) -> None:
        self._rows.clear()
        self._by_key.clear()

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[R]:
        return iter(self.values())


# In-memory storage
facilities: Table[Facility] = Table("eafId")
departments: Table[Department] = Table("depId")
system_defaults: Dict[str, SystemDefault] = {}
rooms: Table[Room] = Table("romId")
beds: Table[Bed] = Table("bedId")
patients: Table[Patient] = Table("eptId")
guarantors: Table[Guarantor] = Table("earId")
hospital_accounts: Table[HospitalAccount] = Table("hspId")
validation_records: List[ValidationRecord] = []
security_classes: Table[SecurityClass] = Table("classId")
users: Table[User] = Table("empId")
scenarios: Table[Scenario] = Table("scenarioId")


def to_dict(record) -> Dict[str, Any]:
    return asdict(record)


def parse_date(value: str) -> date:
    """Parse YYYY-MM-DD (a trailing time component is ignored)"""
    return date.fromisoformat(value[:10])


def calculate_age(date_of_birth: str, today: Optional[date] = None) -> int:
    """
    Whole years between date_of_birth and today:
    year difference, minus one if the birthday has not come yet this year.
    Never negative.
    """
    today = today or date.today()
    dob = parse_date(date_of_birth)
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return max(0, age)
