# Backend main entry point - ADT training simulator API
import logging
import os
from datetime import date
from dotenv import load_dotenv
load_dotenv()  # Load .env so DEMO_MODE / LOG_LEVEL work for local runs
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Literal, Optional

import bed_management
import census
import facility_structure
import mitosis
import registration
import security
import validation
from audit import get_audit_entries, serialize_entries
from errors import HardStopError, NotFoundError, PermissionDeniedError, SimulatorError
from models import SYSTEM_ACTOR, departments, facilities, scenarios, security_classes, to_dict
from seed import get_system_status, seed_data

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize seed data
seed_data()

app = FastAPI(title="ADT Training Simulator API")


def _is_demo_mode() -> bool:
    """True only when DEMO_MODE env var is explicitly 'true' (case-insensitive)."""
    return os.environ.get("DEMO_MODE", "").lower() == "true"

# Configure CORS - local dev front end plus an optional deployed one
_allowed_origins = [
    "http://localhost:5173",
    "http://localhost:3000",
]
_frontend_url = os.environ.get("FRONTEND_URL", "")
if _frontend_url:
    _allowed_origins.append(_frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, exc: SimulatorError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": {"code": exc.code, "message": exc.message}})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(404, exc)


@app.exception_handler(HardStopError)
async def hard_stop_handler(request: Request, exc: HardStopError):
    return _error_response(409, exc)


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return _error_response(403, exc)


def _valid_calendar_date(value: Optional[str]) -> Optional[str]:
    """Reject YYYY-MM-DD strings that are not real dates, e.g. 2020-02-30"""
    if value is not None:
        date.fromisoformat(value)
    return value


# Request models
class SettingValue(BaseModel):
    value: Any = None
    actorId: str = SYSTEM_ACTOR


class ExpectedSetting(BaseModel):
    key: str
    expectedSource: str


class InheritanceCheckRequest(BaseModel):
    expectedSettings: List[ExpectedSetting]


class BedAssignmentRequest(BaseModel):
    patientId: str
    actorId: str = SYSTEM_ACTOR


class ActorRequest(BaseModel):
    actorId: str = SYSTEM_ACTOR


class PatientCreate(BaseModel):
    eptId: str
    mrn: str
    firstName: str
    lastName: str
    dateOfBirth: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    sex: Literal["Male", "Female"]
    guarantorId: Optional[str] = None
    isTemplate: bool = False
    relativeAge: Optional[float] = Field(default=None, ge=0)
    address: Optional[str] = None

    check_date_of_birth = field_validator("dateOfBirth")(_valid_calendar_date)


class PatientUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    dateOfBirth: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    sex: Optional[Literal["Male", "Female"]] = None
    guarantorId: Optional[str] = None
    address: Optional[str] = None

    check_date_of_birth = field_validator("dateOfBirth")(_valid_calendar_date)


class GuarantorCreate(BaseModel):
    earId: str
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None


class HospitalAccountCreate(BaseModel):
    hspId: str
    patientId: str
    accountType: str
    admitDate: Optional[str] = None
    dischargeDate: Optional[str] = None


class ValidationCreate(BaseModel):
    recordType: str
    recordId: str
    severity: Literal["HardStop", "SoftStop", "Warning"]
    message: str
    code: str


class AccessCheckRequest(BaseModel):
    empId: str
    permissions: List[str]


class InheritanceScenarioRequest(BaseModel):
    facilityId: str
    departmentId: str
    settingKey: str = "visitationHours"


class BedLogicScenarioRequest(BaseModel):
    roomId: str
    patientId: str


@app.get("/")
def read_root():
    return {"message": "ADT Training Simulator API"}

@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/system/status")
def system_status():
    return get_system_status()


# Facility structure / settings inheritance
@app.get("/facilities")
def list_facilities(facilityType: Optional[str] = Query(default=None, alias="type")):
    return [to_dict(f) for f in facilities.values() if facilityType is None or f.type == facilityType]


@app.get("/departments")
def list_departments():
    return [to_dict(d) for d in departments.values()]


@app.get("/departments/{department_id}/settings")
def get_department_settings(department_id: str):
    """Every setting for a department with the tier it resolved from"""
    result = facility_structure.get_department_settings(department_id)
    if "error" in result:
        raise HTTPException(status_code=404, detail=result["error"])
    return result


@app.get("/departments/{department_id}/settings/{key}")
def resolve_setting(department_id: str, key: str):
    resolved = facility_structure.resolve_setting(department_id, key)
    if resolved.source == facility_structure.SOURCE_NOT_FOUND:
        raise HTTPException(status_code=404, detail=resolved.error)
    return resolved.to_dict()


@app.put("/departments/{department_id}/settings/{key}")
def set_department_setting(department_id: str, key: str, body: SettingValue):
    """Set a department value; a null value blanks the setting at this level"""
    security.require_permissions(body.actorId, security.ADMIN)
    return facility_structure.set_department_setting(department_id, key, body.value, actor_id=body.actorId)


@app.delete("/departments/{department_id}/settings/{key}")
def clear_department_setting(department_id: str, key: str, actorId: str = SYSTEM_ACTOR):
    security.require_permissions(actorId, security.ADMIN)
    return facility_structure.clear_department_setting(department_id, key, actor_id=actorId)


@app.put("/facilities/{facility_id}/settings/{key}")
def set_facility_setting(facility_id: str, key: str, body: SettingValue):
    security.require_permissions(body.actorId, security.ADMIN)
    return facility_structure.set_facility_setting(facility_id, key, body.value, actor_id=body.actorId)


@app.get("/departments/{department_id}/hierarchy")
def get_facility_hierarchy(department_id: str):
    hierarchy = facility_structure.get_facility_hierarchy(department_id)
    if hierarchy is None:
        raise HTTPException(status_code=404, detail="Department not found")
    return hierarchy


@app.post("/departments/{department_id}/validate-inheritance")
def validate_inheritance(department_id: str, body: InheritanceCheckRequest):
    if departments.find(department_id) is None:
        raise HTTPException(status_code=404, detail="Department not found")
    return facility_structure.validate_inheritance(
        department_id, [e.model_dump() for e in body.expectedSettings]
    )


# Bed management
@app.get("/beds/{bed_id}/validate")
def validate_bed_assignment(bed_id: str, patientId: str):
    """Validation verdict as data; not-found cases are reported, not raised"""
    return bed_management.validate_bed_assignment(bed_id, patientId).to_dict()


@app.post("/beds/{bed_id}/assign")
def assign_patient_to_bed(bed_id: str, body: BedAssignmentRequest):
    security.require_permissions(body.actorId, security.BED_ASSIGN)
    return bed_management.assign_patient_to_bed(bed_id, body.patientId, actor_id=body.actorId)


@app.post("/beds/{bed_id}/release")
def release_patient_from_bed(bed_id: str, body: Optional[ActorRequest] = None):
    actor_id = body.actorId if body else SYSTEM_ACTOR
    security.require_permissions(actor_id, security.BED_ASSIGN)
    return bed_management.release_patient_from_bed(bed_id, actor_id=actor_id)


@app.post("/beds/{bed_id}/clean")
def mark_bed_clean(bed_id: str, body: Optional[ActorRequest] = None):
    actor_id = body.actorId if body else SYSTEM_ACTOR
    security.require_permissions(actor_id, security.BED_ASSIGN)
    return bed_management.mark_bed_clean(bed_id, actor_id=actor_id)


@app.get("/patients/{patient_id}/available-beds")
def list_available_beds_for_patient(patient_id: str, departmentId: Optional[str] = None):
    result = bed_management.list_available_beds_for_patient(patient_id, departmentId)
    if "error" in result:
        raise HTTPException(status_code=404, detail=result["error"])
    return result


@app.get("/rooms/{room_id}/beds")
def get_room_bed_status(room_id: str):
    result = bed_management.get_room_bed_status(room_id)
    if "error" in result:
        raise HTTPException(status_code=404, detail=result["error"])
    return result


@app.get("/census")
def get_census():
    return census.get_census_summary()


@app.get("/departments/{department_id}/census")
def get_department_census(department_id: str):
    result = census.get_department_census(department_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Department not found")
    return result


# Registration
@app.post("/patients", status_code=201)
def create_patient(patient: PatientCreate):
    return to_dict(registration.create_patient(**patient.model_dump()))


@app.get("/patients")
def list_patients(includeTemplates: bool = False, limit: int = Query(default=50, ge=1, le=500)):
    return registration.serialize(registration.list_patients(includeTemplates, limit))


@app.get("/patients/{patient_id}")
def get_patient(patient_id: str):
    patient = registration.get_patient(patient_id)
    if patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return to_dict(patient)


@app.patch("/patients/{patient_id}")
def update_patient(patient_id: str, updates: PatientUpdate):
    return to_dict(registration.update_patient(patient_id, updates.model_dump(exclude_unset=True)))


@app.delete("/patients/{patient_id}")
def delete_patient(patient_id: str):
    return registration.delete_patient(patient_id)


@app.get("/patients/{patient_id}/registration-validation")
def validate_patient_registration(patient_id: str, record: bool = False):
    """All Hard Stops / Soft Stops for a patient; record=true also stores them"""
    if record:
        return validation.record_registration_validation(patient_id)
    return validation.validate_patient_registration(patient_id)


@app.post("/guarantors", status_code=201)
def create_guarantor(guarantor: GuarantorCreate):
    return to_dict(registration.create_guarantor(**guarantor.model_dump()))


@app.get("/guarantors")
def list_guarantors(limit: int = Query(default=50, ge=1, le=500)):
    return registration.serialize(registration.list_guarantors(limit))


@app.post("/hospital-accounts", status_code=201)
def create_hospital_account(account: HospitalAccountCreate):
    return to_dict(registration.create_hospital_account(**account.model_dump()))


@app.get("/hospital-accounts")
def list_hospital_accounts(patientId: Optional[str] = None):
    return registration.serialize(registration.list_hospital_accounts(patientId))


@app.post("/validations", status_code=201)
def record_validation(body: ValidationCreate):
    record = validation.record_validation(body.recordType, body.recordId, body.severity, body.message, body.code)
    return to_dict(record)


@app.get("/validations/{record_type}/{record_id}")
def get_validations(record_type: str, record_id: str):
    return [to_dict(r) for r in validation.get_validations(record_type, record_id)]


@app.delete("/validations/{record_type}/{record_id}")
def clear_validations(record_type: str, record_id: str):
    return validation.clear_validations(record_type, record_id)


# Mitosis
@app.post("/mitosis/run")
def run_mitosis():
    """Scheduled run, attributed to SYSTEM"""
    return mitosis.run_mitosis()


@app.post("/mitosis/trigger")
def trigger_mitosis(body: ActorRequest):
    security.require_permissions(body.actorId, security.ADMIN)
    return mitosis.trigger_mitosis_manually(body.actorId)


@app.get("/mitosis/should-run")
def should_run_mitosis():
    return mitosis.should_run_mitosis()


@app.get("/mitosis/last-run")
def get_last_mitosis_run():
    return {"lastRun": mitosis.get_last_mitosis_run()}


@app.get("/mitosis/stats")
def get_mitosis_stats(limit: int = Query(default=10, ge=1, le=100)):
    return mitosis.get_mitosis_stats(limit)


@app.post("/mitosis/templates")
def initialize_templates():
    return mitosis.initialize_templates()


# Security
@app.get("/security/classes")
def list_security_classes():
    return [to_dict(c) for c in security_classes.values()]


@app.get("/security/users/{emp_id}/permissions")
def get_user_permissions(emp_id: str):
    return {"empId": emp_id, "permissions": sorted(security.get_user_permissions(emp_id))}


@app.post("/security/check")
def check_access(body: AccessCheckRequest):
    return security.check_access(body.empId, body.permissions)


# Audit
@app.get("/audit")
def get_audit_log(
    recordType: Optional[str] = None,
    recordId: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
):
    entries = get_audit_entries(recordType, recordId, [action] if action else None, limit)
    return serialize_entries(entries)


# Training scenarios
@app.get("/scenarios")
def list_scenarios():
    return [to_dict(s) for s in scenarios.values() if s.isActive]


@app.get("/demo/status")
def demo_status():
    """Returns whether demo mode is enabled. Only for frontend visibility gate."""
    return {"demoMode": _is_demo_mode()}


@app.post("/demo/reset")
def demo_reset(body: Optional[ActorRequest] = None):
    """
    Reset the simulator to its seeded state. Only available when DEMO_MODE=true,
    and only to administrators.
    Clears every record and the audit log, then re-seeds static data and templates.
    """
    if not _is_demo_mode():
        raise HTTPException(status_code=404, detail="Demo reset not available")
    actor_id = body.actorId if body else SYSTEM_ACTOR
    security.require_permissions(actor_id, security.ADMIN)
    seed_data()
    logger.info("Simulator reset to seed state by %s", actor_id)
    return {"status": "ok"}


@app.post("/demo/scenario/inheritance-fail")
def demo_scenario_inheritance_fail(body: InheritanceScenarioRequest):
    if not _is_demo_mode():
        raise HTTPException(status_code=404, detail="Demo scenarios not available")
    return facility_structure.create_inheritance_fail_scenario(
        body.facilityId, body.departmentId, body.settingKey
    )


@app.post("/demo/scenario/bed-logic-fail")
def demo_scenario_bed_logic_fail(body: BedLogicScenarioRequest):
    if not _is_demo_mode():
        raise HTTPException(status_code=404, detail="Demo scenarios not available")
    return bed_management.create_bed_logic_fail_scenario(body.roomId, body.patientId)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
