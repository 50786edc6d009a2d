# Seed data - static facility structure, beds, security classes, training scenarios
import logging
from datetime import datetime
from typing import Optional

from audit import record_audit, reset_audit_log
from mitosis import initialize_templates
from models import (
    BED_AVAILABLE,
    BED_HOUSEKEEPING,
    BED_OCCUPIED,
    FEMALE,
    GENDER_NONE,
    MALE,
    Bed,
    Department,
    Facility,
    Room,
    Scenario,
    SecurityClass,
    SystemDefault,
    User,
    beds,
    departments,
    facilities,
    guarantors,
    hospital_accounts,
    patients,
    rooms,
    scenarios,
    security_classes,
    store_lock,
    system_defaults,
    users,
    validation_records,
)

logger = logging.getLogger(__name__)


def clear_all():
    """Delete every record, static and dynamic, and the audit log"""
    for table in (facilities, departments, rooms, beds, patients, guarantors,
                  hospital_accounts, security_classes, users, scenarios):
        table.clear()
    system_defaults.clear()
    validation_records.clear()
    reset_audit_log()


def _seed_facilities():
    # Facility -> Service Area -> Revenue Location
    facility = facilities.insert(Facility(
        eafId="FAC-NORTH",
        name="Health System North",
        type="Facility",
        settings={"visitationHours": "24/7", "defaultPrinter": "FAC-DEFAULT", "badgeAccess": "System Staff"},
    ))
    service_area = facilities.insert(Facility(
        eafId="SA-CHILDREN",
        name="Cook Children's",
        type="ServiceArea",
        parentId=facility.id,
        settings={"visitationHours": "8a - 8p", "defaultPrinter": "SA-DEFAULT-01", "badgeAccess": "Service Area Staff"},
    ))
    revenue_location = facilities.insert(Facility(
        eafId="RL-MAIN-PAV",
        name="Main Campus Pavilion",
        type="RevenueLocation",
        parentId=service_area.id,
        settings={"visitationHours": "9a - 9p", "defaultPrinter": "PAV-CH-01", "badgeAccess": "Campus Staff"},
    ))
    return revenue_location


def _seed_departments(revenue_location: Facility):
    peds = departments.insert(Department(
        depId="DEP-3W-PED",
        name="3 West Pediatrics",
        facilityId=revenue_location.id,
        settings={"visitationHours": "10a - 8p", "badgeAccess": "Peds Nurse"},
        description="Pediatric general care unit",
    ))
    icu = departments.insert(Department(
        depId="DEP-ICU",
        name="Intensive Care Unit",
        facilityId=revenue_location.id,
        settings={"visitationHours": "12p - 8p", "badgeAccess": "ICU Staff"},
        description="Critical care unit",
    ))
    departments.insert(Department(
        depId="DEP-ED",
        name="Emergency Department",
        facilityId=revenue_location.id,
        settings={"visitationHours": "24/7", "badgeAccess": "ED Staff"},
        description="Emergency services",
    ))
    return peds, icu


def _seed_rooms_and_beds(peds: Department, icu: Department):
    rom_3001 = rooms.insert(Room(romId="ROM-3001", name="3 West - Room 301 (Pediatrics A)",
                                 departmentId=peds.id, genderRestriction=FEMALE, privacyLevel="Semi-Private"))
    rom_3002 = rooms.insert(Room(romId="ROM-3002", name="3 West - Room 302 (Pediatrics B)",
                                 departmentId=peds.id, genderRestriction=GENDER_NONE, privacyLevel="Semi-Private"))
    rom_3003 = rooms.insert(Room(romId="ROM-3003", name="3 West - Room 303 (Pediatrics C)",
                                 departmentId=peds.id, genderRestriction=MALE, privacyLevel="Private"))
    rom_icu = rooms.insert(Room(romId="ROM-ICU-101", name="ICU Room 101",
                                departmentId=icu.id, genderRestriction=GENDER_NONE, privacyLevel="Private"))

    beds.insert(Bed(bedId="BED-3001A", roomId=rom_3001.id, name="Bed A",
                    status=BED_AVAILABLE, genderRestriction=FEMALE))
    beds.insert(Bed(bedId="BED-3001B", roomId=rom_3001.id, name="Bed B",
                    status=BED_OCCUPIED, genderRestriction=FEMALE, occupiedBy="TEMPLATE_CHILD_001"))
    beds.insert(Bed(bedId="BED-3002A", roomId=rom_3002.id, name="Bed A",
                    status=BED_AVAILABLE, genderRestriction=GENDER_NONE))
    beds.insert(Bed(bedId="BED-3002B", roomId=rom_3002.id, name="Bed B",
                    status=BED_HOUSEKEEPING, genderRestriction=GENDER_NONE))
    beds.insert(Bed(bedId="BED-3003A", roomId=rom_3003.id, name="Bed A",
                    status=BED_AVAILABLE, genderRestriction=MALE))
    beds.insert(Bed(bedId="BED-ICU-101A", roomId=rom_icu.id, name="Bed A",
                    status=BED_AVAILABLE, genderRestriction=GENDER_NONE))


def _seed_security():
    security_classes.insert(SecurityClass(
        classId="SEC-BED-PLANNER", name="Bed Planner",
        description="Command center assignment privileges",
        permissions=["BED_ASSIGN", "BED_PLANNER", "VIEW_CENSUS", "VIEW_PATIENTS"],
    ))
    security_classes.insert(SecurityClass(
        classId="SEC-REGISTRAR", name="Registrar",
        description="Registration and coverage capture",
        permissions=["REGISTRATION", "VERIFY_COVERAGE", "CREATE_PATIENT", "CREATE_GUARANTOR"],
    ))
    security_classes.insert(SecurityClass(
        classId="SEC-UNIT-NURSE", name="Unit Nurse",
        description="Unit-level patient management",
        permissions=["REGISTRATION", "VIEW_CENSUS", "VIEW_PATIENTS"],
    ))
    security_classes.insert(SecurityClass(
        classId="SEC-ADMIN", name="System Administrator",
        description="Full system access",
        permissions=["*"],
    ))

    users.insert(User(empId="EMP-PLANNER", username="bplanner", name="Bea Planner",
                      securityClasses=["SEC-BED-PLANNER"]))
    users.insert(User(empId="EMP-REGISTRAR", username="rclerk", name="Rey Clerk",
                      securityClasses=["SEC-REGISTRAR"]))
    users.insert(User(empId="EMP-NURSE", username="nunit", name="Nia Unit",
                      securityClasses=["SEC-UNIT-NURSE"]))
    users.insert(User(empId="EMP-ADMIN", username="admin", name="Ada Admin",
                      securityClasses=["SEC-ADMIN"]))


def _seed_system_defaults():
    for default in (
        SystemDefault("visitationHours", "24/7", "Default visitation hours", "General"),
        SystemDefault("defaultPrinter", "SYS-FALLBACK", "System fallback printer", "General"),
        SystemDefault("badgeAccess", "Any", "Default badge access requirement", "Security"),
        SystemDefault("pediatricAgeThreshold", 18, "Age threshold for pediatric constraints", "Validation"),
        SystemDefault("mitosisSchedule", "0 0 * * *", "Cron schedule for mitosis reset (daily at midnight)", "System"),
    ):
        system_defaults[default.key] = default


def _seed_scenarios():
    scenarios.insert(Scenario(
        scenarioId="SCENARIO-INHERITANCE-FAIL",
        name="Inheritance Fail",
        description="Department overrides Service Area visitation hours with a blank value",
        type="InheritanceFail",
        setupData={"settingKey": "visitationHours", "facilityLevel": "ServiceArea", "departmentLevel": "Department"},
        expectedOutcome="Blank department value is skipped and reported; the nearest facility value applies",
    ))
    scenarios.insert(Scenario(
        scenarioId="SCENARIO-BED-LOGIC-FAIL",
        name="Bed Logic Fail",
        description="Male patient placed into Female-only room (ROM)",
        type="BedLogicFail",
        setupData={"patientSex": MALE, "roomGenderRestriction": FEMALE},
        expectedOutcome="Hard stop should trigger, prevents assignment",
    ))
    scenarios.insert(Scenario(
        scenarioId="SCENARIO-PEDIATRIC-SELF-GUARANTOR",
        name="Pediatric Self-Guarantor",
        description="Minor registered as their own guarantor",
        type="PediatricSelfGuarantor",
        setupData={"relativeAge": 10, "guarantorId": "<patient eptId>"},
        expectedOutcome="Hard stop PEDIATRIC_SELF_GUARANTOR blocks registration",
    ))


def _link_seeded_occupants():
    """Fill the patient bed/room projection for beds seeded as occupied"""
    for bed in beds.values():
        patient = patients.get_by_key(bed.occupiedBy)
        if patient is not None:
            patient.currentBedId = bed.bedId
            patient.currentRoomId = rooms.get(bed.roomId).romId


def seed_data(with_templates: bool = True, now: Optional[datetime] = None):
    """Reset every table and load the simulator's initial state"""
    with store_lock:
        clear_all()

        revenue_location = _seed_facilities()
        peds, icu = _seed_departments(revenue_location)
        _seed_rooms_and_beds(peds, icu)
        _seed_security()
        _seed_system_defaults()
        _seed_scenarios()

        counts = {
            "facilities": len(facilities),
            "departments": len(departments),
            "rooms": len(rooms),
            "beds": len(beds),
            "securityClasses": len(security_classes),
            "systemConfig": len(system_defaults),
            "scenarios": len(scenarios),
        }
        record_audit("SYSTEM_INITIALIZED", "SYSTEM", "INIT", counts, timestamp=now)

        if with_templates:
            initialize_templates(now=now)
            _link_seeded_occupants()

    logger.info("Seed data initialized: %s", counts)
    return counts


def get_system_status():
    counts = {
        "facilities": len(facilities),
        "departments": len(departments),
        "rooms": len(rooms),
        "beds": len(beds),
        "securityClasses": len(security_classes),
        "patients": len(patients),
        "guarantors": len(guarantors),
        "hospitalAccounts": len(hospital_accounts),
    }
    return {"isInitialized": counts["facilities"] > 0 and counts["departments"] > 0, "counts": counts}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed_data()
