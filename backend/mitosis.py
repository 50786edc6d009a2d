# Mitosis reset engine - nightly purge of dynamic records, date-slide of Golden Records
from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from audit import get_audit_entries, get_latest_entry, record_audit
from models import (
    FEMALE,
    MALE,
    SYSTEM_ACTOR,
    Guarantor,
    Patient,
    guarantors,
    hospital_accounts,
    patients,
    store_lock,
    utcnow,
)
from validation import purge_validations_older_than

logger = logging.getLogger(__name__)

MITOSIS_INTERVAL = timedelta(hours=24)
VALIDATION_RETENTION = timedelta(hours=24)

# Golden Records created by initialize_templates()
TEMPLATE_GUARANTORS = [
    {
        "earId": "TEMPLATE_GUARANTOR_001",
        "name": "John Doe Sr.",
        "address": "123 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip": "62701",
    },
    {
        "earId": "TEMPLATE_GUARANTOR_002",
        "name": "Mary Smith",
        "address": "456 Oak Ave",
        "city": "Springfield",
        "state": "IL",
        "zip": "62702",
    },
    {
        # The adult template is their own guarantor
        "earId": "TEMPLATE_ADULT_001",
        "name": "Jane Johnson",
        "address": "789 Elm St",
        "city": "Springfield",
        "state": "IL",
        "zip": "62703",
    },
]

TEMPLATE_PATIENTS = [
    {
        "eptId": "TEMPLATE_INFANT_001",
        "mrn": "T000001",
        "firstName": "Baby",
        "lastName": "Doe",
        "sex": MALE,
        "guarantorId": "TEMPLATE_GUARANTOR_001",
        "relativeAge": 0.008,  # ~3 days
        "address": "123 Main St",
        "description": "3-day-old infant template",
    },
    {
        "eptId": "TEMPLATE_CHILD_001",
        "mrn": "T000002",
        "firstName": "Johnny",
        "lastName": "Smith",
        "sex": MALE,
        "guarantorId": "TEMPLATE_GUARANTOR_002",
        "relativeAge": 10,
        "address": "456 Oak Ave",
        "description": "10-year-old child template",
    },
    {
        "eptId": "TEMPLATE_ADULT_001",
        "mrn": "T000003",
        "firstName": "Jane",
        "lastName": "Johnson",
        "sex": FEMALE,
        "guarantorId": "TEMPLATE_ADULT_001",
        "relativeAge": 35,
        "address": "789 Elm St",
        "description": "35-year-old adult template (self-guarantor)",
    },
]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _subtract_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year - years, day=28)


def slide_date_of_birth(relative_age: float, today: date) -> date:
    """
    Date of birth that keeps a template at relative_age as of today.
    Under one year the age is days / 365; otherwise whole years.
    """
    if relative_age < 1:
        return today - timedelta(days=_round_half_up(relative_age * 365))
    return _subtract_years(today, int(math.floor(relative_age)))


def run_mitosis(actor_id: str = SYSTEM_ACTOR, now: Optional[datetime] = None) -> Dict:
    """
    Purge DYNAMIC records and refresh templates:
    1. delete non-template patients
    2. delete guarantors no template patient references
    3. delete all hospital accounts
    4. delete stored validations older than 24 hours
    5. date-slide templates carrying a relativeAge
    Runs as one exclusive batch under the store lock.
    """
    now = now or utcnow()
    results = {
        "patientsDeleted": 0,
        "guarantorsDeleted": 0,
        "hospitalAccountsDeleted": 0,
        "templatesUpdated": 0,
        "timestamp": now.isoformat(),
    }

    with store_lock:
        template_guarantor_ids = {
            p.guarantorId for p in patients.values() if p.isTemplate and p.guarantorId
        }

        for patient in patients.values():
            if patient.isTemplate is not True:
                patients.delete(patient.id)
                results["patientsDeleted"] += 1

        for guarantor in guarantors.values():
            if guarantor.earId not in template_guarantor_ids:
                guarantors.delete(guarantor.id)
                results["guarantorsDeleted"] += 1

        for account in hospital_accounts.values():
            hospital_accounts.delete(account.id)
            results["hospitalAccountsDeleted"] += 1

        purge_validations_older_than(now - VALIDATION_RETENTION)

        today = now.date()
        for template in patients.values():
            if template.relativeAge is None:
                continue
            template.dateOfBirth = slide_date_of_birth(template.relativeAge, today).isoformat()
            results["templatesUpdated"] += 1

        record_audit("MITOSIS_RESET", "SYSTEM", "MITOSIS", results, user_id=actor_id, timestamp=now)

    logger.info(
        "Mitosis complete: %d patient(s), %d guarantor(s), %d account(s) purged; %d template(s) slid",
        results["patientsDeleted"],
        results["guarantorsDeleted"],
        results["hospitalAccountsDeleted"],
        results["templatesUpdated"],
    )
    return results


def trigger_mitosis_manually(actor_id: str, now: Optional[datetime] = None) -> Dict:
    """Admin-triggered run; the trigger itself is audited before the run"""
    now = now or utcnow()
    with store_lock:
        record_audit(
            "MITOSIS_MANUAL_TRIGGER", "SYSTEM", "MITOSIS",
            {"triggeredBy": actor_id},
            user_id=actor_id,
            timestamp=now,
        )
        return run_mitosis(actor_id=actor_id, now=now)


def get_last_mitosis_run() -> Optional[Dict]:
    last_run = get_latest_entry("MITOSIS_RESET")
    if last_run is None:
        return None
    return {
        "timestamp": last_run.timestamp.isoformat(),
        "results": last_run.changes,
        "triggeredBy": last_run.userId,
    }


def should_run_mitosis(now: Optional[datetime] = None) -> Dict:
    """True when mitosis never ran or the last run is more than 24 hours old"""
    now = now or utcnow()
    last_run = get_latest_entry("MITOSIS_RESET")
    if last_run is None:
        return {"shouldRun": True, "reason": "No previous mitosis run found"}

    should_run = last_run.timestamp < now - MITOSIS_INTERVAL
    return {
        "shouldRun": should_run,
        "reason": "Last run was more than 24 hours ago" if should_run else "Mitosis ran recently",
        "lastRun": last_run.timestamp.isoformat(),
    }


def get_mitosis_stats(limit: int = 10) -> List[Dict]:
    """Summaries of past runs, most recent first"""
    runs = get_audit_entries(record_type="SYSTEM", record_id="MITOSIS", actions=["MITOSIS_RESET"], limit=limit)
    return [
        {"timestamp": run.timestamp.isoformat(), "results": run.changes, "triggeredBy": run.userId}
        for run in runs
    ]


def initialize_templates(now: Optional[datetime] = None) -> Dict:
    """Create the Golden Records once; a no-op when any template patient exists"""
    now = now or utcnow()
    with store_lock:
        existing = [p for p in patients.values() if p.isTemplate]
        if existing:
            return {"message": "Templates already initialized", "existingCount": len(existing)}

        results = {"templatesCreated": 0, "guarantorsCreated": 0}
        for record in TEMPLATE_GUARANTORS:
            if guarantors.get_by_key(record["earId"]) is None:
                guarantors.insert(Guarantor(isTemplate=True, **record))
                results["guarantorsCreated"] += 1

        today = now.date()
        for record in TEMPLATE_PATIENTS:
            dob = slide_date_of_birth(record["relativeAge"], today)
            patients.insert(Patient(dateOfBirth=dob.isoformat(), isTemplate=True, **record))
            results["templatesCreated"] += 1

        record_audit("TEMPLATES_INITIALIZED", "SYSTEM", "TEMPLATES", results, timestamp=now)

    logger.info("Initialized %d template patient(s)", results["templatesCreated"])
    return results
