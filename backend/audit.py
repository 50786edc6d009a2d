# Audit log - append-only record of every mutation
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from models import SYSTEM_ACTOR, AuditEntry, store_lock, to_dict

# In-memory store
_audit_log: List[AuditEntry] = []


def record_audit(
    action: str,
    record_type: str,
    record_id: str,
    changes: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> AuditEntry:
    """Append an audit entry. Entries are never updated or removed."""
    entry = AuditEntry(
        action=action,
        recordType=record_type,
        recordId=record_id,
        changes=dict(changes or {}),
        userId=user_id or SYSTEM_ACTOR,
    )
    if timestamp is not None:
        entry.timestamp = timestamp
    with store_lock:
        _audit_log.append(entry)
    return entry


def get_audit_entries(
    record_type: Optional[str] = None,
    record_id: Optional[str] = None,
    actions: Optional[Iterable[str]] = None,
    limit: Optional[int] = None,
) -> List[AuditEntry]:
    """Get matching entries, most recent first."""
    wanted = set(actions) if actions else None
    with store_lock:
        entries = list(reversed(_audit_log))
    matched = [
        e for e in entries
        if (record_type is None or e.recordType == record_type)
        and (record_id is None or e.recordId == record_id)
        and (wanted is None or e.action in wanted)
    ]
    return matched[:limit] if limit is not None else matched


def get_latest_entry(action: str) -> Optional[AuditEntry]:
    """Most recent entry for an action, by timestamp."""
    with store_lock:
        matching = [e for e in _audit_log if e.action == action]
    if not matching:
        return None
    return max(matching, key=lambda e: e.timestamp)


def audit_count() -> int:
    with store_lock:
        return len(_audit_log)


def serialize_entries(entries: List[AuditEntry]) -> List[dict]:
    return [to_dict(e) for e in entries]


def reset_audit_log():
    """Drop every entry. Only a full system reset does this."""
    global _audit_log
    with store_lock:
        _audit_log = []
