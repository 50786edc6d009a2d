# Domain errors raised by write paths; read paths return verdicts as data
from __future__ import annotations

from typing import Optional


class SimulatorError(Exception):
    code = "SIMULATOR_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class NotFoundError(SimulatorError, LookupError):
    """Referenced record (bed, patient, room, department, ...) does not exist"""
    code = "NOT_FOUND"


class HardStopError(SimulatorError):
    """Business rule violation that blocks the action"""
    code = "HARD_STOP"


class PermissionDeniedError(SimulatorError):
    code = "PERMISSION_DENIED"


def error_for_verdict(verdict) -> SimulatorError:
    """Turn a failed verdict into the exception a write path raises."""
    if verdict.code.endswith("_NOT_FOUND"):
        return NotFoundError(verdict.message, code=verdict.code)
    return HardStopError(verdict.message, code=verdict.code)
