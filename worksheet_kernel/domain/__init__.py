"""
Pure domain layer.

State machine definition, tooth notation, display numbering and the
clock abstraction.  No dependencies on the ORM, the database or I/O.
"""

from worksheet_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from worksheet_kernel.domain.worksheet_lifecycle import (
    TERMINAL_STATUSES,
    WORKSHEET_WORKFLOW,
    Role,
    SideEffect,
    WorksheetStatus,
    validate_transition,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Role",
    "SideEffect",
    "WorksheetStatus",
    "TERMINAL_STATUSES",
    "WORKSHEET_WORKFLOW",
    "validate_transition",
]
