"""
Worksheet lifecycle state machine (``worksheet_kernel.domain.worksheet_lifecycle``).

Responsibility
--------------
The static, closed definition of the worksheet state machine: the state
set, the roles, the role-gated edges, the side effects declared on entry
to each state, and the transition validator.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.  The lifecycle service reads
the current status inside its transaction and hands it to
``validate_transition``; the dispatcher runs ``side_effects_on_enter``.

Invariants enforced
-------------------
* The state set, the edges and the effect kinds are closed enums; nothing
  is looked up by string name at dispatch time.
* Terminal states (completed, cancelled, voided) have no outgoing edges.
* Validation order is fixed: unknown current state, then edge membership,
  then role.

Failure modes
-------------
* ``InvalidStateError`` -- stored status is not a member of the state set.
* ``IllegalTransitionError`` -- target not reachable from current.
* ``UnauthorizedTransitionError`` -- role may not enter the target.
"""

from __future__ import annotations

from enum import Enum

from worksheet_kernel.domain.workflow import Transition, Workflow
from worksheet_kernel.exceptions import (
    IllegalTransitionError,
    InvalidStateError,
    UnauthorizedTransitionError,
)
from worksheet_kernel.logging_config import get_logger

logger = get_logger("domain.worksheet_lifecycle")


class WorksheetStatus(str, Enum):
    """Lifecycle status of a worksheet."""

    EDITABLE = "editable"
    IN_PRODUCTION = "in_production"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    VOIDED = "voided"


class Role(str, Enum):
    """Roles supplied by the authentication layer."""

    ADMIN = "admin"
    TECHNICIAN = "technician"
    QC_INSPECTOR = "qc_inspector"
    INVOICING = "invoicing"


class SideEffect(str, Enum):
    """Closed set of effects a state may declare on entry."""

    CONSUME_MATERIALS = "consume_materials"
    STAMP_MANUFACTURE_DATE = "stamp_manufacture_date"
    GENERATE_COMPLIANCE_DOCUMENT = "generate_compliance_document"
    STAMP_COMPLETION_DATE = "stamp_completion_date"
    RESET_ORDER = "reset_order"


TERMINAL_STATUSES: frozenset[WorksheetStatus] = frozenset({
    WorksheetStatus.COMPLETED,
    WorksheetStatus.CANCELLED,
    WorksheetStatus.VOIDED,
})

_ADMIN = frozenset({Role.ADMIN.value})
_PRODUCTION = frozenset({Role.ADMIN.value, Role.TECHNICIAN.value})
_REVIEW = frozenset({Role.ADMIN.value, Role.QC_INSPECTOR.value, Role.TECHNICIAN.value})
_DELIVERY = frozenset({Role.ADMIN.value, Role.INVOICING.value, Role.TECHNICIAN.value})


def _t(src: WorksheetStatus, dst: WorksheetStatus, action: str, roles: frozenset[str]) -> Transition:
    return Transition(
        from_state=src.value,
        to_state=dst.value,
        action=action,
        allowed_roles=roles,
    )


_S = WorksheetStatus

WORKSHEET_WORKFLOW = Workflow(
    name="worksheet_lifecycle",
    description="Dental device worksheet from editing through delivery",
    initial_state=_S.EDITABLE.value,
    states=tuple(s.value for s in WorksheetStatus),
    transitions=(
        # Forward path
        _t(_S.EDITABLE, _S.IN_PRODUCTION, "start_production", _PRODUCTION),
        _t(_S.IN_PRODUCTION, _S.PENDING_REVIEW, "submit_for_review", _PRODUCTION),
        _t(_S.PENDING_REVIEW, _S.APPROVED, "approve", _REVIEW),
        _t(_S.PENDING_REVIEW, _S.REJECTED, "reject", _REVIEW),
        _t(_S.APPROVED, _S.COMPLETED, "complete", _DELIVERY),
        # Rework
        _t(_S.REJECTED, _S.IN_PRODUCTION, "rework", _PRODUCTION),
        # Cancellation
        _t(_S.EDITABLE, _S.CANCELLED, "cancel", _PRODUCTION),
        _t(_S.IN_PRODUCTION, _S.CANCELLED, "cancel", _PRODUCTION),
        _t(_S.PENDING_REVIEW, _S.CANCELLED, "cancel", _PRODUCTION),
        _t(_S.REJECTED, _S.CANCELLED, "cancel", _PRODUCTION),
        _t(_S.APPROVED, _S.CANCELLED, "cancel", _ADMIN),
        # Administrative correction
        _t(_S.EDITABLE, _S.VOIDED, "void", _ADMIN),
        _t(_S.IN_PRODUCTION, _S.VOIDED, "void", _ADMIN),
        _t(_S.PENDING_REVIEW, _S.VOIDED, "void", _ADMIN),
        _t(_S.APPROVED, _S.VOIDED, "void", _ADMIN),
        _t(_S.REJECTED, _S.VOIDED, "void", _ADMIN),
    ),
    terminal_states=tuple(s.value for s in TERMINAL_STATUSES),
    entry_effects={
        _S.IN_PRODUCTION.value: (SideEffect.CONSUME_MATERIALS.value,),
        _S.APPROVED.value: (
            SideEffect.STAMP_MANUFACTURE_DATE.value,
            SideEffect.GENERATE_COMPLIANCE_DOCUMENT.value,
        ),
        _S.COMPLETED.value: (SideEffect.STAMP_COMPLETION_DATE.value,),
        _S.CANCELLED.value: (SideEffect.RESET_ORDER.value,),
    },
)

logger.info(
    "worksheet_workflow_defined",
    extra={
        "workflow": WORKSHEET_WORKFLOW.name,
        "states": len(WORKSHEET_WORKFLOW.states),
        "transitions": len(WORKSHEET_WORKFLOW.transitions),
    },
)


def parse_status(value: object, worksheet_id: str | None = None) -> WorksheetStatus:
    """Coerce a stored value to WorksheetStatus, or raise InvalidStateError."""
    if isinstance(value, WorksheetStatus):
        return value
    try:
        return WorksheetStatus(value)
    except ValueError:
        raise InvalidStateError(str(value), worksheet_id) from None


def is_terminal(status: WorksheetStatus | str) -> bool:
    return parse_status(status) in TERMINAL_STATUSES


def allowed_targets(status: WorksheetStatus | str) -> tuple[WorksheetStatus, ...]:
    """Targets reachable from ``status`` for any role, in table order."""
    current = parse_status(status)
    return tuple(
        WorksheetStatus(t.to_state)
        for t in WORKSHEET_WORKFLOW.transitions_from(current.value)
    )


def available_transitions(
    status: WorksheetStatus | str,
    role: Role | str,
) -> tuple[WorksheetStatus, ...]:
    """Targets the given role may request from ``status``."""
    current = parse_status(status)
    role_value = role.value if isinstance(role, Role) else str(role)
    return tuple(
        WorksheetStatus(t.to_state)
        for t in WORKSHEET_WORKFLOW.transitions_from(current.value)
        if role_value in t.allowed_roles
    )


def side_effects_on_enter(status: WorksheetStatus | str) -> tuple[SideEffect, ...]:
    """Ordered side effects declared by ``status``."""
    target = parse_status(status)
    return tuple(
        SideEffect(name)
        for name in WORKSHEET_WORKFLOW.entry_effects.get(target.value, ())
    )


def validate_transition(
    current: WorksheetStatus | str,
    target: WorksheetStatus | str,
    role: Role | str,
    worksheet_id: str | None = None,
) -> Transition:
    """
    Check a requested transition against the table and the caller's role.

    Returns the matched Transition on success.

    Raises:
        InvalidStateError: ``current`` is not a known state.
        IllegalTransitionError: ``target`` is not an allowed target of
            ``current`` (unknown targets included).
        UnauthorizedTransitionError: ``role`` may not enter ``target``.
    """
    current_status = parse_status(current, worksheet_id)
    target_value = target.value if isinstance(target, WorksheetStatus) else str(target)
    role_value = role.value if isinstance(role, Role) else str(role)

    transition = WORKSHEET_WORKFLOW.find(current_status.value, target_value)
    if transition is None:
        raise IllegalTransitionError(
            current=current_status.value,
            target=target_value,
            allowed=tuple(s.value for s in allowed_targets(current_status)),
            worksheet_id=worksheet_id,
        )

    if role_value not in transition.allowed_roles:
        raise UnauthorizedTransitionError(
            role=role_value,
            current=current_status.value,
            target=target_value,
            required_roles=tuple(sorted(transition.allowed_roles)),
            worksheet_id=worksheet_id,
        )

    return transition
