"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

Device records fall under regulatory retention: the audit trail must be
append-only, finished worksheets must not drift, and no worksheet may ever
be purged.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/sql/*.sql (PostgreSQL triggers)
    - Catches raw SQL, bulk UPDATE statements, direct psql access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                      | When Immutable                       | Rule
----------------------------|--------------------------------------|---------------------
AuditEvent                  | ALWAYS (from creation)               | no UPDATE, no DELETE
Worksheet                   | ALWAYS for DELETE                    | soft delete only
Worksheet                   | Once status is terminal              | no UPDATE
WorksheetMaterial           | Once material_lot_id is set          | no UPDATE, no DELETE

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at / updated_by_id are tracking metadata and may change.

2. "WAS TERMINAL" NOT "IS TERMINAL":
   The lifecycle service itself writes the terminal status.  The change
   editable -> cancelled is allowed; anything after it is blocked.  Attribute
   history tells the two apart.

3. Inline model imports avoid a circular import (models import db).

===============================================================================
USAGE
===============================================================================

    from worksheet_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from worksheet_kernel.exceptions import ImmutabilityViolationError
from worksheet_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _block(entity_type: str, entity_id, operation: str, reason: str, **extra) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in _METADATA_FIELDS
        and insp.attrs[attr.key].history.has_changes()
    ]


def _check_audit_event_immutability(mapper, connection, target):
    """Audit events are append-only."""
    _block(
        "AuditEvent",
        target.id,
        "UPDATE",
        "Audit events are append-only and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    """Audit events are never deleted."""
    _block(
        "AuditEvent",
        target.id,
        "DELETE",
        "Audit events are append-only and cannot be deleted",
    )


def _check_worksheet_immutability(mapper, connection, target):
    """
    Block any change to a worksheet that was already terminal.

    Logic:
        1. status changing FROM a terminal value: block.
        2. status unchanged AND terminal AND another field changing: block.
        3. status changing TO a terminal value: allow (this is the transition).
    """
    from worksheet_kernel.domain.worksheet_lifecycle import TERMINAL_STATUSES

    terminal_values = {s.value for s in TERMINAL_STATUSES}
    status_history = get_history(target, "status")

    was_terminal = False
    if status_history.deleted:
        old = status_history.deleted[0]
        was_terminal = (getattr(old, "value", old)) in terminal_values
    elif not status_history.added:
        current = target.status
        was_terminal = (getattr(current, "value", current)) in terminal_values

    if not was_terminal:
        return

    changed = _changed_fields(target)
    if changed:
        _block(
            "Worksheet",
            target.id,
            "UPDATE",
            f"Worksheet {target.worksheet_number} is in a terminal state; "
            f"cannot modify {', '.join(sorted(changed))}",
            fields=changed,
        )


def _check_worksheet_delete(mapper, connection, target):
    """Worksheets are retained indefinitely."""
    _block(
        "Worksheet",
        target.id,
        "DELETE",
        "Worksheets cannot be hard-deleted; use soft delete or void",
    )


def _check_consumption_record_immutability(mapper, connection, target):
    """A material row that already references a lot is a traceability fact."""
    lot_history = get_history(target, "material_lot_id")
    if lot_history.deleted:
        previous_lot = lot_history.deleted[0]
    elif lot_history.added:
        previous_lot = None
    else:
        previous_lot = target.material_lot_id
    if previous_lot is None:
        return
    changed = _changed_fields(target)
    if changed:
        _block(
            "WorksheetMaterial",
            target.id,
            "UPDATE",
            f"Consumption record cannot be modified ({', '.join(sorted(changed))})",
        )


def _check_consumption_record_delete(mapper, connection, target):
    if target.material_lot_id is not None:
        _block(
            "WorksheetMaterial",
            target.id,
            "DELETE",
            "Consumption records cannot be deleted",
        )


def _listener_table():
    from worksheet_kernel.models.audit_event import AuditEvent
    from worksheet_kernel.models.worksheet import Worksheet, WorksheetMaterial

    return (
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (Worksheet, "before_update", _check_worksheet_immutability),
        (Worksheet, "before_delete", _check_worksheet_delete),
        (WorksheetMaterial, "before_update", _check_consumption_record_immutability),
        (WorksheetMaterial, "before_delete", _check_consumption_record_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent.  Call after models are imported, before any writes.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.info("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules
    to verify detection (e.g. audit chain tamper tests).
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
    logger.warning("immutability_listeners_unregistered")
