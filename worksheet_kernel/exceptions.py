"""
Typed Exception Hierarchy for the Worksheet Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The calling layer (HTTP handlers, forms) has to render an actionable message
for every failure of the lifecycle engine. Parsing exception text for that is
fragile, so every error here:
  1. Has its own TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (worksheet id, attempted transition, material)

Example - WRONG way to handle errors:
    try:
        service.transition(ws_id, WorksheetStatus.IN_PRODUCTION, actor, role)
    except Exception as e:
        if "stock" in str(e):
            prompt_stock_arrival()

Example - RIGHT way (what this module enables):
    try:
        service.transition(ws_id, WorksheetStatus.IN_PRODUCTION, actor, role)
    except InsufficientStockError as e:
        prompt_stock_arrival(e.material_code, e.required)
        api_response(code=e.code, material=e.material_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from WorksheetKernelError:

    WorksheetKernelError (base)
    |
    +-- LifecycleError
    |   +-- InvalidStateError
    |   +-- IllegalTransitionError
    |   +-- UnauthorizedTransitionError
    |   +-- MissingTransitionNotesError
    |
    +-- WorksheetError
    |   +-- WorksheetNotFoundError
    |   +-- NotEditableError
    |   +-- MissingEditReasonError
    |   +-- NotDeletableError
    |   +-- DuplicateActiveWorksheetError
    |
    +-- OrderError
    |   +-- OrderNotFoundError
    |
    +-- AssignmentError
    |   +-- InvalidReferenceError
    |   +-- InvalidToothNumberError
    |   +-- InvalidQuantityError
    |
    +-- InventoryError
    |   +-- InsufficientStockError
    |   +-- MaterialNotFoundError
    |   +-- LotNotFoundError
    |   +-- DuplicateLotError
    |   +-- LotInUseError
    |   +-- InvalidLotStatusChangeError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Lifecycle       | INVALID_STATE               | Stored status is not a known state
                | ILLEGAL_TRANSITION          | Target not reachable from current state
                | UNAUTHORIZED_TRANSITION     | Role may not enter the target state
                | MISSING_TRANSITION_NOTES    | Rejection requested without notes
----------------|-----------------------------|-----------------------------------------
Worksheet       | WORKSHEET_NOT_FOUND         | Worksheet ID doesn't exist
                | NOT_EDITABLE                | Assignment outside editable, edit of a terminal one
                | MISSING_EDIT_REASON         | Edit after editable without a reason
                | NOT_DELETABLE               | Delete outside the editable state
                | DUPLICATE_ACTIVE_WORKSHEET  | Order already has an active worksheet
----------------|-----------------------------|-----------------------------------------
Order           | ORDER_NOT_FOUND             | Order ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Assignment      | INVALID_REFERENCE           | Payload names a missing/inactive record
                | INVALID_TOOTH_NUMBER        | Not a valid FDI tooth number
                | INVALID_QUANTITY            | Quantity not positive, or not whole for a product
----------------|-----------------------------|-----------------------------------------
Inventory       | INSUFFICIENT_STOCK          | No single eligible lot covers the need
                | MATERIAL_NOT_FOUND          | Material ID doesn't exist
                | LOT_NOT_FOUND               | Lot ID doesn't exist
                | DUPLICATE_LOT               | Lot number already recorded
                | LOT_IN_USE                  | Lot has consumption records
                | INVALID_LOT_STATUS_CHANGE   | Lot status move not permitted
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Lot changed under us, retries exhausted
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an immutable/terminal record

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH SPECIFIC EXCEPTIONS (not base classes):

    try:
        service.transition(ws_id, target, actor, role)
    except UnauthorizedTransitionError as e:
        forbid(f"{e.role} may not move worksheets to {e.target}")
    except LifecycleError as e:
        log.warning(f"Transition refused: {e.code}")

2. USE STRUCTURED DATA (not message parsing):

    except DuplicateActiveWorksheetError as e:
        return {
            "error": e.code,
            "order_id": e.order_id,
            "existing_worksheet_id": e.existing_worksheet_id,
            "existing_worksheet_number": e.existing_worksheet_number,
        }

3. INVALID STATE IS DATA CORRUPTION (never retry):

    except InvalidStateError as e:
        alert_operations(e)

===============================================================================
"""


class WorksheetKernelError(Exception):
    """
    Base exception for all worksheet kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "WORKSHEET_KERNEL_ERROR"


# Lifecycle (state machine) exceptions


class LifecycleError(WorksheetKernelError):
    """Base exception for state machine errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidStateError(LifecycleError):
    """
    Current status is not a member of the worksheet state set.

    Indicates corrupt stored data. Fatal, never retried.
    """

    code: str = "INVALID_STATE"

    def __init__(self, status: str, worksheet_id: str | None = None):
        self.status = status
        self.worksheet_id = worksheet_id
        super().__init__(
            f"Unknown worksheet status '{status}'"
            + (f" on worksheet {worksheet_id}" if worksheet_id else "")
        )


class IllegalTransitionError(LifecycleError):
    """Requested target is not in the current state's allowed-target set."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        current: str,
        target: str,
        allowed: tuple[str, ...] = (),
        worksheet_id: str | None = None,
    ):
        self.current = current
        self.target = target
        self.allowed = allowed
        self.worksheet_id = worksheet_id
        allowed_text = ", ".join(allowed) if allowed else "none"
        super().__init__(
            f"Illegal transition {current} -> {target} "
            f"(allowed from {current}: {allowed_text})"
        )


class UnauthorizedTransitionError(LifecycleError):
    """Caller's role is not permitted to enter the target state."""

    code: str = "UNAUTHORIZED_TRANSITION"

    def __init__(
        self,
        role: str,
        current: str,
        target: str,
        required_roles: tuple[str, ...] = (),
        worksheet_id: str | None = None,
    ):
        self.role = role
        self.current = current
        self.target = target
        self.required_roles = required_roles
        self.worksheet_id = worksheet_id
        super().__init__(
            f"Role '{role}' may not transition {current} -> {target} "
            f"(requires one of: {', '.join(required_roles)})"
        )


class MissingTransitionNotesError(LifecycleError):
    """Transition requires explanatory notes that were not supplied."""

    code: str = "MISSING_TRANSITION_NOTES"

    def __init__(self, target: str, worksheet_id: str | None = None):
        self.target = target
        self.worksheet_id = worksheet_id
        super().__init__(f"Transition to {target} requires notes")


# Worksheet exceptions


class WorksheetError(WorksheetKernelError):
    """Base exception for worksheet record errors."""

    code: str = "WORKSHEET_ERROR"


class WorksheetNotFoundError(WorksheetError):
    """Worksheet with given ID was not found."""

    code: str = "WORKSHEET_NOT_FOUND"

    def __init__(self, worksheet_id: str):
        self.worksheet_id = worksheet_id
        super().__init__(f"Worksheet not found: {worksheet_id}")


class NotEditableError(WorksheetError):
    """Worksheet content may only change while it is editable."""

    code: str = "NOT_EDITABLE"

    def __init__(
        self,
        worksheet_id: str,
        status: str,
        operation: str,
        requirement: str = "must be editable",
    ):
        self.worksheet_id = worksheet_id
        self.status = status
        self.operation = operation
        self.requirement = requirement
        super().__init__(
            f"Cannot {operation} on worksheet {worksheet_id}: "
            f"status is {status}, {requirement}"
        )


class MissingEditReasonError(WorksheetError):
    """Editing a worksheet past the editable state requires a reason."""

    code: str = "MISSING_EDIT_REASON"

    def __init__(self, worksheet_id: str, status: str, min_length: int):
        self.worksheet_id = worksheet_id
        self.status = status
        self.min_length = min_length
        super().__init__(
            f"Editing worksheet {worksheet_id} in status {status} requires "
            f"a reason of at least {min_length} characters"
        )


class NotDeletableError(WorksheetError):
    """Only editable, not-yet-deleted worksheets may be soft-deleted."""

    code: str = "NOT_DELETABLE"

    def __init__(self, worksheet_id: str, status: str, reason: str):
        self.worksheet_id = worksheet_id
        self.status = status
        self.reason = reason
        super().__init__(f"Cannot delete worksheet {worksheet_id}: {reason}")


class DuplicateActiveWorksheetError(WorksheetError):
    """Order already has an active (non-deleted, non-voided) worksheet."""

    code: str = "DUPLICATE_ACTIVE_WORKSHEET"

    def __init__(
        self,
        order_id: str,
        existing_worksheet_id: str,
        existing_worksheet_number: str,
        existing_status: str,
    ):
        self.order_id = order_id
        self.existing_worksheet_id = existing_worksheet_id
        self.existing_worksheet_number = existing_worksheet_number
        self.existing_status = existing_status
        super().__init__(
            f"Order {order_id} already has active worksheet "
            f"{existing_worksheet_number} ({existing_worksheet_id}, "
            f"status {existing_status})"
        )


# Order exceptions


class OrderError(WorksheetKernelError):
    """Base exception for order lookup errors."""

    code: str = "ORDER_ERROR"


class OrderNotFoundError(OrderError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


# Assignment payload exceptions


class AssignmentError(WorksheetKernelError):
    """Base exception for invalid assignment payloads."""

    code: str = "ASSIGNMENT_ERROR"


class InvalidReferenceError(AssignmentError):
    """Payload references a record that does not exist or is inactive."""

    code: str = "INVALID_REFERENCE"

    def __init__(self, entity_type: str, entity_id: str, reason: str = "not found"):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Invalid {entity_type} reference {entity_id}: {reason}")


class InvalidToothNumberError(AssignmentError):
    """Tooth number is not valid FDI (ISO 3950) notation."""

    code: str = "INVALID_TOOTH_NUMBER"

    def __init__(self, tooth_number: object, reason: str = "not a valid FDI tooth"):
        self.tooth_number = tooth_number
        self.reason = reason
        super().__init__(f"Invalid tooth number {tooth_number!r}: {reason}")


class InvalidQuantityError(AssignmentError):
    """Quantity must be a strictly positive number (whole for products)."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: str, context: str, requirement: str = "must be > 0"):
        self.quantity = quantity
        self.context = context
        self.requirement = requirement
        super().__init__(f"Invalid quantity {quantity} for {context}: {requirement}")


# Inventory exceptions


class InventoryError(WorksheetKernelError):
    """Base exception for lot inventory errors."""

    code: str = "INVENTORY_ERROR"


class InsufficientStockError(InventoryError):
    """
    No single eligible lot can satisfy the required quantity.

    Raised even when the sum across lots would cover the requirement:
    a consumption record always points to exactly one lot.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        material_id: str,
        material_code: str,
        required: str,
        best_available: str,
        worksheet_id: str | None = None,
    ):
        self.material_id = material_id
        self.material_code = material_code
        self.required = required
        self.best_available = best_available
        self.worksheet_id = worksheet_id
        super().__init__(
            f"Insufficient stock for material {material_code} ({material_id}): "
            f"required {required}, largest eligible lot has {best_available}"
        )


class MaterialNotFoundError(InventoryError):
    """Material with given ID was not found."""

    code: str = "MATERIAL_NOT_FOUND"

    def __init__(self, material_id: str):
        self.material_id = material_id
        super().__init__(f"Material not found: {material_id}")


class LotNotFoundError(InventoryError):
    """Material lot with given ID was not found."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__(f"Material lot not found: {lot_id}")


class DuplicateLotError(InventoryError):
    """Lot number already recorded for this material."""

    code: str = "DUPLICATE_LOT"

    def __init__(self, material_id: str, lot_number: str):
        self.material_id = material_id
        self.lot_number = lot_number
        super().__init__(
            f"Lot {lot_number} already exists for material {material_id}"
        )


class LotInUseError(InventoryError):
    """Lot was consumed by a worksheet and must be kept for traceability."""

    code: str = "LOT_IN_USE"

    def __init__(self, lot_id: str, usage_count: int):
        self.lot_id = lot_id
        self.usage_count = usage_count
        super().__init__(
            f"Lot {lot_id} is referenced by {usage_count} consumption record(s); "
            "mark it recalled instead of deleting"
        )


class InvalidLotStatusChangeError(InventoryError):
    """Requested lot status change is not a permitted manual move."""

    code: str = "INVALID_LOT_STATUS_CHANGE"

    def __init__(self, lot_id: str, current: str, target: str, reason: str):
        self.lot_id = lot_id
        self.current = current
        self.target = target
        self.reason = reason
        super().__init__(
            f"Cannot change lot {lot_id} from {current} to {target}: {reason}"
        )


# Audit-related exceptions


class AuditError(WorksheetKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Concurrency-related exceptions


class ConcurrencyError(WorksheetKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int = 1):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id} "
            f"after {attempts} attempt(s): "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(WorksheetKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    AuditEvent rows are append-only, worksheets in a terminal state
    are frozen, and no worksheet is ever hard-deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
