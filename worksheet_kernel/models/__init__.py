"""ORM models for the worksheet kernel."""

from worksheet_kernel.models.audit_event import AuditAction, AuditEvent
from worksheet_kernel.models.material import LotStatus, Material, MaterialLot
from worksheet_kernel.models.order import Order, OrderStatus
from worksheet_kernel.models.product import Product
from worksheet_kernel.models.worksheet import (
    Worksheet,
    WorksheetMaterial,
    WorksheetProduct,
    WorksheetTooth,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "LotStatus",
    "Material",
    "MaterialLot",
    "Order",
    "OrderStatus",
    "Product",
    "Worksheet",
    "WorksheetMaterial",
    "WorksheetProduct",
    "WorksheetTooth",
    "import_all_models",
]


def import_all_models() -> None:
    """Ensure every table (including sequence_counters) is on Base.metadata."""
    import worksheet_kernel.services.sequence_service  # noqa: F401
