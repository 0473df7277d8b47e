"""
worksheet_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the worksheet kernel: the lifecycle
    service, the side-effect dispatcher, the order gateway and startup
    wiring.

Architecture position:
    Services -- above ``worksheet_kernel`` and ``worksheet_config``.

        worksheet_services/ -> worksheet_kernel/  (allowed)
        worksheet_services/ -> worksheet_config/  (allowed)
        worksheet_kernel/   -> worksheet_services/ (FORBIDDEN)
"""

from worksheet_services.bootstrap import build_lot_selector, init_from_config
from worksheet_services.order_gateway import (
    OrderGateway,
    OrderInfo,
    OrderReset,
    SqlOrderGateway,
)
from worksheet_services.side_effect_dispatcher import EffectContext, SideEffectDispatcher
from worksheet_services.worksheet_service import (
    MaterialAssignment,
    ProductAssignment,
    ToothAssignment,
    WorksheetService,
)

__all__ = [
    "EffectContext",
    "MaterialAssignment",
    "OrderGateway",
    "OrderInfo",
    "OrderReset",
    "ProductAssignment",
    "SideEffectDispatcher",
    "SqlOrderGateway",
    "ToothAssignment",
    "WorksheetService",
    "build_lot_selector",
    "init_from_config",
]
