"""Selectors for the worksheet kernel (read side)."""

from worksheet_kernel.selectors.document_request_selector import (
    DocumentRequestDTO,
    DocumentRequestSelector,
)
from worksheet_kernel.selectors.lot_selector import LotDTO, LotSelector, LowStockDTO
from worksheet_kernel.selectors.traceability_selector import (
    LotUsageDTO,
    LotUsageEntryDTO,
    MaterialTraceDTO,
    TraceabilitySelector,
)

__all__ = [
    "DocumentRequestDTO",
    "DocumentRequestSelector",
    "LotDTO",
    "LotSelector",
    "LowStockDTO",
    "LotUsageDTO",
    "LotUsageEntryDTO",
    "MaterialTraceDTO",
    "TraceabilitySelector",
]
