"""Services for the worksheet kernel (write side)."""

from worksheet_kernel.services.auditor_service import AuditorService, AuditTrace
from worksheet_kernel.services.fifo_consumption_service import (
    ConsumptionResult,
    FifoConsumptionService,
)
from worksheet_kernel.services.lot_ledger_service import LotLedgerService
from worksheet_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditorService",
    "AuditTrace",
    "ConsumptionResult",
    "FifoConsumptionService",
    "LotLedgerService",
    "SequenceService",
]
