"""
Engine configuration schema.

Frozen dataclasses produced by the loader from YAML.  Each section
validates itself in ``__post_init__`` and raises ``ValueError`` naming the
offending key, so a bad file fails at load time rather than mid-transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Order statuses an order may be reset to on worksheet cancellation
_RESETTABLE_ORDER_STATUSES = frozenset({"pending", "in_production"})


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///worksheets.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url must not be empty")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(
                f"database.max_overflow must be >= 0, got {self.max_overflow}"
            )


@dataclass(frozen=True)
class NumberingConfig:
    worksheet_prefix: str = "DN"
    worksheet_series: str = "worksheet_number"

    def __post_init__(self) -> None:
        if not self.worksheet_prefix.isalpha() or not self.worksheet_prefix.isupper():
            raise ValueError(
                "numbering.worksheet_prefix must be upper-case letters, "
                f"got {self.worksheet_prefix!r}"
            )
        if not self.worksheet_series:
            raise ValueError("numbering.worksheet_series must not be empty")


@dataclass(frozen=True)
class InventoryConfig:
    consumption_lock_retries: int = 3
    expiry_warning_days: int = 30
    low_stock_threshold: int = 20

    def __post_init__(self) -> None:
        if self.consumption_lock_retries < 1:
            raise ValueError(
                "inventory.consumption_lock_retries must be >= 1, "
                f"got {self.consumption_lock_retries}"
            )
        if self.expiry_warning_days < 0:
            raise ValueError(
                "inventory.expiry_warning_days must be >= 0, "
                f"got {self.expiry_warning_days}"
            )
        if self.low_stock_threshold < 1:
            raise ValueError(
                "inventory.low_stock_threshold must be >= 1, "
                f"got {self.low_stock_threshold}"
            )


@dataclass(frozen=True)
class LifecycleConfig:
    order_reset_status: str = "pending"
    require_rejection_notes: bool = True
    edit_reason_min_length: int = 10

    def __post_init__(self) -> None:
        if self.edit_reason_min_length < 1:
            raise ValueError(
                "lifecycle.edit_reason_min_length must be >= 1, "
                f"got {self.edit_reason_min_length}"
            )
        if self.order_reset_status not in _RESETTABLE_ORDER_STATUSES:
            raise ValueError(
                "lifecycle.order_reset_status must be one of "
                f"{sorted(_RESETTABLE_ORDER_STATUSES)}, got {self.order_reset_status!r}"
            )


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}")


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration.  ``checksum`` identifies the source YAML."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
    source: str | None = None
