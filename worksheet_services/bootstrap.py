"""
worksheet_services.bootstrap -- Process startup wiring.

Responsibility:
    Turn an ``EngineConfig`` into a ready-to-use process: structured logging
    at the configured level, the database engine and session factory, the
    schema (plus PostgreSQL immutability triggers), and the ORM
    immutability listeners.  Also builds config-driven read helpers such as
    the lot selector.

Architecture position:
    Services -- the one place that reads configuration and hands plain
    values to the kernel.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from worksheet_config import get_active_config
from worksheet_config.schema import EngineConfig
from worksheet_kernel.db.engine import create_tables, init_engine_from_url
from worksheet_kernel.db.immutability import register_immutability_listeners
from worksheet_kernel.domain.clock import Clock
from worksheet_kernel.logging_config import configure_logging, get_logger
from worksheet_kernel.selectors.lot_selector import LotSelector

logger = get_logger("services.bootstrap")


def init_from_config(
    config: EngineConfig | None = None,
    create_schema: bool = True,
) -> Engine:
    """
    Initialize logging, engine, schema and listeners.

    Args:
        config: Configuration to apply.  Loaded with ``get_active_config()``
            when omitted.
        create_schema: Create missing tables and install triggers.

    Returns:
        The initialized Engine.
    """
    config = config or get_active_config()

    configure_logging(level=config.logging.level.upper())

    engine = init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    if create_schema:
        create_tables(install_triggers=True)
    register_immutability_listeners()

    logger.info(
        "worksheet_engine_ready",
        extra={
            "dialect": engine.dialect.name,
            "config_checksum": config.checksum,
            "schema_created": create_schema,
        },
    )
    return engine


def build_lot_selector(
    session: Session,
    config: EngineConfig | None = None,
    clock: Clock | None = None,
) -> LotSelector:
    """LotSelector with the expiry window and low-stock threshold from ``inventory``."""
    inventory = (config or EngineConfig()).inventory
    return LotSelector(
        session,
        clock,
        expiry_warning_days=inventory.expiry_warning_days,
        low_stock_threshold=inventory.low_stock_threshold,
    )
