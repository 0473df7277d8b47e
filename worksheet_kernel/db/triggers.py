"""
Module: worksheet_kernel.db.triggers
Responsibility: Loading, installing, and verifying PostgreSQL immutability
    triggers.  This is the database-level complement to the ORM-level
    listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.  MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced (via PostgreSQL triggers):
    - AuditEvent rows: no UPDATE, no DELETE.
    - Worksheet rows: no hard DELETE.
    - Worksheet rows in a terminal status: no UPDATE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any trigger violation (surfaced by
      SQLAlchemy as InternalError / DBAPIError).
    - FileNotFoundError if SQL files are missing from the sql/ directory.

Audit relevance:
    Raw SQL, bulk updates and direct psql sessions bypass the ORM listeners.
    These triggers still hold in that case.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

from worksheet_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = [
    "01_audit_event.sql",
    "02_worksheet.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_audit_event_immutability_update",
    "trg_audit_event_immutability_delete",
    "trg_worksheet_no_delete",
    "trg_worksheet_terminal_update",
]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    """Concatenate all trigger files in numbered order."""
    sql_parts = []
    for filename in TRIGGER_FILES:
        sql_parts.append(f"-- Loading: {filename}")
        sql_parts.append(_load_sql_file(filename))
        sql_parts.append("")
    return "\n".join(sql_parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables exist (call after create_all) and the engine
        points at PostgreSQL.
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Functions use CREATE OR REPLACE, so this is idempotent.
    """
    with engine.connect() as conn:
        conn.execute(text(_load_all_trigger_sql()))
        conn.commit()
    logger.info("immutability_triggers_installed", extra={"count": len(ALL_TRIGGER_NAMES)})


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    Only for schema teardown in tests and migrations.
    """
    with engine.connect() as conn:
        conn.execute(text(_load_sql_file(DROP_FILE)))
        conn.commit()
    logger.warning("immutability_triggers_uninstalled")


def get_installed_triggers(engine: Engine) -> list[str]:
    """Return the names of installed immutability triggers, sorted."""
    trigger_list = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    check_sql = f"""
    SELECT tgname FROM pg_trigger
    WHERE tgname IN ({trigger_list})
    ORDER BY tgname;
    """
    with engine.connect() as conn:
        return [row[0] for row in conn.execute(text(check_sql))]


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is present."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
