"""
Module: stock_kernel.db.triggers
Responsibility: Loading and installing the PostgreSQL triggers that make the
    stock_movements table append-only and freeze lot identity fields at the
    database level.  Complements the ORM listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on UPDATE or DELETE of a stock_movements row
      (surfaces as an SQLAlchemy DBAPIError subclass).
    - PostgreSQL RAISE EXCEPTION on UPDATE of a lot identity column.
    - FileNotFoundError if SQL files are missing from the sql/ directory.
    - OperationalError on deadlock during installation (caller retries).
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = [
    "01_stock_movement.sql",
    "02_lot.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_stock_movement_immutability_update",
    "trg_stock_movement_immutability_delete",
    "trg_lot_identity_immutability_update",
]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    sql_parts = []
    for filename in TRIGGER_FILES:
        sql_parts.append(f"-- Loading: {filename}")
        sql_parts.append(_load_sql_file(filename))
        sql_parts.append("")
    return "\n".join(sql_parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables exist.  Engine is connected to PostgreSQL.
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Functions use CREATE OR REPLACE, so installation is idempotent.
    """
    sql_content = _load_all_trigger_sql()

    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """Remove the immutability triggers and their functions."""
    sql_content = _load_sql_file(DROP_FILE)

    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """Names of the stock kernel triggers currently present in pg_trigger."""
    with engine.connect() as conn:
        rows = conn.execute(
            text("SELECT tgname FROM pg_trigger WHERE tgname = ANY(:names) ORDER BY tgname"),
            {"names": ALL_TRIGGER_NAMES},
        )
        return [row[0] for row in rows]


def triggers_installed(engine: Engine) -> bool:
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
