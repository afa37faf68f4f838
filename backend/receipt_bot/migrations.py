from __future__ import annotations

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

# Columns added after the first release of the expenses table.
_EXPENSE_COLUMNS: dict[str, tuple[str, str | None]] = {
    "review_hint": ("TEXT", None),
    "verified_by_user": ("BOOLEAN", "FALSE"),
}


def _ensure_expense_column(engine: Engine, column: str, sql_type: str, default: str | None) -> bool:
    inspector = inspect(engine)
    try:
        columns = {item["name"] for item in inspector.get_columns("expenses")}
    except SQLAlchemyError as exc:
        logger.error("Failed to inspect expenses table: %s", exc)
        return False

    if column in columns:
        return False

    logger.info("Adding %s column to expenses table.", column)
    add_column_sql = f"ALTER TABLE expenses ADD COLUMN {column} {sql_type}"
    try:
        with engine.begin() as connection:
            if default is None:
                connection.execute(text(add_column_sql))
            elif engine.dialect.name.lower() == "sqlite":
                connection.execute(text(f"{add_column_sql} NOT NULL DEFAULT {default}"))
            else:
                connection.execute(text(add_column_sql))
                connection.execute(text(f"UPDATE expenses SET {column} = {default} WHERE {column} IS NULL"))
                connection.execute(text(f"ALTER TABLE expenses ALTER COLUMN {column} SET DEFAULT {default}"))
                connection.execute(text(f"ALTER TABLE expenses ALTER COLUMN {column} SET NOT NULL"))
    except SQLAlchemyError as exc:
        logger.error("Failed to add %s column: %s", column, exc)
        return False
    return True


def run_migrations(engine: Engine) -> list[str]:
    """Execute lightweight, idempotent migrations; returns the columns added."""
    added: list[str] = []
    for column, (sql_type, default) in _EXPENSE_COLUMNS.items():
        if _ensure_expense_column(engine, column, sql_type, default):
            added.append(column)
    return added
