"""Additive schema migration run at process start.

Creates missing tables, then adds any model column the live table lacks
("add column if not exists"). Idempotent; never drops or alters columns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import Column, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.functions import FunctionElement

from clinic_api.db.base import Base

# Register every model on Base.metadata
from clinic_api.db import models  # noqa: F401

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    created_tables: list[str] = field(default_factory=list)
    added_columns: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created_tables or self.added_columns)


class MigrationError(RuntimeError):
    """Raised when the additive migration cannot be applied."""


def _column_ddl(connection: Connection, column: Column) -> str:
    dialect = connection.dialect
    ddl = f"{dialect.identifier_preparer.quote(column.name)} {column.type.compile(dialect=dialect)}"
    default = column.server_default.arg if column.server_default is not None else None
    # Non-constant defaults (CURRENT_TIMESTAMP) cannot be added to existing rows
    if default is not None and not isinstance(default, FunctionElement):
        compiled = (
            default.compile(dialect=dialect)
            if hasattr(default, "compile")
            else f"'{default}'"
        )
        ddl += f" DEFAULT {compiled}"
        if not column.nullable:
            ddl += " NOT NULL"
    return ddl


def _add_missing_columns(connection: Connection, report: MigrationReport) -> None:
    inspector = inspect(connection)
    for table in Base.metadata.sorted_tables:
        existing = {col["name"] for col in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in existing:
                continue
            quoted_table = connection.dialect.identifier_preparer.quote(table.name)
            connection.execute(
                text(f"ALTER TABLE {quoted_table} ADD COLUMN {_column_ddl(connection, column)}")
            )
            report.added_columns.append(f"{table.name}.{column.name}")


def ensure_schema(engine: Engine) -> MigrationReport:
    report = MigrationReport()
    try:
        with engine.begin() as connection:
            before = set(inspect(connection).get_table_names())
            Base.metadata.create_all(connection)
            after = set(inspect(connection).get_table_names())
            report.created_tables = sorted(after - before)
            _add_missing_columns(connection, report)
    except SQLAlchemyError as exc:
        raise MigrationError(f"Schema migration failed: {exc}") from exc

    if report.changed:
        logger.info(
            "Schema migrated: %d tables created, %d columns added",
            len(report.created_tables),
            len(report.added_columns),
        )
    return report
