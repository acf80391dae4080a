"""
Additive schema evolution for the SQLite store.

Runs on every startup and is safe to repeat:

    1. CREATE any table that does not exist yet
    2. ALTER TABLE ... ADD COLUMN for every model column missing from an
       existing table (older deployments created fewer columns)
    3. Backfill jobs.correlation_id from the payload of rows written before
       the column existed
    4. CREATE any missing index

Nothing is ever dropped, renamed or rewritten. A column that SQLite cannot add
in place (a primary key) is logged and skipped.
"""

import json
import logging

from sqlalchemy import inspect, text, select, update
from sqlalchemy.engine import Engine

from models.base import Base
from models.job import Job
from models.kv import KVEntry  # noqa: F401  (registers the kv table on Base.metadata)

logger = logging.getLogger(__name__)

# Payload keys that carried the correlation id before it had its own column,
# most specific first.
_LEGACY_CORRELATION_KEYS = ("correlationId", "candidateId", "businessId", "employeeId")


def correlation_id_from_payload(payload: dict | None) -> str | None:
    if not isinstance(payload, dict):
        return None
    for key in _LEGACY_CORRELATION_KEYS:
        value = payload.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _column_ddl(column, dialect) -> str:
    ddl = f"{column.name} {column.type.compile(dialect=dialect)}"
    default = column.default
    if default is not None and default.is_scalar:
        value = default.arg
        if isinstance(value, bool):
            ddl += f" DEFAULT {int(value)}"
        elif isinstance(value, (int, float)):
            ddl += f" DEFAULT {value}"
        elif isinstance(value, str):
            escaped = value.replace("'", "''")
            ddl += f" DEFAULT '{escaped}'"
    return ddl


def _add_missing_columns(engine: Engine) -> list[str]:
    inspector = inspect(engine)
    added: list[str] = []
    with engine.begin() as conn:
        for table in Base.metadata.sorted_tables:
            existing = {col["name"] for col in inspector.get_columns(table.name)}
            for column in table.columns:
                if column.name in existing:
                    continue
                if column.primary_key:
                    logger.error(
                        f"Table {table.name} lacks primary key column {column.name}; "
                        f"cannot add it in place, leaving schema as is"
                    )
                    continue
                conn.execute(text(
                    f"ALTER TABLE {table.name} ADD COLUMN {_column_ddl(column, engine.dialect)}"
                ))
                added.append(f"{table.name}.{column.name}")
    return added


def _backfill_correlation_ids(engine: Engine) -> int:
    filled = 0
    with engine.begin() as conn:
        rows = conn.execute(
            select(Job.id, Job.payload).where(Job.correlation_id.is_(None))
        ).all()
        for job_id, payload in rows:
            if isinstance(payload, str):
                try:
                    payload = json.loads(payload)
                except ValueError:
                    continue
            correlation_id = correlation_id_from_payload(payload)
            if correlation_id is None:
                continue
            conn.execute(
                update(Job).where(Job.id == job_id).values(correlation_id=correlation_id)
            )
            filled += 1
    return filled


def ensure_schema(engine: Engine) -> list[str]:
    """
    Bring the database up to the current model definitions.

    Returns the list of "table.column" names that were added, which is empty
    on a fresh or already-current database.
    """
    Base.metadata.create_all(engine)

    added = _add_missing_columns(engine)
    for name in added:
        logger.info(f"Added missing column {name}")

    filled = _backfill_correlation_ids(engine)
    if filled:
        logger.info(f"Backfilled correlation_id on {filled} legacy jobs")

    for table in Base.metadata.sorted_tables:
        for index in table.indexes:
            index.create(engine, checkfirst=True)

    return added
