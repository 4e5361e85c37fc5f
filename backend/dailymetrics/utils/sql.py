"""Dialect helpers for INSERT .. ON CONFLICT upserts.

PostgreSQL in production, SQLite in tests and local dev; both dialects expose
the same `insert(...).on_conflict_do_update(...)` construct.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_insert(db: Session, model):
    """Return an upsert-capable Core INSERT (keys are column names) for the session's dialect."""
    table = getattr(model, "__table__", model)
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Upserts are not supported on the {dialect} dialect")
