"""
Database Connection Module

Provides the SQLAlchemy engine, request-scoped sessions and raw SQL helpers.
"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generator

from sqlalchemy import Numeric, bindparam, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.sql.elements import TextClause

from .config import PortalSettings
from .schema import metadata

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def configure_engine(settings: PortalSettings) -> Engine:
    """Create the engine and session factory from settings.

    Args:
        settings: Portal settings holding the database URL

    Returns:
        The configured engine
    """
    global _engine, _session_factory

    if settings.database_url.startswith("sqlite"):
        _engine = create_engine(settings.database_url)
    else:
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
        )

    _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def init_db(engine: Engine | None = None) -> None:
    """Create all portal tables that do not exist yet."""
    metadata.create_all(engine or _engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session for FastAPI dependency injection.

    Yields:
        Database session
    """
    if _session_factory is None:
        raise RuntimeError("Database engine is not configured")

    db = _session_factory()
    try:
        yield db
    finally:
        db.close()


def _prepare_params(params: dict | None) -> dict:
    """Convert date values into ISO strings. Decimal values are bound as-is."""
    prepared = {}
    for key, value in (params or {}).items():
        if isinstance(value, datetime):
            value = value.isoformat(sep=" ")
        elif isinstance(value, date):
            value = value.isoformat()
        prepared[key] = value
    return prepared


def _statement(query: str, params: dict) -> TextClause:
    """Build a text() statement with Numeric binds for Decimal parameters.

    The dialect decides how a Decimal reaches the driver: psycopg receives
    it unchanged, SQLite (no native decimal) gets it converted.
    """
    statement = text(query)
    numeric = [
        bindparam(key, type_=Numeric(asdecimal=True))
        for key, value in params.items()
        if isinstance(value, Decimal) and re.search(rf"(?<!:):{key}\b", query)
    ]
    if numeric:
        statement = statement.bindparams(*numeric)
    return statement


def as_decimal(value: Any) -> Decimal:
    """Convert a numeric column value to Decimal (None becomes 0)."""
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def as_date(value: Any) -> date | None:
    """Convert a date column value, treating empty/zero dates as None."""
    if value is None or value == "" or value == "0000-00-00":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def execute_query(db: Session, query: str, params: dict | None = None) -> list[dict]:
    """Execute raw SQL and return rows as dictionaries.

    Does not commit; callers own the transaction.

    Args:
        db: Database session
        query: SQL query string
        params: Query parameters

    Returns:
        List of result dictionaries (empty for statements without rows)
    """
    params = _prepare_params(params)
    result = db.execute(_statement(query, params), params)

    if result.returns_rows:
        columns = result.keys()
        return [dict(zip(columns, row)) for row in result.fetchall()]

    return []


def execute_update(db: Session, query: str, params: dict | None = None) -> int:
    """Execute UPDATE/DELETE and return the number of affected rows."""
    params = _prepare_params(params)
    result = db.execute(_statement(query, params), params)
    return result.rowcount


def execute_insert(
    db: Session,
    table: str,
    data: dict,
    returning: str = "id",
) -> dict | None:
    """Execute INSERT and return the inserted row.

    Args:
        db: Database session
        table: Table name
        data: Column-value dictionary
        returning: Column to return (default: id)

    Returns:
        Inserted row or None
    """
    columns = ", ".join(data.keys())
    placeholders = ", ".join(f":{k}" for k in data.keys())
    query = f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING {returning}"

    results = execute_query(db, query, data)
    return results[0] if results else None
