"""Database engine setup, schema, transactions and schema migrations."""

from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import Optional, Union

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError


class DatabaseError(Exception):
    """A database operation failed."""


class MigrationError(DatabaseError):
    """Applying schema migrations failed."""


def _stamp(name: str, nullable: bool = False) -> Column:
    return Column(name, DateTime(timezone=True), nullable=nullable)


def _id(name: str, target: Optional[str] = None, **kwargs) -> Column:
    if target is None:
        return Column(name, String(36), **kwargs)
    return Column(name, String(36), ForeignKey(target, ondelete="CASCADE"), **kwargs)


metadata = MetaData()

EVENTS = Table(
    "events", metadata,
    _id("id", primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("venue", String(255)),
    _stamp("start_at"), _stamp("end_at"),
    Column("total_seats", Integer, nullable=False),
    _stamp("created_at"), _stamp("updated_at"),
    Column("version", Integer, nullable=False, default=1),
)

SEATS = Table(
    "seats", metadata,
    _id("id", primary_key=True),
    _id("event_id", "events.id", nullable=False),
    Column("seat_number", String(50), nullable=False),
    Column("status", String(20), nullable=False),
    Column("price", Integer, nullable=False),
    _id("reserved_by"),
    _stamp("reserved_at", nullable=True),
    _stamp("created_at"), _stamp("updated_at"),
    Column("version", Integer, nullable=False, default=1),
)

RESERVATIONS = Table(
    "reservations", metadata,
    _id("id", primary_key=True),
    _id("event_id", "events.id", nullable=False),
    Column("user_id", String(255), nullable=False),
    Column("status", String(20), nullable=False),
    Column("idempotency_key", String(255), nullable=False, unique=True),
    Column("total_amount", Integer, nullable=False),
    _stamp("expires_at"),
    _stamp("confirmed_at", nullable=True),
    _stamp("created_at"), _stamp("updated_at"),
)

RESERVATION_SEATS = Table(
    "reservation_seats", metadata,
    _id("reservation_id", "reservations.id", primary_key=True),
    _id("seat_id", "seats.id", primary_key=True),
)

_SCHEMA_MIGRATIONS = Table(
    "schema_migrations", MetaData(),
    Column("version", BigInteger, primary_key=True, autoincrement=False),
    Column("dirty", Boolean, nullable=False),
)

_MIGRATION_FILE = re.compile(r"^(\d+)_(.+)\.up\.sql$")


def ping(engine: Engine) -> None:
    """Check that the database answers a trivial query."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise DatabaseError(f"database ping failed: {exc}") from exc


def new_connection(dsn: str) -> Engine:
    """Create an engine (25 open, 5 idle connections) and verify it responds."""
    try:
        url = make_url(dsn)
        options = {} if url.get_backend_name() == "sqlite" else {"pool_size": 5, "max_overflow": 20}
        engine = create_engine(url, **options)
        ping(engine)
    except (SQLAlchemyError, DatabaseError, ImportError, ValueError) as exc:
        raise DatabaseError(f"failed to connect to the database: {exc}") from exc
    return engine


class Transaction:
    """A database transaction bound to one connection."""

    def __init__(self, connection: Connection) -> None:
        self.connection = connection
        self._tx = connection.begin()
        self._done = False

    @property
    def active(self) -> bool:
        return not self._done

    def commit(self) -> None:
        self._finish(self._tx.commit)

    def rollback(self) -> None:
        self._finish(self._tx.rollback)

    def _finish(self, action) -> None:
        if self._done:
            raise DatabaseError("transaction has already been committed or rolled back")
        self._done = True
        try:
            action()
        except SQLAlchemyError as exc:
            raise DatabaseError(f"transaction failed to finish: {exc}") from exc
        finally:
            self.connection.close()

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._done:
            self.commit() if exc_type is None else self.rollback()


class TxManager:
    """Starts transactions on an engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def begin(self) -> Transaction:
        try:
            connection = self.engine.connect()
        except SQLAlchemyError as exc:
            raise DatabaseError(f"failed to begin transaction: {exc}") from exc
        try:
            return Transaction(connection)
        except SQLAlchemyError as exc:
            connection.close()
            raise DatabaseError(f"failed to begin transaction: {exc}") from exc


def unwrap_tx(tx: object) -> Optional[Connection]:
    """Return the connection behind a Transaction, or None for anything else."""
    return tx.connection if isinstance(tx, Transaction) else None


def _migration_files(migrations_path: Union[str, Path]) -> list:
    directory = Path(migrations_path)
    if not directory.is_dir():
        raise MigrationError(f"migration directory not found: {directory}")
    found: dict = {}
    for entry in directory.iterdir():
        match = _MIGRATION_FILE.match(entry.name)
        if match is None or not entry.is_file():
            continue
        version = int(match.group(1))
        if version in found:
            raise MigrationError(f"duplicate migration version {version}")
        found[version] = entry
    return sorted(found.items())


def _set_version(engine: Engine, version: int, dirty: bool) -> None:
    with engine.begin() as conn:
        conn.execute(delete(_SCHEMA_MIGRATIONS))
        conn.execute(insert(_SCHEMA_MIGRATIONS).values(version=version, dirty=dirty))


def _execute_script(engine: Engine, script: str) -> None:
    if engine.dialect.name == "sqlite":
        raw = engine.raw_connection()
        try:
            raw.driver_connection.executescript(script)
        finally:
            raw.close()
    else:
        with engine.begin() as conn:
            conn.exec_driver_sql(script)


def run_migrations(engine: Engine, migrations_path: Union[str, Path]) -> list:
    """Apply every "<version>_<name>.up.sql" newer than the recorded version.

    Returns the versions applied, in order; an up-to-date database yields [].
    """
    files = _migration_files(migrations_path)
    try:
        _SCHEMA_MIGRATIONS.create(engine, checkfirst=True)
        with engine.connect() as conn:
            state = conn.execute(
                select(_SCHEMA_MIGRATIONS.c.version, _SCHEMA_MIGRATIONS.c.dirty)
            ).first()
    except SQLAlchemyError as exc:
        raise MigrationError(f"failed to read migration state: {exc}") from exc

    if state is not None and state.dirty:
        raise MigrationError(f"database is dirty at version {state.version}")
    current = state.version if state is not None else -1

    applied = []
    for version, path in files:
        if version <= current:
            continue
        try:
            _set_version(engine, version, dirty=True)
            _execute_script(engine, path.read_text(encoding="utf-8"))
            _set_version(engine, version, dirty=False)
        except (SQLAlchemyError, sqlite3.Error, OSError) as exc:
            raise MigrationError(f"migration {path.name} failed: {exc}") from exc
        applied.append(version)
    return applied