# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

"""Shared SQLAlchemy engine per database, with thread-bound transactions.

Statements issued on a thread inside ``DBManager.transaction()`` run on that
transaction's connection and commit or roll back together. Outside a
transaction every statement commits on its own.
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import IntegrityError, NoSuchTableError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.pool import NullPool
from sqlalchemy.sql.expression import Executable

from arbor.utils.exceptions import ArborException, ErrorCode
from arbor.utils.loggings import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def map_db_error(exc: Exception, operation: str = "database operation") -> ArborException:
    """Translate a SQLAlchemy error into an ``ArborException`` with a ``DB_*`` code."""
    if isinstance(exc, ArborException):
        return exc

    orig = getattr(exc, "orig", None)
    message = str(orig if orig is not None else exc)
    lowered = message.lower()
    message_args = {"error_message": message, "operation": operation}

    if isinstance(exc, IntegrityError):
        return ArborException(ErrorCode.DB_CONSTRAINT_VIOLATION, message_args=message_args)
    if isinstance(exc, PoolTimeoutError):
        return ArborException(ErrorCode.DB_CONNECTION_TIMEOUT, message_args=message_args)
    if isinstance(exc, NoSuchTableError) or "no such table" in lowered:
        return ArborException(ErrorCode.DB_TABLE_NOT_EXISTS, message_args={"table_name": message})
    if isinstance(exc, OperationalError):
        if "locked" in lowered or "timed out" in lowered or "timeout" in lowered:
            return ArborException(ErrorCode.DB_CONNECTION_TIMEOUT, message_args=message_args)
        if "unable to open" in lowered or "connection" in lowered:
            return ArborException(ErrorCode.DB_CONNECTION_FAILED, message_args=message_args)
        return ArborException(ErrorCode.DB_EXECUTION_ERROR, message_args=message_args)
    if isinstance(exc, SQLAlchemyError):
        return ArborException(ErrorCode.DB_EXECUTION_ERROR, message_args=message_args)
    return ArborException(ErrorCode.DB_FAILED, message_args=message_args)


def _install_sqlite_hooks(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first write; issue it on begin instead
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class DBManager:
    """Process-wide access point for one database.

    Example:
        >>> db = DBManager.get_instance("/path/to/data", db_name="arbor.db")
        >>> db.create_tables(metadata)
        >>> with db.transaction():
        ...     db.execute(delete(nodes).where(nodes.c.id.in_(child_ids)), operation="delete")
        ...     db.execute(delete(nodes).where(nodes.c.id == root_id), operation="delete")
    """

    _instances: Dict[str, "DBManager"] = {}
    _lock = threading.Lock()

    def __init__(
        self,
        db_path: str,
        db_name: str = "arbor.db",
        connection_string: Optional[str] = None,
        busy_timeout: float = 5.0,
    ):
        """Initialize DBManager.

        Args:
            db_path: Directory holding the SQLite file when no connection string is given
            db_name: SQLite filename
            connection_string: Any SQLAlchemy URL, overrides ``db_path``/``db_name``
            busy_timeout: Seconds SQLite waits on a locked database
        """
        if connection_string is None:
            os.makedirs(db_path, exist_ok=True)
            connection_string = f"sqlite:///{os.path.join(db_path, db_name)}"

        self.db_path = db_path
        self.db_name = db_name
        self.connection_string = connection_string
        self._local = threading.local()
        self._engine = self._create_engine(connection_string, busy_timeout)

        logger.debug(f"DBManager initialized (dialect={self.dialect_name})")

    @classmethod
    def get_instance(
        cls,
        db_path: str,
        db_name: str = "arbor.db",
        connection_string: Optional[str] = None,
        **kwargs: Any,
    ) -> "DBManager":
        """Get or create the shared DBManager for a database location."""
        key = connection_string or os.path.join(db_path, db_name)

        with cls._lock:
            if key not in cls._instances:
                cls._instances[key] = cls(db_path, db_name=db_name, connection_string=connection_string, **kwargs)
            return cls._instances[key]

    @classmethod
    def clear_instances(cls) -> None:
        """Dispose and forget all shared instances."""
        with cls._lock:
            for instance in cls._instances.values():
                instance.close()
            cls._instances.clear()

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    @staticmethod
    def _create_engine(connection_string: str, busy_timeout: float) -> Engine:
        try:
            url = make_url(connection_string)
            options: Dict[str, Any] = {}
            if url.get_backend_name() == "sqlite":
                options["poolclass"] = NullPool
                options["connect_args"] = {"check_same_thread": False, "timeout": busy_timeout}
            else:
                options["pool_pre_ping"] = True
            engine = create_engine(url, **options)
        except SQLAlchemyError as exc:
            raise ArborException(
                ErrorCode.DB_CONNECTION_FAILED,
                message_args={"error_message": f"{connection_string}: {exc}"},
            ) from exc

        if engine.dialect.name == "sqlite":
            _install_sqlite_hooks(engine)
        return engine

    def create_tables(self, metadata: MetaData) -> None:
        """Create any missing tables and indexes of ``metadata``."""
        try:
            metadata.create_all(self._engine, checkfirst=True)
        except SQLAlchemyError as exc:
            raise map_db_error(exc, operation="create table") from exc

    def _active_connection(self) -> Optional[Connection]:
        return getattr(self._local, "conn", None)

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Open a transaction, or join the one already open on this thread.

        Only the outermost block commits; an exception anywhere rolls the
        whole transaction back.
        """
        active = self._active_connection()
        if active is not None:
            yield active
            return

        try:
            conn = self._engine.connect()
            txn = conn.begin()
        except SQLAlchemyError as exc:
            raise map_db_error(exc, operation="transaction begin") from exc

        self._local.conn = conn
        try:
            yield conn
        except BaseException:
            try:
                txn.rollback()
            except SQLAlchemyError as rollback_exc:
                logger.warning(f"Failed to rollback transaction: {rollback_exc}")
            raise
        else:
            try:
                txn.commit()
            except SQLAlchemyError as exc:
                raise map_db_error(exc, operation="transaction commit") from exc
        finally:
            self._local.conn = None
            conn.close()

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        active = self._active_connection()
        if active is not None:
            yield active
            return
        with self._engine.begin() as conn:
            yield conn

    def _run(self, statement: Executable, operation: str, consume: Callable[[CursorResult], T]) -> T:
        # Results are consumed before a self-committing connection closes
        try:
            with self._connection() as conn:
                return consume(conn.execute(statement))
        except SQLAlchemyError as exc:
            raise map_db_error(exc, operation=operation) from exc

    def fetch_all(self, statement: Executable, operation: str = "select") -> List[Dict[str, Any]]:
        return self._run(statement, operation, lambda result: [dict(row) for row in result.mappings()])

    def fetch_scalar(self, statement: Executable, operation: str = "scalar") -> Any:
        return self._run(statement, operation, lambda result: result.scalar())

    def insert(self, statement: Executable, operation: str = "insert") -> int:
        """Execute an INSERT and return the new primary key."""
        return self._run(statement, operation, lambda result: int(result.inserted_primary_key[0]))

    def execute(self, statement: Executable, operation: str) -> int:
        """Execute a write and return the affected row count."""
        return self._run(statement, operation, lambda result: int(result.rowcount or 0))

    def close(self) -> None:
        self._engine.dispose()
        logger.debug(f"DBManager closed: {self.connection_string}")
