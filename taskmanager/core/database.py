import logging
import threading
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterator, List, Optional

from fastapi import Request
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from taskmanager.core.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

Base = declarative_base()

REQUIRED_TABLES = ("users", "tasks")

LOCK_TIMEOUT = 30.0

# verrous du store tenus par le contexte courant
_held_locks: ContextVar[FrozenSet[object]] = ContextVar("held_store_locks", default=frozenset())


def utcnow() -> datetime:
    # UTC naïf, comme stocké par SQLite
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StoreLock:
    """Re-entrant lock owned by an execution context instead of a thread.

    FastAPI enters a generator dependency on one worker thread and closes it
    on another, so the holder may release from any thread. Nested
    acquisitions in the same context (a ``session()`` body calling
    ``execute()``) do not block.
    """

    def __init__(self, timeout: float = LOCK_TIMEOUT):
        self.timeout = timeout
        self._cond = threading.Condition()
        self._owner: Optional[object] = None
        self._depth = 0

    @property
    def locked(self) -> bool:
        return self._owner is not None

    def acquire(self) -> None:
        held = _held_locks.get()
        with self._cond:
            if self._owner is not None and self._owner in held:
                self._depth += 1
                return
            if not self._cond.wait_for(lambda: self._owner is None, timeout=self.timeout):
                raise ServiceUnavailableError("Database is busy, please retry")
            self._owner = object()
            self._depth = 1
            _held_locks.set(held | {self._owner})

    def release(self) -> None:
        with self._cond:
            if self._owner is None:
                raise RuntimeError("release of an unlocked StoreLock")
            self._depth -= 1
            if self._depth == 0:
                self._owner = None
                self._cond.notify()

    def __enter__(self) -> "StoreLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


class QueryResult:
    def __init__(self, rows: List[Dict[str, Any]], row_count: int):
        self.rows = rows
        self.row_count = row_count

    def __repr__(self) -> str:
        return f"QueryResult(rows={len(self.rows)}, row_count={self.row_count})"


class Database:
    """In-process relational store.

    With the default URL the data lives in a single in-memory SQLite
    connection and disappears with the process. The schema is created on
    first use. Every session and statement holds the store lock, so work
    reaches the shared connection one unit at a time.
    """

    def __init__(self, url: str = "sqlite+pysqlite:///:memory:", echo: bool = False,
                 lock_timeout: float = LOCK_TIMEOUT):
        self.url = url
        self.engine = _build_engine(url, echo)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self._lock = StoreLock(lock_timeout)
        self._initialized = False

    def initialize(self) -> None:
        """Create tables and indexes unless they already exist."""
        # importe les modèles pour les enregistrer sur Base.metadata
        from taskmanager.models import task, user  # noqa: F401

        with self._lock:
            if self._initialized:
                return
            if self.check_setup():
                logger.info("Database tables already exist, skipping initialization")
                self._initialized = True
                return
            try:
                Base.metadata.create_all(bind=self.engine)
            except SQLAlchemyError:
                logger.exception("Database initialization failed")
                raise
            self._initialized = True
            logger.info("Database initialized: tables %s", ", ".join(REQUIRED_TABLES))

    def ensure_initialized(self) -> None:
        if not self._initialized:
            self.initialize()

    def check_setup(self) -> bool:
        with self._lock:
            existing = set(inspect(self.engine).get_table_names())
        missing = [name for name in REQUIRED_TABLES if name not in existing]
        if missing:
            logger.debug("Missing tables: %s", ", ".join(missing))
        return not missing

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        """Run a parameterized statement; values only travel as bound parameters."""
        start = time.perf_counter()
        with self._lock:
            self.ensure_initialized()
            with self.engine.begin() as conn:
                result = conn.execute(text(sql), params or {})
                rows = [dict(row) for row in result.mappings()] if result.returns_rows else []
                row_count = result.rowcount if result.rowcount is not None and result.rowcount >= 0 else len(rows)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug("Executed query %r in %.1fms, rows=%s", sql, duration_ms, row_count)
        return QueryResult(rows, row_count)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session for a unit of work; rolled back if the block raises.

        The store lock is held until the session is closed.
        """
        with self._lock:
            self.ensure_initialized()
            db = self.SessionLocal()
            try:
                yield db
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session committed when the block succeeds."""
        with self.session() as db:
            yield db
            db.commit()

    def close(self) -> None:
        # rien à fermer côté données, on libère juste l'engine
        with self._lock:
            self.engine.dispose()
            self._initialized = False
        logger.info("Database connection closed")


def _build_engine(url: str, echo: bool):
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(url, echo=echo, pool_pre_ping=True)

    kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if parsed.database in (None, "", ":memory:"):
        # une seule connexion partagée, sinon chaque connexion aurait sa propre base vide
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request) -> Iterator[Session]:
    """Dépendance session DB"""
    with get_database(request).session() as db:
        yield db
