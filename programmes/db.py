"""Engine, session factory and the per-operation transaction scope.

Service functions never commit; callers wrap a unit of work in
:func:`session_scope` so that version swaps, overlay writes and session
materialization land together or not at all.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from programmes.config import get_settings
from programmes.logging_config import ctx
from programmes.models import Base

logger = logging.getLogger(__name__)

__all__ = ["Base", "get_engine", "get_session_factory", "session_scope", "reset_engine"]


def _configure_sqlite(engine: Engine) -> None:
    # pysqlite issues its own BEGIN and breaks SAVEPOINT; let SQLAlchemy drive it.
    @event.listens_for(engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _log_slow_statements(engine: Engine, threshold_ms: float) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def start_timer(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_started", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def stop_timer(conn, cursor, statement, parameters, context, executemany):
        elapsed_ms = (time.perf_counter() - conn.info["query_started"].pop()) * 1000
        if elapsed_ms > threshold_ms:
            logger.warning("slow_query", extra=ctx(duration_ms=round(elapsed_ms, 2), statement=statement[:200]))


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    settings = get_settings()
    engine = create_engine(settings.database_url, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        _configure_sqlite(engine)
    _log_slow_statements(engine, settings.slow_query_ms)
    return engine


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False)


def reset_engine() -> None:
    """Forget the cached engine, e.g. after DATABASE_URL changes."""
    if get_engine.cache_info().currsize:
        get_engine().dispose()
    get_session_factory.cache_clear()
    get_engine.cache_clear()


@contextmanager
def session_scope() -> Iterator[Session]:
    """One transaction: commit on success, roll back on any exception."""
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
