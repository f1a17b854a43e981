import functools
import logging
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from hiring_api.config import settings
from hiring_api.errors import Unavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _use_immediate_transactions(engine: Engine) -> None:
    """
    pysqlite defers BEGIN until the first write, so two requests can both read a
    balance before either takes the write lock. Emit BEGIN IMMEDIATE ourselves so
    every transaction holds the database write lock from its first statement.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str) -> Engine:
    connect_args: dict = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    engine = create_engine(database_url, future=True, connect_args=connect_args)
    if engine.dialect.name == "sqlite":
        _use_immediate_transactions(engine)
    return engine


def build_sessionmaker(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = build_sessionmaker(engine)


def get_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def write_transaction(session: Session) -> Iterator[Session]:
    """
    Commit everything done inside the block or nothing at all.

    Storage-level failures (lost connection, deadlock, lock timeout) are turned
    into ``Unavailable`` after the rollback; every other exception propagates
    unchanged once the transaction has been discarded.
    """
    try:
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        logger.exception("Write transaction rolled back after storage failure")
        raise Unavailable("Storage is temporarily unavailable, please retry") from exc
    except Exception:
        session.rollback()
        raise


def retry_transient_read(func: Callable[..., T]) -> Callable[..., T]:
    """Retry an idempotent read once when the store reports a transient failure."""

    @functools.wraps(func)
    def wrapper(session: Session, *args, **kwargs) -> T:
        try:
            return func(session, *args, **kwargs)
        except OperationalError as exc:
            logger.warning("Transient storage error in %s, retrying once: %s", func.__name__, exc)
            session.rollback()
        try:
            return func(session, *args, **kwargs)
        except OperationalError as exc:
            session.rollback()
            raise Unavailable("Storage is temporarily unavailable, please retry") from exc

    return wrapper
