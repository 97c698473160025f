from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import load_settings
from .errors import StorageUnavailable

SessionLocal = scoped_session(sessionmaker(autoflush=False, autocommit=False, future=True))
engine: Engine


def _build_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, future=True, echo=False, pool_pre_ping=True)
    # Request threads share the database; writers wait on the busy timeout instead of failing.
    connect_args = {"check_same_thread": False, "timeout": 30}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(database_url, future=True, echo=False, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(database_url, future=True, echo=False, connect_args=connect_args)


def configure_engine(database_url: str) -> Engine:
    global engine
    SessionLocal.remove()
    engine = _build_engine(database_url)
    SessionLocal.configure(bind=engine)
    return engine


configure_engine(load_settings().database_url)


@contextmanager
def session_scope() -> Iterator:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        raise StorageUnavailable(f"storage unavailable: {exc.orig}") from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
