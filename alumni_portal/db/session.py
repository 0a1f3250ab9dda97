from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from alumni_portal.core.config import settings
from alumni_portal.db.base import Base


def build_engine(url: str, echo: bool = False) -> Engine:
    kwargs = {}
    if url.startswith("sqlite"):
        # request handlers and the threadpool share connections
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(url, echo=echo, **kwargs)


engine = build_engine(settings.database_url, echo=settings.db_echo)

# Orders and users are read again after commit to build responses,
# so committed objects keep their loaded state.
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)

def init_db() -> None:
    """Create tables for every registered model."""
    # model modules register themselves on Base.metadata when imported
    from alumni_portal.models import membership_record, order, user  # noqa: F401
    Base.metadata.create_all(bind=engine)

@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for scripts running outside a request."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
