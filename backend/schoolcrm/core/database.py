"""Database engine, session factory, and dependency injection."""
import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from schoolcrm.core.config import settings
from schoolcrm.core.exceptions import Conflict, LookupFailed

logger = logging.getLogger(__name__)

engine = create_engine(
    settings.DATABASE_URL,
    pool_size=10,
    max_overflow=20,
    pool_timeout=30,
    pool_recycle=1800,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that provides a DB session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run a block of writes atomically.

    Commits when the block exits normally; any exception (including a
    cancelled request) rolls the whole block back and is re-raised.
    """
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise


@contextmanager
def atomic(db: Session, what: str) -> Iterator[Session]:
    """``transaction`` whose database failures surface as typed errors.

    A constraint violation means another request got there first
    (``Conflict``); anything else from the driver is ``LookupFailed``.
    """
    try:
        with transaction(db):
            yield db
    except IntegrityError as e:
        logger.warning(f"{what} rejected by a constraint: {e.orig}")
        raise Conflict(f"{what} clashed with a concurrent change; retry") from e
    except SQLAlchemyError as e:
        logger.error(f"{what} rolled back: {e}")
        raise LookupFailed(f"{what} failed; nothing was saved") from e
