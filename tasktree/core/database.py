import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.orm.exc import StaleDataError

from tasktree.core.config import settings
from tasktree.core.errors import ConcurrencyError, ConflictError, StorageError

logger = logging.getLogger(__name__)

engine = create_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Dépendance sessionDB"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_now() -> datetime:
    """Horloge du core: UTC naïf, comme les colonnes DateTime"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@contextmanager
def transaction(db: Session):
    """
    One commit/rollback boundary per logical operation.

    Nothing written inside the block is committed unless the whole block
    succeeds. Driver failures are translated into the core's error taxonomy;
    the caller decides whether to retry.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity violation, transaction rolled back: {e.orig}")
        raise ConflictError("Write conflicts with existing data", detail=str(e.orig)) from e
    except StaleDataError as e:
        db.rollback()
        logger.warning(f"Stale row, transaction rolled back: {e}")
        raise ConcurrencyError("Task was modified concurrently, please retry") from e
    except (OperationalError, PoolTimeoutError, DBAPIError) as e:
        db.rollback()
        logger.error(f"Storage failure, transaction rolled back: {e}")
        raise StorageError("Database unavailable or timed out. Please try again.") from e
    except Exception:
        db.rollback()
        raise
