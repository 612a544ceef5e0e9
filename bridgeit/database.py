"""
Database engine + session factory.

Always initializes — defaults to SQLite for local dev, Postgres in production.
session_scope() wraps one sprint operation in one transaction.
"""
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError

from bridgeit.config import DATABASE_URL
from bridgeit.errors import SprintError, ConflictingStateError, InternalError

logger = logging.getLogger('bridgeit.database')


class Base(DeclarativeBase):
    pass


# Railway injects postgres:// but SQLAlchemy 2.x requires postgresql://
url = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

# SQLite needs different engine kwargs than Postgres
if url.startswith('sqlite'):
    engine = create_engine(url, connect_args={'check_same_thread': False})
else:
    engine = create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)

SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()


@contextmanager
def session_scope():
    """
    Transactional scope for a single operation.

    Commits on success. Domain errors roll back and propagate untouched;
    a version mismatch or uniqueness violation becomes ConflictingStateError;
    anything else from the driver is logged and surfaced as InternalError.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except SprintError:
        session.rollback()
        raise
    except StaleDataError as e:
        session.rollback()
        logger.warning("Concurrent update detected: %s", e)
        raise ConflictingStateError(
            'Record was modified by another request, retry the operation',
            code='concurrent_update',
        ) from e
    except IntegrityError as e:
        session.rollback()
        logger.warning("Integrity violation: %s", e.orig)
        raise ConflictingStateError(
            'Operation conflicts with existing data',
            code='integrity_violation',
        ) from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Storage failure", exc_info=True)
        raise InternalError('Storage failure') from e
    finally:
        session.close()
