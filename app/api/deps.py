"""FastAPI dependency injection — database sessions and service factories."""
from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.db.repositories import ContactRepository
from app.db.session import get_session_factory
from app.identity.locking import KeyedLock
from app.identity.service import IdentityService

_cluster_locks = KeyedLock()


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_cluster_locks() -> KeyedLock:
    """Return the process-wide cluster lock registry."""
    return _cluster_locks


def get_contact_store(db: Session = Depends(get_db)) -> ContactRepository:
    """Return a ContactRepository bound to the current DB session."""
    return ContactRepository(db)


def get_identity_service(
    store: ContactRepository = Depends(get_contact_store),
    locks: KeyedLock = Depends(get_cluster_locks),
) -> IdentityService:
    """Return an IdentityService over the request's store and the shared locks."""
    settings = get_settings()
    return IdentityService(
        store,
        locks,
        lock_timeout=settings.lock_timeout_seconds,
        retry_limit=settings.lock_retry_limit,
    )
