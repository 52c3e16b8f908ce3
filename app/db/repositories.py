from __future__ import annotations

import hashlib
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Generic, TypeVar

from sqlalchemy import func, or_, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db import models
from app.identity.errors import StorageError
from app.identity.store import LINK_PRIMARY, LINK_SECONDARY, VALID_LINK_PRECEDENCES

ModelT = TypeVar("ModelT")


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(f"Failed to {action}") from exc


def advisory_lock_id(key: str) -> int:
    """Stable signed 64-bit id for ``pg_advisory_xact_lock``."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id: int) -> ModelT | None:
        return self.db.get(self.model, entity_id)


class ContactRepository(BaseRepository[models.Contact]):
    """SQL implementation of the ``ContactStore`` port."""

    model = models.Contact

    def _select(self):
        # Re-read rows even when they are already in the identity map; a
        # concurrent merge may have relinked them since the last query.
        return (
            select(models.Contact)
            .execution_options(populate_existing=True)
            .order_by(models.Contact.created_at, models.Contact.id)
        )

    def find_by_email_or_phone(self, email: str | None, phone_number: str | None) -> list[models.Contact]:
        clauses = []
        if email is not None:
            clauses.append(models.Contact.email == email)
        if phone_number is not None:
            clauses.append(models.Contact.phone_number == phone_number)
        if not clauses:
            return []
        with _storage_errors("look up candidate contacts"):
            return list(self.db.execute(self._select().where(or_(*clauses))).scalars().all())

    def insert_contact(
        self,
        email: str | None,
        phone_number: str | None,
        link_precedence: str,
        linked_id: int | None = None,
    ) -> models.Contact:
        if link_precedence not in VALID_LINK_PRECEDENCES:
            raise ValueError(f"Unknown link precedence: {link_precedence!r}")
        with _storage_errors("insert contact"):
            return self.create(
                email=email,
                phone_number=phone_number,
                link_precedence=link_precedence,
                linked_id=linked_id,
            )

    def find_primaries_by_ids(self, ids: Iterable[int]) -> list[models.Contact]:
        wanted = list(ids)
        if not wanted:
            return []
        stmt = self._select().where(
            models.Contact.id.in_(wanted),
            models.Contact.link_precedence == LINK_PRIMARY,
        )
        with _storage_errors("load cluster primaries"):
            return list(self.db.execute(stmt).scalars().all())

    def demote_and_relink(self, old_root_ids: Sequence[int], new_primary_id: int) -> None:
        roots = list(old_root_ids)
        if new_primary_id in roots:
            raise ValueError(f"Contact {new_primary_id} cannot be relinked to itself")
        if not roots:
            return
        stmt = (
            update(models.Contact)
            .where(or_(models.Contact.id.in_(roots), models.Contact.linked_id.in_(roots)))
            .values(link_precedence=LINK_SECONDARY, linked_id=new_primary_id, updated_at=func.now())
            .execution_options(synchronize_session="fetch")
        )
        # One UPDATE statement: the batch lands whole or not at all.
        with _storage_errors("merge clusters"):
            self.db.execute(stmt)

    def find_cluster_members(self, primary_id: int) -> list[models.Contact]:
        stmt = self._select().where(
            or_(models.Contact.id == primary_id, models.Contact.linked_id == primary_id)
        )
        with _storage_errors("load cluster members"):
            return list(self.db.execute(stmt).scalars().all())

    def find_exact(self, email: str | None, phone_number: str | None) -> models.Contact | None:
        email_clause = models.Contact.email.is_(None) if email is None else models.Contact.email == email
        phone_clause = (
            models.Contact.phone_number.is_(None)
            if phone_number is None
            else models.Contact.phone_number == phone_number
        )
        stmt = self._select().where(email_clause, phone_clause).limit(1)
        with _storage_errors("look up exact contact"):
            return self.db.execute(stmt).scalars().first()

    def lock_keys(self, keys: Sequence[str]) -> None:
        """Take transaction-scoped advisory locks on PostgreSQL.

        Other dialects rely on the in-process ``KeyedLock`` alone.
        """
        if self.db.get_bind().dialect.name != "postgresql":
            return
        with _storage_errors("acquire cluster locks"):
            for key in sorted(keys):
                self.db.execute(text("SELECT pg_advisory_xact_lock(:lock_id)"), {"lock_id": advisory_lock_id(key)})

    def commit(self) -> None:
        with _storage_errors("commit"):
            self.db.commit()

    def rollback(self) -> None:
        with _storage_errors("roll back"):
            self.db.rollback()
