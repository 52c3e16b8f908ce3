"""The contact store port consumed by the resolver and the assembler."""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Protocol

LINK_PRIMARY = "primary"
LINK_SECONDARY = "secondary"

VALID_LINK_PRECEDENCES: frozenset[str] = frozenset({LINK_PRIMARY, LINK_SECONDARY})


class ContactRecord(Protocol):
    id: int
    email: str | None
    phone_number: str | None
    link_precedence: str
    linked_id: int | None
    created_at: datetime


class ContactStore(Protocol):
    """Durable keyed storage for contacts.

    Every ``find_*`` method returning several rows orders them by
    ``created_at`` ascending, then ``id`` ascending.
    """

    def find_by_email_or_phone(self, email: str | None, phone_number: str | None) -> list[ContactRecord]: ...

    def insert_contact(
        self,
        email: str | None,
        phone_number: str | None,
        link_precedence: str,
        linked_id: int | None = None,
    ) -> ContactRecord: ...

    def find_primaries_by_ids(self, ids: Iterable[int]) -> list[ContactRecord]: ...

    def demote_and_relink(self, old_root_ids: Sequence[int], new_primary_id: int) -> None:
        """Point every old root, and everything linked to one, at the new primary.

        Must apply as a single all-or-nothing batch.
        """
        ...

    def find_cluster_members(self, primary_id: int) -> list[ContactRecord]: ...

    def find_exact(self, email: str | None, phone_number: str | None) -> ContactRecord | None: ...

    def lock_keys(self, keys: Sequence[str]) -> None:
        """Take store-level locks on *keys* until the next commit or rollback."""
        ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


def cluster_order(contact: ContactRecord) -> tuple[datetime, int]:
    """Sort key giving the "oldest wins" total order."""
    return (contact.created_at, contact.id)
