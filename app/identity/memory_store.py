"""In-memory ``ContactStore`` used by tests and local experiments.

Every mutation is applied immediately under an internal lock, so
``commit`` and ``rollback`` are no-ops and ``demote_and_relink`` is
trivially all-or-nothing.  Rows handed out are copies; callers cannot
change stored state behind the store's back.
"""
from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from app.identity.store import LINK_PRIMARY, LINK_SECONDARY, VALID_LINK_PRECEDENCES, cluster_order


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StoredContact:
    id: int
    email: str | None
    phone_number: str | None
    link_precedence: str
    linked_id: int | None
    created_at: datetime


class InMemoryContactStore:
    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._rows: dict[int, StoredContact] = {}
        self._next_id = 1
        self._guard = threading.Lock()

    def _sorted(self, rows: Iterable[StoredContact]) -> list[StoredContact]:
        return [replace(row) for row in sorted(rows, key=cluster_order)]

    def find_by_email_or_phone(self, email: str | None, phone_number: str | None) -> list[StoredContact]:
        with self._guard:
            return self._sorted(
                row
                for row in self._rows.values()
                if (email is not None and row.email == email)
                or (phone_number is not None and row.phone_number == phone_number)
            )

    def insert_contact(
        self,
        email: str | None,
        phone_number: str | None,
        link_precedence: str,
        linked_id: int | None = None,
    ) -> StoredContact:
        if link_precedence not in VALID_LINK_PRECEDENCES:
            raise ValueError(f"Unknown link precedence: {link_precedence!r}")
        if (link_precedence == LINK_SECONDARY) != (linked_id is not None):
            raise ValueError("linked_id must be set exactly when link_precedence is 'secondary'")
        with self._guard:
            row = StoredContact(
                id=self._next_id,
                email=email,
                phone_number=phone_number,
                link_precedence=link_precedence,
                linked_id=linked_id,
                created_at=self._clock(),
            )
            self._rows[row.id] = row
            self._next_id += 1
            return replace(row)

    def find_primaries_by_ids(self, ids: Iterable[int]) -> list[StoredContact]:
        wanted = set(ids)
        with self._guard:
            return self._sorted(
                row for row in self._rows.values() if row.id in wanted and row.link_precedence == LINK_PRIMARY
            )

    def demote_and_relink(self, old_root_ids: Sequence[int], new_primary_id: int) -> None:
        roots = set(old_root_ids)
        if new_primary_id in roots:
            raise ValueError(f"Contact {new_primary_id} cannot be relinked to itself")
        with self._guard:
            for row in self._rows.values():
                if row.id in roots or row.linked_id in roots:
                    row.link_precedence = LINK_SECONDARY
                    row.linked_id = new_primary_id

    def find_cluster_members(self, primary_id: int) -> list[StoredContact]:
        with self._guard:
            return self._sorted(
                row for row in self._rows.values() if row.id == primary_id or row.linked_id == primary_id
            )

    def find_exact(self, email: str | None, phone_number: str | None) -> StoredContact | None:
        with self._guard:
            matches = self._sorted(
                row
                for row in self._rows.values()
                if row.email == email and row.phone_number == phone_number
            )
        return matches[0] if matches else None

    def get(self, contact_id: int) -> StoredContact | None:
        with self._guard:
            row = self._rows.get(contact_id)
            return replace(row) if row is not None else None

    def all(self) -> list[StoredContact]:
        with self._guard:
            return self._sorted(self._rows.values())

    def lock_keys(self, keys: Sequence[str]) -> None:
        return None

    def commit(self) -> None:
        return None

    def rollback(self) -> None:
        return None
