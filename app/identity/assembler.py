"""Consolidation assembler: the read-only "who is this" view of a cluster."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from app.identity.errors import ConsistencyViolation
from app.identity.store import LINK_PRIMARY, LINK_SECONDARY, ContactStore, cluster_order


@dataclass(frozen=True)
class ConsolidatedContact:
    primary_contact_id: int
    emails: list[str] = field(default_factory=list)
    phone_numbers: list[str] = field(default_factory=list)
    secondary_contact_ids: list[int] = field(default_factory=list)


def _ordered_unique(values: Iterable[str | None]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value is None or value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


class ConsolidationAssembler:
    def __init__(self, store: ContactStore) -> None:
        self.store = store

    def assemble(self, primary_id: int) -> ConsolidatedContact:
        """Build the consolidated view for the cluster rooted at *primary_id*.

        The primary's own email and phone come first, then every
        secondary's values in creation order, duplicates and blanks
        skipped.  Performs no writes.
        """
        members = self.store.find_cluster_members(primary_id)
        primary = next((member for member in members if member.id == primary_id), None)
        if primary is None:
            raise ConsistencyViolation(f"Primary contact {primary_id} does not exist", [primary_id])
        if primary.link_precedence != LINK_PRIMARY:
            raise ConsistencyViolation(
                f"Contact {primary_id} is {primary.link_precedence}, not a cluster primary",
                [primary_id],
            )

        secondaries = sorted((member for member in members if member.id != primary_id), key=cluster_order)
        rogue = [member.id for member in secondaries if member.link_precedence != LINK_SECONDARY]
        if rogue:
            raise ConsistencyViolation(
                f"Contacts {rogue} link to primary {primary_id} but claim to be primaries",
                rogue,
            )

        return ConsolidatedContact(
            primary_contact_id=primary.id,
            emails=_ordered_unique([primary.email, *(member.email for member in secondaries)]),
            phone_numbers=_ordered_unique([primary.phone_number, *(member.phone_number for member in secondaries)]),
            secondary_contact_ids=[member.id for member in secondaries],
        )
