"""Identity resolver.

Given an observation, finds the cluster it belongs to, merges clusters
the observation bridges, and appends a contact row when the observation
carries information the cluster has not seen yet.

Steps
-----
1. Candidates: every contact sharing the observation's email or phone.
2. No candidates: the observation starts a new cluster as a primary.
3. Roots: each candidate's primary (itself, or its ``linked_id``).  The
   roots ordered by ``(created_at, id)``; the first is the true primary.
4. Merge: every other root and everything linked to it is demoted and
   relinked to the true primary in one batch.
5. New information: unless the exact (email, phone) pair is already
   stored, a secondary is appended when the email or the phone is absent
   from the pre-merge candidates.

Callers must serialise steps 2-5 for overlapping clusters; see
``app.identity.service``.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from app.identity.errors import ConsistencyViolation
from app.identity.observation import Observation
from app.identity.store import LINK_PRIMARY, LINK_SECONDARY, ContactRecord, ContactStore, cluster_order

logger = logging.getLogger(__name__)


def root_id(contact: ContactRecord) -> int:
    """Return the id of the primary *contact* belongs to."""
    if contact.link_precedence == LINK_PRIMARY:
        return contact.id
    if contact.linked_id is None:
        raise ConsistencyViolation(f"Secondary contact {contact.id} has no linked primary", [contact.id])
    return contact.linked_id


def root_ids(contacts: Iterable[ContactRecord]) -> set[int]:
    return {root_id(contact) for contact in contacts}


class IdentityResolver:
    """Map an ``Observation`` to the id of its cluster's true primary."""

    def __init__(self, store: ContactStore) -> None:
        self.store = store

    def candidate_root_ids(self, observation: Observation) -> set[int]:
        """Roots of the clusters the observation currently touches (read only)."""
        candidates = self.store.find_by_email_or_phone(observation.email, observation.phone_number)
        return root_ids(candidates)

    def resolve(self, observation: Observation) -> int:
        candidates = self.store.find_by_email_or_phone(observation.email, observation.phone_number)

        if not candidates:
            contact = self.store.insert_contact(observation.email, observation.phone_number, LINK_PRIMARY)
            logger.info("Created primary contact %d", contact.id)
            return contact.id

        roots = self._load_roots(root_ids(candidates))
        true_primary, absorbed = roots[0], roots[1:]

        if absorbed:
            absorbed_ids = [root.id for root in absorbed]
            self.store.demote_and_relink(absorbed_ids, true_primary.id)
            logger.info("Merged clusters %s into primary %d", absorbed_ids, true_primary.id)

        if self._carries_new_information(observation, candidates):
            contact = self.store.insert_contact(
                observation.email,
                observation.phone_number,
                LINK_SECONDARY,
                linked_id=true_primary.id,
            )
            logger.info("Created secondary contact %d linked to %d", contact.id, true_primary.id)

        return true_primary.id

    def _load_roots(self, ids: set[int]) -> list[ContactRecord]:
        roots = self.store.find_primaries_by_ids(sorted(ids))
        missing = ids - {root.id for root in roots}
        if missing:
            # A candidate pointing at a secondary (or at nothing) breaks the
            # one-level cluster shape.
            raise ConsistencyViolation(
                f"Contacts are linked to non-primary roots {sorted(missing)}",
                missing,
            )
        return sorted(roots, key=cluster_order)

    def _carries_new_information(self, observation: Observation, candidates: list[ContactRecord]) -> bool:
        if self.store.find_exact(observation.email, observation.phone_number) is not None:
            return False

        known_emails = {contact.email for contact in candidates}
        known_phones = {contact.phone_number for contact in candidates}
        new_email = observation.email is not None and observation.email not in known_emails
        new_phone = observation.phone_number is not None and observation.phone_number not in known_phones
        return new_email or new_phone
