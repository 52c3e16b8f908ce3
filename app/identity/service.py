"""Atomic identify: lock the affected clusters, resolve, assemble, commit.

Lock keys are the observation's identifiers plus the roots of every
cluster it touches.  Roots can move while we wait (a concurrent merge
demotes one), so after locking the roots are read again; if a root we
do not hold appeared, the locks are released and the wider set is
taken.
"""
from __future__ import annotations

import logging

from app.identity.assembler import ConsolidatedContact, ConsolidationAssembler
from app.identity.errors import ConsistencyViolation, IdentityError, StorageError
from app.identity.locking import KeyedLock
from app.identity.observation import Observation
from app.identity.resolver import IdentityResolver
from app.identity.store import ContactStore

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0
DEFAULT_LOCK_RETRY_LIMIT = 5


def root_lock_key(contact_id: int) -> str:
    return f"root:{contact_id}"


class IdentityService:
    def __init__(
        self,
        store: ContactStore,
        locks: KeyedLock,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        retry_limit: int = DEFAULT_LOCK_RETRY_LIMIT,
    ) -> None:
        self.store = store
        self.locks = locks
        self.lock_timeout = lock_timeout
        self.retry_limit = retry_limit
        self.resolver = IdentityResolver(store)
        self.assembler = ConsolidationAssembler(store)

    def identify(self, observation: Observation) -> ConsolidatedContact:
        logger.info("Identify request email=%s phone=%s", observation.email, observation.phone_number)
        try:
            view = self._identify_locked(observation)
        except ConsistencyViolation as exc:
            self.store.rollback()
            logger.exception("Cluster consistency violation for contacts %s", list(exc.contact_ids))
            raise
        except IdentityError:
            self.store.rollback()
            logger.exception("Identify request failed")
            raise

        logger.info(
            "Resolved to primary %d with %d emails, %d phones, %d secondaries",
            view.primary_contact_id,
            len(view.emails),
            len(view.phone_numbers),
            len(view.secondary_contact_ids),
        )
        return view

    def _identify_locked(self, observation: Observation) -> ConsolidatedContact:
        identifier_keys = observation.lock_keys()
        roots = self.resolver.candidate_root_ids(observation)

        for _ in range(self.retry_limit + 1):
            keys = identifier_keys | {root_lock_key(root) for root in roots}
            with self.locks.hold(keys, timeout=self.lock_timeout):
                self.store.lock_keys(sorted(keys))
                current = self.resolver.candidate_root_ids(observation)
                if current <= roots:
                    primary_id = self.resolver.resolve(observation)
                    view = self.assembler.assemble(primary_id)
                    self.store.commit()
                    return view
            # Store-level locks belong to the open transaction; drop them too.
            self.store.rollback()
            logger.debug("Cluster roots moved from %s to %s; widening locks", sorted(roots), sorted(current))
            roots |= current

        raise StorageError(f"Cluster roots kept moving after {self.retry_limit} retries")
