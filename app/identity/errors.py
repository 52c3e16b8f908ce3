"""Error kinds raised by the identity reconciliation core."""
from __future__ import annotations

from collections.abc import Iterable


class IdentityError(Exception):
    """Base class for all identity reconciliation failures."""


class ValidationError(IdentityError):
    """The observation carries neither an email nor a phone number."""


class StorageError(IdentityError):
    """The contact store is unreachable or a mutation failed."""


class LockTimeout(StorageError):
    """A cluster lock could not be acquired in time."""

    def __init__(self, key: str, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout:.1f}s waiting for lock {key!r}")
        self.key = key
        self.timeout = timeout


class ConsistencyViolation(IdentityError):
    """The stored cluster graph breaks an invariant.

    Reported, never repaired: a silent fix could hide a race between two
    writers.
    """

    def __init__(self, message: str, contact_ids: Iterable[int] = ()) -> None:
        super().__init__(message)
        self.contact_ids = tuple(sorted(contact_ids))
