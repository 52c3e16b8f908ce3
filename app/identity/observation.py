"""Inbound observation: the (email, phone number) pair being identified."""
from __future__ import annotations

from dataclasses import dataclass

from app.identity.errors import ValidationError

MISSING_IDENTIFIER_MESSAGE = "Email or phoneNumber is required"


def _clean(value: object, field_name: str) -> str | None:
    if value is None:
        return None
    # bool is an int subclass; a JSON true is not a phone number
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a string or a number")
    if isinstance(value, int):
        # zero is falsy on the wire and counts as absent, like ""
        return str(value) if value else None
    if isinstance(value, str):
        return value or None
    raise ValidationError(f"{field_name} must be a string or a number")


@dataclass(frozen=True)
class Observation:
    """A typed pair of optional identifiers; at least one is always present.

    Values are opaque strings compared by exact equality.  Numeric phone
    numbers are kept in their decimal string form.
    """

    email: str | None = None
    phone_number: str | None = None

    def __post_init__(self) -> None:
        if self.email is None and self.phone_number is None:
            raise ValidationError(MISSING_IDENTIFIER_MESSAGE)

    @classmethod
    def from_raw(cls, email: object = None, phone_number: object = None) -> Observation:
        """Normalise raw request values; empty strings and 0 count as absent."""
        return cls(
            email=_clean(email, "email"),
            phone_number=_clean(phone_number, "phoneNumber"),
        )

    def lock_keys(self) -> set[str]:
        keys: set[str] = set()
        if self.email is not None:
            keys.add(f"email:{self.email}")
        if self.phone_number is not None:
            keys.add(f"phone:{self.phone_number}")
        return keys
