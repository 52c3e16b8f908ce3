#!/usr/bin/env python3
"""Seed demo contacts: two Hill Valley clusters, then the request that bridges them.

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py
"""
from __future__ import annotations

import sys

from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from app.db.base import Base
from app.db.repositories import ContactRepository
from app.db.session import get_engine
from app.identity.locking import KeyedLock
from app.identity.observation import Observation
from app.identity.service import IdentityService

DEMO_OBSERVATIONS = [
    # (email, phone)
    ("lorraine@hillvalley.edu", "123456"),
    ("mcfly@hillvalley.edu", "123456"),
    ("george@hillvalley.edu", "919191"),
    ("biffsucks@hillvalley.edu", "717171"),
    ("george@hillvalley.edu", "717171"),
]


def seed(session: Session) -> None:
    """Run the demo observations through the identity service, in order."""
    service = IdentityService(ContactRepository(session), KeyedLock())
    for email, phone in DEMO_OBSERVATIONS:
        view = service.identify(Observation.from_raw(email, phone))
        print(
            f"{email} / {phone} -> primary {view.primary_contact_id}, "
            f"secondaries {view.secondary_contact_ids}"
        )


def main() -> None:
    engine = get_engine()
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session)


if __name__ == "__main__":
    main()
