"""Tests for app/identity/resolver.py: cluster lookup, merge and new-information rules."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.identity.assembler import ConsolidatedContact, ConsolidationAssembler
from app.identity.errors import ConsistencyViolation
from app.identity.memory_store import InMemoryContactStore
from app.identity.observation import Observation
from app.identity.resolver import IdentityResolver, root_id
from app.identity.store import LINK_PRIMARY, LINK_SECONDARY

LORRAINE = "lorraine@hillvalley.edu"
MCFLY = "mcfly@hillvalley.edu"
GEORGE = "george@hillvalley.edu"
BIFF = "biffsucks@hillvalley.edu"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _identify(store: InMemoryContactStore, email: str | None = None, phone: str | None = None) -> ConsolidatedContact:
    primary_id = IdentityResolver(store).resolve(Observation(email=email, phone_number=phone))
    return ConsolidationAssembler(store).assemble(primary_id)


def _assert_one_level_clusters(store: InMemoryContactStore) -> None:
    rows = {row.id: row for row in store.all()}
    for row in rows.values():
        if row.link_precedence == LINK_PRIMARY:
            assert row.linked_id is None
        else:
            assert rows[row.linked_id].link_precedence == LINK_PRIMARY


@pytest.fixture
def hill_valley(memory_store: InMemoryContactStore) -> InMemoryContactStore:
    """Lorraine's cluster (1 primary, 1 secondary) and George's (1 primary)."""
    _identify(memory_store, LORRAINE, "123456")
    _identify(memory_store, MCFLY, "123456")
    _identify(memory_store, GEORGE, "919191")
    return memory_store


# ===========================================================================
# Base case and linking
# ===========================================================================


class TestNewCluster:
    def test_empty_store_creates_primary(self, memory_store: InMemoryContactStore) -> None:
        view = _identify(memory_store, LORRAINE, "123456")
        assert view == ConsolidatedContact(
            primary_contact_id=1,
            emails=[LORRAINE],
            phone_numbers=["123456"],
            secondary_contact_ids=[],
        )
        row = memory_store.get(1)
        assert row.link_precedence == LINK_PRIMARY
        assert row.linked_id is None

    def test_email_only_creates_primary_without_phone(self, memory_store: InMemoryContactStore) -> None:
        view = _identify(memory_store, email=LORRAINE)
        assert view.emails == [LORRAINE]
        assert view.phone_numbers == []
        assert memory_store.get(view.primary_contact_id).phone_number is None

    def test_phone_only_creates_primary_without_email(self, memory_store: InMemoryContactStore) -> None:
        view = _identify(memory_store, phone="123456")
        assert view.emails == []
        assert view.phone_numbers == ["123456"]


class TestNewInformation:
    def test_new_email_links_secondary(self, memory_store: InMemoryContactStore) -> None:
        _identify(memory_store, LORRAINE, "123456")
        view = _identify(memory_store, MCFLY, "123456")

        assert view.primary_contact_id == 1
        assert view.emails == [LORRAINE, MCFLY]
        assert view.phone_numbers == ["123456"]
        assert view.secondary_contact_ids == [2]

        secondary = memory_store.get(2)
        assert secondary.link_precedence == LINK_SECONDARY
        assert secondary.linked_id == 1
        assert (secondary.email, secondary.phone_number) == (MCFLY, "123456")

    def test_new_phone_links_secondary(self, memory_store: InMemoryContactStore) -> None:
        _identify(memory_store, LORRAINE, "123456")
        view = _identify(memory_store, LORRAINE, "777777")
        assert view.phone_numbers == ["123456", "777777"]
        assert view.secondary_contact_ids == [2]

    def test_repeat_observation_is_idempotent(self, hill_valley: InMemoryContactStore) -> None:
        before = _identify(hill_valley, MCFLY, "123456")
        rows_before = hill_valley.all()

        again = _identify(hill_valley, LORRAINE, "123456")

        assert again == before
        assert hill_valley.all() == rows_before

    def test_single_known_field_creates_nothing(self, hill_valley: InMemoryContactStore) -> None:
        count = len(hill_valley.all())
        view = _identify(hill_valley, email=MCFLY)
        assert view.primary_contact_id == 1
        assert len(hill_valley.all()) == count

        _identify(hill_valley, phone="123456")
        assert len(hill_valley.all()) == count

    def test_fields_split_across_rows_of_one_cluster_create_nothing(
        self, memory_store: InMemoryContactStore
    ) -> None:
        _identify(memory_store, LORRAINE, "123456")
        _identify(memory_store, MCFLY, "123456")
        _identify(memory_store, MCFLY, "555000")
        count = len(memory_store.all())

        view = _identify(memory_store, LORRAINE, "555000")

        assert len(memory_store.all()) == count
        assert view.phone_numbers == ["123456", "555000"]

    def test_exact_pair_elsewhere_suppresses_insert(self, memory_store: InMemoryContactStore) -> None:
        _identify(memory_store, email=LORRAINE)
        _identify(memory_store, LORRAINE, "123456")
        count = len(memory_store.all())

        # (LORRAINE, None) exists verbatim as row 1
        _identify(memory_store, email=LORRAINE)
        assert len(memory_store.all()) == count


class TestIndependentClusters:
    def test_unrelated_observation_starts_new_cluster(self, hill_valley: InMemoryContactStore) -> None:
        george = ConsolidationAssembler(hill_valley).assemble(3)
        lorraine = ConsolidationAssembler(hill_valley).assemble(1)

        assert george.secondary_contact_ids == []
        assert set(george.emails).isdisjoint(lorraine.emails)
        assert set(george.phone_numbers).isdisjoint(lorraine.phone_numbers)
        assert {3, *george.secondary_contact_ids}.isdisjoint({1, *lorraine.secondary_contact_ids})


# ===========================================================================
# Merge
# ===========================================================================


class TestMerge:
    def test_bridge_merges_into_older_primary(self, hill_valley: InMemoryContactStore) -> None:
        view = _identify(hill_valley, GEORGE, "123456")

        assert view.primary_contact_id == 1
        assert view.emails == [LORRAINE, MCFLY, GEORGE]
        assert view.phone_numbers == ["123456", "919191"]
        assert view.secondary_contact_ids == [2, 3]

        demoted = hill_valley.get(3)
        assert demoted.link_precedence == LINK_SECONDARY
        assert demoted.linked_id == 1
        # both identifiers were already known
        assert len(hill_valley.all()) == 3
        _assert_one_level_clusters(hill_valley)

    def test_younger_cluster_secondaries_are_repointed(self, memory_store: InMemoryContactStore) -> None:
        _identify(memory_store, LORRAINE, "123456")
        _identify(memory_store, GEORGE, "919191")
        _identify(memory_store, BIFF, "919191")
        _identify(memory_store, BIFF, "717171")

        view = _identify(memory_store, LORRAINE, "717171")

        assert view.primary_contact_id == 1
        assert view.secondary_contact_ids == [2, 3, 4]
        assert [row.linked_id for row in memory_store.all()] == [None, 1, 1, 1]
        assert not [row for row in memory_store.all() if row.linked_id == 2]
        _assert_one_level_clusters(memory_store)

    def test_merge_is_sticky(self, hill_valley: InMemoryContactStore) -> None:
        _identify(hill_valley, GEORGE, "123456")
        view = _identify(hill_valley, GEORGE, "919191")
        assert view.primary_contact_id == 1
        assert view.secondary_contact_ids == [2, 3]

    def test_three_clusters_merge_in_one_observation(self, memory_store: InMemoryContactStore) -> None:
        _identify(memory_store, LORRAINE, "111111")
        _identify(memory_store, GEORGE, "222222")
        _identify(memory_store, BIFF, "333333")

        # email hits cluster 3, phone hits cluster 2; cluster 1 untouched
        view = _identify(memory_store, BIFF, "222222")
        assert view.primary_contact_id == 2
        assert memory_store.get(3).linked_id == 2
        assert memory_store.get(1).link_precedence == LINK_PRIMARY

    def test_oldest_wins_by_created_at_not_id(self) -> None:
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        stamps = iter([base + timedelta(hours=1), base])
        store = InMemoryContactStore(clock=lambda: next(stamps))
        _identify(store, LORRAINE, "123456")
        _identify(store, GEORGE, "919191")

        view = _identify(store, GEORGE, "123456")

        assert view.primary_contact_id == 2
        assert store.get(1).linked_id == 2
        assert view.emails == [GEORGE, LORRAINE]
        assert view.phone_numbers == ["919191", "123456"]

    def test_created_at_tie_breaks_on_lowest_id(self) -> None:
        instant = datetime(2024, 1, 1, tzinfo=timezone.utc)
        store = InMemoryContactStore(clock=lambda: instant)
        _identify(store, LORRAINE, "123456")
        _identify(store, GEORGE, "919191")

        view = _identify(store, GEORGE, "123456")

        assert view.primary_contact_id == 1
        assert store.get(2).linked_id == 1


# ===========================================================================
# Consistency faults
# ===========================================================================


class TestConsistency:
    def test_secondary_linked_to_secondary_is_reported(self, hill_valley: InMemoryContactStore) -> None:
        # Corrupt the graph: George (3) becomes a secondary of secondary 2.
        hill_valley._rows[3].link_precedence = LINK_SECONDARY
        hill_valley._rows[3].linked_id = 2
        rows_before = hill_valley.all()

        with pytest.raises(ConsistencyViolation) as excinfo:
            IdentityResolver(hill_valley).resolve(Observation(email=GEORGE))

        assert excinfo.value.contact_ids == (2,)
        assert hill_valley.all() == rows_before

    def test_secondary_without_link_is_reported(self, hill_valley: InMemoryContactStore) -> None:
        hill_valley._rows[2].linked_id = None
        with pytest.raises(ConsistencyViolation):
            IdentityResolver(hill_valley).resolve(Observation(email=MCFLY))

    def test_root_id(self, hill_valley: InMemoryContactStore) -> None:
        assert root_id(hill_valley.get(1)) == 1
        assert root_id(hill_valley.get(2)) == 1
