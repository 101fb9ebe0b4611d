"""Unit tests for the in-memory listing store."""
from datetime import datetime, timedelta, timezone

import pytest

from src.application.listing_store import ListingStore
from src.domain.entities.listing import Listing
from src.domain.enums.listing_status import ListingStatus

_BASE = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _listing(
    listing_id: str,
    *,
    owner_id: str = "owner-1",
    status: ListingStatus = ListingStatus.PENDING,
    featured: bool = False,
    age_days: int = 0,
) -> Listing:
    created = _BASE + timedelta(days=age_days)
    return Listing(
        id=listing_id,
        owner_id=owner_id,
        status=status,
        featured=featured,
        created_at=created,
        updated_at=created,
        title=f"Listing {listing_id}",
    )


@pytest.fixture()
def store() -> ListingStore:
    store = ListingStore()
    store.replace_all(
        [
            _listing("a", status=ListingStatus.APPROVED, featured=True, age_days=2),
            _listing("b", status=ListingStatus.APPROVED, age_days=1),
            _listing("c", owner_id="owner-2", status=ListingStatus.PENDING, age_days=3),
            _listing("d", owner_id="owner-2", status=ListingStatus.REJECTED, age_days=0),
        ]
    )
    return store


class TestReads:
    def test_get(self, store: ListingStore) -> None:
        assert store.get("a").title == "Listing a"
        assert store.get("missing") is None

    def test_all_is_ordered_by_creation(self, store: ListingStore) -> None:
        assert [l.id for l in store.all()] == ["d", "b", "a", "c"]

    def test_list_by_owner(self, store: ListingStore) -> None:
        assert {l.id for l in store.list_by_owner("owner-2")} == {"c", "d"}

    def test_list_by_status(self, store: ListingStore) -> None:
        assert {l.id for l in store.list_by_status(ListingStatus.APPROVED)} == {"a", "b"}

    def test_list_featured_is_approved_and_featured(self, store: ListingStore) -> None:
        assert [l.id for l in store.list_featured()] == ["a"]

    def test_list_public_excludes_unapproved(self, store: ListingStore) -> None:
        assert {l.id for l in store.list_public()} == {"a", "b"}

    def test_len_and_contains(self, store: ListingStore) -> None:
        assert len(store) == 4
        assert "a" in store
        assert "z" not in store


class TestLocalWrites:
    def test_upsert_local_marks_pending_sync(self, store: ListingStore) -> None:
        store.upsert_local(_listing("c", owner_id="owner-2", status=ListingStatus.APPROVED))
        assert store.get("c").status is ListingStatus.APPROVED
        assert store.is_pending_sync("c") is True
        assert store.pending_sync_ids() == {"c"}

    def test_discard_local_removes_and_marks(self, store: ListingStore) -> None:
        store.discard_local("b")
        assert store.get("b") is None
        assert store.is_pending_sync("b") is True

    def test_replace_all_supersedes_local_changes(self, store: ListingStore) -> None:
        store.upsert_local(_listing("c", owner_id="owner-2", status=ListingStatus.APPROVED))
        store.discard_local("b")

        store.replace_all([_listing("b"), _listing("c", owner_id="owner-2")])

        assert store.get("c").status is ListingStatus.PENDING
        assert "b" in store
        assert store.pending_sync_ids() == frozenset()


class TestConfirmedWrites:
    def test_apply_confirmed_clears_pending_flag(self, store: ListingStore) -> None:
        store.upsert_local(_listing("b", status=ListingStatus.REJECTED))
        store.apply_confirmed(_listing("b", status=ListingStatus.REJECTED))
        assert store.is_pending_sync("b") is False
        assert store.get("b").status is ListingStatus.REJECTED

    def test_remove_confirmed(self, store: ListingStore) -> None:
        store.remove_confirmed("a")
        assert store.get("a") is None
        assert store.is_pending_sync("a") is False

    def test_clear(self, store: ListingStore) -> None:
        store.clear()
        assert len(store) == 0


class TestSnapshots:
    def test_readers_keep_their_snapshot(self, store: ListingStore) -> None:
        before = store.all()
        store.replace_all([])
        assert len(before) == 4
        assert store.all() == []
