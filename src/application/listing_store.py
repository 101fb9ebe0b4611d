"""
In-memory table of the best-known listing collection.

The store is the only mutable state shared between the reconciliation loop
and user-triggered mutations. Every operation takes the same lock and works
on whole dicts, so readers never observe a partially replaced collection.
"""
import threading
from collections.abc import Iterable
from types import MappingProxyType

import structlog

from src.domain.entities.listing import Listing
from src.domain.enums.listing_status import ListingStatus

logger = structlog.get_logger(__name__)


class ListingStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._listings: MappingProxyType[str, Listing] = MappingProxyType({})
        # Ids applied locally but never acknowledged by the authoritative store
        self._pending_sync: frozenset[str] = frozenset()

    # -------------------------------------------------------------------------
    # Writers
    # -------------------------------------------------------------------------

    def replace_all(self, listings: Iterable[Listing]) -> None:
        """Swap in a fresh authoritative collection, dropping all local-only state."""
        fresh = {listing.id: listing for listing in listings}
        with self._lock:
            dropped = self._pending_sync
            self._listings = MappingProxyType(fresh)
            self._pending_sync = frozenset()
        if dropped:
            logger.info("local_changes_superseded", listing_ids=sorted(dropped))

    def upsert_local(self, listing: Listing) -> None:
        """Apply an optimistic change that the authoritative store has not accepted."""
        with self._lock:
            self._listings = MappingProxyType({**self._listings, listing.id: listing})
            self._pending_sync = self._pending_sync | {listing.id}

    def discard_local(self, listing_id: str) -> None:
        """Remove a listing locally after its authoritative delete failed."""
        with self._lock:
            remaining = {k: v for k, v in self._listings.items() if k != listing_id}
            self._listings = MappingProxyType(remaining)
            self._pending_sync = self._pending_sync | {listing_id}

    def apply_confirmed(self, listing: Listing) -> None:
        """Apply the canonical value returned by an acknowledged write."""
        with self._lock:
            self._listings = MappingProxyType({**self._listings, listing.id: listing})
            self._pending_sync = self._pending_sync - {listing.id}

    def remove_confirmed(self, listing_id: str) -> None:
        with self._lock:
            remaining = {k: v for k, v in self._listings.items() if k != listing_id}
            self._listings = MappingProxyType(remaining)
            self._pending_sync = self._pending_sync - {listing_id}

    def clear(self) -> None:
        self.replace_all(())

    # -------------------------------------------------------------------------
    # Readers
    # -------------------------------------------------------------------------

    def _snapshot(self) -> MappingProxyType[str, Listing]:
        with self._lock:
            return self._listings

    def get(self, listing_id: str) -> Listing | None:
        return self._snapshot().get(listing_id)

    def all(self) -> list[Listing]:
        return sorted(self._snapshot().values(), key=lambda l: l.created_at)

    def list_by_owner(self, owner_id: str) -> list[Listing]:
        return [l for l in self.all() if l.owner_id == owner_id]

    def list_by_status(self, status: ListingStatus) -> list[Listing]:
        return [l for l in self.all() if l.status is status]

    def list_featured(self) -> list[Listing]:
        return [l for l in self.all() if l.featured and l.status is ListingStatus.APPROVED]

    def list_public(self) -> list[Listing]:
        """Listings safe to show on public surfaces (approved only)."""
        return [l for l in self.all() if l.is_public]

    def is_pending_sync(self, listing_id: str) -> bool:
        with self._lock:
            return listing_id in self._pending_sync

    def pending_sync_ids(self) -> frozenset[str]:
        with self._lock:
            return self._pending_sync

    def __len__(self) -> int:
        return len(self._snapshot())

    def __contains__(self, listing_id: object) -> bool:
        return listing_id in self._snapshot()
