"""
In-process stand-in for the marketplace backend.

Used for local development and tests. It runs the same server-side rules as
the real API and reports refusals the way the HTTP client does, as
``WriteRejectedError``. Setting ``available`` to False makes every call fail
with ``PersistenceUnavailableError`` to simulate an outage.
"""
from collections.abc import Collection, Iterable, Mapping
from itertools import count
from typing import Any

import structlog

from src.application.interfaces.actor_directory import ActorDirectory
from src.application.interfaces.audit_log_gateway import AuditLogGateway
from src.application.interfaces.listing_gateway import (
    ListingGateway,
    PersistenceUnavailableError,
    WriteRejectedError,
)
from src.application.interfaces.listing_repository import ListingRepository
from src.application.use_cases.authoritative_listings import AuthoritativeListings
from src.application.use_cases.listing_mutation import ListingNotFoundError
from src.domain.audit.filters import AuditFilters, PageRequest
from src.domain.entities.actor import Actor, ActorProfile
from src.domain.entities.audit_record import AuditEntry, AuditRecord
from src.domain.entities.listing import Listing, ListingDraft, ListingValidationError
from src.domain.enums.listing_status import CollectionScope, ListingStatus
from src.domain.state_machine.moderation_state_machine import (
    InvalidTransitionError,
    ModerationPrivilegeRequiredError,
    OwnershipRequiredError,
)

logger = structlog.get_logger(__name__)


class InMemoryListingRepository(ListingRepository):
    def __init__(self, listings: Iterable[Listing] = ()) -> None:
        self._listings: dict[str, Listing] = {l.id: l for l in listings}

    async def save(self, listing: Listing) -> None:
        self._listings[listing.id] = listing

    async def get_by_id(self, listing_id: str) -> Listing | None:
        return self._listings.get(listing_id)

    async def list_all(self, *, statuses: Collection[ListingStatus] | None = None) -> list[Listing]:
        listings = sorted(self._listings.values(), key=lambda l: l.created_at)
        if statuses is None:
            return listings
        return [l for l in listings if l.status in statuses]

    async def delete(self, listing_id: str) -> bool:
        return self._listings.pop(listing_id, None) is not None


class InMemoryMarketplaceBackend(ListingGateway, AuditLogGateway, ActorDirectory):
    def __init__(
        self,
        listings: Iterable[Listing] = (),
        actors: Iterable[ActorProfile] = (),
    ) -> None:
        self.listing_repo = InMemoryListingRepository(listings)
        self._listings = AuthoritativeListings(self.listing_repo)
        self._actors: dict[str, ActorProfile] = {a.id: a for a in actors}
        self._audit_records: list[AuditRecord] = []
        self._audit_ids = count(1)
        self.available = True

    def _check_available(self, operation: str) -> None:
        if not self.available:
            raise PersistenceUnavailableError(f"Marketplace backend unavailable during {operation}")

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    async def list_collection(self, scope: CollectionScope) -> list[Listing]:
        self._check_available("list_collection")
        return await self._listings.list_collection(scope)

    async def create_listing(self, actor: Actor, draft: ListingDraft) -> Listing:
        self._check_available("create_listing")
        try:
            return await self._listings.create_listing(actor, draft)
        except ListingValidationError as exc:
            raise WriteRejectedError(str(exc), 422) from exc

    async def update_listing(
        self, actor: Actor, listing_id: str, changes: Mapping[str, Any]
    ) -> Listing:
        self._check_available("update_listing")
        try:
            return await self._listings.update_listing(actor, listing_id, changes)
        except (ListingNotFoundError, InvalidTransitionError, ListingValidationError) as exc:
            raise WriteRejectedError(str(exc), _status_code(exc)) from exc

    async def delete_listing(self, actor: Actor, listing_id: str) -> None:
        self._check_available("delete_listing")
        try:
            await self._listings.delete_listing(actor, listing_id)
        except (ListingNotFoundError, InvalidTransitionError) as exc:
            raise WriteRejectedError(str(exc), _status_code(exc)) from exc

    # -------------------------------------------------------------------------
    # Audit log
    # -------------------------------------------------------------------------

    async def append_audit_record(self, entry: AuditEntry) -> AuditRecord:
        self._check_available("append_audit_record")
        record = entry.written(next(self._audit_ids))
        self._audit_records.append(record)
        return record

    async def query_audit_records(
        self, filters: AuditFilters, page: PageRequest
    ) -> tuple[list[AuditRecord], int]:
        self._check_available("query_audit_records")
        matching = [r for r in reversed(self._audit_records) if filters.matches(r)]
        return matching[page.offset : page.offset + page.page_size], len(matching)

    @property
    def audit_records(self) -> list[AuditRecord]:
        """Every appended record, oldest first."""
        return list(self._audit_records)

    # -------------------------------------------------------------------------
    # Actors
    # -------------------------------------------------------------------------

    def register_actor(self, profile: ActorProfile) -> None:
        self._actors[profile.id] = profile

    def remove_actor(self, actor_id: str) -> None:
        self._actors.pop(actor_id, None)

    async def resolve_many(self, actor_ids: Iterable[str]) -> dict[str, ActorProfile]:
        self._check_available("resolve_many")
        return {i: self._actors[i] for i in actor_ids if i in self._actors}


def _status_code(exc: Exception) -> int:
    if isinstance(exc, ListingNotFoundError):
        return 404
    if isinstance(exc, (ModerationPrivilegeRequiredError, OwnershipRequiredError)):
        return 403
    if isinstance(exc, InvalidTransitionError):
        return 409
    return 422
