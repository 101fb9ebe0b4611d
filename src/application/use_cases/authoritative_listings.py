from collections.abc import Mapping
from typing import Any

import structlog

from src.application.interfaces.listing_gateway import ListingGateway
from src.application.interfaces.listing_repository import ListingRepository
from src.application.use_cases.listing_mutation import ListingNotFoundError
from src.domain.entities.actor import Actor
from src.domain.entities.listing import Listing, ListingDraft
from src.domain.enums.listing_status import CollectionScope, ListingStatus, ModerationAction
from src.domain.state_machine.moderation_state_machine import (
    ModerationPrivilegeRequiredError,
    ModerationStateMachine,
)

logger = structlog.get_logger(__name__)

MODERATED_FIELDS = frozenset({"status", "featured"})


class AuthoritativeListings(ListingGateway):
    """
    Server-side rules for the listing collection.

    The marketplace API and the in-memory backend both delegate here, so the
    authoritative store enforces the same guards the client engine checks:
    auto-approval of privileged submissions, privilege for status and
    featured changes, owner-or-moderator for edits and deletes.
    """

    def __init__(
        self,
        repo: ListingRepository,
        state_machine: ModerationStateMachine | None = None,
    ) -> None:
        self._repo = repo
        self._state_machine = state_machine or ModerationStateMachine()

    async def list_collection(self, scope: CollectionScope) -> list[Listing]:
        if scope is CollectionScope.PRIVILEGED:
            return await self._repo.list_all()
        return await self._repo.list_all(statuses=[ListingStatus.APPROVED])

    async def create_listing(self, actor: Actor, draft: ListingDraft) -> Listing:
        listing = Listing.create_from_draft(draft, actor)
        await self._repo.save(listing)
        logger.info(
            "listing_created",
            listing_id=listing.id,
            owner_id=actor.id,
            status=listing.status.value,
        )
        return listing

    async def update_listing(
        self, actor: Actor, listing_id: str, changes: Mapping[str, Any]
    ) -> Listing:
        current = await self._get(listing_id)

        if set(changes) & MODERATED_FIELDS:
            if not actor.has_moderation_privilege:
                raise ModerationPrivilegeRequiredError(_implied_action(changes), actor)
        else:
            self._state_machine.authorize(actor, ModerationAction.UPDATE, current.owner_id, current.id)

        updated = current.apply_changes(changes)
        await self._repo.save(updated)
        logger.info(
            "listing_updated",
            listing_id=listing_id,
            fields=sorted(changes),
            status=updated.status.value,
            featured=updated.featured,
            triggered_by=actor.id,
        )
        return updated

    async def delete_listing(self, actor: Actor, listing_id: str) -> None:
        current = await self._get(listing_id)
        self._state_machine.authorize(actor, ModerationAction.DELETE, current.owner_id, current.id)
        await self._repo.delete(listing_id)
        logger.info("listing_deleted", listing_id=listing_id, triggered_by=actor.id)

    async def _get(self, listing_id: str) -> Listing:
        listing = await self._repo.get_by_id(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing


def _implied_action(changes: Mapping[str, Any]) -> ModerationAction:
    """The moderation action a raw status/featured change corresponds to."""
    if "status" in changes:
        if changes["status"] == ListingStatus.REJECTED.value:
            return ModerationAction.REJECT
        return ModerationAction.APPROVE
    return ModerationAction.FEATURE if changes.get("featured") else ModerationAction.UNFEATURE
