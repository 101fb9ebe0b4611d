from dataclasses import dataclass
from uuid import uuid4

import structlog

from src.application.use_cases.listing_mutation import ListingMutation, ListingMutationOutput
from src.domain.entities.actor import Actor
from src.domain.entities.audit_record import AuditAction
from src.domain.entities.listing import Listing, ListingDraft

logger = structlog.get_logger(__name__)


@dataclass
class SubmitListingInput:
    actor: Actor
    draft: ListingDraft
    require_confirmation: bool = False


class SubmitListing(ListingMutation):
    """
    Use case: Submit a new listing.

    Listings start pending review, except when the submitter already holds
    moderation privilege, in which case they are created approved.
    """

    async def execute(self, input_data: SubmitListingInput) -> ListingMutationOutput:
        actor = input_data.actor

        # May raise ListingValidationError; nothing is written or audited
        intended = Listing.create_from_draft(
            input_data.draft, actor, listing_id=f"local-{uuid4().hex[:12]}"
        )

        canonical, confirmed = await self._write(
            lambda: self._gateway.create_listing(actor, input_data.draft),
            require_confirmation=input_data.require_confirmation,
            operation="create",
            listing_id=None,
        )

        if canonical is None:
            self._store.upsert_local(intended)
            listing = intended
        else:
            self._store.apply_confirmed(canonical)
            listing = canonical

        self._audit.record_listing_action(
            actor.id,
            AuditAction.LISTING_CREATED,
            listing.id,
            None,
            listing.to_snapshot(),
            pending_sync=not confirmed,
        )

        logger.info(
            "listing_submitted",
            listing_id=listing.id,
            owner_id=actor.id,
            status=listing.status.value,
            confirmed=confirmed,
        )
        return ListingMutationOutput(listing=listing, confirmed=confirmed)
