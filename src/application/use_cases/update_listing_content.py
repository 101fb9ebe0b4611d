from dataclasses import dataclass, field
from typing import Any

import structlog

from src.application.use_cases.listing_mutation import ListingMutation, ListingMutationOutput
from src.domain.entities.actor import Actor
from src.domain.entities.audit_record import AuditAction
from src.domain.enums.listing_status import ModerationAction

logger = structlog.get_logger(__name__)


@dataclass
class UpdateListingContentInput:
    actor: Actor
    listing_id: str
    changes: dict[str, Any] = field(default_factory=dict)
    require_confirmation: bool = False


class UpdateListingContent(ListingMutation):
    """Use case: Edit the descriptive fields of a listing without changing its status."""

    async def execute(self, input_data: UpdateListingContentInput) -> ListingMutationOutput:
        current = self._get_listing(input_data.listing_id)
        self._state_machine.authorize(
            input_data.actor, ModerationAction.UPDATE, current.owner_id, current.id
        )

        # May raise ListingValidationError for protected or invalid fields
        intended = current.with_content(input_data.changes)

        canonical, confirmed = await self._write(
            lambda: self._gateway.update_listing(input_data.actor, current.id, input_data.changes),
            require_confirmation=input_data.require_confirmation,
            operation="update",
            listing_id=current.id,
        )

        if canonical is None:
            self._store.upsert_local(intended)
            listing = intended
        else:
            self._store.apply_confirmed(canonical)
            listing = canonical

        self._audit.record_listing_action(
            input_data.actor.id,
            AuditAction.LISTING_UPDATED,
            listing.id,
            current.to_snapshot(),
            listing.to_snapshot(),
            pending_sync=not confirmed,
        )

        logger.info(
            "listing_content_updated",
            listing_id=listing.id,
            fields=sorted(input_data.changes),
            triggered_by=input_data.actor.id,
            confirmed=confirmed,
        )
        return ListingMutationOutput(listing=listing, confirmed=confirmed)
