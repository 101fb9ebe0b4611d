from dataclasses import dataclass

import structlog

from src.application.use_cases.listing_mutation import ListingMutation, ListingMutationOutput
from src.domain.entities.actor import Actor
from src.domain.entities.audit_record import AuditAction
from src.domain.enums.listing_status import ModerationAction

logger = structlog.get_logger(__name__)


@dataclass
class DeleteListingInput:
    actor: Actor
    listing_id: str
    require_confirmation: bool = False


class DeleteListing(ListingMutation):
    """
    Use case: Remove a listing from the collection.

    The audit trail is unaffected: the deletion itself is recorded with the
    listing's last known state as its before-snapshot.
    """

    async def execute(self, input_data: DeleteListingInput) -> ListingMutationOutput:
        current = self._get_listing(input_data.listing_id)
        self._state_machine.authorize(
            input_data.actor, ModerationAction.DELETE, current.owner_id, current.id
        )

        _, confirmed = await self._write(
            lambda: self._gateway.delete_listing(input_data.actor, current.id),
            require_confirmation=input_data.require_confirmation,
            operation="delete",
            listing_id=current.id,
        )

        if confirmed:
            self._store.remove_confirmed(current.id)
        else:
            self._store.discard_local(current.id)

        self._audit.record_listing_action(
            input_data.actor.id,
            AuditAction.LISTING_DELETED,
            current.id,
            current.to_snapshot(),
            None,
            pending_sync=not confirmed,
        )

        logger.info(
            "listing_deleted",
            listing_id=current.id,
            triggered_by=input_data.actor.id,
            confirmed=confirmed,
        )
        return ListingMutationOutput(listing=None, confirmed=confirmed)
