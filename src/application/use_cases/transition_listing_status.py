from dataclasses import dataclass

import structlog

from src.application.use_cases.listing_mutation import ListingMutation, ListingMutationOutput
from src.domain.entities.actor import Actor
from src.domain.entities.audit_record import AuditAction
from src.domain.enums.listing_status import ModerationAction
from src.domain.state_machine.moderation_state_machine import (
    MODERATION_ACTIONS,
    InvalidTransitionError,
)

logger = structlog.get_logger(__name__)

AUDIT_ACTIONS: dict[ModerationAction, AuditAction] = {
    ModerationAction.APPROVE: AuditAction.LISTING_APPROVED,
    ModerationAction.REJECT: AuditAction.LISTING_REJECTED,
    ModerationAction.FEATURE: AuditAction.LISTING_FEATURED,
    ModerationAction.UNFEATURE: AuditAction.LISTING_UNFEATURED,
}


@dataclass
class TransitionListingStatusInput:
    actor: Actor
    listing_id: str
    action: ModerationAction
    require_confirmation: bool = False


class TransitionListingStatus(ListingMutation):
    """
    Use case: Approve, reject, feature or unfeature a listing.

    Rejecting a featured listing clears the flag as part of the same
    transition. Guard failures raise before anything is written or audited.
    """

    async def execute(self, input_data: TransitionListingStatusInput) -> ListingMutationOutput:
        action = input_data.action
        if action not in MODERATION_ACTIONS:
            raise InvalidTransitionError(action, None, f"{action.value} is not a moderation action.")

        current = self._get_listing(input_data.listing_id)
        self._state_machine.authorize(input_data.actor, action, current.owner_id, current.id)

        # May raise InvalidTransitionError; let it propagate to the caller
        intended = current.moderate(action)
        changes = {"status": intended.status.value, "featured": intended.featured}

        canonical, confirmed = await self._write(
            lambda: self._gateway.update_listing(input_data.actor, current.id, changes),
            require_confirmation=input_data.require_confirmation,
            operation=action.value,
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
            AUDIT_ACTIONS[action],
            listing.id,
            current.to_snapshot(),
            listing.to_snapshot(),
            pending_sync=not confirmed,
        )

        logger.info(
            "listing_status_transitioned",
            listing_id=listing.id,
            action=action.value,
            from_status=current.status.value,
            to_status=listing.status.value,
            featured=listing.featured,
            triggered_by=input_data.actor.id,
            confirmed=confirmed,
        )
        return ListingMutationOutput(listing=listing, confirmed=confirmed)
