"""
Per-session entry point for listing mutations.

Wraps the lifecycle use cases so that mutations issued by one session run in
invocation order, and every acknowledged write is followed by an on-demand
reconciliation.
"""
import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog

from src.application.audit_pipeline import AuditPipeline
from src.application.interfaces.listing_gateway import ListingGateway
from src.application.listing_store import ListingStore
from src.application.reconciliation_loop import ReconciliationLoop
from src.application.use_cases.delete_listing import DeleteListing, DeleteListingInput
from src.application.use_cases.listing_mutation import ListingMutationOutput
from src.application.use_cases.submit_listing import SubmitListing, SubmitListingInput
from src.application.use_cases.transition_listing_status import (
    TransitionListingStatus,
    TransitionListingStatusInput,
)
from src.application.use_cases.update_listing_content import (
    UpdateListingContent,
    UpdateListingContentInput,
)
from src.domain.entities.actor import Actor
from src.domain.entities.listing import ListingDraft
from src.domain.enums.listing_status import ModerationAction
from src.domain.state_machine.moderation_state_machine import ModerationStateMachine

logger = structlog.get_logger(__name__)


class SessionClosedError(Exception):
    """Raised when a mutation is issued after the engine was closed."""


class LifecycleEngine:
    def __init__(
        self,
        store: ListingStore,
        gateway: ListingGateway,
        audit: AuditPipeline,
        reconciliation: ReconciliationLoop | None = None,
    ) -> None:
        state_machine = ModerationStateMachine()
        self._submit = SubmitListing(store, gateway, audit, state_machine)
        self._transition = TransitionListingStatus(store, gateway, audit, state_machine)
        self._update = UpdateListingContent(store, gateway, audit, state_machine)
        self._delete = DeleteListing(store, gateway, audit, state_machine)
        self._reconciliation = reconciliation
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Refuse new mutations and wait for the one in flight to settle."""
        if self._closed:
            return
        self._closed = True
        # Queued calls acquire first and fail the closed check
        async with self._lock:
            pass
        logger.info("lifecycle_engine_closed")

    async def submit(
        self, actor: Actor, draft: ListingDraft, *, require_confirmation: bool = False
    ) -> ListingMutationOutput:
        return await self._run(
            lambda: self._submit.execute(SubmitListingInput(actor, draft, require_confirmation))
        )

    async def approve(self, actor: Actor, listing_id: str, **kwargs: Any) -> ListingMutationOutput:
        return await self._moderate(actor, listing_id, ModerationAction.APPROVE, **kwargs)

    async def reject(self, actor: Actor, listing_id: str, **kwargs: Any) -> ListingMutationOutput:
        return await self._moderate(actor, listing_id, ModerationAction.REJECT, **kwargs)

    async def feature(self, actor: Actor, listing_id: str, **kwargs: Any) -> ListingMutationOutput:
        return await self._moderate(actor, listing_id, ModerationAction.FEATURE, **kwargs)

    async def unfeature(self, actor: Actor, listing_id: str, **kwargs: Any) -> ListingMutationOutput:
        return await self._moderate(actor, listing_id, ModerationAction.UNFEATURE, **kwargs)

    async def update_content(
        self,
        actor: Actor,
        listing_id: str,
        changes: Mapping[str, Any],
        *,
        require_confirmation: bool = False,
    ) -> ListingMutationOutput:
        return await self._run(
            lambda: self._update.execute(
                UpdateListingContentInput(actor, listing_id, dict(changes), require_confirmation)
            )
        )

    async def delete(
        self, actor: Actor, listing_id: str, *, require_confirmation: bool = False
    ) -> ListingMutationOutput:
        return await self._run(
            lambda: self._delete.execute(DeleteListingInput(actor, listing_id, require_confirmation))
        )

    async def _moderate(
        self,
        actor: Actor,
        listing_id: str,
        action: ModerationAction,
        *,
        require_confirmation: bool = False,
    ) -> ListingMutationOutput:
        return await self._run(
            lambda: self._transition.execute(
                TransitionListingStatusInput(actor, listing_id, action, require_confirmation)
            )
        )

    async def _run(
        self, operation: Callable[[], Awaitable[ListingMutationOutput]]
    ) -> ListingMutationOutput:
        if self._closed:
            raise SessionClosedError("Listing session is closed.")

        async with self._lock:
            # Re-checked: close() may have run while this call was queued
            if self._closed:
                raise SessionClosedError("Listing session is closed.")
            result = await operation()

        if result.confirmed and self._reconciliation is not None and not self._closed:
            self._reconciliation.trigger()
        return result
