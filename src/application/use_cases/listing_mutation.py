from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from src.application.audit_pipeline import AuditPipeline
from src.application.interfaces.listing_gateway import ListingGateway, PersistenceUnavailableError
from src.application.listing_store import ListingStore
from src.domain.entities.listing import Listing
from src.domain.state_machine.moderation_state_machine import ModerationStateMachine

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ListingNotFoundError(Exception):
    def __init__(self, listing_id: str) -> None:
        self.listing_id = listing_id
        super().__init__(f"Listing {listing_id} not found.")


@dataclass
class ListingMutationOutput:
    """
    Result of a lifecycle operation.

    ``confirmed`` is False when the authoritative write failed and the change
    was applied locally only; the listing then reflects state the server has
    not accepted until the next successful reconciliation.
    """

    listing: Listing | None
    confirmed: bool


class ListingMutation:
    """
    Shared write protocol for lifecycle use cases:
    guard, write to the boundary, then apply the canonical result or fall
    back to a local-only change. Both paths are audited.
    """

    def __init__(
        self,
        store: ListingStore,
        gateway: ListingGateway,
        audit: AuditPipeline,
        state_machine: ModerationStateMachine | None = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._audit = audit
        self._state_machine = state_machine or ModerationStateMachine()

    def _get_listing(self, listing_id: str) -> Listing:
        listing = self._store.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    async def _write(
        self,
        write: Callable[[], Awaitable[T]],
        *,
        require_confirmation: bool,
        operation: str,
        listing_id: str | None,
    ) -> tuple[T | None, bool]:
        """
        Run ``write`` against the boundary.

        Returns (result, True) on success and (None, False) when the write
        failed and the caller should fall back to a local change. With
        ``require_confirmation`` the failure is raised instead.
        """
        try:
            result = await write()
        except PersistenceUnavailableError as exc:
            if require_confirmation:
                raise
            logger.warning(
                "listing_write_failed_applying_locally",
                operation=operation,
                listing_id=listing_id,
                error=str(exc),
            )
            return None, False
        return result, True
