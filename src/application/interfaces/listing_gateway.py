from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from src.domain.entities.actor import Actor
from src.domain.entities.listing import Listing, ListingDraft
from src.domain.enums.listing_status import CollectionScope


class PersistenceUnavailableError(Exception):
    """Raised when the authoritative store cannot be reached or refuses a write."""


class ListingGateway(ABC):
    """Port for the authoritative listing collection."""

    @abstractmethod
    async def list_collection(self, scope: CollectionScope) -> list[Listing]:
        """Return every listing visible in ``scope``."""
        ...

    @abstractmethod
    async def create_listing(self, actor: Actor, draft: ListingDraft) -> Listing:
        """Persist a submission; the returned Listing carries the canonical id and status."""
        ...

    @abstractmethod
    async def update_listing(
        self, actor: Actor, listing_id: str, changes: Mapping[str, Any]
    ) -> Listing:
        ...

    @abstractmethod
    async def delete_listing(self, actor: Actor, listing_id: str) -> None:
        ...


class WriteRejectedError(PersistenceUnavailableError):
    """The authoritative store was reachable but refused the write."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
