from abc import ABC, abstractmethod
from collections.abc import Collection

from src.domain.entities.listing import Listing
from src.domain.enums.listing_status import ListingStatus


class ListingRepository(ABC):
    """Port for the server-side listing table behind the marketplace API."""

    @abstractmethod
    async def save(self, listing: Listing) -> None:
        ...

    @abstractmethod
    async def get_by_id(self, listing_id: str) -> Listing | None:
        ...

    @abstractmethod
    async def list_all(self, *, statuses: Collection[ListingStatus] | None = None) -> list[Listing]:
        """Return listings oldest first, restricted to ``statuses`` when given."""
        ...

    @abstractmethod
    async def delete(self, listing_id: str) -> bool:
        """Remove a listing. Returns False when it did not exist."""
        ...
