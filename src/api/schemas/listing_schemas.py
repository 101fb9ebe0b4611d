from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from src.domain.entities.listing import Listing
from src.domain.enums.listing_status import ListingStatus


class ListingResponse(BaseModel):
    id: str
    owner_id: str
    status: ListingStatus
    featured: bool
    created_at: datetime
    updated_at: datetime
    title: str
    description: str
    location: str
    price: Decimal
    price_unit: str
    bedrooms: int
    bathrooms: int
    capacity: int
    amenities: list[str]
    images: list[str]

    @classmethod
    def from_domain(cls, listing: Listing) -> "ListingResponse":
        return cls(**listing.to_snapshot())


class ListingCollectionResponse(BaseModel):
    listings: list[ListingResponse]


class ListingCreateRequest(BaseModel):
    """Required-field checks are left to the domain so messages stay consistent."""

    title: str = ""
    description: str = ""
    location: str = ""
    price: Decimal = Decimal("0")
    price_unit: str = "night"
    bedrooms: int = 0
    bathrooms: int = 0
    capacity: int = 1
    amenities: list[str] = []
    images: list[str] = []

    model_config = {"extra": "forbid"}


class ListingUpdateRequest(BaseModel):
    status: ListingStatus | None = None
    featured: bool | None = None
    title: str | None = None
    description: str | None = None
    location: str | None = None
    price: Decimal | None = None
    price_unit: str | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    capacity: int | None = None
    amenities: list[str] | None = None
    images: list[str] | None = None

    model_config = {"extra": "forbid"}

    def changes(self) -> dict:  # type: ignore[type-arg]
        """Only the fields the caller actually sent."""
        data = self.model_dump(exclude_unset=True)
        if "status" in data and data["status"] is not None:
            data["status"] = data["status"].value
        return data
