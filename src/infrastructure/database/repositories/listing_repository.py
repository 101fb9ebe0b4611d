from collections.abc import Collection
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.application.interfaces.listing_gateway import PersistenceUnavailableError
from src.application.interfaces.listing_repository import ListingRepository
from src.domain.entities.listing import Listing
from src.domain.enums.listing_status import ListingStatus
from src.infrastructure.database.models import ListingModel


def as_utc(value: datetime) -> datetime:
    """Some drivers (SQLite) hand back naive datetimes; they were written as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_domain(model: ListingModel) -> Listing:
    return Listing(
        id=model.id,
        owner_id=model.owner_id,
        status=ListingStatus(model.status),
        featured=model.featured,
        created_at=as_utc(model.created_at),
        updated_at=as_utc(model.updated_at),
        title=model.title,
        description=model.description,
        location=model.location,
        price=Decimal(str(model.price)),
        price_unit=model.price_unit,
        bedrooms=model.bedrooms,
        bathrooms=model.bathrooms,
        capacity=model.capacity,
        amenities=tuple(model.amenities or ()),
        images=tuple(model.images or ()),
    )


def _copy_onto(model: ListingModel, listing: Listing) -> ListingModel:
    model.owner_id = listing.owner_id
    model.status = listing.status
    model.featured = listing.featured
    model.created_at = listing.created_at
    model.updated_at = listing.updated_at
    model.title = listing.title
    model.description = listing.description
    model.location = listing.location
    model.price = listing.price  # type: ignore[assignment]
    model.price_unit = listing.price_unit
    model.bedrooms = listing.bedrooms
    model.bathrooms = listing.bathrooms
    model.capacity = listing.capacity
    model.amenities = list(listing.amenities)
    model.images = list(listing.images)
    return model


class SqlAlchemyListingRepository(ListingRepository):
    """SQLAlchemy implementation for listing persistence."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def save(self, listing: Listing) -> None:
        try:
            model = await self._session.get(ListingModel, listing.id)
            if model is None:
                self._session.add(_copy_onto(ListingModel(id=listing.id), listing))
            else:
                _copy_onto(model, listing)
            await self._session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailableError(f"Failed to save listing {listing.id}: {exc}") from exc

    async def get_by_id(self, listing_id: str) -> Listing | None:
        try:
            model = await self._session.get(ListingModel, listing_id)
        except SQLAlchemyError as exc:
            raise PersistenceUnavailableError(f"Failed to load listing {listing_id}: {exc}") from exc
        return _to_domain(model) if model is not None else None

    async def list_all(self, *, statuses: Collection[ListingStatus] | None = None) -> list[Listing]:
        query = select(ListingModel)
        if statuses is not None:
            query = query.where(ListingModel.status.in_(list(statuses)))
        query = query.order_by(ListingModel.created_at.asc())

        try:
            result = await self._session.execute(query)
        except SQLAlchemyError as exc:
            raise PersistenceUnavailableError(f"Failed to list listings: {exc}") from exc
        return [_to_domain(m) for m in result.scalars().all()]

    async def delete(self, listing_id: str) -> bool:
        try:
            result = await self._session.execute(
                delete(ListingModel).where(ListingModel.id == listing_id)
            )
            await self._session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailableError(f"Failed to delete listing {listing_id}: {exc}") from exc
        return result.rowcount > 0
