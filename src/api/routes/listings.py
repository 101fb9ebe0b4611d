import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from src.api.dependencies import get_authoritative_listings, get_current_actor, get_optional_actor
from src.api.schemas.listing_schemas import (
    ListingCollectionResponse,
    ListingCreateRequest,
    ListingResponse,
    ListingUpdateRequest,
)
from src.application.use_cases.authoritative_listings import AuthoritativeListings
from src.application.use_cases.listing_mutation import ListingNotFoundError
from src.domain.entities.actor import Actor
from src.domain.entities.listing import ListingDraft, ListingValidationError
from src.domain.enums.listing_status import CollectionScope
from src.domain.state_machine.moderation_state_machine import (
    InvalidTransitionError,
    ModerationPrivilegeRequiredError,
    OwnershipRequiredError,
)

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/listings", tags=["listings"])


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ListingNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found.")
    if isinstance(exc, (ModerationPrivilegeRequiredError, OwnershipRequiredError)):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


@router.get("", response_model=ListingCollectionResponse)
async def list_listings(
    scope: CollectionScope = Query(default=CollectionScope.PUBLIC),
    actor: Actor | None = Depends(get_optional_actor),
    listings: AuthoritativeListings = Depends(get_authoritative_listings),
) -> ListingCollectionResponse:
    """Approved listings for the public scope; every listing for moderators."""
    if scope is CollectionScope.PRIVILEGED and (actor is None or not actor.has_moderation_privilege):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The privileged scope requires moderation privilege.",
        )
    result = await listings.list_collection(scope)
    return ListingCollectionResponse(listings=[ListingResponse.from_domain(l) for l in result])


@router.post("", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(
    body: ListingCreateRequest,
    actor: Actor = Depends(get_current_actor),
    listings: AuthoritativeListings = Depends(get_authoritative_listings),
) -> ListingResponse:
    try:
        draft = ListingDraft.from_payload(body.model_dump())
        listing = await listings.create_listing(actor, draft)
    except ListingValidationError as exc:
        raise _http_error(exc)
    return ListingResponse.from_domain(listing)


@router.patch("/{listing_id}", response_model=ListingResponse)
async def update_listing(
    listing_id: str,
    body: ListingUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    listings: AuthoritativeListings = Depends(get_authoritative_listings),
) -> ListingResponse:
    try:
        listing = await listings.update_listing(actor, listing_id, body.changes())
    except (ListingNotFoundError, InvalidTransitionError, ListingValidationError) as exc:
        logger.info("listing_update_refused", listing_id=listing_id, actor_id=actor.id, error=str(exc))
        raise _http_error(exc)
    return ListingResponse.from_domain(listing)


@router.delete("/{listing_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_listing(
    listing_id: str,
    actor: Actor = Depends(get_current_actor),
    listings: AuthoritativeListings = Depends(get_authoritative_listings),
) -> Response:
    try:
        await listings.delete_listing(actor, listing_id)
    except (ListingNotFoundError, InvalidTransitionError) as exc:
        logger.info("listing_delete_refused", listing_id=listing_id, actor_id=actor.id, error=str(exc))
        raise _http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
