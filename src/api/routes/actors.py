from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_actor_directory, get_privileged_actor
from src.api.schemas.audit_schemas import ActorListResponse, ActorResponse
from src.application.interfaces.actor_directory import ActorDirectory
from src.domain.entities.actor import Actor

router = APIRouter(prefix="/actors", tags=["actors"])


@router.get("", response_model=ActorListResponse)
async def resolve_actors(
    ids: list[str] = Query(default=[]),
    _: Actor = Depends(get_privileged_actor),
    directory: ActorDirectory = Depends(get_actor_directory),
) -> ActorListResponse:
    """Profiles for the ids that still exist; unknown ids are left out."""
    profiles = await directory.resolve_many(ids)
    return ActorListResponse(actors=[ActorResponse.from_domain(p) for p in profiles.values()])
