"""
FastAPI dependency injection wiring.

Each dependency function returns a fully-constructed object with its
collaborators injected, so route handlers stay thin.
"""
from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.application.interfaces.actor_directory import ActorDirectory
from src.application.interfaces.audit_log_gateway import AuditLogGateway
from src.application.interfaces.listing_repository import ListingRepository
from src.application.use_cases.authoritative_listings import AuthoritativeListings
from src.application.use_cases.query_audit_feed import ExportAuditFeedCsv, QueryAuditFeed
from src.domain.entities.actor import Actor, ActorRole
from src.infrastructure.database.connection import get_db_session
from src.infrastructure.database.repositories.actor_directory import SqlAlchemyActorDirectory
from src.infrastructure.database.repositories.audit_log_repository import (
    SqlAlchemyAuditLogRepository,
)
from src.infrastructure.database.repositories.listing_repository import (
    SqlAlchemyListingRepository,
)


# ---- Low-level dependencies ------------------------------------------------

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_db_session():
        yield session


def get_listing_repo(session: AsyncSession = Depends(get_session)) -> ListingRepository:
    return SqlAlchemyListingRepository(session)


def get_audit_repo(session: AsyncSession = Depends(get_session)) -> AuditLogGateway:
    return SqlAlchemyAuditLogRepository(session)


def get_actor_directory(session: AsyncSession = Depends(get_session)) -> ActorDirectory:
    return SqlAlchemyActorDirectory(session)


# ---- Caller identity -------------------------------------------------------

def get_optional_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> Actor | None:
    """Identity headers are set by the authentication layer in front of this API."""
    if not x_actor_id:
        return None
    try:
        role = ActorRole(x_actor_role) if x_actor_role else ActorRole.USER
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown actor role: {x_actor_role}"
        )
    return Actor(id=x_actor_id, role=role)


def get_current_actor(actor: Actor | None = Depends(get_optional_actor)) -> Actor:
    if actor is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-Actor-Id header is required.")
    return actor


def get_privileged_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.has_moderation_privilege:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Moderation privilege required.")
    return actor


# ---- Use-case dependencies -------------------------------------------------

def get_authoritative_listings(
    listing_repo: ListingRepository = Depends(get_listing_repo),
) -> AuthoritativeListings:
    return AuthoritativeListings(listing_repo)


def get_audit_feed(
    audit_repo: AuditLogGateway = Depends(get_audit_repo),
    actor_directory: ActorDirectory = Depends(get_actor_directory),
) -> QueryAuditFeed:
    return QueryAuditFeed(audit_repo, actor_directory)


def get_audit_export(feed: QueryAuditFeed = Depends(get_audit_feed)) -> ExportAuditFeedCsv:
    return ExportAuditFeedCsv(feed)
