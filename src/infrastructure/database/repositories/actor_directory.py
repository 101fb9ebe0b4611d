from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.application.interfaces.actor_directory import ActorDirectory
from src.application.interfaces.listing_gateway import PersistenceUnavailableError
from src.domain.entities.actor import ActorProfile, ActorRole
from src.infrastructure.database.models import UserModel


class SqlAlchemyActorDirectory(ActorDirectory):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def resolve_many(self, actor_ids: Iterable[str]) -> dict[str, ActorProfile]:
        ids = set(actor_ids)
        if not ids:
            return {}
        try:
            result = await self._session.execute(select(UserModel).where(UserModel.id.in_(ids)))
        except SQLAlchemyError as exc:
            raise PersistenceUnavailableError(f"Failed to resolve actors: {exc}") from exc
        return {
            m.id: ActorProfile(id=m.id, name=m.name, email=m.email, role=ActorRole(m.role))
            for m in result.scalars().all()
        }

    async def save(self, profile: ActorProfile) -> None:
        model = await self._session.get(UserModel, profile.id)
        if model is None:
            self._session.add(
                UserModel(id=profile.id, name=profile.name, email=profile.email, role=profile.role)
            )
        else:
            model.name = profile.name
            model.email = profile.email
            model.role = profile.role
        await self._session.flush()
