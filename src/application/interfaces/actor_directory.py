from abc import ABC, abstractmethod
from collections.abc import Iterable

from src.domain.entities.actor import ActorProfile


class ActorDirectory(ABC):
    """Port for resolving actor ids referenced by audit records."""

    @abstractmethod
    async def resolve_many(self, actor_ids: Iterable[str]) -> dict[str, ActorProfile]:
        """Return profiles for the ids that still exist; unknown ids are simply absent."""
        ...
