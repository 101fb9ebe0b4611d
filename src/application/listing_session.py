"""
Client-side wiring for one signed-in actor.

A session owns the listing store, the audit pipeline, the reconciliation loop
and the lifecycle engine. Changing actor always starts from an empty store so
a privileged snapshot never survives into a less privileged session.
"""
from collections.abc import Mapping
from typing import Any

import structlog

from src.application.audit_pipeline import AuditPipeline, ContextProvider
from src.application.interfaces.actor_directory import ActorDirectory
from src.application.interfaces.audit_log_gateway import AuditLogGateway
from src.application.interfaces.listing_gateway import ListingGateway
from src.application.lifecycle_engine import LifecycleEngine, SessionClosedError
from src.application.listing_store import ListingStore
from src.application.reconciliation_loop import ReconciliationLoop
from src.application.use_cases.listing_mutation import ListingMutationOutput
from src.application.use_cases.query_audit_feed import ExportAuditFeedCsv, QueryAuditFeed
from src.config import settings
from src.domain.entities.actor import Actor
from src.domain.entities.audit_record import AuditAction
from src.domain.entities.listing import ListingDraft
from src.domain.enums.listing_status import CollectionScope

logger = structlog.get_logger(__name__)


class ListingSession:
    def __init__(
        self,
        listing_gateway: ListingGateway,
        audit_gateway: AuditLogGateway,
        actor_directory: ActorDirectory,
        *,
        context_provider: ContextProvider | None = None,
        audit_enabled: bool = settings.audit_enabled,
        reconcile_interval_seconds: float = settings.reconcile_interval_seconds,
    ) -> None:
        self._listing_gateway = listing_gateway
        self.store = ListingStore()
        self.audit = AuditPipeline(
            audit_gateway, context_provider=context_provider, enabled=audit_enabled
        )
        self.reconciliation = ReconciliationLoop(
            self.store,
            listing_gateway,
            self._collection_scope,
            interval_seconds=reconcile_interval_seconds,
        )
        self.audit_feed = QueryAuditFeed(audit_gateway, actor_directory)
        self.audit_export = ExportAuditFeedCsv(self.audit_feed)
        self._engine: LifecycleEngine | None = None
        self._actor: Actor | None = None
        self._actor_name: str | None = None

    @property
    def actor(self) -> Actor | None:
        return self._actor

    def _collection_scope(self) -> CollectionScope:
        if self._actor is not None and self._actor.has_moderation_privilege:
            return CollectionScope.PRIVILEGED
        return CollectionScope.PUBLIC

    def _user_snapshot(self) -> dict[str, Any]:
        assert self._actor is not None
        return {
            "id": self._actor.id,
            "name": self._actor_name or self._actor.id,
            "role": self._actor.role.value,
        }

    # -------------------------------------------------------------------------
    # Sign in / out
    # -------------------------------------------------------------------------

    async def sign_in(self, actor: Actor, *, name: str | None = None) -> None:
        if self._actor is not None:
            await self.sign_out()

        self.store.clear()
        self._actor = actor
        self._actor_name = name
        self._engine = LifecycleEngine(
            self.store, self._listing_gateway, self.audit, self.reconciliation
        )
        self.audit.record_user_action(actor.id, AuditAction.USER_LOGIN, self._user_snapshot())
        self.reconciliation.start()
        logger.info("session_signed_in", actor_id=actor.id, role=actor.role.value)

    async def sign_out(self) -> None:
        if self._actor is None:
            return

        actor = self._actor
        self.audit.record_user_action(actor.id, AuditAction.USER_LOGOUT, self._user_snapshot())
        # An acknowledged write still in flight is applied before the store is cleared
        if self._engine is not None:
            await self._engine.close()
        await self.reconciliation.stop()
        await self.audit.drain()
        self.store.clear()

        self._engine = None
        self._actor = None
        self._actor_name = None
        logger.info("session_signed_out", actor_id=actor.id)

    async def close(self) -> None:
        await self.sign_out()
        await self.audit.close()

    async def __aenter__(self) -> "ListingSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Mutations on behalf of the signed-in actor
    # -------------------------------------------------------------------------

    def _signed_in(self) -> tuple[LifecycleEngine, Actor]:
        if self._engine is None or self._actor is None:
            raise SessionClosedError("No actor is signed in.")
        return self._engine, self._actor

    async def submit(self, draft: ListingDraft, **kwargs: Any) -> ListingMutationOutput:
        engine, actor = self._signed_in()
        return await engine.submit(actor, draft, **kwargs)

    async def approve(self, listing_id: str, **kwargs: Any) -> ListingMutationOutput:
        engine, actor = self._signed_in()
        return await engine.approve(actor, listing_id, **kwargs)

    async def reject(self, listing_id: str, **kwargs: Any) -> ListingMutationOutput:
        engine, actor = self._signed_in()
        return await engine.reject(actor, listing_id, **kwargs)

    async def feature(self, listing_id: str, **kwargs: Any) -> ListingMutationOutput:
        engine, actor = self._signed_in()
        return await engine.feature(actor, listing_id, **kwargs)

    async def unfeature(self, listing_id: str, **kwargs: Any) -> ListingMutationOutput:
        engine, actor = self._signed_in()
        return await engine.unfeature(actor, listing_id, **kwargs)

    async def update_content(
        self, listing_id: str, changes: Mapping[str, Any], **kwargs: Any
    ) -> ListingMutationOutput:
        engine, actor = self._signed_in()
        return await engine.update_content(actor, listing_id, changes, **kwargs)

    async def delete(self, listing_id: str, **kwargs: Any) -> ListingMutationOutput:
        engine, actor = self._signed_in()
        return await engine.delete(actor, listing_id, **kwargs)
