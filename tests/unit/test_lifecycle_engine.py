"""
Lifecycle engine, session and audit feed tests against the in-memory backend.

The in-memory backend runs the same server-side rules as the marketplace API,
so these exercise the full mutation path: guard, boundary write, store update
and audit append.
"""
import asyncio
import csv
import io
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.application.audit_pipeline import AuditPipeline
from src.application.interfaces.listing_gateway import PersistenceUnavailableError
from src.application.lifecycle_engine import LifecycleEngine, SessionClosedError
from src.application.listing_session import ListingSession
from src.application.listing_store import ListingStore
from src.application.reconciliation_loop import ReconciliationLoop
from src.application.use_cases.query_audit_feed import (
    CSV_FIELDS,
    UNKNOWN_ACTOR,
    ExportAuditFeedCsv,
    QueryAuditFeed,
)
from src.domain.audit.filters import AuditFilters, PageRequest
from src.domain.entities.actor import Actor, ActorProfile, ActorRole
from src.domain.entities.audit_record import AuditEntry, AuditSeverity
from src.domain.entities.listing import ListingDraft, ListingValidationError
from src.domain.enums.listing_status import CollectionScope, ListingStatus
from src.domain.state_machine.moderation_state_machine import InvalidTransitionError
from src.infrastructure.memory.in_memory_backend import InMemoryMarketplaceBackend

OWNER = Actor(id="owner-1", role=ActorRole.OWNER)
ADMIN = Actor(id="admin-1", role=ActorRole.ADMIN)

DRAFT = ListingDraft.from_payload(
    {
        "title": "Seaside Cottage",
        "description": "Two-bedroom cottage a minute from the beach",
        "location": "Brighton",
        "price": "120.00",
        "capacity": 4,
    }
)


@pytest.fixture()
def backend() -> InMemoryMarketplaceBackend:
    return InMemoryMarketplaceBackend(
        actors=[
            ActorProfile(id=OWNER.id, name="Olive Owner", role=ActorRole.OWNER),
            ActorProfile(id=ADMIN.id, name="Ada Admin", role=ActorRole.ADMIN),
        ]
    )


@pytest.fixture()
def store() -> ListingStore:
    return ListingStore()


@pytest.fixture()
def audit(backend: InMemoryMarketplaceBackend) -> AuditPipeline:
    return AuditPipeline(backend)


@pytest.fixture()
def engine(store: ListingStore, backend: InMemoryMarketplaceBackend, audit: AuditPipeline) -> LifecycleEngine:
    # No reconciliation: a public-scope refresh would drop pending listings
    return LifecycleEngine(store, backend, audit)


def _entry(actor_id: str, action: str, entity_id: str, description: str = "") -> AuditEntry:
    return AuditEntry(
        actor_id=actor_id,
        action=action,
        entity_kind="listing",
        entity_id=entity_id,
        severity=AuditSeverity.INFO,
        description=description or f"{action} {entity_id}",
    )


def _hold_creates(
    backend: InMemoryMarketplaceBackend, monkeypatch: pytest.MonkeyPatch
) -> tuple[asyncio.Event, asyncio.Event]:
    """Make create_listing wait on ``release``; ``started`` is set once it is called."""
    started, release = asyncio.Event(), asyncio.Event()
    create_listing = backend.create_listing

    async def held(actor: Actor, draft: ListingDraft):
        started.set()
        await release.wait()
        return await create_listing(actor, draft)

    monkeypatch.setattr(backend, "create_listing", held)
    return started, release


class TestModerationScenarios:
    @pytest.mark.asyncio
    async def test_full_moderation_lifecycle(
        self,
        engine: LifecycleEngine,
        store: ListingStore,
        audit: AuditPipeline,
        backend: InMemoryMarketplaceBackend,
    ) -> None:
        # Submission by an unprivileged actor waits for review
        submitted = await engine.submit(OWNER, DRAFT)
        listing_id = submitted.listing.id
        await audit.drain()
        assert submitted.confirmed is True
        assert store.get(listing_id).status is ListingStatus.PENDING
        assert [(r.action, r.severity) for r in backend.audit_records] == [
            ("listing_created", AuditSeverity.INFO)
        ]

        # Approval
        await engine.approve(ADMIN, listing_id)
        await audit.drain()
        approved = store.get(listing_id)
        assert approved.status is ListingStatus.APPROVED
        assert approved.featured is False
        assert backend.audit_records[-1].action == "listing_approved"
        assert backend.audit_records[-1].severity is AuditSeverity.INFO
        assert store.list_featured() == []

        # Featuring
        await engine.feature(ADMIN, listing_id)
        await audit.drain()
        assert store.get(listing_id).featured is True
        assert backend.audit_records[-1].action == "listing_featured"
        assert [l.id for l in store.list_featured()] == [listing_id]

        # Rejecting a featured listing clears the flag in the same transition
        await engine.reject(ADMIN, listing_id)
        await audit.drain()
        rejected = store.get(listing_id)
        assert rejected.status is ListingStatus.REJECTED
        assert rejected.featured is False
        assert backend.audit_records[-1].action == "listing_rejected"
        assert backend.audit_records[-1].severity is AuditSeverity.WARNING
        assert [r.action for r in backend.audit_records] == [
            "listing_created",
            "listing_approved",
            "listing_featured",
            "listing_rejected",
        ]
        assert (await backend.listing_repo.get_by_id(listing_id)).featured is False

    @pytest.mark.asyncio
    async def test_failed_approval_diverges_then_reconciles(
        self,
        engine: LifecycleEngine,
        store: ListingStore,
        audit: AuditPipeline,
        backend: InMemoryMarketplaceBackend,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        submitted = await engine.submit(OWNER, DRAFT)
        listing_id = submitted.listing.id

        monkeypatch.setattr(
            backend,
            "update_listing",
            AsyncMock(side_effect=PersistenceUnavailableError("connection reset")),
        )
        result = await engine.approve(ADMIN, listing_id)
        await audit.drain()

        assert result.confirmed is False
        assert store.get(listing_id).status is ListingStatus.APPROVED
        assert store.is_pending_sync(listing_id) is True
        approval = backend.audit_records[-1]
        assert approval.action == "listing_approved"
        assert approval.pending_sync is True
        assert "pending_sync" in approval.description

        loop = ReconciliationLoop(store, backend, lambda: CollectionScope.PRIVILEGED)
        assert await loop.refresh() is True

        assert store.get(listing_id).status is ListingStatus.PENDING
        assert store.is_pending_sync(listing_id) is False

    @pytest.mark.asyncio
    async def test_guard_failure_leaves_everything_unchanged(
        self,
        engine: LifecycleEngine,
        store: ListingStore,
        audit: AuditPipeline,
        backend: InMemoryMarketplaceBackend,
    ) -> None:
        listing_id = (await engine.submit(OWNER, DRAFT)).listing.id
        await audit.drain()
        before = store.get(listing_id)

        with pytest.raises(InvalidTransitionError):
            await engine.feature(ADMIN, listing_id)
        with pytest.raises(InvalidTransitionError):
            await engine.approve(OWNER, listing_id)
        await audit.drain()

        assert store.get(listing_id) == before
        assert len(backend.audit_records) == 1

    @pytest.mark.asyncio
    async def test_owner_edits_and_deletes(
        self,
        engine: LifecycleEngine,
        store: ListingStore,
        audit: AuditPipeline,
        backend: InMemoryMarketplaceBackend,
    ) -> None:
        listing_id = (await engine.submit(OWNER, DRAFT)).listing.id

        updated = await engine.update_content(OWNER, listing_id, {"price": "150"})
        assert str(updated.listing.price) == "150"
        assert updated.listing.status is ListingStatus.PENDING

        await engine.delete(OWNER, listing_id)
        await audit.drain()

        assert listing_id not in store
        deleted = backend.audit_records[-1]
        assert deleted.action == "listing_deleted"
        assert deleted.severity is AuditSeverity.CRITICAL
        assert deleted.before_values()["id"] == listing_id
        assert deleted.after is None


class TestLifecycleEngine:
    @pytest.mark.asyncio
    async def test_closed_engine_refuses_mutations(self, engine: LifecycleEngine) -> None:
        await engine.close()

        assert engine.closed is True
        with pytest.raises(SessionClosedError):
            await engine.submit(OWNER, DRAFT)

    @pytest.mark.asyncio
    async def test_only_confirmed_writes_trigger_reconciliation(
        self, store: ListingStore, backend: InMemoryMarketplaceBackend, audit: AuditPipeline
    ) -> None:
        reconciliation = MagicMock()
        engine = LifecycleEngine(store, backend, audit, reconciliation)

        await engine.submit(OWNER, DRAFT)
        assert reconciliation.trigger.call_count == 1

        backend.available = False
        result = await engine.submit(OWNER, DRAFT)
        await audit.drain()

        assert result.confirmed is False
        assert reconciliation.trigger.call_count == 1

    @pytest.mark.asyncio
    async def test_mutations_run_in_invocation_order(
        self, engine: LifecycleEngine, store: ListingStore
    ) -> None:
        listing_id = (await engine.submit(OWNER, DRAFT)).listing.id

        results = await asyncio.gather(
            engine.approve(ADMIN, listing_id),
            engine.feature(ADMIN, listing_id),
            engine.unfeature(ADMIN, listing_id),
        )

        assert all(r.confirmed for r in results)
        assert store.get(listing_id).status is ListingStatus.APPROVED
        assert store.get(listing_id).featured is False

    @pytest.mark.asyncio
    async def test_cancelled_mutation_leaves_store_untouched(
        self,
        engine: LifecycleEngine,
        store: ListingStore,
        backend: InMemoryMarketplaceBackend,
        audit: AuditPipeline,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        started, release = _hold_creates(backend, monkeypatch)

        write = asyncio.create_task(engine.submit(OWNER, DRAFT))
        await started.wait()
        write.cancel()
        with pytest.raises(asyncio.CancelledError):
            await write
        await audit.drain()

        assert len(store) == 0
        assert backend.audit_records == []
        assert await backend.list_collection(CollectionScope.PRIVILEGED) == []

        release.set()
        assert (await engine.submit(OWNER, DRAFT)).confirmed is True

    @pytest.mark.asyncio
    async def test_close_waits_for_the_write_in_flight(
        self,
        store: ListingStore,
        backend: InMemoryMarketplaceBackend,
        audit: AuditPipeline,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        reconciliation = MagicMock()
        engine = LifecycleEngine(store, backend, audit, reconciliation)
        started, release = _hold_creates(backend, monkeypatch)

        write = asyncio.create_task(engine.submit(OWNER, DRAFT))
        await started.wait()
        closing = asyncio.create_task(engine.close())
        await asyncio.sleep(0)

        assert engine.closed is True
        assert closing.done() is False

        release.set()
        result = await write
        await closing

        assert result.confirmed is True
        assert result.listing.id in store
        # No refresh is scheduled once the engine is closed
        reconciliation.trigger.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_text_title_is_a_validation_error(
        self, engine: LifecycleEngine, store: ListingStore
    ) -> None:
        listing_id = (await engine.submit(OWNER, DRAFT)).listing.id

        with pytest.raises(ListingValidationError):
            await engine.update_content(OWNER, listing_id, {"title": 5})

        assert store.get(listing_id).title == "Seaside Cottage"


class TestAuditFeed:
    @pytest.mark.asyncio
    async def test_records_are_newest_first_with_actor_names(
        self, backend: InMemoryMarketplaceBackend
    ) -> None:
        await backend.append_audit_record(_entry(OWNER.id, "listing_created", "l-1"))
        await backend.append_audit_record(_entry(ADMIN.id, "listing_approved", "l-1"))

        page = await QueryAuditFeed(backend, backend).execute()

        assert [e.record.action for e in page.entries] == ["listing_approved", "listing_created"]
        assert [e.actor_name for e in page.entries] == ["Ada Admin", "Olive Owner"]
        assert page.total == 2
        assert page.has_next is False

    @pytest.mark.asyncio
    async def test_removed_actor_is_shown_as_unknown(self, backend: InMemoryMarketplaceBackend) -> None:
        await backend.append_audit_record(_entry("ghost-7", "listing_deleted", "l-9"))

        page = await QueryAuditFeed(backend, backend).execute()

        assert len(page.entries) == 1
        assert page.entries[0].actor_resolved is False
        assert page.entries[0].actor_name == UNKNOWN_ACTOR

    @pytest.mark.asyncio
    async def test_page_request_is_clamped(self, backend: InMemoryMarketplaceBackend) -> None:
        page = await QueryAuditFeed(backend, backend, max_page_size=100).execute(
            page=PageRequest(page=0, page_size=500)
        )

        assert page.page == 1
        assert page.page_size == 100

    @pytest.mark.asyncio
    async def test_filters_are_conjunctive(self, backend: InMemoryMarketplaceBackend) -> None:
        await backend.append_audit_record(_entry(OWNER.id, "listing_created", "l-1"))
        await backend.append_audit_record(_entry(ADMIN.id, "listing_created", "l-2"))
        await backend.append_audit_record(_entry(ADMIN.id, "listing_approved", "l-1"))

        page = await QueryAuditFeed(backend, backend).execute(
            AuditFilters(action="listing_created", actor_id=ADMIN.id)
        )

        assert [e.record.entity_id for e in page.entries] == ["l-2"]

    @pytest.mark.asyncio
    async def test_time_window_accepts_naive_datetimes(self, backend: InMemoryMarketplaceBackend) -> None:
        await backend.append_audit_record(_entry(OWNER.id, "listing_created", "l-1"))

        query = QueryAuditFeed(backend, backend)
        since = await query.execute(AuditFilters(occurred_after=datetime(2020, 1, 1)))
        until = await query.execute(AuditFilters(occurred_before=datetime(2020, 1, 1)))

        assert since.total == 1
        assert until.total == 0

    @pytest.mark.asyncio
    async def test_pagination(self, backend: InMemoryMarketplaceBackend) -> None:
        for i in range(5):
            await backend.append_audit_record(_entry(OWNER.id, "listing_updated", f"l-{i}"))

        page = await QueryAuditFeed(backend, backend).execute(page=PageRequest(page=2, page_size=2))

        assert [e.record.entity_id for e in page.entries] == ["l-2", "l-1"]
        assert page.page_count == 3
        assert page.has_next is True

    @pytest.mark.asyncio
    async def test_csv_export_walks_every_page(self, backend: InMemoryMarketplaceBackend) -> None:
        for i in range(5):
            await backend.append_audit_record(_entry(OWNER.id, "listing_updated", f"l-{i}"))
        await backend.append_audit_record(_entry("ghost-7", "listing_deleted", "l-9"))

        query = QueryAuditFeed(backend, backend)
        text = await ExportAuditFeedCsv(query, page_size=2).execute()

        rows = list(csv.DictReader(io.StringIO(text)))
        assert text.splitlines()[0].split(",") == CSV_FIELDS
        assert len(rows) == 6
        assert rows[0]["actor"] == UNKNOWN_ACTOR
        assert rows[0]["entity_id"] == "l-9"
        assert rows[-1]["actor"] == "Olive Owner"
        assert rows[-1]["pending_sync"] == "false"


class TestListingSession:
    @pytest.mark.asyncio
    async def test_sign_in_and_out_are_audited(self, backend: InMemoryMarketplaceBackend) -> None:
        session = ListingSession(backend, backend, backend, reconcile_interval_seconds=3600)

        await session.sign_in(ADMIN, name="Ada Admin")
        assert session.actor == ADMIN
        assert session.reconciliation.running is True
        await session.sign_out()

        assert session.actor is None
        assert session.reconciliation.running is False
        assert [r.action for r in backend.audit_records] == ["user_login", "user_logout"]
        assert backend.audit_records[0].description == 'User "Ada Admin" logged in'
        await session.close()

    @pytest.mark.asyncio
    async def test_mutations_require_a_signed_in_actor(self, backend: InMemoryMarketplaceBackend) -> None:
        async with ListingSession(backend, backend, backend, reconcile_interval_seconds=3600) as session:
            with pytest.raises(SessionClosedError):
                await session.submit(DRAFT)

    @pytest.mark.asyncio
    async def test_store_is_cleared_when_actor_changes(self, backend: InMemoryMarketplaceBackend) -> None:
        async with ListingSession(backend, backend, backend, reconcile_interval_seconds=3600) as session:
            await session.sign_in(OWNER)
            pending = await session.submit(DRAFT)
            assert pending.listing.id in session.store

            await session.sign_in(ADMIN)
            assert pending.listing.id not in session.store

            await session.reconciliation.refresh()
            assert session.store.get(pending.listing.id).status is ListingStatus.PENDING

    @pytest.mark.asyncio
    async def test_write_acknowledged_during_sign_out_is_discarded(
        self, backend: InMemoryMarketplaceBackend, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        session = ListingSession(backend, backend, backend, reconcile_interval_seconds=3600)
        await session.sign_in(ADMIN, name="Ada Admin")
        started, release = _hold_creates(backend, monkeypatch)

        write = asyncio.create_task(session.submit(DRAFT))
        await started.wait()
        signing_out = asyncio.create_task(session.sign_out())
        await asyncio.sleep(0)
        release.set()
        result = await write
        await signing_out

        assert result.confirmed is True
        assert len(session.store) == 0
        assert session.reconciliation.running is False
        server_ids = [l.id for l in await backend.list_collection(CollectionScope.PRIVILEGED)]
        assert result.listing.id in server_ids
        assert "listing_created" in [r.action for r in backend.audit_records]

        # A later refresh belongs to no one and must not repopulate the store
        assert session.reconciliation.trigger() is None
        await asyncio.sleep(0)
        assert len(session.store) == 0
        await session.close()
