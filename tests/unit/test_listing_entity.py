"""Unit tests for the Listing entity and submission drafts."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.domain.entities.actor import Actor, ActorRole
from src.domain.entities.listing import (
    Listing,
    ListingDraft,
    ListingInvariantError,
    ListingValidationError,
)
from src.domain.enums.listing_status import ListingStatus, ModerationAction
from src.domain.state_machine.moderation_state_machine import InvalidTransitionError

OWNER = Actor(id="owner-1", role=ActorRole.OWNER)
ADMIN = Actor(id="admin-1", role=ActorRole.ADMIN)


def _draft(**overrides) -> ListingDraft:
    payload = {
        "title": "Seaside Cottage",
        "description": "Two-bedroom cottage a minute from the beach",
        "location": "Brighton",
        "price": "120.00",
        "bedrooms": 2,
        "bathrooms": 1,
        "capacity": 4,
        "amenities": ["wifi", "parking"],
    }
    payload.update(overrides)
    return ListingDraft.from_payload(payload)


def _listing(**overrides) -> Listing:
    return Listing.create_from_draft(_draft(**overrides), OWNER)


class TestFeaturedInvariant:
    @pytest.mark.parametrize("status", [ListingStatus.PENDING, ListingStatus.REJECTED])
    def test_featured_requires_approved(self, status: ListingStatus) -> None:
        with pytest.raises(ListingInvariantError):
            Listing(owner_id="o", status=status, featured=True)

    def test_featured_approved_is_allowed(self) -> None:
        listing = Listing(owner_id="o", status=ListingStatus.APPROVED, featured=True)
        assert listing.featured is True


class TestCreateFromDraft:
    def test_owner_submission_is_pending(self) -> None:
        listing = _listing()
        assert listing.status is ListingStatus.PENDING
        assert listing.featured is False
        assert listing.owner_id == OWNER.id
        assert listing.price == Decimal("120.00")
        assert listing.amenities == ("wifi", "parking")

    def test_admin_submission_is_approved(self) -> None:
        listing = Listing.create_from_draft(_draft(), ADMIN)
        assert listing.status is ListingStatus.APPROVED

    def test_created_and_updated_match_on_creation(self) -> None:
        now = datetime(2025, 6, 1, tzinfo=timezone.utc)
        listing = Listing.create_from_draft(_draft(), OWNER, listing_id="abc", now=now)
        assert listing.id == "abc"
        assert listing.created_at == listing.updated_at == now

    @pytest.mark.parametrize(
        ("overrides", "field_name"),
        [
            ({"title": ""}, "title"),
            ({"description": "   "}, "description"),
            ({"location": ""}, "location"),
            ({"price": "0"}, "price"),
            ({"price": "-5"}, "price"),
            ({"capacity": -1}, "capacity"),
            ({"bedrooms": -2}, "bedrooms"),
        ],
    )
    def test_invalid_drafts_are_rejected(self, overrides: dict, field_name: str) -> None:
        with pytest.raises(ListingValidationError) as exc_info:
            _listing(**overrides)
        assert exc_info.value.field_name == field_name

    def test_unparseable_price_is_a_validation_error(self) -> None:
        with pytest.raises(ListingValidationError):
            _draft(price="cheap")

    def test_unknown_fields_are_rejected(self) -> None:
        with pytest.raises(ListingValidationError, match="Unknown listing fields"):
            ListingDraft.from_payload({"title": "x", "owner_id": "someone"})


class TestModerate:
    def test_approve_bumps_updated_at(self) -> None:
        listing = _listing()
        approved = listing.moderate(ModerationAction.APPROVE)
        assert approved.status is ListingStatus.APPROVED
        assert approved.updated_at >= listing.updated_at
        assert listing.status is ListingStatus.PENDING  # original untouched

    def test_reject_featured_clears_flag(self) -> None:
        featured = _listing().moderate(ModerationAction.APPROVE).moderate(ModerationAction.FEATURE)
        rejected = featured.moderate(ModerationAction.REJECT)
        assert rejected.status is ListingStatus.REJECTED
        assert rejected.featured is False

    def test_feature_pending_raises(self) -> None:
        with pytest.raises(InvalidTransitionError):
            _listing().moderate(ModerationAction.FEATURE)


class TestWithContent:
    def test_updates_descriptive_fields_only(self) -> None:
        listing = _listing()
        updated = listing.with_content({"title": "Harbour Cottage", "price": "150"})
        assert updated.title == "Harbour Cottage"
        assert updated.price == Decimal("150")
        assert updated.status is listing.status
        assert updated.owner_id == listing.owner_id

    @pytest.mark.parametrize("field_name", ["id", "owner_id", "status", "featured", "created_at"])
    def test_protected_fields_are_refused(self, field_name: str) -> None:
        with pytest.raises(ListingValidationError, match="cannot be changed"):
            _listing().with_content({field_name: "x"})

    def test_empty_update_is_refused(self) -> None:
        with pytest.raises(ListingValidationError):
            _listing().with_content({})

    def test_update_is_revalidated(self) -> None:
        with pytest.raises(ListingValidationError):
            _listing().with_content({"title": ""})

    @pytest.mark.parametrize("field_name", ["title", "description", "location"])
    def test_non_text_values_are_validation_errors(self, field_name: str) -> None:
        with pytest.raises(ListingValidationError) as exc_info:
            _listing().with_content({field_name: 5})
        assert exc_info.value.field_name == field_name


class TestApplyChanges:
    def test_status_change_to_rejected_clears_featured(self) -> None:
        featured = _listing().moderate(ModerationAction.APPROVE).moderate(ModerationAction.FEATURE)
        rejected = featured.apply_changes({"status": "rejected"})
        assert rejected.status is ListingStatus.REJECTED
        assert rejected.featured is False

    def test_featuring_a_pending_listing_is_a_validation_error(self) -> None:
        with pytest.raises(ListingValidationError):
            _listing().apply_changes({"featured": True})

    def test_unknown_status_is_a_validation_error(self) -> None:
        with pytest.raises(ListingValidationError):
            _listing().apply_changes({"status": "archived"})

    def test_owner_cannot_be_reassigned(self) -> None:
        with pytest.raises(ListingValidationError, match="immutable"):
            _listing().apply_changes({"owner_id": "someone-else"})


class TestSnapshot:
    def test_snapshot_round_trip(self) -> None:
        listing = _listing().moderate(ModerationAction.APPROVE).moderate(ModerationAction.FEATURE)
        assert Listing.from_snapshot(listing.to_snapshot()) == listing

    def test_snapshot_is_json_safe(self) -> None:
        snapshot = _listing().to_snapshot()
        assert snapshot["status"] == "pending"
        assert snapshot["price"] == "120.00"
        assert isinstance(snapshot["created_at"], str)
        assert snapshot["amenities"] == ["wifi", "parking"]

    def test_is_public_only_when_approved(self) -> None:
        listing = _listing()
        assert listing.is_public is False
        assert listing.moderate(ModerationAction.APPROVE).is_public is True
