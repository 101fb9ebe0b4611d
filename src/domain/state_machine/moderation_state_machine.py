from dataclasses import dataclass

from src.domain.entities.actor import Actor
from src.domain.enums.listing_status import ListingStatus, ModerationAction


# Moderation actions accepted from each status: from_status -> allowed actions
VALID_TRANSITIONS: dict[ListingStatus, frozenset[ModerationAction]] = {
    ListingStatus.PENDING: frozenset({ModerationAction.APPROVE, ModerationAction.REJECT}),
    ListingStatus.APPROVED: frozenset(
        {ModerationAction.REJECT, ModerationAction.FEATURE, ModerationAction.UNFEATURE}
    ),
    ListingStatus.REJECTED: frozenset({ModerationAction.APPROVE}),
}

TARGET_STATUS: dict[ModerationAction, ListingStatus] = {
    ModerationAction.APPROVE: ListingStatus.APPROVED,
    ModerationAction.REJECT: ListingStatus.REJECTED,
    ModerationAction.FEATURE: ListingStatus.APPROVED,
    ModerationAction.UNFEATURE: ListingStatus.APPROVED,
}

MODERATION_ACTIONS: frozenset[ModerationAction] = frozenset(TARGET_STATUS)

# Actions an owner may perform on their own listing without moderation privilege
OWNER_ACTIONS: frozenset[ModerationAction] = frozenset(
    {ModerationAction.UPDATE, ModerationAction.DELETE}
)


@dataclass(frozen=True)
class TransitionResult:
    from_status: ListingStatus
    to_status: ListingStatus
    featured: bool


class InvalidTransitionError(Exception):
    """Raised when a moderation action is not permitted from the current state."""

    def __init__(
        self,
        action: ModerationAction,
        from_status: ListingStatus | None,
        message: str | None = None,
    ) -> None:
        self.action = action
        self.from_status = from_status
        if message is None:
            allowed = VALID_TRANSITIONS.get(from_status, frozenset()) if from_status else frozenset()
            message = (
                f"Cannot {action.value} a listing that is "
                f"{from_status.value if from_status else 'new'}. "
                f"Allowed actions: {sorted(a.value for a in allowed)}"
            )
        super().__init__(message)


class ModerationPrivilegeRequiredError(InvalidTransitionError):
    """Raised when an actor without moderation privilege attempts a moderation action."""

    def __init__(self, action: ModerationAction, actor: Actor) -> None:
        self.actor_id = actor.id
        super().__init__(
            action,
            None,
            f"Actor {actor.id} ({actor.role.value}) lacks moderation privilege for {action.value}.",
        )


class OwnershipRequiredError(InvalidTransitionError):
    """Raised when an actor edits or deletes a listing they neither own nor moderate."""

    def __init__(self, action: ModerationAction, actor: Actor, listing_id: str) -> None:
        self.actor_id = actor.id
        self.listing_id = listing_id
        super().__init__(
            action,
            None,
            f"Actor {actor.id} may not {action.value} listing {listing_id}: "
            "only its owner or a moderator can.",
        )


class ModerationStateMachine:
    """
    Validates moderation transitions and the actor guards that go with them.

    Stateless: callers pass the current status/featured flag explicitly.
    ``featured`` is a flag layered on top of ``approved``; it is never a state
    of its own.
    """

    def initial_status_for(self, actor: Actor) -> ListingStatus:
        """Trusted actors skip review: their submissions are created approved."""
        if actor.has_moderation_privilege:
            return ListingStatus.APPROVED
        return ListingStatus.PENDING

    def can_transition(
        self, action: ModerationAction, from_status: ListingStatus, featured: bool = False
    ) -> bool:
        if action not in VALID_TRANSITIONS.get(from_status, frozenset()):
            return False
        if action is ModerationAction.FEATURE:
            return not featured
        if action is ModerationAction.UNFEATURE:
            return featured
        return True

    def resolve(
        self, action: ModerationAction, from_status: ListingStatus, featured: bool = False
    ) -> tuple[ListingStatus, bool]:
        """Return (to_status, featured) or raise InvalidTransitionError."""
        if not self.can_transition(action, from_status, featured):
            if action is ModerationAction.FEATURE and from_status is ListingStatus.APPROVED:
                raise InvalidTransitionError(action, from_status, "Listing is already featured.")
            if action is ModerationAction.UNFEATURE and from_status is ListingStatus.APPROVED:
                raise InvalidTransitionError(action, from_status, "Listing is not featured.")
            raise InvalidTransitionError(action, from_status)

        to_status = TARGET_STATUS[action]
        if action is ModerationAction.FEATURE:
            return to_status, True
        if action is ModerationAction.UNFEATURE:
            return to_status, False
        # Approve never features; reject always clears the flag.
        return to_status, False

    def validate_transition(
        self, action: ModerationAction, from_status: ListingStatus, featured: bool = False
    ) -> TransitionResult:
        to_status, to_featured = self.resolve(action, from_status, featured)
        return TransitionResult(from_status=from_status, to_status=to_status, featured=to_featured)

    def authorize(self, actor: Actor, action: ModerationAction, owner_id: str, listing_id: str) -> None:
        """Raise unless the actor may perform ``action`` on a listing owned by ``owner_id``."""
        if actor.has_moderation_privilege:
            return
        if action in MODERATION_ACTIONS:
            raise ModerationPrivilegeRequiredError(action, actor)
        if action in OWNER_ACTIONS and actor.id != owner_id:
            raise OwnershipRequiredError(action, actor, listing_id)

    def get_allowed_actions(
        self, from_status: ListingStatus, featured: bool = False
    ) -> frozenset[ModerationAction]:
        return frozenset(
            a for a in VALID_TRANSITIONS.get(from_status, frozenset())
            if self.can_transition(a, from_status, featured)
        )
