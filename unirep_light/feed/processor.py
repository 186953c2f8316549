"""
Single-writer event processor.

Applies finalized protocol events to a ``UnirepState`` strictly in sequence
order and keeps tracked ``UserState`` objects in step with their own sign-ups
and transitions.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import trio

from ..protocol.unirep_state import UnirepState
from ..protocol.user_state import UserState
from .events import (
    AttestationSubmitted,
    EpochEnded,
    Event,
    ReputationNullifiersSpent,
    SequencedEvent,
    SignUp,
    UserStateTransitioned,
)

logger = logging.getLogger(__name__)


class EventProcessor:
    """
    Apply events to a replica at most once.

    Args:
        state: Replica to mutate
        users: User states to keep in sync with the feed
        cursor: Sequence number of the last event already applied
    """

    def __init__(
        self,
        state: UnirepState,
        users: Iterable[UserState] = (),
        cursor: int = 0,
    ) -> None:
        self.state = state
        self.cursor = cursor
        self._users: Dict[int, UserState] = {}
        for user in users:
            self.track(user)
        self._handlers: Dict[type, Callable[[Event], None]] = {
            SignUp: self._on_sign_up,
            AttestationSubmitted: self._on_attestation,
            EpochEnded: self._on_epoch_ended,
            UserStateTransitioned: self._on_user_state_transitioned,
            ReputationNullifiersSpent: self._on_reputation_spent,
        }

    def track(self, user: UserState) -> None:
        self._users[user.commitment] = user

    @property
    def users(self) -> Tuple[UserState, ...]:
        return tuple(self._users.values())

    def apply(self, seq: int, event: Event) -> bool:
        """
        Apply one event.

        Returns:
            False if ``seq`` is at or below the cursor and the event was
            skipped, True once it is applied
        """
        if seq <= self.cursor:
            logger.debug("Skipping event %d at or below cursor %d", seq, self.cursor)
            return False
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")
        handler(event)
        self.cursor = seq
        return True

    def apply_all(self, events: Iterable[SequencedEvent]) -> int:
        applied = 0
        for item in events:
            if self.apply(item.seq, item.event):
                applied += 1
        return applied

    async def run(self, receive_channel: trio.MemoryReceiveChannel) -> None:
        """Consume ``(seq, event)`` pairs until the channel is closed."""
        async with receive_channel:
            async for seq, event in receive_channel:
                self.apply(seq, event)
                await trio.lowlevel.checkpoint()

    # ------------------------------------------------------------------
    # handlers
    # ------------------------------------------------------------------

    def _on_sign_up(self, event: SignUp) -> None:
        index = self.state.sign_up(
            event.epoch,
            event.identity_commitment,
            event.attester_id,
            event.airdrop_amount,
        )
        user = self._users.get(event.identity_commitment)
        if user is not None:
            user.sign_up(event.epoch, index, event.attester_id, event.airdrop_amount)

    def _on_attestation(self, event: AttestationSubmitted) -> None:
        self.state.add_attestation(event.epoch_key, event.attestation, event.epoch)

    def _on_epoch_ended(self, event: EpochEnded) -> None:
        self.state.epoch_transition(event.epoch, event.epoch_tree_leaves)

    def _on_user_state_transitioned(self, event: UserStateTransitioned) -> None:
        # New leaves must be derived before the nullifiers are recorded.
        owner = self._find_transitioning_user(event.nullifiers)
        pending = None
        if owner is not None:
            new_gst_leaf, new_leaves = owner.gen_new_user_state_after_transition()
            if new_gst_leaf == event.new_gst_leaf:
                pending = new_leaves
            else:
                logger.warning(
                    "Transition leaf does not match the tracked user state; "
                    "the user state is left unchanged"
                )

        index = self.state.user_state_transition(
            event.epoch, event.new_gst_leaf, event.nullifiers
        )
        if owner is not None and pending is not None:
            owner.transition(pending, index)

    def _on_reputation_spent(self, event: ReputationNullifiersSpent) -> None:
        self.state.spend_reputation(event.epoch, event.nullifiers)

    def _find_transitioning_user(self, nullifiers: Iterable[int]) -> Optional[UserState]:
        spent = set(nullifiers)
        current = self.state.current_epoch
        for user in self._users.values():
            if not user.has_signed_up or user.latest_transitioned_epoch >= current:
                continue
            expected: List[int] = user.get_epoch_key_nullifiers(user.latest_transitioned_epoch)
            if spent.issuperset(expected):
                return user
        return None
