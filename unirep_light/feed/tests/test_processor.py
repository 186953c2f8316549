"""Tests for the single-writer event processor"""

from __future__ import annotations

import pytest
import trio

from unirep_light.feed.events import (
    AttestationSubmitted,
    EpochEnded,
    ReputationNullifiersSpent,
    SequencedEvent,
    SignUp,
    UserStateTransitioned,
)
from unirep_light.feed.processor import EventProcessor
from unirep_light.protocol.exceptions import ProtocolInvariantViolation, Violation
from unirep_light.protocol.types import Attestation, Identity, Reputation
from unirep_light.protocol.unirep_state import UnirepState
from unirep_light.protocol.user_state import UserState


def _user(state: UnirepState, seed: int = 21) -> UserState:
    identity = Identity(identity_nullifier=seed, identity_trapdoor=seed + 1, identity_pk=(1, 2))
    return UserState.new_identity(state, identity)


def test_events_at_or_below_cursor_are_skipped() -> None:
    state = UnirepState()
    processor = EventProcessor(state, cursor=1)
    assert processor.apply(1, SignUp(epoch=1, identity_commitment=5)) is False
    assert state.get_num_gst_leaves(1) == 0
    assert processor.apply(2, SignUp(epoch=1, identity_commitment=5)) is True
    assert processor.cursor == 2
    assert processor.apply(2, SignUp(epoch=1, identity_commitment=6)) is False
    assert state.get_num_gst_leaves(1) == 1


def test_failed_event_does_not_advance_cursor() -> None:
    state = UnirepState()
    processor = EventProcessor(state)
    with pytest.raises(ProtocolInvariantViolation):
        processor.apply(1, EpochEnded(epoch=2))
    assert processor.cursor == 0


def test_sign_up_notifies_tracked_user() -> None:
    state = UnirepState()
    user = _user(state)
    processor = EventProcessor(state, users=[user])
    processor.apply(1, SignUp(epoch=1, identity_commitment=999))
    processor.apply(2, SignUp(epoch=1, identity_commitment=user.commitment, attester_id=3, airdrop_amount=4))
    assert user.has_signed_up
    assert user.latest_gst_leaf_index == 1
    assert user.get_rep_by_attester(3) == Reputation(pos_rep=4, sign_up=1)
    assert state.get_gst_leaves(1)[1] == user.gst_leaf()


def test_full_epoch_cycle_transitions_user() -> None:
    state = UnirepState()
    user = _user(state)
    processor = EventProcessor(state, users=[user])
    processor.apply(1, SignUp(epoch=1, identity_commitment=user.commitment))
    epoch_key = user.get_epoch_keys(1)[0]
    processor.apply(2, AttestationSubmitted(epoch=1, epoch_key=epoch_key, attestation=Attestation(attester_id=1, pos_rep=6)))
    processor.apply(3, EpochEnded(epoch=1))

    gst_leaf, _ = user.gen_new_user_state_after_transition()
    processor.apply(
        4,
        UserStateTransitioned(
            epoch=2,
            new_gst_leaf=gst_leaf,
            nullifiers=tuple(user.get_epoch_key_nullifiers(1)),
        ),
    )
    assert user.latest_transitioned_epoch == 2
    assert user.latest_gst_leaf_index == 0
    assert user.get_rep_by_attester(1).pos_rep == 6
    assert state.get_gst_leaves(2) == (user.gst_leaf(),)


def test_mismatched_transition_leaves_user_unchanged() -> None:
    state = UnirepState()
    user = _user(state)
    processor = EventProcessor(state, users=[user])
    processor.apply(1, SignUp(epoch=1, identity_commitment=user.commitment))
    processor.apply(2, EpochEnded(epoch=1))
    processor.apply(
        3,
        UserStateTransitioned(
            epoch=2, new_gst_leaf=12345, nullifiers=tuple(user.get_epoch_key_nullifiers(1))
        ),
    )
    assert user.latest_transitioned_epoch == 1
    assert state.get_gst_leaves(2) == (12345,)


def test_reputation_spend_is_recorded() -> None:
    state = UnirepState()
    processor = EventProcessor(state)
    processor.apply(1, ReputationNullifiersSpent(epoch=1, nullifiers=(8, 9)))
    assert state.nullifier_exists(8)
    with pytest.raises(ProtocolInvariantViolation) as exc:
        processor.apply(2, ReputationNullifiersSpent(epoch=1, nullifiers=(9,)))
    assert exc.value.kind is Violation.DUPLICATE_NULLIFIER


def test_apply_all_counts_applied() -> None:
    state = UnirepState()
    processor = EventProcessor(state, cursor=1)
    events = [
        SequencedEvent(seq=1, event=SignUp(epoch=1, identity_commitment=1)),
        SequencedEvent(seq=2, event=SignUp(epoch=1, identity_commitment=2)),
        SequencedEvent(seq=3, event=EpochEnded(epoch=1)),
    ]
    assert processor.apply_all(events) == 2
    assert state.current_epoch == 2


def test_unknown_event_type() -> None:
    with pytest.raises(TypeError):
        EventProcessor(UnirepState()).apply(1, object())  # type: ignore[arg-type]


@pytest.mark.trio
async def test_run_consumes_channel() -> None:
    state = UnirepState()
    processor = EventProcessor(state)
    send_channel, receive_channel = trio.open_memory_channel(0)

    async def _produce() -> None:
        async with send_channel:
            await send_channel.send((1, SignUp(epoch=1, identity_commitment=3)))
            await send_channel.send((2, EpochEnded(epoch=1)))
            await send_channel.send((2, EpochEnded(epoch=2)))

    async with trio.open_nursery() as nursery:
        nursery.start_soon(processor.run, receive_channel)
        nursery.start_soon(_produce)

    assert state.current_epoch == 2
    assert processor.cursor == 2
