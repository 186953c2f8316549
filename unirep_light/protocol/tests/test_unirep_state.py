"""Tests for the protocol-scope coordinator"""

import pytest

from unirep_light.protocol.accumulators import sealed_empty_leaf
from unirep_light.protocol.config import SNARK_FIELD_SIZE, ProtocolConfig
from unirep_light.protocol.exceptions import ProtocolInvariantViolation, Violation
from unirep_light.protocol.hashing import hash_left_right
from unirep_light.protocol.ledger import fold_hashchain, seal_hashchain
from unirep_light.protocol.merkle import verify_path
from unirep_light.protocol.types import Attestation, EpochTreeLeaf, Reputation, UserStateLeaf
from unirep_light.protocol.unirep_state import UnirepState, sign_up_leaves
from unirep_light.protocol.user_state_tree import UserStateTree, compute_empty_user_state_root


class TestGlobalState:
    def test_starts_at_epoch_one(self):
        state = UnirepState()
        assert state.current_epoch == 1
        assert state.get_num_gst_leaves(1) == 0

    def test_default_gst_leaf(self):
        state = UnirepState()
        assert state.default_gst_leaf == hash_left_right(0, compute_empty_user_state_root(4))

    def test_sign_up_leaf(self):
        state = UnirepState()
        assert state.sign_up(1, 111) == 0
        assert state.sign_up(1, 222) == 1
        leaf = hash_left_right(111, compute_empty_user_state_root(4))
        tree = state.gen_gs_tree(1)
        assert verify_path(leaf, tree.gen_merkle_path(0), state.gst_root(1))

    def test_sign_up_with_airdrop(self):
        state = UnirepState()
        state.sign_up(1, 111, attester_id=2, airdrop_amount=10)
        tree = UserStateTree(4, [UserStateLeaf(2, Reputation(pos_rep=10, sign_up=1))])
        assert state.get_gst_leaves(1) == (hash_left_right(111, tree.root()),)

    def test_sign_up_leaves_without_airdrop(self):
        assert sign_up_leaves(2, 0) == ()
        assert sign_up_leaves(0, 5) == ()

    def test_double_sign_up(self):
        state = UnirepState()
        assert not state.is_signed_up(111)
        state.sign_up(1, 111)
        assert state.is_signed_up(111)
        with pytest.raises(ProtocolInvariantViolation) as exc:
            state.sign_up(1, 111)
        assert exc.value.kind is Violation.DOUBLE_SIGN_UP

    def test_sign_up_wrong_epoch(self):
        state = UnirepState()
        with pytest.raises(ProtocolInvariantViolation) as exc:
            state.sign_up(2, 111)
        assert exc.value.kind is Violation.EPOCH_MISMATCH

    def test_gst_full(self):
        state = UnirepState(ProtocolConfig(global_state_tree_depth=1))
        state.sign_up(1, 1)
        state.sign_up(1, 2)
        with pytest.raises(ProtocolInvariantViolation) as exc:
            state.sign_up(1, 3)
        assert exc.value.kind is Violation.OUT_OF_DOMAIN

    def test_unknown_epoch_has_no_leaves(self):
        state = UnirepState()
        assert state.get_num_gst_leaves(5) == 0

    def test_past_epoch_frozen(self):
        state = UnirepState()
        state.sign_up(1, 111)
        root = state.gst_root(1)
        state.epoch_transition(1)
        state.sign_up(2, 222)
        assert state.gst_root(1) == root
        assert state.gen_gs_tree(1) is state.gen_gs_tree(1)
        assert state.get_num_gst_leaves(2) == 1


class TestAttestationsAndEpochs:
    def test_add_attestation_defaults_to_current_epoch(self):
        state = UnirepState()
        att = Attestation(attester_id=1, pos_rep=1)
        state.add_attestation(9, att)
        assert state.get_attestations(9) == (att,)
        assert state.get_attestations(9, 1) == (att,)

    def test_attester_out_of_domain(self):
        state = UnirepState()
        with pytest.raises(ProtocolInvariantViolation) as exc:
            state.add_attestation(9, Attestation(attester_id=16))
        assert exc.value.kind is Violation.OUT_OF_DOMAIN

    def test_epoch_transition_seals_hashchains(self):
        state = UnirepState()
        atts = [Attestation(attester_id=1, pos_rep=1), Attestation(attester_id=2, neg_rep=2)]
        for att in atts:
            state.add_attestation(9, att)
        assert state.epoch_transition(1) == 2
        assert state.get_hashchain(9) == seal_hashchain(fold_hashchain(atts))
        assert state.get_hashchain(10) == sealed_empty_leaf()

        tree = state.gen_epoch_tree(1)
        path = tree.gen_merkle_path(9)
        assert verify_path(state.get_hashchain(9, 1), path, state.epoch_tree_root(1))

    def test_epoch_transition_with_reported_leaves(self):
        state = UnirepState()
        state.epoch_transition(1, [EpochTreeLeaf(epoch_key=3, hashchain_result=77)])
        assert state.get_hashchain(3, 1) == 77

    def test_attestations_after_end_rejected(self):
        state = UnirepState()
        state.epoch_transition(1)
        with pytest.raises(ProtocolInvariantViolation):
            state.add_attestation(9, Attestation(attester_id=1), epoch=1)

    def test_epoch_transition_wrong_epoch(self):
        state = UnirepState()
        with pytest.raises(ProtocolInvariantViolation):
            state.epoch_transition(2)

    def test_unsealed_epoch_tree_is_empty(self):
        state = UnirepState()
        state.add_attestation(9, Attestation(attester_id=1))
        empty = state.gen_epoch_tree(3)
        assert state.gen_epoch_tree(1).root == empty.root

    def test_hashchain_before_any_seal(self):
        assert UnirepState().get_hashchain(3) == sealed_empty_leaf()


class TestTransitions:
    def test_user_state_transition_records(self):
        state = UnirepState()
        state.epoch_transition(1)
        assert state.user_state_transition(2, 555, [11, 12]) == 0
        assert state.nullifier_exists(11)
        assert state.get_gst_leaves(2) == (555,)

    def test_zero_leaf_not_inserted(self):
        state = UnirepState()
        assert state.user_state_transition(1, 0, [11]) is None
        assert state.get_num_gst_leaves(1) == 0
        assert state.nullifier_exists(11)

    def test_duplicate_nullifier_leaves_state_untouched(self):
        state = UnirepState()
        state.user_state_transition(1, 555, [11])
        with pytest.raises(ProtocolInvariantViolation) as exc:
            state.user_state_transition(1, 666, [12, 11])
        assert exc.value.kind is Violation.DUPLICATE_NULLIFIER
        assert state.get_gst_leaves(1) == (555,)
        assert not state.nullifier_exists(12)

    def test_spend_reputation(self):
        state = UnirepState()
        assert state.spend_reputation(1, [21, 22]) == 2
        with pytest.raises(ProtocolInvariantViolation):
            state.spend_reputation(1, [22])

    def test_zero_nullifier_exists(self):
        assert UnirepState().nullifier_exists(0)


class TestFieldBounds:
    def test_out_of_field_gst_leaf_rejected(self):
        state = UnirepState()
        state.epoch_transition(1)
        with pytest.raises(ProtocolInvariantViolation) as exc:
            state.user_state_transition(2, SNARK_FIELD_SIZE + 5, [77])
        assert exc.value.kind is Violation.OUT_OF_DOMAIN
        assert state.get_num_gst_leaves(2) == 0
        assert not state.nullifier_exists(77)
        assert state.gst_root(2) == state.gen_gs_tree(2).root

    def test_out_of_field_nullifier_rejected(self):
        state = UnirepState()
        with pytest.raises(ProtocolInvariantViolation) as exc:
            state.user_state_transition(1, 555, [77, SNARK_FIELD_SIZE])
        assert exc.value.kind is Violation.OUT_OF_DOMAIN
        assert state.get_num_gst_leaves(1) == 0
        assert not state.nullifier_exists(77)

    def test_out_of_field_hashchain_rejected(self):
        state = UnirepState()
        with pytest.raises(ProtocolInvariantViolation) as exc:
            state.epoch_transition(1, [EpochTreeLeaf(3, SNARK_FIELD_SIZE)])
        assert exc.value.kind is Violation.OUT_OF_DOMAIN
        assert state.current_epoch == 1
        assert not state.ledger.is_sealed(1)
        assert state.epoch_transition(1) == 2

    def test_out_of_field_commitment_rejected(self):
        state = UnirepState()
        with pytest.raises(ProtocolInvariantViolation) as exc:
            state.sign_up(1, 2**255)
        assert exc.value.kind is Violation.OUT_OF_DOMAIN
        assert state.get_num_gst_leaves(1) == 0
        assert not state.is_signed_up(2**255)
