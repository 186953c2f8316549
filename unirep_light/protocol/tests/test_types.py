"""Tests for attestations, reputation records, identities and derived keys"""

import pytest

from unirep_light.protocol.config import SNARK_FIELD_SIZE
from unirep_light.protocol.hashing import hash5, hash_one
from unirep_light.protocol.keys import (
    blind,
    gen_epoch_key,
    gen_epoch_key_nullifier,
    gen_reputation_nullifier,
)
from unirep_light.protocol.types import Attestation, Identity, Reputation


class TestAttestation:
    def test_hash(self):
        att = Attestation(attester_id=1, pos_rep=2, neg_rep=3, graffiti=4, sign_up=1)
        assert att.hash() == hash5([1, 2, 3, 4, 1])

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            Attestation(attester_id=1, pos_rep=-1)

    def test_rejects_bad_sign_up(self):
        with pytest.raises(ValueError):
            Attestation(attester_id=1, sign_up=2)

    def test_rejects_bool(self):
        with pytest.raises(TypeError):
            Attestation(attester_id=True)

    def test_rejects_out_of_field(self):
        with pytest.raises(ValueError):
            Attestation(attester_id=1, graffiti=SNARK_FIELD_SIZE)

    def test_dict_round_trip(self):
        att = Attestation(attester_id=3, pos_rep=5, graffiti=11)
        assert Attestation.from_dict(att.to_dict()) == att


class TestReputation:
    def test_update_accumulates(self):
        rep = Reputation().update(3, 1, 0, 0).update(2, 4, 0, 0)
        assert (rep.pos_rep, rep.neg_rep) == (5, 5)

    def test_graffiti_overwritten_only_when_nonzero(self):
        rep = Reputation().update(0, 0, 7, 0)
        assert rep.update(1, 0, 0, 0).graffiti == 7
        assert rep.update(1, 0, 9, 0).graffiti == 9

    def test_sign_up_is_sticky(self):
        rep = Reputation().update(0, 0, 0, 1)
        assert rep.update(0, 0, 0, 0).sign_up == 1

    def test_apply_attestation(self):
        rep = Reputation().apply(Attestation(attester_id=1, pos_rep=2, sign_up=1))
        assert rep == Reputation(pos_rep=2, sign_up=1)

    def test_hash(self):
        assert Reputation(1, 2, 3, 1).hash() == hash5([1, 2, 3, 1, 0])

    def test_graffiti_pre_image(self):
        rep = Reputation(graffiti=hash_one(42))
        assert rep.with_graffiti_pre_image(42).graffiti_pre_image == 42
        with pytest.raises(ValueError):
            rep.with_graffiti_pre_image(43)

    def test_new_graffiti_drops_pre_image(self):
        rep = Reputation(graffiti=hash_one(42)).with_graffiti_pre_image(42)
        assert rep.update(0, 0, hash_one(1), 0).graffiti_pre_image == 0


class TestIdentity:
    def test_commitment(self):
        identity = Identity(identity_nullifier=5, identity_trapdoor=6, identity_pk=(1, 2))
        assert identity.commitment == hash5([1, 2, 5, 6, 0])

    def test_random_identities_differ(self):
        assert Identity.random() != Identity.random()


class TestKeys:
    def test_epoch_key_in_domain(self):
        for nonce in range(3):
            assert 0 <= gen_epoch_key(123, 1, nonce, 8) < 2**8

    def test_epoch_key_formula(self):
        assert gen_epoch_key(123, 2, 1, 8) == hash5([123, 2, 1, 0, 0]) % 256

    def test_nullifiers_are_domain_separated(self):
        assert gen_epoch_key_nullifier(123, 1, 0) == hash5([1, 123, 1, 0, 0])
        assert gen_reputation_nullifier(123, 1, 0) == hash5([2, 123, 1, 0, 0])
        assert gen_epoch_key_nullifier(123, 1, 0) != gen_reputation_nullifier(123, 1, 0)

    def test_blind(self):
        assert blind(9, 8, 7, 6) == hash5([9, 8, 7, 6, 0])
