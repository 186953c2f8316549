"""Tests for field hashing and backend selection"""

import logging

import pytest

from unirep_light.protocol import feature_flags
from unirep_light.protocol.config import SNARK_FIELD_SIZE
from unirep_light.protocol.exceptions import ProtocolInvariantViolation, Violation
from unirep_light.protocol.feature_flags import (
    HashBackend,
    hash_backend_override,
    parse_hash_backend,
    resolve_hash_backend,
    set_hash_backend,
)
from unirep_light.protocol.hashing import (
    PoseidonHasher,
    get_hasher,
    hash5,
    hash_left_right,
    hash_one,
    require_field,
    to_field,
)

# circomlib reference outputs
POSEIDON_T3_1_2 = 7853200120776062878684798364095072458815029376092732009249414926327459813530
POSEIDON_T3_0_0 = 0x2098F5FB9E239EAB3CEAC3F27B81E481DC3124D55FFED523A839EE8446B64864
POSEIDON_T6_1_2_0_0_0 = (
    1018317224307729531995786483840663576608797660851238720571059489595066344487
)


@pytest.fixture(autouse=True)
def _default_backend(monkeypatch):
    monkeypatch.delenv(feature_flags.ENV_VAR_NAME, raising=False)
    set_hash_backend(None)
    yield
    set_hash_backend(None)


class TestPoseidon:
    """Test the default backend against circomlib vectors"""

    def test_default_is_poseidon(self):
        assert resolve_hash_backend() is HashBackend.POSEIDON
        assert isinstance(get_hasher(), PoseidonHasher)

    def test_hash_left_right_vector(self):
        assert hash_left_right(1, 2) == POSEIDON_T3_1_2

    def test_zero_pair_vector(self):
        assert hash_left_right(0, 0) == POSEIDON_T3_0_0

    def test_hash5_vector(self):
        assert hash5([1, 2, 0, 0, 0]) == POSEIDON_T6_1_2_0_0_0
        assert hash5([1, 2]) == POSEIDON_T6_1_2_0_0_0

    def test_hash_one_is_pair_with_zero(self):
        assert hash_one(1) == hash_left_right(1, 0)


class TestFieldHashing:
    """Test properties shared by every backend"""

    @pytest.mark.parametrize("backend", list(HashBackend))
    def test_outputs_are_field_elements(self, backend):
        hasher = get_hasher(backend)
        for value in (hasher.hash_one(7), hasher.hash_left_right(1, 2), hasher.hash5([1, 2, 3, 4, 5])):
            assert 0 <= value < SNARK_FIELD_SIZE

    def test_order_matters(self):
        assert hash_left_right(1, 2) != hash_left_right(2, 1)

    def test_arities_differ(self):
        assert hash_left_right(1, 2) != hash5([1, 2])

    def test_hash5_rejects_six_elements(self):
        with pytest.raises(ValueError):
            hash5([0] * 6)

    def test_rejects_out_of_field_input(self):
        with pytest.raises(ValueError):
            hash_one(SNARK_FIELD_SIZE)
        with pytest.raises(ValueError):
            hash_one(-1)

    def test_rejects_non_integers(self):
        with pytest.raises(TypeError):
            to_field(True)
        with pytest.raises(TypeError):
            to_field("1")

    def test_require_field_raises_out_of_domain(self):
        assert require_field(SNARK_FIELD_SIZE - 1, "leaf") == SNARK_FIELD_SIZE - 1
        with pytest.raises(ProtocolInvariantViolation) as exc:
            require_field(SNARK_FIELD_SIZE, "leaf")
        assert exc.value.kind is Violation.OUT_OF_DOMAIN


class TestBackendSelection:
    """Test feature-flag driven backend choice"""

    def test_env_backend(self, monkeypatch):
        monkeypatch.setenv(feature_flags.ENV_VAR_NAME, "SHA3_256")
        assert resolve_hash_backend() is HashBackend.SHA3_256
        assert get_hasher().backend is HashBackend.SHA3_256

    def test_blank_env_falls_back_to_poseidon(self, monkeypatch):
        monkeypatch.setenv(feature_flags.ENV_VAR_NAME, "  ")
        assert resolve_hash_backend() is HashBackend.POSEIDON

    def test_override_context_restores(self):
        with hash_backend_override("sha256") as backend:
            assert backend is HashBackend.SHA256
            assert hash_left_right(1, 2) != POSEIDON_T3_1_2
        assert hash_left_right(1, 2) == POSEIDON_T3_1_2

    def test_explicit_argument_beats_override(self):
        set_hash_backend(HashBackend.SHA256)
        assert resolve_hash_backend("poseidon") is HashBackend.POSEIDON
        assert resolve_hash_backend() is HashBackend.SHA256

    def test_digest_backend_warns_once(self, monkeypatch, caplog):
        monkeypatch.setattr(feature_flags, "_warned", set())
        with caplog.at_level(logging.WARNING, logger=feature_flags.__name__):
            resolve_hash_backend("sha256")
            resolve_hash_backend("sha256")
        warnings = [r for r in caplog.records if "on-chain verifier" in r.getMessage()]
        assert len(warnings) == 1

    def test_invalid_backend_rejected(self):
        with pytest.raises(ValueError):
            set_hash_backend("md5")
        with pytest.raises(ValueError):
            parse_hash_backend(3)
        with pytest.raises(ValueError):
            resolve_hash_backend("blake3")
