"""Tests for the circuit registry and input validation"""

import pytest

from unirep_light.protocol.circuits import (
    CIRCUIT_REGISTRY,
    Circuit,
    CircuitInputs,
    get_circuit_spec,
    stringify_signals,
    validate_circuit_inputs,
)
from unirep_light.protocol.config import SNARK_FIELD_SIZE


def _epoch_key_inputs(**overrides):
    inputs = {
        "GST_path_elements": [1, 2, 3, 4],
        "GST_path_index": [0, 1, 0, 0],
        "GST_root": 9,
        "identity_pk": [5, 6],
        "identity_nullifier": 7,
        "identity_trapdoor": 8,
        "user_tree_root": 10,
        "nonce": 0,
        "epoch": 1,
        "epoch_key": 42,
    }
    inputs.update(overrides)
    return inputs


class TestRegistry:
    def test_every_circuit_registered(self):
        assert set(CIRCUIT_REGISTRY) == set(Circuit)

    def test_get_circuit_spec(self):
        assert get_circuit_spec(Circuit.VERIFY_EPOCH_KEY).circuit is Circuit.VERIFY_EPOCH_KEY

    def test_circuit_names(self):
        assert Circuit("processAttestations") is Circuit.PROCESS_ATTESTATIONS


class TestValidation:
    def test_valid_bundle(self):
        validate_circuit_inputs(Circuit.VERIFY_EPOCH_KEY, _epoch_key_inputs())

    def test_missing_signal(self):
        inputs = _epoch_key_inputs()
        del inputs["epoch_key"]
        with pytest.raises(ValueError, match="epoch_key"):
            CircuitInputs(Circuit.VERIFY_EPOCH_KEY, inputs)

    def test_unexpected_signal(self):
        with pytest.raises(ValueError, match="Unexpected"):
            CircuitInputs(Circuit.VERIFY_EPOCH_KEY, _epoch_key_inputs(extra=1))

    def test_scalar_given_list(self):
        with pytest.raises(ValueError):
            CircuitInputs(Circuit.VERIFY_EPOCH_KEY, _epoch_key_inputs(epoch=[1]))

    def test_list_given_scalar(self):
        with pytest.raises(ValueError):
            CircuitInputs(Circuit.VERIFY_EPOCH_KEY, _epoch_key_inputs(GST_path_index=1))

    def test_out_of_field(self):
        with pytest.raises(ValueError, match="field"):
            CircuitInputs(Circuit.VERIFY_EPOCH_KEY, _epoch_key_inputs(GST_root=SNARK_FIELD_SIZE))

    def test_bool_rejected(self):
        with pytest.raises(ValueError):
            CircuitInputs(Circuit.VERIFY_EPOCH_KEY, _epoch_key_inputs(nonce=True))


class TestSignals:
    def test_stringify_nested(self):
        assert stringify_signals({"a": [1, [2, 3]], "b": 4}) == {"a": ["1", ["2", "3"]], "b": "4"}

    def test_serialize_round_trip(self):
        bundle = CircuitInputs(Circuit.VERIFY_EPOCH_KEY, _epoch_key_inputs())
        restored = CircuitInputs.deserialize(bundle.serialize())
        assert restored.circuit is Circuit.VERIFY_EPOCH_KEY
        assert restored.inputs == bundle.inputs

    def test_deserialize_rejects_non_mapping(self):
        import cbor2

        with pytest.raises(ValueError):
            CircuitInputs.deserialize(cbor2.dumps([1, 2]))
