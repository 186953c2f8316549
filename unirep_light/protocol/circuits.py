"""
Circuit registry for the reputation proofs.

Defines circuit names, the signal names each expects, and validation of an
assembled input bundle before it is handed to the proof oracle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping

import cbor2

from .config import SNARK_FIELD_SIZE


class Circuit(Enum):
    """Circuit identifiers, as named by the prover artifacts."""

    VERIFY_EPOCH_KEY = "verifyEpochKey"
    START_TRANSITION = "startTransition"
    PROCESS_ATTESTATIONS = "processAttestations"
    USER_STATE_TRANSITION = "userStateTransition"
    PROVE_REPUTATION = "proveReputation"
    PROVE_USER_SIGN_UP = "proveUserSignUp"


_IDENTITY_SIGNALS: Dict[str, type] = {
    "identity_pk": list,
    "identity_nullifier": int,
    "identity_trapdoor": int,
}

_GST_SIGNALS: Dict[str, type] = {
    "GST_path_elements": list,
    "GST_path_index": list,
    "GST_root": int,
}

_REPUTATION_SIGNALS: Dict[str, type] = {
    "attester_id": int,
    "pos_rep": int,
    "neg_rep": int,
    "graffiti": int,
    "sign_up": int,
    "UST_path_elements": list,
}


@dataclass(frozen=True)
class CircuitSpec:
    """
    Specification for one circuit's private and public inputs.

    Attributes:
        circuit: Circuit identifier
        input_schema: Signal name -> int (scalar) or list (vector)
        description: Human-readable statement
    """

    circuit: Circuit
    input_schema: Mapping[str, type]
    description: str


CIRCUIT_REGISTRY: Dict[Circuit, CircuitSpec] = {
    Circuit.VERIFY_EPOCH_KEY: CircuitSpec(
        circuit=Circuit.VERIFY_EPOCH_KEY,
        input_schema={
            **_GST_SIGNALS,
            **_IDENTITY_SIGNALS,
            "user_tree_root": int,
            "nonce": int,
            "epoch": int,
            "epoch_key": int,
        },
        description="Epoch key is derived from an identity inside the global state tree",
    ),
    Circuit.START_TRANSITION: CircuitSpec(
        circuit=Circuit.START_TRANSITION,
        input_schema={
            "epoch": int,
            "nonce": int,
            "user_tree_root": int,
            **_IDENTITY_SIGNALS,
            **_GST_SIGNALS,
        },
        description="Seed the blinded user state and hash chain of a transition",
    ),
    Circuit.PROCESS_ATTESTATIONS: CircuitSpec(
        circuit=Circuit.PROCESS_ATTESTATIONS,
        input_schema={
            "epoch": int,
            "from_nonce": int,
            "to_nonce": int,
            "identity_nullifier": int,
            "intermediate_user_state_tree_roots": list,
            "old_pos_reps": list,
            "old_neg_reps": list,
            "old_graffities": list,
            "old_sign_ups": list,
            "path_elements": list,
            "attester_ids": list,
            "pos_reps": list,
            "neg_reps": list,
            "graffities": list,
            "overwrite_graffities": list,
            "sign_ups": list,
            "selectors": list,
            "hash_chain_starter": int,
            "input_blinded_user_state": int,
        },
        description="Apply one chunk of attestations to the blinded user state",
    ),
    Circuit.USER_STATE_TRANSITION: CircuitSpec(
        circuit=Circuit.USER_STATE_TRANSITION,
        input_schema={
            "epoch": int,
            "blinded_user_state": list,
            "intermediate_user_state_tree_roots": list,
            "start_epoch_key_nonce": int,
            "end_epoch_key_nonce": int,
            **_IDENTITY_SIGNALS,
            **_GST_SIGNALS,
            "epk_path_elements": list,
            "hash_chain_results": list,
            "blinded_hash_chain_results": list,
            "epoch_tree_root": int,
        },
        description="Close a transition and emit the new global state leaf",
    ),
    Circuit.PROVE_REPUTATION: CircuitSpec(
        circuit=Circuit.PROVE_REPUTATION,
        input_schema={
            "epoch": int,
            "epoch_key_nonce": int,
            "epoch_key": int,
            **_IDENTITY_SIGNALS,
            "user_tree_root": int,
            **_GST_SIGNALS,
            **_REPUTATION_SIGNALS,
            "rep_nullifiers_amount": int,
            "selectors": list,
            "rep_nonce": list,
            "min_rep": int,
            "prove_graffiti": int,
            "graffiti_pre_image": int,
        },
        description="Prove reputation from an attester and spend reputation nullifiers",
    ),
    Circuit.PROVE_USER_SIGN_UP: CircuitSpec(
        circuit=Circuit.PROVE_USER_SIGN_UP,
        input_schema={
            "epoch": int,
            "epoch_key": int,
            **_IDENTITY_SIGNALS,
            "user_tree_root": int,
            **_GST_SIGNALS,
            **_REPUTATION_SIGNALS,
        },
        description="Prove an attester has signed the user up",
    ),
}


def get_circuit_spec(circuit: Circuit) -> CircuitSpec:
    """Get specification for a circuit"""
    if circuit not in CIRCUIT_REGISTRY:
        raise ValueError(f"Unknown circuit: {circuit}")
    return CIRCUIT_REGISTRY[circuit]


def _check_field_elements(value: Any, path: str) -> None:
    if isinstance(value, (list, tuple)):
        for idx, item in enumerate(value):
            _check_field_elements(item, f"{path}[{idx}]")
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Signal '{path}' must be an integer, got {type(value).__name__}")
    if not 0 <= value < SNARK_FIELD_SIZE:
        raise ValueError(f"Signal '{path}' is outside the SNARK field")


def validate_circuit_inputs(circuit: Circuit, inputs: Mapping[str, Any]) -> None:
    """
    Validate an input bundle against the circuit schema.

    Raises:
        ValueError: If a signal is missing, unexpected, mis-shaped, or not a
            field element
    """
    schema = get_circuit_spec(circuit).input_schema

    for name, expected in schema.items():
        if name not in inputs:
            raise ValueError(f"Missing required signal '{name}' for {circuit.value}")
        value = inputs[name]
        if expected is list and not isinstance(value, (list, tuple)):
            raise ValueError(f"Signal '{name}' must be a list, got {type(value).__name__}")
        if expected is int and isinstance(value, (list, tuple)):
            raise ValueError(f"Signal '{name}' must be a scalar")
        _check_field_elements(value, name)

    extra = sorted(set(inputs) - set(schema))
    if extra:
        raise ValueError(f"Unexpected signals for {circuit.value}: {', '.join(extra)}")


def stringify_signals(value: Any) -> Any:
    """Render integers (recursively) as decimal strings, as provers expect."""
    if isinstance(value, Mapping):
        return {k: stringify_signals(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [stringify_signals(v) for v in value]
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    return value


@dataclass(frozen=True)
class CircuitInputs:
    """
    A validated input bundle for one circuit.

    Attributes:
        circuit: Target circuit
        inputs: Signal name -> integer or nested list of integers
    """

    circuit: Circuit
    inputs: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        validate_circuit_inputs(self.circuit, self.inputs)

    def __getitem__(self, name: str) -> Any:
        return self.inputs[name]

    def to_signals(self) -> Dict[str, Any]:
        return stringify_signals(self.inputs)

    def serialize(self) -> bytes:
        return cbor2.dumps({"circuit": self.circuit.value, "inputs": self.to_signals()})

    @classmethod
    def deserialize(cls, data: bytes) -> "CircuitInputs":
        payload = cbor2.loads(data)
        if not isinstance(payload, dict) or "circuit" not in payload:
            raise ValueError("Circuit input payload must be a mapping with 'circuit'")
        return cls(
            circuit=Circuit(payload["circuit"]),
            inputs=_parse_signals(payload.get("inputs", {})),
        )


def _parse_signals(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _parse_signals(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_parse_signals(v) for v in value]
    return int(value)
