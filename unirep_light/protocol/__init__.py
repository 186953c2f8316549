"""Public API for the reputation protocol replica."""
from __future__ import annotations

from .circuits import Circuit, CircuitInputs, get_circuit_spec
from .config import DEFAULT_CONFIG, ProtocolConfig, load_config
from .exceptions import (
    ConfigurationError,
    ExternalFailure,
    ProtocolInvariantViolation,
    UnirepError,
    Violation,
)
from .feature_flags import HashBackend, hash_backend_override, resolve_hash_backend, set_hash_backend
from .keys import gen_epoch_key, gen_epoch_key_nullifier, gen_reputation_nullifier
from .proof_inputs import (
    ProcessAttestationsChunk,
    ProofInputBuilder,
    ReputationProofInputs,
    StartTransition,
    UserStateTransitionProofs,
)
from .types import Attestation, EpochTreeLeaf, Identity, Reputation, UserStateLeaf
from .unirep_state import UnirepState
from .user_state import UserState, UserStateSnapshot

__all__ = [
    "Attestation",
    "Circuit",
    "CircuitInputs",
    "ConfigurationError",
    "DEFAULT_CONFIG",
    "EpochTreeLeaf",
    "ExternalFailure",
    "HashBackend",
    "Identity",
    "ProcessAttestationsChunk",
    "ProofInputBuilder",
    "ProtocolConfig",
    "ProtocolInvariantViolation",
    "Reputation",
    "ReputationProofInputs",
    "StartTransition",
    "UnirepError",
    "UnirepState",
    "UserState",
    "UserStateLeaf",
    "UserStateSnapshot",
    "UserStateTransitionProofs",
    "Violation",
    "gen_epoch_key",
    "gen_epoch_key_nullifier",
    "gen_reputation_nullifier",
    "get_circuit_spec",
    "hash_backend_override",
    "load_config",
    "resolve_hash_backend",
    "set_hash_backend",
]
