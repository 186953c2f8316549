"""
Protocol configuration for the reputation state replica.

Every value here is fixed at genesis and must match the on-chain verifier's
deployment exactly; a replica built with different depths or nonce counts
computes different roots and its proof inputs will not verify.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigurationError

# ============================================================================
# FIELD
# ============================================================================

# BN254 scalar field; every tree node, hash and circuit signal lives here
SNARK_FIELD_SIZE = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)

# ============================================================================
# TREE DEPTHS (circuit build)
# ============================================================================

GLOBAL_STATE_TREE_DEPTH = 4
USER_STATE_TREE_DEPTH = 4
EPOCH_TREE_DEPTH = 8

# ============================================================================
# EPOCH PARAMETERS
# ============================================================================

NUM_EPOCH_KEY_NONCE_PER_EPOCH = 3
NUM_ATTESTATIONS_PER_PROOF = 5
MAX_REPUTATION_BUDGET = 10
EPOCH_LENGTH = 30  # seconds

# ============================================================================
# CHAIN PARAMETERS
# ============================================================================

# Wei an attester pays per attestation; enforced by the contract only
ATTESTING_FEE = 0

# ============================================================================
# DOMAINS
# ============================================================================

EPOCH_KEY_NULLIFIER_DOMAIN = 1
REPUTATION_NULLIFIER_DOMAIN = 2

# Sealing marker folded over a finished hashchain at epoch end
SEAL_MARKER = 1

_MAX_TREE_DEPTH = 32


@dataclass(frozen=True)
class ProtocolConfig:
    """
    Genesis parameters shared with the on-chain verifier.

    Attributes:
        global_state_tree_depth: Depth of the per-epoch global state tree
        user_state_tree_depth: Depth of each identity's reputation tree
        epoch_tree_depth: Depth of the per-epoch sparse epoch tree
        num_epoch_key_nonce_per_epoch: Epoch keys (N) per identity per epoch
        num_attestations_per_proof: Chunk capacity (K) of process proofs
        max_reputation_budget: Reputation nullifiers spendable per proof
        epoch_length: Seconds between epoch transitions
        attesting_fee: Per-attestation fee in wei (chain-side only)
    """

    global_state_tree_depth: int = GLOBAL_STATE_TREE_DEPTH
    user_state_tree_depth: int = USER_STATE_TREE_DEPTH
    epoch_tree_depth: int = EPOCH_TREE_DEPTH
    num_epoch_key_nonce_per_epoch: int = NUM_EPOCH_KEY_NONCE_PER_EPOCH
    num_attestations_per_proof: int = NUM_ATTESTATIONS_PER_PROOF
    max_reputation_budget: int = MAX_REPUTATION_BUDGET
    epoch_length: int = EPOCH_LENGTH
    attesting_fee: int = ATTESTING_FEE

    @property
    def max_users(self) -> int:
        return 2**self.global_state_tree_depth - 1

    @property
    def max_attesters(self) -> int:
        return 2**self.user_state_tree_depth - 1

    def validate(self) -> "ProtocolConfig":
        """
        Check parameters are usable.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: If any parameter is out of range
        """
        for name in (
            "global_state_tree_depth",
            "user_state_tree_depth",
            "epoch_tree_depth",
        ):
            depth = getattr(self, name)
            if not isinstance(depth, int) or not 1 <= depth <= _MAX_TREE_DEPTH:
                raise ConfigurationError(
                    f"{name} must be an integer in [1, {_MAX_TREE_DEPTH}], got {depth!r}"
                )

        for name in (
            "num_epoch_key_nonce_per_epoch",
            "num_attestations_per_proof",
            "max_reputation_budget",
            "epoch_length",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

        fee = self.attesting_fee
        if isinstance(fee, bool) or not isinstance(fee, int) or fee < 0:
            raise ConfigurationError(f"attesting_fee must be a non-negative integer, got {fee!r}")

        return self

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProtocolConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        return replace(cls(), **dict(data)).validate()


DEFAULT_CONFIG = ProtocolConfig()


def load_config(path: str | Path | None = None) -> ProtocolConfig:
    """
    Load protocol configuration from a YAML file.

    The file holds a flat mapping of ``ProtocolConfig`` field names. Missing
    keys fall back to the module defaults.

    Args:
        path: YAML file path, or None for defaults

    Returns:
        Validated ProtocolConfig

    Raises:
        ConfigurationError: If the file is unreadable or invalid
    """
    if path is None:
        return DEFAULT_CONFIG.validate()

    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read configuration {str(path)!r}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    return ProtocolConfig.from_dict(raw)
