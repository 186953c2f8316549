"""
Common types for the reputation protocol.

This module provides:
1. Attestation - a signed reputation delta issued to an epoch key
2. Reputation - an identity's accumulated record for one attester
3. EpochTreeLeaf / UserStateLeaf - leaf records for the two sparse trees
4. Identity - an identity's secret shares and public commitment
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from .config import SNARK_FIELD_SIZE
from .exceptions import ProtocolInvariantViolation, Violation
from .hashing import hash5, hash_one
from .security import RandomnessSource

_RNG = RandomnessSource()


# ============================================================================
# ATTESTATION
# ============================================================================


@dataclass(frozen=True)
class Attestation:
    """
    Immutable reputation delta issued by one attester.

    Attributes:
        attester_id: Attester identifier (user state tree key)
        pos_rep: Positive reputation added
        neg_rep: Negative reputation added
        graffiti: Graffiti hash, 0 to leave the current graffiti untouched
        sign_up: 1 if the attester signs the user up, else 0
    """

    attester_id: int
    pos_rep: int = 0
    neg_rep: int = 0
    graffiti: int = 0
    sign_up: int = 0

    def __post_init__(self) -> None:
        for name in ("attester_id", "pos_rep", "neg_rep", "graffiti", "sign_up"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"Attestation.{name} must be int")
            if value < 0:
                raise ValueError(f"Attestation.{name} must be non-negative")
            if value >= SNARK_FIELD_SIZE:
                raise ValueError(f"Attestation.{name} must be below the SNARK field size")
        if self.sign_up not in (0, 1):
            raise ValueError("Attestation.sign_up must be 0 or 1")

    def hash(self) -> int:
        return hash5(
            [self.attester_id, self.pos_rep, self.neg_rep, self.graffiti, self.sign_up]
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "attester_id": self.attester_id,
            "pos_rep": self.pos_rep,
            "neg_rep": self.neg_rep,
            "graffiti": self.graffiti,
            "sign_up": self.sign_up,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attestation":
        return cls(
            attester_id=int(data["attester_id"]),
            pos_rep=int(data.get("pos_rep", 0)),
            neg_rep=int(data.get("neg_rep", 0)),
            graffiti=int(data.get("graffiti", 0)),
            sign_up=int(data.get("sign_up", 0)),
        )


# ============================================================================
# REPUTATION
# ============================================================================


@dataclass(frozen=True)
class Reputation:
    """
    One identity's reputation record from one attester.

    Records are immutable; ``update`` returns the merged record. Rep counts
    only grow, graffiti changes only on a nonzero incoming value, and the
    sign-up flag only goes from 0 to 1.
    """

    pos_rep: int = 0
    neg_rep: int = 0
    graffiti: int = 0
    sign_up: int = 0
    graffiti_pre_image: int = 0

    @classmethod
    def default(cls) -> "Reputation":
        return cls()

    def update(
        self, pos_rep: int, neg_rep: int, graffiti: int, sign_up: int
    ) -> "Reputation":
        new_graffiti = graffiti if graffiti != 0 else self.graffiti
        return Reputation(
            pos_rep=self.pos_rep + pos_rep,
            neg_rep=self.neg_rep + neg_rep,
            graffiti=new_graffiti,
            sign_up=1 if (self.sign_up or sign_up) else 0,
            graffiti_pre_image=(
                self.graffiti_pre_image if new_graffiti == self.graffiti else 0
            ),
        )

    def apply(self, attestation: Attestation) -> "Reputation":
        return self.update(
            attestation.pos_rep,
            attestation.neg_rep,
            attestation.graffiti,
            attestation.sign_up,
        )

    def with_graffiti_pre_image(self, pre_image: int) -> "Reputation":
        if hash_one(pre_image) != self.graffiti:
            raise ValueError("Graffiti pre-image does not match")
        return Reputation(
            pos_rep=self.pos_rep,
            neg_rep=self.neg_rep,
            graffiti=self.graffiti,
            sign_up=self.sign_up,
            graffiti_pre_image=pre_image,
        )

    def hash(self) -> int:
        return hash5([self.pos_rep, self.neg_rep, self.graffiti, self.sign_up, 0])

    def to_dict(self) -> Dict[str, int]:
        return {
            "pos_rep": self.pos_rep,
            "neg_rep": self.neg_rep,
            "graffiti": self.graffiti,
            "sign_up": self.sign_up,
            "graffiti_pre_image": self.graffiti_pre_image,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Reputation":
        return cls(
            pos_rep=int(data.get("pos_rep", 0)),
            neg_rep=int(data.get("neg_rep", 0)),
            graffiti=int(data.get("graffiti", 0)),
            sign_up=int(data.get("sign_up", 0)),
            graffiti_pre_image=int(data.get("graffiti_pre_image", 0)),
        )


# ============================================================================
# TREE LEAVES
# ============================================================================


@dataclass(frozen=True)
class EpochTreeLeaf:
    epoch_key: int
    hashchain_result: int


@dataclass(frozen=True)
class UserStateLeaf:
    attester_id: int
    reputation: Reputation


# ============================================================================
# IDENTITY
# ============================================================================


@dataclass(frozen=True)
class Identity:
    """
    An identity's secret shares and public key.

    Key generation itself is external; ``Identity.random`` draws every
    component as a uniform field element, which is enough for tests and
    replays that never verify signatures.
    """

    identity_nullifier: int
    identity_trapdoor: int
    identity_pk: Tuple[int, int] = field(default=(0, 0))

    @classmethod
    def random(cls) -> "Identity":
        return cls(
            identity_nullifier=_RNG.get_random_field_element(),
            identity_trapdoor=_RNG.get_random_field_element(),
            identity_pk=(
                _RNG.get_random_field_element(),
                _RNG.get_random_field_element(),
            ),
        )

    @property
    def commitment(self) -> int:
        return hash5(
            [
                self.identity_pk[0],
                self.identity_pk[1],
                self.identity_nullifier,
                self.identity_trapdoor,
                0,
            ]
        )


def check_attester_id(attester_id: int, user_state_tree_depth: int) -> int:
    """Fail fatally when an attester id falls outside the user state tree."""
    if not 0 <= attester_id < 2**user_state_tree_depth:
        raise ProtocolInvariantViolation(
            Violation.OUT_OF_DOMAIN,
            "Attester id exceeds total number of attesters",
            attester_id=attester_id,
            limit=2**user_state_tree_depth,
        )
    return attester_id


__all__ = [
    "Attestation",
    "Reputation",
    "EpochTreeLeaf",
    "UserStateLeaf",
    "Identity",
    "check_attester_id",
    "SNARK_FIELD_SIZE",
]
