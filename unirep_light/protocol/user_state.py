"""
Per-identity view of the protocol.

A ``UserState`` keeps one identity's reputation leaves and the global state
leaf it last transitioned into, and turns them into proof inputs against a
shared ``UnirepState`` replica. The replica owns everything global; a user
state never mutates it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import cbor2

from .circuits import CircuitInputs
from .exceptions import ProtocolInvariantViolation, Violation
from .hashing import hash_left_right
from .keys import gen_epoch_key, gen_epoch_key_nullifier
from .proof_inputs import ProofInputBuilder, ReputationProofInputs, UserStateTransitionProofs
from .security import constant_time_compare
from .types import Attestation, Identity, Reputation, UserStateLeaf
from .unirep_state import UnirepState, sign_up_leaves
from .user_state_tree import UserStateTree

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


# ============================================================================
# SNAPSHOT
# ============================================================================


@dataclass(frozen=True)
class UserStateSnapshot:
    """
    Persisted per-identity progress.

    The identity secrets are never part of a snapshot; only the public
    commitment is stored, and restoring checks it against the identity.
    """

    identity_commitment: int
    has_signed_up: bool
    latest_transitioned_epoch: int
    latest_gst_leaf_index: int
    latest_user_state_leaves: Tuple[UserStateLeaf, ...] = field(default=())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "identity_commitment": self.identity_commitment,
            "has_signed_up": self.has_signed_up,
            "latest_transitioned_epoch": self.latest_transitioned_epoch,
            "latest_gst_leaf_index": self.latest_gst_leaf_index,
            "latest_user_state_leaves": [
                {"attester_id": leaf.attester_id, "reputation": leaf.reputation.to_dict()}
                for leaf in self.latest_user_state_leaves
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserStateSnapshot":
        version = data.get("version")
        if version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version: {version}")
        return cls(
            identity_commitment=int(data["identity_commitment"]),
            has_signed_up=bool(data["has_signed_up"]),
            latest_transitioned_epoch=int(data["latest_transitioned_epoch"]),
            latest_gst_leaf_index=int(data["latest_gst_leaf_index"]),
            latest_user_state_leaves=tuple(
                UserStateLeaf(
                    attester_id=int(item["attester_id"]),
                    reputation=Reputation.from_dict(item["reputation"]),
                )
                for item in data.get("latest_user_state_leaves", [])
            ),
        )

    def to_bytes(self) -> bytes:
        return cbor2.dumps(self.to_dict())

    @classmethod
    def from_bytes(cls, data: bytes) -> "UserStateSnapshot":
        payload = cbor2.loads(data)
        if not isinstance(payload, dict):
            raise ValueError("Snapshot payload must be a mapping")
        return cls.from_dict(payload)


def _commitment_bytes(commitment: int) -> bytes:
    return commitment.to_bytes(32, "big")


# ============================================================================
# USER STATE
# ============================================================================


class UserState:
    """
    One identity's reputation state.

    Construct with ``new_identity`` or ``restore_from_snapshot``.
    """

    def __init__(
        self,
        unirep_state: UnirepState,
        identity: Identity,
        *,
        has_signed_up: bool = False,
        latest_transitioned_epoch: int = 0,
        latest_gst_leaf_index: int = 0,
        latest_user_state_leaves: Sequence[UserStateLeaf] = (),
    ) -> None:
        self.unirep_state = unirep_state
        self.config = unirep_state.config
        self.identity = identity
        self._has_signed_up = has_signed_up
        self.latest_transitioned_epoch = latest_transitioned_epoch
        self.latest_gst_leaf_index = latest_gst_leaf_index
        self._leaves: Dict[int, Reputation] = {
            leaf.attester_id: leaf.reputation for leaf in latest_user_state_leaves
        }
        self._builder = ProofInputBuilder(self.config, unirep_state, identity)

    @classmethod
    def new_identity(
        cls, unirep_state: UnirepState, identity: Optional[Identity] = None
    ) -> "UserState":
        return cls(unirep_state, identity or Identity.random())

    @classmethod
    def restore_from_snapshot(
        cls,
        unirep_state: UnirepState,
        identity: Identity,
        snapshot: Union[UserStateSnapshot, bytes],
    ) -> "UserState":
        """
        Rebuild a user state from persisted progress.

        Raises:
            ValueError: If the snapshot belongs to a different identity
        """
        if isinstance(snapshot, (bytes, bytearray)):
            snapshot = UserStateSnapshot.from_bytes(bytes(snapshot))
        if not constant_time_compare(
            _commitment_bytes(snapshot.identity_commitment),
            _commitment_bytes(identity.commitment),
        ):
            raise ValueError("Snapshot does not belong to this identity")
        return cls(
            unirep_state,
            identity,
            has_signed_up=snapshot.has_signed_up,
            latest_transitioned_epoch=snapshot.latest_transitioned_epoch,
            latest_gst_leaf_index=snapshot.latest_gst_leaf_index,
            latest_user_state_leaves=snapshot.latest_user_state_leaves,
        )

    def snapshot(self) -> UserStateSnapshot:
        return UserStateSnapshot(
            identity_commitment=self.commitment,
            has_signed_up=self._has_signed_up,
            latest_transitioned_epoch=self.latest_transitioned_epoch,
            latest_gst_leaf_index=self.latest_gst_leaf_index,
            latest_user_state_leaves=self.latest_user_state_leaves,
        )

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    @property
    def commitment(self) -> int:
        return self.identity.commitment

    @property
    def has_signed_up(self) -> bool:
        return self._has_signed_up

    @property
    def latest_user_state_leaves(self) -> Tuple[UserStateLeaf, ...]:
        return tuple(
            UserStateLeaf(attester_id=a, reputation=self._leaves[a]) for a in sorted(self._leaves)
        )

    def _require_signed_up(self) -> None:
        if not self._has_signed_up:
            raise ProtocolInvariantViolation(
                Violation.NOT_SIGNED_UP,
                "User has not signed up yet",
                identity_commitment=self.commitment,
            )

    def get_rep_by_attester(self, attester_id: int) -> Reputation:
        return self._leaves.get(attester_id, Reputation.default())

    def get_epoch_keys(self, epoch: int) -> List[int]:
        depth = self.config.epoch_tree_depth
        return [
            gen_epoch_key(self.identity.identity_nullifier, epoch, nonce, depth)
            for nonce in range(self.config.num_epoch_key_nonce_per_epoch)
        ]

    def get_epoch_key_nullifiers(self, epoch: int) -> List[int]:
        return [
            gen_epoch_key_nullifier(self.identity.identity_nullifier, epoch, nonce)
            for nonce in range(self.config.num_epoch_key_nonce_per_epoch)
        ]

    def get_attestations(self, epoch_key: int, epoch: Optional[int] = None) -> Tuple[Attestation, ...]:
        return self.unirep_state.get_attestations(epoch_key, epoch)

    def gen_user_state_tree(self) -> UserStateTree:
        return UserStateTree(self.config.user_state_tree_depth, self.latest_user_state_leaves)

    def gst_leaf(self) -> int:
        """Global state leaf of the identity's latest user state."""
        return hash_left_right(self.commitment, self.gen_user_state_tree().root())

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------

    def sign_up(
        self, epoch: int, leaf_index: int, attester_id: int = 0, airdrop_amount: int = 0
    ) -> None:
        """
        Record the identity's own sign-up at ``leaf_index`` of ``epoch``.

        Raises:
            ProtocolInvariantViolation: If the identity already signed up
        """
        if self._has_signed_up:
            raise ProtocolInvariantViolation(
                Violation.DOUBLE_SIGN_UP,
                "User has already signed up",
                identity_commitment=self.commitment,
            )
        self._has_signed_up = True
        self.latest_transitioned_epoch = epoch
        self.latest_gst_leaf_index = leaf_index
        self._leaves = {
            leaf.attester_id: leaf.reputation
            for leaf in sign_up_leaves(attester_id, airdrop_amount)
        }
        logger.debug("User signed up in epoch %d at leaf %d", epoch, leaf_index)

    def _find_gst_leaf(self, epoch: int, new_leaves: Sequence[UserStateLeaf]) -> int:
        tree = UserStateTree(self.config.user_state_tree_depth, new_leaves)
        leaf = hash_left_right(self.commitment, tree.root())
        leaves = self.unirep_state.get_gst_leaves(epoch)
        if leaf not in leaves:
            raise ProtocolInvariantViolation(
                Violation.EPOCH_MISMATCH,
                "Transition leaf not recorded in the global state tree",
                epoch=epoch,
                gst_leaf=leaf,
            )
        return leaves.index(leaf)

    def transition(
        self, new_leaves: Sequence[UserStateLeaf], leaf_index: Optional[int] = None
    ) -> None:
        """
        Move the user into the current epoch with ``new_leaves``.

        Args:
            new_leaves: User state leaves produced by the transition
            leaf_index: Index of the new global state leaf; when omitted it is
                looked up among the current epoch's recorded leaves

        Raises:
            ProtocolInvariantViolation: If the user cannot transition into
                the current epoch. When ``leaf_index`` is omitted, also if
                the new leaf is not in the current global state tree.
        """
        self._require_signed_up()
        current = self.unirep_state.current_epoch
        if self.latest_transitioned_epoch >= current:
            raise ProtocolInvariantViolation(
                Violation.STALE_TRANSITION,
                "Can not transition to same epoch",
                from_epoch=self.latest_transitioned_epoch,
                current_epoch=current,
            )
        if leaf_index is None:
            leaf_index = self._find_gst_leaf(current, new_leaves)

        self.latest_transitioned_epoch = current
        self.latest_gst_leaf_index = leaf_index
        self._leaves = {leaf.attester_id: leaf.reputation for leaf in new_leaves}
        logger.info("User transitioned to epoch %d at leaf %d", current, leaf_index)

    def set_graffiti_pre_image(self, attester_id: int, pre_image: int) -> None:
        self._leaves[attester_id] = self.get_rep_by_attester(attester_id).with_graffiti_pre_image(
            pre_image
        )

    # ------------------------------------------------------------------
    # proof inputs
    # ------------------------------------------------------------------

    def gen_verify_epoch_key_circuit_inputs(self, epoch_key_nonce: int) -> CircuitInputs:
        self._require_signed_up()
        return self._builder.verify_epoch_key(
            self.latest_transitioned_epoch,
            self.latest_gst_leaf_index,
            self.latest_user_state_leaves,
            epoch_key_nonce,
        )

    def gen_user_state_transition_circuit_inputs(self) -> UserStateTransitionProofs:
        self._require_signed_up()
        from_epoch = self.latest_transitioned_epoch
        if from_epoch >= self.unirep_state.current_epoch:
            raise ProtocolInvariantViolation(
                Violation.STALE_TRANSITION,
                "Epoch has not ended yet",
                from_epoch=from_epoch,
                current_epoch=self.unirep_state.current_epoch,
            )
        return self._builder.user_state_transition(
            from_epoch, self.latest_gst_leaf_index, self.latest_user_state_leaves
        )

    def gen_new_user_state_after_transition(self) -> Tuple[int, Tuple[UserStateLeaf, ...]]:
        """New global state leaf and user state leaves, without proof inputs."""
        proofs = self.gen_user_state_transition_circuit_inputs()
        return proofs.new_gst_leaf, proofs.new_user_state_leaves

    def gen_prove_reputation_circuit_inputs(
        self,
        attester_id: int,
        rep_nullifiers_amount: int,
        epoch_key_nonce: int,
        min_rep: int = 0,
        prove_graffiti: int = 0,
        graffiti_pre_image: Optional[int] = None,
        nonce_starter: int = 0,
    ) -> ReputationProofInputs:
        self._require_signed_up()
        return self._builder.prove_reputation(
            self.latest_transitioned_epoch,
            self.latest_gst_leaf_index,
            self.latest_user_state_leaves,
            attester_id,
            rep_nullifiers_amount,
            nonce_starter,
            epoch_key_nonce,
            min_rep=min_rep,
            prove_graffiti=prove_graffiti,
            graffiti_pre_image=graffiti_pre_image,
        )

    def gen_user_sign_up_circuit_inputs(
        self, attester_id: int, epoch_key_nonce: int = 0
    ) -> CircuitInputs:
        self._require_signed_up()
        return self._builder.prove_user_sign_up(
            self.latest_transitioned_epoch,
            self.latest_gst_leaf_index,
            self.latest_user_state_leaves,
            attester_id,
            epoch_key_nonce,
        )
