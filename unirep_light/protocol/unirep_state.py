"""
Protocol-scope coordinator.

``UnirepState`` owns the accumulators, the attestation ledger and the
nullifier set, and applies mutations to them in the order the chain
finalized them. It is single-writer: callers must not invoke its mutating
methods concurrently. Its query methods are pure reads and safe to call from
worker threads once the epoch they read is frozen.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Tuple

from .accumulators import (
    EpochAccumulator,
    EpochCounter,
    GlobalStateAccumulator,
    sealed_empty_leaf,
)
from .config import DEFAULT_CONFIG, ProtocolConfig
from .exceptions import ProtocolInvariantViolation, Violation
from .hashing import hash_left_right, require_field
from .ledger import AttestationLedger
from .merkle import IncrementalMerkleTree, SparseMerkleTree
from .nullifiers import NullifierSet
from .types import Attestation, EpochTreeLeaf, Reputation, UserStateLeaf, check_attester_id
from .user_state_tree import UserStateTree

logger = logging.getLogger(__name__)


def sign_up_leaves(attester_id: int = 0, airdrop_amount: int = 0) -> Tuple[UserStateLeaf, ...]:
    """
    Initial reputation leaves of a new identity.

    An attester that signs a user up with a nonzero airdrop seeds one leaf
    with the airdropped positive reputation and the sign-up flag set.
    """
    if attester_id and airdrop_amount:
        return (
            UserStateLeaf(
                attester_id=attester_id,
                reputation=Reputation.default().update(airdrop_amount, 0, 0, 1),
            ),
        )
    return ()


class UnirepState:
    """
    Replica of the protocol's global state.

    Example:
        >>> state = UnirepState()
        >>> index = state.sign_up(1, identity.commitment)
        >>> state.add_attestation(epoch_key, Attestation(attester_id=1, pos_rep=3))
        >>> state.epoch_transition(1)
    """

    def __init__(self, config: Optional[ProtocolConfig] = None) -> None:
        self.config = (config or DEFAULT_CONFIG).validate()
        self._counter = EpochCounter(1)
        self.ledger = AttestationLedger(self.config, self._counter)
        self.global_state = GlobalStateAccumulator(self.config, self._counter)
        self.epoch_trees = EpochAccumulator(self.config, self.ledger)
        self.nullifiers = NullifierSet(self._counter)
        self._signed_up: Dict[int, Tuple[int, int]] = {}

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    @property
    def current_epoch(self) -> int:
        return self._counter.current

    @property
    def default_gst_leaf(self) -> int:
        return self.global_state.default_leaf

    def get_num_gst_leaves(self, epoch: int) -> int:
        return self.global_state.num_leaves(epoch)

    def get_gst_leaves(self, epoch: int) -> Tuple[int, ...]:
        return self.global_state.leaves(epoch)

    def get_attestations(
        self, epoch_key: int, epoch: Optional[int] = None
    ) -> Tuple[Attestation, ...]:
        """Attestations to ``epoch_key`` in ``epoch`` (default: current)."""
        if epoch is None:
            epoch = self.current_epoch
        return self.ledger.get_attestations(epoch, epoch_key)

    def get_hashchain(self, epoch_key: int, epoch: Optional[int] = None) -> int:
        """
        Sealed hashchain of ``epoch_key`` in ``epoch`` (default: the most
        recently sealed epoch); the sealed-empty value if none was recorded.
        """
        if epoch is None:
            epoch = self.current_epoch - 1
        if epoch < 1:
            return sealed_empty_leaf()
        return self.ledger.get_hashchain(epoch, epoch_key)

    def nullifier_exists(self, nullifier: int) -> bool:
        if nullifier == 0:
            logger.debug("Nullifier 0 exists because it is reserved")
        return self.nullifiers.exists(nullifier)

    def is_signed_up(self, identity_commitment: int) -> bool:
        return identity_commitment in self._signed_up

    def gen_gs_tree(self, epoch: int) -> IncrementalMerkleTree:
        return self.global_state.tree(epoch)

    def gen_epoch_tree(self, epoch: int) -> SparseMerkleTree:
        return self.epoch_trees.tree(epoch)

    def gst_root(self, epoch: int) -> int:
        return self.global_state.root(epoch)

    def epoch_tree_root(self, epoch: int) -> int:
        return self.epoch_trees.root(epoch)

    # ------------------------------------------------------------------
    # mutations (event order only)
    # ------------------------------------------------------------------

    def sign_up(
        self,
        epoch: int,
        identity_commitment: int,
        attester_id: int = 0,
        airdrop_amount: int = 0,
    ) -> int:
        """
        Insert a new identity's global state leaf.

        Returns:
            Leaf index in the current epoch's global state tree
        """
        self._counter.require_current(epoch)
        require_field(identity_commitment, "identity_commitment")
        require_field(airdrop_amount, "airdrop_amount")
        if identity_commitment in self._signed_up:
            first_epoch, first_index = self._signed_up[identity_commitment]
            raise ProtocolInvariantViolation(
                Violation.DOUBLE_SIGN_UP,
                "Identity commitment has already signed up",
                identity_commitment=identity_commitment,
                epoch=first_epoch,
                leaf_index=first_index,
            )
        if attester_id:
            check_attester_id(attester_id, self.config.user_state_tree_depth)

        user_tree = UserStateTree(
            self.config.user_state_tree_depth, sign_up_leaves(attester_id, airdrop_amount)
        )
        leaf = hash_left_right(identity_commitment, user_tree.root())
        index = self.global_state.insert(epoch, leaf)
        self._signed_up[identity_commitment] = (epoch, index)
        logger.debug("Sign up in epoch %d at leaf %d", epoch, index)
        return index

    def add_attestation(
        self, epoch_key: int, attestation: Attestation, epoch: Optional[int] = None
    ) -> int:
        if epoch is None:
            epoch = self.current_epoch
        check_attester_id(attestation.attester_id, self.config.user_state_tree_depth)
        return self.ledger.append(epoch, epoch_key, attestation)

    def epoch_transition(
        self, epoch: int, epoch_tree_leaves: Optional[Sequence[EpochTreeLeaf]] = None
    ) -> int:
        """
        Seal ``epoch`` and open the next one.

        Args:
            epoch: Epoch being ended; must be the current epoch
            epoch_tree_leaves: Sealed hashchains as reported by the chain, or
                None to fold them from the recorded attestations

        Returns:
            The new current epoch
        """
        self._counter.require_current(epoch)
        if epoch_tree_leaves is None:
            epoch_tree_leaves = self.ledger.compute_sealed_leaves(epoch)
        self.ledger.seal(epoch, epoch_tree_leaves)
        new_epoch = self._counter.advance()
        self.global_state.open_epoch(new_epoch)
        logger.info(
            "Epoch %d ended with %d sealed epoch keys; current epoch is %d",
            epoch,
            len(epoch_tree_leaves),
            new_epoch,
        )
        return new_epoch

    def user_state_transition(
        self, epoch: int, gst_leaf: int, nullifiers: Sequence[int]
    ) -> Optional[int]:
        """
        Record a finished transition: insert the new leaf, consume nullifiers.

        A zero leaf is not inserted. Either everything is applied or nothing.

        Returns:
            Index of the inserted leaf, or None for a zero leaf
        """
        self._counter.require_current(epoch)
        require_field(gst_leaf, "gst_leaf")
        self.nullifiers.check_fresh(nullifiers)
        index = None
        if gst_leaf > 0:
            index = self.global_state.insert(epoch, gst_leaf)
        self.nullifiers.record(epoch, nullifiers)
        return index

    def spend_reputation(self, epoch: int, nullifiers: Sequence[int]) -> int:
        return self.nullifiers.record(epoch, nullifiers)
