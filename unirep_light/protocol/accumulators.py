"""
Epoch-indexed accumulators: the global state tree and the epoch tree.

Both trees are rebuilt on demand from the data recorded for an epoch rather
than mutated in place. Once an epoch has transitioned its inputs never change,
so rebuilt trees for past epochs are memoised; the current epoch's global
state tree is always rebuilt.
"""

from __future__ import annotations

import threading
from typing import Dict, Generic, List, Tuple, TypeVar

from .config import SEAL_MARKER, ProtocolConfig
from .exceptions import ProtocolInvariantViolation, Violation
from .hashing import hash_left_right
from .merkle import IncrementalMerkleTree, MerklePath, SparseMerkleTree
from .user_state_tree import compute_empty_user_state_root

T = TypeVar("T")


def sealed_empty_leaf() -> int:
    """
    Epoch tree default leaf: the seal of an empty hashchain.

    An epoch key that received nothing seals to exactly this value, which is
    what lets a user prove a zero-attestation nonce against the epoch tree.
    """
    return hash_left_right(SEAL_MARKER, 0)


class EpochCounter:
    """The single current-epoch value every mutating component checks."""

    def __init__(self, current: int = 1) -> None:
        self.current = current

    def require_current(self, epoch: int) -> None:
        if epoch != self.current:
            raise ProtocolInvariantViolation(
                Violation.EPOCH_MISMATCH,
                "Epoch must be the same as current epoch",
                epoch=epoch,
                current_epoch=self.current,
            )

    def advance(self) -> int:
        self.current += 1
        return self.current


class EpochArena(Generic[T]):
    """Append-only log per epoch, indexed by epoch id."""

    def __init__(self) -> None:
        self._logs: Dict[int, List[T]] = {}

    def open(self, epoch: int) -> None:
        self._logs.setdefault(epoch, [])

    def append(self, epoch: int, item: T) -> int:
        log = self._logs.setdefault(epoch, [])
        log.append(item)
        return len(log) - 1

    def get(self, epoch: int) -> Tuple[T, ...]:
        return tuple(self._logs.get(epoch, ()))

    def size(self, epoch: int) -> int:
        return len(self._logs.get(epoch, ()))


class GlobalStateAccumulator:
    """Per-epoch incremental tree of ``hash(identity commitment, user state root)``."""

    def __init__(self, config: ProtocolConfig, counter: EpochCounter) -> None:
        self.depth = config.global_state_tree_depth
        self._counter = counter
        self.default_leaf = hash_left_right(
            0, compute_empty_user_state_root(config.user_state_tree_depth)
        )
        self._leaves: EpochArena[int] = EpochArena()
        self._leaves.open(counter.current)
        self._frozen: Dict[int, IncrementalMerkleTree] = {}
        self._lock = threading.Lock()

    def open_epoch(self, epoch: int) -> None:
        self._leaves.open(epoch)

    def insert(self, epoch: int, leaf: int) -> int:
        """
        Append a leaf to the current epoch's tree.

        Returns:
            Leaf index within the epoch

        Raises:
            ProtocolInvariantViolation: On epoch mismatch or a full tree
        """
        self._counter.require_current(epoch)
        if self._leaves.size(epoch) >= 2**self.depth:
            raise ProtocolInvariantViolation(
                Violation.OUT_OF_DOMAIN,
                "Global state tree is full",
                epoch=epoch,
                capacity=2**self.depth,
            )
        return self._leaves.append(epoch, leaf)

    def leaves(self, epoch: int) -> Tuple[int, ...]:
        return self._leaves.get(epoch)

    def num_leaves(self, epoch: int) -> int:
        if epoch > self._counter.current:
            return 0
        return self._leaves.size(epoch)

    def tree(self, epoch: int) -> IncrementalMerkleTree:
        """Rebuild the tree of ``epoch`` from its ordered leaf list."""
        if epoch < self._counter.current:
            with self._lock:
                cached = self._frozen.get(epoch)
            if cached is not None:
                return cached
            built = IncrementalMerkleTree(self.depth, self.default_leaf, self.leaves(epoch))
            with self._lock:
                return self._frozen.setdefault(epoch, built)
        return IncrementalMerkleTree(self.depth, self.default_leaf, self.leaves(epoch))

    def root(self, epoch: int) -> int:
        return self.tree(epoch).root

    def merkle_path(self, epoch: int, index: int) -> MerklePath:
        return self.tree(epoch).gen_merkle_path(index)


class EpochAccumulator:
    """
    Per-epoch sparse tree of sealed hashchains keyed by epoch key.

    Reads the sealed leaves recorded by the attestation ledger; an epoch that
    has not been sealed yields the all-default tree.
    """

    def __init__(self, config: ProtocolConfig, ledger) -> None:
        self.depth = config.epoch_tree_depth
        self._ledger = ledger
        self._frozen: Dict[int, SparseMerkleTree] = {}
        self._lock = threading.Lock()

    def tree(self, epoch: int) -> SparseMerkleTree:
        with self._lock:
            cached = self._frozen.get(epoch)
        if cached is not None:
            return cached

        built = SparseMerkleTree(
            self.depth, sealed_empty_leaf(), self._ledger.sealed_leaves(epoch).items()
        )
        if not self._ledger.is_sealed(epoch):
            return built
        with self._lock:
            return self._frozen.setdefault(epoch, built)

    def root(self, epoch: int) -> int:
        return self.tree(epoch).root

    def merkle_proof(self, epoch: int, epoch_key: int) -> Tuple[int, ...]:
        return self.tree(epoch).get_merkle_proof(epoch_key)
