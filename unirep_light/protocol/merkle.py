"""
Fixed-depth binary Merkle trees over field elements.

Two shapes share one node store:
- IncrementalMerkleTree: leaves appended left to right (global state tree)
- SparseMerkleTree: leaves addressed by key (epoch tree, user state tree)

Only non-default nodes are stored; an untouched subtree at level ``i`` hashes
to ``zeros[i]``. Parent nodes are ``hash_left_right(left, right)`` with a
fixed left||right ordering.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .exceptions import ProtocolInvariantViolation, Violation
from .hashing import hash_left_right


@dataclass(frozen=True)
class MerklePath:
    """
    Authentication path for one leaf.

    Attributes:
        path_elements: Sibling hash per level, leaf level first
        indices: Position bit per level; 0 if the node is a left child
    """

    path_elements: Tuple[int, ...]
    indices: Tuple[int, ...]


def compute_zeros(depth: int, zero_value: int) -> List[int]:
    """Default node value per level, leaf level first, root last."""
    zeros = [zero_value]
    for _ in range(depth):
        zeros.append(hash_left_right(zeros[-1], zeros[-1]))
    return zeros


def verify_path(leaf: int, path: MerklePath, root: int) -> bool:
    """
    Verify a Merkle authentication path.

    Example:
        if verify_path(leaf, tree.gen_merkle_path(0), tree.root):
            print("Leaf is in tree")
    """
    current = leaf
    for sibling, index in zip(path.path_elements, path.indices):
        if index:
            current = hash_left_right(sibling, current)
        else:
            current = hash_left_right(current, sibling)
    return current == root


class _BinaryMerkleTree:
    def __init__(self, depth: int, zero_value: int) -> None:
        if depth < 1:
            raise ValueError("Tree depth must be >= 1")
        self.depth = depth
        self.zero_value = zero_value
        self.zeros = compute_zeros(depth, zero_value)
        self._levels: List[Dict[int, int]] = [{} for _ in range(depth + 1)]

    @property
    def capacity(self) -> int:
        return 2**self.depth

    @property
    def root(self) -> int:
        return self._levels[self.depth].get(0, self.zeros[self.depth])

    def _node(self, level: int, index: int) -> int:
        return self._levels[level].get(index, self.zeros[level])

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.capacity:
            raise ProtocolInvariantViolation(
                Violation.OUT_OF_DOMAIN,
                "Leaf index outside tree domain",
                index=index,
                capacity=self.capacity,
            )

    def _set_leaf(self, index: int, value: int) -> None:
        self._check_index(index)
        self._levels[0][index] = value
        for level in range(self.depth):
            parent = index >> 1
            left = self._node(level, parent << 1)
            right = self._node(level, (parent << 1) | 1)
            self._levels[level + 1][parent] = hash_left_right(left, right)
            index = parent

    def get_leaf(self, index: int) -> int:
        self._check_index(index)
        return self._node(0, index)

    def gen_merkle_path(self, index: int) -> MerklePath:
        self._check_index(index)
        elements = []
        indices = []
        for level in range(self.depth):
            elements.append(self._node(level, index ^ 1))
            indices.append(index & 1)
            index >>= 1
        return MerklePath(path_elements=tuple(elements), indices=tuple(indices))


class IncrementalMerkleTree(_BinaryMerkleTree):
    """Append-only binary tree; leaf ``i`` is the ``i``-th insertion."""

    def __init__(
        self, depth: int, zero_value: int, leaves: Iterable[int] = ()
    ) -> None:
        super().__init__(depth, zero_value)
        self.next_index = 0
        for leaf in leaves:
            self.insert(leaf)

    def insert(self, leaf: int) -> int:
        """
        Append a leaf.

        Returns:
            Index of the inserted leaf

        Raises:
            ProtocolInvariantViolation: If the tree is full
        """
        index = self.next_index
        if index >= self.capacity:
            raise ProtocolInvariantViolation(
                Violation.OUT_OF_DOMAIN,
                "Merkle tree is full",
                capacity=self.capacity,
            )
        self._set_leaf(index, leaf)
        self.next_index += 1
        return index


class SparseMerkleTree(_BinaryMerkleTree):
    """Random-access binary tree keyed by integers in ``[0, 2**depth)``."""

    def __init__(
        self, depth: int, default_leaf: int, leaves: Iterable[Tuple[int, int]] = ()
    ) -> None:
        super().__init__(depth, default_leaf)
        for key, value in leaves:
            self.update(key, value)

    def update(self, key: int, value: int) -> None:
        self._set_leaf(key, value)

    def get_merkle_proof(self, key: int) -> Tuple[int, ...]:
        """Sibling list only; the circuits derive position bits from the key."""
        return self.gen_merkle_path(key).path_elements
