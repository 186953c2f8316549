"""Per-identity sparse tree of reputation records keyed by attester id."""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Tuple

from .merkle import MerklePath, SparseMerkleTree, compute_zeros
from .types import Reputation, UserStateLeaf, check_attester_id


def default_user_state_leaf() -> int:
    return Reputation.default().hash()


def compute_empty_user_state_root(depth: int) -> int:
    return compute_zeros(depth, default_user_state_leaf())[depth]


class UserStateTree:
    """
    Reputation-by-attester tree bounded by ``2**depth`` attester ids.

    Keeps the reputation records alongside the tree so callers can read the
    prior value of a leaf before updating it.
    """

    def __init__(self, depth: int, leaves: Iterable[UserStateLeaf] = ()) -> None:
        self.depth = depth
        self._tree = SparseMerkleTree(depth, default_user_state_leaf())
        self._records: Dict[int, Reputation] = {}
        for leaf in leaves:
            self.set_reputation(leaf.attester_id, leaf.reputation)

    @classmethod
    def from_records(cls, depth: int, records: Mapping[int, Reputation]) -> "UserStateTree":
        tree = cls(depth)
        for attester_id in sorted(records):
            tree.set_reputation(attester_id, records[attester_id])
        return tree

    def update(self, attester_id: int, leaf_hash: int) -> None:
        check_attester_id(attester_id, self.depth)
        self._tree.update(attester_id, leaf_hash)

    def set_reputation(self, attester_id: int, reputation: Reputation) -> None:
        self.update(attester_id, reputation.hash())
        self._records[attester_id] = reputation

    def get_reputation(self, attester_id: int) -> Reputation:
        check_attester_id(attester_id, self.depth)
        return self._records.get(attester_id, Reputation.default())

    def merkle_path(self, attester_id: int) -> MerklePath:
        check_attester_id(attester_id, self.depth)
        return self._tree.gen_merkle_path(attester_id)

    def root(self) -> int:
        return self._tree.root

    def leaves(self) -> Tuple[UserStateLeaf, ...]:
        return tuple(
            UserStateLeaf(attester_id=a, reputation=self._records[a])
            for a in sorted(self._records)
        )
