"""
One-way derivations from an identity's secret nullifier.

Epoch keys are reduced into the epoch tree's key domain, so two identities can
collide on an epoch key; the circuits accept that and so does the replica.
"""

from __future__ import annotations

from .config import EPOCH_KEY_NULLIFIER_DOMAIN, REPUTATION_NULLIFIER_DOMAIN
from .hashing import hash5


def gen_epoch_key(
    identity_nullifier: int, epoch: int, nonce: int, epoch_tree_depth: int
) -> int:
    """Pseudonym for one (identity, epoch, nonce) triple."""
    epoch_key = hash5([identity_nullifier, epoch, nonce, 0, 0])
    return epoch_key % (2**epoch_tree_depth)


def gen_epoch_key_nullifier(identity_nullifier: int, epoch: int, nonce: int) -> int:
    return hash5([EPOCH_KEY_NULLIFIER_DOMAIN, identity_nullifier, epoch, nonce, 0])


def gen_reputation_nullifier(identity_nullifier: int, epoch: int, rep_nonce: int) -> int:
    return hash5([REPUTATION_NULLIFIER_DOMAIN, identity_nullifier, epoch, rep_nonce, 0])


def blind(identity_nullifier: int, value: int, epoch: int, nonce: int) -> int:
    """
    Commit to a user state root or hashchain value.

    The same formula blinds both: the circuits tell them apart by position,
    not by domain.
    """
    return hash5([identity_nullifier, value, epoch, nonce, 0])
