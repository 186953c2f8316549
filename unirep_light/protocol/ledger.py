"""
Attestation ledger: per-epoch-key attestation lists and sealed hashchains.

Appends are O(1) and touch no tree. Folding happens once, when the epoch is
sealed; the resulting ``{epoch key -> sealed hashchain}`` map is what the
epoch tree is built from.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from .accumulators import EpochArena, EpochCounter, sealed_empty_leaf
from .config import SEAL_MARKER, ProtocolConfig
from .exceptions import ProtocolInvariantViolation, Violation
from .hashing import hash_left_right, require_field
from .types import Attestation, EpochTreeLeaf

logger = logging.getLogger(__name__)


def fold_hashchain(attestations: Iterable[Attestation], starter: int = 0) -> int:
    """Fold attestation hashes in arrival order: ``chain = H(att, chain)``."""
    chain = starter
    for attestation in attestations:
        chain = hash_left_right(attestation.hash(), chain)
    return chain


def seal_hashchain(chain: int) -> int:
    return hash_left_right(SEAL_MARKER, chain)


class AttestationLedger:
    def __init__(self, config: ProtocolConfig, counter: EpochCounter) -> None:
        self.epoch_tree_depth = config.epoch_tree_depth
        self._counter = counter
        self._log: EpochArena[Tuple[int, Attestation]] = EpochArena()
        self._by_key: Dict[Tuple[int, int], List[Attestation]] = {}
        self._sealed: Dict[int, Dict[int, int]] = {}

    def _check_epoch_key(self, epoch_key: int) -> None:
        if not 0 <= epoch_key < 2**self.epoch_tree_depth:
            raise ProtocolInvariantViolation(
                Violation.OUT_OF_DOMAIN,
                "Epoch key greater than max leaf value (2**epochTreeDepth)",
                epoch_key=epoch_key,
            )

    def append(self, epoch: int, epoch_key: int, attestation: Attestation) -> int:
        """
        Record an attestation for an epoch key of the current epoch.

        Returns:
            Position of the attestation in the key's list
        """
        self._counter.require_current(epoch)
        self._check_epoch_key(epoch_key)
        self._log.append(epoch, (epoch_key, attestation))
        attestations = self._by_key.setdefault((epoch, epoch_key), [])
        attestations.append(attestation)
        return len(attestations) - 1

    def get_attestations(self, epoch: int, epoch_key: int) -> Tuple[Attestation, ...]:
        return tuple(self._by_key.get((epoch, epoch_key), ()))

    def epoch_keys(self, epoch: int) -> List[int]:
        """Epoch keys that received attestations, in first-seen order."""
        seen: Dict[int, None] = {}
        for epoch_key, _ in self._log.get(epoch):
            seen.setdefault(epoch_key, None)
        return list(seen)

    def compute_sealed_leaves(self, epoch: int) -> List[EpochTreeLeaf]:
        return [
            EpochTreeLeaf(
                epoch_key=epoch_key,
                hashchain_result=seal_hashchain(
                    fold_hashchain(self.get_attestations(epoch, epoch_key))
                ),
            )
            for epoch_key in self.epoch_keys(epoch)
        ]

    def seal(self, epoch: int, leaves: Sequence[EpochTreeLeaf]) -> None:
        """
        Record the sealed hashchains of ``epoch``.

        Every key is validated before anything is recorded. A key sealed twice
        in the same call keeps its last value.
        """
        self._counter.require_current(epoch)
        if epoch in self._sealed:
            raise ProtocolInvariantViolation(
                Violation.EPOCH_MISMATCH, "Epoch already sealed", epoch=epoch
            )
        for leaf in leaves:
            self._check_epoch_key(leaf.epoch_key)
            require_field(leaf.hashchain_result, "hashchain_result")

        sealed: Dict[int, int] = {}
        for leaf in leaves:
            if leaf.epoch_key in sealed:
                logger.warning(
                    "Epoch key %d sealed twice in epoch %d; keeping the later hashchain",
                    leaf.epoch_key,
                    epoch,
                )
            sealed[leaf.epoch_key] = leaf.hashchain_result
        self._sealed[epoch] = sealed
        logger.debug("Sealed epoch %d with %d epoch keys", epoch, len(sealed))

    def is_sealed(self, epoch: int) -> bool:
        return epoch in self._sealed

    def sealed_leaves(self, epoch: int) -> Mapping[int, int]:
        return dict(self._sealed.get(epoch, {}))

    def get_hashchain(self, epoch: int, epoch_key: int) -> int:
        return self._sealed.get(epoch, {}).get(epoch_key, sealed_empty_leaf())
