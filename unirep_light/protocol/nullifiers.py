"""Global at-most-once set of epoch-key and reputation nullifiers."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from .accumulators import EpochCounter
from .exceptions import ProtocolInvariantViolation, Violation
from .hashing import require_field

logger = logging.getLogger(__name__)


class NullifierSet:
    """
    Nullifiers consumed over the protocol's whole lifetime.

    Zero is reserved: it is always reported present and never recorded, so
    padding slots in a proof can carry it freely.
    """

    def __init__(self, counter: EpochCounter) -> None:
        self._counter = counter
        self._seen: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def exists(self, nullifier: int) -> bool:
        if nullifier == 0:
            return True
        return nullifier in self._seen

    def recorded_in(self, nullifier: int) -> int | None:
        """Epoch in which a nullifier was consumed, if any."""
        return self._seen.get(nullifier)

    def check_fresh(self, nullifiers: Iterable[int]) -> List[int]:
        """
        Validate a batch without recording it.

        Returns:
            The nonzero nullifiers, in order

        Raises:
            ProtocolInvariantViolation: If a value is not a field element or
                was already recorded, including repeats within the batch
        """
        fresh: List[int] = []
        batch = set()
        for nullifier in nullifiers:
            require_field(nullifier, "nullifier")
            if nullifier == 0:
                continue
            if nullifier in self._seen or nullifier in batch:
                raise ProtocolInvariantViolation(
                    Violation.DUPLICATE_NULLIFIER,
                    "Nullifier seen before",
                    nullifier=nullifier,
                    first_seen_epoch=self._seen.get(nullifier),
                )
            batch.add(nullifier)
            fresh.append(nullifier)
        return fresh

    def record(self, epoch: int, nullifiers: Iterable[int]) -> int:
        """
        Consume a batch of nullifiers in the current epoch.

        Returns:
            Number of nonzero nullifiers recorded
        """
        self._counter.require_current(epoch)
        fresh = self.check_fresh(nullifiers)
        for nullifier in fresh:
            self._seen[nullifier] = epoch
        logger.debug("Recorded %d nullifiers in epoch %d", len(fresh), epoch)
        return len(fresh)
