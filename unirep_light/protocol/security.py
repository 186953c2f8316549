"""
Security utilities: secret randomness and constant-time comparison.

Identity secrets are field elements; drawing them from anything other than
the OS CSPRNG would make epoch keys linkable.
"""

import hmac
import os
import secrets

from .config import SNARK_FIELD_SIZE


# ============================================================================
# RANDOMNESS SOURCE (Fork-Safe)
# ============================================================================


class RandomnessSource:
    """
    Cryptographically secure randomness with fork detection.

    Prevents catastrophic randomness reuse if process forks.

    Example:
        >>> rng = RandomnessSource()
        >>> secret = rng.get_random_field_element()
    """

    def __init__(self):
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def _check_fork(self) -> None:
        if os.getpid() != self._pid:
            self.__init__()

    def get_random_scalar(self, max_value: int) -> int:
        """Random integer in [0, max_value)."""
        self._check_fork()
        return self._rng.randrange(0, max_value)

    def get_random_field_element(self) -> int:
        """Random nonzero element of the SNARK scalar field."""
        return self.get_random_scalar(SNARK_FIELD_SIZE - 1) + 1


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """Compare two byte strings without leaking where they differ."""
    return hmac.compare_digest(a, b)
