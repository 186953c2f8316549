"""
Custom exceptions for the reputation state replica.

Two classes of failure exist here. Protocol invariant violations are fatal:
they mean the caller is broken or the replica is out of sync with the chain,
and they are never degraded into defaults. Missing data is not an error at
all; queries for never-observed epochs or epoch keys return defaults.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class UnirepError(Exception):
    """Base exception for replica errors."""

    pass


class Violation(Enum):
    """Which protocol invariant a fatal error broke."""

    EPOCH_MISMATCH = "epoch_mismatch"
    DOUBLE_SIGN_UP = "double_sign_up"
    NOT_SIGNED_UP = "not_signed_up"
    DUPLICATE_NULLIFIER = "duplicate_nullifier"
    OUT_OF_DOMAIN = "out_of_domain"
    INSUFFICIENT_REPUTATION = "insufficient_reputation"
    INVALID_NONCE = "invalid_nonce"
    STALE_TRANSITION = "stale_transition"


class ProtocolInvariantViolation(UnirepError):
    """
    Fatal precondition failure.

    Attributes:
        kind: The violated invariant
        details: Offending values, keyed by name
    """

    def __init__(self, kind: Violation, message: str, **details: Any) -> None:
        self.kind = kind
        self.details = details
        if details:
            rendered = ", ".join(f"{k}={v}" for k, v in sorted(details.items()))
            message = f"{message} ({rendered})"
        super().__init__(f"[{kind.value}] {message}")


class ConfigurationError(UnirepError):
    """Configuration error."""

    pass


class ExternalFailure(UnirepError):
    """Proof oracle or event source failure; retried by the caller."""

    pass
