"""
Field-hash backend selection.

The on-chain verifier hashes with circomlib Poseidon, so ``poseidon`` is the
only backend whose roots, epoch keys and nullifiers verify on chain. The
digest backends exist for offline experiments and are never selected unless
asked for by name.

Precedence: explicit argument, in-process override, ``UNIREP_HASH_BACKEND``,
then Poseidon.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from enum import Enum
from typing import Final, Iterator

logger = logging.getLogger(__name__)

ENV_VAR_NAME: Final[str] = "UNIREP_HASH_BACKEND"


class HashBackend(str, Enum):
    """Available field-hash backends"""

    POSEIDON = "poseidon"
    SHA256 = "sha256"
    SHA3_256 = "sha3_256"

    @property
    def verifier_compatible(self) -> bool:
        """True when hashes match the on-chain Poseidon contracts"""
        return self is HashBackend.POSEIDON


DEFAULT_HASH_BACKEND: Final[HashBackend] = HashBackend.POSEIDON

_override: HashBackend | None = None
_warned: set[HashBackend] = set()


def parse_hash_backend(value: str | HashBackend | None) -> HashBackend | None:
    """
    Parse a backend name; blank or None means "not set".

    Raises:
        ValueError: If the name is not a known backend
    """
    if value is None or isinstance(value, HashBackend):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Hash backend must be a string, got {type(value).__name__}")

    name = value.strip().lower()
    if not name:
        return None
    try:
        return HashBackend(name)
    except ValueError:
        options = ", ".join(b.value for b in HashBackend)
        raise ValueError(f"Unknown hash backend {value!r}. Valid options: {options}") from None


def resolve_hash_backend(prefer: str | HashBackend | None = None) -> HashBackend:
    """Return the backend in effect, honouring the precedence chain."""
    backend = (
        parse_hash_backend(prefer)
        or _override
        or parse_hash_backend(os.getenv(ENV_VAR_NAME))
        or DEFAULT_HASH_BACKEND
    )
    if not backend.verifier_compatible and backend not in _warned:
        _warned.add(backend)
        logger.warning(
            "Hash backend %s does not match the on-chain verifier; "
            "roots and proof inputs will not verify",
            backend.value,
        )
    return backend


def set_hash_backend(value: str | HashBackend | None) -> None:
    """Force a backend for this process, or clear the override with None."""
    global _override
    _override = parse_hash_backend(value)


@contextmanager
def hash_backend_override(value: str | HashBackend) -> Iterator[HashBackend]:
    """Temporarily force a backend, restoring the previous override on exit."""
    global _override
    previous = _override
    backend = parse_hash_backend(value)
    if backend is None:
        raise ValueError("hash_backend_override needs a backend name")
    _override = backend
    try:
        yield backend
    finally:
        _override = previous
