"""
Field hashing over the BN254 scalar field.

The default backend is circomlib Poseidon, the same permutation the
``PoseidonT3`` and ``PoseidonT6`` verifier contracts run:

- ``hash_left_right(a, b)`` is Poseidon over two inputs (t=3)
- ``hash_one(a)`` is ``hash_left_right(a, 0)``
- ``hash5(values)`` is Poseidon over five inputs (t=6), zero-padded

No domain prefix is applied; the arity is the only separation, exactly as
on chain. The digest backends (SHA-256, SHA3-256) prepend an arity tag and
reduce the digest modulo the field. They are selected by name only.
"""

from __future__ import annotations

import hashlib
from functools import lru_cache
from typing import Callable, Final, Sequence

from circomlibpy.poseidon import PoseidonHash

from .config import SNARK_FIELD_SIZE
from .exceptions import ProtocolInvariantViolation, Violation
from .feature_flags import HashBackend, resolve_hash_backend

_WORD_BYTES = 32
_HASH5_WIDTH = 5

DIGEST_DOMAIN_PREFIX: Final[bytes] = b"UNIREP_LIGHT_V1_"


def to_field(value: int) -> int:
    """
    Validate a field element.

    Raises:
        TypeError: If value is not an integer
        ValueError: If value is outside [0, SNARK_FIELD_SIZE)
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Field element must be int, got {type(value).__name__}")
    if not 0 <= value < SNARK_FIELD_SIZE:
        raise ValueError(f"Field element out of range: {value}")
    return value


def require_field(value: int, name: str) -> int:
    """
    Validate an ingested value before it touches replica state.

    Raises:
        ProtocolInvariantViolation: OUT_OF_DOMAIN if value is not a field element
    """
    try:
        return to_field(value)
    except (TypeError, ValueError) as exc:
        raise ProtocolInvariantViolation(
            Violation.OUT_OF_DOMAIN, f"{name} is not a field element: {exc}"
        ) from exc


def _pad5(values: Sequence[int]) -> list[int]:
    if len(values) > _HASH5_WIDTH:
        raise ValueError(f"hash5 takes at most 5 elements, got {len(values)}")
    return list(values) + [0] * (_HASH5_WIDTH - len(values))


class FieldHasher:
    """Arity-specific hashes of field elements."""

    backend: HashBackend

    def _hash(self, values: list[int]) -> int:
        raise NotImplementedError

    def hash_left_right(self, left: int, right: int) -> int:
        return self._hash([to_field(left), to_field(right)])

    def hash_one(self, value: int) -> int:
        return self.hash_left_right(value, 0)

    def hash5(self, values: Sequence[int]) -> int:
        """Hash up to five elements; shorter inputs are zero-padded."""
        return self._hash([to_field(v) for v in _pad5(values)])


class PoseidonHasher(FieldHasher):
    """circomlib Poseidon (x^5 S-box, 8 full rounds, circomlib constants)."""

    backend = HashBackend.POSEIDON

    def __init__(self) -> None:
        self._poseidon = PoseidonHash()

    def _hash(self, values: list[int]) -> int:
        return self._poseidon.hash(len(values), values)


class DigestHasher(FieldHasher):
    """Arity-tagged hashlib digest reduced into the field."""

    def __init__(self, backend: HashBackend, algorithm: str) -> None:
        self.backend = backend
        self.algorithm = algorithm

    def _hash(self, values: list[int]) -> int:
        h = hashlib.new(self.algorithm)
        h.update(DIGEST_DOMAIN_PREFIX + b"H%d" % len(values))
        for value in values:
            h.update(value.to_bytes(_WORD_BYTES, "big"))
        return int.from_bytes(h.digest(), "big") % SNARK_FIELD_SIZE


HASH_BACKEND_REGISTRY: Final[dict[HashBackend, Callable[[], FieldHasher]]] = {
    HashBackend.POSEIDON: PoseidonHasher,
    HashBackend.SHA256: lambda: DigestHasher(HashBackend.SHA256, "sha256"),
    HashBackend.SHA3_256: lambda: DigestHasher(HashBackend.SHA3_256, "sha3_256"),
}


@lru_cache(maxsize=None)
def _hasher_for(backend: HashBackend) -> FieldHasher:
    return HASH_BACKEND_REGISTRY[backend]()


def get_hasher(prefer: str | HashBackend | None = None) -> FieldHasher:
    """Return the hasher selected by feature flags."""
    return _hasher_for(resolve_hash_backend(prefer))


def hash_one(value: int) -> int:
    return get_hasher().hash_one(value)


def hash_left_right(left: int, right: int) -> int:
    return get_hasher().hash_left_right(left, right)


def hash5(values: Sequence[int]) -> int:
    return get_hasher().hash5(values)
