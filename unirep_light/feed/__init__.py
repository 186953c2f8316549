"""Ordered event feed, single-writer processor and proof oracle seam."""
from __future__ import annotations

from .errors import SchemaError, SizeLimitError
from .events import (
    AttestationSubmitted,
    EpochEnded,
    Event,
    ReputationNullifiersSpent,
    SequencedEvent,
    SignUp,
    UserStateTransitioned,
    decode_event,
    encode_event,
    load_event_log,
)
from .oracle import CallbackProofOracle, ProofOracle, ProofResult, prove_async, prove_transition
from .processor import EventProcessor

__all__ = [
    "AttestationSubmitted",
    "CallbackProofOracle",
    "EpochEnded",
    "Event",
    "EventProcessor",
    "ProofOracle",
    "ProofResult",
    "ReputationNullifiersSpent",
    "SchemaError",
    "SequencedEvent",
    "SignUp",
    "SizeLimitError",
    "UserStateTransitioned",
    "decode_event",
    "encode_event",
    "load_event_log",
    "prove_async",
    "prove_transition",
]
