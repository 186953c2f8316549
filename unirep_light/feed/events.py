"""CBOR/YAML schemas for the ordered protocol event feed."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import cbor2
import yaml

from ..protocol.config import SNARK_FIELD_SIZE
from ..protocol.types import Attestation, EpochTreeLeaf
from .errors import SchemaError, SizeLimitError

EVENT_V = 1
MAX_EVENT_BYTES = 65536


@dataclass(frozen=True)
class SignUp:
    epoch: int
    identity_commitment: int
    attester_id: int = 0
    airdrop_amount: int = 0


@dataclass(frozen=True)
class AttestationSubmitted:
    epoch: int
    epoch_key: int
    attestation: Attestation


@dataclass(frozen=True)
class EpochEnded:
    """
    End of an epoch.

    ``epoch_tree_leaves`` carries the sealed hashchains reported by the chain;
    when None the replica folds its own recorded attestations.
    """

    epoch: int
    epoch_tree_leaves: Optional[Tuple[EpochTreeLeaf, ...]] = None


@dataclass(frozen=True)
class UserStateTransitioned:
    epoch: int
    new_gst_leaf: int
    nullifiers: Tuple[int, ...] = field(default=())


@dataclass(frozen=True)
class ReputationNullifiersSpent:
    epoch: int
    nullifiers: Tuple[int, ...] = field(default=())


Event = Union[
    SignUp,
    AttestationSubmitted,
    EpochEnded,
    UserStateTransitioned,
    ReputationNullifiersSpent,
]

EVENT_TYPES: Dict[str, type] = {
    "sign_up": SignUp,
    "attestation_submitted": AttestationSubmitted,
    "epoch_ended": EpochEnded,
    "user_state_transitioned": UserStateTransitioned,
    "reputation_nullifiers_spent": ReputationNullifiersSpent,
}
_EVENT_NAMES = {cls: name for name, cls in EVENT_TYPES.items()}


@dataclass(frozen=True)
class SequencedEvent:
    """An event with its position in the finalized feed."""

    seq: int
    event: Event


# ============================================================================
# DICT FORM
# ============================================================================


def _require_int(payload: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    value = payload.get(key, default)
    if value is None:
        raise SchemaError(f"{key} is required")
    if isinstance(value, bool):
        raise SchemaError(f"{key} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"{key} must be an integer") from exc
    if number < 0:
        raise SchemaError(f"{key} must be non-negative")
    if number >= SNARK_FIELD_SIZE:
        raise SchemaError(f"{key} must be below the SNARK field size")
    return number


def _require_int_list(payload: Dict[str, Any], key: str) -> Tuple[int, ...]:
    values = payload.get(key, [])
    if not isinstance(values, (list, tuple)):
        raise SchemaError(f"{key} must be a list")
    return tuple(_require_int({key: v}, key) for v in values)


def event_to_dict(event: Event) -> Dict[str, Any]:
    name = _EVENT_NAMES.get(type(event))
    if name is None:
        raise SchemaError(f"unsupported event type: {type(event).__name__}")
    payload: Dict[str, Any] = {"v": EVENT_V, "type": name, "epoch": event.epoch}

    if isinstance(event, SignUp):
        payload["identity_commitment"] = event.identity_commitment
        payload["attester_id"] = event.attester_id
        payload["airdrop_amount"] = event.airdrop_amount
    elif isinstance(event, AttestationSubmitted):
        payload["epoch_key"] = event.epoch_key
        payload["attestation"] = event.attestation.to_dict()
    elif isinstance(event, EpochEnded):
        if event.epoch_tree_leaves is not None:
            payload["epoch_tree_leaves"] = [
                {"epoch_key": leaf.epoch_key, "hashchain_result": leaf.hashchain_result}
                for leaf in event.epoch_tree_leaves
            ]
    else:
        payload["nullifiers"] = list(event.nullifiers)
        if isinstance(event, UserStateTransitioned):
            payload["new_gst_leaf"] = event.new_gst_leaf
    return payload


def event_from_dict(payload: Any) -> Event:
    if not isinstance(payload, dict):
        raise SchemaError("event payload must be a dict")
    version = payload.get("v", EVENT_V)
    if version != EVENT_V:
        raise SchemaError("unsupported event version")
    name = payload.get("type")
    if name not in EVENT_TYPES:
        raise SchemaError(f"unsupported event type: {name!r}")
    epoch = _require_int(payload, "epoch")

    if name == "sign_up":
        return SignUp(
            epoch=epoch,
            identity_commitment=_require_int(payload, "identity_commitment"),
            attester_id=_require_int(payload, "attester_id", 0),
            airdrop_amount=_require_int(payload, "airdrop_amount", 0),
        )
    if name == "attestation_submitted":
        raw = payload.get("attestation")
        if not isinstance(raw, dict):
            raise SchemaError("attestation must be a dict")
        try:
            attestation = Attestation.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            raise SchemaError(f"invalid attestation: {exc}") from exc
        return AttestationSubmitted(
            epoch=epoch,
            epoch_key=_require_int(payload, "epoch_key"),
            attestation=attestation,
        )
    if name == "epoch_ended":
        raw_leaves = payload.get("epoch_tree_leaves")
        if raw_leaves is None:
            return EpochEnded(epoch=epoch)
        if not isinstance(raw_leaves, list):
            raise SchemaError("epoch_tree_leaves must be a list")
        leaves = []
        for raw in raw_leaves:
            if not isinstance(raw, dict):
                raise SchemaError("epoch tree leaf must be a dict")
            leaves.append(
                EpochTreeLeaf(
                    epoch_key=_require_int(raw, "epoch_key"),
                    hashchain_result=_require_int(raw, "hashchain_result"),
                )
            )
        return EpochEnded(epoch=epoch, epoch_tree_leaves=tuple(leaves))
    if name == "user_state_transitioned":
        return UserStateTransitioned(
            epoch=epoch,
            new_gst_leaf=_require_int(payload, "new_gst_leaf"),
            nullifiers=_require_int_list(payload, "nullifiers"),
        )
    return ReputationNullifiersSpent(
        epoch=epoch, nullifiers=_require_int_list(payload, "nullifiers")
    )


# ============================================================================
# CBOR
# ============================================================================


def encode_event(event: Event) -> bytes:
    blob = cbor2.dumps(event_to_dict(event))
    if len(blob) > MAX_EVENT_BYTES:
        raise SizeLimitError("event too large")
    return blob


def decode_event(blob: bytes) -> Event:
    if not isinstance(blob, (bytes, bytearray)):
        raise SchemaError("event blob must be bytes")
    blob_bytes = bytes(blob)
    if len(blob_bytes) > MAX_EVENT_BYTES:
        raise SizeLimitError("event too large")
    try:
        payload = cbor2.loads(blob_bytes)
    except cbor2.CBORDecodeError as exc:
        raise SchemaError("event blob is not valid CBOR") from exc
    return event_from_dict(payload)


# ============================================================================
# EVENT LOGS
# ============================================================================


def _sequence(entries: Any) -> List[SequencedEvent]:
    if isinstance(entries, dict):
        entries = entries.get("events")
    if not isinstance(entries, list):
        raise SchemaError("event log must be a list of events")
    events = []
    for position, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise SchemaError("event log entry must be a dict")
        seq = _require_int(entry, "seq", position)
        body = {k: v for k, v in entry.items() if k != "seq"}
        events.append(SequencedEvent(seq=seq, event=event_from_dict(body)))
    return events


def dump_event_log(events: List[SequencedEvent]) -> bytes:
    """Encode a sequenced event list as one CBOR array."""
    return cbor2.dumps([{"seq": item.seq, **event_to_dict(item.event)} for item in events])


def load_event_log(path: Union[str, Path]) -> List[SequencedEvent]:
    """
    Read a sequenced event log.

    YAML files (``.yaml``/``.yml``) hold a list of event mappings, or a
    mapping with an ``events`` list; anything else is read as a CBOR array.
    Entries without ``seq`` are numbered by position starting at 1.
    """
    path = Path(path)
    if path.suffix.lower() in (".yaml", ".yml"):
        with path.open("r", encoding="utf-8") as fh:
            try:
                entries = yaml.safe_load(fh)
            except yaml.YAMLError as exc:
                raise SchemaError(f"invalid YAML event log: {exc}") from exc
        return _sequence(entries)
    try:
        entries = cbor2.loads(path.read_bytes())
    except cbor2.CBORDecodeError as exc:
        raise SchemaError("event log is not valid CBOR") from exc
    return _sequence(entries)
