"""
Proof input builder.

Assembles the exact field-element bundles the circuits consume. Everything
here is a pure function of already-recorded replica state plus the user's own
secrets and reputation leaves, so bundles for a finished epoch can be built on
worker threads.

A user state transition is a chain of proofs linked by blinded commitments:

    start ──bus0──▶ chunk 0 ──bus1──▶ chunk 1 ──▶ ... ──busN──▶ final

where ``bus_i = H5(identity_nullifier, user_state_root, epoch, nonce, 0)``.
Each process-attestations chunk consumes the previous chunk's output blinded
user state, and the final proof brackets the chain with the start value and
the last chunk's output.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from .circuits import Circuit, CircuitInputs
from .config import ProtocolConfig
from .exceptions import ProtocolInvariantViolation, Violation
from .hashing import hash_left_right
from .keys import blind, gen_epoch_key, gen_epoch_key_nullifier, gen_reputation_nullifier
from .merkle import MerklePath
from .types import Attestation, Identity, UserStateLeaf, check_attester_id
from .user_state_tree import UserStateTree

if TYPE_CHECKING:
    from .unirep_state import UnirepState


@dataclass(frozen=True)
class StartTransition:
    inputs: CircuitInputs
    blinded_user_state: int
    blinded_hash_chain: int


@dataclass(frozen=True)
class ProcessAttestationsChunk:
    """
    One process-attestations proof.

    Attributes:
        inputs: Circuit input bundle
        nonce: Epoch key nonce the chunk's attestations belong to
        num_attestations: Real (selector 1) entries in the chunk
        input_blinded_user_state: Blinded state consumed
        output_blinded_user_state: Blinded state produced
        output_blinded_hash_chain: Blinded running hashchain produced
    """

    inputs: CircuitInputs
    nonce: int
    num_attestations: int
    input_blinded_user_state: int
    output_blinded_user_state: int
    output_blinded_hash_chain: int


@dataclass(frozen=True)
class UserStateTransitionProofs:
    """Every input bundle of one transition plus its expected outputs."""

    from_epoch: int
    start_transition: StartTransition
    process_attestations: Tuple[ProcessAttestationsChunk, ...]
    final_transition: CircuitInputs
    new_gst_leaf: int
    epoch_key_nullifiers: Tuple[int, ...]
    new_user_state_leaves: Tuple[UserStateLeaf, ...]
    blinded_user_states: Tuple[int, int]
    blinded_hash_chains: Tuple[int, ...]


@dataclass(frozen=True)
class ReputationProofInputs:
    inputs: CircuitInputs
    reputation_nullifiers: Tuple[int, ...]


class ProofInputBuilder:
    """
    Builds circuit inputs for one identity.

    Args:
        config: Protocol configuration
        state: Replica the inputs are read from
        identity: The identity whose proofs are built
    """

    def __init__(
        self, config: ProtocolConfig, state: "UnirepState", identity: Identity
    ) -> None:
        self.config = config
        self.state = state
        self.identity = identity

    # ------------------------------------------------------------------
    # shared pieces
    # ------------------------------------------------------------------

    def _identity_signals(self) -> Dict[str, object]:
        return {
            "identity_pk": list(self.identity.identity_pk),
            "identity_nullifier": self.identity.identity_nullifier,
            "identity_trapdoor": self.identity.identity_trapdoor,
        }

    def _gst_signals(self, epoch: int, leaf_index: int) -> Dict[str, object]:
        tree = self.state.gen_gs_tree(epoch)
        path = tree.gen_merkle_path(leaf_index)
        return _gst_path_signals(path, tree.root)

    def _epoch_key(self, epoch: int, nonce: int) -> int:
        self._check_nonce(nonce)
        return gen_epoch_key(
            self.identity.identity_nullifier, epoch, nonce, self.config.epoch_tree_depth
        )

    def _check_nonce(self, nonce: int) -> None:
        limit = self.config.num_epoch_key_nonce_per_epoch
        if not 0 <= nonce < limit:
            raise ProtocolInvariantViolation(
                Violation.INVALID_NONCE,
                "Epoch key nonce must be less than max epoch nonce",
                nonce=nonce,
                limit=limit,
            )

    def _user_tree(self, leaves: Sequence[UserStateLeaf]) -> UserStateTree:
        return UserStateTree(self.config.user_state_tree_depth, leaves)

    # ------------------------------------------------------------------
    # epoch key validity
    # ------------------------------------------------------------------

    def verify_epoch_key(
        self,
        epoch: int,
        leaf_index: int,
        leaves: Sequence[UserStateLeaf],
        nonce: int,
    ) -> CircuitInputs:
        epoch_key = self._epoch_key(epoch, nonce)
        user_tree = self._user_tree(leaves)
        return CircuitInputs(
            Circuit.VERIFY_EPOCH_KEY,
            {
                **self._gst_signals(epoch, leaf_index),
                **self._identity_signals(),
                "user_tree_root": user_tree.root(),
                "nonce": nonce,
                "epoch": epoch,
                "epoch_key": epoch_key,
            },
        )

    # ------------------------------------------------------------------
    # user state transition
    # ------------------------------------------------------------------

    def start_transition(
        self, epoch: int, nonce: int, user_tree_root: int, gst_signals: Dict[str, object]
    ) -> StartTransition:
        """The hashchain starter blinded here is always zero."""
        identity_nullifier = self.identity.identity_nullifier
        inputs = CircuitInputs(
            Circuit.START_TRANSITION,
            {
                "epoch": epoch,
                "nonce": nonce,
                "user_tree_root": user_tree_root,
                **self._identity_signals(),
                **gst_signals,
            },
        )
        return StartTransition(
            inputs=inputs,
            blinded_user_state=blind(identity_nullifier, user_tree_root, epoch, nonce),
            blinded_hash_chain=blind(identity_nullifier, 0, epoch, nonce),
        )

    def user_state_transition(
        self,
        from_epoch: int,
        leaf_index: int,
        leaves: Sequence[UserStateLeaf],
    ) -> UserStateTransitionProofs:
        """
        Build start, process-attestations and final inputs for a transition
        out of ``from_epoch``.

        Raises:
            ProtocolInvariantViolation: If any epoch key of ``from_epoch`` was
                already nullified, or an attestation names an out-of-domain
                attester
        """
        cfg = self.config
        identity_nullifier = self.identity.identity_nullifier
        num_nonces = cfg.num_epoch_key_nonce_per_epoch
        chunk_size = cfg.num_attestations_per_proof

        epoch_key_nullifiers = tuple(
            gen_epoch_key_nullifier(identity_nullifier, from_epoch, nonce)
            for nonce in range(num_nonces)
        )
        for nonce, nullifier in enumerate(epoch_key_nullifiers):
            if self.state.nullifier_exists(nullifier):
                raise ProtocolInvariantViolation(
                    Violation.STALE_TRANSITION,
                    "Epoch key is already processed",
                    epoch=from_epoch,
                    nonce=nonce,
                    nullifier=nullifier,
                )

        user_tree = self._user_tree(leaves)
        start_root = user_tree.root()
        gst_signals = self._gst_signals(from_epoch, leaf_index)
        epoch_tree = self.state.gen_epoch_tree(from_epoch)

        start = self.start_transition(from_epoch, 0, start_root, gst_signals)

        chunks: List[ProcessAttestationsChunk] = []
        prev_output = start.blinded_user_state
        prev_to_nonce = 0
        hash_chain_results: List[int] = []
        blinded_hash_chains: List[int] = []
        epk_path_elements: List[List[int]] = []

        for nonce in range(num_nonces):
            epoch_key = self._epoch_key(from_epoch, nonce)
            attestations = self.state.get_attestations(epoch_key, from_epoch)
            chain = 0

            batches = [
                attestations[i : i + chunk_size]
                for i in range(0, len(attestations), chunk_size)
            ] or [()]

            for batch in batches:
                inputs, chain = self._process_chunk(
                    user_tree,
                    batch,
                    from_epoch=from_epoch,
                    from_nonce=prev_to_nonce,
                    to_nonce=nonce,
                    hash_chain_starter=chain,
                    input_blinded_user_state=prev_output,
                )
                output = blind(identity_nullifier, user_tree.root(), from_epoch, nonce)
                chunks.append(
                    ProcessAttestationsChunk(
                        inputs=inputs,
                        nonce=nonce,
                        num_attestations=len(batch),
                        input_blinded_user_state=prev_output,
                        output_blinded_user_state=output,
                        output_blinded_hash_chain=blind(
                            identity_nullifier, chain, from_epoch, nonce
                        ),
                    )
                )
                prev_output = output
                prev_to_nonce = nonce

            epk_path_elements.append(list(epoch_tree.get_merkle_proof(epoch_key)))
            hash_chain_results.append(chain)
            blinded_hash_chains.append(blind(identity_nullifier, chain, from_epoch, nonce))

        final_root = user_tree.root()
        end_nonce = num_nonces - 1
        blinded_user_states = (
            blind(identity_nullifier, start_root, from_epoch, 0),
            blind(identity_nullifier, final_root, from_epoch, end_nonce),
        )

        final = CircuitInputs(
            Circuit.USER_STATE_TRANSITION,
            {
                "epoch": from_epoch,
                "blinded_user_state": list(blinded_user_states),
                "intermediate_user_state_tree_roots": [start_root, final_root],
                "start_epoch_key_nonce": 0,
                "end_epoch_key_nonce": end_nonce,
                **self._identity_signals(),
                **gst_signals,
                "epk_path_elements": epk_path_elements,
                "hash_chain_results": hash_chain_results,
                "blinded_hash_chain_results": blinded_hash_chains,
                "epoch_tree_root": epoch_tree.root,
            },
        )

        return UserStateTransitionProofs(
            from_epoch=from_epoch,
            start_transition=start,
            process_attestations=tuple(chunks),
            final_transition=final,
            new_gst_leaf=hash_left_right(self.identity.commitment, final_root),
            epoch_key_nullifiers=epoch_key_nullifiers,
            new_user_state_leaves=user_tree.leaves(),
            blinded_user_states=blinded_user_states,
            blinded_hash_chains=tuple(blinded_hash_chains),
        )

    def _process_chunk(
        self,
        user_tree: UserStateTree,
        batch: Sequence[Attestation],
        *,
        from_epoch: int,
        from_nonce: int,
        to_nonce: int,
        hash_chain_starter: int,
        input_blinded_user_state: int,
    ) -> Tuple[CircuitInputs, int]:
        """Apply ``batch`` to ``user_tree`` in place; pad to the chunk size."""
        depth = self.config.user_state_tree_depth
        rows: Dict[str, List[object]] = {
            name: []
            for name in (
                "old_pos_reps",
                "old_neg_reps",
                "old_graffities",
                "old_sign_ups",
                "path_elements",
                "attester_ids",
                "pos_reps",
                "neg_reps",
                "graffities",
                "overwrite_graffities",
                "sign_ups",
                "selectors",
            )
        }
        roots = [user_tree.root()]
        chain = hash_chain_starter

        for attestation in batch:
            attester_id = check_attester_id(attestation.attester_id, depth)
            old = user_tree.get_reputation(attester_id)
            rows["old_pos_reps"].append(old.pos_rep)
            rows["old_neg_reps"].append(old.neg_rep)
            rows["old_graffities"].append(old.graffiti)
            rows["old_sign_ups"].append(old.sign_up)
            rows["path_elements"].append(list(user_tree.merkle_path(attester_id).path_elements))

            user_tree.set_reputation(attester_id, old.apply(attestation))
            roots.append(user_tree.root())

            rows["attester_ids"].append(attester_id)
            rows["pos_reps"].append(attestation.pos_rep)
            rows["neg_reps"].append(attestation.neg_rep)
            rows["graffities"].append(attestation.graffiti)
            rows["overwrite_graffities"].append(1 if attestation.graffiti != 0 else 0)
            rows["sign_ups"].append(attestation.sign_up)
            rows["selectors"].append(1)

            chain = hash_left_right(attestation.hash(), chain)

        # Padding: no-op entries proven against attester 0 and the current root
        for _ in range(self.config.num_attestations_per_proof - len(batch)):
            for name in rows:
                if name == "path_elements":
                    rows[name].append(list(user_tree.merkle_path(0).path_elements))
                else:
                    rows[name].append(0)
            roots.append(user_tree.root())

        inputs = CircuitInputs(
            Circuit.PROCESS_ATTESTATIONS,
            {
                "epoch": from_epoch,
                "from_nonce": from_nonce,
                "to_nonce": to_nonce,
                "identity_nullifier": self.identity.identity_nullifier,
                "intermediate_user_state_tree_roots": roots,
                **rows,
                "hash_chain_starter": hash_chain_starter,
                "input_blinded_user_state": input_blinded_user_state,
            },
        )
        return inputs, chain

    # ------------------------------------------------------------------
    # reputation and sign-up
    # ------------------------------------------------------------------

    def _reputation_signals(
        self, user_tree: UserStateTree, attester_id: int
    ) -> Dict[str, object]:
        rep = user_tree.get_reputation(attester_id)
        return {
            "attester_id": attester_id,
            "pos_rep": rep.pos_rep,
            "neg_rep": rep.neg_rep,
            "graffiti": rep.graffiti,
            "sign_up": rep.sign_up,
            "UST_path_elements": list(user_tree.merkle_path(attester_id).path_elements),
        }

    def _check_attester(self, attester_id: int) -> None:
        if attester_id <= 0:
            raise ProtocolInvariantViolation(
                Violation.OUT_OF_DOMAIN,
                "Attester id must be greater than zero",
                attester_id=attester_id,
            )
        check_attester_id(attester_id, self.config.user_state_tree_depth)

    def prove_reputation(
        self,
        epoch: int,
        leaf_index: int,
        leaves: Sequence[UserStateLeaf],
        attester_id: int,
        rep_nullifiers_amount: int,
        nonce_starter: int,
        epoch_key_nonce: int,
        min_rep: int = 0,
        prove_graffiti: int = 0,
        graffiti_pre_image: Optional[int] = None,
    ) -> ReputationProofInputs:
        """
        Build reputation proof inputs spending ``rep_nullifiers_amount``
        reputation nullifiers starting at ``nonce_starter``.

        Raises:
            ProtocolInvariantViolation: On an invalid attester or nonce, a
                spend above the budget or above net reputation, or a
                reputation nullifier that was already spent
        """
        self._check_attester(attester_id)
        epoch_key = self._epoch_key(epoch, epoch_key_nonce)
        budget = self.config.max_reputation_budget

        if not 0 <= rep_nullifiers_amount <= budget:
            raise ProtocolInvariantViolation(
                Violation.INSUFFICIENT_REPUTATION,
                "Reputation nullifier amount exceeds the reputation budget",
                amount=rep_nullifiers_amount,
                budget=budget,
            )

        user_tree = self._user_tree(leaves)
        rep = user_tree.get_reputation(attester_id)
        if nonce_starter < 0 or nonce_starter + rep_nullifiers_amount > rep.pos_rep - rep.neg_rep:
            raise ProtocolInvariantViolation(
                Violation.INSUFFICIENT_REPUTATION,
                "Not enough reputation to spend",
                nonce_starter=nonce_starter,
                amount=rep_nullifiers_amount,
                pos_rep=rep.pos_rep,
                neg_rep=rep.neg_rep,
            )

        rep_nonces = [nonce_starter + i for i in range(rep_nullifiers_amount)]
        nullifiers = tuple(
            gen_reputation_nullifier(self.identity.identity_nullifier, epoch, n)
            for n in rep_nonces
        )
        self.state.nullifiers.check_fresh(nullifiers)

        padding = budget - rep_nullifiers_amount
        if graffiti_pre_image is None:
            graffiti_pre_image = rep.graffiti_pre_image

        inputs = CircuitInputs(
            Circuit.PROVE_REPUTATION,
            {
                "epoch": epoch,
                "epoch_key_nonce": epoch_key_nonce,
                "epoch_key": epoch_key,
                **self._identity_signals(),
                "user_tree_root": user_tree.root(),
                **self._gst_signals(epoch, leaf_index),
                **self._reputation_signals(user_tree, attester_id),
                "rep_nullifiers_amount": rep_nullifiers_amount,
                "selectors": [1] * rep_nullifiers_amount + [0] * padding,
                "rep_nonce": rep_nonces + [0] * padding,
                "min_rep": min_rep,
                "prove_graffiti": prove_graffiti,
                "graffiti_pre_image": graffiti_pre_image,
            },
        )
        return ReputationProofInputs(inputs=inputs, reputation_nullifiers=nullifiers)

    def prove_user_sign_up(
        self,
        epoch: int,
        leaf_index: int,
        leaves: Sequence[UserStateLeaf],
        attester_id: int,
        epoch_key_nonce: int = 0,
    ) -> CircuitInputs:
        self._check_attester(attester_id)
        epoch_key = self._epoch_key(epoch, epoch_key_nonce)
        user_tree = self._user_tree(leaves)
        return CircuitInputs(
            Circuit.PROVE_USER_SIGN_UP,
            {
                "epoch": epoch,
                "epoch_key": epoch_key,
                **self._identity_signals(),
                "user_tree_root": user_tree.root(),
                **self._gst_signals(epoch, leaf_index),
                **self._reputation_signals(user_tree, attester_id),
            },
        )


def _gst_path_signals(path: MerklePath, root: int) -> Dict[str, object]:
    return {
        "GST_path_elements": list(path.path_elements),
        "GST_path_index": list(path.indices),
        "GST_root": root,
    }
