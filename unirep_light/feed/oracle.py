"""
Proof oracle seam.

The constraint systems are opaque: an oracle takes a circuit name and its
decimal-string signals and returns a proof with its public signals. Input
assembly and proving are blocking, so the async helpers run them on worker
threads; the replica state they read must not be mutated meanwhile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Protocol, Tuple

import trio

from ..protocol.circuits import Circuit, CircuitInputs
from ..protocol.exceptions import ExternalFailure, UnirepError
from ..protocol.proof_inputs import UserStateTransitionProofs
from ..protocol.user_state import UserState

logger = logging.getLogger(__name__)

DEFAULT_PROVER_TIMEOUT = 120.0


@dataclass(frozen=True)
class ProofResult:
    proof: Any
    public_signals: Tuple[str, ...] = field(default=())


class ProofOracle(Protocol):
    def prove(self, circuit: Circuit, signals: Dict[str, Any]) -> ProofResult:
        ...


ProverCallback = Callable[[Circuit, Dict[str, Any]], ProofResult]


class CallbackProofOracle:
    """Adapt a plain prover callable to the oracle interface."""

    def __init__(self, callback: ProverCallback) -> None:
        self._callback = callback

    def prove(self, circuit: Circuit, signals: Dict[str, Any]) -> ProofResult:
        return self._callback(circuit, signals)


def request_proof(oracle: ProofOracle, inputs: CircuitInputs) -> ProofResult:
    """
    Prove one input bundle.

    Raises:
        ExternalFailure: If the oracle fails for any reason of its own
    """
    try:
        return oracle.prove(inputs.circuit, inputs.to_signals())
    except UnirepError:
        raise
    except Exception as exc:
        raise ExternalFailure(f"proof oracle failed for {inputs.circuit.value}: {exc}") from exc


def transition_bundles(proofs: UserStateTransitionProofs) -> List[CircuitInputs]:
    """Input bundles of a transition in the order they must be proven."""
    return [
        proofs.start_transition.inputs,
        *(chunk.inputs for chunk in proofs.process_attestations),
        proofs.final_transition,
    ]


async def prove_async(
    oracle: ProofOracle,
    inputs: CircuitInputs,
    timeout: float = DEFAULT_PROVER_TIMEOUT,
) -> ProofResult:
    try:
        with trio.fail_after(timeout):
            return await trio.to_thread.run_sync(
                request_proof, oracle, inputs, abandon_on_cancel=True
            )
    except trio.TooSlowError as exc:
        raise ExternalFailure(f"proof oracle timed out for {inputs.circuit.value}") from exc


async def build_transition_async(user: UserState) -> UserStateTransitionProofs:
    return await trio.to_thread.run_sync(user.gen_user_state_transition_circuit_inputs)


async def prove_transition(
    oracle: ProofOracle,
    user: UserState,
    timeout: float = DEFAULT_PROVER_TIMEOUT,
) -> Tuple[UserStateTransitionProofs, List[ProofResult]]:
    """Build every bundle of the user's next transition and prove them in order."""
    proofs = await build_transition_async(user)
    results = []
    for inputs in transition_bundles(proofs):
        results.append(await prove_async(oracle, inputs, timeout))
    logger.info(
        "Proved transition out of epoch %d with %d process-attestations proofs",
        proofs.from_epoch,
        len(proofs.process_attestations),
    )
    return proofs, results
