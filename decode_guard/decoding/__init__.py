"""
Constrained decoding engine module.

This module implements the per-step decoding logic: repetition penalty,
constraint masking, sampling delegation, automaton state tracking and the
stop/completion policy.

Components:
    - automaton: ConstraintAutomaton contract, Allowance result, TokenTransitionTable
    - penalty: Repetition penalty over a sliding history window
    - masking: Additive -inf mask for tokens the automaton forbids
    - state_tracker: ConstraintBinding with the one-way completion latch
    - stopping: Stop sequences and stop reasons
    - controller: DecodingController tying the pieces together

Step order:
    raw scores -> penalty -> constraint mask -> sampler -> history
    -> automaton transition -> completion latch

Example:
    ```python
    from decode_guard.decoding import DecodingController, TokenTransitionTable
    from decode_guard.sampling import TorchSampler

    table = TokenTransitionTable({(0, 5): 1, (1, 2): 2}, initial=0)
    controller = DecodingController(TorchSampler(temperature=0.0), constraint=table)

    token = controller.sample_next(scores)
    ```
"""

from decode_guard.decoding.automaton import (
    Allowance,
    AllowanceKind,
    ConstraintAutomaton,
    TokenTransitionTable,
)
from decode_guard.decoding.controller import DecodingController
from decode_guard.decoding.masking import apply_constraint_mask, create_constraint_mask
from decode_guard.decoding.penalty import apply_repetition_penalty
from decode_guard.decoding.state_tracker import ConstraintBinding
from decode_guard.decoding.stopping import StopReason, check_stop_sequences

__all__ = [
    "Allowance",
    "AllowanceKind",
    "ConstraintAutomaton",
    "TokenTransitionTable",
    "DecodingController",
    "ConstraintBinding",
    "apply_constraint_mask",
    "create_constraint_mask",
    "apply_repetition_penalty",
    "StopReason",
    "check_stop_sequences",
]
