"""
Decoding controller - one constrained generation sequence.

The controller owns the token history, the repetition penalty settings and an
optional constraint binding, and turns each step's raw scores into the next
token.

Per-step flow (sample_next):
    1. Apply repetition penalty over the recent history window
    2. Apply the constraint mask for the current automaton state
    3. Delegate the draw to the sampler
    4. Append the drawn token to history
    5. Advance the automaton and update the completion latch
    6. Return the token

Steps 1-3 do not touch controller state, so a failure there (bad score shape,
device mismatch, nothing left to sample) leaves history unchanged.

A controller serves exactly one sequence. The constraint automaton it holds
is shared and read-only, so many controllers can use the same automaton.

Usage:
    ```python
    from decode_guard.decoding import DecodingController
    from decode_guard.sampling import TorchSampler

    controller = DecodingController(
        sampler=TorchSampler(temperature=0.0),
        repetition_penalty=1.1,
        repetition_penalty_window=64,
        constraint=table,
    )
    controller.set_eos_token(tokenizer.eos_token_id)
    controller.set_history(prompt_ids)
    controller.bind_constraint(table)  # anchor after the prompt

    while True:
        scores = model_scores(controller.history())
        token = controller.sample_next(scores)
        if controller.should_stop(token, max_length):
            break
    ```
"""

import logging
from typing import Iterable, List, Optional, Sequence

from torch import Tensor

from decode_guard.decoding.automaton import ConstraintAutomaton, State
from decode_guard.decoding.masking import apply_constraint_mask
from decode_guard.decoding.penalty import apply_repetition_penalty, validate_penalty
from decode_guard.decoding.state_tracker import ConstraintBinding
from decode_guard.decoding.stopping import check_stop_sequences
from decode_guard.errors import ScoreShapeError
from decode_guard.sampling import Sampler

logger = logging.getLogger(__name__)


class DecodingController:
    """
    Combine repetition penalty, constraint masking and sampling for one sequence.

    Attributes:
        sampler: Sampler used for the draw
        repetition_penalty: Penalty scalar (1.0 = disabled)
        repetition_penalty_window: Number of recent tokens the penalty considers
        eos_token_id: End-of-sequence token id, if configured
    """

    def __init__(
        self,
        sampler: Sampler,
        repetition_penalty: float = 1.0,
        repetition_penalty_window: int = 64,
        constraint: Optional[ConstraintAutomaton] = None,
    ):
        """
        Initialize DecodingController.

        Args:
            sampler: Sampler that draws the token from the final scores
            repetition_penalty: Penalty scalar, must be positive and finite
            repetition_penalty_window: Penalty window, must be >= 0
            constraint: Optional automaton to bind immediately

        Raises:
            ConfigurationError: If penalty or window are malformed
        """
        validate_penalty(repetition_penalty, repetition_penalty_window)

        self.sampler = sampler
        self.repetition_penalty = repetition_penalty
        self.repetition_penalty_window = repetition_penalty_window
        self.eos_token_id: Optional[int] = None

        self._history: List[int] = []
        self._binding: Optional[ConstraintBinding] = None

        if constraint is not None:
            self.bind_constraint(constraint)

    def set_eos_token(self, token_id: int) -> None:
        self.eos_token_id = token_id

    def append(self, token_id: int) -> None:
        self._history.append(token_id)

    def set_history(self, token_ids: Iterable[int]) -> None:
        self._history = list(token_ids)

    def history(self) -> Sequence[int]:
        """Read-only view of the token history."""
        return tuple(self._history)

    def bind_constraint(self, automaton: ConstraintAutomaton) -> None:
        """
        Bind ``automaton`` for a new constrained turn.

        Any previous binding, including its completion latch and anchor, is
        discarded. The anchor is the current history length.
        """
        self._binding = ConstraintBinding.start(automaton, anchor=len(self._history))
        logger.info(f"Bound constraint {automaton!r} at history length {len(self._history)}")

    @property
    def constraint(self) -> Optional[ConstraintAutomaton]:
        return self._binding.automaton if self._binding else None

    @property
    def constraint_state(self) -> Optional[State]:
        return self._binding.state if self._binding else None

    @property
    def constraint_completed(self) -> bool:
        return self._binding.completed if self._binding else False

    @property
    def constraint_anchor(self) -> Optional[int]:
        return self._binding.anchor if self._binding else None

    def apply_repetition_penalty(self, scores: Tensor) -> Tensor:
        return apply_repetition_penalty(
            scores,
            self._history,
            self.repetition_penalty,
            self.repetition_penalty_window,
        )

    def apply_constraints(self, scores: Tensor) -> Tensor:
        """
        Mask tokens the bound automaton does not allow.

        No-op when unbound or when the bound state is complete.
        """
        if self._binding is None:
            return scores
        return apply_constraint_mask(scores, self._binding.allowance())

    def process_scores(self, scores: Tensor) -> Tensor:
        """Penalty, then constraint mask. Does not modify controller state."""
        if scores.dim() != 1:
            raise ScoreShapeError(
                f"Expected scores of shape (vocab_size,), got {tuple(scores.shape)}"
            )
        return self.apply_constraints(self.apply_repetition_penalty(scores))

    def sample_next(self, scores: Tensor) -> int:
        """
        Run one decoding step and return the emitted token.

        Args:
            scores: Raw model scores of shape (vocab_size,)

        Returns:
            int: Drawn token id

        Raises:
            ScoreShapeError: If scores is not 1-D
            SamplingError: If the sampler cannot draw from the processed scores
        """
        processed = self.process_scores(scores)
        token_id = self.sampler.draw(processed)

        self._history.append(token_id)

        if self._binding is not None:
            self._binding.advance(
                token_id,
                history_length=len(self._history),
                eos_token_id=self.eos_token_id,
            )

        return token_id

    def is_constraint_satisfied(self) -> bool:
        """
        True once the constraint has completed.

        Completed means the latch is set, or the current state is terminal or
        only allows EOS. Always False when no constraint is bound.
        """
        if self._binding is None:
            return False
        return self._binding.is_satisfied(self.eos_token_id)

    def is_constraint_satisfied_stop_on_match(self) -> bool:
        """
        Satisfaction check used when generation stops as soon as the constraint
        matches. Same decision as is_constraint_satisfied().
        """
        if self._binding is None:
            return False
        return self._binding.is_satisfied(self.eos_token_id)

    def should_stop(self, token_id: int, max_length: int) -> bool:
        """
        Whether the generation loop must halt after emitting ``token_id``.

        True when history reached ``max_length``, when ``token_id`` is EOS, or
        when the bound automaton's current state allows no token at all.
        """
        if len(self._history) >= max_length:
            return True

        if self.eos_token_id is not None and token_id == self.eos_token_id:
            return True

        return self.is_constraint_terminal()

    def is_constraint_terminal(self) -> bool:
        """True when the bound state is complete or allows no token; False when unbound."""
        if self._binding is None:
            return False
        return self._binding.allowance().is_terminal

    def check_stop_sequences(self, text: str, stop_sequences: Iterable[str]) -> bool:
        return check_stop_sequences(text, stop_sequences)

    def __repr__(self) -> str:
        return (
            f"DecodingController(history={len(self._history)}, "
            f"penalty={self.repetition_penalty}, binding={self._binding!r})"
        )
