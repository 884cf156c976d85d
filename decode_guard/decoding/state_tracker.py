"""
Constraint binding - automaton state tracked across decoding steps.

A binding groups everything that belongs to one "turn" of constrained
generation:

    - automaton: shared, read-only ConstraintAutomaton
    - state: current automaton state (None once the automaton declared
      completion through next_state)
    - completed: one-way completion latch
    - anchor: history length when the binding was created

Rebinding replaces the whole object, so state, latch and anchor are always
reset together.

Completion latching (evaluated after each emitted token, on the
post-transition state, only once at least one token was emitted since the
anchor):

    next state absent               -> latch
    allowed_tokens(next) is None    -> latch
    allowed_tokens(next) == {}      -> latch
    allowed_tokens(next) == {EOS}   -> latch
    anything larger (even with EOS) -> no latch

Usage:
    ```python
    binding = ConstraintBinding.start(automaton, anchor=len(history))

    history.append(token_id)
    binding.advance(token_id, history_length=len(history), eos_token_id=eos)

    if binding.is_satisfied(eos):
        print("Constraint complete")
    ```
"""

import logging
from typing import Optional

from decode_guard.decoding.automaton import (
    Allowance,
    ConstraintAutomaton,
    State,
    query_allowance,
)

logger = logging.getLogger(__name__)


def satisfies_completion(allowance: Allowance, eos_token_id: Optional[int]) -> bool:
    """
    Completion condition shared by the latch and the satisfaction predicates.

    True when the allowance is terminal (COMPLETE or EXHAUSTED) or when the
    only legal token is the configured EOS token.
    """
    if allowance.is_terminal:
        return True
    return allowance.only_allows(eos_token_id)


class ConstraintBinding:
    """
    Automaton state for one constrained generation turn.

    Attributes:
        automaton: Shared ConstraintAutomaton (never copied)
        state: Current state, or None after automaton-declared completion
        completed: Completion latch, only ever set to True
        anchor: History length at bind time
    """

    def __init__(self, automaton: ConstraintAutomaton, state: Optional[State], anchor: int):
        self.automaton = automaton
        self.state = state
        self.anchor = anchor
        self._completed = False

    @classmethod
    def start(cls, automaton: ConstraintAutomaton, anchor: int) -> "ConstraintBinding":
        """Create a fresh binding in the automaton's initial state."""
        binding = cls(automaton, automaton.initial_state(), anchor)
        logger.debug(f"Constraint bound in state {binding.state!r} at anchor {anchor}")
        return binding

    @property
    def completed(self) -> bool:
        return self._completed

    def allowance(self) -> Allowance:
        """Classified allowed tokens for the current state."""
        return query_allowance(self.automaton, self.state)

    def advance(
        self,
        token_id: int,
        history_length: int,
        eos_token_id: Optional[int] = None,
    ) -> Optional[State]:
        """
        Transition on an emitted token.

        The latch is updated from the post-transition state before the new
        state is committed.

        Args:
            token_id: Token that was just appended to history
            history_length: History length including ``token_id``
            eos_token_id: Configured EOS token, if any

        Returns:
            The new state (None if the automaton declared completion)
        """
        if self.state is None:
            next_state = None
        else:
            next_state = self.automaton.next_state(self.state, token_id)

        if not self._completed and history_length > self.anchor:
            if next_state is None:
                self._latch(f"automaton declared completion after token {token_id}")
            elif satisfies_completion(query_allowance(self.automaton, next_state), eos_token_id):
                self._latch(f"state {next_state!r} allows no further content")

        logger.debug(
            f"Constraint transition: {self.state!r} --token[{token_id}]--> {next_state!r}"
        )

        self.state = next_state
        return next_state

    def is_satisfied(self, eos_token_id: Optional[int] = None) -> bool:
        """True if latched, or if the current state meets the completion condition."""
        if self._completed:
            return True
        return satisfies_completion(self.allowance(), eos_token_id)

    def _latch(self, reason: str) -> None:
        self._completed = True
        logger.debug(f"Constraint completed: {reason}")

    def __repr__(self) -> str:
        return (
            f"ConstraintBinding(state={self.state!r}, completed={self._completed}, "
            f"anchor={self.anchor})"
        )
