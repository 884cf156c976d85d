"""
Constraint automaton contract and an in-memory transition table.

A constraint automaton restricts which tokens may be emitted next. It is built
once (from a schema, a regex, or by hand) and then only read during decoding,
so a single instance can be shared by any number of generation sequences.

Contract:
    - initial_state() -> state
    - allowed_tokens(state) -> Optional[Set[int]]
        None        : the state denotes unconditional completion
        empty set   : no further token is grammatically valid
        non-empty   : the legal next tokens
    - next_state(state, token_id) -> Optional[state]
        None means the automaton declares completion (or the token has no
        transition from this state)

States are opaque hashable values. The controller never inspects them beyond
passing them back to the automaton.

Because "None" and "empty set" mean different things, callers should not test
the raw return value for truthiness. Use Allowance.of() to turn it into an
explicit three-way result:

    ```python
    allowance = Allowance.of(automaton.allowed_tokens(state))
    if allowance.kind is AllowanceKind.OPEN:
        ...
    ```

Usage:
    ```python
    from decode_guard.decoding import TokenTransitionTable

    # '{' then 'a'|'b' then '}' then EOS (id 9)
    table = TokenTransitionTable(
        transitions={(0, 1): 1, (1, 2): 2, (1, 3): 2, (2, 4): 3, (3, 9): 4},
        initial=0,
        complete_states={4},
    )

    table.allowed_tokens(1)   # frozenset({2, 3})
    table.next_state(1, 3)    # 2
    table.allowed_tokens(4)   # None (completion)
    ```
"""

import enum
import json
import logging
import pickle
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, Hashable, Iterable, Optional, Set, Tuple

logger = logging.getLogger(__name__)

State = Hashable


class ConstraintAutomaton(ABC):
    """
    Token-level finite-state automaton consumed by the decoding controller.

    Implementations must be immutable after construction: the same instance
    is read concurrently by independent controllers and is never copied.
    """

    @abstractmethod
    def initial_state(self) -> State:
        """Return the state a fresh binding starts in."""

    @abstractmethod
    def allowed_tokens(self, state: State) -> Optional[Set[int]]:
        """
        Return the tokens legal from ``state``.

        Returns:
            None if the state denotes unconditional completion, an empty set if
            no token is legal, otherwise the set of legal token ids.
        """

    @abstractmethod
    def next_state(self, state: State, token_id: int) -> Optional[State]:
        """Return the state reached by emitting ``token_id`` from ``state``."""


class AllowanceKind(enum.Enum):
    """Three-way classification of an allowed_tokens() result."""

    COMPLETE = "complete"    # allowed_tokens returned None
    EXHAUSTED = "exhausted"  # allowed_tokens returned an empty set
    OPEN = "open"            # at least one legal token


@dataclass(frozen=True)
class Allowance:
    """
    Tagged result of querying an automaton state.

    Attributes:
        kind: COMPLETE, EXHAUSTED or OPEN
        tokens: Legal token ids (empty unless kind is OPEN)
    """
    kind: AllowanceKind
    tokens: FrozenSet[int] = frozenset()

    @classmethod
    def of(cls, allowed: Optional[Iterable[int]]) -> "Allowance":
        """Classify a raw allowed_tokens() return value."""
        if allowed is None:
            return cls(AllowanceKind.COMPLETE)

        tokens = frozenset(allowed)
        if not tokens:
            return cls(AllowanceKind.EXHAUSTED)

        return cls(AllowanceKind.OPEN, tokens)

    @property
    def is_terminal(self) -> bool:
        """True when no token can be emitted from this state."""
        return self.kind is not AllowanceKind.OPEN

    def only_allows(self, token_id: Optional[int]) -> bool:
        """True when the legal set is exactly ``{token_id}``."""
        if token_id is None or self.kind is not AllowanceKind.OPEN:
            return False
        return len(self.tokens) == 1 and token_id in self.tokens


def query_allowance(automaton: ConstraintAutomaton, state: Optional[State]) -> Allowance:
    """
    Query ``automaton`` for ``state`` and classify the result.

    An absent state (the automaton already declared completion through
    next_state) is reported as COMPLETE without asking the automaton.
    """
    if state is None:
        return Allowance(AllowanceKind.COMPLETE)
    return Allowance.of(automaton.allowed_tokens(state))


class TokenTransitionTable(ConstraintAutomaton):
    """
    Immutable automaton backed by an explicit (state, token) -> state table.

    Allowed-token sets are precomputed per state at construction, so
    allowed_tokens() is a dictionary lookup during decoding.

    Attributes:
        initial: Initial state
        complete_states: States for which allowed_tokens() returns None
        num_states: Number of distinct states referenced by the table
    """

    def __init__(
        self,
        transitions: Dict[Tuple[State, int], State],
        initial: State = 0,
        complete_states: Optional[Iterable[State]] = None,
    ):
        """
        Initialize TokenTransitionTable.

        Args:
            transitions: Mapping (state, token_id) -> next state
            initial: Initial state
            complete_states: States that denote unconditional completion
        """
        self._transitions = dict(transitions)
        self.initial = initial
        self.complete_states = frozenset(complete_states or ())

        allowed = defaultdict(set)
        states = {initial} | set(self.complete_states)
        for (state, token_id), target in self._transitions.items():
            allowed[state].add(token_id)
            states.add(state)
            states.add(target)

        self._allowed = {state: frozenset(tokens) for state, tokens in allowed.items()}
        self.num_states = len(states)

        logger.debug(
            f"TokenTransitionTable initialized: {self.num_states} states, "
            f"{len(self._transitions)} transitions"
        )

    def initial_state(self) -> State:
        return self.initial

    def allowed_tokens(self, state: State) -> Optional[FrozenSet[int]]:
        if state in self.complete_states:
            return None
        return self._allowed.get(state, frozenset())

    def next_state(self, state: State, token_id: int) -> Optional[State]:
        return self._transitions.get((state, token_id))

    @property
    def transitions(self) -> Dict[Tuple[State, int], State]:
        """Copy of the underlying transition mapping."""
        return dict(self._transitions)

    def save(self, path: Path) -> None:
        """
        Save table to disk using pickle.

        Args:
            path: Path to save file

        Example:
            ```python
            table.save(Path("cache/person.pkl"))
            ```
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            'transitions': self._transitions,
            'initial': self.initial,
            'complete_states': set(self.complete_states),
        }

        with open(path, 'wb') as f:
            pickle.dump(data, f, protocol=pickle.HIGHEST_PROTOCOL)

        logger.info(f"Saved transition table to {path}")

    @classmethod
    def load(cls, path: Path) -> "TokenTransitionTable":
        """
        Load a table from a pickle file written by save(), or from JSON.

        JSON files use the layout::

            {"initial": 0,
             "transitions": [[0, 5, 1], [1, 2, 2]],
             "complete_states": [2]}
        """
        path = Path(path)

        if path.suffix == '.json':
            with open(path, 'r') as f:
                table = cls.from_dict(json.load(f))
        else:
            with open(path, 'rb') as f:
                data = pickle.load(f)
            table = cls(
                transitions=data['transitions'],
                initial=data.get('initial', 0),
                complete_states=data.get('complete_states'),
            )

        logger.info(f"Loaded transition table from {path}")
        return table

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenTransitionTable":
        """Build a table from the JSON layout described in load()."""
        try:
            transitions = {
                (state, int(token_id)): target
                for state, token_id, target in data['transitions']
            }
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed transition table: {e}") from e

        return cls(
            transitions=transitions,
            initial=data.get('initial', 0),
            complete_states=data.get('complete_states'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Inverse of from_dict()."""
        return {
            'initial': self.initial,
            'transitions': [
                [state, token_id, target]
                for (state, token_id), target in self._transitions.items()
            ],
            'complete_states': sorted(self.complete_states, key=repr),
        }

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the table.

        Example:
            ```python
            stats = table.get_stats()
            print(f"{stats['num_transitions']} transitions")
            ```
        """
        branching = [len(tokens) for tokens in self._allowed.values()]
        terminal = sum(
            1 for state in self._all_states()
            if state not in self.complete_states and not self._allowed.get(state)
        )

        return {
            'num_states': self.num_states,
            'num_transitions': len(self._transitions),
            'num_complete_states': len(self.complete_states),
            'num_exhausted_states': terminal,
            'max_branching': max(branching) if branching else 0,
            'mean_branching': sum(branching) / len(branching) if branching else 0.0,
        }

    def _all_states(self) -> Set[State]:
        states = {self.initial} | set(self.complete_states)
        for (state, _), target in self._transitions.items():
            states.add(state)
            states.add(target)
        return states

    def __repr__(self) -> str:
        return (
            f"TokenTransitionTable(states={self.num_states}, "
            f"transitions={len(self._transitions)}, initial={self.initial!r})"
        )
