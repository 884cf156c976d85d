"""
Unit tests for constraint completion latching and satisfaction.
"""

import pytest
import torch

from conftest import EOS, HELLO, NO, WORLD, YES, ArgmaxSampler, ScriptedSampler, make_table
from decode_guard.decoding import ConstraintBinding, DecodingController
from decode_guard.decoding.automaton import Allowance, ConstraintAutomaton
from decode_guard.decoding.state_tracker import satisfies_completion


class ExplicitAutomaton(ConstraintAutomaton):
    """Automaton given as plain dictionaries, so next_state can return None."""

    def __init__(self, allowed, transitions, initial="S0"):
        self.allowed = allowed
        self.transitions = transitions
        self.initial = initial

    def initial_state(self):
        return self.initial

    def allowed_tokens(self, state):
        return self.allowed[state]

    def next_state(self, state, token_id):
        return self.transitions.get((state, token_id))


def controller_for(automaton, tokens, eos=EOS):
    controller = DecodingController(ScriptedSampler(tokens), constraint=automaton)
    if eos is not None:
        controller.set_eos_token(eos)
    return controller


class TestSatisfiesCompletion:
    """Test the shared completion condition."""

    def test_terminal_allowances(self):
        assert satisfies_completion(Allowance.of(None), EOS)
        assert satisfies_completion(Allowance.of(set()), EOS)
        assert satisfies_completion(Allowance.of(None), None)

    def test_eos_only(self):
        assert satisfies_completion(Allowance.of({EOS}), EOS)
        assert not satisfies_completion(Allowance.of({EOS}), None)

    def test_eos_among_others(self):
        assert not satisfies_completion(Allowance.of({EOS, HELLO}), EOS)


class TestCompletionLatch:
    """Test when the latch is set."""

    def test_latches_when_only_eos_remains(self):
        """{HELLO, EOS} is not complete; after HELLO only EOS remains and the latch sets."""
        automaton = ExplicitAutomaton(
            allowed={"S0": {HELLO, EOS}, "S1": {EOS}},
            transitions={("S0", HELLO): "S1"},
        )
        controller = controller_for(automaton, [HELLO])

        assert not controller.is_constraint_satisfied()

        controller.sample_next(torch.zeros(8))

        assert controller.constraint_completed
        assert controller.is_constraint_satisfied()

    def test_no_latch_when_eos_is_one_of_many(self):
        automaton = ExplicitAutomaton(
            allowed={"S0": {HELLO}, "S1": {EOS, WORLD}},
            transitions={("S0", HELLO): "S1"},
        )
        controller = controller_for(automaton, [HELLO])

        controller.sample_next(torch.zeros(8))

        assert not controller.constraint_completed
        assert not controller.is_constraint_satisfied()

    def test_latches_on_complete_state(self, yes_no_table):
        controller = controller_for(yes_no_table, [YES, EOS], eos=None)
        controller.sample_next(torch.zeros(8))
        assert not controller.constraint_completed

        controller.sample_next(torch.zeros(8))

        assert controller.constraint_completed

    def test_latches_on_exhausted_state(self):
        table = make_table({("S0", YES): "S1"})
        controller = controller_for(table, [YES])

        controller.sample_next(torch.zeros(8))

        assert controller.constraint_completed

    def test_latches_when_next_state_absent(self):
        """next_state returning None means the automaton declared completion."""
        automaton = ExplicitAutomaton(allowed={"S0": {HELLO, WORLD}}, transitions={})
        controller = controller_for(automaton, [HELLO])

        controller.sample_next(torch.zeros(8))

        assert controller.constraint_state is None
        assert controller.constraint_completed
        assert controller.is_constraint_satisfied()

    def test_step_after_absent_state_still_draws(self):
        """Once the state is absent, scores pass unmasked and the loop is told to stop."""
        automaton = ExplicitAutomaton(allowed={"S0": {HELLO}}, transitions={})
        controller = DecodingController(ArgmaxSampler(), constraint=automaton)
        controller.set_eos_token(EOS)
        controller.sample_next(torch.tensor([0.0, 0.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0]))
        assert controller.constraint_state is None

        scores = torch.tensor([0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 3.0, 0.0])
        token = controller.sample_next(scores)

        assert token == WORLD
        assert controller.history() == (HELLO, WORLD)
        assert controller.constraint_state is None
        assert controller.should_stop(token, max_length=100)

    def test_step_on_complete_state_still_draws(self, yes_no_table):
        controller = controller_for(yes_no_table, [NO, EOS])
        controller.sample_next(torch.zeros(8))
        controller.sample_next(torch.zeros(8))
        assert controller.constraint_state == "END"

        assert torch.equal(controller.apply_constraints(torch.ones(8)), torch.ones(8))
        assert controller.should_stop(EOS, max_length=100)

    def test_no_eos_configured_does_not_latch_on_singleton(self):
        automaton = ExplicitAutomaton(
            allowed={"S0": {HELLO}, "S1": {EOS}},
            transitions={("S0", HELLO): "S1"},
        )
        controller = controller_for(automaton, [HELLO], eos=None)

        controller.sample_next(torch.zeros(8))

        assert not controller.constraint_completed

    def test_latch_is_monotonic(self):
        """Once set, the latch survives states that would not set it."""
        automaton = ExplicitAutomaton(
            allowed={"S0": {HELLO}, "S1": {EOS}, "S2": {HELLO, WORLD}},
            transitions={("S0", HELLO): "S1", ("S1", EOS): "S2", ("S2", WORLD): "S2"},
        )
        binding = ConstraintBinding.start(automaton, anchor=0)

        binding.advance(HELLO, history_length=1, eos_token_id=EOS)
        assert binding.completed

        binding.advance(EOS, history_length=2, eos_token_id=EOS)
        binding.advance(WORLD, history_length=3, eos_token_id=EOS)

        assert binding.state == "S2"
        assert binding.allowance().tokens == frozenset({HELLO, WORLD})
        assert binding.completed
        assert binding.is_satisfied(EOS)

    def test_no_latch_without_progress_past_anchor(self):
        """The latch only considers tokens emitted after the anchor."""
        automaton = ExplicitAutomaton(
            allowed={"S0": {HELLO}, "S1": {EOS}},
            transitions={("S0", HELLO): "S1"},
        )
        binding = ConstraintBinding.start(automaton, anchor=5)

        binding.advance(HELLO, history_length=5, eos_token_id=EOS)

        assert not binding.completed
        assert binding.state == "S1"

    def test_rebind_clears_latch(self, yes_no_table):
        controller = controller_for(yes_no_table, [NO])
        controller.sample_next(torch.zeros(8))
        assert controller.constraint_completed

        controller.bind_constraint(yes_no_table)

        assert not controller.constraint_completed
        assert not controller.is_constraint_satisfied()


class TestSatisfactionPredicates:
    """Test the two satisfaction checks."""

    def test_unbound_is_never_satisfied(self):
        controller = DecodingController(ArgmaxSampler())

        assert not controller.is_constraint_satisfied()
        assert not controller.is_constraint_satisfied_stop_on_match()

    def test_current_state_checked_before_any_token(self):
        """A state that only allows EOS counts as satisfied even before the latch."""
        automaton = ExplicitAutomaton(allowed={"S0": {EOS}}, transitions={})
        controller = controller_for(automaton, [])

        assert not controller.constraint_completed
        assert controller.is_constraint_satisfied()

    @pytest.mark.parametrize("tokens", [[], [YES], [NO, EOS]])
    def test_predicates_agree(self, yes_no_table, tokens):
        controller = controller_for(yes_no_table, list(tokens))
        for _ in tokens:
            controller.sample_next(torch.zeros(8))

        assert controller.is_constraint_satisfied() == controller.is_constraint_satisfied_stop_on_match()
