"""
Unit tests for ConstrainedGenerator using a fake backend.
"""

import logging

import pytest

from conftest import ANSWER, DOT, EOS, HELLO, MAYBE, NO, WORLD, YES, FakeBackend, make_table
from decode_guard import ConstrainedGenerator, GenerationConfig, StopReason
from decode_guard.errors import ConfigurationError

GREEDY = GenerationConfig.deterministic(max_length=20)


class TestUnconstrainedGeneration:
    """Test stop conditions without a constraint."""

    def test_stops_on_eos(self):
        backend = FakeBackend([HELLO, WORLD])
        generator = ConstrainedGenerator(backend, GREEDY)

        result = generator.generate("Answer:")

        assert result.text == " hello world"
        assert result.token_ids == [HELLO, WORLD, EOS]
        assert result.stop_reason is StopReason.EOS
        assert result.tokens_generated == 3
        assert result.constraint_satisfied is None
        assert result.latency_ms >= 0

    def test_prompt_is_first_model_input(self):
        backend = FakeBackend([HELLO])
        ConstrainedGenerator(backend, GREEDY).generate("Answer:")

        assert backend.calls[0] == [ANSWER]
        assert backend.calls[1] == [ANSWER, HELLO]

    def test_stops_on_max_length(self):
        backend = FakeBackend([HELLO] * 10)
        generator = ConstrainedGenerator(backend, GREEDY)

        result = generator.generate("Answer:", max_length=3)

        assert result.token_ids == [HELLO, HELLO, HELLO]
        assert result.stop_reason is StopReason.MAX_LENGTH

    def test_stops_on_stop_sequence(self):
        backend = FakeBackend([HELLO, DOT, WORLD])
        generator = ConstrainedGenerator(backend, GREEDY)

        result = generator.generate("Answer:", stop_sequences=["."])

        assert result.text == " hello."
        assert result.stop_reason is StopReason.STOP_SEQUENCE
        assert result.stop_sequence == "."

    def test_include_prompt(self):
        backend = FakeBackend([YES])
        generator = ConstrainedGenerator(backend, GREEDY)

        result = generator.generate("Answer:", include_prompt=True)

        assert result.text == "Answer: yes"
        assert result.token_ids == [YES, EOS]

    def test_controller_uses_config_penalty(self):
        generator = ConstrainedGenerator(FakeBackend([]), GREEDY)

        controller = generator.create_controller(
            [ANSWER],
            GREEDY.with_options(repetition_penalty=1.3, repetition_penalty_last_n=8),
        )

        assert controller.repetition_penalty == 1.3
        assert controller.repetition_penalty_window == 8
        assert controller.history() == (ANSWER,)
        assert controller.constraint is None

    def test_backend_reset_per_call(self):
        backend = FakeBackend([YES])
        generator = ConstrainedGenerator(backend, GREEDY)

        first = generator.generate("Answer:")
        second = generator.generate("Answer:")

        assert backend.resets == 2
        assert first.text == second.text == " yes"

    def test_empty_prompt_without_bos_raises(self):
        backend = FakeBackend([YES])
        generator = ConstrainedGenerator(backend, GREEDY)

        with pytest.raises(ConfigurationError, match="encodes to no tokens"):
            generator.generate("")

        assert backend.calls == []

    def test_empty_prompt_starts_from_bos(self):
        """The BOS token stands in for an empty prompt and is not part of the output."""
        backend = FakeBackend([YES])
        backend.tokenizer.bos_token_id = ANSWER
        generator = ConstrainedGenerator(backend, GREEDY)

        result = generator.generate("")

        assert backend.calls[0] == [ANSWER]
        assert result.token_ids == [YES, EOS]
        assert result.text == " yes"

    def test_invalid_override_raises(self):
        generator = ConstrainedGenerator(FakeBackend([]), GREEDY)

        with pytest.raises(ConfigurationError):
            generator.generate("Answer:", max_length=0)


class TestConstrainedGeneration:
    """Test generation with a bound constraint automaton."""

    def test_constraint_forces_legal_token(self, yes_no_table):
        """The model prefers ' maybe' but only ' yes' / ' no' are legal."""
        backend = FakeBackend([MAYBE])
        generator = ConstrainedGenerator(backend, GREEDY)

        result = generator.generate("Answer:", constraint=yes_no_table)

        assert result.token_ids[0] in (YES, NO)
        assert result.stop_reason is StopReason.CONSTRAINT
        assert result.constraint_satisfied is True

    def test_stops_when_constraint_satisfied(self, yes_no_table):
        backend = FakeBackend([NO])
        generator = ConstrainedGenerator(backend, GREEDY)

        result = generator.generate("Answer:", constraint=yes_no_table)

        assert result.text == " no"
        assert result.token_ids == [NO]
        assert result.stop_reason is StopReason.CONSTRAINT

    def test_runs_to_eos_without_satisfaction_stop(self, yes_no_table):
        backend = FakeBackend([NO])
        generator = ConstrainedGenerator(backend, GREEDY)

        result = generator.generate(
            "Answer:",
            constraint=yes_no_table,
            stop_on_constraint_satisfaction=False,
        )

        assert result.text == " no"
        assert result.token_ids == [NO, EOS]
        assert result.stop_reason is StopReason.EOS
        assert result.constraint_satisfied is True

    def test_stop_on_match_disabled_uses_satisfaction_check(self, yes_no_table):
        backend = FakeBackend([YES])
        generator = ConstrainedGenerator(backend, GREEDY)

        result = generator.generate("Answer:", constraint=yes_no_table, stop_on_match=False)

        assert result.token_ids == [YES]
        assert result.stop_reason is StopReason.CONSTRAINT

    def test_exhausted_automaton_stops(self):
        table = make_table({("S0", HELLO): "S1"})
        backend = FakeBackend([HELLO, WORLD])
        generator = ConstrainedGenerator(backend, GREEDY)

        result = generator.generate("Answer:", constraint=table)

        assert result.token_ids == [HELLO]
        assert result.stop_reason is StopReason.CONSTRAINT

    def test_initial_state_without_transitions_stops_before_drawing(self):
        """An automaton bound in a state with no legal token produces nothing."""
        table = make_table({("S1", YES): "S2"}, initial="S0")
        backend = FakeBackend([YES])
        generator = ConstrainedGenerator(backend)

        result = generator.generate("Answer:", GenerationConfig(constraint=table, temperature=0.0, max_length=3))

        assert result.text == ""
        assert result.token_ids == []
        assert result.tokens_generated == 0
        assert result.stop_reason is StopReason.CONSTRAINT
        assert result.constraint_satisfied is True
        assert backend.calls == []

    def test_initial_complete_state_stops_before_drawing(self):
        table = make_table({("S1", YES): "S2"}, initial="S0", complete_states=["S0"])
        generator = ConstrainedGenerator(FakeBackend([YES]), GREEDY)

        result = generator.generate("Answer:", constraint=table)

        assert result.token_ids == []
        assert result.stop_reason is StopReason.CONSTRAINT

    def test_initial_eos_only_state_counts_as_satisfied(self):
        table = make_table({("S0", EOS): "END"}, initial="S0", complete_states=["END"])
        generator = ConstrainedGenerator(FakeBackend([YES]), GREEDY)

        stopped = generator.generate("Answer:", constraint=table)
        to_eos = generator.generate("Answer:", constraint=table, stop_on_constraint_satisfaction=False)

        assert stopped.token_ids == []
        assert stopped.stop_reason is StopReason.CONSTRAINT
        assert to_eos.token_ids == [EOS]
        assert to_eos.stop_reason is StopReason.EOS

    def test_stream_stops_before_drawing(self):
        table = make_table({("S1", YES): "S2"}, initial="S0")
        generator = ConstrainedGenerator(FakeBackend([YES]), GREEDY)

        assert list(generator.generate_stream("Answer:", constraint=table)) == []

    def test_constraint_anchored_after_prompt(self, yes_no_table):
        """Prompt tokens never advance the automaton."""
        backend = FakeBackend([YES])
        generator = ConstrainedGenerator(backend, GREEDY)

        prompt_ids = backend.tokenizer.encode("Answer: yes")
        controller = generator.create_controller(prompt_ids, GREEDY.with_options(constraint=yes_no_table))

        assert controller.constraint_anchor == len(prompt_ids)
        assert controller.constraint_state == "S0"
        assert controller.eos_token_id == EOS

    def test_same_automaton_across_calls(self, yes_no_table):
        backend = FakeBackend([YES])
        generator = ConstrainedGenerator(backend, GREEDY.with_options(constraint=yes_no_table))

        first = generator.generate("Answer:")
        second = generator.generate("Answer:")

        assert first.token_ids == second.token_ids == [YES]


class TestStreaming:
    """Test generate_stream."""

    def test_deltas_join_to_full_text(self):
        config = GenerationConfig.deterministic(max_length=20)

        pieces = list(ConstrainedGenerator(FakeBackend([HELLO, WORLD, DOT]), config).generate_stream("Answer:"))
        result = ConstrainedGenerator(FakeBackend([HELLO, WORLD, DOT]), config).generate("Answer:")

        assert pieces == [" hello", " world", "."]
        assert "".join(pieces) == result.text

    def test_stream_includes_prompt(self):
        generator = ConstrainedGenerator(FakeBackend([YES]), GREEDY)

        pieces = list(generator.generate_stream("Answer:", include_prompt=True))

        assert pieces == ["Answer:", " yes"]


class TestDebugTokens:
    """Test per-token debug logging."""

    def test_debug_tokens_logged(self, caplog):
        generator = ConstrainedGenerator(FakeBackend([YES]), GREEDY)

        with caplog.at_level(logging.DEBUG, logger="decode_guard.generator"):
            generator.generate("Answer:", debug_tokens=True)

        assert "' yes'" in caplog.text
        assert "'<eos>'" in caplog.text

    def test_get_info_and_repr(self):
        generator = ConstrainedGenerator(FakeBackend([]), GREEDY)

        assert generator.get_info()['vocab_size'] == 8
        assert repr(generator).startswith("ConstrainedGenerator(backend=")
