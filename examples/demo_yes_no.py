#!/usr/bin/env python3
"""
Demo: Yes/no answers with a token automaton.

This demonstrates:
- Building a TokenTransitionTable from the model's own tokenizer
- Forcing the answer to be " yes" or " no"
- Stopping as soon as the constraint is satisfied, or running on to EOS
- Streaming an unconstrained continuation with a repetition penalty
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from decode_guard import ConstrainedGenerator, GenerationConfig, TokenTransitionTable
from decode_guard.backends import BackendFactory


def build_answer_table(tokenizer) -> TokenTransitionTable:
    (yes,) = tokenizer.encode(" yes")
    (no,) = tokenizer.encode(" no")
    eos = tokenizer.eos_token_id

    return TokenTransitionTable(
        transitions={(0, yes): 1, (0, no): 1, (1, eos): 2},
        initial=0,
        complete_states={2},
    )


def main():
    print("=" * 60)
    print("decode-guard Demo: Yes/No Answers")
    print("=" * 60)

    backend = BackendFactory.create("gpt2", device=None)
    generator = ConstrainedGenerator(backend, GenerationConfig.deterministic(max_length=16))
    table = build_answer_table(backend.get_tokenizer())

    print("✓ Generator initialized")
    print(f"Automaton: {table!r}")

    questions = [
        "Is the sky blue? Answer:",
        "Can fish climb trees? Answer:",
        "Is water wet? Answer:",
    ]

    for i, question in enumerate(questions, 1):
        print("\n" + "=" * 60)
        print(f"Question {i}/{len(questions)}: {question}")
        print("=" * 60)

        result = generator.generate(question, constraint=table)
        print(f"Answer: {result.text!r}")
        print(f"Stop reason: {result.stop_reason.value}")
        print(f"Constraint satisfied: {result.constraint_satisfied}")
        print(f"Latency: {result.latency_ms:.0f}ms")

        to_eos = generator.generate(question, constraint=table, stop_on_constraint_satisfaction=False)
        print(f"Run to EOS: {to_eos.token_ids} ({to_eos.stop_reason.value})")

    print("\n" + "=" * 60)
    print("Streaming with repetition penalty")
    print("=" * 60)

    for piece in generator.generate_stream(
        "The three primary colors are",
        repetition_penalty=1.3,
        repetition_penalty_last_n=32,
        max_length=32,
        stop_sequences=["\n"],
    ):
        print(piece, end="", flush=True)
    print()

    print("\n" + "=" * 60)
    print("Demo complete")
    print("=" * 60)


if __name__ == "__main__":
    main()
