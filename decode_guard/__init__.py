"""
decode-guard: Constrained autoregressive decoding for LLMs

decode-guard is the per-step decoding layer that sits between a language
model's raw next-token scores and the emitted token. It applies a repetition
penalty, masks tokens a constraint automaton forbids, delegates the draw to a
sampler and decides when generation must stop.

Key Features:
    - Repetition penalty over a sliding window of recent tokens
    - Token-level constraint automata shared across concurrent sequences
    - One-way completion latch with explicit terminal / EOS-only semantics
    - EOS, length, constraint and stop-sequence stopping
    - Backends for HuggingFace transformers and llama.cpp

Quick Start:
    ```python
    from decode_guard import ConstrainedGenerator, GenerationConfig, TokenTransitionTable
    from decode_guard.backends import BackendFactory

    backend = BackendFactory.create("gpt2", device="cpu")
    table = TokenTransitionTable.load("yes_no.json")

    generator = ConstrainedGenerator(backend)
    result = generator.generate(
        "Is the sky blue? Answer:",
        GenerationConfig(max_length=8, temperature=0.0, constraint=table),
    )
    print(result.text, result.constraint_satisfied)
    ```

Architecture:
    1. Backend: token ids -> raw scores
    2. DecodingController: penalty -> constraint mask -> sampler -> automaton step
    3. ConstrainedGenerator: prompt handling, stop conditions, text decoding
"""

__version__ = "0.1.0"

from decode_guard.api import (  # noqa: F401
    ConstrainedGenerator,
    GenerationConfig,
    GenerationResult,
)
from decode_guard.decoding import (  # noqa: F401
    ConstraintAutomaton,
    DecodingController,
    StopReason,
    TokenTransitionTable,
)

__all__ = [
    "ConstrainedGenerator",
    "GenerationConfig",
    "GenerationResult",
    "ConstraintAutomaton",
    "DecodingController",
    "StopReason",
    "TokenTransitionTable",
]
