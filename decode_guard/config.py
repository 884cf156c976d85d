"""
Generation configuration.

GenerationConfig collects everything the generation loop needs besides the
model itself: sampling policy, repetition penalty, stop conditions and the
optional constraint automaton. Values are validated when the config is
created so malformed settings fail before any decoding happens.

Usage:
    ```python
    from decode_guard import GenerationConfig

    config = GenerationConfig(
        max_length=128,
        temperature=0.0,
        repetition_penalty=1.2,
        repetition_penalty_last_n=32,
        stop_sequences=["\\n\\n"],
        constraint=table,
    )

    looser = config.with_options(temperature=0.8, top_p=0.95)
    ```
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional

from decode_guard.decoding.automaton import ConstraintAutomaton
from decode_guard.decoding.penalty import validate_penalty
from decode_guard.errors import ConfigurationError

DEFAULT_SEED = 299792458


@dataclass
class GenerationConfig:
    """
    Settings for one generation call.

    Attributes:
        max_length: Maximum number of new tokens
        temperature: Sampling temperature (0 = greedy)
        top_p: Nucleus sampling mass, None to disable
        seed: Sampler seed
        repetition_penalty: Penalty scalar, 1.0 disables it
        repetition_penalty_last_n: Number of recent tokens the penalty looks at
        stop_sequences: Literal strings that end generation
        include_prompt: Include the prompt in the returned text
        debug_tokens: Log every generated token id and piece at DEBUG level
        constraint: Optional shared constraint automaton
        stop_on_constraint_satisfaction: Stop once the constraint is satisfied
        stop_on_match: Use the stop-on-match satisfaction predicate
    """
    max_length: int = 512
    temperature: float = 0.7
    top_p: Optional[float] = None
    seed: int = DEFAULT_SEED
    repetition_penalty: float = 1.1
    repetition_penalty_last_n: int = 64
    stop_sequences: List[str] = field(default_factory=list)
    include_prompt: bool = False
    debug_tokens: bool = False
    constraint: Optional[ConstraintAutomaton] = None
    stop_on_constraint_satisfaction: bool = True
    stop_on_match: bool = True

    def __post_init__(self):
        if not isinstance(self.max_length, int) or self.max_length < 1:
            raise ConfigurationError(f"max_length must be >= 1, got {self.max_length}")
        if self.temperature < 0:
            raise ConfigurationError(f"temperature must be >= 0, got {self.temperature}")
        if self.top_p is not None and not 0.0 < self.top_p <= 1.0:
            raise ConfigurationError(f"top_p must be in (0, 1], got {self.top_p}")

        validate_penalty(self.repetition_penalty, self.repetition_penalty_last_n)

        self.stop_sequences = list(self.stop_sequences)
        if any(not seq for seq in self.stop_sequences):
            raise ConfigurationError("stop_sequences must not contain empty strings")

        if self.constraint is not None and not isinstance(self.constraint, ConstraintAutomaton):
            raise ConfigurationError(
                f"constraint must be a ConstraintAutomaton, got {type(self.constraint).__name__}"
            )

    def with_options(self, **overrides) -> "GenerationConfig":
        """Return a validated copy with ``overrides`` applied."""
        return replace(self, **overrides)

    @classmethod
    def deterministic(cls, **overrides) -> "GenerationConfig":
        """Greedy decoding preset."""
        options = {'temperature': 0.0, 'repetition_penalty': 1.0}
        options.update(overrides)
        return cls(**options)

    @classmethod
    def balanced(cls, **overrides) -> "GenerationConfig":
        """Moderate sampling preset."""
        options = {'temperature': 0.7, 'top_p': 0.9, 'repetition_penalty': 1.1}
        options.update(overrides)
        return cls(**options)
