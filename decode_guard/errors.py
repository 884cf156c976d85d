"""
Exception hierarchy for decode-guard.

Three families of failure exist during constrained decoding:

    - Configuration errors: malformed penalty, window or sampling parameters.
      Raised at construction time, never deferred to a decoding step.
    - Score errors: the score vector handed to a decoding step has the wrong
      shape. Raised before the step mutates any state.
    - Sampling errors: the sampler cannot draw from the (masked) scores, for
      example because every token was masked out.

Out-of-range token ids (from history or from an automaton) are not errors;
they are skipped silently.
"""


class DecodeGuardError(Exception):
    """Base class for all decode-guard errors."""


class ConfigurationError(DecodeGuardError, ValueError):
    """Invalid generation or controller configuration."""


class ScoreShapeError(DecodeGuardError, ValueError):
    """Score vector does not have the expected (vocab_size,) shape."""


class SamplingError(DecodeGuardError, RuntimeError):
    """Sampler could not draw a token from the given scores."""
