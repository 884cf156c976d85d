"""
High-level Python API for decode-guard.

This module provides the main user-facing API for constrained generation.
"""

from decode_guard.config import GenerationConfig
from decode_guard.generator import ConstrainedGenerator, GenerationResult

# Re-export for convenience
__all__ = ["ConstrainedGenerator", "GenerationConfig", "GenerationResult"]
