"""
Command-line interface module.

This module provides a rich terminal interface for decode-guard using Typer and Rich.

Commands:
    - generate: Generate text with penalty, constraint and stop settings
    - inspect: Show statistics for a constraint automaton file

Example Usage:
    ```bash
    # Unconstrained generation
    decode-guard generate --prompt "Once upon a time" --model gpt2 --max-length 40

    # Constrained by a token automaton
    decode-guard generate \\
        --prompt "Is the sky blue? Answer:" \\
        --model gpt2 \\
        --automaton yes_no.json \\
        --temperature 0

    # Inspect an automaton
    decode-guard inspect --automaton yes_no.json --show-initial
    ```
"""

from .main import app

__all__ = ["app"]
