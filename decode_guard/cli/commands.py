"""
CLI command implementations.

This module contains the business logic for each CLI command:
- generate: Run (optionally constrained) generation against a model
- inspect: Show statistics for a constraint automaton file
"""

import json
from pathlib import Path
from typing import List, Optional

from decode_guard.config import GenerationConfig
from decode_guard.decoding.automaton import TokenTransitionTable

from .display import (
    console,
    create_progress_spinner,
    print_automaton_stats,
    print_error,
    print_header,
    print_info,
    print_model_loading,
    print_output,
    print_result_stats,
    print_separator,
    print_success,
    print_warning,
)


def load_automaton_file(automaton_path: Path) -> TokenTransitionTable:
    """
    Load a constraint automaton from a JSON or pickle file.

    Raises:
        ValueError: If the file doesn't exist or cannot be parsed
    """
    if not automaton_path.exists():
        raise ValueError(f"Automaton file not found: {automaton_path}")

    try:
        return TokenTransitionTable.load(automaton_path)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in automaton file: {e}")


def generate_command(
    prompt: str,
    model: str,
    backend: Optional[str],
    device: Optional[str],
    automaton_path: Optional[Path],
    max_length: int,
    temperature: float,
    top_p: Optional[float],
    seed: int,
    repetition_penalty: float,
    repetition_penalty_last_n: int,
    stop_sequences: List[str],
    stop_on_match: bool,
    include_prompt: bool,
    output_path: Optional[Path],
) -> None:
    """
    Execute the generate command.

    Args:
        prompt: Generation prompt
        model: Model ID or GGUF path
        backend: Backend to use (None = auto-detect)
        device: Device to use (cpu, cuda, mps, or None for auto)
        automaton_path: Optional constraint automaton file
        max_length: Maximum new tokens
        temperature: Sampling temperature
        top_p: Nucleus sampling mass
        seed: Sampler seed
        repetition_penalty: Penalty scalar (1.0 disables)
        repetition_penalty_last_n: Penalty window
        stop_sequences: Literal stop strings
        stop_on_match: Stop as soon as the constraint matches
        include_prompt: Prefix the output with the prompt
        output_path: Optional path to save the result as JSON
    """
    print_header("decode-guard - Constrained Generation")

    constraint = None
    if automaton_path is not None:
        constraint = load_automaton_file(automaton_path)
        print_success(f"Loaded constraint from: {automaton_path} ({constraint!r})")

    config = GenerationConfig(
        max_length=max_length,
        temperature=temperature,
        top_p=top_p,
        seed=seed,
        repetition_penalty=repetition_penalty,
        repetition_penalty_last_n=repetition_penalty_last_n,
        stop_sequences=stop_sequences,
        include_prompt=include_prompt,
        constraint=constraint,
        stop_on_match=stop_on_match,
    )

    print_separator()
    print_info(f"Prompt: [bold]{prompt}[/bold]")
    print_info(f"Device: [bold]{device or 'auto'}[/bold]")
    print_info(f"Max Length: [bold]{max_length}[/bold]")
    print_info(f"Repetition Penalty: [bold]{repetition_penalty}[/bold] (last {repetition_penalty_last_n})")
    print_separator()

    print_model_loading(model, backend or "auto")

    from decode_guard.backends import BackendFactory
    from decode_guard.generator import ConstrainedGenerator

    with create_progress_spinner() as progress:
        progress.add_task(description="Loading model...", total=None)
        model_backend = BackendFactory.create(model, backend_type=backend, device=device)

    print_success("Model loaded successfully")

    generator = ConstrainedGenerator(model_backend, config)

    console.print()
    with create_progress_spinner() as progress:
        progress.add_task(description="Generating...", total=None)
        result = generator.generate(prompt)

    console.print()
    print_separator()

    if result.constraint_satisfied is False:
        print_warning("Constraint was not satisfied before generation stopped")

    print_output(result.text, title="Generated Output")

    print_result_stats(
        stop_reason=result.stop_reason.value,
        tokens_generated=result.tokens_generated,
        latency_ms=result.latency_ms,
        constraint_satisfied=result.constraint_satisfied,
        stop_sequence=result.stop_sequence,
    )

    if output_path:
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w') as f:
                json.dump(result.to_dict(), f, indent=2)
            print_success(f"Output saved to: {output_path}")
        except OSError as e:
            print_warning(f"Failed to save output: {e}")


def inspect_command(automaton_path: Path, show_initial: bool) -> None:
    """
    Execute the inspect command.

    Args:
        automaton_path: Constraint automaton file
        show_initial: Also list the tokens allowed from the initial state
    """
    print_header("decode-guard - Automaton Inspection")

    try:
        table = load_automaton_file(automaton_path)
    except ValueError as e:
        print_error(str(e))
        raise SystemExit(1)

    print_success(f"Loaded {table!r}")
    print_automaton_stats(table.get_stats())

    if show_initial:
        allowed = table.allowed_tokens(table.initial_state())
        if allowed is None:
            print_info("Initial state denotes completion")
        elif not allowed:
            print_info("Initial state allows no tokens")
        else:
            print_info(f"Initial state allows {len(allowed)} tokens: {sorted(allowed)}")
