"""
Main CLI entry point using Typer.

This module defines the command-line interface for decode-guard.
It provides two commands: generate and inspect.
"""

from pathlib import Path
from typing import List, Optional

import typer
from typing_extensions import Annotated

from .commands import generate_command, inspect_command
from .display import print_error


app = typer.Typer(
    name="decode-guard",
    help="decode-guard - Constrained decoding for LLMs",
    add_completion=False,
    rich_markup_mode="rich"
)


@app.command("generate")
def generate(
    prompt: Annotated[
        str,
        typer.Option("--prompt", "-p", help="Generation prompt")
    ],
    model: Annotated[
        str,
        typer.Option("--model", "-m", help="Model ID (HuggingFace) or path (GGUF)")
    ] = "TinyLlama/TinyLlama-1.1B-Chat-v1.0",
    backend: Annotated[
        Optional[str],
        typer.Option("--backend", "-b", help="Backend: transformers or llamacpp (default: auto-detect)")
    ] = None,
    device: Annotated[
        Optional[str],
        typer.Option("--device", "-d", help="Device: cpu, cuda, mps, or None for auto-detect")
    ] = None,
    automaton: Annotated[
        Optional[Path],
        typer.Option("--automaton", "-a", help="Constraint automaton file (.json or .pkl)", exists=True, file_okay=True, dir_okay=False)
    ] = None,
    max_length: Annotated[
        int,
        typer.Option("--max-length", help="Maximum new tokens to generate")
    ] = 512,
    temperature: Annotated[
        float,
        typer.Option("--temperature", "-t", help="Sampling temperature (0 = greedy)")
    ] = 0.7,
    top_p: Annotated[
        Optional[float],
        typer.Option("--top-p", help="Nucleus sampling probability mass")
    ] = None,
    seed: Annotated[
        int,
        typer.Option("--seed", help="Sampler seed")
    ] = 299792458,
    repetition_penalty: Annotated[
        float,
        typer.Option("--repetition-penalty", help="Repetition penalty (1.0 disables)")
    ] = 1.1,
    repetition_penalty_last_n: Annotated[
        int,
        typer.Option("--repetition-penalty-last-n", help="Number of recent tokens the penalty considers")
    ] = 64,
    stop: Annotated[
        Optional[List[str]],
        typer.Option("--stop", "-s", help="Stop sequence (can be used multiple times)")
    ] = None,
    stop_on_match: Annotated[
        bool,
        typer.Option("--stop-on-match/--no-stop-on-match", help="Stop as soon as the constraint matches")
    ] = True,
    include_prompt: Annotated[
        bool,
        typer.Option("--include-prompt", help="Include the prompt in the output")
    ] = False,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Path to save the result as JSON")
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging")
    ] = False,
) -> None:
    """
    Generate text, optionally constrained by a token automaton.

    Example:
        decode-guard generate \\
            --prompt "Is the sky blue? Answer:" \\
            --model gpt2 \\
            --automaton yes_no.json \\
            --temperature 0 \\
            --output result.json
    """
    if verbose:
        from decode_guard.utils import configure_logging
        configure_logging(level="debug", formatter="detailed")

    try:
        generate_command(
            prompt=prompt,
            model=model,
            backend=backend,
            device=device,
            automaton_path=automaton,
            max_length=max_length,
            temperature=temperature,
            top_p=top_p,
            seed=seed,
            repetition_penalty=repetition_penalty,
            repetition_penalty_last_n=repetition_penalty_last_n,
            stop_sequences=stop or [],
            stop_on_match=stop_on_match,
            include_prompt=include_prompt,
            output_path=output,
        )
    except Exception as e:
        print_error(f"Command failed: {e}")
        raise typer.Exit(code=1)


@app.command("inspect")
def inspect(
    automaton: Annotated[
        Path,
        typer.Option("--automaton", "-a", help="Constraint automaton file (.json or .pkl)", exists=True, file_okay=True, dir_okay=False)
    ],
    show_initial: Annotated[
        bool,
        typer.Option("--show-initial", help="List tokens allowed from the initial state")
    ] = False,
) -> None:
    """
    Show statistics for a constraint automaton.

    Example:
        decode-guard inspect --automaton yes_no.json --show-initial
    """
    try:
        inspect_command(automaton_path=automaton, show_initial=show_initial)
    except SystemExit:
        raise typer.Exit(code=1)
    except Exception as e:
        print_error(f"Command failed: {e}")
        raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit")
    ] = False,
) -> None:
    """
    decode-guard - Constrained decoding for LLMs.
    """
    if version:
        from decode_guard import __version__
        typer.echo(f"decode-guard version {__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def cli() -> None:
    """CLI entry point for the console script."""
    app()


if __name__ == "__main__":
    cli()
