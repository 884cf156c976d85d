"""
Rich terminal display utilities for CLI.

Provides formatted output using the Rich library for:
- Progress indicators
- Generated text panels
- Error messages
- Statistics tables
"""

import json
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text


console = Console()


def print_header(title: str) -> None:
    """Print a formatted header."""
    console.print()
    console.print(f"[bold cyan]{title}[/bold cyan]")
    console.print("=" * len(title))
    console.print()


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    console.print(f"[yellow]⚠[/yellow] {message}")


def print_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


def print_output(text: str, title: Optional[str] = None) -> None:
    """
    Print generated text, syntax-highlighted when it parses as JSON.

    Args:
        text: Generated text
        title: Optional title for the panel
    """
    try:
        json.loads(text)
        body = Syntax(text, "json", theme="monokai", line_numbers=False)
    except ValueError:
        body = Text(text)

    if title:
        console.print(Panel(body, title=f"[bold]{title}[/bold]", border_style="cyan"))
    else:
        console.print(body)


def print_result_stats(
    stop_reason: str,
    tokens_generated: int,
    latency_ms: float,
    constraint_satisfied: Optional[bool] = None,
    stop_sequence: Optional[str] = None,
) -> None:
    """
    Print generation result statistics in a table.

    Args:
        stop_reason: Why generation ended
        tokens_generated: Number of tokens generated
        latency_ms: Generation latency in milliseconds
        constraint_satisfied: Constraint status, None when unconstrained
        stop_sequence: Matched stop sequence, if any
    """
    table = Table(title="Generation Statistics", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan", width=22)
    table.add_column("Value", style="white", width=30)

    table.add_row("Stop Reason", stop_reason)
    if stop_sequence is not None:
        table.add_row("Stop Sequence", repr(stop_sequence))

    if constraint_satisfied is not None:
        status = (
            Text("✓ Satisfied", style="green bold")
            if constraint_satisfied
            else Text("✗ Incomplete", style="red bold")
        )
        table.add_row("Constraint", status)

    table.add_row("Tokens Generated", str(tokens_generated))
    table.add_row("Latency", f"{latency_ms:.0f} ms")
    if tokens_generated and latency_ms > 0:
        table.add_row("Throughput", f"{tokens_generated / (latency_ms / 1000):.1f} tok/s")

    console.print()
    console.print(table)
    console.print()


def print_automaton_stats(stats: Dict[str, Any], title: str = "Constraint Automaton") -> None:
    """Print TokenTransitionTable.get_stats() output as a table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan", width=24)
    table.add_column("Value", style="white", width=16, justify="right")

    labels = {
        'num_states': "States",
        'num_transitions': "Transitions",
        'num_complete_states': "Completion States",
        'num_exhausted_states': "Exhausted States",
        'max_branching': "Max Branching",
        'mean_branching': "Mean Branching",
    }

    for key, label in labels.items():
        value = stats.get(key)
        if isinstance(value, float):
            table.add_row(label, f"{value:.2f}")
        else:
            table.add_row(label, str(value))

    console.print()
    console.print(table)
    console.print()


def create_progress_spinner() -> Progress:
    """Create a progress spinner for long-running operations."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console
    )


def print_separator() -> None:
    console.print("[dim]" + "─" * 70 + "[/dim]")


def print_model_loading(model_id: str, backend: str) -> None:
    console.print()
    print_info(f"Loading model: [bold]{model_id}[/bold]")
    print_info(f"Backend: [bold]{backend}[/bold]")
    console.print()
