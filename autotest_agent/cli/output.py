"""Rich-based output utilities for the autotest-agent CLI."""

from rich.console import Console

# Shared console instance
console = Console(stderr=True)


def print_error(message: str) -> None:
    """Print an error message in red."""
    console.print(f"[bold red]Error:[/bold red] {message}", highlight=False)


def print_step(message: str) -> None:
    """Print a completed step."""
    console.print(f"[green]✓[/green] {message}", highlight=False)


def print_info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[dim]{message}[/dim]", highlight=False)
