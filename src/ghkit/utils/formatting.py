"""Rich formatting helpers for CLI output."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from ghkit.github.errors import CommitStepError
    from ghkit.models import UpdateAndCommit

console = Console()


# ---------------------------------------------------------------------------
# Commit results
# ---------------------------------------------------------------------------


_COMMIT_ROWS = (
    ("Blob", "blob_sha"),
    ("Previous head", "head_sha"),
    ("Base tree", "tree_sha"),
    ("New tree", "new_tree_sha"),
    ("New commit", "commit_sha"),
    ("Branch now at", "ref_sha"),
)


def format_commit_table(record: "UpdateAndCommit", *, title: str = "Commit created") -> Table:
    """Build a Rich table listing the objects created by a commit run."""
    table = Table(title=f"{title}: {record.owner}/{record.repo}@{record.branch}", show_lines=True)
    table.add_column("Object", style="bold")
    table.add_column("SHA", style="cyan")

    for label, attr in _COMMIT_ROWS:
        value = getattr(record, attr)
        table.add_row(label, str(value) if value is not None else "—")

    return table


def print_commit_result(record: "UpdateAndCommit") -> None:
    """Print the SHAs produced by a successful commit run."""
    console.print()
    console.print(format_commit_table(record))
    console.print()


def print_commit_failure(exc: "CommitStepError") -> None:
    """Print which stage failed and what had been created before it."""
    print_error(str(exc))
    console.print(format_commit_table(exc.record, title="Partial state"))


# ---------------------------------------------------------------------------
# Generic helpers
# ---------------------------------------------------------------------------


def print_error(message: str) -> None:
    """Print a styled error message."""
    console.print(Text(f"✖ {message}", style="bold red"))


def print_success(message: str) -> None:
    """Print a styled success message."""
    console.print(Text(f"✔ {message}", style="bold green"))


def print_info(message: str) -> None:
    """Print a styled informational message."""
    console.print(Text(f"ℹ {message}", style="bold blue"))
