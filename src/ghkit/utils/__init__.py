"""Utils module — configuration and formatting helpers."""

from ghkit.utils.config import Settings
from ghkit.utils.formatting import (
    console,
    print_commit_failure,
    print_commit_result,
    print_error,
    print_info,
    print_success,
)

__all__ = [
    "Settings",
    "console",
    "print_commit_failure",
    "print_commit_result",
    "print_error",
    "print_info",
    "print_success",
]
