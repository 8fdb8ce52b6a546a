"""Exceptions raised by the GitHub client and the commit workflow."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ghkit.models import UpdateAndCommit


class GitHubClientError(Exception):
    """Raised when a GitHub API request fails."""

    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MalformedUrlError(GitHubClientError):
    """The request URL could not be built or used."""


class RequestTimeoutError(GitHubClientError):
    """The request exceeded its deadline."""

    retryable = True


class NetworkError(GitHubClientError):
    """The request failed at the transport level (DNS, refused, reset...)."""

    retryable = True


class BadStatusError(GitHubClientError):
    """The server answered with a non-2xx status.

    Attributes:
        status_code: HTTP status code.
        body: Raw response text.
        api_message: The ``message`` field of a JSON error body, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        body: str = "",
        api_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.api_message = api_message


class BadBodyError(GitHubClientError):
    """A successful response whose body did not decode into the expected record."""

    def __init__(self, message: str, *, body: str = "") -> None:
        super().__init__(message)
        self.body = body


class CommitStep(str, Enum):
    """Stages of the update-and-commit workflow, in execution order."""

    CREATE_BLOB = "create_blob"
    GET_BRANCH = "get_branch"
    GET_COMMIT = "get_commit"
    GET_TREE = "get_tree"
    CREATE_TREE = "create_tree"
    CREATE_COMMIT = "create_commit"
    UPDATE_REF = "update_ref"

    @property
    def number(self) -> int:
        return list(CommitStep).index(self) + 1


class CommitStepError(GitHubClientError):
    """A stage of the update-and-commit workflow failed.

    Objects created by earlier stages are left on the server.

    Attributes:
        step: The stage that failed.
        cause: The underlying client error.
        record: The working record as it stood when the stage started.
    """

    def __init__(
        self,
        step: CommitStep,
        cause: GitHubClientError,
        record: "UpdateAndCommit",
    ) -> None:
        super().__init__(f"step {step.number} ({step.value}) failed: {cause.message}")
        self.step = step
        self.cause = cause
        self.record = record

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.cause.retryable
