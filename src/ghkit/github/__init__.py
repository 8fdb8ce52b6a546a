"""GitHub module — REST client, OAuth helpers and the commit workflow."""

from ghkit.github.client import GitHubClient
from ghkit.github.commit import update_and_commit
from ghkit.github.errors import (
    BadBodyError,
    BadStatusError,
    CommitStep,
    CommitStepError,
    GitHubClientError,
    MalformedUrlError,
    NetworkError,
    RequestTimeoutError,
)
from ghkit.github.oauth import authorize_url, exchange_code

__all__ = [
    "BadBodyError",
    "BadStatusError",
    "CommitStep",
    "CommitStepError",
    "GitHubClient",
    "GitHubClientError",
    "MalformedUrlError",
    "NetworkError",
    "RequestTimeoutError",
    "authorize_url",
    "exchange_code",
    "update_and_commit",
]
