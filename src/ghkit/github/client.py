"""GitHub REST API client for ghkit."""

from __future__ import annotations

import base64
import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from ghkit import __version__
from ghkit.github.errors import (
    BadBodyError,
    BadStatusError,
    GitHubClientError,
    MalformedUrlError,
    NetworkError,
    RequestTimeoutError,
)
from ghkit.models import (
    AuthToken,
    Blob,
    BlobRef,
    BlobSha,
    Branch,
    BranchInfo,
    CommitSha,
    FileCommit,
    FileContents,
    GitCommit,
    GitRef,
    GitTree,
    Issue,
    IssueComment,
    NewTreeEntry,
    Owner,
    PullRequest,
    Repository,
    TreeSha,
)

if TYPE_CHECKING:
    from ghkit.utils.config import Settings

logger = logging.getLogger(__name__)

_GITHUB_API = "https://api.github.com"

ModelT = TypeVar("ModelT", bound=BaseModel)


class GitHubClient:
    """Async wrapper around the GitHub REST API.

    Every public method issues exactly one request and returns a validated
    record. Read operations accept an optional ``auth`` token; write
    operations require one. The client keeps no state between calls other
    than the underlying ``httpx`` connection pool.

    Args:
        base_url: API root, ``https://api.github.com`` by default.
        timeout: Per-request timeout in seconds.
        transport: Optional ``httpx`` transport (used by tests).
    """

    def __init__(
        self,
        *,
        base_url: str = _GITHUB_API,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"ghkit/{__version__}",
        }
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "GitHubClient":
        return cls(base_url=settings.api_url, timeout=settings.timeout, transport=transport)

    # -- lifecycle -----------------------------------------------------------

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- helpers -------------------------------------------------------------

    def build_request(
        self,
        method: str,
        path: str,
        *,
        auth: AuthToken | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Request:
        """Build (but do not send) a request.

        ``path`` is either relative to ``base_url`` or an absolute URL
        previously returned by the API.
        """
        headers: dict[str, str] = {}
        if auth is not None:
            headers["Authorization"] = auth.header()
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            return self._client.build_request(
                method, path, params=params or None, json=json, headers=headers
            )
        except httpx.InvalidURL as exc:
            raise MalformedUrlError(f"Invalid request URL {path!r}: {exc}") from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        auth: AuthToken | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the parsed JSON body."""
        request = self.build_request(method, path, auth=auth, params=params, json=json)
        try:
            resp = await self._client.send(request)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"{method} {request.url} timed out") from exc
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            raise MalformedUrlError(f"Invalid request URL {request.url}: {exc}") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {request.url} failed: {exc}") from exc
        except httpx.DecodingError as exc:
            raise BadBodyError(
                f"Could not decode the response body for {method} {request.url.path}: {exc}"
            ) from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"{method} {request.url} failed: {exc}") from exc

        logger.debug("%s %s -> %s", method, request.url.path, resp.status_code)
        if not resp.is_success:
            raise bad_status(resp)
        try:
            return resp.json()
        except ValueError as exc:
            raise BadBodyError(
                f"GitHub returned a non-JSON body for {method} {request.url.path}",
                body=resp.text[:300],
            ) from exc

    @staticmethod
    def _repo_path(owner: Owner, repo: str, suffix: str = "") -> str:
        return f"/repos/{quote(str(owner), safe='')}/{quote(repo, safe='')}{suffix}"

    # -- branches & refs -----------------------------------------------------

    async def get_branch(
        self,
        owner: Owner,
        repo: str,
        branch: Branch,
        *,
        auth: AuthToken | None = None,
    ) -> BranchInfo:
        """Fetch a branch and the commit it points at."""
        data = await self._request(
            "GET",
            self._repo_path(owner, repo, f"/branches/{quote(str(branch), safe='')}"),
            auth=auth,
        )
        return decode(BranchInfo, data)

    async def create_branch(
        self,
        owner: Owner,
        repo: str,
        branch: Branch,
        sha: CommitSha,
        *,
        auth: AuthToken,
    ) -> GitRef:
        """Create ``refs/heads/<branch>`` pointing at ``sha``."""
        data = await self._request(
            "POST",
            self._repo_path(owner, repo, "/git/refs"),
            auth=auth,
            json={"ref": f"refs/heads/{branch}", "sha": str(sha)},
        )
        return decode(GitRef, data)

    async def get_ref(
        self,
        owner: Owner,
        repo: str,
        ref: str,
        *,
        auth: AuthToken | None = None,
    ) -> GitRef:
        """Fetch a single reference, e.g. ``heads/main`` or ``tags/v1.0``."""
        data = await self._request(
            "GET",
            self._repo_path(owner, repo, f"/git/ref/{_ref_path(ref)}"),
            auth=auth,
        )
        return decode(GitRef, data)

    async def update_ref(
        self,
        owner: Owner,
        repo: str,
        ref: str,
        sha: CommitSha,
        *,
        force: bool = False,
        auth: AuthToken,
    ) -> GitRef:
        """Point ``ref`` at ``sha``.

        Without ``force`` GitHub only accepts fast-forward updates and
        answers 422 otherwise.
        """
        data = await self._request(
            "PATCH",
            self._repo_path(owner, repo, f"/git/refs/{_ref_path(ref)}"),
            auth=auth,
            json={"sha": str(sha), "force": force},
        )
        return decode(GitRef, data)

    # -- commits -------------------------------------------------------------

    async def get_commit(
        self,
        owner: Owner,
        repo: str,
        sha: CommitSha,
        *,
        auth: AuthToken | None = None,
    ) -> GitCommit:
        """Fetch a commit object by SHA."""
        data = await self._request(
            "GET",
            self._repo_path(owner, repo, f"/git/commits/{sha}"),
            auth=auth,
        )
        return decode(GitCommit, data)

    async def create_commit(
        self,
        owner: Owner,
        repo: str,
        message: str,
        tree: TreeSha,
        parents: Sequence[CommitSha],
        *,
        auth: AuthToken,
    ) -> GitCommit:
        """Create a commit object (the branch is not moved)."""
        data = await self._request(
            "POST",
            self._repo_path(owner, repo, "/git/commits"),
            auth=auth,
            json={
                "message": message,
                "tree": str(tree),
                "parents": [str(p) for p in parents],
            },
        )
        return decode(GitCommit, data)

    # -- trees ---------------------------------------------------------------

    async def get_tree(
        self,
        owner: Owner,
        repo: str,
        sha: TreeSha,
        *,
        recursive: bool = False,
        auth: AuthToken | None = None,
    ) -> GitTree:
        """Fetch a tree by SHA."""
        data = await self._request(
            "GET",
            self._repo_path(owner, repo, f"/git/trees/{sha}"),
            auth=auth,
            params={"recursive": "1" if recursive else None},
        )
        return decode(GitTree, data)

    async def fetch_tree(self, url: str, *, auth: AuthToken | None = None) -> GitTree:
        """Fetch a tree through the API URL embedded in a commit."""
        data = await self._request("GET", url, auth=auth)
        return decode(GitTree, data)

    async def create_tree(
        self,
        owner: Owner,
        repo: str,
        entries: Iterable[NewTreeEntry],
        *,
        base_tree: TreeSha | None = None,
        auth: AuthToken,
    ) -> GitTree:
        """Create a tree, optionally as a delta against ``base_tree``."""
        payload: dict[str, Any] = {"tree": [e.to_payload() for e in entries]}
        if base_tree is not None:
            payload["base_tree"] = str(base_tree)
        data = await self._request(
            "POST",
            self._repo_path(owner, repo, "/git/trees"),
            auth=auth,
            json=payload,
        )
        return decode(GitTree, data)

    # -- blobs ---------------------------------------------------------------

    async def get_blob(
        self,
        owner: Owner,
        repo: str,
        sha: BlobSha,
        *,
        auth: AuthToken | None = None,
    ) -> Blob:
        data = await self._request(
            "GET",
            self._repo_path(owner, repo, f"/git/blobs/{sha}"),
            auth=auth,
        )
        return decode(Blob, data)

    async def create_blob(
        self,
        owner: Owner,
        repo: str,
        content: bytes | str,
        *,
        auth: AuthToken,
    ) -> BlobRef:
        """Upload ``content`` as a blob; text is sent as UTF-8."""
        data = await self._request(
            "POST",
            self._repo_path(owner, repo, "/git/blobs"),
            auth=auth,
            json={"content": encode_content(content), "encoding": "base64"},
        )
        return decode(BlobRef, data)

    # -- contents ------------------------------------------------------------

    async def get_file_contents(
        self,
        owner: Owner,
        repo: str,
        path: str,
        *,
        ref: str | None = None,
        auth: AuthToken | None = None,
    ) -> FileContents:
        """Fetch a file (not a directory) through the contents API."""
        data = await self._request(
            "GET",
            self._repo_path(owner, repo, f"/contents/{_file_path(path)}"),
            auth=auth,
            params={"ref": ref},
        )
        return decode(FileContents, data)

    async def update_file_contents(
        self,
        owner: Owner,
        repo: str,
        path: str,
        message: str,
        content: bytes | str,
        *,
        sha: BlobSha | None = None,
        branch: Branch | None = None,
        auth: AuthToken,
    ) -> FileCommit:
        """Create or replace a file in a single commit.

        ``sha`` must be the blob SHA of the file being replaced; leave it
        unset to create a new file.
        """
        payload: dict[str, Any] = {"message": message, "content": encode_content(content)}
        if sha is not None:
            payload["sha"] = str(sha)
        if branch is not None:
            payload["branch"] = str(branch)
        data = await self._request(
            "PUT",
            self._repo_path(owner, repo, f"/contents/{_file_path(path)}"),
            auth=auth,
            json=payload,
        )
        return decode(FileCommit, data)

    # -- pull requests -------------------------------------------------------

    async def list_pull_requests(
        self,
        owner: Owner,
        repo: str,
        *,
        state: str = "open",
        head: str | None = None,
        base: str | None = None,
        auth: AuthToken | None = None,
    ) -> list[PullRequest]:
        """List pull requests (first page only)."""
        data = await self._request(
            "GET",
            self._repo_path(owner, repo, "/pulls"),
            auth=auth,
            params={"state": state, "head": head, "base": base},
        )
        return decode_list(PullRequest, data)

    async def get_pull_request(
        self,
        owner: Owner,
        repo: str,
        number: int,
        *,
        auth: AuthToken | None = None,
    ) -> PullRequest:
        data = await self._request(
            "GET",
            self._repo_path(owner, repo, f"/pulls/{number}"),
            auth=auth,
        )
        return decode(PullRequest, data)

    async def create_pull_request(
        self,
        owner: Owner,
        repo: str,
        title: str,
        head: str,
        base: str,
        *,
        body: str | None = None,
        draft: bool = False,
        auth: AuthToken,
    ) -> PullRequest:
        """Open a pull request merging ``head`` into ``base``.

        ``head`` may be ``"user:branch"`` for cross-repository requests.
        """
        payload: dict[str, Any] = {"title": title, "head": head, "base": base, "draft": draft}
        if body is not None:
            payload["body"] = body
        data = await self._request(
            "POST",
            self._repo_path(owner, repo, "/pulls"),
            auth=auth,
            json=payload,
        )
        return decode(PullRequest, data)

    # -- issues --------------------------------------------------------------

    async def create_issue(
        self,
        owner: Owner,
        repo: str,
        title: str,
        *,
        body: str | None = None,
        labels: Sequence[str] = (),
        assignees: Sequence[str] = (),
        auth: AuthToken,
    ) -> Issue:
        payload: dict[str, Any] = {"title": title}
        if body is not None:
            payload["body"] = body
        if labels:
            payload["labels"] = list(labels)
        if assignees:
            payload["assignees"] = list(assignees)
        data = await self._request(
            "POST",
            self._repo_path(owner, repo, "/issues"),
            auth=auth,
            json=payload,
        )
        return decode(Issue, data)

    async def list_issue_comments(
        self,
        owner: Owner,
        repo: str,
        number: int,
        *,
        auth: AuthToken | None = None,
    ) -> list[IssueComment]:
        """List comments on an issue or pull request (first page only)."""
        data = await self._request(
            "GET",
            self._repo_path(owner, repo, f"/issues/{number}/comments"),
            auth=auth,
        )
        return decode_list(IssueComment, data)

    async def create_issue_comment(
        self,
        owner: Owner,
        repo: str,
        number: int,
        body: str,
        *,
        auth: AuthToken,
    ) -> IssueComment:
        data = await self._request(
            "POST",
            self._repo_path(owner, repo, f"/issues/{number}/comments"),
            auth=auth,
            json={"body": body},
        )
        return decode(IssueComment, data)

    # -- forks ---------------------------------------------------------------

    async def create_fork(
        self,
        owner: Owner,
        repo: str,
        *,
        organization: str | None = None,
        auth: AuthToken,
    ) -> Repository:
        """Fork a repository into the token's account (or ``organization``).

        GitHub creates forks asynchronously; the returned repository may not
        be populated yet.
        """
        payload: dict[str, Any] = {}
        if organization:
            payload["organization"] = organization
        data = await self._request(
            "POST",
            self._repo_path(owner, repo, "/forks"),
            auth=auth,
            json=payload,
        )
        return decode(Repository, data)


# ---------------------------------------------------------------------------
# Encoding / decoding
# ---------------------------------------------------------------------------


def encode_content(content: bytes | str) -> str:
    """Base64-encode file content for transmission; text is sent as UTF-8."""
    raw = content.encode("utf-8") if isinstance(content, str) else content
    return base64.b64encode(raw).decode("ascii")


def decode(model: type[ModelT], data: Any) -> ModelT:
    """Validate a parsed JSON payload into ``model``."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise BadBodyError(
            f"Unexpected {model.__name__} payload: {_summarize(exc)}",
            body=repr(data)[:300],
        ) from exc


def decode_list(model: type[ModelT], data: Any) -> list[ModelT]:
    """Validate a JSON array of ``model`` objects."""
    try:
        return TypeAdapter(list[model]).validate_python(data)  # type: ignore[valid-type]
    except ValidationError as exc:
        raise BadBodyError(
            f"Unexpected list[{model.__name__}] payload: {_summarize(exc)}",
            body=repr(data)[:300],
        ) from exc


def _summarize(exc: ValidationError) -> str:
    errors = exc.errors()
    first = errors[0]
    loc = ".".join(str(p) for p in first["loc"]) or "<root>"
    more = f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""
    return f"{loc}: {first['msg']}{more}"


def bad_status(resp: httpx.Response) -> GitHubClientError:
    api_message: str | None = None
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        api_message = payload["message"]
    detail = api_message or resp.text[:300]
    return BadStatusError(
        f"GitHub API error {resp.status_code}: {detail}",
        status_code=resp.status_code,
        body=resp.text[:300],
        api_message=api_message,
    )


def _ref_path(ref: str) -> str:
    ref = ref.removeprefix("refs/")
    return quote(ref, safe="/")


def _file_path(path: str) -> str:
    return quote(path.lstrip("/"), safe="/")
