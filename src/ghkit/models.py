"""Shared Pydantic data models for ghkit.

Response records mirror the JSON objects returned by the GitHub REST API.
Fields without a default are required: a payload that lacks one (or sends
``null``) fails validation instead of being filled in silently.
"""

from __future__ import annotations

import base64
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic_core import core_schema


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


class _Identifier:
    """Opaque wrapper around a non-empty string.

    Build one by calling the type, turn it back into text with ``str()``.
    Identifiers of different wrapper types never compare equal.
    """

    __slots__ = ("_value",)

    _forbidden: str = ""

    def __init__(self, value: str) -> None:
        if not isinstance(value, str) or not value:
            raise ValueError(f"{type(self).__name__} must be a non-empty string")
        bad = [ch for ch in self._forbidden if ch in value]
        if bad:
            raise ValueError(f"{type(self).__name__} may not contain {bad[0]!r}: {value!r}")
        self._value = value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._value == other._value  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._value))

    def _serialize(self) -> str:
        return self._value

    @classmethod
    def _validate(cls, value: Any) -> Any:
        if isinstance(value, cls):
            return value
        return cls(value)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(cls._serialize),
        )


class Owner(_Identifier):
    """A repository owner (user or organization login)."""

    __slots__ = ()
    _forbidden = "/"


class Branch(_Identifier):
    """A branch name, without the ``refs/heads/`` prefix."""

    __slots__ = ()


class CommitKind:
    """Tag for SHAs that name commit objects."""


class TreeKind:
    """Tag for SHAs that name tree objects."""


class BlobKind:
    """Tag for SHAs that name blob objects."""


KindT = TypeVar("KindT")


class ShaHash(_Identifier, Generic[KindT]):
    """A Git object SHA, tagged with the kind of object it names.

    The tag only exists for the type checker: ``ShaHash[TreeKind]`` and
    ``ShaHash[CommitKind]`` are the same class at runtime.
    """

    __slots__ = ()


CommitSha = ShaHash[CommitKind]
TreeSha = ShaHash[TreeKind]
BlobSha = ShaHash[BlobKind]


class AuthToken(_Identifier):
    """Bearer token for authenticated calls.

    Every textual form is masked; the raw value only leaves the object
    through :meth:`header`.
    """

    __slots__ = ()

    def __str__(self) -> str:
        return "****"

    def __repr__(self) -> str:
        return "AuthToken('****')"

    def _serialize(self) -> str:
        return "****"

    def header(self) -> str:
        """Return the ``Authorization`` header value."""
        return f"token {self._value}"


# ---------------------------------------------------------------------------
# Git data
# ---------------------------------------------------------------------------


class TreeMode(str, Enum):
    """File modes accepted in tree entries."""

    FILE = "100644"
    EXECUTABLE = "100755"
    SUBDIRECTORY = "040000"
    SUBMODULE = "160000"
    SYMLINK = "120000"


class BlobRef(BaseModel):
    """Result of creating a blob."""

    sha: BlobSha
    url: str


class Blob(BaseModel):
    """A blob as returned by the blobs endpoint."""

    sha: BlobSha
    content: str
    encoding: str
    size: int
    url: str | None = None

    def decoded(self) -> bytes:
        """Return the raw bytes of the blob."""
        return _decode_content(self.content, self.encoding)


class CommitPointer(BaseModel):
    sha: CommitSha
    url: str | None = None


class TreePointer(BaseModel):
    sha: TreeSha
    url: str | None = None


class BranchInfo(BaseModel):
    """A branch and the commit it currently points at."""

    name: str
    commit: CommitPointer
    protected: bool = False


class RefTarget(BaseModel):
    sha: ShaHash[Any]
    type: str
    url: str | None = None


class GitRef(BaseModel):
    """A Git reference such as ``refs/heads/main``."""

    model_config = ConfigDict(populate_by_name=True)

    ref: str
    url: str | None = None
    target: RefTarget = Field(alias="object")

    def commit_sha(self) -> CommitSha:
        """Return the target SHA, checking that it names a commit."""
        if self.target.type != "commit":
            raise ValueError(f"{self.ref} points at a {self.target.type}, not a commit")
        return CommitSha(str(self.target.sha))


class GitCommit(BaseModel):
    """A commit object from the Git Data API."""

    sha: CommitSha
    message: str
    tree: TreePointer
    parents: list[CommitPointer]
    url: str | None = None
    html_url: str | None = None


class TreeEntry(BaseModel):
    """One entry of an existing tree."""

    path: str
    mode: TreeMode
    type: str
    sha: ShaHash[Any]
    size: int | None = None
    url: str | None = None


class GitTree(BaseModel):
    sha: TreeSha
    tree: list[TreeEntry]
    url: str | None = None
    truncated: bool = False

    def entry(self, path: str) -> TreeEntry | None:
        """Return the entry at ``path``, if present."""
        for item in self.tree:
            if item.path == path:
                return item
        return None


class NewTreeEntry(BaseModel):
    """An entry to place in a tree being created.

    ``content`` may be given instead of ``sha`` to let GitHub create the
    blob; with neither set the entry deletes ``path`` from the base tree.
    """

    path: str
    mode: TreeMode = TreeMode.FILE
    type: Literal["blob", "tree", "commit"] = "blob"
    sha: ShaHash[Any] | None = None
    content: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "path": self.path,
            "mode": self.mode.value,
            "type": self.type,
        }
        if self.content is not None:
            payload["content"] = self.content
        else:
            payload["sha"] = str(self.sha) if self.sha is not None else None
        return payload


# ---------------------------------------------------------------------------
# Repository contents
# ---------------------------------------------------------------------------


class ContentInfo(BaseModel):
    """Metadata about a file in the contents API."""

    name: str
    path: str
    sha: BlobSha
    size: int
    type: str
    url: str | None = None
    html_url: str | None = None
    download_url: str | None = None


class FileContents(ContentInfo):
    """A file together with its (usually base64) encoded content."""

    content: str
    encoding: str

    def decoded(self) -> bytes:
        """Return the raw bytes of the file."""
        return _decode_content(self.content, self.encoding)

    def text(self, encoding: str = "utf-8") -> str:
        return self.decoded().decode(encoding)


class FileCommit(BaseModel):
    """Result of creating or updating a file through the contents API."""

    content: ContentInfo
    commit: GitCommit


# ---------------------------------------------------------------------------
# Collaboration
# ---------------------------------------------------------------------------


class User(BaseModel):
    login: str
    id: int
    html_url: str | None = None


class PullRequestBranch(BaseModel):
    """The head or base side of a pull request."""

    label: str
    ref: str
    sha: CommitSha


class PullRequest(BaseModel):
    number: int
    state: str
    title: str
    head: PullRequestBranch
    base: PullRequestBranch
    html_url: str
    body: str | None = None
    url: str | None = None
    draft: bool = False
    user: User | None = None


class Issue(BaseModel):
    number: int
    state: str
    title: str
    html_url: str
    body: str | None = None
    user: User | None = None


class IssueComment(BaseModel):
    id: int
    body: str
    user: User
    html_url: str
    created_at: str | None = None


class Repository(BaseModel):
    """Repository metadata, e.g. the result of creating a fork."""

    id: int
    name: str
    full_name: str
    owner: User
    html_url: str
    default_branch: str
    fork: bool = False
    private: bool = False


class AccessToken(BaseModel):
    """Result of the OAuth code exchange."""

    access_token: AuthToken
    token_type: str
    scope: str = ""

    @property
    def scopes(self) -> list[str]:
        return [s for s in self.scope.split(",") if s]


# ---------------------------------------------------------------------------
# Commit workflow
# ---------------------------------------------------------------------------


class UpdateAndCommit(BaseModel):
    """Working record threaded through :func:`ghkit.github.commit.update_and_commit`.

    The inputs are fixed up front; each pipeline stage returns a copy with
    the fields it derived filled in.
    """

    model_config = ConfigDict(frozen=True)

    auth: AuthToken
    owner: Owner
    repo: str
    branch: Branch
    path: str
    content: bytes = Field(repr=False)
    message: str

    blob_sha: BlobSha | None = None
    head_sha: CommitSha | None = None
    head_url: str | None = None
    tree_sha: TreeSha | None = None
    tree_url: str | None = None
    base_tree_sha: TreeSha | None = None
    new_tree_sha: TreeSha | None = None
    commit_sha: CommitSha | None = None
    ref_sha: CommitSha | None = None

    @property
    def ref(self) -> str:
        return f"heads/{self.branch}"


def _decode_content(content: str, encoding: str) -> bytes:
    if encoding == "base64":
        # GitHub wraps base64 payloads at 60 columns.
        return base64.b64decode("".join(content.split()))
    return content.encode("utf-8")
