"""Commit a single file to a branch through the Git Data API.

GitHub has no endpoint that updates a file *and* moves a branch in one
request through the Git Data API, so :func:`update_and_commit` chains the
calls itself::

    create blob -> read branch -> read commit -> read tree
        -> create tree -> create commit -> update ref

Each stage takes the :class:`~ghkit.models.UpdateAndCommit` record built so
far and returns a copy with the fields it derived. The first failing stage
stops the chain and is reported as a :class:`CommitStepError`. Nothing is
rolled back: a failure after the blob is created leaves that blob (and any
tree or commit made after it) unreferenced on the server.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ghkit.github.client import GitHubClient
from ghkit.github.errors import (
    BadBodyError,
    CommitStep,
    CommitStepError,
    GitHubClientError,
)
from ghkit.models import (
    AuthToken,
    Branch,
    NewTreeEntry,
    Owner,
    TreeMode,
    UpdateAndCommit,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Stage = Callable[[GitHubClient, UpdateAndCommit], Awaitable[UpdateAndCommit]]


def _require(value: T | None, field: str) -> T:
    if value is None:
        raise RuntimeError(f"{field} is not set; the stage that fills it has not run")
    return value


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


async def _create_blob(client: GitHubClient, rec: UpdateAndCommit) -> UpdateAndCommit:
    blob = await client.create_blob(rec.owner, rec.repo, rec.content, auth=rec.auth)
    return rec.model_copy(update={"blob_sha": blob.sha})


async def _get_branch(client: GitHubClient, rec: UpdateAndCommit) -> UpdateAndCommit:
    info = await client.get_branch(rec.owner, rec.repo, rec.branch, auth=rec.auth)
    return rec.model_copy(update={"head_sha": info.commit.sha, "head_url": info.commit.url})


async def _get_commit(client: GitHubClient, rec: UpdateAndCommit) -> UpdateAndCommit:
    head_sha = _require(rec.head_sha, "head_sha")
    commit = await client.get_commit(rec.owner, rec.repo, head_sha, auth=rec.auth)
    return rec.model_copy(update={"tree_sha": commit.tree.sha, "tree_url": commit.tree.url})


async def _get_tree(client: GitHubClient, rec: UpdateAndCommit) -> UpdateAndCommit:
    tree_sha = _require(rec.tree_sha, "tree_sha")
    if rec.tree_url:
        tree = await client.fetch_tree(rec.tree_url, auth=rec.auth)
    else:
        tree = await client.get_tree(rec.owner, rec.repo, tree_sha, auth=rec.auth)
    return rec.model_copy(update={"base_tree_sha": tree.sha})


async def _create_tree(client: GitHubClient, rec: UpdateAndCommit) -> UpdateAndCommit:
    blob_sha = _require(rec.blob_sha, "blob_sha")
    base_tree = _require(rec.base_tree_sha or rec.tree_sha, "tree_sha")
    entry = NewTreeEntry(path=rec.path, mode=TreeMode.FILE, type="blob", sha=blob_sha)
    tree = await client.create_tree(
        rec.owner,
        rec.repo,
        [entry],
        base_tree=base_tree,
        auth=rec.auth,
    )
    return rec.model_copy(update={"new_tree_sha": tree.sha})


async def _create_commit(client: GitHubClient, rec: UpdateAndCommit) -> UpdateAndCommit:
    commit = await client.create_commit(
        rec.owner,
        rec.repo,
        rec.message,
        _require(rec.new_tree_sha, "new_tree_sha"),
        [_require(rec.head_sha, "head_sha")],
        auth=rec.auth,
    )
    return rec.model_copy(update={"commit_sha": commit.sha})


def _update_ref(force: bool) -> Stage:
    async def stage(client: GitHubClient, rec: UpdateAndCommit) -> UpdateAndCommit:
        commit_sha = _require(rec.commit_sha, "commit_sha")
        ref = await client.update_ref(
            rec.owner, rec.repo, rec.ref, commit_sha, force=force, auth=rec.auth
        )
        try:
            ref_sha = ref.commit_sha()
        except ValueError as exc:
            raise BadBodyError(str(exc)) from exc
        return rec.model_copy(update={"ref_sha": ref_sha})

    return stage


def build_pipeline(*, force: bool = True, refetch_tree: bool = True) -> list[tuple[CommitStep, Stage]]:
    """Return the ordered ``(step, stage)`` pairs for one commit.

    ``refetch_tree=False`` drops the tree read and builds the new tree
    straight from the SHA found in the head commit.
    """
    pipeline: list[tuple[CommitStep, Stage]] = [
        (CommitStep.CREATE_BLOB, _create_blob),
        (CommitStep.GET_BRANCH, _get_branch),
        (CommitStep.GET_COMMIT, _get_commit),
    ]
    if refetch_tree:
        pipeline.append((CommitStep.GET_TREE, _get_tree))
    pipeline += [
        (CommitStep.CREATE_TREE, _create_tree),
        (CommitStep.CREATE_COMMIT, _create_commit),
        (CommitStep.UPDATE_REF, _update_ref(force)),
    ]
    return pipeline


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def run_pipeline(
    client: GitHubClient,
    record: UpdateAndCommit,
    pipeline: list[tuple[CommitStep, Stage]],
) -> UpdateAndCommit:
    """Run ``pipeline`` stage by stage, stopping at the first failure."""
    total = len(CommitStep)
    for step, stage in pipeline:
        logger.info(
            "step %d/%d %s (%s/%s@%s)",
            step.number, total, step.value, record.owner, record.repo, record.branch,
        )
        try:
            record = await stage(client, record)
        except GitHubClientError as exc:
            logger.warning("step %d/%d %s failed: %s", step.number, total, step.value, exc.message)
            raise CommitStepError(step, exc, record) from exc
    return record


async def update_and_commit(
    client: GitHubClient,
    *,
    auth: AuthToken,
    owner: Owner,
    repo: str,
    path: str,
    content: bytes | str,
    message: str,
    branch: Branch = Branch("main"),
    force: bool = True,
    refetch_tree: bool = True,
) -> UpdateAndCommit:
    """Commit ``content`` to ``path`` on ``branch`` and move the branch to it.

    The new commit's only parent is the branch head read during the run.
    With ``force=True`` (the default) the ref update overwrites whatever the
    branch points at by then, so a commit pushed by someone else between
    the read and the update is dropped from the branch. Pass ``force=False``
    to have GitHub reject that update as a non-fast-forward instead.

    Returns:
        The finished working record; ``commit_sha`` is the new commit.

    Raises:
        CommitStepError: naming the stage that failed.
    """
    raw = content.encode("utf-8") if isinstance(content, str) else content
    record = UpdateAndCommit(
        auth=auth,
        owner=owner,
        repo=repo,
        branch=branch,
        path=path.lstrip("/"),
        content=raw,
        message=message,
    )
    pipeline = build_pipeline(force=force, refetch_tree=refetch_tree)
    record = await run_pipeline(client, record, pipeline)
    logger.info(
        "committed %s to %s/%s@%s as %s",
        record.path, record.owner, record.repo, record.branch, record.commit_sha,
    )
    return record
