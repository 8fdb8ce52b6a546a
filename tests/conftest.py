"""Shared fixtures: an in-memory GitHub served through ``httpx.MockTransport``."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
import re
from typing import Any, Awaitable, Callable

import httpx
import pytest

from ghkit.github.client import GitHubClient

API = "https://api.github.com"

_ROUTES: list[tuple[str, str, str]] = [
    ("POST", r"/git/blobs", "create_blob"),
    ("GET", r"/git/blobs/(?P<sha>\w+)", "get_blob"),
    ("GET", r"/branches/(?P<name>.+)", "get_branch"),
    ("POST", r"/git/commits", "create_commit"),
    ("GET", r"/git/commits/(?P<sha>\w+)", "get_commit"),
    ("POST", r"/git/trees", "create_tree"),
    ("GET", r"/git/trees/(?P<sha>\w+)", "get_tree"),
    ("POST", r"/git/refs", "create_ref"),
    ("GET", r"/git/ref/(?P<ref>.+)", "get_ref"),
    ("PATCH", r"/git/refs/(?P<ref>.+)", "update_ref"),
    ("GET", r"/contents/(?P<path>.+)", "get_contents"),
]


def _sha(kind: str, payload: Any) -> str:
    raw = payload if isinstance(payload, bytes) else json.dumps(payload, sort_keys=True).encode()
    return hashlib.sha1(kind.encode() + b"\0" + raw).hexdigest()


def _wrap_b64(raw: bytes) -> str:
    text = base64.b64encode(raw).decode("ascii")
    return "\n".join(text[i : i + 60] for i in range(0, len(text), 60)) + "\n"


class FakeGitHub:
    """A single repository's Git objects, reachable through the REST routes.

    ``calls`` records the route name of every request in arrival order.
    ``overrides`` maps a route name to a canned ``httpx.Response``, a
    zero-argument response factory, or an exception to raise instead of
    serving the route.
    """

    def __init__(self, owner: str = "a", repo: str = "b") -> None:
        self.prefix = f"/repos/{owner}/{repo}"
        self.blobs: dict[str, bytes] = {}
        self.trees: dict[str, dict[str, tuple[str, str, str]]] = {}
        self.commits: dict[str, dict[str, Any]] = {}
        self.refs: dict[str, str] = {}
        self.calls: list[str] = []
        self.requests: list[httpx.Request] = []
        self.overrides: dict[str, httpx.Response | Callable[[], httpx.Response] | Exception] = {}
        self.ref_barrier: asyncio.Barrier | None = None
        self._counter = 0

        self.root_tree = self.store_tree({})
        self.root_commit = self.store_commit(self.root_tree, [], "initial commit")
        self.refs["heads/main"] = self.root_commit

    # -- object store --------------------------------------------------------

    def store_blob(self, content: bytes) -> str:
        sha = _sha("blob", content)
        self.blobs[sha] = content
        return sha

    def store_tree(self, entries: dict[str, tuple[str, str, str]]) -> str:
        sha = _sha("tree", sorted(entries.items()))
        self.trees[sha] = dict(entries)
        return sha

    def store_commit(self, tree: str, parents: list[str], message: str) -> str:
        self._counter += 1
        sha = _sha("commit", [tree, parents, message, self._counter])
        self.commits[sha] = {"tree": tree, "parents": list(parents), "message": message}
        return sha

    def seed_file(self, path: str, content: bytes, branch: str = "main") -> str:
        """Commit ``path`` directly to ``branch`` and return the new head."""
        head = self.refs[f"heads/{branch}"]
        entries = dict(self.trees[self.commits[head]["tree"]])
        entries[path] = ("100644", "blob", self.store_blob(content))
        commit = self.store_commit(self.store_tree(entries), [head], f"seed {path}")
        self.refs[f"heads/{branch}"] = commit
        return commit

    def head(self, branch: str = "main") -> str:
        return self.refs[f"heads/{branch}"]

    def tree_of(self, commit: str) -> dict[str, tuple[str, str, str]]:
        return self.trees[self.commits[commit]["tree"]]

    def is_ancestor(self, ancestor: str, commit: str) -> bool:
        pending = [commit]
        while pending:
            current = pending.pop()
            if current == ancestor:
                return True
            pending.extend(self.commits[current]["parents"])
        return False

    # -- failure injection ---------------------------------------------------

    def fail(self, route: str, status: int = 500, message: str = "boom") -> None:
        self.overrides[route] = httpx.Response(status, json={"message": message})

    def respond(self, route: str, payload: Any, status: int = 200) -> None:
        self.overrides[route] = httpx.Response(status, json=payload)

    def raise_on(self, route: str, exc: Exception) -> None:
        self.overrides[route] = exc

    def corrupt_body(self, route: str) -> None:
        """Answer ``route`` with a 200 whose gzip encoding is broken."""
        self.overrides[route] = lambda: httpx.Response(
            200,
            headers={"Content-Encoding": "gzip", "Content-Type": "application/json"},
            stream=httpx.ByteStream(b"not gzip"),
        )

    # -- transport -----------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if not path.startswith(self.prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        rest = path[len(self.prefix):]
        for method, pattern, name in _ROUTES:
            match = re.fullmatch(pattern, rest)
            if request.method == method and match:
                self.calls.append(name)
                override = self.overrides.get(name)
                if isinstance(override, Exception):
                    raise override
                if callable(override):
                    return override()
                if override is not None:
                    return httpx.Response(
                        override.status_code, headers=override.headers, content=override.content
                    )
                if name == "update_ref" and self.ref_barrier is not None:
                    await self.ref_barrier.wait()
                body = json.loads(request.content) if request.content else {}
                return getattr(self, f"_{name}")(request, body, **match.groupdict())
        return httpx.Response(404, json={"message": "Not Found"})

    # -- payloads ------------------------------------------------------------

    def _url(self, suffix: str) -> str:
        return f"{API}{self.prefix}{suffix}"

    def _commit_json(self, sha: str) -> dict[str, Any]:
        commit = self.commits[sha]
        return {
            "sha": sha,
            "url": self._url(f"/git/commits/{sha}"),
            "message": commit["message"],
            "tree": {"sha": commit["tree"], "url": self._url(f"/git/trees/{commit['tree']}")},
            "parents": [
                {"sha": p, "url": self._url(f"/git/commits/{p}")} for p in commit["parents"]
            ],
        }

    def _tree_json(self, sha: str) -> dict[str, Any]:
        return {
            "sha": sha,
            "url": self._url(f"/git/trees/{sha}"),
            "tree": [
                {"path": path, "mode": mode, "type": kind, "sha": obj}
                for path, (mode, kind, obj) in sorted(self.trees[sha].items())
            ],
            "truncated": False,
        }

    def _ref_json(self, ref: str) -> dict[str, Any]:
        sha = self.refs[ref]
        return {
            "ref": f"refs/{ref}",
            "url": self._url(f"/git/refs/{ref}"),
            "object": {"sha": sha, "type": "commit", "url": self._url(f"/git/commits/{sha}")},
        }

    # -- routes --------------------------------------------------------------

    def _create_blob(self, request: httpx.Request, body: dict[str, Any]) -> httpx.Response:
        if body.get("encoding") == "base64":
            content = base64.b64decode(body["content"])
        else:
            content = body["content"].encode("utf-8")
        sha = self.store_blob(content)
        return httpx.Response(201, json={"sha": sha, "url": self._url(f"/git/blobs/{sha}")})

    def _get_blob(self, request: httpx.Request, body: dict[str, Any], sha: str) -> httpx.Response:
        if sha not in self.blobs:
            return httpx.Response(404, json={"message": "Not Found"})
        content = self.blobs[sha]
        return httpx.Response(200, json={
            "sha": sha,
            "content": _wrap_b64(content),
            "encoding": "base64",
            "size": len(content),
            "url": self._url(f"/git/blobs/{sha}"),
        })

    def _get_branch(self, request: httpx.Request, body: dict[str, Any], name: str) -> httpx.Response:
        ref = f"heads/{name}"
        if ref not in self.refs:
            return httpx.Response(404, json={"message": "Branch not found"})
        sha = self.refs[ref]
        return httpx.Response(200, json={
            "name": name,
            "commit": {"sha": sha, "url": self._url(f"/commits/{sha}")},
            "protected": False,
        })

    def _create_commit(self, request: httpx.Request, body: dict[str, Any]) -> httpx.Response:
        if body["tree"] not in self.trees or any(p not in self.commits for p in body["parents"]):
            return httpx.Response(422, json={"message": "Unknown tree or parent"})
        sha = self.store_commit(body["tree"], body["parents"], body["message"])
        return httpx.Response(201, json=self._commit_json(sha))

    def _get_commit(self, request: httpx.Request, body: dict[str, Any], sha: str) -> httpx.Response:
        if sha not in self.commits:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=self._commit_json(sha))

    def _create_tree(self, request: httpx.Request, body: dict[str, Any]) -> httpx.Response:
        base = body.get("base_tree")
        if base is not None and base not in self.trees:
            return httpx.Response(422, json={"message": "Invalid base_tree"})
        entries = dict(self.trees[base]) if base else {}
        for item in body["tree"]:
            if item.get("content") is not None:
                entries[item["path"]] = (item["mode"], item["type"], self.store_blob(item["content"].encode()))
            elif item.get("sha") is None:
                entries.pop(item["path"], None)
            elif item["type"] == "blob" and item["sha"] not in self.blobs:
                return httpx.Response(422, json={"message": "Invalid sha"})
            else:
                entries[item["path"]] = (item["mode"], item["type"], item["sha"])
        sha = self.store_tree(entries)
        return httpx.Response(201, json=self._tree_json(sha))

    def _get_tree(self, request: httpx.Request, body: dict[str, Any], sha: str) -> httpx.Response:
        if sha not in self.trees:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=self._tree_json(sha))

    def _create_ref(self, request: httpx.Request, body: dict[str, Any]) -> httpx.Response:
        ref = body["ref"].removeprefix("refs/")
        if ref in self.refs:
            return httpx.Response(422, json={"message": "Reference already exists"})
        self.refs[ref] = body["sha"]
        return httpx.Response(201, json=self._ref_json(ref))

    def _get_ref(self, request: httpx.Request, body: dict[str, Any], ref: str) -> httpx.Response:
        if ref not in self.refs:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=self._ref_json(ref))

    def _update_ref(self, request: httpx.Request, body: dict[str, Any], ref: str) -> httpx.Response:
        if ref not in self.refs:
            return httpx.Response(422, json={"message": "Reference does not exist"})
        if body["sha"] not in self.commits:
            return httpx.Response(422, json={"message": "Object does not exist"})
        if not body.get("force") and not self.is_ancestor(self.refs[ref], body["sha"]):
            return httpx.Response(422, json={"message": "Update is not a fast forward"})
        self.refs[ref] = body["sha"]
        return httpx.Response(200, json=self._ref_json(ref))

    def _get_contents(self, request: httpx.Request, body: dict[str, Any], path: str) -> httpx.Response:
        ref = request.url.params.get("ref") or "main"
        commit = self.refs.get(f"heads/{ref}", ref)
        if commit not in self.commits:
            return httpx.Response(404, json={"message": "No commit found for the ref"})
        entry = self.tree_of(commit).get(path)
        if entry is None:
            return httpx.Response(404, json={"message": "Not Found"})
        sha = entry[2]
        content = self.blobs[sha]
        return httpx.Response(200, json={
            "type": "file",
            "encoding": "base64",
            "size": len(content),
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "content": _wrap_b64(content),
            "sha": sha,
            "url": self._url(f"/contents/{path}"),
        })


@pytest.fixture()
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture()
def run_client(fake_github: FakeGitHub) -> Callable[[Callable[[GitHubClient], Awaitable[Any]]], Any]:
    """Run ``action(client)`` against ``fake_github`` on a fresh event loop."""

    def _run(action: Callable[[GitHubClient], Awaitable[Any]]) -> Any:
        async def _main() -> Any:
            async with GitHubClient(transport=fake_github.transport()) as client:
                return await action(client)

        return asyncio.run(_main())

    return _run
