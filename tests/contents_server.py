"""In-memory contents API server for testing, served through ``httpx.MockTransport``.

Implements the subset of the Jupyter ``/api/contents`` behaviour the client
relies on, plus failure injection per (method, path).
"""

from __future__ import annotations

import base64
import dataclasses
import json
from typing import Any

import httpx

TIMESTAMP = "2024-01-01T12:00:00.000000Z"


@dataclasses.dataclass
class _Node:
    type: str
    content: Any = None
    format: str | None = None


@dataclasses.dataclass
class _Failure:
    status: int
    message: str
    remaining: int | None
    exception: Exception | None = None


def _parent(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


class ContentsServer:
    """Fake contents server keyed by API path (``""`` is the root directory)."""

    def __init__(self) -> None:
        self.nodes: dict[str, _Node] = {"": _Node("directory")}
        self.requests: list[tuple[str, str]] = []
        self.auth_headers: list[str | None] = []
        self.queries: list[str] = []
        self._failures: dict[tuple[str, str], _Failure] = {}
        self._overrides: dict[tuple[str, str], httpx.Response] = {}

    # region: setup helpers

    def add_dir(self, path: str) -> None:
        parts = path.strip("/").split("/")
        for i in range(1, len(parts) + 1):
            self.nodes.setdefault("/".join(parts[:i]), _Node("directory"))

    def add_file(self, path: str, content: Any = "", *, fmt: str = "text", type: str = "file") -> None:
        path = path.strip("/")
        if "/" in path:
            self.add_dir(_parent(path))
        self.nodes[path] = _Node(type, content, fmt)

    def fail(self, method: str, path: str, *, status: int = 500, message: str = "boom", times: int | None = None) -> None:
        """Answer ``method path`` with an error ``times`` times (forever if ``None``)."""
        self._failures[(method, path.strip("/"))] = _Failure(status, message, times)

    def raise_on(self, method: str, path: str, exception: Exception, *, times: int | None = None) -> None:
        """Raise ``exception`` from the transport for ``method path``."""
        self._failures[(method, path.strip("/"))] = _Failure(0, "", times, exception)

    def override(self, method: str, path: str, response: httpx.Response) -> None:
        """Always answer ``method path`` with ``response``."""
        self._overrides[(method, path.strip("/"))] = response

    def exists(self, path: str) -> bool:
        return path.strip("/") in self.nodes

    def count(self, method: str, path: str | None = None) -> int:
        return sum(1 for m, p in self.requests if m == method and (path is None or p == path.strip("/")))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # endregion

    def _children(self, path: str) -> list[str]:
        return sorted(p for p in self.nodes if p and _parent(p) == path)

    def _model(self, path: str, *, with_content: bool) -> dict[str, Any]:
        node = self.nodes[path]
        model: dict[str, Any] = {
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "type": node.type,
            "format": None,
            "content": None,
            "last_modified": TIMESTAMP,
            "created": TIMESTAMP,
            "size": None,
        }
        if node.type == "directory":
            if with_content:
                model["format"] = "json"
                model["content"] = [self._model(child, with_content=False) for child in self._children(path)]
            return model
        if isinstance(node.content, str):
            model["size"] = len(node.content.encode())
        if with_content:
            model["format"] = node.format
            model["content"] = node.content
        return model

    @staticmethod
    def _error(status: int, message: str) -> httpx.Response:
        return httpx.Response(status, json={"message": message, "reason": None})

    def _injected(self, method: str, path: str) -> httpx.Response | None:
        failure = self._failures.get((method, path))
        if failure is None:
            return None
        if failure.remaining is not None:
            if failure.remaining <= 0:
                return None
            failure.remaining -= 1
        if failure.exception is not None:
            raise failure.exception
        return self._error(failure.status, failure.message)

    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path.split("/api/contents", 1)[1].strip("/")
        self.requests.append((method, path))
        self.auth_headers.append(request.headers.get("authorization"))
        self.queries.append(request.url.query.decode())

        override = self._overrides.get((method, path))
        if override is not None:
            return override
        injected = self._injected(method, path)
        if injected is not None:
            return injected

        body = json.loads(request.content) if request.content else {}
        if method == "GET":
            return self._get(path, with_content=request.url.params.get("content") != "0")
        if method == "PUT":
            return self._put(path, body)
        if method == "DELETE":
            return self._delete(path)
        if method == "PATCH":
            return self._patch(path, body)
        return self._error(405, f"Method {method} not allowed")

    def _get(self, path: str, *, with_content: bool) -> httpx.Response:
        if path not in self.nodes:
            return self._error(404, f"No such file or directory: {path}")
        return httpx.Response(200, json=self._model(path, with_content=with_content))

    def _put(self, path: str, body: dict[str, Any]) -> httpx.Response:
        if _parent(path) not in self.nodes:
            return self._error(404, f"No such directory: {_parent(path)}")
        created = path not in self.nodes
        if body.get("type") == "directory":
            self.nodes.setdefault(path, _Node("directory"))
        else:
            content = body.get("content")
            if body.get("format") == "base64":
                base64.b64decode(content)  # must be valid
            self.nodes[path] = _Node(body.get("type", "file"), content, body.get("format"))
        return httpx.Response(201 if created else 200, json=self._model(path, with_content=False))

    def _delete(self, path: str) -> httpx.Response:
        if path not in self.nodes:
            return self._error(404, f"File or directory does not exist: {path}")
        if self.nodes[path].type == "directory" and self._children(path):
            return self._error(400, f"Directory {path} not empty")
        del self.nodes[path]
        return httpx.Response(204)

    def _patch(self, path: str, body: dict[str, Any]) -> httpx.Response:
        new_path = str(body.get("path", "")).strip("/")
        if path not in self.nodes:
            return self._error(404, f"File or directory does not exist: {path}")
        if new_path in self.nodes:
            return self._error(409, f"File already exists: {new_path}")
        moved = {p: n for p, n in self.nodes.items() if p == path or p.startswith(path + "/")}
        for old in moved:
            del self.nodes[old]
        for old, node in moved.items():
            self.nodes[new_path + old[len(path) :]] = node
        return httpx.Response(200, json=self._model(new_path, with_content=False))
