"""Conversion between display paths and API-relative paths.

Display paths (what observers see) carry exactly one leading slash:
``"/a/b"``. API paths (what goes into request URLs) carry none: ``"a/b"``.
The store root is ``"/"`` in display form and ``""`` in API form.
"""

from __future__ import annotations

import re

from remote_contents._errors import InvalidPath

_SLASH_RUN = re.compile(r"/{2,}")

ROOT = "/"


def to_api_path(path: str) -> str:
    """Strip leading slashes so the path can be joined into a request URL.

    Every leading slash goes, not just the first: ``"//a"`` becomes ``"a"``.
    Stripping only one would break idempotence,
    ``to_api_path(to_api_path(p)) == to_api_path(p)``.
    """
    return path.lstrip("/")


def to_display_path(path: str) -> str:
    """Ensure exactly one leading slash."""
    return "/" + path.lstrip("/")


def parent_of(path: str) -> str:
    """Drop the final segment of ``path``.

    Returns ``"/"`` when no segments remain, so the root is its own parent.
    Works on both display and API forms as long as the caller is consistent:
    ``parent_of("/a/b") == "/a"`` and ``parent_of("a/b") == "a"``.
    """
    trimmed = path.rstrip("/")
    parts = trimmed.split("/")
    parts.pop()
    return "/".join(parts) or ROOT


def join_child(parent: str, name: str) -> str:
    """Join ``name`` onto ``parent`` with a single separator."""
    return _SLASH_RUN.sub("/", f"{parent}/{name}")


def name_of(path: str) -> str:
    """Final segment of ``path`` (empty for the root)."""
    return path.rstrip("/").rsplit("/", 1)[-1]


def is_within(path: str, ancestor: str) -> bool:
    """Return ``True`` if ``path`` equals ``ancestor`` or lies below it.

    Comparison is segment-aware: ``/ab`` is not within ``/a``.
    """
    p = to_display_path(path).rstrip("/") or ROOT
    a = to_display_path(ancestor).rstrip("/") or ROOT
    if a == ROOT:
        return True
    return p == a or p.startswith(a + "/")


def validate_name(name: str) -> str:
    """Validate a single entry name supplied by a caller (e.g. for rename).

    :raises InvalidPath: If the name is empty, a dot segment, or contains a slash.
    """
    if not name or name in (".", ".."):
        raise InvalidPath(f"Invalid entry name: {name!r}", path=name)
    if "/" in name or "\0" in name:
        raise InvalidPath(f"Entry name must not contain '/' or null bytes: {name!r}", path=name)
    return name
