"""Immutable models for directory entries, change events and batch outcomes."""

from __future__ import annotations

import dataclasses
import enum
from datetime import datetime, timezone
from typing import Any

from remote_contents._errors import MalformedResponse
from remote_contents._path import name_of, to_api_path


class EntryKind(enum.Enum):
    """Whether an entry is a file or a directory."""

    FILE = "file"
    DIRECTORY = "directory"


class ContentType(enum.Enum):
    """The ``type`` field of a contents-API model."""

    FILE = "file"
    DIRECTORY = "directory"
    NOTEBOOK = "notebook"

    @property
    def kind(self) -> EntryKind:
        return EntryKind.DIRECTORY if self is ContentType.DIRECTORY else EntryKind.FILE


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclasses.dataclass(frozen=True)
class ContentsModel:
    """A validated contents-API response body.

    :param type: File, directory or notebook.
    :param name: Entry name.
    :param path: API-relative path.
    :param format: ``"text"``, ``"base64"``, ``"json"`` or ``None`` when content was not requested.
    :param content: Raw ``content`` field (string, list of child models, or a JSON value).
    :param size: Size in bytes, if the server reported one.
    :param last_modified: Last modification time, if reported.
    :param created: Creation time, if reported.
    """

    type: ContentType
    name: str
    path: str
    format: str | None = None
    content: Any = None
    size: int | None = None
    last_modified: datetime | None = None
    created: datetime | None = None

    @classmethod
    def from_payload(cls, data: object) -> ContentsModel:
        """Validate a decoded JSON body.

        :raises MalformedResponse: If required fields are missing or have the wrong type.
        """
        if not isinstance(data, dict):
            raise MalformedResponse(f"Expected a JSON object, got {type(data).__name__}")
        raw_type = data.get("type")
        try:
            content_type = ContentType(raw_type)
        except ValueError:
            raise MalformedResponse(f"Unknown content type {raw_type!r}", path=_str_or_none(data.get("path"))) from None
        raw_path = data.get("path")
        if not isinstance(raw_path, str):
            raise MalformedResponse("Missing 'path' field")
        path = to_api_path(raw_path)
        name = data.get("name")
        if not isinstance(name, str) or not name:
            name = name_of(path)
        size = data.get("size")
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            size = None
        fmt = data.get("format")
        return cls(
            type=content_type,
            name=name,
            path=path,
            format=fmt if isinstance(fmt, str) else None,
            content=data.get("content"),
            size=size,
            last_modified=_parse_timestamp(data.get("last_modified")),
            created=_parse_timestamp(data.get("created")),
        )

    @property
    def kind(self) -> EntryKind:
        return self.type.kind

    def to_entry(self) -> RemoteEntry:
        return RemoteEntry(
            name=self.name,
            path=self.path,
            kind=self.kind,
            size=self.size,
            last_modified=self.last_modified,
            created_at=self.created,
        )


def _str_or_none(value: object) -> str | None:
    return value if isinstance(value, str) else None


@dataclasses.dataclass(frozen=True)
class EntryStat:
    """Metadata returned by ``ContentsClient.stat``."""

    kind: EntryKind
    size: int
    last_modified: datetime
    created_at: datetime

    @classmethod
    def fallback(cls) -> EntryStat:
        """Conservative stand-in used when the server could not be asked."""
        now = datetime.now(tz=timezone.utc)
        return cls(kind=EntryKind.FILE, size=0, last_modified=now, created_at=now)


@dataclasses.dataclass(frozen=True, eq=False)
class RemoteEntry:
    """Read-only snapshot of one entry as reported by the server.

    :param name: Entry name.
    :param path: API-relative path (no leading slash).
    :param kind: File or directory.
    :param size: Size in bytes, if known.
    :param last_modified: Last modification time, if known.
    :param created_at: Creation time, if known.
    """

    name: str
    path: str
    kind: EntryKind
    size: int | None = None
    last_modified: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    def with_metadata(self, stat: EntryStat) -> RemoteEntry:
        """Return a copy enriched with lazily fetched size and timestamps."""
        return dataclasses.replace(self, size=stat.size, last_modified=stat.last_modified, created_at=stat.created_at)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RemoteEntry):
            return self.path == other.path and self.kind is other.kind
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.path, self.kind))


class ChangeKind(enum.Enum):
    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"


@dataclasses.dataclass(frozen=True)
class ChangeEvent:
    """A change notification; ``path`` is always in display form."""

    kind: ChangeKind
    path: str


@dataclasses.dataclass(frozen=True)
class ItemOutcome:
    """Result for one item of a batch or recursive operation.

    :param path: The item's path.
    :param ok: Whether the item succeeded (skipped items count as successes).
    :param error: The exception that failed the item when ``ok`` is ``False``.
    :param skipped: ``True`` when the item needed no work.
    """

    path: str
    ok: bool
    error: BaseException | None = None
    skipped: bool = False

    @property
    def message(self) -> str:
        return "" if self.error is None else str(self.error)


@dataclasses.dataclass
class OperationReport:
    """Accumulates per-item outcomes of one logical operation.

    :param operation: Past-tense verb used in the summary (e.g. ``"deleted"``).
    """

    operation: str
    items: dict[str, ItemOutcome] = dataclasses.field(default_factory=dict)

    def record(self, outcome: ItemOutcome) -> None:
        """Store ``outcome``; a later outcome for the same path replaces the earlier one."""
        self.items[outcome.path] = outcome

    def succeed(self, path: str, *, skipped: bool = False) -> None:
        self.record(ItemOutcome(path=path, ok=True, skipped=skipped))

    def fail(self, path: str, error: BaseException) -> None:
        self.record(ItemOutcome(path=path, ok=False, error=error))

    @property
    def outcomes(self) -> list[ItemOutcome]:
        return list(self.items.values())

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def failures(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def summary(self) -> str:
        """Human-readable aggregate, e.g. ``"Successfully deleted 2 of 3 items; 1 failed"``."""
        text = f"Successfully {self.operation} {self.succeeded} of {self.total} items"
        if self.failed:
            text += f"; {self.failed} failed"
        return text
