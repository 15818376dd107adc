"""Resilient asyncio client for remote contents APIs."""

from remote_contents._cache import ResponseCache
from remote_contents._client import ContentsClient
from remote_contents._config import ClientConfig, ConnectionContext, ConnectionParams, SessionConfig
from remote_contents._errors import (
    Conflict,
    DirectoryNotEmpty,
    Exhausted,
    InvalidPath,
    MalformedResponse,
    NotAFile,
    NotConnected,
    NotFound,
    PartialFailure,
    RemoteContentsError,
    RemoteRejected,
    TransportError,
)
from remote_contents._models import (
    ChangeEvent,
    ChangeKind,
    ContentsModel,
    ContentType,
    EntryKind,
    EntryStat,
    ItemOutcome,
    OperationReport,
    RemoteEntry,
)
from remote_contents._notifier import ChangeNotifier
from remote_contents._operations import BINARY_EXTENSIONS, RecursiveOperations, is_binary_name
from remote_contents._path import join_child, parent_of, to_api_path, to_display_path
from remote_contents._ratelimit import RateLimiter
from remote_contents._session import SessionManager

__version__ = "0.1.0"

__all__ = [
    # Core
    "ContentsClient",
    "RecursiveOperations",
    "SessionManager",
    "ChangeNotifier",
    "RateLimiter",
    "ResponseCache",
    # Paths
    "to_api_path",
    "to_display_path",
    "parent_of",
    "join_child",
    # Models
    "RemoteEntry",
    "EntryKind",
    "EntryStat",
    "ContentType",
    "ContentsModel",
    "ChangeEvent",
    "ChangeKind",
    "ItemOutcome",
    "OperationReport",
    "BINARY_EXTENSIONS",
    "is_binary_name",
    # Config
    "ClientConfig",
    "ConnectionContext",
    "ConnectionParams",
    "SessionConfig",
    # Errors
    "RemoteContentsError",
    "NotConnected",
    "TransportError",
    "RemoteRejected",
    "NotFound",
    "Conflict",
    "DirectoryNotEmpty",
    "NotAFile",
    "MalformedResponse",
    "InvalidPath",
    "PartialFailure",
    "Exhausted",
    # Version
    "__version__",
]
