"""Normalized error hierarchy for remote_contents."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from remote_contents._models import OperationReport


class RemoteContentsError(Exception):
    """Base class for all remote_contents errors.

    :param message: Human-readable error description.
    :param path: The path involved in the error, if any.
    """

    def __init__(self, message: str = "", *, path: Optional[str] = None) -> None:
        self.path = path
        super().__init__(message)

    @property
    def message(self) -> str:
        return self.args[0] if self.args else ""

    def _details(self) -> list[str]:
        details = []
        if self.path is not None:
            details.append(f"path={self.path!r}")
        return details

    def __str__(self) -> str:
        parts = [super().__str__(), *self._details()]
        return " | ".join(p for p in parts if p)

    def __repr__(self) -> str:
        cls = type(self).__name__
        args = [repr(self.message), *self._details()]
        return f"{cls}({', '.join(args)})"


class NotConnected(RemoteContentsError):
    """Raised when an operation is attempted without an active connection."""

    def __init__(self, message: str = "Not connected to a contents server", *, path: Optional[str] = None) -> None:
        super().__init__(message, path=path)


class TransportError(RemoteContentsError):
    """Raised for network-level failures (timeouts, refused connections, DNS).

    :param timeout: ``True`` if the request did not complete in time.
    """

    def __init__(self, message: str = "", *, path: Optional[str] = None, timeout: bool = False) -> None:
        self.timeout = timeout
        super().__init__(message, path=path)

    def _details(self) -> list[str]:
        details = super()._details()
        if self.timeout:
            details.append("timeout=True")
        return details


class RemoteRejected(RemoteContentsError):
    """Raised when the server answers with an error status.

    :param status: The HTTP status code.
    :param server_message: The server's own error message, verbatim.
    """

    def __init__(
        self,
        message: str = "",
        *,
        path: Optional[str] = None,
        status: int = 0,
        server_message: str = "",
    ) -> None:
        self.status = status
        self.server_message = server_message
        super().__init__(message, path=path)

    @property
    def throttled(self) -> bool:
        return self.status == 429

    def _details(self) -> list[str]:
        details = super()._details()
        if self.status:
            details.append(f"status={self.status}")
        return details


class NotFound(RemoteRejected):
    """Raised when a file or directory does not exist."""


class Conflict(RemoteRejected):
    """Raised when the target of a create or move already exists."""


class DirectoryNotEmpty(RemoteRejected):
    """Raised when the server refuses to delete a directory that still has children."""

    HINT = (
        "The directory may still contain hidden files, entries you lack permission to remove, "
        "or content protected by the server. Try a force delete if you are sure."
    )

    def __str__(self) -> str:
        return f"{super().__str__()} | {self.HINT}"


class NotAFile(RemoteContentsError):
    """Raised when file content is requested for a directory."""


class MalformedResponse(RemoteContentsError):
    """Raised when the server returns a payload that does not have the expected shape."""


class InvalidPath(RemoteContentsError):
    """Raised for malformed names or unusable local/remote roots."""


class PartialFailure(RemoteContentsError):
    """Raised when a batch or recursive operation finished with failed items.

    :param report: Per-item outcomes of the operation.
    """

    def __init__(self, message: str = "", *, path: Optional[str] = None, report: OperationReport) -> None:
        self.report = report
        super().__init__(message, path=path)

    def _details(self) -> list[str]:
        details = super()._details()
        details.append(f"failed={self.report.failed}")
        return details


class Exhausted(RemoteContentsError):
    """Raised when a bounded-retry operation used every attempt without success.

    :param attempts: Number of attempts made.
    """

    def __init__(self, message: str = "", *, path: Optional[str] = None, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message, path=path)

    def _details(self) -> list[str]:
        details = super()._details()
        if self.attempts:
            details.append(f"attempts={self.attempts}")
        return details
