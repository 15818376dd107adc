"""Recursive and batch operations built on ContentsClient.

Each operation keeps going past individual failures and reports them once at
the end. Only missing connections and unusable roots abort immediately.
Nothing here is atomic: a failed operation can leave the remote tree
partially modified.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from tenacity import AsyncRetrying, RetryError, before_sleep_log, retry_if_exception, stop_after_attempt, wait_fixed

from remote_contents._errors import (
    DirectoryNotEmpty,
    Exhausted,
    InvalidPath,
    NotConnected,
    NotFound,
    PartialFailure,
    RemoteContentsError,
)
from remote_contents._models import EntryKind, OperationReport
from remote_contents._path import ROOT, is_within, join_child, parent_of, to_display_path

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from remote_contents._client import ContentsClient
    from remote_contents._models import RemoteEntry
    from remote_contents._types import LocalPath

log = logging.getLogger(__name__)

BINARY_EXTENSIONS: frozenset[str] = frozenset(
    {
        # images
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp", ".tif", ".tiff", ".psd",
        # archives
        ".zip", ".tar", ".gz", ".tgz", ".bz2", ".xz", ".7z", ".rar", ".jar",
        # executables and libraries
        ".exe", ".dll", ".so", ".dylib", ".bin", ".o", ".a", ".class", ".pyc", ".whl",
        # audio
        ".mp3", ".wav", ".flac", ".ogg", ".m4a", ".aac",
        # video
        ".mp4", ".avi", ".mov", ".mkv", ".webm", ".wmv",
        # fonts
        ".ttf", ".otf", ".woff", ".woff2", ".eot",
        # databases and data blobs
        ".db", ".sqlite", ".sqlite3", ".pkl", ".pickle", ".npy", ".npz", ".parquet", ".h5", ".hdf5",
        # documents
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    }
)  # fmt: skip


def is_binary_name(name: str) -> bool:
    """Return ``True`` if ``name`` has an extension that must be uploaded as base64."""
    dot = name.rfind(".")
    if dot <= 0:
        return False
    return name[dot:].lower() in BINARY_EXTENSIONS


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RemoteContentsError) and not isinstance(exc, (NotConnected, NotFound))


def _raise_first(results: Iterable[object]) -> None:
    """Re-raise the first exception collected by ``gather(..., return_exceptions=True)``."""
    for result in results:
        if isinstance(result, BaseException):
            raise result


class _RecoveryBudget:
    """Caps "not empty" recoveries across all levels of one top-level delete."""

    def __init__(self, remaining: int) -> None:
        self.remaining = remaining

    def take(self) -> bool:
        if self.remaining <= 0:
            return False
        self.remaining -= 1
        return True


class RecursiveOperations:
    """Multi-step operations: recursive delete, force delete, folder upload and batch move.

    :param client: The client every step goes through.
    :param retry_attempts: Attempts per file delete.
    :param retry_delay: Seconds between file delete attempts.
    :param force_rounds: Rounds a force delete makes before giving up.
    :param round_delay: Base wait in seconds; round ``n`` waits ``n * round_delay``.
    :param max_not_empty_recoveries: "Not empty" cleanup passes allowed per top-level delete.
    :param sleep: Coroutine used for all waits.
    """

    def __init__(
        self,
        client: ContentsClient,
        *,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        force_rounds: int = 5,
        round_delay: float = 1.0,
        max_not_empty_recoveries: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if retry_attempts < 1 or force_rounds < 1:
            raise ValueError("retry_attempts and force_rounds must be at least 1")
        self._client = client
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay
        self._force_rounds = force_rounds
        self._round_delay = round_delay
        self._max_recoveries = max_not_empty_recoveries
        self._sleep = sleep

    def __repr__(self) -> str:
        return f"RecursiveOperations(client={self._client!r})"

    def _target(self, path: str) -> str:
        self._client.ensure_connected()
        display = to_display_path(path).rstrip("/") or ROOT
        if display == ROOT:
            raise InvalidPath("Refusing to delete the root directory", path=display)
        return display

    # region: single deletes

    async def _delete_with_retry(self, path: str) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_fixed(self._retry_delay),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(log, logging.WARNING),  # type: ignore[arg-type,unused-ignore]
            sleep=self._sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._client.delete(path)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            raise Exhausted(
                f"Failed to delete {path} after {self._retry_attempts} attempts: {last}",
                path=path,
                attempts=self._retry_attempts,
            ) from last

    async def _delete_file(self, path: str) -> RemoteContentsError | None:
        try:
            await self._delete_with_retry(path)
        except NotConnected:
            raise
        except NotFound:
            return None
        except RemoteContentsError as exc:
            log.warning("Could not delete %s: %s", path, exc)
            return exc
        return None

    async def _attempt_delete(self, path: str) -> RemoteContentsError | None:
        try:
            await self._client.delete(path)
        except NotConnected:
            raise
        except NotFound:
            return None
        except RemoteContentsError as exc:
            return exc
        return None

    # endregion

    # region: recursive delete

    async def _delete_children(
        self, children: Iterable[RemoteEntry], report: OperationReport, budget: _RecoveryBudget
    ) -> None:
        for child in children:
            child_path = to_display_path(child.path)
            if child.is_directory:
                error = await self._delete_directory(child_path, report, budget)
            else:
                error = await self._delete_file(child_path)
            if error is None:
                report.succeed(child_path)
            else:
                report.fail(child_path, error)

    async def _delete_directory(
        self, path: str, report: OperationReport, budget: _RecoveryBudget
    ) -> RemoteContentsError | None:
        """Delete the children of ``path``, then ``path``; returns the error for ``path`` itself."""
        try:
            children = await self._client.list_dir(path)
        except NotConnected:
            raise
        except RemoteContentsError as exc:
            return exc
        if children:
            await self._delete_children(children, report, budget)

        error = await self._attempt_delete(path)
        if not isinstance(error, DirectoryNotEmpty) or not budget.take():
            return error

        # The server may not yet reflect deleted children; clean up once more.
        log.warning("%s still reported as not empty; retrying remaining entries", path)
        try:
            stragglers = await self._client.list_dir(path)
        except NotConnected:
            raise
        except RemoteContentsError as exc:
            return exc
        await self._delete_children(stragglers, report, budget)
        return await self._attempt_delete(path)

    async def delete_recursive(self, path: str) -> OperationReport:
        """Delete ``path`` and, for a directory, everything below it.

        Child failures do not stop the remaining children. The report holds
        one outcome per descendant; the outcome of ``path`` itself decides
        whether the call returns.

        :raises NotConnected: Before any request if there is no connection.
        :raises InvalidPath: If ``path`` is the root.
        :raises NotFound: If ``path`` does not exist.
        :raises PartialFailure: If any descendant could not be deleted.
        :raises Exhausted: If ``path`` is a file that could not be deleted after all attempts.
        """
        target = self._target(path)
        report = OperationReport("deleted")
        budget = _RecoveryBudget(self._max_recoveries)

        stat = await self._client.stat(target)
        if stat.kind is EntryKind.DIRECTORY:
            error = await self._delete_directory(target, report, budget)
        else:
            await self._delete_with_retry(target)
            error = None

        if error is None and not report.failed:
            log.info("Deleted %s (%d entries below it)", target, report.total)
            return report
        if error is not None and not report.failed:
            raise error
        summary = report.summary()
        if error is not None:
            summary = f"{summary}; {target} was not deleted: {error}"
        raise PartialFailure(summary, path=target, report=report) from error

    # endregion

    # region: force delete

    async def _force_delete_child(self, child: RemoteEntry) -> None:
        path = to_display_path(child.path)
        if child.is_directory:
            error = await self._delete_directory(path, OperationReport("deleted"), _RecoveryBudget(1))
        else:
            error = await self._attempt_delete(path)
        if error is not None:
            log.warning("Force delete could not remove %s: %s", path, error)

    async def force_delete(self, path: str) -> OperationReport:
        """Delete ``path`` even when an ordinary recursive delete fails.

        Tries ``delete_recursive`` first. On failure it runs up to
        ``force_rounds`` rounds; each round deletes every remaining child
        concurrently (ignoring individual failures), waits ``round * round_delay``
        seconds and retries the directory itself. Destructive and not atomic.

        :raises NotFound: If ``path`` does not exist to begin with.
        :raises Exhausted: If the directory still exists after the last round.
        """
        target = self._target(path)
        try:
            return await self.delete_recursive(target)
        except (NotConnected, NotFound):
            raise
        except RemoteContentsError as exc:
            log.warning("Recursive delete of %s failed (%s); falling back to force delete", target, exc)

        report = OperationReport("force deleted")
        last_error: RemoteContentsError | None = None
        for round_number in range(1, self._force_rounds + 1):
            try:
                remaining = await self._client.list_dir(target)
            except NotConnected:
                raise
            except NotFound:
                report.succeed(target)
                return report
            except RemoteContentsError as exc:
                log.warning("Force delete round %d could not list %s: %s", round_number, target, exc)
                remaining = []
            if remaining:
                log.info("Force delete round %d: %d entries left in %s", round_number, len(remaining), target)
                results = await asyncio.gather(
                    *(self._force_delete_child(child) for child in remaining), return_exceptions=True
                )
                _raise_first(results)
            await self._sleep(self._round_delay * round_number)
            last_error = await self._attempt_delete(target)
            if last_error is None:
                log.info("Force deleted %s in round %d", target, round_number)
                report.succeed(target)
                return report

        raise Exhausted(
            f"Could not delete directory {target} after {self._force_rounds} force-delete rounds: {last_error}",
            path=target,
            attempts=self._force_rounds,
        )

    # endregion

    # region: folder upload

    async def _upload_file(self, source: Path, target: str, report: OperationReport) -> None:
        try:
            data = await asyncio.to_thread(source.read_bytes)
        except OSError as exc:
            report.fail(target, exc)
            return
        binary = is_binary_name(source.name)
        if not binary:
            try:
                data.decode("utf-8")
            except UnicodeDecodeError:
                log.info("%s is not valid UTF-8; uploading as base64", source)
                binary = True
        try:
            await self._client.upload(target, data, binary=binary)
        except NotConnected:
            raise
        except RemoteContentsError as exc:
            report.fail(target, exc)
        else:
            report.succeed(target)

    async def _upload_tree(self, source: Path, target: str, report: OperationReport) -> None:
        try:
            await self._client.create_directory(target)
        except NotConnected:
            raise
        except RemoteContentsError as exc:
            report.fail(target, exc)
            return
        report.succeed(target)

        try:
            entries = sorted(await asyncio.to_thread(lambda: list(source.iterdir())))
        except OSError as exc:
            log.warning("Could not list local folder %s: %s", source, exc)
            report.fail(target, exc)
            return
        subfolders: list[tuple[Path, str]] = []
        for entry in entries:
            remote = join_child(target, entry.name)
            if entry.is_dir():
                subfolders.append((entry, remote))
            elif entry.is_file():
                await self._upload_file(entry, remote, report)
            else:
                log.debug("Skipping %s: not a regular file", entry)
        if subfolders:
            results = await asyncio.gather(
                *(self._upload_tree(local, remote, report) for local, remote in subfolders), return_exceptions=True
            )
            _raise_first(results)

    async def upload_folder(self, local_dir: LocalPath, remote_dir: str) -> OperationReport:
        """Upload a local directory tree into ``remote_dir``.

        Each remote directory is created before its contents. Files with a
        binary extension (or that are not valid UTF-8) go up as base64, the
        rest as text. Sibling subfolders are uploaded concurrently.

        :raises NotConnected: Before any request if there is no connection.
        :raises InvalidPath: If ``local_dir`` is not a directory.
        :raises PartialFailure: If any entry failed to upload.
        """
        self._client.ensure_connected()
        source = Path(local_dir)
        if not source.is_dir():
            raise InvalidPath(f"Local folder does not exist: {source}", path=str(source))
        target = to_display_path(remote_dir).rstrip("/") or ROOT
        report = OperationReport("uploaded")
        await self._upload_tree(source, target, report)
        log.info("%s from %s to %s", report.summary(), source, target)
        if report.failed:
            raise PartialFailure(report.summary(), path=target, report=report)
        return report

    # endregion

    # region: batch move

    async def move_items(self, items: Iterable[RemoteEntry], target_dir: str) -> OperationReport:
        """Move ``items`` into ``target_dir``.

        Items already in ``target_dir`` are skipped. A directory is never
        moved into itself or a descendant; that item is rejected without a
        request. One refresh is signalled at the end.

        :raises NotConnected: Before any request if there is no connection.
        :raises PartialFailure: If any item could not be moved.
        """
        self._client.ensure_connected()
        target = to_display_path(target_dir).rstrip("/") or ROOT
        report = OperationReport("moved")
        for item in items:
            source = to_display_path(item.path)
            if parent_of(source) == target:
                report.succeed(source, skipped=True)
                continue
            if item.is_directory and is_within(target, source):
                report.fail(source, InvalidPath(f"Cannot move {source} into itself", path=source))
                continue
            try:
                await self._client.move(source, join_child(target, item.name))
            except NotConnected:
                raise
            except RemoteContentsError as exc:
                report.fail(source, exc)
            else:
                report.succeed(source)

        self._client.refresh()
        log.info("%s to %s", report.summary(), target)
        if report.failed:
            raise PartialFailure(report.summary(), path=target, report=report)
        return report

    # endregion
