"""Auto-upload on local file changes.

One watchdog handler per watched path funnels change notifications into
AutoUploadCoordinator.handle_change, which runs at most one upload at a time.
Notifications that arrive while an upload is running, or that cannot get the
lock within the timeout, are dropped rather than queued.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from scriptsync.console import Console

DEFAULT_TIMEOUT = 0.5


@dataclass
class WatchHandle:
    """One watched path.

    Notifications are forwarded to callback only while active is set.
    """

    path: Path
    callback: Callable[[Path], None]
    active: bool = False


def _event_path(event_path: bytes | str) -> Path:
    """Convert watchdog event path to Path, handling bytes properly."""
    if isinstance(event_path, bytes):
        return Path(event_path.decode("utf-8", errors="replace"))
    return Path(event_path)


class _HandleEventHandler(FileSystemEventHandler):
    """Watchdog handler forwarding write events for one WatchHandle."""

    def __init__(
        self, handle: WatchHandle, is_relevant: Callable[[Path], bool]
    ) -> None:
        super().__init__()
        self._handle = handle
        self._is_relevant = is_relevant

    def _dispatch(self, event: FileSystemEvent, path: Path) -> None:
        if event.is_directory or not self._handle.active:
            return
        if not self._is_relevant(path):
            return
        self._handle.callback(path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._dispatch(event, _event_path(event.src_path))

    def on_created(self, event: FileSystemEvent) -> None:
        self._dispatch(event, _event_path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors that save atomically write a temp file and rename it
        self._dispatch(event, _event_path(event.dest_path))


class AutoUploadCoordinator:
    """Turns bursts of change notifications into single uploads.

    Watchdog delivers events one at a time on its observer thread, so each
    accepted notification is handled on a thread of its own. The observer
    thread keeps draining events during an upload and sees the handles
    inactive.

    Args:
        upload: Performs the upload and returns whether it succeeded.
        console: Where the auto-upload outcome is reported.
        auto_sync: Watching only starts, and uploads only run, while set.
        timeout: Seconds a notification waits for the lock before it is dropped.
        is_relevant: Filters changed paths; defaults to accepting everything.
        observer_factory: Builds the watchdog observer.
    """

    def __init__(
        self,
        upload: Callable[[], bool],
        console: Console,
        *,
        auto_sync: bool,
        timeout: float = DEFAULT_TIMEOUT,
        is_relevant: Callable[[Path], bool] | None = None,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self._upload = upload
        self._console = console
        self.auto_sync = auto_sync
        self._timeout = timeout
        self._is_relevant = is_relevant or (lambda _path: True)
        self._observer_factory = observer_factory

        self._lock = threading.Lock()
        self._uploading = False
        self._last_upload_end = 0.0
        self._handles: list[WatchHandle] | None = None
        self._observer: Any = None
        self._workers: list[threading.Thread] = []

    @property
    def handles(self) -> list[WatchHandle]:
        return list(self._handles or [])

    @property
    def is_watching(self) -> bool:
        return self._handles is not None

    @property
    def is_uploading(self) -> bool:
        return self._uploading

    def enable(self, paths_provider: Callable[[], list[Path]]) -> bool:
        """Start watching the provided paths.

        A no-op when auto-sync is off or watching is already active.

        Returns:
            Whether watching is active afterwards.
        """
        with self._lock:
            if not self.auto_sync or self._handles is not None:
                return self._handles is not None

            observer = self._observer_factory()
            handles: list[WatchHandle] = []
            for path in paths_provider():
                handle = WatchHandle(path=Path(path), callback=self._notify)
                handler = _HandleEventHandler(handle, self._is_relevant)
                observer.schedule(handler, str(path), recursive=True)
                handle.active = True
                handles.append(handle)

            observer.start()
            self._observer = observer
            self._handles = handles
            logger.info("Watching {} path(s) for changes", len(handles))
            return True

    def disable(self) -> None:
        """Stop watching, destroy the handles and wait for a running upload."""
        with self._lock:
            observer, self._observer = self._observer, None
            handles, self._handles = self._handles, None
            for handle in handles or []:
                handle.active = False
        # Joined outside the lock: the observer thread may be waiting on it
        if observer is not None:
            observer.stop()
            observer.join()
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.join()

    def _notify(self, path: Path) -> None:
        """Hand one notification from the observer thread to a worker."""
        worker = threading.Thread(
            target=self.handle_change,
            args=(path,),
            name="scriptsync-auto-upload",
            daemon=True,
        )
        self._workers = [w for w in self._workers if w.is_alive()]
        self._workers.append(worker)
        worker.start()

    def handle_change(self, path: Path | None = None) -> None:
        """React to one change notification.

        A notification received before the last upload finished is dropped:
        it either came in during that upload or was already covered by it.
        """
        received = time.monotonic()
        if not self._lock.acquire(timeout=self._timeout):
            logger.debug("Dropped change notification for {}: lock busy", path)
            return
        try:
            if self._uploading or not self.auto_sync:
                return
            if received < self._last_upload_end:
                logger.debug(
                    "Dropped change notification for {}: raised during an upload",
                    path,
                )
                return

            self._set_active(False)
            self._uploading = True
            logger.debug("Auto Uploading...")
            try:
                if self._upload():
                    self._console.print_centered("Auto Upload Complete!")
                else:
                    self._console.print_error_centered("Auto Upload Failed. Try again.")
            finally:
                self._uploading = False
                self._last_upload_end = time.monotonic()
                self._set_active(True)
        finally:
            self._lock.release()

    def _set_active(self, active: bool) -> None:
        for handle in self._handles or []:
            handle.active = active
