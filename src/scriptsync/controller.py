"""ScriptController - the synchronous front door used by the CLI.

Each public method forwards one user action to the ScriptManager, prints the
outcome centered on the console and reports success as a bool. Exceptions
never escape a public method: they are printed as errors instead, so an
interactive session keeps running.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from loguru import logger
from watchdog.observers import Observer

from scriptsync.config import Settings
from scriptsync.console import Console
from scriptsync.manager import ScriptManager
from scriptsync.project import FileType
from scriptsync.results import TaskResult
from scriptsync.transport import VersionInfo
from scriptsync.watcher import AutoUploadCoordinator

T = TypeVar("T")


class _EventLoopThread:
    """Runs an asyncio loop on a daemon thread so sync callers can block on it.

    Calls from the main thread and from watchdog's observer thread are
    serialized onto the same loop, which owns the transport's HTTP client.
    """

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="scriptsync-loop", daemon=True
        )
        self._thread.start()

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    @property
    def closed(self) -> bool:
        return self._loop.is_closed()

    def close(self) -> None:
        if self.closed:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()


class ScriptController:
    """Session object holding the manager, the version cache and the watcher.

    Example:
        >>> with ScriptController(Settings()) as controller:
        ...     controller.initialize_library()
        ...     controller.upload_files()
    """

    def __init__(
        self,
        settings: Settings,
        manager: ScriptManager | None = None,
        console: Console | None = None,
        *,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self._settings = settings
        self._manager = manager or ScriptManager(settings)
        self._console = console or Console()
        self._loop = _EventLoopThread()
        self._versions: list[VersionInfo] | None = None
        self._watcher = AutoUploadCoordinator(
            self.upload_files,
            self._console,
            auto_sync=settings.auto_sync,
            timeout=settings.auto_upload_timeout,
            is_relevant=self._manager.is_tracked,
            observer_factory=observer_factory,
        )

    def __enter__(self) -> ScriptController:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def console(self) -> Console:
        return self._console

    @property
    def watcher(self) -> AutoUploadCoordinator:
        return self._watcher

    @property
    def auto_sync(self) -> bool:
        return self._watcher.auto_sync

    @auto_sync.setter
    def auto_sync(self, value: bool) -> None:
        self._watcher.auto_sync = value

    # --- Helpers ---

    def _run_task(
        self, call: Callable[..., Coroutine[Any, Any, TaskResult[Any]]], *args: Any
    ) -> bool:
        """Run one manager operation and print its result."""
        try:
            result = self._loop.run(call(*args))
        except Exception as e:
            self._console.print_error_centered(str(e))
            return False
        self._console.print_result(str(result), result.success)
        return result.success

    # --- Project setup ---

    def initialize_library(self) -> bool:
        succeeded = self._run_task(self._manager.initialize, self._settings.source_dir)
        self.display_info()
        return succeeded

    def display_info(self) -> None:
        try:
            for line in self._manager.script_info():
                self._console.print_centered(line)
        except Exception as e:
            logger.debug("Could not display script info: {}", e)

    def provide_script_id(self, script_id: str) -> bool:
        try:
            self._manager.script_id = script_id
        except Exception as e:
            self._console.print_error_centered(str(e))
            return False
        self._console.print_centered("Success!")
        return True

    def set_html_script_parse(self) -> None:
        self._manager.parse_html_script_tag = self._settings.parse_script_tag

    def create_project(self, name: str) -> bool:
        return self._run_task(self._manager.create_project, name)

    # --- Files ---

    def download_files(self) -> bool:
        return self._run_task(self._manager.download_files)

    def download_files_version(self, version_number: int) -> bool:
        return self._run_task(self._manager.download_files, version_number)

    def upload_files(self) -> bool:
        return self._run_task(self._manager.sync_changes)

    def version_backup_then_upload_files(self) -> bool:
        return self._run_task(self._manager.pre_version_and_sync_changes)

    def create_source_code_file(self, name: str, file_type: FileType, sync: bool) -> bool:
        return self._run_task(self._manager.add_new_source_file, name, file_type, sync)

    def create_manifest_file(self) -> bool:
        return self._run_task(self._manager.create_manifest_file)

    # --- Versions and deployments ---

    def create_new_version(self, description: str) -> bool:
        return self._run_task(self._manager.create_version, description)

    def create_new_version_and_update_deployment(self, description: str) -> bool:
        return self._run_task(
            self._manager.create_new_version_and_update_deployment, description
        )

    def sync_and_deploy_for_live_version(self, description: str) -> bool:
        """Upload, then release a new version to the live deployment."""
        if self.upload_files() and self.create_new_version_and_update_deployment(
            description
        ):
            self._console.print_centered("Operation Successful!")
            return True
        return False

    def list_project_versions(self) -> bool:
        """Print the project's versions and cache them for version_found."""
        try:
            result = self._loop.run(self._manager.list_versions())
        except Exception as e:
            self._console.print_error_centered(str(e))
            return False
        if not result.success:
            self._console.print_error_centered(result.message)
            return False

        self._versions = list(result.payload or [])
        for v in self._versions:
            self._console.print_centered(
                f" Version #{v.version_number}, Create Time {v.create_time}, "
                f"Description {v.description}"
            )
        return True

    def version_found(self, version_number: int) -> bool:
        """Whether version_number was in the last listed versions."""
        if self._versions is None:
            return False
        return any(v.version_number == version_number for v in self._versions)

    def update_deployment_version_number(self, version_number: int) -> bool:
        return self._run_task(
            self._manager.update_deployment_version_number, version_number
        )

    def clear_credentials(self) -> bool:
        return self._run_task(self._manager.clear_credentials)

    # --- Watching ---

    def enable_watching(self) -> bool:
        """Start auto-uploading on local changes (needs auto-sync on)."""
        try:
            return self._watcher.enable(self._manager.watch_paths)
        except Exception as e:
            self._console.print_error_centered(str(e))
            return False

    def disable_watching(self) -> None:
        self._watcher.disable()

    # --- Lifecycle ---

    def close(self) -> None:
        if self._loop.closed:
            return
        self._watcher.disable()
        try:
            self._loop.run(self._manager.close())
        except Exception as e:
            logger.debug("Error while closing manager: {}", e)
        self._loop.close()
