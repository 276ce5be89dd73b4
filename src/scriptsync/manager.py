"""ScriptManager - keeps a local source folder in sync with a script project.

Provides initialize, download, sync, version and deployment operations for the
Google Apps Script workflow. Every remote operation returns a TaskResult;
expected failures (API errors, unlinked folder, missing files) come back as
failed results instead of exceptions.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from pathlib import Path

from loguru import logger

from scriptsync.config import Settings
from scriptsync.credentials import CredentialsManager
from scriptsync.project import (
    FILE_TYPE_TO_EXT,
    MANIFEST_NAME,
    FileType,
    LocalProject,
)
from scriptsync.results import TaskResult
from scriptsync.transport import (
    AppsScriptTransport,
    DeploymentInfo,
    Transport,
    TransportError,
    VersionInfo,
)

TransportFactory = Callable[[], Transport]

_SCRIPT_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{20,}$")

_URL_PATTERNS = [
    r"script\.google\.com/d/([a-zA-Z0-9_-]+)",
    r"script\.google\.com/home/projects/([a-zA-Z0-9_-]+)",
    r"script\.google\.com/macros/d/([a-zA-Z0-9_-]+)",
]

DEFAULT_MANIFEST = {
    "timeZone": "Etc/UTC",
    "dependencies": {},
    "exceptionLogging": "STACKDRIVER",
    "runtimeVersion": "V8",
}

_NEW_FILE_TEMPLATES: dict[FileType, str] = {
    FileType.SERVER_JS: "function myFunction() {\n\n}\n",
    FileType.HTML: (
        "<!DOCTYPE html>\n<html>\n  <head>\n    <base target=\"_top\">\n"
        "  </head>\n  <body>\n\n  </body>\n</html>\n"
    ),
    FileType.JSON: "{}\n",
}

BACKUP_VERSION_DESCRIPTION = "Backup before sync"


class InfoError(Exception):
    """Raised when the user supplies an invalid value, e.g. a bad script ID."""


def parse_script_id(id_or_url: str) -> str:
    """Extract script ID from a URL or return as-is.

    Supports URLs like:
      https://script.google.com/d/SCRIPT_ID/edit
      https://script.google.com/home/projects/SCRIPT_ID/edit
    """
    for pattern in _URL_PATTERNS:
        match = re.search(pattern, id_or_url)
        if match:
            return match.group(1)
    return id_or_url.strip()


class ScriptManager:
    """Manages the source folder of one Apps Script project.

    The transport is created lazily on the first remote call so that local
    operations (info, new files, manifest) work without credentials.

    Example:
        >>> manager = ScriptManager(Settings(source_dir=Path("./src")))
        >>> await manager.initialize(Path("./src"))
        >>> await manager.sync_changes()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport_factory: TransportFactory | None = None,
        credentials: CredentialsManager | None = None,
    ) -> None:
        self._settings = settings
        self._credentials = credentials or CredentialsManager(
            settings.token_cache_path, access_token=settings.access_token
        )
        self._transport_factory = transport_factory or self._default_transport
        self._transport: Transport | None = None
        self._project = LocalProject(
            settings.source_dir, parse_script_tag=settings.parse_script_tag
        )

    def _default_transport(self) -> Transport:
        token = self._credentials.get_token()
        return AppsScriptTransport(
            access_token=token.access_token, timeout=self._settings.request_timeout
        )

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            self._transport = self._transport_factory()
        return self._transport

    @property
    def project(self) -> LocalProject:
        return self._project

    # --- Properties ---

    @property
    def script_id(self) -> str:
        return self._project.script_id

    @script_id.setter
    def script_id(self, value: str) -> None:
        script_id = parse_script_id(value)
        if not _SCRIPT_ID_RE.match(script_id):
            raise InfoError(
                f"'{value}' is not a valid script ID. Copy it from the Apps Script "
                "editor: Project Settings > IDs > Script ID."
            )
        self._project.link(script_id)
        logger.info("Linked {} to script {}", self._project.folder, script_id)

    @property
    def parse_html_script_tag(self) -> bool:
        return self._project.parse_script_tag

    @parse_html_script_tag.setter
    def parse_html_script_tag(self, value: bool) -> None:
        self._project.parse_script_tag = value

    # --- Local operations ---

    async def initialize(self, source_dir: str | Path) -> TaskResult[None]:
        """Prepare source_dir and, when linked, refresh the project title."""
        self._project = LocalProject(
            source_dir, parse_script_tag=self._project.parse_script_tag
        )
        folder = self._project.folder
        folder.mkdir(parents=True, exist_ok=True)

        script_id = self._project.script_id
        if not script_id:
            return TaskResult.ok(
                f"Initialized {folder}. No script linked yet: "
                "provide a script ID or create a new project."
            )
        try:
            metadata = await self.transport.get_project(script_id)
        except TransportError as e:
            return TaskResult.fail(f"Could not reach script {script_id}: {e}")
        self._project.write_metadata(metadata)
        return TaskResult.ok(f"Initialized {folder} for '{metadata.title}'")

    def script_info(self) -> list[str]:
        """Human-readable status lines about the linked project."""
        meta = self._project.read_metadata()
        files = self._project.read_files()
        lines = [
            f"Source Directory: {self._project.folder.resolve()}",
            f"Script ID: {meta.get('scriptId') or '(not linked)'}",
        ]
        if meta.get("title"):
            lines.append(f"Title: {meta['title']}")
        if meta.get("parentId"):
            lines.append(f"Bound To: {meta['parentId']}")
        lines.append(f"Local Files: {len(files)}")
        lines.append(
            "HTML Script Tag Parsing: "
            + ("On" if self._project.parse_script_tag else "Off")
        )
        return lines

    def watch_paths(self) -> list[Path]:
        """Paths whose changes should trigger an auto upload."""
        folder = self._project.folder
        folder.mkdir(parents=True, exist_ok=True)
        return [folder]

    def is_tracked(self, path: str | Path) -> bool:
        return self._project.is_tracked(path)

    async def add_new_source_file(
        self, name: str, file_type: FileType, sync: bool = False
    ) -> TaskResult[Path]:
        """Create a starter file of the given type, optionally syncing it."""
        name = name.strip()
        if not name:
            return TaskResult.fail("File name must not be empty")
        path = self._project.folder / (name + FILE_TYPE_TO_EXT[file_type.value])
        if path.exists():
            return TaskResult.fail(f"{path.name} already exists")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_NEW_FILE_TEMPLATES[file_type])
        created = f"Created {path.relative_to(self._project.folder).as_posix()}"
        if not sync:
            return TaskResult.ok(created, path)

        synced = await self.sync_changes()
        if not synced.success:
            return TaskResult.fail(f"{created}, but sync failed: {synced.message}")
        return TaskResult.ok(f"{created}. {synced.message}", path)

    async def create_manifest_file(self) -> TaskResult[Path]:
        """Write a default appsscript.json if the folder has none."""
        path = self._project.folder / (MANIFEST_NAME + ".json")
        if path.exists():
            return TaskResult.fail(f"{path.name} already exists")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(DEFAULT_MANIFEST, indent=2) + "\n")
        return TaskResult.ok(f"Created {path.name}", path)

    # --- Remote operations ---

    async def create_project(self, title: str) -> TaskResult[str]:
        """Create a standalone script project, link it and download it."""
        try:
            metadata = await self.transport.create_project(title)
        except TransportError as e:
            return TaskResult.fail(str(e))
        self._project.link(metadata.script_id)
        self._project.write_metadata(metadata)
        downloaded = await self.download_files()
        if not downloaded.success:
            return TaskResult.fail(downloaded.message)
        return TaskResult.ok(
            f"Created project '{title}' ({metadata.script_id})", metadata.script_id
        )

    async def download_files(
        self, version: int | None = None
    ) -> TaskResult[list[Path]]:
        """Write the remote files (optionally at a version) into the folder."""
        try:
            script_id = self._project.require_script_id()
            content = await self.transport.get_content(script_id, version)
        except (TransportError, FileNotFoundError) as e:
            return TaskResult.fail(str(e))

        written = self._project.write_files(content.files)
        # Only downloaded files; local-only files stay pending for the next sync
        self._project.snapshot(
            dict(self._project.local_name(sf) for sf in content.files)
        )
        at = f" at version {version}" if version is not None else ""
        return TaskResult.ok(f"Downloaded {len(written)} files{at}", written)

    async def sync_changes(self) -> TaskResult[int]:
        """Upload local files with one atomic updateContent call."""
        try:
            script_id = self._project.require_script_id()
        except FileNotFoundError as e:
            return TaskResult.fail(str(e))

        current_files = self._project.read_files()
        if not current_files:
            return TaskResult.fail("No script files found in folder")

        try:
            diff = self._project.diff(current_files)
        except FileNotFoundError:
            logger.debug("No pristine snapshot for {}; pushing every file", script_id)
        else:
            if not diff.has_changes:
                return TaskResult.ok("No changes to sync", 0)
            logger.info(
                "Changes for {}: {} added, {} modified, {} removed",
                script_id,
                len(diff.added),
                len(diff.modified),
                len(diff.removed),
            )

        script_files = self._project.to_script_files(current_files)

        has_manifest = any(
            f.name == MANIFEST_NAME and f.type == FileType.JSON.value
            for f in script_files
        )
        if not has_manifest:
            return TaskResult.fail(
                "Missing appsscript.json manifest. "
                "Every Apps Script project requires this file."
            )

        try:
            await self.transport.update_content(script_id, script_files)
        except TransportError as e:
            return TaskResult.fail(str(e))

        self._project.snapshot(current_files)
        return TaskResult.ok(f"Pushed {len(script_files)} files", len(script_files))

    async def pre_version_and_sync_changes(self) -> TaskResult[int]:
        """Snapshot the remote state as a version, then sync."""
        backup = await self.create_version(BACKUP_VERSION_DESCRIPTION)
        if not backup.success:
            return TaskResult.fail(f"Backup version failed: {backup.message}")
        synced = await self.sync_changes()
        if not synced.success:
            return synced
        return TaskResult.ok(f"{backup.message}. {synced.message}", synced.payload)

    async def create_version(self, description: str) -> TaskResult[VersionInfo]:
        try:
            script_id = self._project.require_script_id()
            version = await self.transport.create_version(script_id, description)
        except (TransportError, FileNotFoundError) as e:
            return TaskResult.fail(str(e))
        return TaskResult.ok(f"Created version {version.version_number}", version)

    async def list_versions(self) -> TaskResult[list[VersionInfo]]:
        try:
            script_id = self._project.require_script_id()
            versions = await self.transport.list_versions(script_id)
        except (TransportError, FileNotFoundError) as e:
            return TaskResult.fail(str(e))
        versions.sort(key=lambda v: v.version_number)
        return TaskResult.ok(f"Found {len(versions)} versions", versions)

    async def create_new_version_and_update_deployment(
        self, description: str
    ) -> TaskResult[DeploymentInfo]:
        """Create a version and make the live deployment serve it."""
        created = await self.create_version(description)
        if not created.success or created.payload is None:
            return TaskResult.fail(created.message)
        deployed = await self._deploy(created.payload.version_number, description)
        if not deployed.success:
            return deployed
        return TaskResult.ok(f"{created.message}. {deployed.message}", deployed.payload)

    async def update_deployment_version_number(
        self, version_number: int
    ) -> TaskResult[DeploymentInfo]:
        """Point the live deployment at an existing version."""
        if version_number < 1:
            return TaskResult.fail("Version numbers start at 1")
        return await self._deploy(version_number, None)

    async def _deploy(
        self, version_number: int, description: str | None
    ) -> TaskResult[DeploymentInfo]:
        try:
            script_id = self._project.require_script_id()
            deployments = await self.transport.list_deployments(script_id)
            live = _live_deployment(deployments)
            if live is None:
                deployment = await self.transport.create_deployment(
                    script_id, version_number, description
                )
                return TaskResult.ok(
                    f"Created deployment {deployment.deployment_id} "
                    f"at version {version_number}",
                    deployment,
                )
            deployment = await self.transport.update_deployment(
                script_id, live.deployment_id, version_number, description
            )
        except (TransportError, FileNotFoundError) as e:
            return TaskResult.fail(str(e))
        return TaskResult.ok(
            f"Deployment {deployment.deployment_id} now serves version "
            f"{version_number}",
            deployment,
        )

    async def clear_credentials(self) -> TaskResult[None]:
        """Forget the cached token and drop the current connection."""
        removed = self._credentials.clear()
        await self.close()
        if removed:
            return TaskResult.ok("Credentials cleared")
        return TaskResult.ok("No cached credentials to clear")

    async def close(self) -> None:
        if self._transport is not None:
            await self._transport.close()
            self._transport = None


def _live_deployment(deployments: list[DeploymentInfo]) -> DeploymentInfo | None:
    """The most recently updated deployment pinned to a version."""
    versioned = [d for d in deployments if not d.is_head]
    if not versioned:
        return None
    return max(versioned, key=lambda d: d.update_time)
