"""Transport layer for the Google Apps Script API.

Defines the Transport protocol and implementations:
- AppsScriptTransport: Production transport using Apps Script API v1
- LocalFileTransport: Test transport reading from local golden files
"""

from __future__ import annotations

import json
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import certifi
import httpx
from loguru import logger

# Apps Script API v1 base URL
API_BASE = "https://script.googleapis.com/v1"
DEFAULT_TIMEOUT = 60


class TransportError(Exception):
    """Base exception for transport errors."""


class AuthenticationError(TransportError):
    """Raised when authentication fails (401/403)."""


class NotFoundError(TransportError):
    """Raised when a script project is not found (404)."""


class APIError(TransportError):
    """Raised when the API returns an error."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


# --- Data classes ---


@dataclass(frozen=True)
class ScriptFile:
    """A single file within an Apps Script project."""

    name: str
    type: str  # SERVER_JS, HTML, or JSON
    source: str
    create_time: str = ""
    update_time: str = ""


@dataclass(frozen=True)
class ProjectMetadata:
    """Metadata about an Apps Script project."""

    script_id: str
    title: str
    parent_id: str = ""  # Non-empty for bound scripts
    create_time: str = ""
    update_time: str = ""


@dataclass(frozen=True)
class ProjectContent:
    """Content of an Apps Script project (all files)."""

    script_id: str
    files: tuple[ScriptFile, ...]


@dataclass(frozen=True)
class VersionInfo:
    """Information about a script version."""

    version_number: int
    description: str = ""
    create_time: str = ""


@dataclass(frozen=True)
class DeploymentInfo:
    """Information about a script deployment.

    The HEAD deployment has no pinned version and reports version 0.
    """

    deployment_id: str
    version_number: int
    description: str = ""
    update_time: str = ""
    entry_points: tuple[dict[str, Any], ...] = ()

    @property
    def is_head(self) -> bool:
        return self.version_number == 0


# --- Transport ABC ---


class Transport(ABC):
    """Abstract base class for Apps Script API transport."""

    @abstractmethod
    async def get_project(self, script_id: str) -> ProjectMetadata:
        """Fetch project metadata."""
        ...

    @abstractmethod
    async def get_content(
        self, script_id: str, version_number: int | None = None
    ) -> ProjectContent:
        """Fetch all files in a project, optionally at a given version."""
        ...

    @abstractmethod
    async def update_content(
        self, script_id: str, files: list[ScriptFile]
    ) -> ProjectContent:
        """Replace all files in a project (atomic operation)."""
        ...

    @abstractmethod
    async def create_project(self, title: str) -> ProjectMetadata:
        """Create a new standalone Apps Script project."""
        ...

    @abstractmethod
    async def create_version(
        self, script_id: str, description: str | None = None
    ) -> VersionInfo:
        """Create an immutable version snapshot."""
        ...

    @abstractmethod
    async def list_versions(self, script_id: str) -> list[VersionInfo]:
        """List all versions of a project."""
        ...

    @abstractmethod
    async def create_deployment(
        self,
        script_id: str,
        version_number: int,
        description: str | None = None,
    ) -> DeploymentInfo:
        """Create a new deployment pinned to a version."""
        ...

    @abstractmethod
    async def list_deployments(self, script_id: str) -> list[DeploymentInfo]:
        """List all deployments of a project."""
        ...

    @abstractmethod
    async def update_deployment(
        self,
        script_id: str,
        deployment_id: str,
        version_number: int,
        description: str | None = None,
    ) -> DeploymentInfo:
        """Point an existing deployment at another version."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        ...


# --- Production transport ---


class AppsScriptTransport(Transport):
    """Production transport using Google Apps Script API v1."""

    def __init__(
        self,
        access_token: str,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._client = httpx.AsyncClient(
            timeout=timeout,
            verify=ssl_context,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
        )

    # -- Core project methods --

    async def get_project(self, script_id: str) -> ProjectMetadata:
        url = f"{API_BASE}/projects/{script_id}"
        data = await self._get(url)
        return _parse_project_metadata(data)

    async def get_content(
        self, script_id: str, version_number: int | None = None
    ) -> ProjectContent:
        url = f"{API_BASE}/projects/{script_id}/content"
        if version_number is not None:
            url += f"?versionNumber={version_number}"
        data = await self._get(url)
        return _parse_project_content(script_id, data)

    async def update_content(
        self, script_id: str, files: list[ScriptFile]
    ) -> ProjectContent:
        url = f"{API_BASE}/projects/{script_id}/content"
        body: dict[str, Any] = {
            "files": [
                {"name": f.name, "type": f.type, "source": f.source} for f in files
            ]
        }
        data = await self._put(url, body)
        return _parse_project_content(script_id, data)

    async def create_project(self, title: str) -> ProjectMetadata:
        url = f"{API_BASE}/projects"
        body: dict[str, Any] = {"title": title}
        data = await self._post(url, body)
        return _parse_project_metadata(data)

    # -- Versions --

    async def create_version(
        self, script_id: str, description: str | None = None
    ) -> VersionInfo:
        url = f"{API_BASE}/projects/{script_id}/versions"
        body: dict[str, Any] = {}
        if description:
            body["description"] = description
        data = await self._post(url, body)
        return _parse_version(data)

    async def list_versions(self, script_id: str) -> list[VersionInfo]:
        url = f"{API_BASE}/projects/{script_id}/versions"
        versions: list[VersionInfo] = []
        page_token = ""
        # versions.list is paginated; follow nextPageToken until exhausted
        while True:
            page_url = f"{url}?pageToken={page_token}" if page_token else url
            data = await self._get(page_url)
            versions.extend(_parse_version(v) for v in data.get("versions", []))
            page_token = data.get("nextPageToken", "")
            if not page_token:
                return versions

    # -- Deployments --

    async def create_deployment(
        self,
        script_id: str,
        version_number: int,
        description: str | None = None,
    ) -> DeploymentInfo:
        url = f"{API_BASE}/projects/{script_id}/deployments"
        body = _deployment_config(script_id, version_number, description)
        data = await self._post(url, body)
        return _parse_deployment(data)

    async def list_deployments(self, script_id: str) -> list[DeploymentInfo]:
        url = f"{API_BASE}/projects/{script_id}/deployments"
        data = await self._get(url)
        return [_parse_deployment(d) for d in data.get("deployments", [])]

    async def update_deployment(
        self,
        script_id: str,
        deployment_id: str,
        version_number: int,
        description: str | None = None,
    ) -> DeploymentInfo:
        url = f"{API_BASE}/projects/{script_id}/deployments/{deployment_id}"
        body = _deployment_config(script_id, version_number, description)
        data = await self._put(url, body)
        return _parse_deployment(data)

    async def close(self) -> None:
        await self._client.aclose()

    # -- HTTP helpers --

    async def _get(self, url: str) -> dict[str, Any]:
        logger.debug("GET {}", url)
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
            result: dict[str, Any] = resp.json()
            return result
        except httpx.HTTPStatusError as e:
            self._handle_http_error(e)
            raise
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e

    async def _post(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        logger.debug("POST {}", url)
        try:
            resp = await self._client.post(url, json=body)
            resp.raise_for_status()
            result: dict[str, Any] = resp.json()
            return result
        except httpx.HTTPStatusError as e:
            self._handle_http_error(e)
            raise
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e

    async def _put(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        logger.debug("PUT {}", url)
        try:
            resp = await self._client.put(url, json=body)
            resp.raise_for_status()
            result: dict[str, Any] = resp.json()
            return result
        except httpx.HTTPStatusError as e:
            self._handle_http_error(e)
            raise
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e

    def _handle_http_error(self, e: httpx.HTTPStatusError) -> None:
        status = e.response.status_code
        if status == 401:
            raise AuthenticationError("Invalid or expired access token") from e
        if status == 403:
            raise AuthenticationError(
                "Access denied. The Apps Script API requires user OAuth tokens "
                "(service accounts are not supported). Check your scopes."
            ) from e
        if status == 404:
            raise NotFoundError(
                "Script project not found. Check the script ID and permissions."
            ) from e
        body = e.response.text
        raise APIError(f"API error ({status}): {body}", status_code=status) from e


# --- Test transport ---


class LocalFileTransport(Transport):
    """Test transport that reads from local golden files.

    Expected directory structure:
        golden_dir/
            <script_id>/
                content.json     # Raw getContent response
                project.json     # Raw get project response (optional)

    Versions and deployments live in memory. Pushed content replaces what
    get_content returns for the rest of the transport's life.
    """

    def __init__(self, golden_dir: Path) -> None:
        self._golden_dir = golden_dir
        self._pushed: dict[str, ProjectContent] = {}
        self._versions: dict[str, list[VersionInfo]] = {}
        self._deployments: dict[str, list[DeploymentInfo]] = {}
        self.update_calls: list[tuple[str, list[ScriptFile]]] = []
        self.closed = False

    async def get_project(self, script_id: str) -> ProjectMetadata:
        path = self._golden_dir / script_id / "project.json"
        if path.exists():
            data = json.loads(path.read_text())
            return _parse_project_metadata(data)
        # Fallback: derive metadata from content.json
        await self.get_content(script_id)
        return ProjectMetadata(script_id=script_id, title=script_id)

    async def get_content(
        self, script_id: str, version_number: int | None = None
    ) -> ProjectContent:
        if version_number is None and script_id in self._pushed:
            return self._pushed[script_id]
        if version_number is not None:
            known = {v.version_number for v in self._versions.get(script_id, [])}
            if version_number not in known:
                raise NotFoundError(f"Version {version_number} not found")
        path = self._golden_dir / script_id / "content.json"
        if not path.exists():
            raise NotFoundError(f"Golden file not found: {path}")
        data = json.loads(path.read_text())
        return _parse_project_content(script_id, data)

    async def update_content(
        self, script_id: str, files: list[ScriptFile]
    ) -> ProjectContent:
        self.update_calls.append((script_id, list(files)))
        content = ProjectContent(script_id=script_id, files=tuple(files))
        self._pushed[script_id] = content
        return content

    async def create_project(self, title: str) -> ProjectMetadata:
        return ProjectMetadata(script_id="mock_script_id", title=title)

    async def create_version(
        self, script_id: str, description: str | None = None
    ) -> VersionInfo:
        versions = self._versions.setdefault(script_id, [])
        version = VersionInfo(
            version_number=len(versions) + 1,
            description=description or "",
            create_time=_now(),
        )
        versions.append(version)
        return version

    async def list_versions(self, script_id: str) -> list[VersionInfo]:
        return list(self._versions.get(script_id, []))

    async def create_deployment(
        self,
        script_id: str,
        version_number: int,
        description: str | None = None,
    ) -> DeploymentInfo:
        deployments = self._deployments.setdefault(script_id, [])
        deployment = DeploymentInfo(
            deployment_id=f"mock_deployment_{len(deployments) + 1}",
            version_number=version_number,
            description=description or "",
            update_time=_now(),
        )
        deployments.append(deployment)
        return deployment

    async def list_deployments(self, script_id: str) -> list[DeploymentInfo]:
        return list(self._deployments.get(script_id, []))

    async def update_deployment(
        self,
        script_id: str,
        deployment_id: str,
        version_number: int,
        description: str | None = None,
    ) -> DeploymentInfo:
        deployments = self._deployments.get(script_id, [])
        for i, d in enumerate(deployments):
            if d.deployment_id == deployment_id:
                updated = DeploymentInfo(
                    deployment_id=deployment_id,
                    version_number=version_number,
                    description=description or d.description,
                    update_time=_now(),
                )
                deployments[i] = updated
                return updated
        raise NotFoundError(f"Deployment {deployment_id} not found")

    async def close(self) -> None:
        self.closed = True


# --- Helpers ---


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _deployment_config(
    script_id: str, version_number: int, description: str | None
) -> dict[str, Any]:
    config: dict[str, Any] = {
        "scriptId": script_id,
        "versionNumber": version_number,
        "manifestFileName": "appsscript",
    }
    if description:
        config["description"] = description
    return {"deploymentConfig": config}


def _parse_project_metadata(data: dict[str, Any]) -> ProjectMetadata:
    return ProjectMetadata(
        script_id=data.get("scriptId", ""),
        title=data.get("title", ""),
        parent_id=data.get("parentId", ""),
        create_time=data.get("createTime", ""),
        update_time=data.get("updateTime", ""),
    )


def _parse_project_content(script_id: str, data: dict[str, Any]) -> ProjectContent:
    files: list[ScriptFile] = []
    for f in data.get("files", []):
        files.append(
            ScriptFile(
                name=f.get("name", ""),
                type=f.get("type", "SERVER_JS"),
                source=f.get("source", ""),
                create_time=f.get("createTime", ""),
                update_time=f.get("updateTime", ""),
            )
        )
    return ProjectContent(
        script_id=data.get("scriptId", script_id),
        files=tuple(files),
    )


def _parse_version(data: dict[str, Any]) -> VersionInfo:
    return VersionInfo(
        version_number=data.get("versionNumber", 0),
        description=data.get("description", ""),
        create_time=data.get("createTime", ""),
    )


def _parse_deployment(data: dict[str, Any]) -> DeploymentInfo:
    dc = data.get("deploymentConfig", {})
    return DeploymentInfo(
        deployment_id=data.get("deploymentId", ""),
        version_number=dc.get("versionNumber", 0),
        description=dc.get("description", ""),
        update_time=data.get("updateTime", ""),
        entry_points=tuple(data.get("entryPoints", [])),
    )
