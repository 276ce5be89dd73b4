"""scriptsync - keep a local folder in sync with a Google Apps Script project.

Download, upload, version and deploy Apps Script projects, and upload
automatically while you edit.
"""

__version__ = "0.1.0"

from scriptsync.config import Settings
from scriptsync.controller import ScriptController
from scriptsync.manager import InfoError, ScriptManager
from scriptsync.project import FileType, LocalProject
from scriptsync.results import TaskResult
from scriptsync.transport import (
    APIError,
    AppsScriptTransport,
    AuthenticationError,
    LocalFileTransport,
    NotFoundError,
    Transport,
    TransportError,
)
from scriptsync.watcher import AutoUploadCoordinator, WatchHandle

__all__ = [
    "APIError",
    "AppsScriptTransport",
    "AuthenticationError",
    "AutoUploadCoordinator",
    "FileType",
    "InfoError",
    "LocalFileTransport",
    "LocalProject",
    "NotFoundError",
    "ScriptController",
    "ScriptManager",
    "Settings",
    "TaskResult",
    "Transport",
    "TransportError",
    "WatchHandle",
    "__version__",
]
