"""Shared test fixtures for scriptsync."""

from __future__ import annotations

from pathlib import Path

import pytest
from loguru import logger

from scriptsync.config import Settings
from scriptsync.console import Console
from scriptsync.credentials import CredentialsManager
from scriptsync.manager import ScriptManager
from scriptsync.transport import LocalFileTransport

GOLDEN_DIR = Path(__file__).parent / "golden"
SCRIPT_ID = "test_project"


@pytest.fixture(autouse=True)
def _quiet_logs():
    logger.remove()
    yield


@pytest.fixture
def golden_dir() -> Path:
    return GOLDEN_DIR


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        source_dir=tmp_path / "src",
        token_cache_path=tmp_path / "config" / "token.json",
        auto_upload_timeout_ms=100,
        _env_file=None,
    )


@pytest.fixture
def local_transport() -> LocalFileTransport:
    return LocalFileTransport(GOLDEN_DIR)


@pytest.fixture
def credentials(settings: Settings) -> CredentialsManager:
    return CredentialsManager(settings.token_cache_path)


@pytest.fixture
def manager(
    settings: Settings,
    local_transport: LocalFileTransport,
    credentials: CredentialsManager,
) -> ScriptManager:
    return ScriptManager(
        settings,
        transport_factory=lambda: local_transport,
        credentials=credentials,
    )


@pytest.fixture
def linked_manager(manager: ScriptManager) -> ScriptManager:
    """A manager whose source folder is linked to the golden project."""
    manager.project.link(SCRIPT_ID)
    return manager


@pytest.fixture
def console() -> Console:
    return Console(width=40)
