"""Tests for ScriptManager operations against the golden transport."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from scriptsync.credentials import CredentialsManager
from scriptsync.manager import InfoError, ScriptManager, parse_script_id
from scriptsync.project import FileType
from scriptsync.transport import AuthenticationError, LocalFileTransport, ScriptFile

LONG_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz_0123456789-abcdefghijklmnopq"


# --- Script ID ---


def test_parse_script_id_from_url() -> None:
    """Should extract script ID from Apps Script editor URL."""
    url = "https://script.google.com/d/1abc_xyz/edit"
    assert parse_script_id(url) == "1abc_xyz"


def test_parse_script_id_from_projects_url() -> None:
    url = "https://script.google.com/home/projects/1abc_xyz/edit"
    assert parse_script_id(url) == "1abc_xyz"


def test_parse_script_id_plain() -> None:
    """Should return plain script IDs unchanged."""
    assert parse_script_id(" 1abc_xyz ") == "1abc_xyz"


def test_set_script_id_links_folder(manager: ScriptManager) -> None:
    manager.script_id = f"https://script.google.com/home/projects/{LONG_ID}/edit"
    assert manager.script_id == LONG_ID
    data = json.loads(manager.project.project_json.read_text())
    assert data["scriptId"] == LONG_ID


@pytest.mark.parametrize("bad", ["", "short", "has spaces in it but long enough"])
def test_set_invalid_script_id(manager: ScriptManager, bad: str) -> None:
    with pytest.raises(InfoError):
        manager.script_id = bad
    assert manager.script_id == ""


# --- Initialize / info ---


@pytest.mark.asyncio
async def test_initialize_unlinked(manager: ScriptManager, tmp_path: Path) -> None:
    folder = tmp_path / "fresh"
    result = await manager.initialize(folder)
    assert result.success
    assert "No script linked" in result.message
    assert folder.is_dir()


@pytest.mark.asyncio
async def test_initialize_refreshes_title(linked_manager: ScriptManager) -> None:
    result = await linked_manager.initialize(linked_manager.project.folder)
    assert result.success
    assert linked_manager.project.read_metadata()["title"] == "My Test Script"


@pytest.mark.asyncio
async def test_initialize_without_credentials(settings, tmp_path: Path) -> None:
    """With no token available, a linked initialize reports the auth failure."""
    manager = ScriptManager(
        settings, credentials=CredentialsManager(tmp_path / "missing.json")
    )
    manager.project.link("test_project")
    result = await manager.initialize(settings.source_dir)
    assert not result.success
    assert "No access token" in result.message


@pytest.mark.asyncio
async def test_script_info(linked_manager: ScriptManager) -> None:
    await linked_manager.download_files()
    lines = linked_manager.script_info()
    assert "Script ID: test_project" in lines
    assert "Local Files: 5" in lines
    assert "HTML Script Tag Parsing: Off" in lines


def test_watch_paths(manager: ScriptManager) -> None:
    paths = manager.watch_paths()
    assert paths == [manager.project.folder]
    assert paths[0].is_dir()


# --- Download ---


@pytest.mark.asyncio
async def test_download_files(linked_manager: ScriptManager) -> None:
    result = await linked_manager.download_files()
    assert result.success
    folder = linked_manager.project.folder
    assert (folder / "Code.gs").exists()
    assert (folder / "Sidebar.html").exists()
    assert (folder / "appsscript.json").exists()
    project = linked_manager.project
    assert not project.diff(project.read_files()).has_changes


@pytest.mark.asyncio
async def test_download_unlinked(manager: ScriptManager) -> None:
    result = await manager.download_files()
    assert not result.success
    assert "No script linked" in result.message


@pytest.mark.asyncio
async def test_download_version(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    await local_transport.create_version("test_project", "v1")
    result = await linked_manager.download_files(1)
    assert result.success
    assert "version 1" in result.message


@pytest.mark.asyncio
async def test_download_missing_version(linked_manager: ScriptManager) -> None:
    result = await linked_manager.download_files(9)
    assert not result.success
    assert "Version 9" in result.message


@pytest.mark.asyncio
async def test_download_with_script_tag_parsing(linked_manager: ScriptManager) -> None:
    linked_manager.parse_html_script_tag = True
    await linked_manager.download_files()
    folder = linked_manager.project.folder
    assert (folder / "ClientScript.js").exists()
    assert not (folder / "ClientScript.html").exists()


# --- Sync ---


@pytest.mark.asyncio
async def test_sync_changes(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    """Sync should push every file and refresh the snapshot."""
    await linked_manager.download_files()
    code_gs = linked_manager.project.folder / "Code.gs"
    code_gs.write_text(code_gs.read_text() + "\n// updated\n")

    result = await linked_manager.sync_changes()
    assert result.success
    assert result.payload == 5
    assert len(local_transport.update_calls) == 1
    project = linked_manager.project
    assert not project.diff(project.read_files()).has_changes


@pytest.mark.asyncio
async def test_sync_without_changes_is_noop(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    await linked_manager.download_files()
    result = await linked_manager.sync_changes()
    assert result.success
    assert result.message == "No changes to sync"
    assert local_transport.update_calls == []


@pytest.mark.asyncio
async def test_sync_fails_without_manifest(linked_manager: ScriptManager) -> None:
    """Sync should fail if appsscript.json is missing."""
    await linked_manager.download_files()
    (linked_manager.project.folder / "appsscript.json").unlink()

    result = await linked_manager.sync_changes()
    assert not result.success
    assert "appsscript.json" in result.message


@pytest.mark.asyncio
async def test_sync_no_files(linked_manager: ScriptManager) -> None:
    """Sync should fail if no script files are found."""
    result = await linked_manager.sync_changes()
    assert not result.success
    assert "No script files" in result.message


@pytest.mark.asyncio
async def test_sync_wraps_script_tag_files(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    linked_manager.parse_html_script_tag = True
    await linked_manager.download_files()
    js = linked_manager.project.folder / "ClientScript.js"
    js.write_text("function refresh() {}")

    await linked_manager.sync_changes()
    pushed = {f.name: f for f in local_transport.update_calls[0][1]}
    assert pushed["ClientScript"].type == "HTML"
    assert pushed["ClientScript"].source.startswith("<script>\n")


@pytest.mark.asyncio
async def test_script_tag_attributes_survive_sync(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    """A <script type="module"> file stays HTML and is pushed back unchanged."""
    module_source = '<script type="module">\nx()\n</script>'
    content = await local_transport.get_content("test_project")
    await local_transport.update_content(
        "test_project",
        [*content.files, ScriptFile(name="Module", type="HTML", source=module_source)],
    )
    linked_manager.parse_html_script_tag = True
    await linked_manager.download_files()
    folder = linked_manager.project.folder
    assert (folder / "Module.html").read_text() == module_source
    assert not (folder / "Module.js").exists()

    (folder / "Code.gs").write_text("// edited\n")
    await linked_manager.sync_changes()
    pushed = {f.name: f for f in local_transport.update_calls[-1][1]}
    assert pushed["Module"].source == module_source


@pytest.mark.asyncio
async def test_local_only_file_survives_download(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    """A file that exists only locally is still pushed after a pull."""
    folder = linked_manager.project.folder
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "Local.gs").write_text("function local() {}\n")

    await linked_manager.download_files()
    result = await linked_manager.sync_changes()

    assert result.success
    assert result.message != "No changes to sync"
    assert len(local_transport.update_calls) == 1
    pushed = {f.name for f in local_transport.update_calls[0][1]}
    assert "Local" in pushed


@pytest.mark.asyncio
async def test_pre_version_and_sync(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    await linked_manager.download_files()
    (linked_manager.project.folder / "Extra.gs").write_text("// extra\n")

    result = await linked_manager.pre_version_and_sync_changes()
    assert result.success
    versions = await local_transport.list_versions("test_project")
    assert [v.description for v in versions] == ["Backup before sync"]
    assert len(local_transport.update_calls) == 1


# --- New files ---


@pytest.mark.asyncio
async def test_add_new_source_file(manager: ScriptManager) -> None:
    result = await manager.add_new_source_file("Helpers", FileType.SERVER_JS)
    assert result.success
    assert result.payload == manager.project.folder / "Helpers.gs"
    assert "function myFunction" in result.payload.read_text()


@pytest.mark.asyncio
async def test_add_existing_source_file(manager: ScriptManager) -> None:
    await manager.add_new_source_file("Page", FileType.HTML)
    result = await manager.add_new_source_file("Page", FileType.HTML)
    assert not result.success
    assert "already exists" in result.message


@pytest.mark.asyncio
async def test_add_new_source_file_and_sync(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    await linked_manager.download_files()
    result = await linked_manager.add_new_source_file("Menu", FileType.SERVER_JS, True)
    assert result.success
    pushed = {f.name for f in local_transport.update_calls[0][1]}
    assert "Menu" in pushed


@pytest.mark.asyncio
async def test_add_new_source_file_sync_failure(manager: ScriptManager) -> None:
    """The file stays on disk even when the follow-up sync fails."""
    result = await manager.add_new_source_file("Menu", FileType.SERVER_JS, True)
    assert not result.success
    assert "sync failed" in result.message
    assert (manager.project.folder / "Menu.gs").exists()


@pytest.mark.asyncio
async def test_create_manifest_file(manager: ScriptManager) -> None:
    result = await manager.create_manifest_file()
    assert result.success
    manifest = json.loads(result.payload.read_text())
    assert manifest["runtimeVersion"] == "V8"

    again = await manager.create_manifest_file()
    assert not again.success


@pytest.mark.asyncio
async def test_create_project(manager: ScriptManager) -> None:
    """create_project links the new script; the mock ID has no golden content."""
    result = await manager.create_project("New Script")
    assert manager.script_id == "mock_script_id"
    assert not result.success
    assert "Golden file not found" in result.message


# --- Versions and deployments ---


@pytest.mark.asyncio
async def test_create_and_list_versions(linked_manager: ScriptManager) -> None:
    created = await linked_manager.create_version("first")
    assert created.success
    assert created.message == "Created version 1"

    listed = await linked_manager.list_versions()
    assert listed.success
    assert [v.version_number for v in listed.payload] == [1]


@pytest.mark.asyncio
async def test_release_creates_deployment_first_time(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    result = await linked_manager.create_new_version_and_update_deployment("launch")
    assert result.success
    deployments = await local_transport.list_deployments("test_project")
    assert len(deployments) == 1
    assert deployments[0].version_number == 1


@pytest.mark.asyncio
async def test_release_updates_existing_deployment(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    await linked_manager.create_new_version_and_update_deployment("launch")
    result = await linked_manager.create_new_version_and_update_deployment("fix")
    assert result.success

    deployments = await local_transport.list_deployments("test_project")
    assert len(deployments) == 1
    assert deployments[0].version_number == 2


@pytest.mark.asyncio
async def test_update_deployment_version_number(
    linked_manager: ScriptManager, local_transport: LocalFileTransport
) -> None:
    await linked_manager.create_new_version_and_update_deployment("one")
    await linked_manager.create_version("two")

    result = await linked_manager.update_deployment_version_number(1)
    assert result.success
    deployments = await local_transport.list_deployments("test_project")
    assert deployments[0].version_number == 1


@pytest.mark.asyncio
async def test_update_deployment_rejects_zero(linked_manager: ScriptManager) -> None:
    result = await linked_manager.update_deployment_version_number(0)
    assert not result.success


@pytest.mark.asyncio
async def test_versions_unlinked(manager: ScriptManager) -> None:
    result = await manager.list_versions()
    assert not result.success


# --- Credentials ---


@pytest.mark.asyncio
async def test_clear_credentials(
    manager: ScriptManager,
    credentials: CredentialsManager,
    local_transport: LocalFileTransport,
) -> None:
    credentials.save_token("ya29.cached")
    manager.transport  # noqa: B018 - force the transport into existence

    result = await manager.clear_credentials()
    assert result.success
    assert result.message == "Credentials cleared"
    assert not credentials.token_cache_path.exists()
    assert local_transport.closed

    again = await manager.clear_credentials()
    assert again.message == "No cached credentials to clear"


def test_default_transport_needs_token(settings, tmp_path: Path) -> None:
    manager = ScriptManager(
        settings, credentials=CredentialsManager(tmp_path / "none.json")
    )
    with pytest.raises(AuthenticationError):
        manager.transport  # noqa: B018
