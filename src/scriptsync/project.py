"""Local project folder: layout, file-type mapping, pristine snapshot and diff.

On-disk layout:
    <source_dir>/
        project.json          # scriptId, title, parentId, createTime, updateTime
        appsscript.json       # Manifest
        Code.gs               # SERVER_JS files
        Page.html             # HTML files
        Client.js             # HTML files holding one <script> block
                              # (only with script-tag parsing enabled)
        .pristine/project.zip # Snapshot of the last synced state
"""

from __future__ import annotations

import json
import re
import zipfile
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from scriptsync.transport import ProjectMetadata, ScriptFile

PROJECT_FILE = "project.json"
MANIFEST_NAME = "appsscript"
PRISTINE_DIR = ".pristine"


class FileType(str, Enum):
    """Apps Script file types."""

    SERVER_JS = "SERVER_JS"
    HTML = "HTML"
    JSON = "JSON"


# Maps Apps Script file types to local file extensions
FILE_TYPE_TO_EXT: dict[str, str] = {
    FileType.SERVER_JS.value: ".gs",
    FileType.HTML.value: ".html",
    FileType.JSON.value: ".json",
}

# Reverse mapping: extension to Apps Script file type
EXT_TO_FILE_TYPE: dict[str, str] = {ext: t for t, ext in FILE_TYPE_TO_EXT.items()}

# Local extension for HTML files stored without their <script> wrapper
SCRIPT_TAG_EXT = ".js"

# Matches exactly the layout wrap_script_tag writes
_SCRIPT_BLOCK = re.compile(r"\A<script>\n(?P<body>.*)\n</script>\n\Z", re.DOTALL)


def unwrap_script_tag(source: str) -> str | None:
    """Return the body of an HTML file made of exactly one bare <script> block.

    Tags with attributes, or blocks not laid out as wrap_script_tag writes
    them, return None and the file stays HTML.
    """
    match = _SCRIPT_BLOCK.match(source)
    if not match:
        return None
    body = match.group("body")
    if "</script" in body.lower():
        return None
    return body


def wrap_script_tag(source: str) -> str:
    return f"<script>\n{source}\n</script>\n"


@dataclass
class DiffResult:
    """Result of comparing current files against pristine."""

    script_id: str
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)


class LocalProject:
    """A source folder linked (or about to be linked) to a script project."""

    def __init__(self, folder: str | Path, *, parse_script_tag: bool = False) -> None:
        self.folder = Path(folder)
        self.parse_script_tag = parse_script_tag

    @property
    def project_json(self) -> Path:
        return self.folder / PROJECT_FILE

    @property
    def pristine_path(self) -> Path:
        return self.folder / PRISTINE_DIR / "project.zip"

    @property
    def tracked_extensions(self) -> set[str]:
        exts = set(EXT_TO_FILE_TYPE)
        if self.parse_script_tag:
            exts.add(SCRIPT_TAG_EXT)
        return exts

    # --- Metadata ---

    def read_metadata(self) -> dict[str, Any]:
        """Read project.json, or an empty dict if the folder is not linked."""
        if not self.project_json.exists():
            return {}
        data: dict[str, Any] = json.loads(self.project_json.read_text())
        return data

    @property
    def script_id(self) -> str:
        script_id: str = self.read_metadata().get("scriptId", "")
        return script_id

    def require_script_id(self) -> str:
        """Return the linked script ID or raise if there is none."""
        script_id = self.script_id
        if not script_id:
            raise FileNotFoundError(
                f"No script linked to {self.folder}. "
                "Provide a script ID or create a new project first."
            )
        return script_id

    def write_metadata(self, metadata: ProjectMetadata) -> Path:
        meta_dict = {
            "scriptId": metadata.script_id,
            "title": metadata.title,
            "parentId": metadata.parent_id,
            "createTime": metadata.create_time,
            "updateTime": metadata.update_time,
        }
        self.folder.mkdir(parents=True, exist_ok=True)
        self.project_json.write_text(json.dumps(meta_dict, indent=2) + "\n")
        return self.project_json

    def link(self, script_id: str) -> None:
        """Point project.json at script_id, dropping metadata of any old link."""
        current = self.read_metadata()
        if current.get("scriptId") == script_id:
            return
        self.write_metadata(ProjectMetadata(script_id=script_id, title=""))
        # The old snapshot describes a different project
        self.pristine_path.unlink(missing_ok=True)

    # --- Files ---

    def is_tracked(self, path: str | Path) -> bool:
        """Whether a path inside the folder is a script file."""
        path = Path(path)
        try:
            rel = path.resolve().relative_to(self.folder.resolve())
        except ValueError:
            return False
        if any(part.startswith(".") for part in rel.parts):
            return False
        if rel.as_posix() == PROJECT_FILE:
            return False
        return rel.suffix in self.tracked_extensions

    def local_name(self, sf: ScriptFile) -> tuple[str, str]:
        """Map a remote file to its local (filename, content)."""
        if self.parse_script_tag and sf.type == FileType.HTML.value:
            body = unwrap_script_tag(sf.source)
            if body is not None:
                return sf.name + SCRIPT_TAG_EXT, body
        ext = FILE_TYPE_TO_EXT.get(sf.type, ".txt")
        return sf.name + ext, sf.source

    def write_files(self, files: Iterable[ScriptFile]) -> list[Path]:
        """Write remote files into the folder with their local extensions."""
        written: list[Path] = []
        for sf in files:
            filename, content = self.local_name(sf)
            file_path = self.folder / filename
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content)
            written.append(file_path)
        return written

    def read_files(self) -> dict[str, str]:
        """Read current script files.

        Returns:
            Dict mapping relative filename -> content. Excludes project.json
            and anything under hidden directories such as .pristine/.
        """
        files: dict[str, str] = {}
        if not self.folder.exists():
            return files
        for path in sorted(self.folder.rglob("*")):
            if path.is_file() and self.is_tracked(path):
                files[path.relative_to(self.folder).as_posix()] = path.read_text()
        return files

    def to_script_files(self, files: dict[str, str]) -> list[ScriptFile]:
        """Convert filename->content dict to list of ScriptFile objects."""
        result: list[ScriptFile] = []
        for filename, content in files.items():
            path = Path(filename)
            name = path.with_suffix("").as_posix()
            if path.suffix == SCRIPT_TAG_EXT:
                result.append(
                    ScriptFile(
                        name=name,
                        type=FileType.HTML.value,
                        source=wrap_script_tag(content),
                    )
                )
                continue
            file_type = EXT_TO_FILE_TYPE.get(path.suffix, FileType.SERVER_JS.value)
            result.append(ScriptFile(name=name, type=file_type, source=content))
        return result

    # --- Pristine snapshot ---

    def snapshot(self, files: dict[str, str]) -> Path:
        """Record files (relative filename -> content) as the last synced state."""
        self.pristine_path.parent.mkdir(parents=True, exist_ok=True)

        with zipfile.ZipFile(self.pristine_path, "w", zipfile.ZIP_DEFLATED) as zf:
            if self.project_json.exists():
                zf.write(self.project_json, PROJECT_FILE)
            for filename, content in files.items():
                zf.writestr(filename, content)

        return self.pristine_path

    def read_pristine(self) -> dict[str, str] | None:
        """Read file contents from the snapshot, or None if there is none."""
        if not self.pristine_path.exists():
            return None

        files: dict[str, str] = {}
        with zipfile.ZipFile(self.pristine_path, "r") as zf:
            for name in zf.namelist():
                if name.endswith("/") or name == PROJECT_FILE:
                    continue
                files[name] = zf.read(name).decode("utf-8")
        return files

    def diff(self, current_files: dict[str, str]) -> DiffResult:
        """Compare current_files (as returned by read_files) against the snapshot.

        Raises:
            FileNotFoundError: If no snapshot has been recorded yet.
        """
        script_id = self.require_script_id()
        pristine_files = self.read_pristine()
        if pristine_files is None:
            raise FileNotFoundError(
                f"Pristine snapshot not found: {self.pristine_path}. "
                "Download the project first."
            )

        result = DiffResult(script_id=script_id)

        all_names = set(pristine_files) | set(current_files)
        for name in sorted(all_names):
            if name not in pristine_files:
                result.added.append(name)
            elif name not in current_files:
                result.removed.append(name)
            elif pristine_files[name] != current_files[name]:
                result.modified.append(name)
            else:
                result.unchanged.append(name)

        return result
