"""CLI entry point for scriptsync.

Usage:
    python -m scriptsync init
    python -m scriptsync info
    python -m scriptsync set-id <script_id_or_url>
    python -m scriptsync create <title>
    python -m scriptsync pull [--version N]
    python -m scriptsync push [--backup]
    python -m scriptsync new-file <name> [--type gs|html|json] [--sync]
    python -m scriptsync manifest
    python -m scriptsync version <description>
    python -m scriptsync release <description>
    python -m scriptsync live <description>
    python -m scriptsync versions
    python -m scriptsync deploy-version <N>
    python -m scriptsync watch
    python -m scriptsync login --token <token>
    python -m scriptsync logout

Global options (before the command): --source-dir, --auto-sync,
--parse-script-tag, --log-level, --json-logs.
"""

from __future__ import annotations

import argparse
import sys
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from scriptsync.config import Settings
from scriptsync.console import Console
from scriptsync.controller import ScriptController
from scriptsync.credentials import CredentialsManager
from scriptsync.logging import setup_logging
from scriptsync.project import FileType

FILE_TYPE_CHOICES = {
    "gs": FileType.SERVER_JS,
    "html": FileType.HTML,
    "json": FileType.JSON,
}


def _exit_code(succeeded: bool) -> int:
    return 0 if succeeded else 1


# --- Command handlers ---


def cmd_init(controller: ScriptController, args: argparse.Namespace) -> int:  # noqa: ARG001
    """Prepare the source folder and show its status."""
    return _exit_code(controller.initialize_library())


def cmd_info(controller: ScriptController, args: argparse.Namespace) -> int:  # noqa: ARG001
    """Show the status of the source folder."""
    controller.display_info()
    return 0


def cmd_set_id(controller: ScriptController, args: argparse.Namespace) -> int:
    """Link the source folder to an existing script."""
    return _exit_code(controller.provide_script_id(args.script))


def cmd_create(controller: ScriptController, args: argparse.Namespace) -> int:
    """Create a new script project and download it."""
    return _exit_code(controller.create_project(args.title))


def cmd_pull(controller: ScriptController, args: argparse.Namespace) -> int:
    """Download the remote files, optionally at a version."""
    if args.version is None:
        return _exit_code(controller.download_files())
    if not _check_version(controller, args.version):
        return 1
    return _exit_code(controller.download_files_version(args.version))


def cmd_push(controller: ScriptController, args: argparse.Namespace) -> int:
    """Upload local changes."""
    if args.backup:
        return _exit_code(controller.version_backup_then_upload_files())
    return _exit_code(controller.upload_files())


def cmd_new_file(controller: ScriptController, args: argparse.Namespace) -> int:
    """Create a starter source file."""
    file_type = FILE_TYPE_CHOICES[args.type]
    return _exit_code(controller.create_source_code_file(args.name, file_type, args.sync))


def cmd_manifest(controller: ScriptController, args: argparse.Namespace) -> int:  # noqa: ARG001
    """Write a default appsscript.json."""
    return _exit_code(controller.create_manifest_file())


def cmd_version(controller: ScriptController, args: argparse.Namespace) -> int:
    """Create a version of the remote project."""
    return _exit_code(controller.create_new_version(args.description))


def cmd_release(controller: ScriptController, args: argparse.Namespace) -> int:
    """Create a version and point the live deployment at it."""
    return _exit_code(
        controller.create_new_version_and_update_deployment(args.description)
    )


def cmd_live(controller: ScriptController, args: argparse.Namespace) -> int:
    """Upload, then release the result to the live deployment."""
    return _exit_code(controller.sync_and_deploy_for_live_version(args.description))


def cmd_versions(controller: ScriptController, args: argparse.Namespace) -> int:  # noqa: ARG001
    """List versions of the project."""
    return _exit_code(controller.list_project_versions())


def cmd_deploy_version(controller: ScriptController, args: argparse.Namespace) -> int:
    """Point the live deployment at an existing version."""
    if not _check_version(controller, args.version):
        return 1
    return _exit_code(controller.update_deployment_version_number(args.version))


def cmd_watch(controller: ScriptController, args: argparse.Namespace) -> int:  # noqa: ARG001
    """Upload automatically whenever a local script file changes."""
    controller.auto_sync = True
    if not controller.enable_watching():
        return 1
    console = controller.console
    console.print_centered("Watching for changes. Press Ctrl+C to stop.")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        console.print_centered("Stopped watching.")
    return 0


def cmd_logout(controller: ScriptController, args: argparse.Namespace) -> int:  # noqa: ARG001
    """Forget the cached access token."""
    return _exit_code(controller.clear_credentials())


def cmd_login(settings: Settings, args: argparse.Namespace) -> int:
    """Cache an access token for later commands."""
    manager = CredentialsManager(settings.token_cache_path)
    token = manager.save_token(args.token, expires_in=args.expires_in)
    Console().print_centered(
        f"Token saved (expires in {token.expires_in_seconds()} seconds)"
    )
    return 0


def _check_version(controller: ScriptController, version_number: int) -> bool:
    """List versions and make sure version_number is one of them."""
    if not controller.list_project_versions():
        return False
    if not controller.version_found(version_number):
        controller.console.print_error_centered(f"Version {version_number} not found")
        return False
    return True


# --- CLI setup ---


def _build_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    if args.source_dir:
        overrides["source_dir"] = Path(args.source_dir)
    if args.auto_sync:
        overrides["auto_sync"] = True
    if args.parse_script_tag:
        overrides["parse_script_tag"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.json_logs:
        overrides["json_logs"] = True
    return Settings(**overrides)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scriptsync",
        description="Keep a local folder in sync with a Google Apps Script project",
    )
    parser.add_argument("--source-dir", help="Local folder holding the script files")
    parser.add_argument(
        "--auto-sync",
        action="store_true",
        help="Upload automatically when local files change",
    )
    parser.add_argument(
        "--parse-script-tag",
        action="store_true",
        help="Store HTML files made of one <script> block as .js files",
    )
    parser.add_argument("--log-level", help="Minimum log level (default: WARNING)")
    parser.add_argument("--json-logs", action="store_true", help="Log JSON lines")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add(name: str, func: Any, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.set_defaults(func=func, needs_controller=True)
        return sub

    add("init", cmd_init, "Prepare the source folder and show its status")
    add("info", cmd_info, "Show the status of the source folder")

    set_id_parser = add("set-id", cmd_set_id, "Link the folder to an existing script")
    set_id_parser.add_argument("script", help="Script ID or Apps Script URL")

    create_parser = add("create", cmd_create, "Create a new Apps Script project")
    create_parser.add_argument("title", help="Project title")

    pull_parser = add("pull", cmd_pull, "Download the remote files")
    pull_parser.add_argument(
        "--version", type=int, default=None, help="Download this version instead of HEAD"
    )

    push_parser = add("push", cmd_push, "Upload local changes")
    push_parser.add_argument(
        "--backup",
        action="store_true",
        help="Create a backup version of the remote project first",
    )

    new_file_parser = add("new-file", cmd_new_file, "Create a starter source file")
    new_file_parser.add_argument("name", help="File name without extension")
    new_file_parser.add_argument(
        "--type", choices=sorted(FILE_TYPE_CHOICES), default="gs", help="File type"
    )
    new_file_parser.add_argument(
        "--sync", action="store_true", help="Upload right after creating the file"
    )

    add("manifest", cmd_manifest, "Write a default appsscript.json")

    version_parser = add("version", cmd_version, "Create a version")
    version_parser.add_argument("description", help="Version description")

    release_parser = add(
        "release", cmd_release, "Create a version and update the live deployment"
    )
    release_parser.add_argument("description", help="Version description")

    live_parser = add("live", cmd_live, "Upload, version and update the live deployment")
    live_parser.add_argument("description", help="Version description")

    add("versions", cmd_versions, "List versions of the project")

    deploy_parser = add(
        "deploy-version", cmd_deploy_version, "Point the live deployment at a version"
    )
    deploy_parser.add_argument("version", type=int, help="Version number")

    add("watch", cmd_watch, "Upload automatically on local changes")
    add("logout", cmd_logout, "Forget the cached access token")

    login_parser = subparsers.add_parser("login", help="Cache an access token")
    login_parser.add_argument("--token", required=True, help="OAuth access token")
    login_parser.add_argument(
        "--expires-in",
        type=int,
        default=3600,
        help="Seconds until the token expires (default: 3600)",
    )
    login_parser.set_defaults(func=cmd_login, needs_controller=False)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = _build_settings(args)
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    setup_logging(json_logs=settings.json_logs, log_level=settings.log_level)

    if not args.needs_controller:
        result: int = args.func(settings, args)
        return result

    with ScriptController(settings) as controller:
        controller.set_html_script_parse()
        result = args.func(controller, args)
    return result


if __name__ == "__main__":
    sys.exit(main())
