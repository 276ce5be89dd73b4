"""Application configuration using pydantic-settings.

Values come from constructor overrides (the CLI passes its flags this way),
then SCRIPTSYNC_* environment variables, then a local .env file.
"""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TOKEN_CACHE_PATH = Path.home() / ".config" / "scriptsync" / "token.json"

LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    """Settings for a scriptsync session.

    Environment variables (all optional):
    - SCRIPTSYNC_SOURCE_DIR: Local folder holding the script files
    - SCRIPTSYNC_AUTO_SYNC: Upload automatically when local files change
    - SCRIPTSYNC_PARSE_SCRIPT_TAG: Store single-<script> HTML files as .js
    - SCRIPTSYNC_ACCESS_TOKEN: OAuth bearer token for the Apps Script API
    """

    model_config = SettingsConfigDict(
        env_prefix="SCRIPTSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    source_dir: Path = Path("src")
    auto_sync: bool = False
    parse_script_tag: bool = False

    # Credentials
    access_token: str = ""
    token_cache_path: Path = DEFAULT_TOKEN_CACHE_PATH

    # Timeouts
    auto_upload_timeout_ms: int = 500
    request_timeout: int = 60

    # Logging
    log_level: str = "WARNING"
    json_logs: bool = False

    @property
    def auto_upload_timeout(self) -> float:
        """Lock wait for the auto-upload handler, in seconds."""
        return self.auto_upload_timeout_ms / 1000

    @field_validator("auto_upload_timeout_ms", "request_timeout")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {sorted(LOG_LEVELS)}")
        return level

