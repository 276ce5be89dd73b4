"""Credentials management for Apps Script API access.

The Apps Script API only accepts user OAuth tokens. scriptsync does not run
an OAuth flow itself: a bearer token is taken from SCRIPTSYNC_ACCESS_TOKEN or
from the token cache written by ``scriptsync login``.
"""

from __future__ import annotations

import json
import stat
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from scriptsync.transport import AuthenticationError

# Lifetime assumed for tokens handed to us without an expiry
DEFAULT_TOKEN_LIFETIME = 3600


@dataclass
class Token:
    """OAuth bearer token for the Apps Script API.

    Attributes:
        access_token: The OAuth2 access token for API calls.
        expires_at: Unix timestamp when the token expires.
    """

    access_token: str
    expires_at: float

    def is_valid(self, buffer_seconds: int = 60) -> bool:
        """Check if token is still valid with a safety buffer."""
        return time.time() < self.expires_at - buffer_seconds

    def expires_in_seconds(self) -> int:
        """Return seconds until token expires."""
        return max(0, int(self.expires_at - time.time()))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "access_token": self.access_token,
            "expires_at": self.expires_at,
            "token_type": "Bearer",
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Token:
        """Create Token from dictionary."""
        return cls(
            access_token=data["access_token"],
            expires_at=data["expires_at"],
        )


class CredentialsManager:
    """Resolves and caches the bearer token.

    Precedence order:
    1. access_token constructor parameter (SCRIPTSYNC_ACCESS_TOKEN)
    2. Cached token at token_cache_path, if not expired

    The cache file is written with owner-only permissions.
    """

    def __init__(self, token_cache_path: str | Path, access_token: str = "") -> None:
        self._token_cache_path = Path(token_cache_path)
        self._access_token = access_token

    @property
    def token_cache_path(self) -> Path:
        """Return the path where tokens are cached."""
        return self._token_cache_path

    def get_token(self) -> Token:
        """Get a valid access token.

        Raises:
            AuthenticationError: If no usable token is available.
        """
        if self._access_token:
            return Token(
                access_token=self._access_token,
                expires_at=time.time() + DEFAULT_TOKEN_LIFETIME,
            )

        cached = self._load_cached_token()
        if cached is not None:
            logger.debug(
                "Using cached token (expires in {} seconds)",
                cached.expires_in_seconds(),
            )
            return cached

        raise AuthenticationError(
            "No access token available. Set SCRIPTSYNC_ACCESS_TOKEN "
            "or run 'scriptsync login --token <token>'."
        )

    def save_token(
        self, access_token: str, expires_in: int = DEFAULT_TOKEN_LIFETIME
    ) -> Token:
        """Cache a token handed to us by the user."""
        token = Token(access_token=access_token, expires_at=time.time() + expires_in)
        self._save_token(token)
        return token

    def clear(self) -> bool:
        """Delete the cached token.

        Returns:
            True if a cached token was removed.
        """
        if not self._token_cache_path.exists():
            return False
        self._token_cache_path.unlink()
        logger.debug("Removed cached token {}", self._token_cache_path)
        return True

    def _load_cached_token(self) -> Token | None:
        """Load cached token if it exists and is still valid."""
        if not self._token_cache_path.exists():
            return None

        try:
            data = json.loads(self._token_cache_path.read_text())
            token = Token.from_dict(data)
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning("Invalid cached token: {}", e)
            return None
        if token.is_valid():
            return token
        logger.info("Cached token expired")
        return None

    def _save_token(self, token: Token) -> None:
        """Save token to cache file with secure permissions."""
        # Create parent directory with secure permissions (0700)
        self._token_cache_path.parent.mkdir(parents=True, exist_ok=True)
        self._token_cache_path.parent.chmod(stat.S_IRWXU)

        # Write to temp file, set permissions, then rename atomically
        temp_path = self._token_cache_path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(token.to_dict(), indent=2))
        temp_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
        temp_path.replace(self._token_cache_path)
        logger.debug("Token saved to {}", self._token_cache_path)
