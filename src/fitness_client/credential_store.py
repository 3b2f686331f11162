"""Durable credential storage.

The access token, refresh token and user record live together in one JSON
file under *token_dir*. Writes go through a temp file and ``os.replace`` so
a reader never sees a half-written pair.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from fitness_client.models import CredentialPair, User

logger = logging.getLogger(__name__)

_DEFAULT_TOKEN_DIR = Path("~/.fitness-tracker").expanduser()
_FILENAME = "credentials.json"

TOKEN_KEY = "token"
REFRESH_TOKEN_KEY = "refresh_token"
USER_DATA_KEY = "user_data"


class CredentialStore:
    """File-backed store for a single :class:`CredentialPair`."""

    def __init__(self, token_dir: Path | str = _DEFAULT_TOKEN_DIR) -> None:
        self._token_dir = Path(token_dir)

    @property
    def path(self) -> Path:
        return self._token_dir / _FILENAME

    def save(self, pair: CredentialPair) -> None:
        """Replace the stored pair in one step."""
        self._token_dir.mkdir(parents=True, exist_ok=True)
        payload = {
            TOKEN_KEY: pair.access_token,
            REFRESH_TOKEN_KEY: pair.refresh_token,
            USER_DATA_KEY: pair.user.to_dict(),
        }
        fd, tmp = tempfile.mkstemp(dir=self._token_dir, prefix=".credentials-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("Saved credentials for %s to %s", pair.user.username, self.path)

    def load(self) -> CredentialPair | None:
        """Return the stored pair, or None when any of its keys is missing."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError):
            logger.warning("Unreadable credential file at %s", self.path)
            return None
        if not isinstance(data, dict):
            return None

        token = data.get(TOKEN_KEY)
        refresh = data.get(REFRESH_TOKEN_KEY)
        if not token or not refresh or USER_DATA_KEY not in data:
            logger.info("Partial credentials at %s, ignoring", self.path)
            return None
        try:
            user = User.from_dict(data[USER_DATA_KEY])
        except ValueError:
            logger.info("Invalid user record at %s, ignoring", self.path)
            return None
        return CredentialPair(access_token=token, refresh_token=refresh, user=user)

    def clear(self) -> None:
        """Delete stored credentials."""
        if self.path.exists():
            self.path.unlink()
            logger.info("Cleared credentials at %s", self.path)
