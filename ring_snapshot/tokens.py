"""Persistence of rotated Ring refresh tokens.

Ring rotates the long-lived refresh token roughly hourly. The latest value is
kept in a small JSON file so the proxy survives restarts without a new login:

    {
      "refreshToken": "...",
      "updatedAt": "2026-01-01T00:00:00.000000+00:00"
    }
"""

import json
import os
import tempfile
import threading
from datetime import datetime, timezone
from typing import Optional

from .log import get_logger

log = get_logger("ring_snapshot.tokens")


class TokenStore:
    """Reads and rewrites the persisted refresh token file."""

    def __init__(self, path: str) -> None:
        """Create a store.

        Args:
          path: Location of the JSON state file (parent dirs are created on write).
        """
        self.path = path
        self._lock = threading.Lock()  # Serializes concurrent rotation writes
        self._current: Optional[str] = None  # Last value loaded or written

    def load_refresh_token(self) -> Optional[str]:
        """Return the persisted token, or None if the file is missing or invalid."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                parsed = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            log.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return None
        if not isinstance(parsed, dict):
            return None
        token = str(parsed.get("refreshToken") or "").strip()
        if not token:
            return None
        self._current = token
        return token

    def on_credential_rotated(self, new_value: Optional[str]) -> None:
        """Persist a rotated token, overwriting the previous one.

        Blank values are ignored. Write failures are logged and swallowed: a
        rotation must never fail or block the request that happened to
        trigger it. The file is complete on disk when this returns.
        """
        token = str(new_value or "").strip()
        if not token:
            return
        with self._lock:
            if self._current and self._current != token:
                log.info("Refresh token rotated; persisting updated token")
            try:
                self._write(token)
            except OSError as e:
                log.error(f"Failed to persist refresh token: {e}")
                return
            self._current = token

    def _write(self, token: str) -> None:
        """Atomically replace the state file with `token`."""
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        payload = {
            "refreshToken": token,
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        }
        fd, tmp_path = tempfile.mkstemp(prefix=".ring-state-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(json.dumps(payload, indent=2) + "\n")
            os.replace(tmp_path, self.path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


def resolve_refresh_token(store: TokenStore, env_value: Optional[str]) -> Optional[str]:
    """Pick the startup credential: persisted file first, then the environment."""
    token = store.load_refresh_token() or str(env_value or "").strip()
    return token or None
