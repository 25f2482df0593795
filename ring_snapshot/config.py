"""Global configuration for the Ring snapshot proxy.

This module exposes configuration constants via the `Config` class. All values
are read from environment variables with defaults suited to running the proxy
in a container with a `/data` volume.
"""

import os  # Standard library for environment and filesystem helpers
import re  # Robust parsing of numeric envs with comments
from typing import Optional

from dotenv import find_dotenv, load_dotenv  # .env written by ring-snapshot-setup

from .errors import ConfigError


def load_env_file(path: Optional[str] = None) -> bool:
    """Load KEY=value pairs from a .env file into the process environment.

    Variables already set in the environment win over the file. Without a
    path, the nearest `.env` from the current working directory is used.

    Returns:
      True if a file was found and loaded.
    """
    path = path or find_dotenv(usecwd=True)
    if not path:
        return False
    return load_dotenv(path, override=False)


# Must run before the Config class body reads the environment
load_env_file()


def _env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable robustly.

    Accepts values like "300", "300 # five minutes" or "\"300\"" and returns
    the first integer found. Falls back to default if parsing fails.
    """
    val = os.getenv(name)
    if val is None:
        return default
    s = str(val).strip().strip('"').strip("'")
    m = re.search(r"-?\d+", s)
    if not m:
        return default
    return int(m.group(0))


def _env_float(name: str, default: float) -> float:
    """Parse a float from an environment variable, same rules as `_env_int`."""
    val = os.getenv(name)
    if val is None:
        return default
    s = str(val).strip().strip('"').strip("'")
    m = re.search(r"-?(?:\d+(?:\.\d*)?|\.\d+)", s)
    if not m:
        return default
    return float(m.group(0))


def _env_str(name: str, default: str = "") -> str:
    """Return a stripped, unquoted string environment variable."""
    return str(os.getenv(name, default)).strip().strip('"').strip("'")


def _env_path(name: str, default: str) -> str:
    """Normalize a path env: strip quotes/whitespace, expand ~ and $VARS, make absolute."""
    raw = _env_str(name, default) or default
    raw = os.path.expanduser(os.path.expandvars(raw))
    return raw if os.path.isabs(raw) else os.path.abspath(raw)


class Config:
    """Application configuration sourced from environment variables.

    Class attributes let other modules import settings as constants (e.g.,
    `from ring_snapshot.config import Config`). To override a setting, define
    the corresponding environment variable before launching the application.
    """
    # Ring account and camera
    CAMERA_ID = _env_str("RING_CAMERA_ID")  # Required; see validate()
    REFRESH_TOKEN = _env_str("RING_REFRESH_TOKEN")  # Fallback when the state file has no token
    STATE_PATH = _env_path("RING_STATE_PATH", "/data/ring-state.json")  # Persisted rotated token
    USER_AGENT = _env_str("RING_USER_AGENT", "ring-snapshot-proxy/1.0")
    UPSTREAM_TIMEOUT_SEC = _env_float("UPSTREAM_TIMEOUT_SEC", 30.0)  # Bound on each cloud call
    # Retry the camera lookup against a freshly fetched list when the ID is missing
    CAMERA_REFETCH_ON_MISS = _env_str("CAMERA_REFETCH_ON_MISS", "0") == "1"

    # Live stream relay. `{camera_id}` is substituted, e.g. "rtsp://ring-mqtt:8554/{camera_id}_live"
    LIVE_URL_TEMPLATE = _env_str("RING_LIVE_URL_TEMPLATE")

    # Frame cache and pipeline
    FRAME_CACHE_SECONDS = _env_float("FRAME_CACHE_SECONDS", 300.0)  # Freshness window; 0 disables
    PLAYLIST_TIMEOUT_SEC = _env_float("PLAYLIST_TIMEOUT_SEC", 10.0)  # Wait for index.m3u8 to appear
    PLAYLIST_POLL_SEC = _env_float("PLAYLIST_POLL_SEC", 0.15)  # Poll cadence while waiting
    EXTRACTOR_TIMEOUT_SEC = _env_float("EXTRACTOR_TIMEOUT_SEC", 15.0)  # Kill the grabber after this
    FRAME_EXTRACTOR = _env_str("FRAME_EXTRACTOR", "ffmpeg").lower()  # ffmpeg|opencv
    FFMPEG_BIN = _env_str("FFMPEG_BIN", "ffmpeg")
    JPEG_QUALITY = _env_int("JPEG_QUALITY", 2)  # ffmpeg -q:v scale, 2 (best) .. 31 (worst)

    # HTTP
    BASIC_AUTH_USER = _env_str("BASIC_AUTH_USER")  # Auth enforced only when both are set
    BASIC_AUTH_PASS = _env_str("BASIC_AUTH_PASS")
    HOST = _env_str("HOST", "0.0.0.0")  # Flask bind host
    PORT = _env_int("PORT", 3000)  # Flask bind port
    DEBUG = _env_str("DEBUG", "0") == "1"  # Flask debug switch

    # Logging
    LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()
    LOG_DIR = _env_str("LOG_DIR")  # Empty means console only

    @classmethod
    def validate(cls) -> None:
        """Check required settings.

        Raises:
          ConfigError: if the camera identifier is missing or a setting is out of range.
        """
        if not str(cls.CAMERA_ID or "").strip():
            raise ConfigError("Missing RING_CAMERA_ID in environment variables")
        if cls.FRAME_EXTRACTOR not in ("ffmpeg", "opencv"):
            raise ConfigError(f"Unknown FRAME_EXTRACTOR {cls.FRAME_EXTRACTOR!r} (expected ffmpeg|opencv)")
        if cls.PLAYLIST_TIMEOUT_SEC <= 0 or cls.EXTRACTOR_TIMEOUT_SEC <= 0:
            raise ConfigError("PLAYLIST_TIMEOUT_SEC and EXTRACTOR_TIMEOUT_SEC must be positive")
