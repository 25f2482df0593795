"""Flask web application exposing the snapshot and frame endpoints."""

import functools  # Route decorator
import hmac  # Constant-time credential comparison
from typing import Optional

import flask  # Web server

from .config import Config  # App configuration
from .errors import RingProxyError
from .log import get_logger
from .service import RingSnapshotService  # Service providing images

log = get_logger("ring_snapshot.web")

AUTH_REALM = "Ring Snapshot Proxy"


def _jpeg_response(data: bytes) -> flask.Response:
    """Wrap JPEG bytes in an uncacheable image response."""
    resp = flask.Response(data, status=200, mimetype="image/jpeg")
    resp.headers["Cache-Control"] = "no-store"
    return resp


def create_app(
    service: RingSnapshotService,
    auth_user: Optional[str] = None,
    auth_pass: Optional[str] = None,
) -> flask.Flask:
    """Create and configure the Flask application.

    Args:
      service: `RingSnapshotService` to fetch images from.
      auth_user: Basic-auth user; defaults to `Config.BASIC_AUTH_USER`.
      auth_pass: Basic-auth password; defaults to `Config.BASIC_AUTH_PASS`.

    Returns:
      A Flask app with `/health`, `/ring/snapshot.jpg` and `/ring/frame.jpg`.
    """
    app = flask.Flask(__name__)
    user = Config.BASIC_AUTH_USER if auth_user is None else auth_user
    password = Config.BASIC_AUTH_PASS if auth_pass is None else auth_pass

    def require_basic_auth(view):
        """Enforce Basic auth when both credentials are configured."""
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            if not user or not password:
                return view(*args, **kwargs)
            auth = flask.request.authorization
            ok = (
                auth is not None
                and auth.type == "basic"
                and hmac.compare_digest(str(auth.username or "").encode(), user.encode())
                and hmac.compare_digest(str(auth.password or "").encode(), password.encode())
            )
            if not ok:
                return flask.Response(
                    "Unauthorized",
                    status=401,
                    headers={"WWW-Authenticate": f'Basic realm="{AUTH_REALM}"'},
                )
            return view(*args, **kwargs)

        return wrapper

    @app.before_request
    def log_request():
        log.info(f"{flask.request.method} {flask.request.full_path.rstrip('?')}")

    @app.route("/health")
    def health():
        """Liveness check; never touches the camera."""
        return {"ok": True}

    @app.route("/ring/snapshot.jpg")
    @require_basic_auth
    def snapshot_jpg():
        """Serve the camera's low-res snapshot."""
        try:
            img = service.get_snapshot()
        except RingProxyError as e:
            log.error(f"Snapshot error: {type(e).__name__}: {e}")
            return ("Snapshot unavailable", 502)
        except Exception:
            log.exception("Snapshot error")
            return ("Snapshot unavailable", 502)
        return _jpeg_response(img)

    @app.route("/ring/frame.jpg")
    @require_basic_auth
    def frame_jpg():
        """Serve a high-res still grabbed from the live stream (cached)."""
        try:
            jpg = service.get_frame()
        except RingProxyError as e:
            log.error(f"Frame error: {type(e).__name__}: {e}")
            return ("Frame unavailable", 502)
        except Exception:
            log.exception("Frame error")
            return ("Frame unavailable", 502)
        return _jpeg_response(jpg)

    return app
