"""Application entrypoint: builds the service and runs the Flask web app."""

import sys

from ring_snapshot.camera import make_camera_client  # Ring client factory
from ring_snapshot.config import Config  # App configuration
from ring_snapshot.errors import ConfigError
from ring_snapshot.log import get_logger
from ring_snapshot.service import RingSnapshotService  # Frame/snapshot service
from ring_snapshot.tokens import TokenStore, resolve_refresh_token
from ring_snapshot.web import create_app  # Flask app factory

log = get_logger("ring_snapshot")


def main() -> None:
    """Validate config, create the service and run the Flask server."""
    try:
        Config.validate()
    except ConfigError as e:
        log.error(str(e))
        sys.exit(1)

    store = TokenStore(Config.STATE_PATH)
    refresh_token = resolve_refresh_token(store, Config.REFRESH_TOKEN)
    if not refresh_token:
        log.error("Missing RING_REFRESH_TOKEN. Provide it in the environment, or run ring-snapshot-setup to generate one.")
        sys.exit(1)

    client = make_camera_client(refresh_token, on_credential_rotated=store.on_credential_rotated)
    service = RingSnapshotService(client)
    app = create_app(service)
    log.info(f"Snapshot proxy listening on {Config.HOST}:{Config.PORT}")
    try:
        # threaded=True: each request gets a thread; the frame cache coalesces them
        app.run(host=Config.HOST, port=Config.PORT, debug=Config.DEBUG, threaded=True, use_reloader=False)
    finally:
        service.stop()
        log.info("Server closed")


if __name__ == "__main__":
    main()
