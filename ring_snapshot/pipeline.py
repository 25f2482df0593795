"""One-shot frame extraction from the camera's live stream.

A run resolves the camera, starts a live stream into a temporary HLS
directory, waits for the playlist to appear, grabs one frame, and always
tears the stream and directory down again.
"""

import os
import shutil
import tempfile
import time
from typing import Callable, Optional

from .camera import CameraResolver, StreamSession
from .config import Config
from .errors import ResourceError, RingProxyError, StageTimeoutError, UpstreamError
from .extractor import BaseFrameExtractor
from .log import get_logger

log = get_logger("ring_snapshot.pipeline")

PLAYLIST_NAME = "index.m3u8"


def wait_for_file(
    path: str,
    timeout_sec: float,
    poll_interval_sec: float = 0.15,
    alive: Optional[Callable[[], bool]] = None,
) -> None:
    """Block until `path` exists.

    Stream readiness has no push notification, so this polls. When `alive`
    is given and returns False, the producer of the file is gone and waiting
    stops early.

    Raises:
      StageTimeoutError: if the file does not appear within `timeout_sec`.
      UpstreamError: if `alive()` reports the producer ended first.
    """
    deadline = time.monotonic() + timeout_sec
    while True:
        if os.path.exists(path):
            return
        if alive is not None and not alive():
            if os.path.exists(path):
                return
            raise UpstreamError(f"Stream ended before {path} appeared")
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise StageTimeoutError(f"Timed out waiting for {path}")
        time.sleep(min(poll_interval_sec, remaining))


class FramePipeline:
    """Produces one fresh JPEG from the live feed per `run()` call."""

    def __init__(
        self,
        resolver: CameraResolver,
        extractor: BaseFrameExtractor,
        playlist_timeout_sec: float = Config.PLAYLIST_TIMEOUT_SEC,
        poll_interval_sec: float = Config.PLAYLIST_POLL_SEC,
        tmp_root: Optional[str] = None,
    ) -> None:
        """Create a pipeline.

        Args:
          resolver: Looks up the configured camera.
          extractor: Grabs one JPEG from the playlist.
          playlist_timeout_sec: Bound on waiting for the playlist file.
          poll_interval_sec: Playlist existence poll cadence.
          tmp_root: Parent of per-run temp dirs (system default if None).
        """
        self.resolver = resolver
        self.extractor = extractor
        self.playlist_timeout_sec = playlist_timeout_sec
        self.poll_interval_sec = poll_interval_sec
        self.tmp_root = tmp_root

    def run(self) -> bytes:
        """Execute every stage and return the JPEG bytes.

        Raises:
          RingProxyError: the first stage failure; cleanup still happens.
        """
        session: Optional[StreamSession] = None
        tmp_dir: Optional[str] = None
        started = time.monotonic()
        try:
            camera = self.resolver.resolve()

            try:
                tmp_dir = tempfile.mkdtemp(prefix="ring-hls-", dir=self.tmp_root)
            except OSError as e:
                raise ResourceError(f"Could not create temp dir: {e}") from e
            playlist = os.path.join(tmp_dir, PLAYLIST_NAME)

            try:
                session = camera.stream_video(playlist)
            except RingProxyError:
                raise
            except Exception as e:
                raise UpstreamError(f"Stream start failed: {e}") from e
            log.debug(f"Stream requested for camera {camera.id}; waiting for {playlist}")

            try:
                wait_for_file(playlist, self.playlist_timeout_sec, self.poll_interval_sec, alive=session.is_alive)
            except UpstreamError as e:
                reason = session.exit_reason()
                raise UpstreamError(f"{e}: {reason}" if reason else str(e)) from e
            log.debug(f"Playlist ready after {time.monotonic() - started:.2f}s")

            jpg = self.extractor.extract(playlist)
            log.info(f"Extracted frame ({len(jpg)} bytes) in {time.monotonic() - started:.2f}s")
            return jpg
        finally:
            self._cleanup(session, tmp_dir)

    def _cleanup(self, session: Optional[StreamSession], tmp_dir: Optional[str]) -> None:
        """Stop the stream and remove the temp dir; failures are only logged."""
        if session is not None:
            try:
                session.stop()
            except Exception as e:
                log.warning(f"ResourceError: stream stop failed: {e}")
        if tmp_dir is not None:
            try:
                shutil.rmtree(tmp_dir)
            except FileNotFoundError:
                pass
            except OSError as e:
                log.warning(f"ResourceError: could not remove {tmp_dir}: {e}")
