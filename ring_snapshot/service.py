"""Service facade tying the camera client, pipeline and frame cache together."""

from typing import Optional

from .cache import SingleFlightFrameCache
from .camera import BaseCameraClient, CameraResolver
from .config import Config
from .errors import RingProxyError, UpstreamError
from .extractor import BaseFrameExtractor, make_extractor
from .log import get_logger
from .pipeline import FramePipeline

log = get_logger("ring_snapshot.service")


class RingSnapshotService:
    """Owns the camera lookup, the frame pipeline and its cache."""

    def __init__(
        self,
        client: BaseCameraClient,
        camera_id: str = Config.CAMERA_ID,
        extractor: Optional[BaseFrameExtractor] = None,
        freshness_sec: float = Config.FRAME_CACHE_SECONDS,
        playlist_timeout_sec: float = Config.PLAYLIST_TIMEOUT_SEC,
        poll_interval_sec: float = Config.PLAYLIST_POLL_SEC,
        refetch_on_miss: bool = Config.CAMERA_REFETCH_ON_MISS,
        tmp_root: Optional[str] = None,
    ) -> None:
        """Wire up the components. No network traffic happens here."""
        self.client = client
        self.resolver = CameraResolver(client, camera_id, refetch_on_miss=refetch_on_miss)
        self.pipeline = FramePipeline(
            self.resolver,
            extractor if extractor is not None else make_extractor(),
            playlist_timeout_sec=playlist_timeout_sec,
            poll_interval_sec=poll_interval_sec,
            tmp_root=tmp_root,
        )
        self.frame_cache = SingleFlightFrameCache(self.pipeline.run, freshness_sec)

    # Public API
    def get_frame(self) -> bytes:
        """Return a high-res frame from cache or a fresh pipeline run.

        Raises:
          RingProxyError: on any pipeline stage failure.
        """
        return self.frame_cache.get_frame()

    def get_snapshot(self) -> bytes:
        """Return the camera's pre-rendered low-res snapshot. No cache, no retry.

        Raises:
          UpstreamError: if the camera or its snapshot is unavailable.
        """
        try:
            camera = self.resolver.resolve()
            return camera.get_snapshot()
        except UpstreamError:
            raise
        except RingProxyError as e:
            raise UpstreamError(str(e)) from e

    def stop(self) -> None:
        """Release the camera client."""
        self.client.close()
