"""Camera client interface, the Ring backend, and camera resolution.

`BaseCameraClient` lists cameras; each `BaseCamera` can return a low-res
snapshot or start a live stream that writes an HLS playlist to a local path.
The Ring backend wraps the asyncio-only `ring_doorbell` library behind a
blocking interface so it can be called from Flask request threads.
"""

import asyncio  # Event loop hosting the ring_doorbell client
import os  # Relay log path next to the playlist
import subprocess  # ffmpeg relay process for live streams
import threading  # Loop thread and connection lock
from typing import Any, Callable, Dict, List, Optional

from .config import Config  # Global configuration
from .errors import CameraNotFoundError, UpstreamError
from .log import get_logger

log = get_logger("ring_snapshot.camera")

CredentialListener = Callable[[str], None]


class StreamSession:
    """Handle to a running live stream. `stop()` must be safe to call once."""

    def is_alive(self) -> bool:
        """Return False once the stream has ended on its own."""
        return True

    def exit_reason(self) -> str:
        """Describe why an ended stream stopped; empty while it runs."""
        return ""

    def stop(self) -> None:
        """Stop the stream and release its resources."""
        raise NotImplementedError


class BaseCamera:
    """Abstract camera exposing snapshot and live-stream operations.

    Subclasses must implement `get_snapshot()` and `stream_video()`.
    """

    id: str = ""
    name: str = ""
    model: str = ""

    def get_snapshot(self) -> bytes:
        """Return a pre-rendered low-resolution JPEG.

        Raises:
          UpstreamError: if the cloud call fails or returns no image.
        """
        raise NotImplementedError

    def stream_video(self, output_path: str) -> StreamSession:
        """Start a live stream writing an HLS playlist at `output_path`.

        Returns as soon as the stream has been requested; the playlist file
        appears some time later.

        Raises:
          UpstreamError: if the stream cannot be started.
        """
        raise NotImplementedError


class BaseCameraClient:
    """Abstract cloud-camera account client."""

    def list_cameras(self) -> List[BaseCamera]:
        """Fetch every camera on the account.

        Raises:
          UpstreamError: on authentication or network failure.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release network resources."""
        pass


class RelayStreamSession(StreamSession):
    """Live stream relayed to HLS by an ffmpeg child process."""

    def __init__(self, proc: subprocess.Popen, log_path: Optional[str] = None) -> None:
        self.proc = proc
        self.log_path = log_path  # ffmpeg stderr, next to the playlist
        self._stopped = False

    @classmethod
    def start(cls, ffmpeg_bin: str, source_url: str, output_path: str) -> "RelayStreamSession":
        """Spawn ffmpeg copying `source_url` into a rolling HLS playlist."""
        args = [
            ffmpeg_bin,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-i", source_url,
            "-c", "copy",
            "-f", "hls",
            "-hls_time", "1",
            "-hls_list_size", "3",
            "-hls_flags", "delete_segments",
            output_path,
        ]
        log_path = os.path.join(os.path.dirname(output_path) or ".", "relay.log")
        try:
            with open(log_path, "wb") as stderr:
                proc = subprocess.Popen(
                    args,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=stderr,
                )
        except OSError as e:
            raise UpstreamError(f"Could not start stream relay: {e}") from e
        log.debug(f"Stream relay started pid={proc.pid} -> {output_path}")
        return cls(proc, log_path)

    def is_alive(self) -> bool:
        return self.proc.poll() is None

    def exit_reason(self) -> str:
        code = self.proc.poll()
        if code is None:
            return ""
        tail = ""
        if self.log_path:
            try:
                with open(self.log_path, "rb") as f:
                    tail = f.read()[-500:].decode("utf-8", "replace").strip()
            except OSError:
                pass
        return f"relay exited with code {code}: {tail or 'no stderr'}"

    def stop(self) -> None:
        """Terminate ffmpeg, escalating to kill if it ignores SIGTERM."""
        if self._stopped:
            return
        self._stopped = True
        if self.proc.poll() is not None:
            return
        self.proc.terminate()
        try:
            self.proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self.proc.kill()
            self.proc.wait()


class RingCamera(BaseCamera):
    """A Ring video device bound to the client that fetched it."""

    def __init__(self, client: "RingCameraClient", device: Any) -> None:
        self._client = client
        self._device = device
        self.id = str(device.id)
        self.name = str(getattr(device, "name", "") or "")
        self.model = str(getattr(device, "model", "") or "")

    def get_snapshot(self) -> bytes:
        """Ask Ring for the latest snapshot image."""
        img = self._client.run(self._device.async_get_snapshot())
        if not img:
            # Ring returns nothing when snapshots or motion detection are disabled
            raise UpstreamError(f"Camera {self.id} returned no snapshot")
        return bytes(img)

    def stream_video(self, output_path: str) -> StreamSession:
        """Relay the camera's live source into an HLS playlist."""
        url = self._client.live_url_for(self.id)
        return RelayStreamSession.start(self._client.ffmpeg_bin, url, output_path)


class RingCameraClient(BaseCameraClient):
    """`ring_doorbell`-backed client running its own asyncio loop thread."""

    def __init__(
        self,
        refresh_token: str,
        on_credential_rotated: Optional[CredentialListener] = None,
        user_agent: str = Config.USER_AGENT,
        live_url_template: str = Config.LIVE_URL_TEMPLATE,
        ffmpeg_bin: str = Config.FFMPEG_BIN,
        timeout_sec: float = Config.UPSTREAM_TIMEOUT_SEC,
    ) -> None:
        """Create the client. No network traffic happens until first use.

        Args:
          refresh_token: Long-lived Ring credential.
          on_credential_rotated: Called with each newly issued refresh token.
          user_agent: User agent presented to Ring.
          live_url_template: Live source URL with a `{camera_id}` placeholder.
          ffmpeg_bin: ffmpeg executable used by the stream relay.
          timeout_sec: Bound on each blocking call into the loop.
        """
        self._refresh_token = refresh_token.strip()
        self._listener = on_credential_rotated
        self.user_agent = user_agent
        self.live_url_template = live_url_template
        self.ffmpeg_bin = ffmpeg_bin
        self.timeout_sec = timeout_sec
        self._auth = None
        self._ring = None
        self._connect_lock = threading.Lock()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="ring-client", daemon=True)
        self._thread.start()

    # Public API
    def run(self, coro):
        """Run a coroutine on the client loop and block for its result."""
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return fut.result(timeout=self.timeout_sec)
        except UpstreamError:
            raise
        except Exception as e:
            fut.cancel()
            raise UpstreamError(f"Ring request failed: {type(e).__name__}: {e}") from e

    def list_cameras(self) -> List[BaseCamera]:
        """Fetch video devices (doorbells and stick-up cams) from Ring."""
        self._ensure_connected()
        self.run(self._ring.async_update_data())
        devices = self._ring.devices()
        return [RingCamera(self, d) for d in devices.video_devices]

    def live_url_for(self, camera_id: str) -> str:
        """Build the live source URL for `camera_id`."""
        if not self.live_url_template:
            raise UpstreamError("Live streaming is not configured (set RING_LIVE_URL_TEMPLATE)")
        return self.live_url_template.format(camera_id=camera_id)

    def close(self) -> None:
        """Close the HTTP session and stop the loop thread."""
        if self._auth is not None:
            try:
                self.run(self._auth.async_close())
            except UpstreamError as e:
                log.warning(f"Error closing Ring session: {e}")
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=2)

    # Internal
    def _ensure_connected(self) -> None:
        """Exchange the refresh token for an access token on first use."""
        with self._connect_lock:
            if self._ring is not None:
                return
            self.run(self._connect())
            log.info("Connected to Ring")

    async def _connect(self) -> None:
        from ring_doorbell import Auth, Ring  # Imported lazily so tests need no network stack

        auth = Auth(self.user_agent, {"refresh_token": self._refresh_token}, self._token_updated)
        await auth.async_refresh_tokens()
        self._auth = auth
        self._ring = Ring(auth)

    def _token_updated(self, token: Dict[str, Any]) -> None:
        """ring_doorbell token callback; forwards only the refresh token."""
        new_value = str((token or {}).get("refresh_token") or "").strip()
        if not new_value:
            return
        self._refresh_token = new_value
        if self._listener is not None:
            self._listener(new_value)


class CameraResolver:
    """Resolves the configured camera once and remembers it.

    The camera list is fetched lazily and cached. When the ID is missing from
    the cached list the lookup fails with `CameraNotFoundError`, unless
    `refetch_on_miss` is set, in which case the list is fetched once more.
    """

    def __init__(self, client: BaseCameraClient, camera_id: str, refetch_on_miss: bool = False) -> None:
        self.client = client
        self.camera_id = str(camera_id).strip()
        self.refetch_on_miss = refetch_on_miss
        self._lock = threading.Lock()
        self._cameras: Optional[List[BaseCamera]] = None
        self._camera: Optional[BaseCamera] = None

    def resolve(self) -> BaseCamera:
        """Return the configured camera.

        Raises:
          CameraNotFoundError: if the ID is not on the account.
          UpstreamError: if the camera list cannot be fetched.
        """
        with self._lock:
            if self._camera is not None:
                return self._camera
            fetched_now = False
            if self._cameras is None:
                self._cameras = self.client.list_cameras()
                fetched_now = True
            cam = self._find(self._cameras)
            if cam is None and self.refetch_on_miss and not fetched_now:
                log.info(f"Camera {self.camera_id} not in cached list; fetching again")
                self._cameras = self.client.list_cameras()
                cam = self._find(self._cameras)
            if cam is None:
                raise CameraNotFoundError(f"Camera {self.camera_id} not found")
            self._camera = cam
            return cam

    def _find(self, cameras: List[BaseCamera]) -> Optional[BaseCamera]:
        for cam in cameras:
            if str(cam.id) == self.camera_id:
                return cam
        return None


def make_camera_client(refresh_token: str, on_credential_rotated: Optional[CredentialListener] = None) -> BaseCameraClient:
    """Factory for the configured camera client.

    Returns:
      A `RingCameraClient` using settings from `Config`.
    """
    return RingCameraClient(
        refresh_token,
        on_credential_rotated=on_credential_rotated,
        user_agent=Config.USER_AGENT,
        live_url_template=Config.LIVE_URL_TEMPLATE,
        ffmpeg_bin=Config.FFMPEG_BIN,
        timeout_sec=Config.UPSTREAM_TIMEOUT_SEC,
    )
