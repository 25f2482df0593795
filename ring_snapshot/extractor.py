"""Single-frame extractors turning a live HLS playlist into one JPEG.

Two backends are available: an ffmpeg subprocess (default) and OpenCV's
VideoCapture running in a child process. Both are bounded by a timeout after
which the worker process is killed.
"""

import multiprocessing  # Child process for the OpenCV backend
import subprocess  # ffmpeg invocation
from typing import List, Optional

from .config import Config  # Global configuration
from .errors import ConfigError, ExtractionError, StageTimeoutError
from .log import get_logger

log = get_logger("ring_snapshot.extractor")


class BaseFrameExtractor:
    """Abstract extractor returning JPEG bytes for a stream input."""

    def __init__(self, timeout_sec: float) -> None:
        self.timeout_sec = timeout_sec  # Hard bound on one extraction

    def extract(self, input_url_or_path: str) -> bytes:
        """Decode exactly one frame from `input_url_or_path`.

        Returns:
          Non-empty JPEG bytes.

        Raises:
          StageTimeoutError: if the worker did not finish in time (it is killed).
          ExtractionError: if the worker failed or produced no bytes.
        """
        raise NotImplementedError


class FfmpegFrameExtractor(BaseFrameExtractor):
    """Runs `ffmpeg -frames:v 1` and reads the JPEG from its stdout."""

    def __init__(self, timeout_sec: float, ffmpeg_bin: str = "ffmpeg", quality: int = 2) -> None:
        """Create an ffmpeg extractor.

        Args:
          timeout_sec: Kill ffmpeg after this many seconds.
          ffmpeg_bin: Executable name or path.
          quality: `-q:v` value, 2 (best) .. 31 (worst).
        """
        super().__init__(timeout_sec)
        self.ffmpeg_bin = ffmpeg_bin
        self.quality = max(2, min(31, int(quality)))

    def build_command(self, input_url_or_path: str) -> List[str]:
        """Return the argv used to grab one frame."""
        return [
            self.ffmpeg_bin,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-i", input_url_or_path,
            "-frames:v", "1",
            "-f", "image2",
            "-q:v", str(self.quality),
            "pipe:1",
        ]

    def extract(self, input_url_or_path: str) -> bytes:
        args = self.build_command(input_url_or_path)
        try:
            proc = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ExtractionError(f"Could not start {args[0]}: {e}") from e
        try:
            out, err = proc.communicate(timeout=self.timeout_sec)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            raise StageTimeoutError(f"ffmpeg timed out after {self.timeout_sec:g}s")
        if proc.returncode != 0 or not out:
            stderr = err.decode("utf-8", "replace").strip() or "no stderr"
            raise ExtractionError(f"ffmpeg failed (code {proc.returncode}): {stderr}")
        return out


def _grab_frame_worker(input_url_or_path: str, conn, quality: int) -> None:
    """Child-process body: open the stream, read one frame, send JPEG bytes."""
    import cv2

    data = b""
    cap = cv2.VideoCapture(input_url_or_path)
    try:
        if cap.isOpened():
            ok, frame = cap.read()
            if ok and frame is not None and frame.size:
                ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
                if ok:
                    data = buf.tobytes()
    finally:
        cap.release()
        conn.send(data)
        conn.close()


class OpenCVFrameExtractor(BaseFrameExtractor):
    """Reads one frame with `cv2.VideoCapture` inside a killable child process."""

    def __init__(self, timeout_sec: float, quality: int = 90) -> None:
        """Create an OpenCV extractor.

        Args:
          timeout_sec: Kill the worker after this many seconds.
          quality: JPEG quality, 0..100.
        """
        super().__init__(timeout_sec)
        self.quality = max(0, min(100, int(quality)))
        self._ctx = multiprocessing.get_context("spawn")  # Never fork a threaded server

    def extract(self, input_url_or_path: str) -> bytes:
        parent_conn, child_conn = self._ctx.Pipe(duplex=False)
        proc = self._ctx.Process(
            target=_grab_frame_worker,
            args=(input_url_or_path, child_conn, self.quality),
            daemon=True,
        )
        proc.start()
        child_conn.close()
        data: Optional[bytes] = None
        timed_out = False
        try:
            if parent_conn.poll(self.timeout_sec):
                data = parent_conn.recv()
            else:
                timed_out = True
        except EOFError:
            data = None  # Worker died before sending
        finally:
            parent_conn.close()
        if timed_out:
            proc.kill()
            proc.join()
            raise StageTimeoutError(f"OpenCV frame grab timed out after {self.timeout_sec:g}s")
        proc.join(timeout=1)
        if not data:
            raise ExtractionError(f"OpenCV could not decode a frame (exit code {proc.exitcode})")
        return data


def make_extractor() -> BaseFrameExtractor:
    """Factory to create the configured extractor backend.

    Returns:
      An instance of `BaseFrameExtractor` using ffmpeg or OpenCV.
    """
    backend = Config.FRAME_EXTRACTOR
    if backend == "ffmpeg":
        return FfmpegFrameExtractor(Config.EXTRACTOR_TIMEOUT_SEC, Config.FFMPEG_BIN, Config.JPEG_QUALITY)
    if backend == "opencv":
        # Map ffmpeg's 2..31 scale onto OpenCV's 100..0 quality
        q = int(round(100 - (max(2, min(31, Config.JPEG_QUALITY)) - 2) * 100 / 29))
        return OpenCVFrameExtractor(Config.EXTRACTOR_TIMEOUT_SEC, q)
    raise ConfigError(f"Unknown FRAME_EXTRACTOR {backend!r}")
