import subprocess
import sys
import time

import pytest

from ring_snapshot import extractor as extractor_mod
from ring_snapshot.config import Config
from ring_snapshot.errors import ConfigError, ExtractionError, StageTimeoutError
from ring_snapshot.extractor import FfmpegFrameExtractor, OpenCVFrameExtractor, make_extractor


class ScriptExtractor(FfmpegFrameExtractor):
    """Runs a Python snippet in place of ffmpeg; the input path is argv[1]."""

    def __init__(self, code, timeout_sec=5.0):
        super().__init__(timeout_sec)
        self.code = code

    def build_command(self, input_url_or_path):
        return [sys.executable, "-c", self.code, input_url_or_path]


@pytest.fixture
def spawned(monkeypatch):
    procs = []
    real_popen = subprocess.Popen

    def recording_popen(*args, **kwargs):
        proc = real_popen(*args, **kwargs)
        procs.append(proc)
        return proc

    monkeypatch.setattr(extractor_mod.subprocess, "Popen", recording_popen)
    return procs


def test_ffmpeg_command_grabs_single_frame_to_stdout():
    cmd = FfmpegFrameExtractor(15, "ffmpeg", quality=2).build_command("/tmp/x/index.m3u8")

    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-i") + 1] == "/tmp/x/index.m3u8"
    assert cmd[cmd.index("-frames:v") + 1] == "1"
    assert cmd[cmd.index("-q:v") + 1] == "2"
    assert cmd[-1] == "pipe:1"


def test_quality_is_clamped():
    assert FfmpegFrameExtractor(1, quality=0).quality == 2
    assert FfmpegFrameExtractor(1, quality=99).quality == 31


def test_stdout_bytes_are_returned():
    ex = ScriptExtractor("import sys; sys.stdout.buffer.write(b'\\xff\\xd8jpeg\\xff\\xd9')")

    assert ex.extract("in.m3u8") == b"\xff\xd8jpeg\xff\xd9"


def test_nonzero_exit_is_extraction_error():
    ex = ScriptExtractor("import sys; sys.stderr.write('bad input'); sys.exit(3)")

    with pytest.raises(ExtractionError, match="code 3"):
        ex.extract("in.m3u8")


def test_empty_output_is_extraction_error():
    with pytest.raises(ExtractionError):
        ScriptExtractor("pass").extract("in.m3u8")


def test_missing_binary_is_extraction_error():
    with pytest.raises(ExtractionError):
        FfmpegFrameExtractor(1, ffmpeg_bin="/nonexistent/ffmpeg").extract("in.m3u8")


def test_hung_process_is_killed_at_timeout(spawned):
    ex = ScriptExtractor("import time; time.sleep(30)", timeout_sec=0.5)

    start = time.monotonic()
    with pytest.raises(StageTimeoutError):
        ex.extract("in.m3u8")
    elapsed = time.monotonic() - start

    assert 0.4 <= elapsed < 5
    assert len(spawned) == 1
    assert spawned[0].poll() is not None


def test_timeout_error_is_builtin_timeout():
    assert issubclass(StageTimeoutError, TimeoutError)


def test_make_extractor_follows_config(monkeypatch):
    monkeypatch.setattr(Config, "FRAME_EXTRACTOR", "ffmpeg")
    monkeypatch.setattr(Config, "EXTRACTOR_TIMEOUT_SEC", 7.0)
    ex = make_extractor()
    assert isinstance(ex, FfmpegFrameExtractor)
    assert ex.timeout_sec == 7.0

    monkeypatch.setattr(Config, "FRAME_EXTRACTOR", "opencv")
    monkeypatch.setattr(Config, "JPEG_QUALITY", 2)
    ex = make_extractor()
    assert isinstance(ex, OpenCVFrameExtractor)
    assert ex.quality == 100

    monkeypatch.setattr(Config, "FRAME_EXTRACTOR", "gstreamer")
    with pytest.raises(ConfigError):
        make_extractor()


def test_opencv_unreadable_input_is_extraction_error(tmp_path):
    pytest.importorskip("cv2")
    ex = OpenCVFrameExtractor(timeout_sec=30)

    with pytest.raises(ExtractionError):
        ex.extract(str(tmp_path / "missing.m3u8"))
