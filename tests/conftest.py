"""Fakes standing in for the Ring cloud client and the frame extractor."""

import os
import threading

import pytest

from ring_snapshot.camera import BaseCamera, BaseCameraClient, StreamSession
from ring_snapshot.errors import UpstreamError
from ring_snapshot.extractor import BaseFrameExtractor

JPEG = b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9"


class FakeSession(StreamSession):
    def __init__(self, fail_on_stop=False, alive=True):
        self.stop_calls = 0
        self.fail_on_stop = fail_on_stop
        self.alive = alive

    def is_alive(self):
        return self.alive

    def exit_reason(self):
        return "" if self.alive else "relay exited with code 1: connection refused"

    def stop(self):
        self.stop_calls += 1
        if self.fail_on_stop:
            raise RuntimeError("stop exploded")


class FakeCamera(BaseCamera):
    def __init__(self, cam_id="123", snapshot=JPEG, write_playlist=True, stream_error=None, fail_on_stop=False,
                 session_alive=True):
        self.id = cam_id
        self.name = f"Camera {cam_id}"
        self.model = "stickup_cam"
        self.snapshot = snapshot
        self.write_playlist = write_playlist
        self.stream_error = stream_error
        self.fail_on_stop = fail_on_stop
        self.session_alive = session_alive
        self.sessions = []
        self.stream_paths = []
        self.snapshot_calls = 0

    def get_snapshot(self):
        self.snapshot_calls += 1
        if not self.snapshot:
            raise UpstreamError("no snapshot")
        return self.snapshot

    def stream_video(self, output_path):
        self.stream_paths.append(output_path)
        if self.stream_error is not None:
            raise self.stream_error
        if self.write_playlist:
            with open(output_path, "w") as f:
                f.write("#EXTM3U\n")
        session = FakeSession(fail_on_stop=self.fail_on_stop, alive=self.session_alive)
        self.sessions.append(session)
        return session


class FakeClient(BaseCameraClient):
    def __init__(self, cameras=None, error=None):
        self.cameras = list(cameras or [])
        self.error = error
        self.list_calls = 0
        self.closed = False

    def list_cameras(self):
        self.list_calls += 1
        if self.error is not None:
            raise self.error
        return list(self.cameras)

    def close(self):
        self.closed = True


class FakeExtractor(BaseFrameExtractor):
    def __init__(self, result=JPEG, error=None, gate=None):
        super().__init__(timeout_sec=1.0)
        self.result = result
        self.error = error
        self.gate = gate
        self.calls = []
        self.input_existed = []

    def extract(self, input_url_or_path):
        self.calls.append(input_url_or_path)
        self.input_existed.append(os.path.exists(input_url_or_path))
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return self.result


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def client(camera):
    return FakeClient([FakeCamera("999"), camera])


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gate():
    return threading.Event()
