"""
Pytest configuration and fixtures for photo booth tests.
No camera or pose model needed: frames are synthetic numpy arrays and
timers are driven by hand.
"""
import os
import sys
from datetime import datetime

import cv2
import numpy as np
import pytest

# Add the project root to the path
sys.path.insert(0, os.path.dirname(__file__))


class FakeClock:
    """Settable wall clock in milliseconds."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
        return self.now


class _ManualHandle:
    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Countdown scheduler that only ticks when fire() is called."""

    def __init__(self):
        self.pending = []

    def __call__(self, interval, callback):
        handle = _ManualHandle(interval, callback)
        self.pending.append(handle)
        return handle

    @property
    def has_pending(self):
        return any(not h.cancelled for h in self.pending)

    def fire(self, times=1):
        for _ in range(times):
            handles, self.pending = self.pending, []
            for handle in handles:
                if not handle.cancelled:
                    handle.callback()


class FakeFrameSource:
    """Returns a fixed BGR frame, or raises the configured error."""

    def __init__(self, frame=None, error=None):
        self.frame = frame if frame is not None else np.full((48, 64, 3), 128, dtype=np.uint8)
        self.error = error
        self.calls = 0
        self.on_grab = None

    def get_frame(self):
        self.calls += 1
        if self.on_grab is not None:
            self.on_grab()
        if self.error is not None:
            raise self.error
        return self.frame.copy()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def frame_source():
    return FakeFrameSource()


@pytest.fixture
def make_pose():
    """
    Factory for PoseNet-style poses.

    visible: number of facial landmarks scored 0.9 (the rest get 0.2)
    """
    from layer1_pose.types import FACE_PARTS, Keypoint, Pose

    def _make(visible=5, nose_x=320.0, shoulder_diff=0.0, shoulders=True, face_score=0.9):
        keypoints = []
        for i, part in enumerate(FACE_PARTS):
            score = face_score if i < visible else 0.2
            x = nose_x if part == 'nose' else nose_x + (i - 2) * 20
            keypoints.append(Keypoint(part=part, x=x, y=200.0, score=score))
        if shoulders:
            keypoints.append(Keypoint(part='leftShoulder', x=nose_x + 80, y=330.0, score=0.8))
            keypoints.append(Keypoint(part='rightShoulder', x=nose_x - 80, y=330.0 + shoulder_diff, score=0.8))
        return Pose(keypoints=tuple(keypoints), score=0.8)

    return _make


@pytest.fixture
def make_photo():
    """Factory for CapturedPhoto with a solid-color JPEG."""
    from layer2_capture.photos import CapturedPhoto

    def _make(photo_id, score=0.5, color=(0, 0, 255), size=(60, 40)):
        w, h = size
        image = np.zeros((h, w, 3), dtype=np.uint8)
        image[:] = color
        ok, buffer = cv2.imencode('.jpg', image, [cv2.IMWRITE_JPEG_QUALITY, 95])
        assert ok
        return CapturedPhoto(
            id=photo_id,
            image=buffer.tobytes(),
            timestamp=datetime.now(),
            quality_score=score,
        )

    return _make


@pytest.fixture
def session(frame_source, clock, scheduler, tmp_path):
    """Capture session on fake camera, clock and countdown timer."""
    from session import CaptureSession, SessionConfig

    config = SessionConfig(output_dir=str(tmp_path / "out"))
    return CaptureSession(frame_source, config, clock=clock, scheduler=scheduler)


@pytest.fixture
def app(session, monkeypatch):
    """Flask app wired to the fake session."""
    import app as app_module
    monkeypatch.setattr(app_module, 'session', session)
    app_module.app.config['TESTING'] = True
    return app_module.app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def pose_payload():
    """Well-positioned pose as the browser posts it."""
    parts = {
        'nose': (320, 200), 'leftEye': (300, 190), 'rightEye': (340, 190),
        'leftEar': (280, 200), 'rightEar': (360, 200),
        'leftShoulder': (400, 330), 'rightShoulder': (240, 335),
    }
    return {
        'score': 0.85,
        'keypoints': [
            {'part': name, 'position': {'x': x, 'y': y}, 'score': 0.9}
            for name, (x, y) in parts.items()
        ],
    }
