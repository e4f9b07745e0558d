"""
Layer 2 — Camera Frame Source
Webcam used by the booth for the live preview and for captures.
Frames are BGR numpy arrays; the first frames after opening are discarded
while auto-exposure settles.
"""
import cv2
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from error_handlers import (
    CameraInitError,
    CameraNotFoundError,
    CameraNotInitializedError,
    FrameCaptureError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraSettings:
    """Requested capture format. The pose model is tuned for 640x480."""
    width: int = 640
    height: int = 480
    warmup_frames: int = 5
    backend: int = cv2.CAP_ANY


class CameraHandler:
    """
    Webcam frame source shared by the preview stream and the capture session.
    Reads are serialized so a capture never interleaves with a preview grab.
    """

    def __init__(self, camera_index: int = 0, settings: Optional[CameraSettings] = None):
        self.camera_index = camera_index
        self.settings = settings or CameraSettings()
        self._capture: Optional[cv2.VideoCapture] = None
        self._read_lock = threading.Lock()
        self.resolution: Tuple[int, int] = (0, 0)

    def initialize(self) -> bool:
        """
        Open the webcam at the requested size and discard warm-up frames.

        Raises:
            CameraNotFoundError: No device answers at this index
            CameraInitError: Device opened but does not deliver frames
        """
        if self.is_opened():
            return True

        capture = cv2.VideoCapture(self.camera_index, self.settings.backend)
        if not capture.isOpened():
            capture.release()
            raise CameraNotFoundError(self.camera_index)

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.height)

        for _ in range(self.settings.warmup_frames):
            ok, _ = capture.read()
            if not ok:
                capture.release()
                raise CameraInitError(self.camera_index, reason="no frames during warm-up")

        self._capture = capture
        self.resolution = (
            int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )
        logger.info(f"Camera {self.camera_index} ready at {self.resolution[0]}x{self.resolution[1]}")
        return True

    def get_frame(self) -> np.ndarray:
        """Grab one BGR frame."""
        if self._capture is None:
            raise CameraNotInitializedError()
        with self._read_lock:
            ok, frame = self._capture.read()
        if not ok or frame is None:
            raise FrameCaptureError()
        return frame

    def get_resolution(self) -> Tuple[int, int]:
        return self.resolution

    def is_opened(self) -> bool:
        return self._capture is not None and self._capture.isOpened()

    def release(self):
        if self._capture is not None:
            with self._read_lock:
                self._capture.release()
            self._capture = None
            logger.info(f"Camera {self.camera_index} released")
