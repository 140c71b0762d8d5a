from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence, Union

import cv2
import numpy as np

from vision.keypoints import Keypoint

logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    pass


class WebcamSource:
    """OpenCV capture that can be started and stopped repeatedly."""

    def __init__(self, source: Union[int, str] = 0, width: int = 640, height: int = 480) -> None:
        self.source = source
        self.width = width
        self.height = height
        self._capture: Optional[cv2.VideoCapture] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def start(self) -> None:
        if self._capture is not None:
            return

        capture = cv2.VideoCapture(self.source)
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        if not capture.isOpened():
            capture.release()
            raise CameraError(
                f"Cannot open camera source: {self.source}. "
                "Check that the device exists and the terminal has camera permission."
            )

        # Warm-up: some drivers need a few reads before the first valid frame.
        for _ in range(10):
            ok, _ = capture.read()
            if ok:
                break
            time.sleep(0.03)

        self._capture = capture
        logger.info("Camera %s started (%dx%d requested)", self.source, self.width, self.height)

    def stop(self) -> None:
        if self._capture is None:
            return
        self._capture.release()
        self._capture = None
        logger.info("Camera %s stopped", self.source)

    def read(self) -> Optional[np.ndarray]:
        if self._capture is None:
            return None
        ok, frame = self._capture.read()
        if not ok:
            return None
        return frame


class ReplaySource:
    """
    Plays recorded keypoint frames on a blank canvas instead of a camera.

    read() returns the canvas; the matching keypoints are exposed through
    last_keypoints so the caller can skip pose detection.
    """

    def __init__(
        self,
        frames: Sequence[List[Keypoint]],
        width: int = 640,
        height: int = 480,
        loop: bool = True,
    ) -> None:
        self.frames = list(frames)
        self.width = width
        self.height = height
        self.loop = loop
        self.index = 0
        self.last_keypoints: Optional[List[Keypoint]] = None
        self._started = False

    @property
    def is_open(self) -> bool:
        return self._started

    @property
    def exhausted(self) -> bool:
        return not self.frames or (not self.loop and self.index >= len(self.frames))

    def start(self) -> None:
        self._started = True

    def stop(self) -> None:
        self._started = False

    def read(self) -> Optional[np.ndarray]:
        if not self._started or self.exhausted:
            self.last_keypoints = None
            return None
        self.last_keypoints = self.frames[self.index % len(self.frames)]
        self.index += 1
        return np.zeros((self.height, self.width, 3), dtype=np.uint8)
