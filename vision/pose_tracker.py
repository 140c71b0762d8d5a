from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

import cv2
import mediapipe as mp
import numpy as np

from vision.keypoints import Keypoint, keypoints_from_landmarks

try:
    from mediapipe.tasks.python import BaseOptions as MPBaseOptions
    from mediapipe.tasks.python.vision import (
        PoseLandmarker as MPPoseLandmarker,
        PoseLandmarkerOptions as MPPoseLandmarkerOptions,
        RunningMode as MPRunningMode,
    )
    MP_TASKS_AVAILABLE = True
except Exception:  # pragma: no cover - optional dependency at runtime
    MP_TASKS_AVAILABLE = False
    MPBaseOptions = None
    MPPoseLandmarker = None
    MPPoseLandmarkerOptions = None
    MPRunningMode = None

logger = logging.getLogger(__name__)


class PoseTracker:
    """
    Runs MediaPipe Pose on BGR frames and returns normalized keypoints.

    Uses mp.solutions.pose when the installed MediaPipe still ships it,
    otherwise the Tasks PoseLandmarker in VIDEO mode.
    """

    def __init__(
        self,
        model_complexity: int = 1,
        smooth_landmarks: bool = True,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        task_model_path: Union[str, Path, None] = None,
    ) -> None:
        self.pose = None
        self.pose_landmarker = None
        self.landmarker_ts_ms = 0
        self.backend_name = "disabled"

        if hasattr(mp, "solutions") and hasattr(mp.solutions, "pose"):
            self.pose = mp.solutions.pose.Pose(
                static_image_mode=False,
                model_complexity=model_complexity,
                smooth_landmarks=smooth_landmarks,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence,
            )
            self.backend_name = "solutions.pose"
            logger.info("Pose backend: %s (complexity=%d)", self.backend_name, model_complexity)
            return

        if MP_TASKS_AVAILABLE:
            if task_model_path is None:
                raise RuntimeError(
                    "mediapipe.solutions.pose is unavailable and no PoseLandmarker .task model was given. "
                    "Set MEDIAPIPE_POSE_TASK_MODEL to a valid .task file."
                )
            model_path = Path(task_model_path).expanduser()
            if not model_path.is_absolute():
                model_path = (Path(__file__).resolve().parent.parent / model_path).resolve()
            if not model_path.exists():
                raise RuntimeError(
                    f"MediaPipe task model not found: {model_path}. "
                    "Set MEDIAPIPE_POSE_TASK_MODEL to a valid .task file."
                )

            assert MPBaseOptions is not None
            assert MPPoseLandmarkerOptions is not None
            assert MPPoseLandmarker is not None
            assert MPRunningMode is not None

            options = MPPoseLandmarkerOptions(
                base_options=MPBaseOptions(model_asset_path=str(model_path)),
                running_mode=MPRunningMode.VIDEO,
                num_poses=1,
                min_pose_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence,
            )
            self.pose_landmarker = MPPoseLandmarker.create_from_options(options)
            self.backend_name = "tasks.pose_landmarker"
            logger.info("Pose backend: %s (%s)", self.backend_name, model_path)
            return

        raise RuntimeError(
            "MediaPipe pose backend unavailable. "
            "Neither mp.solutions.pose nor mediapipe.tasks PoseLandmarker is available."
        )

    def process(self, frame_bgr: Optional[np.ndarray]) -> Optional[List[Keypoint]]:
        if frame_bgr is None:
            return None

        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        if self.pose is not None:
            rgb.flags.writeable = False
            result = self.pose.process(rgb)
            if not result or not result.pose_landmarks:
                return None
            return keypoints_from_landmarks(result.pose_landmarks.landmark)

        if self.pose_landmarker is not None:
            mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
            # VIDEO mode requires strictly increasing timestamps.
            self.landmarker_ts_ms += 33
            result = self.pose_landmarker.detect_for_video(mp_image, self.landmarker_ts_ms)
            if not result or not result.pose_landmarks:
                return None
            return keypoints_from_landmarks(result.pose_landmarks[0])

        return None

    def close(self) -> None:
        if self.pose is not None:
            self.pose.close()
            self.pose = None
        if self.pose_landmarker is not None:
            self.pose_landmarker.close()
            self.pose_landmarker = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
