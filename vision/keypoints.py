from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

# MediaPipe Pose landmark index pairs: shoulders, arms, torso, legs.
POSE_CONNECTIONS: Tuple[Tuple[int, int], ...] = (
    (11, 12),
    (11, 13),
    (13, 15),
    (12, 14),
    (14, 16),
    (11, 23),
    (12, 24),
    (23, 24),
    (23, 25),
    (25, 27),
    (24, 26),
    (26, 28),
)


@dataclass(frozen=True)
class Keypoint:
    x: float
    y: float
    z: float = 0.0
    visibility: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z, "visibility": self.visibility}


def _float_or_zero(value: object) -> float:
    if value is None:
        return 0.0
    return float(value)  # type: ignore[arg-type]


def keypoint_from_landmark(landmark: Any) -> Keypoint:
    """Convert one pose-library landmark; missing z/visibility become 0."""
    return Keypoint(
        x=float(landmark.x),
        y=float(landmark.y),
        z=_float_or_zero(getattr(landmark, "z", None)),
        visibility=_float_or_zero(getattr(landmark, "visibility", None)),
    )


def keypoints_from_landmarks(landmarks: Optional[Iterable[Any]]) -> Optional[List[Keypoint]]:
    if landmarks is None:
        return None
    keypoints = [keypoint_from_landmark(lm) for lm in landmarks]
    return keypoints or None


def keypoints_to_payload(keypoints: Sequence[Keypoint]) -> List[Dict[str, float]]:
    return [kp.to_dict() for kp in keypoints]


def _as_coordinate(item: Mapping[str, object], key: str, index: int) -> float:
    raw_value = item.get(key)
    if raw_value is None:
        return 0.0
    if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
        raise ValueError(f"Keypoint {index} field '{key}' must be numeric")
    return float(raw_value)


def keypoints_from_payload(items: Iterable[Mapping[str, object]]) -> List[Keypoint]:
    keypoints: List[Keypoint] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise ValueError(f"Keypoint {index} must be a JSON object")
        if "x" not in item or "y" not in item:
            raise ValueError(f"Keypoint {index} is missing x/y")
        keypoints.append(
            Keypoint(
                x=_as_coordinate(item, "x", index),
                y=_as_coordinate(item, "y", index),
                z=_as_coordinate(item, "z", index),
                visibility=_as_coordinate(item, "visibility", index),
            )
        )
    return keypoints


def load_landmark_frames(path: Union[str, Path]) -> List[List[Keypoint]]:
    """
    Load recorded landmarks for replay.

    Accepts either {"frames": [{"landmarks": [...]}, ...]} or a bare list of
    frames, where each frame is a landmark list or an object with "landmarks".
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Landmark recording not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    frames = data.get("frames") if isinstance(data, dict) else data
    if not isinstance(frames, list):
        raise ValueError("Landmark recording must contain a 'frames' list")

    out: List[List[Keypoint]] = []
    for index, frame in enumerate(frames):
        landmarks = frame.get("landmarks", []) if isinstance(frame, dict) else frame
        if not isinstance(landmarks, list):
            raise ValueError(f"Frame {index} must hold a landmark list")
        out.append(keypoints_from_payload(landmarks))
    return out


def to_pixel(keypoint: Keypoint, width: int, height: int) -> Tuple[int, int]:
    return int(round(keypoint.x * width)), int(round(keypoint.y * height))
