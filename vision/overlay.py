from __future__ import annotations

import json
import textwrap
from typing import Any, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from vision.keypoints import Keypoint, to_pixel

# BGR
LANDMARK_COLOR = (0, 255, 0)
CONNECTION_COLOR = (200, 200, 200)
PANEL_BG = (18, 18, 22)
TITLE_COLOR = (120, 230, 255)
HEADING_COLOR = (255, 210, 120)
TEXT_COLOR = (240, 240, 240)
MUTED_COLOR = (175, 175, 185)
RESULT_COLOR = (180, 255, 180)
ERROR_COLOR = (60, 60, 255)

PANEL_WIDTH = 410
WRAP_WIDTH = 44


def draw_landmarks(
    frame: np.ndarray,
    keypoints: Optional[Sequence[Keypoint]],
    radius: int = 4,
    color: Tuple[int, int, int] = LANDMARK_COLOR,
    connections: Optional[Sequence[Tuple[int, int]]] = None,
) -> np.ndarray:
    """Draw keypoints on the frame in place; the overlay always matches the frame size."""
    if not keypoints:
        return frame

    h, w = frame.shape[:2]
    points = [to_pixel(kp, w, h) for kp in keypoints]

    if connections:
        for start, end in connections:
            if start < len(points) and end < len(points):
                cv2.line(frame, points[start], points[end], CONNECTION_COLOR, 2, cv2.LINE_AA)

    for point in points:
        cv2.circle(frame, point, radius, color, -1, cv2.LINE_AA)
    return frame


def prediction_lines(prediction: Any) -> List[Tuple[str, str]]:
    """Text rows for a prediction as (text, role) pairs."""
    if prediction is None:
        return []

    lines: List[Tuple[str, str]] = [(f"Predicted Pose: {prediction.predicted_pose}", "result")]
    if prediction.selected_pose:
        lines.append((f"Selected Pose: {prediction.selected_pose}", "text"))

    lines.append(("Angles", "heading"))
    if prediction.angles is not None:
        for row in json.dumps(prediction.angles, indent=2).splitlines():
            lines.append((row, "mono"))

    if prediction.score:
        lines.append((f"Score: {prediction.score}", "result"))

    if prediction.incorrect_parts:
        lines.append(("Incorrect Parts", "heading"))
        for part in prediction.incorrect_parts:
            lines.append((f"- {part}", "text"))
    return lines


_ROLE_STYLE = {
    "result": (RESULT_COLOR, 0.6, 2),
    "heading": (HEADING_COLOR, 0.6, 2),
    "text": (TEXT_COLOR, 0.52, 1),
    "mono": (MUTED_COLOR, 0.45, 1),
}


def render_panel(frame: np.ndarray, state: Any, width: int = PANEL_WIDTH) -> np.ndarray:
    h = frame.shape[0]
    panel = np.zeros((h, width, 3), dtype=np.uint8)
    panel[:] = PANEL_BG

    y = 35
    line_h = 22

    def write_line(text: str, color=TEXT_COLOR, scale=0.55, thickness=1):
        nonlocal y
        cv2.putText(panel, text, (14, y), cv2.FONT_HERSHEY_SIMPLEX, scale, color, thickness, cv2.LINE_AA)
        y += line_h

    write_line("Yoga Pose Detector", color=TITLE_COLOR, scale=0.72, thickness=2)
    write_line(f"Expected pose: {state.selected_pose}")
    write_line(
        "Camera: running" if state.is_running else "Camera: stopped",
        color=RESULT_COLOR if state.is_running else MUTED_COLOR,
    )
    write_line("[Space] start/stop  [N/P] pose  [Q] quit", color=MUTED_COLOR, scale=0.45)

    y += 8
    cv2.line(panel, (12, y), (width - 12, y), (70, 70, 75), 1)
    y += 28

    if state.loading:
        write_line("Processing...", color=HEADING_COLOR)
    if state.error:
        for row in textwrap.wrap(state.error, width=WRAP_WIDTH):
            write_line(row, color=ERROR_COLOR)

    rows = prediction_lines(state.prediction)
    for i, (text, role) in enumerate(rows):
        if y > h - 30:
            write_line(f"+{len(rows) - i} more", color=MUTED_COLOR, scale=0.5)
            break
        color, scale, thickness = _ROLE_STYLE[role]
        wrapped = [text] if role == "mono" else textwrap.wrap(text, width=WRAP_WIDTH)
        for row in wrapped or [""]:
            write_line(row, color=color, scale=scale, thickness=thickness)

    return np.concatenate([frame, panel], axis=1)
