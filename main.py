from __future__ import annotations

import argparse
import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

import cv2
import numpy as np

import config
from scoring_client import (
    PREDICTION_FAILED_MESSAGE,
    Prediction,
    PredictionDispatcher,
    ScoringClient,
)
from vision.camera import CameraError, ReplaySource, WebcamSource
from vision.keypoints import POSE_CONNECTIONS, Keypoint, keypoints_to_payload, load_landmark_frames
from vision.overlay import draw_landmarks, render_panel
from vision.pose_tracker import PoseTracker

logger = logging.getLogger(__name__)

KEY_ESCAPE = 27
KEY_SPACE = 32


@dataclass
class DetectorState:
    selected_pose: str
    prediction: Optional[Prediction] = None
    loading: bool = False
    error: Optional[str] = None
    is_running: bool = False
    frames: int = 0


class YogaPoseDetector:
    def __init__(
        self,
        source: Union[WebcamSource, ReplaySource],
        tracker: Optional[PoseTracker],
        client: ScoringClient,
        pose_options: Sequence[str] = config.POSE_OPTIONS,
        selected_pose: Optional[str] = None,
        min_interval_sec: float = config.PREDICT_MIN_INTERVAL_SEC,
        mirror: bool = False,
        show_connections: bool = False,
        json_out: Optional[Path] = None,
        log_every_n_frames: int = config.LOG_EVERY_N_FRAMES,
    ) -> None:
        if not pose_options:
            raise ValueError("At least one pose option is required")
        self.source = source
        self.tracker = tracker
        self.pose_options: List[str] = list(pose_options)
        self.mirror = mirror
        self.connections = POSE_CONNECTIONS if show_connections else None
        self.json_out = json_out
        self.log_every_n_frames = max(1, log_every_n_frames)

        initial_pose = selected_pose if selected_pose is not None else self.pose_options[0]
        if initial_pose not in self.pose_options:
            raise ValueError(f"Unknown pose: {initial_pose!r}")
        self.state = DetectorState(selected_pose=initial_pose)
        self._lock = threading.Lock()

        self.dispatcher = PredictionDispatcher(
            client,
            min_interval_sec=min_interval_sec,
            on_start=self._on_request_start,
            on_result=self._on_prediction,
            on_error=self._on_prediction_error,
        )

    # ── Camera controls ──

    def start_camera(self) -> None:
        with self._lock:
            self.state.prediction = None
            self.state.error = None
        self.source.start()
        with self._lock:
            self.state.is_running = True

    def stop_camera(self) -> None:
        with self._lock:
            self.state.is_running = False
        self.source.stop()

    def toggle_camera(self) -> None:
        if self.state.is_running:
            self.stop_camera()
        else:
            self.start_camera()

    # ── Pose selection ──

    def select_pose(self, name: str) -> None:
        if name not in self.pose_options:
            raise ValueError(f"Unknown pose: {name!r}")
        with self._lock:
            self.state.selected_pose = name
        logger.info("Selected pose: %s", name)

    def cycle_pose(self, step: int = 1) -> str:
        index = self.pose_options.index(self.state.selected_pose)
        name = self.pose_options[(index + step) % len(self.pose_options)]
        self.select_pose(name)
        return name

    # ── Request lifecycle (on_start runs on the caller, the rest on the worker) ──

    def _on_request_start(self) -> None:
        with self._lock:
            self.state.loading = True
            self.state.error = None

    def _on_prediction(self, prediction: Prediction) -> None:
        with self._lock:
            self.state.prediction = prediction
            self.state.loading = False
        if self.json_out is None:
            return
        try:
            self.json_out.parent.mkdir(parents=True, exist_ok=True)
            self.json_out.write_text(json.dumps(prediction.raw, indent=2), encoding="utf-8")
        except OSError as error:
            logger.warning("Could not write prediction to %s: %s", self.json_out, error)
            with self._lock:
                self.state.error = f"Could not write prediction to {self.json_out}."

    def _on_prediction_error(self, error: Exception) -> None:
        logger.warning("Prediction request failed: %s", error)
        with self._lock:
            self.state.error = PREDICTION_FAILED_MESSAGE
            self.state.loading = False

    # ── Frame handling ──

    def on_results(self, frame: np.ndarray, keypoints: Optional[List[Keypoint]]) -> bool:
        """Draw keypoints and send them for scoring. Returns True if a request was sent."""
        draw_landmarks(frame, keypoints, connections=self.connections)
        if not keypoints:
            return False

        with self._lock:
            selected_pose = self.state.selected_pose
        return self.dispatcher.submit(keypoints_to_payload(keypoints), selected_pose)

    def _blank_frame(self) -> np.ndarray:
        return np.zeros((self.source.height, self.source.width, 3), dtype=np.uint8)

    def step(self) -> Optional[np.ndarray]:
        """Process one frame and return the composed view, or None when a replay ends."""
        if not self.state.is_running:
            return render_panel(self._blank_frame(), self.state)

        frame = self.source.read()
        if frame is None:
            if isinstance(self.source, ReplaySource) and self.source.exhausted:
                return None
            logger.warning("Camera frame unavailable; stopping camera")
            self.stop_camera()
            with self._lock:
                self.state.error = "Camera frame unavailable."
            return render_panel(self._blank_frame(), self.state)

        if self.tracker is not None:
            keypoints = self.tracker.process(frame)
        else:
            keypoints = getattr(self.source, "last_keypoints", None)

        self.on_results(frame, keypoints)

        self.state.frames += 1
        if self.state.frames % self.log_every_n_frames == 0:
            prediction = self.state.prediction
            logger.info(
                "frame=%04d pose=%s sent=%d dropped=%d predicted=%s",
                self.state.frames,
                self.state.selected_pose,
                self.dispatcher.sent,
                self.dispatcher.dropped,
                prediction.predicted_pose if prediction else None,
            )

        if self.mirror:
            frame = cv2.flip(frame, 1)
        return render_panel(frame, self.state)

    def handle_key(self, key: int) -> bool:
        """Apply a key press. Returns False when the user asked to quit."""
        if key in (ord("q"), KEY_ESCAPE):
            return False
        if key in (KEY_SPACE, ord("s")):
            try:
                self.toggle_camera()
            except CameraError as error:
                logger.error("%s", error)
                with self._lock:
                    self.state.error = str(error)
        elif key == ord("n"):
            self.cycle_pose(1)
        elif key == ord("p"):
            self.cycle_pose(-1)
        elif ord("1") <= key <= ord("9"):
            index = key - ord("1")
            if index < len(self.pose_options):
                self.select_pose(self.pose_options[index])
        return True

    def close(self) -> None:
        self.stop_camera()
        self.dispatcher.close()
        if self.tracker is not None:
            self.tracker.close()


def run_detector(
    detector: YogaPoseDetector,
    show_window: bool = True,
    window_name: str = config.WINDOW_NAME,
    max_frames: int = 0,
) -> int:
    frame_count = 0
    try:
        while True:
            composed = detector.step()
            if composed is None:
                logger.info("Replay finished")
                break

            if show_window:
                cv2.imshow(window_name, composed)
                key = cv2.waitKey(1 if detector.state.is_running else 30) & 0xFF
                if key != 0xFF and not detector.handle_key(key):
                    break
            elif not detector.state.is_running:
                break

            frame_count += 1
            if max_frames > 0 and frame_count >= max_frames:
                break
    finally:
        detector.close()
        if show_window:
            cv2.destroyAllWindows()
    return frame_count


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Webcam yoga pose detector with remote scoring")
    parser.add_argument("--api-url", default=config.API_URL, help="Scoring service base URL")
    parser.add_argument("--camera", default=None, help="Camera index or stream URL (default: CAMERA_SOURCE)")
    parser.add_argument("--pose", default=config.DEFAULT_POSE, choices=config.POSE_OPTIONS)
    parser.add_argument("--mirror", action="store_true", default=config.MIRROR_PREVIEW, help="Mirror display preview")
    parser.add_argument(
        "--min-interval",
        type=float,
        default=config.PREDICT_MIN_INTERVAL_SEC,
        help="Minimum seconds between scoring requests",
    )
    parser.add_argument("--source-json", default="", help="Replay landmark JSON instead of webcam")
    parser.add_argument("--no-window", action="store_true", help="Disable OpenCV UI window")
    parser.add_argument("--autostart", action="store_true", help="Start the camera immediately")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N frames (0=run forever)")
    parser.add_argument("--json-out", default="", help="Write the latest prediction to this file")
    return parser


def _camera_source(raw: Optional[str]) -> Union[int, str]:
    if raw is None:
        return config.CAMERA_SOURCE
    return config.parse_camera_source(raw)


def build_detector(args: argparse.Namespace) -> YogaPoseDetector:
    client = ScoringClient(args.api_url, timeout=config.PREDICT_TIMEOUT_SEC, path=config.PREDICT_PATH)

    tracker: Optional[PoseTracker] = None
    if args.source_json:
        frames = load_landmark_frames(args.source_json)
        source: Union[WebcamSource, ReplaySource] = ReplaySource(
            frames,
            width=config.CAMERA_WIDTH,
            height=config.CAMERA_HEIGHT,
            loop=not args.no_window,
        )
        logger.info("Replay mode from %s (%d frames)", args.source_json, len(frames))
    else:
        source = WebcamSource(_camera_source(args.camera), width=config.CAMERA_WIDTH, height=config.CAMERA_HEIGHT)
        tracker = PoseTracker(
            model_complexity=config.POSE_MODEL_COMPLEXITY,
            smooth_landmarks=config.POSE_SMOOTH_LANDMARKS,
            min_detection_confidence=config.POSE_MIN_DETECTION_CONFIDENCE,
            min_tracking_confidence=config.POSE_MIN_TRACKING_CONFIDENCE,
            task_model_path=config.MEDIAPIPE_POSE_TASK_MODEL,
        )

    return YogaPoseDetector(
        source,
        tracker,
        client,
        pose_options=config.POSE_OPTIONS,
        selected_pose=args.pose,
        min_interval_sec=args.min_interval,
        mirror=args.mirror,
        show_connections=config.SHOW_CONNECTIONS,
        json_out=Path(args.json_out) if args.json_out else None,
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = build_arg_parser().parse_args(argv)

    detector = build_detector(args)
    logger.info("Scoring service: %s", detector.dispatcher.client.url)
    if args.no_window or args.autostart:
        try:
            detector.start_camera()
        except CameraError as error:
            logger.error("%s", error)
            detector.close()
            return

    start_ts = time.time()
    frame_count = run_detector(
        detector,
        show_window=not args.no_window,
        window_name=config.WINDOW_NAME,
        max_frames=args.max_frames,
    )
    elapsed = max(1e-6, time.time() - start_ts)
    logger.info(
        "Finished. Frames=%d, elapsed=%.2fs, approx_fps=%.1f, requests=%d, dropped=%d",
        frame_count,
        elapsed,
        frame_count / elapsed,
        detector.dispatcher.sent,
        detector.dispatcher.dropped,
    )


if __name__ == "__main__":
    main()
