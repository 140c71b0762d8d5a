from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import List, Union

SCRIPT_DIR = Path(__file__).resolve().parent
ENV_PATH = SCRIPT_DIR / ".env"

DEFAULT_POSE_OPTIONS = (
    "adho mukha svanasana",
    "balasana",
    "garudasana",
    "marjaryasana",
    "parsva bakasana",
    "salabhasana",
    "setu bandha sarvangasana",
    "utthita trikonasana",
    "virabhadrasana ii",
)


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return

    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        if line.startswith("export "):
            line = line[len("export ") :].strip()

        key, value = line.split("=", 1)
        key = key.strip()

        lexer = shlex.shlex(value.strip(), posix=True)
        lexer.whitespace_split = True
        lexer.commenters = "#"
        parsed = " ".join(list(lexer)).strip().strip('"').strip("'")

        if key and key not in os.environ:
            os.environ[key] = parsed


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def parse_camera_source(raw: str) -> Union[int, str]:
    """Integer device index (negative allowed) or a URL/path string."""
    raw = raw.strip()
    if raw.isdigit() or (raw.startswith("-") and raw[1:].isdigit()):
        return int(raw)
    return raw


def _camera_source_from_env() -> Union[int, str]:
    return parse_camera_source(os.getenv("CAMERA_SOURCE", "0"))


def _api_url_from_env() -> str:
    raw = os.getenv("API_URL", "http://localhost:5000").strip()
    return raw.rstrip("/") or "http://localhost:5000"


def _predict_path_from_env() -> str:
    path = os.getenv("PREDICT_PATH", "/predict").strip()
    if not path:
        return "/predict"
    if not path.startswith("/"):
        return f"/{path}"
    return path


def _pose_options_from_env() -> List[str]:
    raw = os.getenv("POSE_OPTIONS")
    if raw is None:
        return list(DEFAULT_POSE_OPTIONS)
    options = [item.strip() for item in raw.split(",") if item.strip()]
    return options or list(DEFAULT_POSE_OPTIONS)


def _default_pose_from_env(options: List[str]) -> str:
    raw = os.getenv("DEFAULT_POSE", "").strip()
    if raw in options:
        return raw
    return options[0]


_load_env_file(ENV_PATH)

API_URL = _api_url_from_env()
PREDICT_PATH = _predict_path_from_env()
PREDICT_TIMEOUT_SEC = max(_float_env("PREDICT_TIMEOUT_SEC", 5.0), 0.1)
PREDICT_MIN_INTERVAL_SEC = max(_float_env("PREDICT_MIN_INTERVAL_SEC", 0.5), 0.0)

CAMERA_SOURCE = _camera_source_from_env()
CAMERA_WIDTH = max(_int_env("CAMERA_WIDTH", 640), 160)
CAMERA_HEIGHT = max(_int_env("CAMERA_HEIGHT", 480), 120)
MIRROR_PREVIEW = _bool_env("MIRROR_PREVIEW", False)

POSE_MODEL_COMPLEXITY = max(0, min(2, _int_env("POSE_MODEL_COMPLEXITY", 1)))
POSE_SMOOTH_LANDMARKS = _bool_env("POSE_SMOOTH_LANDMARKS", True)
POSE_MIN_DETECTION_CONFIDENCE = max(0.0, min(1.0, _float_env("POSE_MIN_DETECTION_CONFIDENCE", 0.5)))
POSE_MIN_TRACKING_CONFIDENCE = max(0.0, min(1.0, _float_env("POSE_MIN_TRACKING_CONFIDENCE", 0.5)))
MEDIAPIPE_POSE_TASK_MODEL = os.getenv(
    "MEDIAPIPE_POSE_TASK_MODEL",
    str(SCRIPT_DIR / "models" / "pose_landmarker_full.task"),
)

POSE_OPTIONS = _pose_options_from_env()
DEFAULT_POSE = _default_pose_from_env(POSE_OPTIONS)

SHOW_CONNECTIONS = _bool_env("SHOW_CONNECTIONS", False)
WINDOW_NAME = os.getenv("WINDOW_NAME", "Yoga Pose Detector")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
LOG_EVERY_N_FRAMES = max(_int_env("LOG_EVERY_N_FRAMES", 30), 1)
