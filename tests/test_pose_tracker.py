#!/usr/bin/env python3
"""Tests for the MediaPipe wrapper with the pose library replaced by fakes."""

import sys
from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from vision import pose_tracker
from vision.keypoints import Keypoint
from vision.pose_tracker import PoseTracker


class FakePose:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.result = None
        self.seen_shapes = []
        self.closed = False
        FakePose.instances.append(self)

    def process(self, rgb):
        self.seen_shapes.append(rgb.shape)
        return self.result

    def close(self):
        self.closed = True


@pytest.fixture
def fake_solutions(monkeypatch):
    FakePose.instances = []
    fake_mp = SimpleNamespace(solutions=SimpleNamespace(pose=SimpleNamespace(Pose=FakePose)))
    monkeypatch.setattr(pose_tracker, "mp", fake_mp)
    return fake_mp


class TestSolutionsBackend:
    def test_options_forwarded(self, fake_solutions):
        tracker = PoseTracker(model_complexity=2, smooth_landmarks=False, min_detection_confidence=0.7)
        pose = FakePose.instances[0]
        assert tracker.backend_name == "solutions.pose"
        assert pose.kwargs == {
            "static_image_mode": False,
            "model_complexity": 2,
            "smooth_landmarks": False,
            "min_detection_confidence": 0.7,
            "min_tracking_confidence": 0.5,
        }

    def test_process_returns_keypoints(self, fake_solutions):
        tracker = PoseTracker()
        landmarks = [SimpleNamespace(x=0.1, y=0.2, z=0.3, visibility=0.4)]
        FakePose.instances[0].result = SimpleNamespace(
            pose_landmarks=SimpleNamespace(landmark=landmarks)
        )
        keypoints = tracker.process(np.zeros((48, 64, 3), dtype=np.uint8))
        assert keypoints == [Keypoint(0.1, 0.2, 0.3, 0.4)]
        assert FakePose.instances[0].seen_shapes == [(48, 64, 3)]

    def test_no_pose_in_frame(self, fake_solutions):
        tracker = PoseTracker()
        FakePose.instances[0].result = SimpleNamespace(pose_landmarks=None)
        assert tracker.process(np.zeros((48, 64, 3), dtype=np.uint8)) is None
        assert tracker.process(None) is None

    def test_close_is_idempotent(self, fake_solutions):
        with PoseTracker() as tracker:
            pass
        tracker.close()
        assert FakePose.instances[0].closed
        assert tracker.pose is None


class TestBackendSelection:
    def test_missing_task_model(self, monkeypatch, tmp_path):
        monkeypatch.setattr(pose_tracker, "mp", SimpleNamespace())
        monkeypatch.setattr(pose_tracker, "MP_TASKS_AVAILABLE", True)
        with pytest.raises(RuntimeError, match="task model not found"):
            PoseTracker(task_model_path=tmp_path / "missing.task")

    def test_task_model_required(self, monkeypatch):
        monkeypatch.setattr(pose_tracker, "mp", SimpleNamespace())
        monkeypatch.setattr(pose_tracker, "MP_TASKS_AVAILABLE", True)
        with pytest.raises(RuntimeError, match="MEDIAPIPE_POSE_TASK_MODEL"):
            PoseTracker()

    def test_no_backend(self, monkeypatch):
        monkeypatch.setattr(pose_tracker, "mp", SimpleNamespace())
        monkeypatch.setattr(pose_tracker, "MP_TASKS_AVAILABLE", False)
        with pytest.raises(RuntimeError, match="backend unavailable"):
            PoseTracker()
