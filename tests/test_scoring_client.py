#!/usr/bin/env python3
"""Tests for the scoring service client and prediction parsing."""

import json
import sys
from pathlib import Path

import pytest
import requests

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import scoring_client
from scoring_client import Prediction, PredictionError, ScoringClient

KEYPOINTS = [{"x": 0.5, "y": 0.4, "z": 0.0, "visibility": 0.99}]


def _response(status=200, body=b"{}", url="http://scoring.test/predict"):
    resp = requests.Response()
    resp.status_code = status
    resp._content = body
    resp.encoding = "utf-8"
    resp.url = url
    return resp


class FakePost:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def __call__(self, url, json=None, timeout=None, **kwargs):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class TestPredictionParsing:
    def test_full_payload(self):
        data = {
            "predicted_pose": "balasana",
            "selected_pose": "balasana",
            "angles": {"left_knee": 42.0},
            "score": 0.87,
            "incorrect_parts": ["left_knee", "right_hip"],
        }
        prediction = Prediction.from_json(data)
        assert prediction.predicted_pose == "balasana"
        assert prediction.selected_pose == "balasana"
        assert prediction.angles == {"left_knee": 42.0}
        assert prediction.score == 0.87
        assert prediction.incorrect_parts == ["left_knee", "right_hip"]
        assert prediction.raw == data

    def test_optional_fields_absent(self):
        prediction = Prediction.from_json({"predicted_pose": "garudasana", "angles": {}})
        assert prediction.selected_pose is None
        assert prediction.score is None
        assert prediction.incorrect_parts == []

    def test_non_list_incorrect_parts_ignored(self):
        prediction = Prediction.from_json({"predicted_pose": "x", "incorrect_parts": "knee"})
        assert prediction.incorrect_parts == []

    def test_non_object_rejected(self):
        with pytest.raises(PredictionError):
            Prediction.from_json(["balasana"])


class TestScoringClient:
    def test_posts_keypoints_and_selected_pose(self, monkeypatch):
        body = json.dumps({"predicted_pose": "balasana", "angles": {"hip": 90}}).encode()
        fake = FakePost(response=_response(body=body))
        monkeypatch.setattr(scoring_client.requests, "post", fake)

        client = ScoringClient("http://scoring.test/", timeout=5.0)
        prediction = client.predict(KEYPOINTS, "balasana")

        assert prediction.predicted_pose == "balasana"
        assert fake.calls == [
            {
                "url": "http://scoring.test/predict",
                "json": {"keypoints": KEYPOINTS, "selected_pose": "balasana"},
                "timeout": 5.0,
            }
        ]

    def test_custom_path(self):
        assert ScoringClient("http://h:1", path="api/score").url == "http://h:1/api/score"

    def test_http_error(self, monkeypatch):
        monkeypatch.setattr(
            scoring_client.requests, "post", FakePost(response=_response(status=500, body=b"boom"))
        )
        with pytest.raises(PredictionError, match="HTTP 500"):
            ScoringClient("http://scoring.test").predict(KEYPOINTS, "balasana")

    def test_connection_error(self, monkeypatch):
        monkeypatch.setattr(
            scoring_client.requests, "post", FakePost(error=requests.ConnectionError("refused"))
        )
        with pytest.raises(PredictionError, match="refused"):
            ScoringClient("http://scoring.test").predict(KEYPOINTS, "balasana")

    def test_timeout(self, monkeypatch):
        monkeypatch.setattr(scoring_client.requests, "post", FakePost(error=requests.Timeout("slow")))
        with pytest.raises(PredictionError):
            ScoringClient("http://scoring.test", timeout=0.1).predict(KEYPOINTS, "balasana")

    def test_non_json_body(self, monkeypatch):
        monkeypatch.setattr(scoring_client.requests, "post", FakePost(response=_response(body=b"<html>")))
        with pytest.raises(PredictionError, match="non-JSON"):
            ScoringClient("http://scoring.test").predict(KEYPOINTS, "balasana")
