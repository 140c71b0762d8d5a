from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import requests

logger = logging.getLogger(__name__)

PREDICTION_FAILED_MESSAGE = "Prediction failed. Check backend or network."


class PredictionError(Exception):
    """The scoring service could not produce a usable prediction."""


@dataclass
class Prediction:
    predicted_pose: Optional[str] = None
    selected_pose: Optional[str] = None
    angles: Any = None
    score: Any = None
    incorrect_parts: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: object) -> "Prediction":
        if not isinstance(data, dict):
            raise PredictionError("Prediction response must be a JSON object")

        parts = data.get("incorrect_parts")
        incorrect_parts = [str(part) for part in parts] if isinstance(parts, list) else []

        predicted_pose = data.get("predicted_pose")
        selected_pose = data.get("selected_pose")
        return cls(
            predicted_pose=str(predicted_pose) if predicted_pose is not None else None,
            selected_pose=str(selected_pose) if selected_pose else None,
            angles=data.get("angles"),
            score=data.get("score"),
            incorrect_parts=incorrect_parts,
            raw=dict(data),
        )


class ScoringClient:
    def __init__(self, base_url: str, timeout: float = 5.0, path: str = "/predict"):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.path = path if path.startswith("/") else f"/{path}"

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}"

    def predict(self, keypoints: Sequence[Mapping[str, float]], selected_pose: str) -> Prediction:
        payload = {
            "keypoints": list(keypoints),
            "selected_pose": selected_pose,
        }

        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "unknown"
            body = e.response.text[:200] if e.response is not None else ""
            raise PredictionError(f"Scoring service HTTP {status}: {body}") from e
        except requests.RequestException as e:
            raise PredictionError(f"Request to {self.url} failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise PredictionError("Scoring service returned a non-JSON body") from e

        return Prediction.from_json(data)


class PredictionDispatcher:
    """
    Sends keypoints to the scoring service from a single worker thread.

    At most one request is in flight. Frames arriving while a request is
    running, or sooner than min_interval_sec after the last accepted one,
    are dropped.
    """

    def __init__(
        self,
        client: ScoringClient,
        min_interval_sec: float = 0.5,
        on_result: Optional[Callable[[Prediction], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_start: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.min_interval_sec = max(0.0, min_interval_sec)
        self.on_result = on_result
        self.on_error = on_error
        self.on_start = on_start
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="predict")
        self._lock = threading.Lock()
        self._in_flight: Optional[Future] = None
        self._last_submit_at: Optional[float] = None
        self._closed = False
        self.sent = 0
        self.dropped = 0

    @property
    def busy(self) -> bool:
        future = self._in_flight
        return future is not None and not future.done()

    def submit(self, keypoints: Sequence[Mapping[str, float]], selected_pose: str) -> bool:
        with self._lock:
            if self._closed:
                return False
            if self.busy:
                self.dropped += 1
                return False
            now = self._clock()
            if self._last_submit_at is not None and (now - self._last_submit_at) < self.min_interval_sec:
                self.dropped += 1
                return False

            self._last_submit_at = now
            self.sent += 1
            if self.on_start is not None:
                self.on_start()
            self._in_flight = self._executor.submit(self._run, list(keypoints), selected_pose)
            return True

    def _run(self, keypoints: List[Mapping[str, float]], selected_pose: str) -> None:
        try:
            prediction = self.client.predict(keypoints, selected_pose)
        except Exception as error:
            if self.on_error is not None:
                self.on_error(error)
            else:
                logger.warning("Prediction failed: %s", error)
            return

        if self.on_result is not None:
            try:
                self.on_result(prediction)
            except Exception:
                logger.exception("Prediction result handler failed")

    def wait(self, timeout: Optional[float] = None) -> None:
        future = self._in_flight
        if future is not None:
            future.result(timeout=timeout)

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=True)
