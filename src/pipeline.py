"""
Puts the per-frame stages together into one tick.

    detector -> score/box filtering -> distance + direction -> tracker (+ motion) -> alerts

Whoever owns the frame loop (camera callback, video reader, test) calls tick()
once per frame. The detector is slow, so it runs at most every
inference_interval_ms and, with an executor, in the background. Only one
inference is ever in flight; ticks in between just return the last snapshot.
Results are picked up inside tick(), so all tracker state changes on the
thread that calls tick().
"""

import logging
import time
from concurrent.futures import Executor, Future
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Tuple

import numpy as np

from alerts import AlertGenerator
from config import PipelineConfig
from distance_utils import DistanceEstimator, classify_direction
from models import Alert, AnnotatedDetection, AnnouncementEvent, Detector, RawDetection, TrackedObject
from motion import MotionAnalyzer
from tracker import ObjectTracker

log = logging.getLogger("pipeline")


@dataclass(frozen=True)
class TickResult:
    """
    What one tick hands to the outside world

    - tracks: ordered track snapshots for the renderer
    - events: new announcements for the speech side
    - alerts: recent alert log, newest first
    - updated: True if a fresh detection batch went through the tracker this tick
    """
    tracks: Tuple[TrackedObject, ...] = ()
    events: Tuple[AnnouncementEvent, ...] = ()
    alerts: Tuple[Alert, ...] = ()
    updated: bool = False


class DetectionPipeline:
    """
    Detection-to-track pipeline for one camera session.
    """

    def __init__(self, detector: Detector, config: Optional[PipelineConfig] = None,
                 executor: Optional[Executor] = None, clock: Callable[[], float] = time.monotonic):
        """
        - detector: anything with detect(frame) -> detections
        - config: PipelineConfig, defaults when None
        - executor: run inference there (e.g. ThreadPoolExecutor(max_workers=1)),
          None runs it inline inside tick()
        - clock: time source in seconds when tick() gets no explicit `now`
        """
        self.detector = detector
        self.config = config or PipelineConfig()
        self.executor = executor
        self.clock = clock

        self.estimator = DistanceEstimator.from_config(self.config)
        motion = MotionAnalyzer.from_config(self.config) if self.config.enable_motion_analysis else None
        self.tracker = ObjectTracker.from_config(self.config, motion=motion)
        self.alerts = AlertGenerator.from_config(self.config)

        self._running = False
        self._pending: Optional[Tuple[Future, int, int]] = None # (future, frame width, frame height)
        self._last_launch_at: Optional[float] = None
        self._last_result = TickResult()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def inference_pending(self) -> bool:
        return self._pending is not None

    def start(self):
        """Begin a session. A stopped pipeline can be started again."""
        self._running = True
        self._last_launch_at = None
        log.info("pipeline started")

    def stop(self):
        """
        End the session: no more work in tick(), whatever the detector is still
        doing gets thrown away, and tracks + alerts are cleared.
        """
        self._running = False
        if self._pending is not None:
            future = self._pending[0]
            future.cancel() # no-op if it is already running, the result is dropped anyway
            self._pending = None
        self.tracker.reset()
        self.alerts.reset()
        self._last_result = TickResult()
        log.info("pipeline stopped")

    def set_focus(self, track_id: int, focused: bool = True) -> bool:
        return self.tracker.set_focus(track_id, focused)

    def summary(self) -> str:
        return self.alerts.summary_message(self.tracker.tracks)

    def tick(self, frame: Optional[np.ndarray], now: Optional[float] = None,
             frame_size: Optional[Tuple[int, int]] = None) -> TickResult:
        """
        Run one pipeline step for the current frame

        - frame: image (H x W x C), only handed to the detector
        - now: frame timestamp in seconds, defaults to the clock
        - frame_size: (width, height) when the frame has no .shape

        returns: TickResult. Ticks without a fresh batch carry the last tracks
        and alert log, but never the events of an earlier tick
        """
        if not self._running:
            return TickResult()
        now = self.clock() if now is None else now

        width, height = frame_size if frame_size is not None else _frame_size(frame)
        if width <= 0 or height <= 0:
            # Camera not ready yet, try again next tick
            log.debug(f"skipping tick, frame size is {width}x{height}")
            self._last_result = replace(self._last_result, events=(), updated=False)
            return self._last_result

        batch = self._collect()
        if self._pending is None and self._inference_due(now):
            launched = self._launch(frame, width, height, now)
            if launched is not None:
                batch = launched

        if batch is None:
            tracks = self.tracker.expire(now)
            self._last_result = TickResult(tracks, (), self.alerts.recent, False)
            return self._last_result

        detections, det_width, det_height = batch
        return self.process_detections(detections, det_width, det_height, now)

    def process_detections(self, detections: Iterable[RawDetection], frame_width: int,
                           frame_height: int, now: float) -> TickResult:
        """
        Push one batch of raw detections through annotate -> track -> alert.
        """
        annotated = self.annotate(detections, frame_width, frame_height)
        tracks = self.tracker.update(annotated, now)
        events = self.alerts.process(tracks, now)
        self._last_result = TickResult(tracks, events, self.alerts.recent, True)
        return self._last_result

    def annotate(self, detections: Iterable[RawDetection], frame_width: int,
                 frame_height: int) -> List[AnnotatedDetection]:
        """
        Filter weak/malformed detections and attach distance + direction to the rest.
        """
        annotated = []
        for det in detections:
            if det.score < self.config.min_detection_score:
                continue
            if not det.bbox.is_within(frame_width, frame_height):
                log.debug(f"dropping malformed box {det.bbox} ({det.class_label}) "
                          f"in {frame_width}x{frame_height} frame")
                continue
            distance = self.estimator.estimate(det.bbox, det.class_label)
            direction = classify_direction(det.bbox, frame_width,
                                           self.config.left_zone_ratio, self.config.right_zone_ratio)
            annotated.append(AnnotatedDetection(det.bbox, det.class_label, det.score, distance, direction))
        return annotated

    def _inference_due(self, now: float) -> bool:
        if self._last_launch_at is None:
            return True
        return (now - self._last_launch_at) * 1000.0 >= self.config.inference_interval_ms

    def _launch(self, frame, width: int, height: int, now: float):
        """
        Start inference. Inline mode returns the batch right away (or None if it failed),
        executor mode returns None and the batch shows up in a later _collect().
        """
        self._last_launch_at = now
        if self.executor is None:
            try:
                return list(self.detector.detect(frame)), width, height
            except Exception as e:
                log.warning(f"Detector failed, skipping this frame: {e}")
                return None

        future = self.executor.submit(lambda: list(self.detector.detect(frame)))
        self._pending = (future, width, height)
        return None

    def _collect(self):
        """Pick up a finished background inference, if there is one."""
        if self._pending is None:
            return None
        future, width, height = self._pending
        if not future.done():
            return None
        self._pending = None
        if future.cancelled():
            return None
        error = future.exception()
        if error is not None:
            log.warning(f"Detector failed, skipping this batch: {error}")
            return None
        return future.result(), width, height


def _frame_size(frame) -> Tuple[int, int]:
    if frame is None or getattr(frame, 'ndim', 0) < 2:
        return 0, 0
    height, width = frame.shape[:2]
    return int(width), int(height)
