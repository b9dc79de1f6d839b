from concurrent.futures import Future
from dataclasses import FrozenInstanceError

import numpy as np
import pytest

from config import PipelineConfig
from models import BoundingBox, RawDetection
from pipeline import DetectionPipeline, TickResult

FRAME = np.zeros((480, 640, 3), dtype=np.uint8)


def _person(x: float, y: float, w: float, h: float, score: float = 0.9) -> RawDetection:
    return RawDetection(BoundingBox(x, y, w, h), "person", score)


class ScriptedDetector:
    """Returns the next scripted batch on every call (repeats the last one)."""

    def __init__(self, *batches):
        self.batches = list(batches)
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        batch = self.batches[min(self.calls, len(self.batches)) - 1]
        if isinstance(batch, Exception):
            raise batch
        return iter(batch) # one-shot iterable, like a lazy model output


class ManualExecutor:
    """Executor whose jobs only finish when the test says so."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn):
        future = Future()
        self.jobs.append((future, fn))
        return future

    def finish(self, index: int = -1):
        future, fn = self.jobs[index]
        future.set_result(fn())


def _started(detector, **kwargs) -> DetectionPipeline:
    pipeline = DetectionPipeline(detector, **kwargs)
    pipeline.start()
    return pipeline


def test_person_scenario_distance_and_direction() -> None:
    pipeline = _started(ScriptedDetector([_person(100, 100, 50, 150)]))
    result = pipeline.tick(FRAME, now=0.0)
    assert result.updated
    assert len(result.tracks) == 1
    track = result.tracks[0]
    assert track.distance == pytest.approx(5.1567, abs=1e-3)
    assert track.direction == "left"
    assert track.class_label == "person"


def test_low_scores_and_malformed_boxes_are_dropped() -> None:
    detector = ScriptedDetector([
        _person(100, 100, 50, 150, score=0.1),
        _person(10, 10, -5, 40),
        _person(600, 10, 100, 40),
        _person(300, 100, 50, 150),
    ])
    result = _started(detector).tick(FRAME, now=0.0)
    assert [t.bbox.x for t in result.tracks] == [300]


def test_frame_without_size_is_skipped() -> None:
    detector = ScriptedDetector([_person(100, 100, 50, 150)])
    pipeline = _started(detector)
    result = pipeline.tick(np.zeros((0, 0, 3), dtype=np.uint8), now=0.0)
    assert result == TickResult()
    assert detector.calls == 0
    assert pipeline.tick(None, now=0.1) == TickResult()

    assert len(pipeline.tick(FRAME, now=0.2).tracks) == 1


def test_skipped_tick_does_not_repeat_earlier_alerts() -> None:
    # a cup this big is ~0.4 m away, so the first tick shouts "Stop!"
    detector = ScriptedDetector([RawDetection(BoundingBox(270, 190, 100, 100), "cup", 0.9)])
    pipeline = _started(detector)
    first = pipeline.tick(FRAME, now=0.0)
    assert first.events and first.events[0].should_interrupt

    skipped = pipeline.tick(np.zeros((0, 0, 3), dtype=np.uint8), now=0.1)
    assert skipped.events == ()
    assert skipped.updated is False
    assert skipped.tracks == first.tracks
    assert skipped.alerts == first.alerts
    assert detector.calls == 1


def test_summary_mode_speaks_overview_instead_of_track_alerts() -> None:
    detector = ScriptedDetector([RawDetection(BoundingBox(270, 190, 100, 100), "cup", 0.9),
                                 _person(400, 100, 50, 150)])
    config = PipelineConfig(alert_type="summary", summary_interval_ms=1000)
    pipeline = _started(detector, config=config)
    result = pipeline.tick(FRAME, now=0.0)
    assert [e.message for e in result.events] == ["Detected 1 cup, 1 person"]
    assert result.alerts == ()
    assert pipeline.tick(FRAME, now=0.5).events == ()
    assert len(pipeline.tick(FRAME, now=1.0).events) == 1


def test_explicit_frame_size() -> None:
    pipeline = _started(ScriptedDetector([_person(100, 100, 50, 150)]))
    assert len(pipeline.tick(object(), now=0.0, frame_size=(640, 480)).tracks) == 1


def test_detector_failure_keeps_previous_tracks() -> None:
    detector = ScriptedDetector([_person(100, 100, 50, 150)], RuntimeError("model crashed"))
    pipeline = _started(detector)
    before = pipeline.tick(FRAME, now=0.0).tracks
    after = pipeline.tick(FRAME, now=0.3)
    assert detector.calls == 2
    assert after.updated is False
    assert after.tracks == before


def test_tracks_still_expire_while_detector_keeps_failing() -> None:
    detector = ScriptedDetector([_person(100, 100, 50, 150)], RuntimeError("model crashed"))
    pipeline = _started(detector)
    pipeline.tick(FRAME, now=0.0)
    assert pipeline.tick(FRAME, now=3.0).tracks == ()


def test_inference_is_throttled() -> None:
    detector = ScriptedDetector([_person(100, 100, 50, 150)])
    pipeline = _started(detector, config=PipelineConfig(inference_interval_ms=200))
    pipeline.tick(FRAME, now=0.0)
    quiet = pipeline.tick(FRAME, now=0.05)
    pipeline.tick(FRAME, now=0.1)
    assert detector.calls == 1
    assert quiet.updated is False
    assert len(quiet.tracks) == 1
    pipeline.tick(FRAME, now=0.25)
    assert detector.calls == 2


def test_only_one_inference_in_flight() -> None:
    executor = ManualExecutor()
    detector = ScriptedDetector([_person(100, 100, 50, 150)])
    pipeline = _started(detector, executor=executor)

    first = pipeline.tick(FRAME, now=0.0)
    assert first.tracks == ()
    assert pipeline.inference_pending
    # well past the throttle interval, but the first request is still running
    pipeline.tick(FRAME, now=0.5)
    pipeline.tick(FRAME, now=1.0)
    assert len(executor.jobs) == 1

    executor.finish()
    result = pipeline.tick(FRAME, now=1.1)
    assert result.updated
    assert len(result.tracks) == 1
    # the finished slot is reused right away
    assert len(executor.jobs) == 2


def test_stop_discards_in_flight_result_and_clears_state() -> None:
    executor = ManualExecutor()
    detector = ScriptedDetector([_person(100, 100, 50, 150)])
    pipeline = _started(detector)
    pipeline.tick(FRAME, now=0.0)
    assert len(pipeline.tracker.tracks) == 1

    pipeline.executor = executor
    pipeline.tick(FRAME, now=0.5)
    stale = executor.jobs[0][0]
    pipeline.stop()
    assert stale.cancelled()
    assert pipeline.tracker.tracks == ()
    assert pipeline.alerts.recent == ()
    assert not pipeline.running
    assert pipeline.tick(FRAME, now=0.6) == TickResult()

    pipeline.start()
    result = pipeline.tick(FRAME, now=0.7)
    assert result.tracks == ()
    assert len(executor.jobs) == 2


def test_snapshots_are_immutable() -> None:
    pipeline = _started(ScriptedDetector([_person(100, 100, 50, 150)]))
    first = pipeline.tick(FRAME, now=0.0)
    with pytest.raises(FrozenInstanceError):
        first.tracks[0].confidence = 0.1
    pipeline.tick(FRAME, now=0.3)
    assert first.tracks[0].confidence == pytest.approx(0.6)
    assert pipeline.tracker.tracks[0].confidence == pytest.approx(0.75)


def test_approaching_person_triggers_interrupting_alert() -> None:
    detector = ScriptedDetector(
        [_person(280, 130, 80, 220)], # ~3.5 m
        [_person(235, 25, 170, 430)], # ~1.8 m
    )
    pipeline = _started(detector)
    quiet = pipeline.tick(FRAME, now=0.0)
    assert quiet.events == ()

    result = pipeline.tick(FRAME, now=0.5)
    track = result.tracks[0]
    assert track.consecutive_matches == 2
    assert track.movement_direction == "approaching"
    assert track.risk_level == "critical"
    assert track.proximity_warning
    assert len(result.events) == 1
    assert result.events[0].should_interrupt
    assert result.events[0].severity == "danger"
    assert result.alerts[0].track_id == track.id


def test_motion_analysis_can_be_disabled() -> None:
    detector = ScriptedDetector([_person(280, 130, 80, 220)], [_person(235, 25, 170, 430)])
    pipeline = _started(detector, config=PipelineConfig(enable_motion_analysis=False))
    pipeline.tick(FRAME, now=0.0)
    result = pipeline.tick(FRAME, now=0.5)
    assert result.tracks[0].velocity is None
    assert result.tracks[0].risk_level is None
    assert result.events == ()


def test_focus_and_summary() -> None:
    detector = ScriptedDetector([_person(10, 100, 50, 150), _person(400, 100, 50, 150),
                                 RawDetection(BoundingBox(200, 300, 150, 100), "car", 0.8)])
    pipeline = _started(detector)
    tracks = pipeline.tick(FRAME, now=0.0).tracks
    car = next(t for t in tracks if t.class_label == "car")
    assert pipeline.set_focus(car.id)
    assert pipeline.tracker.tracks[0].id == car.id
    assert pipeline.summary() == "Detected 1 car, 2 persons"


def test_clock_is_used_without_explicit_time() -> None:
    times = iter([10.0, 10.05, 10.3])
    detector = ScriptedDetector([_person(100, 100, 50, 150)])
    pipeline = _started(detector, clock=lambda: next(times))
    pipeline.tick(FRAME)
    pipeline.tick(FRAME)
    pipeline.tick(FRAME)
    assert detector.calls == 2
    assert pipeline.tracker.tracks[0].last_seen_at == 10.3
