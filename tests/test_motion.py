import pytest

from models import BoundingBox, TrackedObject
from motion import MotionAnalyzer

NEAR_BOX = BoundingBox(245, 15, 150, 450)
FAR_BOX = BoundingBox(270, 90, 100, 300)


def test_fast_approach_is_critical_with_proximity_warning() -> None:
    est = MotionAnalyzer().estimate(FAR_BOX, 4.0, NEAR_BOX, 1.8, 0.5)
    assert est.movement_direction == "approaching"
    assert est.velocity == pytest.approx(4.4)
    assert est.risk_level == "critical"
    assert est.proximity_warning is True


def test_no_prior_sample_means_no_velocity() -> None:
    est = MotionAnalyzer().estimate(None, None, NEAR_BOX, 1.2, 0.5)
    assert est.velocity == 0.0
    assert est.movement_direction is None
    assert est.risk_level == "low"
    # close enough to warn even without movement
    assert est.proximity_warning is True


def test_zero_elapsed_time_means_zero_velocity() -> None:
    est = MotionAnalyzer().estimate(FAR_BOX, 4.0, NEAR_BOX, 1.8, 0.0)
    assert est.velocity == 0.0
    assert est.movement_direction == "approaching"


def test_stationary_object() -> None:
    est = MotionAnalyzer().estimate(FAR_BOX, 4.0, FAR_BOX, 4.2, 0.5)
    assert est.movement_direction == "stationary"
    assert est.risk_level == "low"
    assert est.proximity_warning is False


def test_receding_object() -> None:
    est = MotionAnalyzer().estimate(NEAR_BOX, 2.0, FAR_BOX, 3.0, 1.0)
    assert est.movement_direction == "receding"


def test_sideways_movement_is_lateral() -> None:
    before = BoundingBox(100, 100, 100, 100)
    after = BoundingBox(200, 100, 100, 100)
    # 100 px at 3 m with a 100 px box -> 3 m sideways in one second
    est = MotionAnalyzer().estimate(before, 3.0, after, 3.0, 1.0)
    assert est.movement_direction == "lateral"
    assert est.velocity == pytest.approx(3.0)
    assert est.risk_level == "medium"
    assert est.proximity_warning is False


@pytest.mark.parametrize("distance, velocity, level", [
    (1.9, 2.1, "critical"),
    (1.9, 1.8, "high"),
    (2.5, 1.6, "high"),
    (4.0, 1.2, "medium"),
    (4.0, 0.5, "low"),
    (6.0, 10.0, "low"),
])
def test_risk_levels(distance: float, velocity: float, level: str) -> None:
    assert MotionAnalyzer().risk_level(distance, velocity) == level


@pytest.mark.parametrize("distance, velocity, movement, expected", [
    (1.4, 0.0, None, True),
    (2.4, 1.1, "approaching", True),
    (2.4, 1.1, "lateral", False),
    (2.9, 2.1, "receding", True),
    (2.9, 1.9, "receding", False),
    (3.5, 5.0, "approaching", False),
])
def test_proximity_warning(distance: float, velocity: float, movement, expected: bool) -> None:
    assert MotionAnalyzer().proximity_warning(distance, velocity, movement) is expected


def test_custom_thresholds() -> None:
    analyzer = MotionAnalyzer(proximity_thresholds={
        'immediate_m': 3.0, 'approach_m': 2.5, 'approach_velocity': 1.0,
        'fast_m': 3.0, 'fast_velocity': 2.0,
    })
    assert analyzer.proximity_warning(2.9, 0.0, None) is True


def test_apply_fills_motion_fields_from_prior_sample() -> None:
    track = TrackedObject(
        id=1, class_label="person", bbox=NEAR_BOX, score=0.9, distance=1.8, direction="center",
        confidence=0.75, last_seen_at=10.5, consecutive_matches=2, stable=True,
        prior_bbox=FAR_BOX, prior_distance=4.0, prior_seen_at=10.0,
    )
    updated = MotionAnalyzer().apply(track)
    assert updated is not track
    assert track.velocity is None
    assert updated.velocity == pytest.approx(4.4)
    assert updated.risk_level == "critical"
