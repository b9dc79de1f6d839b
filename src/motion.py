"""
Velocity, movement direction and risk for tracked objects.

Works on two samples of the same track (previous match and current match):
    - sideways movement comes from the box center moving in the image,
      converted to meters with a rough pixel-to-meter ratio at that distance
    - radial movement comes from the change of the estimated distance
"""

import math
from dataclasses import replace
from typing import Dict, NamedTuple, Optional, Sequence, Tuple

from config import (LATERAL_THRESHOLD_M, MOVEMENT_THRESHOLD_M, PROXIMITY_THRESHOLDS,
                    RISK_THRESHOLDS)
from models import BoundingBox, TrackedObject


class MotionEstimate(NamedTuple):
    velocity: float # m/s
    movement_direction: Optional[str] # None without a previous sample
    risk_level: str
    proximity_warning: bool


class MotionAnalyzer:
    """
    Turns consecutive (box, distance) samples into velocity / direction / risk.
    """

    def __init__(self, movement_threshold: float = MOVEMENT_THRESHOLD_M,
                 lateral_threshold: float = LATERAL_THRESHOLD_M,
                 proximity_thresholds: Optional[Dict[str, float]] = None,
                 risk_thresholds: Sequence[Tuple[str, float, float]] = RISK_THRESHOLDS):
        """
        - movement_threshold: distance change (m) that counts as approaching/receding
        - lateral_threshold: sideways displacement (m) that counts as lateral movement
        - proximity_thresholds: see config.PROXIMITY_THRESHOLDS
        - risk_thresholds: (level, max distance, min velocity), first hit wins
        """
        self.movement_threshold = movement_threshold
        self.lateral_threshold = lateral_threshold
        self.proximity = dict(PROXIMITY_THRESHOLDS if proximity_thresholds is None else proximity_thresholds)
        self.risk_thresholds = tuple(risk_thresholds)

    @classmethod
    def from_config(cls, config) -> "MotionAnalyzer":
        return cls(movement_threshold=config.movement_threshold_m,
                   lateral_threshold=config.lateral_threshold_m,
                   proximity_thresholds=config.proximity_thresholds,
                   risk_thresholds=config.risk_thresholds)

    def estimate(self, prior_bbox: Optional[BoundingBox], prior_distance: Optional[float],
                 bbox: BoundingBox, distance: float, elapsed: float) -> MotionEstimate:
        """
        Compare two samples of one object

        - prior_bbox / prior_distance: previous match, None for a brand new track
        - bbox / distance: current match
        - elapsed: seconds between the two samples

        returns: MotionEstimate
        """
        if prior_bbox is None or prior_distance is None:
            # Nothing to compare against, only closeness matters
            return MotionEstimate(0.0, None, self.risk_level(distance, 0.0),
                                  self.proximity_warning(distance, 0.0, None))

        # Pixel displacement of the box center
        (px, py), (cx, cy) = prior_bbox.center, bbox.center
        pixel_shift = math.hypot(cx - px, cy - py)

        # Approximate meters per pixel at the current distance
        meters_per_pixel = distance / max(bbox.width, bbox.height)
        lateral = pixel_shift * meters_per_pixel
        radial = distance - prior_distance

        velocity = 0.0
        if elapsed > 0:
            velocity = math.hypot(lateral, radial) / elapsed

        movement = self.movement_direction(radial, lateral)
        return MotionEstimate(velocity, movement, self.risk_level(distance, velocity),
                              self.proximity_warning(distance, velocity, movement))

    def movement_direction(self, radial: float, lateral: float) -> str:
        """
        - radial: current distance - previous distance (negative = getting closer)
        - lateral: sideways displacement in meters
        """
        if radial <= -self.movement_threshold:
            return 'approaching'
        if radial >= self.movement_threshold:
            return 'receding'
        if lateral >= self.lateral_threshold:
            return 'lateral'
        return 'stationary'

    def risk_level(self, distance: float, velocity: float) -> str:
        for level, max_distance, min_velocity in self.risk_thresholds:
            if distance < max_distance and velocity > min_velocity:
                return level
        return 'low'

    def proximity_warning(self, distance: float, velocity: float, movement: Optional[str]) -> bool:
        p = self.proximity
        if distance < p['immediate_m']:
            return True
        if distance < p['approach_m'] and movement == 'approaching' and velocity > p['approach_velocity']:
            return True
        return distance < p['fast_m'] and velocity > p['fast_velocity']

    def apply(self, track: TrackedObject) -> TrackedObject:
        """
        Return a copy of `track` with the motion fields filled in from its prior sample.
        """
        elapsed = 0.0
        if track.prior_seen_at is not None:
            elapsed = track.last_seen_at - track.prior_seen_at
        est = self.estimate(track.prior_bbox, track.prior_distance, track.bbox, track.distance, elapsed)
        return replace(track, velocity=est.velocity, movement_direction=est.movement_direction,
                       risk_level=est.risk_level, proximity_warning=est.proximity_warning)
