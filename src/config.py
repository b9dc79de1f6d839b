"""
Configuration and thresholds (metric system: meters, m/s, milliseconds)
------------------------------------------------------------------------
These values are tuned for a typical phone camera running a COCO detector,
where distance is only estimated from the size of the bounding box.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Tuple

# --- Detection ---
MIN_DETECTION_SCORE = 0.3 # Ignore raw detections below 30% confidence
INFERENCE_INTERVAL_MS = 200 # Run the (expensive) model at most every 200 ms

# --- Distance estimation ---
FOCAL_LENGTH = 650.0 # Focal length in pixels, roughly a mobile sensor at 640 px width
DISTANCE_CORRECTION = 0.7 # Phone cameras overestimate distance, scale it down
MIN_DISTANCE_M = 0.3 # Clamp estimates into [0.3, 50] meters
MAX_DISTANCE_M = 50.0

# --- Direction zones ---
LEFT_ZONE_RATIO = 0.33 # Box center left of 33% of the width -> 'left'
RIGHT_ZONE_RATIO = 0.67 # Box center right of 67% of the width -> 'right'

# --- Tracking ---
IOU_MATCH_THRESHOLD = 0.25 # Minimum IoU needed to consider a detection the same object as a previous one
SECONDARY_IOU_THRESHOLD = 0.15 # Weaker overlap is still ok ...
DISTANCE_TOLERANCE = 2.0 # ... if the estimated distance barely changed (meters)
INITIAL_CONFIDENCE = 0.6 # Confidence of a brand new track
CONFIDENCE_INCREMENT = 0.15 # Added on every match, capped at 1.0
CONFIDENCE_DECAY_RATE = 0.1 # Removed on every frame without a match
STABLE_DECAY_RATE = 0.05 # Stable tracks fade out slower
STABILITY_FRAME_COUNT = 2 # Matches needed before a track counts as stable
TRACK_GRACE_WINDOW_MS = 1500 # Drop a track not seen for 1.5 s
LONG_LIVED_GRACE_WINDOW_MS = 2500 # ... or 2.5 s if it has been around for a while
LONG_LIVED_MATCH_COUNT = 5

# --- Motion / safety thresholds ---
# Distances in meters, velocities in meters/second.
MOVEMENT_THRESHOLD_M = 0.5 # Distance change needed to call it approaching/receding
LATERAL_THRESHOLD_M = 0.5 # Sideways movement needed to call it lateral
PROXIMITY_THRESHOLDS = {
    'immediate_m': 1.5, # Anything this close is a warning, moving or not
    'approach_m': 2.5, # Approaching inside 2.5 m ...
    'approach_velocity': 1.0, # ... faster than 1 m/s
    'fast_m': 3.0, # Anything inside 3 m ...
    'fast_velocity': 2.0, # ... moving faster than 2 m/s
}
# (level, max distance, min velocity) checked top to bottom
RISK_THRESHOLDS = (
    ('critical', 2.0, 2.0),
    ('high', 3.0, 1.5),
    ('medium', 5.0, 1.0),
)
ENABLE_MOTION_ANALYSIS = True
ENABLE_PROXIMITY_ALERTS = True

# --- Alerts ---
ALERT_COOLDOWN_MS = 4000 # Same (class, direction, movement) is not repeated within 4 s
CRITICAL_ALERT_COOLDOWN_MS = 1000 # Urgent alerts may repeat sooner
APPROACH_ALERT_DISTANCE_M = 5.0 # Approaching objects closer than this get an info alert
MAX_ALERTS = 5 # Size of the recent alert log
ANNOUNCE_DISTANCE = True # Say "at 2.5 meters"
ANNOUNCE_DIRECTION = True # Say "on your left"
ALERT_TYPE = "immediate" # immediate: one alert per track, summary: periodic overview only, both
ALERT_TYPES = ("immediate", "summary", "both")
SUMMARY_INTERVAL_MS = 10000 # How often the overview "Detected 2 persons, 1 car" is spoken

# --- Logging / Output ---
LOG_CSV = "alerts.csv" # File to store alerts with timestamps

# camelCase names used by the settings screen of the mobile app
_OPTION_ALIASES = {
    'minDetectionScore': 'min_detection_score',
    'iouMatchThreshold': 'iou_match_threshold',
    'secondaryIouThreshold': 'secondary_iou_threshold',
    'distanceTolerance': 'distance_tolerance',
    'confidenceIncrement': 'confidence_increment',
    'initialConfidence': 'initial_confidence',
    'confidenceDecayRate': 'confidence_decay_rate',
    'stableDecayRate': 'stable_decay_rate',
    'stabilityFrameCount': 'stability_frame_count',
    'trackGraceWindowMs': 'track_grace_window_ms',
    'longLivedGraceWindowMs': 'long_lived_grace_window_ms',
    'longLivedMatchCount': 'long_lived_match_count',
    'minDistanceM': 'min_distance_m',
    'maxDistanceM': 'max_distance_m',
    'focalLength': 'focal_length',
    'distanceCorrection': 'distance_correction',
    'alertCooldownMs': 'alert_cooldown_ms',
    'criticalAlertCooldownMs': 'critical_alert_cooldown_ms',
    'maxAlerts': 'max_alerts',
    'proximityThresholds': 'proximity_thresholds',
    'riskThresholds': 'risk_thresholds',
    'enableMotionAnalysis': 'enable_motion_analysis',
    'enableProximityAlerts': 'enable_proximity_alerts',
    'inferenceIntervalMs': 'inference_interval_ms',
    'announceDistance': 'announce_distance',
    'announceDirection': 'announce_direction',
    'alertType': 'alert_type',
    'summaryIntervalMs': 'summary_interval_ms',
}


@dataclass(frozen=True)
class PipelineConfig:
    """
    All tunables of the pipeline in one place.
    Defaults are the module constants above, so `PipelineConfig()` is the tuned setup.
    """
    min_detection_score: float = MIN_DETECTION_SCORE
    inference_interval_ms: float = INFERENCE_INTERVAL_MS
    focal_length: float = FOCAL_LENGTH
    distance_correction: float = DISTANCE_CORRECTION
    min_distance_m: float = MIN_DISTANCE_M
    max_distance_m: float = MAX_DISTANCE_M
    left_zone_ratio: float = LEFT_ZONE_RATIO
    right_zone_ratio: float = RIGHT_ZONE_RATIO
    iou_match_threshold: float = IOU_MATCH_THRESHOLD
    secondary_iou_threshold: float = SECONDARY_IOU_THRESHOLD
    distance_tolerance: float = DISTANCE_TOLERANCE
    initial_confidence: float = INITIAL_CONFIDENCE
    confidence_increment: float = CONFIDENCE_INCREMENT
    confidence_decay_rate: float = CONFIDENCE_DECAY_RATE
    stable_decay_rate: float = STABLE_DECAY_RATE
    stability_frame_count: int = STABILITY_FRAME_COUNT
    track_grace_window_ms: float = TRACK_GRACE_WINDOW_MS
    long_lived_grace_window_ms: float = LONG_LIVED_GRACE_WINDOW_MS
    long_lived_match_count: int = LONG_LIVED_MATCH_COUNT
    movement_threshold_m: float = MOVEMENT_THRESHOLD_M
    lateral_threshold_m: float = LATERAL_THRESHOLD_M
    proximity_thresholds: Dict[str, float] = field(default_factory=lambda: dict(PROXIMITY_THRESHOLDS))
    risk_thresholds: Tuple[Tuple[str, float, float], ...] = RISK_THRESHOLDS
    enable_motion_analysis: bool = ENABLE_MOTION_ANALYSIS
    enable_proximity_alerts: bool = ENABLE_PROXIMITY_ALERTS
    alert_cooldown_ms: float = ALERT_COOLDOWN_MS
    critical_alert_cooldown_ms: float = CRITICAL_ALERT_COOLDOWN_MS
    approach_alert_distance_m: float = APPROACH_ALERT_DISTANCE_M
    max_alerts: int = MAX_ALERTS
    announce_distance: bool = ANNOUNCE_DISTANCE
    announce_direction: bool = ANNOUNCE_DIRECTION
    alert_type: str = ALERT_TYPE
    summary_interval_ms: float = SUMMARY_INTERVAL_MS

    def __post_init__(self):
        if not 0.0 <= self.min_detection_score <= 1.0:
            raise ValueError(f"min_detection_score must be in [0, 1], got {self.min_detection_score}")
        if self.min_distance_m <= 0 or self.max_distance_m <= self.min_distance_m:
            raise ValueError(
                f"invalid distance range [{self.min_distance_m}, {self.max_distance_m}]")
        if not 0.0 < self.initial_confidence <= 1.0:
            raise ValueError(f"initial_confidence must be in (0, 1], got {self.initial_confidence}")
        if self.stability_frame_count < 1:
            raise ValueError("stability_frame_count must be at least 1")
        if self.max_alerts < 1:
            raise ValueError("max_alerts must be at least 1")
        if self.alert_type not in ALERT_TYPES:
            raise ValueError(f"alert_type must be one of {ALERT_TYPES}, got {self.alert_type!r}")
        if self.summary_interval_ms <= 0:
            raise ValueError("summary_interval_ms must be positive")
        missing = set(PROXIMITY_THRESHOLDS) - set(self.proximity_thresholds)
        if missing:
            raise ValueError(f"proximity_thresholds is missing {sorted(missing)}")

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "PipelineConfig":
        """
        Build a config from user settings (e.g. a loaded JSON file).

        - options: keys in snake_case or the app's camelCase names, unknown keys are an error
        - proximity_thresholds is merged over the defaults so a partial dict is fine
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"unknown config option: {key}")
            kwargs[name] = value

        if 'proximity_thresholds' in kwargs:
            merged = dict(PROXIMITY_THRESHOLDS)
            merged.update(kwargs['proximity_thresholds'])
            kwargs['proximity_thresholds'] = merged
        if 'risk_thresholds' in kwargs:
            kwargs['risk_thresholds'] = tuple(tuple(r) for r in kwargs['risk_thresholds'])
        return cls(**kwargs)
