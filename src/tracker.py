"""
IoU-based tracker with confidence, stability and grace-window handling.

Keeps track of objects already detected in previous frames.
It assigns a unique ID to each object and keeps it while the detector keeps
finding a box that overlaps enough with the last known one. Objects that are
missed for a frame or two are kept around (with a fading confidence) so a
single dropped detection doesn't create a new identity.
"""

import itertools
import logging
from dataclasses import replace
from typing import Dict, Optional, Sequence, Tuple

from config import (CONFIDENCE_DECAY_RATE, CONFIDENCE_INCREMENT, DISTANCE_TOLERANCE,
                    INITIAL_CONFIDENCE, IOU_MATCH_THRESHOLD, LONG_LIVED_GRACE_WINDOW_MS,
                    LONG_LIVED_MATCH_COUNT, SECONDARY_IOU_THRESHOLD, STABILITY_FRAME_COUNT,
                    STABLE_DECAY_RATE, TRACK_GRACE_WINDOW_MS)
from models import AnnotatedDetection, BoundingBox, TrackedObject
from motion import MotionAnalyzer

log = logging.getLogger("tracker")


def iou(boxA: BoundingBox, boxB: BoundingBox) -> float:
    """
    Calculate Intersection over Union (IoU) between two bounding boxes

    returns a number between 0 and 1
        - 0 for no overlap
        - 1 for perfect overlap
    """

    # Coordinates of intersection box
    xA = max(boxA.x, boxB.x)
    yA = max(boxA.y, boxB.y)
    xB = min(boxA.right, boxB.right)
    yB = min(boxA.bottom, boxB.bottom)

    # Width and height of intersection
    interW = max(0.0, xB - xA)
    interH = max(0.0, yB - yA)
    interArea = interW * interH

    # IoU formula
    denom = float(boxA.area + boxB.area - interArea)
    if denom <= 0:
        return 0.0
    return interArea / denom


def render_order(track: TrackedObject) -> Tuple:
    """Sort key: focused first, then stable, then most confident, then most recently seen."""
    return (not track.focused, not track.stable, -track.confidence, -track.last_seen_at)


class ObjectTracker:
    """
    Tracks objects over time using IoU (+ distance for re-acquisition).
    Each object gets a unique ID that survives short detection gaps.

    The live set is a dict of frozen TrackedObjects that gets replaced as a
    whole on every update, so snapshots handed out earlier never change.
    """

    def __init__(self, iou_threshold: float = IOU_MATCH_THRESHOLD,
                 secondary_iou_threshold: float = SECONDARY_IOU_THRESHOLD,
                 distance_tolerance: float = DISTANCE_TOLERANCE,
                 initial_confidence: float = INITIAL_CONFIDENCE,
                 confidence_increment: float = CONFIDENCE_INCREMENT,
                 decay_rate: float = CONFIDENCE_DECAY_RATE,
                 stable_decay_rate: float = STABLE_DECAY_RATE,
                 stability_frames: int = STABILITY_FRAME_COUNT,
                 grace_window_ms: float = TRACK_GRACE_WINDOW_MS,
                 long_lived_grace_window_ms: float = LONG_LIVED_GRACE_WINDOW_MS,
                 long_lived_matches: int = LONG_LIVED_MATCH_COUNT,
                 motion: Optional[MotionAnalyzer] = None):
        """
        - iou_threshold: overlap needed to match a detection to a track
        - secondary_iou_threshold + distance_tolerance: weaker overlap still
          matches when the estimated distance stayed about the same
        - initial_confidence / confidence_increment / decay_rate / stable_decay_rate:
          how confidence moves on match and miss
        - stability_frames: matches in a row before a track is stable
        - grace_window_ms / long_lived_grace_window_ms / long_lived_matches: how
          long a missing object is kept around
        - motion: MotionAnalyzer applied to every matched track, None to skip
        """
        self.iou_threshold = iou_threshold
        self.secondary_iou_threshold = secondary_iou_threshold
        self.distance_tolerance = distance_tolerance
        self.initial_confidence = initial_confidence
        self.confidence_increment = confidence_increment
        self.decay_rate = decay_rate
        self.stable_decay_rate = stable_decay_rate
        self.stability_frames = stability_frames
        self.grace_window = grace_window_ms / 1000.0
        self.long_lived_grace_window = long_lived_grace_window_ms / 1000.0
        self.long_lived_matches = long_lived_matches
        self.motion = motion
        self._ids = itertools.count(1) # counter for new object IDs
        self._tracks: Dict[int, TrackedObject] = {} # stores all tracked objects
        self._snapshot: Tuple[TrackedObject, ...] = ()

    @classmethod
    def from_config(cls, config, motion: Optional[MotionAnalyzer] = None) -> "ObjectTracker":
        return cls(iou_threshold=config.iou_match_threshold,
                   secondary_iou_threshold=config.secondary_iou_threshold,
                   distance_tolerance=config.distance_tolerance,
                   initial_confidence=config.initial_confidence,
                   confidence_increment=config.confidence_increment,
                   decay_rate=config.confidence_decay_rate,
                   stable_decay_rate=config.stable_decay_rate,
                   stability_frames=config.stability_frame_count,
                   grace_window_ms=config.track_grace_window_ms,
                   long_lived_grace_window_ms=config.long_lived_grace_window_ms,
                   long_lived_matches=config.long_lived_match_count,
                   motion=motion)

    @property
    def tracks(self) -> Tuple[TrackedObject, ...]:
        """Current live set in render/announce order."""
        return self._snapshot

    def update(self, detections: Sequence[AnnotatedDetection], now: float) -> Tuple[TrackedObject, ...]:
        """
        Match new detections with existing tracks

        - detections: annotated detections for the current frame (boxes already validated)
        - now: timestamp of the frame in seconds

        returns: the new live set, ordered by render_order
        """
        unclaimed = dict(self._tracks) # Old tracks not matched yet
        updated: Dict[int, TrackedObject] = {}

        # First come first served: a track can be claimed by one detection only
        for det in detections:
            match = self._best_match(det, unclaimed.values())
            if match is None:
                track = self._spawn(det, now)
                log.debug(f"new track {track.id} ({track.class_label} at {track.distance:.1f}m)")
            else:
                del unclaimed[match.id]
                track = self._refresh(match, det, now)
            updated[track.id] = track

        # Tracks nobody claimed fade out, or are removed
        for tid, track in unclaimed.items():
            decayed = self._decay(track, now)
            if decayed is None:
                log.debug(f"dropped track {tid} ({track.class_label})")
            else:
                updated[tid] = decayed

        self._publish(updated)
        return self._snapshot

    def expire(self, now: float) -> Tuple[TrackedObject, ...]:
        """
        Drop tracks whose grace window elapsed, without touching anything else.
        Called on frames where no fresh detections arrived.
        """
        alive = {tid: t for tid, t in self._tracks.items() if not self._expired(t, now)}
        if len(alive) != len(self._tracks):
            self._publish(alive)
        return self._snapshot

    def set_focus(self, track_id: int, focused: bool = True) -> bool:
        """
        Mark a track as focused (e.g. the user tapped it). Returns False if the id is gone.
        """
        track = self._tracks.get(track_id)
        if track is None:
            return False
        updated = dict(self._tracks)
        updated[track_id] = replace(track, focused=focused)
        self._publish(updated)
        return True

    def reset(self):
        """Forget every track. IDs keep counting so old ones are never reused."""
        self._publish({})

    def _publish(self, tracks: Dict[int, TrackedObject]):
        self._tracks = tracks
        self._snapshot = tuple(sorted(tracks.values(), key=render_order))

    def _best_match(self, det: AnnotatedDetection, candidates) -> Optional[TrackedObject]:
        """
        Highest IoU among eligible same-class tracks, ties go to the smallest distance change.
        """
        best = None
        best_key = None
        for track in candidates:
            if track.class_label != det.class_label:
                continue
            overlap = iou(det.bbox, track.bbox)
            delta = abs(track.distance - det.distance)
            eligible = overlap > self.iou_threshold or (
                overlap > self.secondary_iou_threshold and delta < self.distance_tolerance)
            if not eligible:
                continue
            key = (overlap, -delta)
            if best_key is None or key > best_key:
                best, best_key = track, key
        return best

    def _spawn(self, det: AnnotatedDetection, now: float) -> TrackedObject:
        track = TrackedObject(
            id=next(self._ids),
            class_label=det.class_label,
            bbox=det.bbox,
            score=det.score,
            distance=det.distance,
            direction=det.direction,
            confidence=self.initial_confidence,
            last_seen_at=now,
            consecutive_matches=1,
            stable=self.stability_frames <= 1,
        )
        if self.motion is not None:
            track = self.motion.apply(track)
        return track

    def _refresh(self, track: TrackedObject, det: AnnotatedDetection, now: float) -> TrackedObject:
        matches = track.consecutive_matches + 1
        refreshed = replace(
            track,
            bbox=det.bbox,
            score=det.score,
            distance=det.distance,
            direction=det.direction,
            confidence=min(1.0, track.confidence + self.confidence_increment),
            last_seen_at=now,
            consecutive_matches=matches,
            stable=matches >= self.stability_frames,
            missed_frames=0,
            prior_bbox=track.bbox,
            prior_distance=track.distance,
            prior_seen_at=track.last_seen_at,
        )
        if self.motion is not None:
            refreshed = self.motion.apply(refreshed)
        return refreshed

    def _decay(self, track: TrackedObject, now: float) -> Optional[TrackedObject]:
        """Fade an unmatched track, or return None if it should go away."""
        rate = self.stable_decay_rate if track.stable else self.decay_rate
        # rounded so repeated float subtraction really reaches 0
        confidence = max(0.0, round(track.confidence - rate, 9))
        if confidence <= 0 or self._expired(track, now):
            return None
        return replace(track, confidence=confidence, missed_frames=track.missed_frames + 1)

    def _expired(self, track: TrackedObject, now: float) -> bool:
        window = self.grace_window
        if track.consecutive_matches >= self.long_lived_matches:
            window = self.long_lived_grace_window
        return now - track.last_seen_at > window
