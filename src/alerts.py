"""
Decides what to say about the tracked objects, and when.

The generator only produces data (Alert / AnnouncementEvent). Whoever speaks or
draws them is a separate consumer, see LoggingAnnouncer for the simplest one.
"""

import itertools
import logging
from collections import Counter, deque
from typing import Dict, Iterable, NamedTuple, Optional, Tuple

from config import (ALERT_COOLDOWN_MS, ALERT_TYPE, ANNOUNCE_DIRECTION, ANNOUNCE_DISTANCE,
                    APPROACH_ALERT_DISTANCE_M, CRITICAL_ALERT_COOLDOWN_MS, MAX_ALERTS,
                    SUMMARY_INTERVAL_MS)
from models import Alert, AnnouncementEvent, TrackedObject

log = logging.getLogger("alerts")

_DIRECTION_PHRASES = {
    'left': 'on your left',
    'center': 'ahead',
    'right': 'on your right',
}


class AlertKey(NamedTuple):
    """What makes two alerts 'the same' for the cooldown."""
    class_label: str
    direction: str
    movement_direction: Optional[str]


class _Cooldown(NamedTuple):
    fired_at: float
    expires_at: float


class AlertGenerator:
    """
    Turns risk-classified tracks into de-duplicated alerts.

    Per track and tick at most one alert, most urgent first:
        proximity warning > critical risk > high risk > approaching nearby object

    alert_type picks what gets spoken: per-track alerts ("immediate"), a periodic
    overview of everything in view ("summary"), or both.
    """

    def __init__(self, cooldown_ms: float = ALERT_COOLDOWN_MS,
                 critical_cooldown_ms: float = CRITICAL_ALERT_COOLDOWN_MS,
                 max_alerts: int = MAX_ALERTS,
                 approach_distance: float = APPROACH_ALERT_DISTANCE_M,
                 proximity_alerts: bool = True,
                 announce_distance: bool = ANNOUNCE_DISTANCE,
                 announce_direction: bool = ANNOUNCE_DIRECTION,
                 alert_type: str = ALERT_TYPE,
                 summary_interval_ms: float = SUMMARY_INTERVAL_MS):
        """
        - cooldown_ms: a key that just fired stays quiet this long
        - critical_cooldown_ms: shorter quiet period for interrupting alerts
        - max_alerts: size of the recent alert log
        - approach_distance: approaching objects closer than this get an info alert
        - proximity_alerts: turn the proximity-warning alerts on/off
        - announce_distance / announce_direction: what goes into the message
        - alert_type: "immediate", "summary" or "both"
        - summary_interval_ms: time between two overview announcements
        """
        self.cooldown = cooldown_ms / 1000.0
        self.critical_cooldown = critical_cooldown_ms / 1000.0
        self.approach_distance = approach_distance
        self.proximity_alerts = proximity_alerts
        self.announce_distance = announce_distance
        self.announce_direction = announce_direction
        self.alert_type = alert_type
        self.summary_interval = summary_interval_ms / 1000.0
        self._recent = deque(maxlen=max_alerts)
        self._cooldowns: Dict[AlertKey, _Cooldown] = {}
        self._ids = itertools.count(1)
        self._last_summary_at: Optional[float] = None

    @classmethod
    def from_config(cls, config) -> "AlertGenerator":
        return cls(cooldown_ms=config.alert_cooldown_ms,
                   critical_cooldown_ms=config.critical_alert_cooldown_ms,
                   max_alerts=config.max_alerts,
                   approach_distance=config.approach_alert_distance_m,
                   proximity_alerts=config.enable_proximity_alerts,
                   announce_distance=config.announce_distance,
                   announce_direction=config.announce_direction,
                   alert_type=config.alert_type,
                   summary_interval_ms=config.summary_interval_ms)

    @property
    def recent(self) -> Tuple[Alert, ...]:
        """Most recent alerts, newest first."""
        return tuple(self._recent)

    def process(self, tracks: Iterable[TrackedObject], now: float) -> Tuple[AnnouncementEvent, ...]:
        """
        Look at the tracks of this tick and emit whatever is worth saying

        - tracks: snapshot from the tracker, in priority order
        - now: timestamp in seconds

        returns: announcement events, in the order they fired
        """
        tracks = tuple(tracks)
        self._prune(now)
        events = []
        if self.alert_type != 'summary':
            events.extend(self._track_alerts(tracks, now))
        if self.alert_type != 'immediate' and self._summary_due(now):
            self._last_summary_at = now
            events.append(AnnouncementEvent(self.summary_message(tracks), 'info'))
        return tuple(events)

    def _track_alerts(self, tracks: Tuple[TrackedObject, ...], now: float):
        events = []
        for track in tracks:
            # Tracks we only remember (not seen this frame) don't get new alerts
            if track.missed_frames:
                continue
            candidate = self.evaluate(track)
            if candidate is None:
                continue
            severity, message, urgent = candidate
            key = AlertKey(track.class_label, track.direction, track.movement_direction)
            if self._cooling_down(key, now, urgent):
                log.debug(f"suppressed repeat alert for {key}")
                continue

            window = self.critical_cooldown if urgent else self.cooldown
            self._cooldowns[key] = _Cooldown(now, now + window)
            alert = Alert(id=f"alert-{next(self._ids)}", message=message, severity=severity,
                          timestamp=now, class_label=track.class_label,
                          direction=track.direction, track_id=track.id)
            self._recent.appendleft(alert)
            events.append(AnnouncementEvent(message, severity, should_interrupt=urgent))
        return tuple(events)

    def evaluate(self, track: TrackedObject) -> Optional[Tuple[str, str, bool]]:
        """
        The one alert this track deserves right now, ignoring cooldowns

        returns: (severity, message, should_interrupt) or None
        """
        what = self.describe(track)
        if self.proximity_alerts and track.proximity_warning:
            return 'danger', f"Stop! {what} very close", True
        if track.risk_level == 'critical':
            speed = track.velocity or 0.0
            return 'danger', f"Danger! {what} approaching fast at {speed:.1f} meters per second", True
        if track.risk_level == 'high':
            return 'warning', f"Caution, {what} moving quickly", False
        if track.movement_direction == 'approaching' and track.distance < self.approach_distance:
            return 'info', f"{what} approaching", False
        return None

    def describe(self, track: TrackedObject) -> str:
        parts = [track.class_label.capitalize()]
        if self.announce_direction:
            parts.append(_DIRECTION_PHRASES.get(track.direction, track.direction))
        if self.announce_distance:
            parts.append(f"at {track.distance:.1f} meters")
        return " ".join(parts)

    def summary_message(self, tracks: Iterable[TrackedObject]) -> str:
        """
        One sentence about everything in view, e.g. "Detected 2 persons, 1 car"
        """
        counts = Counter(t.class_label for t in tracks)
        if not counts:
            return "No objects detected"
        summary = ", ".join(f"{n} {label}{'s' if n > 1 else ''}" for label, n in counts.items())
        return f"Detected {summary}"

    def reset(self):
        self._recent.clear()
        self._cooldowns.clear()
        self._last_summary_at = None

    def _cooling_down(self, key: AlertKey, now: float, urgent: bool) -> bool:
        entry = self._cooldowns.get(key)
        if entry is None:
            return False
        expires_at = entry.expires_at
        if urgent:
            # Urgent alerts only wait out the short window
            expires_at = min(expires_at, entry.fired_at + self.critical_cooldown)
        return now < expires_at

    def _summary_due(self, now: float) -> bool:
        if self._last_summary_at is None:
            return True
        return now - self._last_summary_at >= self.summary_interval

    def _prune(self, now: float):
        expired = [k for k, c in self._cooldowns.items() if now >= c.expires_at]
        for k in expired:
            del self._cooldowns[k]


class LoggingAnnouncer:
    """
    Stand-in for the speech engine: writes every announcement to the log.
    Keeps the last spoken event so callers can check what would be playing.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.log = logger or logging.getLogger("announcer")
        self.last_event: Optional[AnnouncementEvent] = None
        self.interruptions = 0

    def announce(self, event: AnnouncementEvent) -> None:
        if event.should_interrupt and self.last_event is not None:
            self.interruptions += 1
        level = logging.WARNING if event.severity == 'danger' else logging.INFO
        self.log.log(level, "[%s] %s", event.severity.upper(), event.message)
        self.last_event = event
