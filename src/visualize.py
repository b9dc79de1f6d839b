"""
Helpers to draw tracked objects and recent alerts on a frame.
"""
from typing import Sequence

import cv2
import numpy as np

from models import Alert, TrackedObject

# BGR colors
RED = (0, 0, 255)
YELLOW = (0, 255, 255)
GREEN = (0, 255, 0)
WHITE = (255, 255, 255)

_SEVERITY_COLORS = {'danger': RED, 'warning': (0, 165, 255), 'info': WHITE}


def distance_color(distance: float):
    """
    Red if closer than 3 m, yellow up to 5 m, green beyond that
    """
    if distance < 3:
        return RED
    if distance <= 5:
        return YELLOW
    return GREEN


def track_label(track: TrackedObject) -> str:
    label = f"{track.class_label} id{track.id} d={track.distance:.1f}m"
    if track.velocity is not None:
        label += f" v={track.velocity:.1f}" # speed in m/s
    if track.risk_level and track.risk_level != 'low':
        label += f" {track.risk_level}"
    return label


def draw_tracks(frame: np.ndarray, tracks: Sequence[TrackedObject]) -> np.ndarray:
    """
    Overlay tracked objects on a color frame.

    - tracks: snapshot from the pipeline, drawn back to front so the most
      important one ends up on top

    Returns an annotated copy, the input frame is not changed
    """
    out = frame.copy()

    for track in reversed(tracks):
        x1, y1, x2, y2 = map(int, track.bbox.to_xyxy())
        col = distance_color(track.distance)

        # Thicker box for stable/focused tracks
        thickness = 3 if (track.stable or track.focused) else 1
        cv2.rectangle(out, (x1, y1), (x2, y2), col, thickness)

        if track.proximity_warning:
            # Extra red frame around anything that is too close
            cv2.rectangle(out, (x1 - 4, y1 - 4), (x2 + 4, y2 + 4), RED, 2)

        # Draw text above the bounding box
        cv2.putText(out, track_label(track), (x1, max(12, y1 - 6)),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.45, col, 1)

    return out


def draw_alerts(frame: np.ndarray, alerts: Sequence[Alert], origin=(10, 30)) -> np.ndarray:
    """Write the recent alert log in the top-left corner (in place)."""
    x, y = origin
    for alert in alerts:
        cv2.putText(frame, alert.message, (x, y), cv2.FONT_HERSHEY_SIMPLEX, 0.6,
                    _SEVERITY_COLORS.get(alert.severity, WHITE), 2)
        y += 24
    return frame
