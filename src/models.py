"""
Data types shared by the pipeline stages.

Everything here is immutable. The tracker never edits a TrackedObject in place,
it builds a new one with dataclasses.replace, so whatever the renderer or the
announcer holds on to can't change under its feet.
"""

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class BoundingBox:
    """
    Box in pixels: top-left corner plus size (x, y, width, height)
    """
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, xyxy) -> "BoundingBox":
        """Build from [x1, y1, x2, y2] (what YOLO gives us)"""
        x1, y1, x2, y2 = (float(v) for v in xyxy)
        return cls(x1, y1, x2 - x1, y2 - y1)

    def to_xyxy(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def is_within(self, frame_width: float, frame_height: float) -> bool:
        """
        True for a usable box: positive size and fully inside the frame.
        Anything else is detector garbage and never reaches the tracker.
        """
        if self.width <= 0 or self.height <= 0:
            return False
        if self.x < 0 or self.y < 0:
            return False
        return self.right <= frame_width and self.bottom <= frame_height


@dataclass(frozen=True)
class RawDetection:
    bbox: BoundingBox
    class_label: str
    score: float


@dataclass(frozen=True)
class AnnotatedDetection:
    """A raw detection plus estimated distance (meters) and left/center/right zone."""
    bbox: BoundingBox
    class_label: str
    score: float
    distance: float
    direction: str


@dataclass(frozen=True)
class TrackedObject:
    """
    One physical object followed across frames.

    - confidence: 0..1, grows on matches and decays while the object is missing
    - consecutive_matches / stable: how many frames in a row it was matched
    - missed_frames: 0 when matched this frame, counts up while decaying
    - prior_*: geometry from the previous match, used for velocity
    - velocity, movement_direction, risk_level: filled in by MotionAnalyzer
    """
    id: int
    class_label: str
    bbox: BoundingBox
    score: float
    distance: float
    direction: str
    confidence: float
    last_seen_at: float
    consecutive_matches: int = 1
    stable: bool = False
    focused: bool = False
    missed_frames: int = 0
    velocity: Optional[float] = None
    movement_direction: Optional[str] = None
    risk_level: Optional[str] = None
    proximity_warning: bool = False
    prior_bbox: Optional[BoundingBox] = None
    prior_distance: Optional[float] = None
    prior_seen_at: Optional[float] = None


@dataclass(frozen=True)
class Alert:
    id: str
    message: str
    severity: str
    timestamp: float
    class_label: str = ''
    direction: str = ''
    track_id: Optional[int] = None


@dataclass(frozen=True)
class AnnouncementEvent:
    """What the speech side gets: say `message`, cut the current sentence if should_interrupt."""
    message: str
    severity: str
    should_interrupt: bool = False


class Detector(Protocol):
    """
    Anything that turns a frame into detections: YOLO, a mock, a replayed log...
    """

    def detect(self, frame: np.ndarray) -> Sequence[RawDetection]:
        ...
