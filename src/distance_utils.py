"""
Helper functions to turn a 2-D box into "how far" and "which side"

These functions help measure things like:
    - the distance to an object from the size of its bounding box (pinhole model)
    - whether the object is on the left, in the center or on the right

There is no depth sensor here, so the distance is an estimate: known real size
of the object class * focal length / size in pixels.
"""

from typing import Dict, Optional, Tuple

import numpy as np

from config import (DISTANCE_CORRECTION, FOCAL_LENGTH, LEFT_ZONE_RATIO, MAX_DISTANCE_M,
                    MIN_DISTANCE_M, RIGHT_ZONE_RATIO)
from models import BoundingBox

# Average real-world size of common COCO classes: (width, height) in meters
KNOWN_SIZES: Dict[str, Tuple[float, float]] = {
    'person': (0.5, 1.7),
    'bicycle': (0.6, 1.1),
    'car': (1.8, 1.5),
    'motorcycle': (0.8, 1.2),
    'bus': (2.5, 3.0),
    'truck': (2.5, 3.5),
    'train': (3.0, 4.0),
    'boat': (2.0, 1.5),
    'traffic light': (0.3, 0.9),
    'fire hydrant': (0.3, 0.6),
    'stop sign': (0.75, 0.75),
    'parking meter': (0.3, 1.5),
    'bench': (1.5, 0.9),
    'bird': (0.15, 0.2),
    'cat': (0.2, 0.3),
    'dog': (0.3, 0.6),
    'horse': (1.0, 1.6),
    'sheep': (0.8, 0.9),
    'cow': (1.2, 1.5),
    'backpack': (0.3, 0.45),
    'umbrella': (0.8, 0.9),
    'handbag': (0.3, 0.3),
    'suitcase': (0.5, 0.7),
    'skateboard': (0.8, 0.15),
    'bottle': (0.08, 0.25),
    'wine glass': (0.08, 0.2),
    'cup': (0.08, 0.1),
    'chair': (0.5, 0.9),
    'couch': (2.0, 0.9),
    'potted plant': (0.4, 0.6),
    'bed': (1.4, 0.6),
    'dining table': (1.8, 0.75),
    'toilet': (0.4, 0.75),
    'tv': (1.0, 0.6),
    'laptop': (0.35, 0.25),
    'cell phone': (0.07, 0.15),
    'microwave': (0.5, 0.3),
    'oven': (0.6, 0.9),
    'sink': (0.5, 0.2),
    'refrigerator': (0.8, 1.8),
    'book': (0.15, 0.23),
    'clock': (0.3, 0.3),
    'vase': (0.15, 0.3),
}
DEFAULT_SIZE = (0.5, 0.5) # Used for anything not in the table

# Upright things: their height in the image is a better cue than their width,
# which changes a lot with pose and viewing angle
HEIGHT_RELIABLE_CLASSES = frozenset({
    'person', 'dog', 'cat', 'horse', 'sheep', 'cow', 'bird',
    'bottle', 'wine glass', 'vase', 'chair', 'couch', 'potted plant',
    'refrigerator', 'fire hydrant', 'parking meter', 'traffic light', 'toilet',
})


class DistanceEstimator:
    """
    Pinhole-camera distance estimate from bounding box size.
    Stateless after construction, so one instance can be shared freely.
    """

    def __init__(self, focal_length: float = FOCAL_LENGTH, correction: float = DISTANCE_CORRECTION,
                 min_distance: float = MIN_DISTANCE_M, max_distance: float = MAX_DISTANCE_M,
                 known_sizes: Optional[Dict[str, Tuple[float, float]]] = None):
        """
        - focal_length: camera focal length in pixels
        - correction: empirical factor, phone cameras make things look farther away
        - min_distance / max_distance: clamp range in meters
        - known_sizes: override the (width, height) table
        """
        self.focal_length = float(focal_length)
        self.correction = float(correction)
        self.min_distance = float(min_distance)
        self.max_distance = float(max_distance)
        self.known_sizes = dict(KNOWN_SIZES if known_sizes is None else known_sizes)

    @classmethod
    def from_config(cls, config) -> "DistanceEstimator":
        return cls(focal_length=config.focal_length, correction=config.distance_correction,
                   min_distance=config.min_distance_m, max_distance=config.max_distance_m)

    def estimate(self, bbox: BoundingBox, class_label: str) -> float:
        """
        Estimate the distance in meters to the object inside `bbox`

        - bbox: must have positive width and height
        - class_label: COCO label, unknown labels use DEFAULT_SIZE

        returns: distance clamped to [min_distance, max_distance]
        """
        if bbox.width <= 0 or bbox.height <= 0:
            raise ValueError(f"bounding box must have a positive size, got {bbox}")

        known_w, known_h = self.known_sizes.get(class_label, DEFAULT_SIZE)

        # Distance = (Real size × Focal Length) / Pixel size
        from_width = known_w * self.focal_length / bbox.width
        from_height = known_h * self.focal_length / bbox.height

        if class_label in HEIGHT_RELIABLE_CLASSES:
            distance = from_height
        else:
            # Pick the closer one, better to warn a bit early than too late
            distance = min(from_width, from_height)

        distance *= self.correction
        return float(np.clip(distance, self.min_distance, self.max_distance))


def estimate_distance(bbox: BoundingBox, class_label: str) -> float:
    """Distance with the default calibration, handy for quick checks."""
    return _DEFAULT_ESTIMATOR.estimate(bbox, class_label)


def classify_direction(bbox: BoundingBox, frame_width: float,
                       left_ratio: float = LEFT_ZONE_RATIO, right_ratio: float = RIGHT_ZONE_RATIO) -> str:
    """
    Which third of the frame the box center falls in: 'left', 'center' or 'right'
    """
    center_x = bbox.x + bbox.width / 2.0
    if center_x < frame_width * left_ratio:
        return 'left'
    if center_x > frame_width * right_ratio:
        return 'right'
    return 'center'


_DEFAULT_ESTIMATOR = DistanceEstimator()
