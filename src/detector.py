"""
A YOLOv8 object detector that speaks the pipeline's Detector interface.

It loads an ultralytics YOLO model and turns its output into RawDetection
objects (top-left + size boxes, class names, scores). If the model fails to
load, the detector just returns no detections instead of crashing the program.
"""

from typing import List, Optional
import logging

import numpy as np
from ultralytics import YOLO

from config import MIN_DETECTION_SCORE
from models import BoundingBox, RawDetection

# Set up a logger for debugging/info
log = logging.getLogger("detector")


class YoloDetector:
    """
    Class for the YOLOv8 object detection model
    """

    def __init__(self, model_name: str = "yolov8n.pt", conf_thresh: float = MIN_DETECTION_SCORE,
                 classes: Optional[List[str]] = None, imgsz: int = 640):
        """
        model_name: str = "yolov8n.pt" - Which YOLO model to load (default = yolov8n.pt)
        conf_thresh: float - Ignore predictions below this confidence
        classes: only keep these class names (None keeps everything)
        imgsz: int = 640 - resizes the image internally to 640x640
        """

        # Start with no model loaded
        self.model = None
        # Save the minimum confidence
        self.conf = conf_thresh
        self.classes = set(classes) if classes else None
        self.imgsz = imgsz

        try:
            # Load YOLO model
            self.model = YOLO(model_name)
            log.info(f"Loaded YOLO model {model_name}")
        except Exception as e:
            # Handle model loading failures
            log.warning(f"Failed to load YOLO model: {e}")
            self.model = None

    def detect(self, frame: np.ndarray) -> List[RawDetection]:
        """
        Runs object detection on one image frame
        """

        # If the model failed to load, just return nothing
        if self.model is None:
            return []

        # Run YOLO detection on the image frame
        results = self.model(frame, imgsz=self.imgsz, conf=self.conf, verbose=False)[0]

        detections = []

        # Loop through each detected object on the frame
        for box in results.boxes:
            # Box coordinates: [x1, y1, x2, y2]
            xyxy = box.xyxy.cpu().numpy().reshape(4).tolist()

            # Confidence score - how sure the model is about this detection
            conf = float(box.conf.cpu().numpy().reshape(-1)[0])

            # Class index (like 0 = person, 1 = car, and so on)
            cls_idx = int(box.cls.cpu().numpy().reshape(-1)[0])

            # Get the class name (like person) from the model if its available
            if hasattr(self.model, "names"):
                cls_name = self.model.names[cls_idx]
            else:
                cls_name = str(cls_idx)

            if self.classes is not None and cls_name not in self.classes:
                continue

            detections.append(RawDetection(BoundingBox.from_xyxy(xyxy), cls_name, conf))

        # Return all detections for this frame
        return detections
