"""
Opening the camera / video and reading frames from it.
"""

import logging
from typing import Tuple, Union

import cv2

log = logging.getLogger("capture")


class StreamOpenError(RuntimeError):
    """The camera or video could not be opened, the session can't start."""


def parse_source(source: str) -> Union[int, str]:
    """'0' -> camera index 0, anything else is a path/URL"""
    return int(source) if source.isdigit() else source


def open_capture(source: Union[int, str]) -> cv2.VideoCapture:
    """
    Open a camera index or a video path with OpenCV

    raises StreamOpenError if nothing could be opened
    """
    cap = cv2.VideoCapture(source)
    if not cap.isOpened():
        cap.release()
        raise StreamOpenError(f"Cannot open video source: {source}")
    log.info(f"Opened video source {source}")
    return cap


def stream_info(cap: cv2.VideoCapture) -> Tuple[float, int, int, int]:
    """(fps, frame count, width, height). fps falls back to 30, frame count is 0 for live cameras."""
    fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
    total = max(0, int(cap.get(cv2.CAP_PROP_FRAME_COUNT)))
    w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)); h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    return fps, total, w, h


