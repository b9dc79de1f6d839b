import pytest

from capture import StreamOpenError, open_capture, parse_source


def test_parse_source() -> None:
    assert parse_source("0") == 0
    assert parse_source("videos/walk.mp4") == "videos/walk.mp4"


def test_missing_video_cannot_start_a_session(tmp_path) -> None:
    with pytest.raises(StreamOpenError, match="Cannot open video source"):
        open_capture(str(tmp_path / "missing.mp4"))
    assert issubclass(StreamOpenError, RuntimeError)
