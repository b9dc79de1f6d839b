"""
Runs the proximity-alert pipeline on a camera or a video file.

This script puts everything together:
    - read frames from a camera index or a video
    - run the detector (YOLOv8) every few frames
    - track objects, estimate distance/velocity/risk
    - print spoken-style alerts and draw annotated frames
    - save annotated video and a CSV alert log

Example usage:
--------------
python main.py \
    --source ../data/street_walk.mp4 \
    --out ../outputs/street_walk_annotated.mp4 \
    --view \
    --start-time 00:12 \
    --end-time 01:30

python main.py --source 0 --view --async-inference
"""
import argparse
import json
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor

import cv2
import pandas as pd
from tqdm import tqdm

from alerts import LoggingAnnouncer
from capture import StreamOpenError, open_capture, parse_source, stream_info
from config import LOG_CSV, PipelineConfig
from detector import YoloDetector
from pipeline import DetectionPipeline
from visualize import draw_alerts, draw_tracks


def parse_time_string(t):
    """
    Convert time input like "mm:ss" or "ss" (or a numeric) to float seconds.
    Returns None if parsing fails or input is None.
    """

    if t is None:
        return None
    if isinstance(t, (float, int)):
        return float(t)
    t = str(t)
    try:
        if ':' in t:
            parts = [float(p) for p in t.split(':')]
            # mm:ss
            if len(parts) == 2:
                return parts[0] * 60.0 + parts[1]
            # hh:mm:ss
            if len(parts) == 3:
                return parts[0] * 3600.0 + parts[1] * 60.0 + parts[2]
            return None
        return float(t)
    except ValueError:
        return None


def load_config(path):
    """
    Settings file is plain JSON with snake_case or camelCase option names
    """
    if path is None:
        return PipelineConfig()
    with open(path, encoding='utf-8') as f:
        return PipelineConfig.from_mapping(json.load(f))


def parse_args():
    """
    CLI args for quick testing / demo runs.
    """
    p = argparse.ArgumentParser()
    p.add_argument('--source', required=True, help='camera index (e.g. 0) or path to a video')
    p.add_argument('--out', default=None, help='output annotated video')
    p.add_argument('--log', default=LOG_CSV, help='CSV alert log')
    p.add_argument('--config', default=None, help='JSON settings file')
    p.add_argument('--model', default='yolov8n.pt', help='YOLO weights')
    p.add_argument('--view', action='store_true', help='show preview window')
    p.add_argument('--async-inference', action='store_true', help='run the detector in a background thread')
    p.add_argument('--max-frames', type=int, default=None, help='process at most N frames (for quick tests)')
    p.add_argument('--start-time', type=str, default=None, help='start time for a video segment')
    p.add_argument('--end-time', type=str, default=None, help='end time for a video segment')
    p.add_argument('--verbose', action='store_true', help='debug logging')
    return p.parse_args()


def ensure_parent_exists(path):
    """
    Make sure output directory exists before writing files
    """
    parent = os.path.dirname(path)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)


def main():
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"[ERROR] Bad config: {e}")
        return 1

    source = parse_source(args.source)
    live = isinstance(source, int)
    try:
        cap = open_capture(source)
    except StreamOpenError as e:
        print(f"[ERROR] {e}")
        return 1

    fps, total_frames, w, h = stream_info(cap)

    # Figure out frame indices for optional start/end times (video files only)
    start_frame, end_frame = 0, None
    if not live:
        start_seconds = parse_time_string(args.start_time)
        end_seconds = parse_time_string(args.end_time)
        start_frame = int(round(start_seconds * fps)) if start_seconds is not None else 0
        end_frame = int(round(end_seconds * fps)) if end_seconds is not None else total_frames - 1
        start_frame = max(0, min(start_frame, max(0, total_frames - 1)))
        if end_frame <= start_frame:
            print(f"[ERROR] Invalid time window: start_frame={start_frame}, end_frame={end_frame}")
            cap.release()
            return 1
        cap.set(cv2.CAP_PROP_POS_FRAMES, start_frame)
        print(f"Processing frames {start_frame} .. {end_frame} (fps={fps}, total={total_frames})")

    out_writer = None
    if args.out:
        ensure_parent_exists(args.out)
        fourcc = cv2.VideoWriter_fourcc(*'mp4v')
        out_writer = cv2.VideoWriter(args.out, fourcc, fps, (w, h))
        if not out_writer.isOpened():
            print(f"[ERROR] VideoWriter failed to open for {args.out}")
            cap.release()
            return 1

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference") if args.async_inference else None
    detector = YoloDetector(model_name=args.model, conf_thresh=config.min_detection_score)
    pipeline = DetectionPipeline(detector, config=config, executor=executor)
    announcer = LoggingAnnouncer()

    logs = [] # to store the CSV rows
    frame_idx = start_frame
    n_frames = None if end_frame is None else end_frame - start_frame + 1
    if args.max_frames is not None:
        n_frames = args.max_frames if n_frames is None else min(n_frames, args.max_frames)
    progress = tqdm(total=n_frames, desc="frames", disable=args.view)

    pipeline.start()
    try:
        while n_frames is None or frame_idx - start_frame < n_frames:
            ok, frame = cap.read()
            if not ok:
                print(f"[WARN] Missing frame at index {frame_idx}. Stopping.")
                break

            # Video files use their own timeline, cameras use the wall clock
            now = time.monotonic() if live else frame_idx / fps
            result = pipeline.tick(frame, now=now)

            for event in result.events:
                announcer.announce(event)
                logs.append({
                    't': now,
                    'frame': frame_idx,
                    'severity': event.severity,
                    'interrupt': event.should_interrupt,
                    'message': event.message,
                })

            if out_writer is not None or args.view:
                annotated = draw_alerts(draw_tracks(frame, result.tracks), result.alerts)
                if out_writer is not None:
                    out_writer.write(annotated)
                if args.view:
                    cv2.imshow('Proximity alerts', annotated)
                    # Press ESC to exit preview early
                    if cv2.waitKey(1) & 0xFF == 27:
                        print("[INFO] ESC pressed - exiting preview.")
                        break

            frame_idx += 1
            progress.update(1)
    finally:
        pipeline.stop()
        progress.close()
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        if out_writer is not None:
            out_writer.release()
        cap.release()
        if args.view:
            cv2.destroyAllWindows()

    # Write logs to CSV (best-effort)
    try:
        ensure_parent_exists(args.log)
        pd.DataFrame(logs, columns=['t', 'frame', 'severity', 'interrupt', 'message']).to_csv(args.log, index=False)
        print(f"[INFO] Saved {len(logs)} alerts to {args.log}")
    except OSError as e:
        print(f"[WARN] Could not save log: {e}")

    print("[INFO] Processing complete.")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
