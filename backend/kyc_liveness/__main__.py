"""
Command-line entry point: run a liveness verification against a camera or a
recorded clip and print the result as JSON.

    python -m kyc_liveness --model ~/.mediapipe_models/face_landmarker.task
    python -m kyc_liveness --video clip.mp4
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Iterator, Optional

import cv2
import numpy as np

from .config import config
from .errors import CameraAccessError, ModelLoadError, SessionAborted
from .models.data_models import VerificationFeedback, VerificationResult
from .services.expression_scorer import DeepFaceExpressionScorer
from .services.frame_source import OpenCVCameraSource
from .services.landmark_detector import MediaPipeLandmarkDetector
from .services.verification_pipeline import VerificationPipeline, replay_frames

logger = logging.getLogger("kyc_liveness")

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_SETUP_ERROR = 2
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Facial KYC liveness verification")
    parser.add_argument("--model", type=str, default=config.FACE_LANDMARKER_MODEL_PATH,
                        help="Path to the MediaPipe face_landmarker.task model")
    parser.add_argument("--camera", type=int, default=config.CAMERA_INDEX, help="Camera index")
    parser.add_argument("--video", type=str, default=None, help="Replay a recorded clip instead of the camera")
    parser.add_argument("--expressions", choices=["blendshapes", "deepface"], default=config.EXPRESSION_BACKEND,
                        help="Expression scoring backend for the smile challenge")
    parser.add_argument("--include-images", action="store_true", help="Include base64 captures in the output")
    parser.add_argument("--log-level", type=str, default=config.LOG_LEVEL, help="Logging level")
    return parser


def _print_feedback(feedback: VerificationFeedback) -> None:
    print(f">> {feedback.message}", file=sys.stderr)


def _read_video(path: str) -> Iterator[np.ndarray]:
    capture = cv2.VideoCapture(path)
    if not capture.isOpened():
        raise CameraAccessError(f"Cannot open video {path}")
    try:
        while True:
            ok, frame = capture.read()
            if not ok:
                break
            yield frame
    finally:
        capture.release()


def _video_fps(path: str) -> float:
    capture = cv2.VideoCapture(path)
    try:
        fps = capture.get(cv2.CAP_PROP_FPS)
    finally:
        capture.release()
    return fps if fps and fps > 0 else 30.0


def run(args: argparse.Namespace) -> int:
    scorer = DeepFaceExpressionScorer() if args.expressions == "deepface" else None
    detector = MediaPipeLandmarkDetector(model_path=args.model, expression_scorer=scorer)

    result: Optional[VerificationResult]
    try:
        if args.video:
            result = replay_frames(detector, _read_video(args.video), _video_fps(args.video),
                                   on_feedback=_print_feedback)
        else:
            pipeline = VerificationPipeline(detector, OpenCVCameraSource(camera_index=args.camera),
                                            on_feedback=_print_feedback)
            try:
                result = asyncio.run(pipeline.run())
            finally:
                pipeline.close()
    except (ModelLoadError, CameraAccessError) as e:
        logger.error(str(e))
        return EXIT_SETUP_ERROR
    except (SessionAborted, KeyboardInterrupt):
        logger.info("Verification cancelled")
        return EXIT_CANCELLED
    finally:
        detector.close()

    if result is None:
        print(json.dumps({"success": False, "reason": "incomplete"}))
        return EXIT_FAILED

    print(json.dumps(result.to_dict(include_images=args.include_images), indent=2))
    return EXIT_SUCCESS if result.success else EXIT_FAILED


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
