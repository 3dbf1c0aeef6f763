"""
Configuration management for the liveness verification engine

Geometric thresholds are empirical calibrations for a ~640x480 webcam feed
and the 68-point landmark layout. They depend on resolution and camera
distance and are not universal constants.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Application configuration"""

    # Head rotation: nose tip offset from the eye-corner midpoint, in pixels
    HEAD_CENTER_THRESHOLD_PX = float(os.getenv('HEAD_CENTER_THRESHOLD_PX', '10'))

    # Blink detection (Eye Aspect Ratio)
    EAR_BOTH_EYES_THRESHOLD = float(os.getenv('EAR_BOTH_EYES_THRESHOLD', '0.4'))
    EAR_SINGLE_EYE_THRESHOLD = float(os.getenv('EAR_SINGLE_EYE_THRESHOLD', '0.35'))
    EAR_EPSILON = float(os.getenv('EAR_EPSILON', '1e-6'))
    ALLOW_SINGLE_EYE_BLINK = _get_bool('ALLOW_SINGLE_EYE_BLINK', 'true')

    # Expression
    SMILE_THRESHOLD = float(os.getenv('SMILE_THRESHOLD', '0.8'))
    EXPRESSION_BACKEND = os.getenv('EXPRESSION_BACKEND', 'blendshapes')

    # Timing
    SETTLE_DELAY_SECONDS = float(os.getenv('SETTLE_DELAY_SECONDS', '1.0'))
    BLINK_RESET_DELAY_SECONDS = float(os.getenv('BLINK_RESET_DELAY_SECONDS', '0.3'))
    DETECTION_INTERVAL_SECONDS = float(os.getenv('DETECTION_INTERVAL_SECONDS', '0.1'))

    # ML Model Configuration
    FACE_LANDMARKER_MODEL_PATH = os.getenv(
        'FACE_LANDMARKER_MODEL_PATH',
        os.path.join(os.path.expanduser("~"), ".mediapipe_models", "face_landmarker.task")
    )
    MIN_FACE_DETECTION_CONFIDENCE = float(os.getenv('MIN_FACE_DETECTION_CONFIDENCE', '0.5'))

    # Camera / capture
    CAMERA_INDEX = int(os.getenv('CAMERA_INDEX', '0'))
    CAMERA_WIDTH = int(os.getenv('CAMERA_WIDTH', '640'))
    CAMERA_HEIGHT = int(os.getenv('CAMERA_HEIGHT', '480'))
    CAPTURE_JPEG_QUALITY = int(os.getenv('CAPTURE_JPEG_QUALITY', '90'))

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


config = Config()
