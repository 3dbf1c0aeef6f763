"""
Expression scorer backed by DeepFace emotion analysis
"""
import logging
import numpy as np
from typing import Dict

from ..errors import ModelLoadError

logger = logging.getLogger(__name__)


class DeepFaceExpressionScorer:
    """
    Scores facial expressions (happy, sad, angry, surprise, fear, disgust,
    neutral) on a 0-1 scale using DeepFace.

    DeepFace pulls in TensorFlow, so it is imported on initialize() rather
    than at module load.
    """

    def __init__(self, detector_backend: str = 'opencv'):
        self.detector_backend = detector_backend
        self._deepface = None

    @property
    def is_initialized(self) -> bool:
        return self._deepface is not None

    def initialize(self) -> None:
        """
        Raises:
            ModelLoadError: DeepFace is not installed or failed to import
        """
        if self._deepface is not None:
            return
        try:
            from deepface import DeepFace
        except ImportError as e:
            raise ModelLoadError(f"DeepFace is not available: {e}") from e
        self._deepface = DeepFace
        logger.info("DeepFace expression scorer ready")

    def score(self, frame: np.ndarray) -> Dict[str, float]:
        """
        Expression scores for the first face in a BGR frame.

        Returns:
            dict: emotion name -> score in [0, 1]; empty if no face/emotion data
        """
        self.initialize()

        if frame is None or frame.size == 0:
            return {}

        result = self._deepface.analyze(
            img_path=frame,
            actions=['emotion'],
            enforce_detection=False,  # Don't fail if no face detected
            detector_backend=self.detector_backend,
            silent=True
        )

        # DeepFace returns a list (one entry per face) in recent versions
        if isinstance(result, list):
            if len(result) == 0:
                return {}
            result = result[0]

        emotion_scores = result.get('emotion', {})
        return {name: float(value) / 100.0 for name, value in emotion_scores.items()}
