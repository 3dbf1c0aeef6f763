"""
Landmark detectors producing per-frame FrameAnalysis records
"""
import logging
import os
import cv2
import mediapipe as mp
import numpy as np
from typing import Dict, List, Optional, Sequence

from ..config import config
from ..errors import ModelLoadError
from ..models.data_models import FrameAnalysis, Landmarks, Point

logger = logging.getLogger(__name__)


class LandmarkDetector:
    """
    Interface for face/landmark detectors.

    detect() may be a plain method or a coroutine; it returns None when no
    face is found. At most one face is reported.
    """

    def initialize(self) -> None:
        """Load the model. Raises ModelLoadError on failure."""
        raise NotImplementedError

    def detect(self, frame: np.ndarray) -> Optional[FrameAnalysis]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MediaPipeLandmarkDetector(LandmarkDetector):
    """
    Detects a single face with the MediaPipe FaceLandmarker and maps its mesh
    onto the 68-point eye/nose/jaw layout used by the geometry analyzer.
    """

    # Mesh indices ordered p1..p6 like the 68-point eyes (36-41 and 42-47)
    LEFT_EYE = [33, 160, 158, 133, 153, 144]
    RIGHT_EYE = [362, 385, 387, 263, 373, 380]
    # Bridge down to the tip (index 3 = tip, mesh point 1), then the nostril base
    NOSE = [168, 6, 197, 1, 98, 97, 2, 326, 327]
    JAW = [234, 93, 132, 58, 172, 136, 150, 149, 152, 378, 379, 365, 397, 288, 361, 323, 454]

    def __init__(
        self,
        model_path: Optional[str] = config.FACE_LANDMARKER_MODEL_PATH,
        min_detection_confidence: float = config.MIN_FACE_DETECTION_CONFIDENCE,
        expression_scorer=None
    ):
        """
        The FaceLandmarker is created lazily by initialize() or the first
        detect() call, so the adapter can be constructed without the model file.

        Args:
            model_path: Path to the MediaPipe face landmarker `.task` file
            min_detection_confidence: Detection/presence confidence threshold
            expression_scorer: Optional scorer providing expression scores
                instead of the smile blendshapes
        """
        self.model_path = model_path
        self.min_detection_confidence = min_detection_confidence
        self.expression_scorer = expression_scorer
        self._face_landmarker = None

    @property
    def is_initialized(self) -> bool:
        return self._face_landmarker is not None

    def initialize(self) -> None:
        """
        Create the FaceLandmarker (one face, blendshapes enabled).

        Raises:
            ModelLoadError: model path missing or MediaPipe failed to load it
        """
        if self._face_landmarker is not None:
            return

        if not self.model_path:
            raise ModelLoadError("Model path must be provided to initialize FaceLandmarker")
        if not os.path.exists(self.model_path):
            raise ModelLoadError(f"MediaPipe model not found at {self.model_path}")

        try:
            base_options = mp.tasks.BaseOptions(model_asset_path=self.model_path)
            options = mp.tasks.vision.FaceLandmarkerOptions(
                base_options=base_options,
                running_mode=mp.tasks.vision.RunningMode.IMAGE,
                num_faces=1,
                min_face_detection_confidence=self.min_detection_confidence,
                min_face_presence_confidence=self.min_detection_confidence,
                output_face_blendshapes=True,
                output_facial_transformation_matrixes=False
            )
            self._face_landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
        except Exception as e:
            logger.error(f"Failed to initialize MediaPipe FaceLandmarker: {e}")
            raise ModelLoadError(f"Failed to initialize MediaPipe FaceLandmarker: {e}") from e

        if self.expression_scorer is not None:
            self.expression_scorer.initialize()

        logger.info(f"MediaPipe FaceLandmarker loaded from {self.model_path}")

    def preprocess_frame(self, frame: np.ndarray) -> np.ndarray:
        """Convert a BGR OpenCV frame to the RGB layout MediaPipe expects"""
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def detect(self, frame: np.ndarray) -> Optional[FrameAnalysis]:
        """
        Run landmark detection on one BGR frame.

        Returns:
            FrameAnalysis in pixel coordinates, or None when no face is found
        """
        self.initialize()

        height, width = frame.shape[:2]
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=self.preprocess_frame(frame))
        result = self._face_landmarker.detect(mp_image)

        if not result.face_landmarks:
            return None

        mesh = [(lm.x * width, lm.y * height) for lm in result.face_landmarks[0]]
        landmarks = self.landmarks_from_mesh(mesh)

        if self.expression_scorer is not None:
            expressions = self.expression_scorer.score(frame)
        else:
            blendshapes = result.face_blendshapes[0] if result.face_blendshapes else []
            expressions = self.expressions_from_blendshapes(blendshapes)

        return FrameAnalysis(
            face_detected=True,
            landmarks=landmarks,
            expression_scores=expressions,
            detection_score=1.0
        )

    @classmethod
    def landmarks_from_mesh(cls, mesh: Sequence[Point]) -> Landmarks:
        """Select the 68-layout groups from a 468/478-point face mesh"""
        if len(mesh) < 468:
            raise ValueError(f"Expected a 468+ point face mesh, got {len(mesh)} points")

        def pick(indices: List[int]) -> List[Point]:
            return [(float(mesh[i][0]), float(mesh[i][1])) for i in indices]

        return Landmarks(
            left_eye=pick(cls.LEFT_EYE),
            right_eye=pick(cls.RIGHT_EYE),
            nose=pick(cls.NOSE),
            jaw=pick(cls.JAW)
        )

    @staticmethod
    def expressions_from_blendshapes(blendshapes) -> Dict[str, float]:
        """Approximate expression scores from ARKit-style blendshape categories"""
        scores = {category.category_name: float(category.score) for category in blendshapes}
        smile = (scores.get("mouthSmileLeft", 0.0) + scores.get("mouthSmileRight", 0.0)) / 2.0
        return {"happy": smile, "neutral": max(0.0, 1.0 - smile)}

    def close(self) -> None:
        if self._face_landmarker is not None:
            self._face_landmarker.close()
            self._face_landmarker = None
