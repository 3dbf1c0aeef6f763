"""
Geometry Analyzer deriving head rotation and eye aspect ratio from landmarks
"""
import logging
import numpy as np
from typing import Optional, Sequence

from ..config import config
from ..errors import ComputationDegenerate
from ..models.data_models import (
    EyeAspectRatio,
    FrameAnalysis,
    FrameSignals,
    HeadRotationSignal,
    Landmarks,
    Point,
)

logger = logging.getLogger(__name__)


class GeometryAnalyzer:
    """
    Derives the per-frame geometric signals the challenges are judged on.

    Thresholds are pixel/ratio calibrations for a ~640x480 feed, not
    physical constants; scale `center_threshold` with frame width.
    """

    def __init__(
        self,
        center_threshold: float = config.HEAD_CENTER_THRESHOLD_PX,
        epsilon: float = config.EAR_EPSILON
    ):
        """
        Args:
            center_threshold: Max |offset| in pixels for the head to count as centered
            epsilon: Minimum eye width below which EAR is not computable
        """
        self.center_threshold = center_threshold
        self.epsilon = epsilon

    def compute_head_rotation(self, landmarks: Landmarks) -> HeadRotationSignal:
        """
        Classify horizontal head rotation.

        offset = x(nose tip) - midpoint_x(outer corners of both eyes).
        Negative offsets mean the head is turned left in image coordinates.

        Args:
            landmarks: Landmark groups of the detected face

        Returns:
            HeadRotationSignal: offset and left/right/center classification
        """
        eye_center_x = (landmarks.left_eye_outer[0] + landmarks.right_eye_outer[0]) / 2.0
        offset = float(landmarks.nose_tip[0] - eye_center_x)

        return HeadRotationSignal(
            offset=offset,
            is_left=offset < -self.center_threshold,
            is_right=offset > self.center_threshold,
            is_center=abs(offset) <= self.center_threshold
        )

    def compute_ear(self, eye_points: Sequence[Point]) -> float:
        """
        Eye Aspect Ratio for one eye.

        EAR = (|p2 - p6| + |p3 - p5|) / (2 * |p1 - p4|)

        Args:
            eye_points: The six canonical eye landmarks p1..p6

        Returns:
            float: EAR value (roughly 0.3 open, near 0 closed)

        Raises:
            ComputationDegenerate: eye width |p1 - p4| is below epsilon
        """
        if len(eye_points) != 6:
            raise ValueError(f"EAR needs 6 eye points, got {len(eye_points)}")

        p = np.asarray(eye_points, dtype=np.float64)
        vertical_a = np.linalg.norm(p[1] - p[5])
        vertical_b = np.linalg.norm(p[2] - p[4])
        horizontal = np.linalg.norm(p[0] - p[3])

        if horizontal < self.epsilon:
            raise ComputationDegenerate(f"eye width {horizontal:.2e} below epsilon {self.epsilon:.0e}")

        return float((vertical_a + vertical_b) / (2.0 * horizontal))

    def compute_eye_aspect_ratio(self, landmarks: Landmarks) -> Optional[EyeAspectRatio]:
        """
        Per-eye and average EAR, or None when either eye is degenerate.

        A None result excludes the frame from blink evaluation.
        """
        try:
            left = self.compute_ear(landmarks.left_eye)
            right = self.compute_ear(landmarks.right_eye)
        except ComputationDegenerate as e:
            logger.debug(f"EAR not computable for this frame: {e}")
            return None

        return EyeAspectRatio(left=left, right=right, average=(left + right) / 2.0)

    def analyze(self, analysis: Optional[FrameAnalysis]) -> FrameSignals:
        """Derive all signals for one frame. Frames without a face yield empty signals."""
        if analysis is None or not analysis.face_detected or analysis.landmarks is None:
            return FrameSignals(analysis=analysis)

        rotation = self.compute_head_rotation(analysis.landmarks)
        ear = self.compute_eye_aspect_ratio(analysis.landmarks)

        if ear is not None:
            logger.debug(
                f"offset={rotation.offset:.1f}px, EAR left={ear.left:.3f} "
                f"right={ear.right:.3f} avg={ear.average:.3f}"
            )
        return FrameSignals(analysis=analysis, head_rotation=rotation, eye_aspect_ratio=ear)
