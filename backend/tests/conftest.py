"""
Shared fixtures: synthetic 68-layout landmarks with controllable head offset
and eye openness, and small BGR frames for capture.
"""
import numpy as np
import pytest

from kyc_liveness.models.data_models import FrameAnalysis, Landmarks
from kyc_liveness.services.challenge_state_machine import ChallengeStateMachine
from kyc_liveness.services.scheduler import ManualScheduler

EYE_WIDTH = 30.0
EYE_Y = 200.0
LEFT_EYE_X = 100.0   # outer corner of the left eye (p1)
RIGHT_EYE_X = 170.0  # inner corner of the right eye (p1); outer corner at 200
EYE_MIDPOINT_X = (LEFT_EYE_X + RIGHT_EYE_X + EYE_WIDTH) / 2.0  # 150

OPEN_EAR = 0.5
CLOSED_EAR = 0.1


def eye_points(x0, ear, width=EYE_WIDTH, y=EYE_Y):
    """Six points p1..p6 whose EAR is exactly `ear` (EAR = 2h / w)"""
    h = ear * width / 2.0
    return [
        (x0, y),
        (x0 + width / 3.0, y - h),
        (x0 + 2.0 * width / 3.0, y - h),
        (x0 + width, y),
        (x0 + 2.0 * width / 3.0, y + h),
        (x0 + width / 3.0, y + h),
    ]


def build_landmarks(offset=0.0, left_ear=OPEN_EAR, right_ear=OPEN_EAR):
    nose_x = EYE_MIDPOINT_X + offset
    nose = [(nose_x, 180.0 + 10.0 * i) for i in range(4)] + [(nose_x - 10.0 + 5.0 * i, 225.0) for i in range(5)]
    jaw = [(80.0 + 8.0 * i, 260.0 + abs(8 - i) * -3.0) for i in range(17)]
    return Landmarks(
        left_eye=eye_points(LEFT_EYE_X, left_ear),
        right_eye=eye_points(RIGHT_EYE_X, right_ear),
        nose=nose,
        jaw=jaw
    )


def build_analysis(offset=0.0, left_ear=OPEN_EAR, right_ear=OPEN_EAR, happy=0.0):
    return FrameAnalysis(
        face_detected=True,
        landmarks=build_landmarks(offset, left_ear, right_ear),
        expression_scores={"happy": happy, "neutral": 1.0 - happy},
        detection_score=0.9
    )


@pytest.fixture
def make_analysis():
    """Factory for FrameAnalysis records with a chosen pose/expression"""
    return build_analysis


@pytest.fixture
def frame():
    """A small BGR frame with some texture so JPEG encoding is realistic"""
    rng = np.random.default_rng(7)
    return rng.integers(40, 200, (48, 64, 3), dtype=np.uint8)


@pytest.fixture
def scheduler():
    return ManualScheduler(start=1000.0)


@pytest.fixture
def machine(scheduler):
    return ChallengeStateMachine(scheduler, settle_delay=1.0, blink_reset_delay=0.3)
