# Service layer components
from .geometry_analyzer import GeometryAnalyzer
from .scheduler import AsyncioScheduler, ManualScheduler
from .capture_store import CaptureStore
from .result_builder import VerificationResultBuilder
from .challenge_state_machine import ChallengeStateMachine
from .landmark_detector import LandmarkDetector, MediaPipeLandmarkDetector
from .expression_scorer import DeepFaceExpressionScorer
from .frame_source import FrameSource, OpenCVCameraSource, EncodedFrameSource
from .verification_pipeline import VerificationPipeline, replay_frames

__all__ = ['GeometryAnalyzer', 'AsyncioScheduler', 'ManualScheduler', 'CaptureStore', 'VerificationResultBuilder', 'ChallengeStateMachine', 'LandmarkDetector', 'MediaPipeLandmarkDetector', 'DeepFaceExpressionScorer', 'FrameSource', 'OpenCVCameraSource', 'EncodedFrameSource', 'VerificationPipeline', 'replay_frames']
