"""
Data models for the liveness verification engine
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

Point = Tuple[float, float]


class ChallengeKey(str, Enum):
    """Liveness challenges, in the order they are presented"""
    FRONT = "front"
    LEFT = "left"
    RIGHT = "right"
    SMILE = "smile"
    BLINK = "blink"


class ChallengeState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SATISFIED = "satisfied"


class MachineState(str, Enum):
    """
    Top-level state of the challenge state machine.

    SETTLING is the quiesced sub-state of RUNNING entered after a challenge
    is satisfied and before its image is captured.
    """
    IDLE = "idle"
    RUNNING = "running"
    SETTLING = "settling"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BlinkState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class FeedbackType(str, Enum):
    CHALLENGE_ISSUED = "challenge_issued"
    CHALLENGE_SATISFIED = "challenge_satisfied"
    IMAGE_CAPTURED = "image_captured"
    VERIFICATION_COMPLETE = "verification_complete"
    SESSION_RESET = "session_reset"
    SESSION_CANCELLED = "session_cancelled"


@dataclass
class Landmarks:
    """
    Facial landmark groups in the 68-point layout.

    Eyes are ordered p1..p6: outer/inner corner first depending on the eye
    (left_eye[0] and right_eye[3] are the outer corners), then upper lid,
    opposite corner, lower lid. nose[3] is the nose tip.
    """
    left_eye: List[Point]
    right_eye: List[Point]
    nose: List[Point]
    jaw: List[Point] = field(default_factory=list)

    NOSE_TIP_INDEX = 3

    def __post_init__(self):
        if len(self.left_eye) != 6 or len(self.right_eye) != 6:
            raise ValueError(
                f"Expected 6 points per eye, got {len(self.left_eye)} left and {len(self.right_eye)} right"
            )
        if len(self.nose) != 9:
            raise ValueError(f"Expected 9 nose points, got {len(self.nose)}")
        if self.jaw and len(self.jaw) != 17:
            raise ValueError(f"Expected 17 jaw points, got {len(self.jaw)}")

    @property
    def nose_tip(self) -> Point:
        return self.nose[self.NOSE_TIP_INDEX]

    @property
    def left_eye_outer(self) -> Point:
        return self.left_eye[0]

    @property
    def right_eye_outer(self) -> Point:
        return self.right_eye[3]

    @classmethod
    def from_68_points(cls, points: Sequence[Point]) -> "Landmarks":
        """Build from a flat 68-point list (jaw 0-16, nose 27-35, eyes 36-47)"""
        if len(points) != 68:
            raise ValueError(f"Expected 68 landmark points, got {len(points)}")
        pts = [(float(x), float(y)) for x, y in points]
        return cls(
            left_eye=pts[36:42],
            right_eye=pts[42:48],
            nose=pts[27:36],
            jaw=pts[0:17],
        )


@dataclass
class FrameAnalysis:
    """Detector output for one processed frame"""
    face_detected: bool
    landmarks: Optional[Landmarks] = None
    expression_scores: Dict[str, float] = field(default_factory=dict)
    detection_score: float = 0.0


@dataclass(frozen=True)
class HeadRotationSignal:
    offset: float
    is_left: bool
    is_right: bool
    is_center: bool


@dataclass(frozen=True)
class EyeAspectRatio:
    left: float
    right: float
    average: float


@dataclass
class FrameSignals:
    """Signals derived from one FrameAnalysis, handed to challenge predicates"""
    analysis: Optional[FrameAnalysis]
    head_rotation: Optional[HeadRotationSignal] = None
    eye_aspect_ratio: Optional[EyeAspectRatio] = None
    blink_event: bool = False

    @property
    def face_detected(self) -> bool:
        return self.analysis is not None and self.analysis.face_detected

    def expression(self, name: str) -> float:
        if self.analysis is None:
            return 0.0
        return float(self.analysis.expression_scores.get(name, 0.0))


@dataclass(frozen=True)
class ChallengeDefinition:
    key: ChallengeKey
    label: str
    instruction: str
    status_message: str
    predicate: Callable[[FrameSignals, "VerificationSession"], bool]


@dataclass(frozen=True)
class CapturedImage:
    key: ChallengeKey
    data_url: str
    width: int
    height: int
    captured_at: float


@dataclass
class VerificationSession:
    """The single mutable entity, owned by the ChallengeStateMachine"""
    ordered_challenges: Tuple[ChallengeDefinition, ...]
    started_at: float
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    current_index: int = 0
    per_challenge_result: Dict[ChallengeKey, bool] = field(default_factory=dict)
    captured_images: Dict[ChallengeKey, CapturedImage] = field(default_factory=dict)
    challenge_timestamps: Dict[ChallengeKey, float] = field(default_factory=dict)
    blink_state: BlinkState = BlinkState.OPEN
    blink_event_count: int = 0
    settling_key: Optional[ChallengeKey] = None
    completed_at: Optional[float] = None

    def __post_init__(self):
        for challenge in self.ordered_challenges:
            self.per_challenge_result.setdefault(challenge.key, False)

    @property
    def current_challenge(self) -> Optional[ChallengeDefinition]:
        if self.current_index < len(self.ordered_challenges):
            return self.ordered_challenges[self.current_index]
        return None

    @property
    def is_exhausted(self) -> bool:
        return self.current_index >= len(self.ordered_challenges)


def _iso(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class VerificationResult:
    """Final outcome of a session. `success` is always derived, never stored."""
    session_id: str
    per_challenge_result: Mapping[ChallengeKey, bool]
    captured_images: Mapping[ChallengeKey, CapturedImage]
    challenge_timestamps: Mapping[ChallengeKey, float]
    started_at: float
    completed_at: Optional[float]

    @property
    def success(self) -> bool:
        return all(self.per_challenge_result.values())

    def to_dict(self, include_images: bool = True) -> Dict[str, Any]:
        """Caller payload: success flag, images keyed by challenge, timestamps"""
        images: Dict[str, Optional[str]] = {key.value: None for key in self.per_challenge_result}
        for key, image in self.captured_images.items():
            images[key.value] = image.data_url if include_images else f"<{image.width}x{image.height} jpeg>"
        return {
            "session_id": self.session_id,
            "success": self.success,
            "images": images,
            "timestamp": _iso(self.completed_at),
            "started_at": _iso(self.started_at),
            "verification_data": {key.value: done for key, done in self.per_challenge_result.items()},
            "challenge_timestamps": {
                key.value: _iso(ts) for key, ts in self.challenge_timestamps.items()
            },
        }


@dataclass
class VerificationFeedback:
    """Status update for whatever renders the verification UI"""
    type: FeedbackType
    message: str
    data: Optional[Dict[str, Any]] = None
