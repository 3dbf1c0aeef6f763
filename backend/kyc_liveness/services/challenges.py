"""
Static, ordered challenge table
"""
from typing import Tuple

from ..config import config
from ..models.data_models import ChallengeDefinition, ChallengeKey, FrameSignals, VerificationSession


def _front(signals: FrameSignals, session: VerificationSession) -> bool:
    return signals.face_detected and signals.head_rotation is not None and signals.head_rotation.is_center


def _left(signals: FrameSignals, session: VerificationSession) -> bool:
    return signals.head_rotation is not None and signals.head_rotation.is_left


def _right(signals: FrameSignals, session: VerificationSession) -> bool:
    return signals.head_rotation is not None and signals.head_rotation.is_right


def make_smile_predicate(threshold: float = config.SMILE_THRESHOLD):
    def _smile(signals: FrameSignals, session: VerificationSession) -> bool:
        return signals.expression("happy") > threshold
    return _smile


def _blink(signals: FrameSignals, session: VerificationSession) -> bool:
    # The blink edge itself is computed by the state machine's blink sub-machine
    return signals.blink_event


def build_challenges(smile_threshold: float = config.SMILE_THRESHOLD) -> Tuple[ChallengeDefinition, ...]:
    """
    Build the challenge table. Order is fixed: front, left, right, smile, blink.

    Raises:
        ValueError: the table does not cover every ChallengeKey exactly once, in order
    """
    challenges = (
        ChallengeDefinition(
            key=ChallengeKey.FRONT,
            label="Front Face",
            instruction="Position your head in the center",
            status_message="Face detected",
            predicate=_front
        ),
        ChallengeDefinition(
            key=ChallengeKey.LEFT,
            label="Left Turn",
            instruction="Turn your head to the left",
            status_message="Left turn detected",
            predicate=_left
        ),
        ChallengeDefinition(
            key=ChallengeKey.RIGHT,
            label="Right Turn",
            instruction="Turn your head to the right",
            status_message="Right turn detected",
            predicate=_right
        ),
        ChallengeDefinition(
            key=ChallengeKey.SMILE,
            label="Smile",
            instruction="Please smile",
            status_message="Smile detected",
            predicate=make_smile_predicate(smile_threshold)
        ),
        ChallengeDefinition(
            key=ChallengeKey.BLINK,
            label="Blink",
            instruction="Please blink",
            status_message="Blink detected",
            predicate=_blink
        ),
    )

    if tuple(c.key for c in challenges) != tuple(ChallengeKey):
        raise ValueError("Challenge table must list every ChallengeKey once, in declaration order")

    return challenges


DEFAULT_CHALLENGES = build_challenges()
