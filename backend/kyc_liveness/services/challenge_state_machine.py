"""
Challenge State Machine driving the ordered liveness challenges frame by frame
"""
import logging
import numpy as np
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..config import config
from ..errors import InvalidTransitionError
from ..models.data_models import (
    BlinkState,
    ChallengeDefinition,
    ChallengeKey,
    ChallengeState,
    FeedbackType,
    FrameAnalysis,
    FrameSignals,
    MachineState,
    VerificationFeedback,
    VerificationResult,
    VerificationSession,
)
from .capture_store import CaptureStore
from .challenges import DEFAULT_CHALLENGES
from .geometry_analyzer import GeometryAnalyzer
from .result_builder import VerificationResultBuilder
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class ChallengeStateMachine:
    """
    Walks one user through the ordered challenge table.

    Idle -(start)-> Running(challenge[0]) -(predicate true)-> Settling
    -(settle delay elapsed, image captured)-> Running(challenge[i+1]) -> ...
    -> Completed. cancel() moves to Cancelled from any non-terminal state.

    Only the active challenge's predicate is evaluated, and each challenge
    moves Pending -> Active -> Satisfied exactly once per session. Every
    deferred callback receives the session it was scheduled for and does
    nothing if that session has since been reset or moved on.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        capture_store: Optional[CaptureStore] = None,
        result_builder: Optional[VerificationResultBuilder] = None,
        analyzer: Optional[GeometryAnalyzer] = None,
        challenges: Tuple[ChallengeDefinition, ...] = DEFAULT_CHALLENGES,
        settle_delay: float = config.SETTLE_DELAY_SECONDS,
        blink_reset_delay: float = config.BLINK_RESET_DELAY_SECONDS,
        both_eyes_threshold: float = config.EAR_BOTH_EYES_THRESHOLD,
        single_eye_threshold: float = config.EAR_SINGLE_EYE_THRESHOLD,
        allow_single_eye_blink: bool = config.ALLOW_SINGLE_EYE_BLINK,
        on_verification_complete: Optional[Callable[[VerificationResult], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        on_feedback: Optional[Callable[[VerificationFeedback], None]] = None
    ):
        """
        Args:
            scheduler: Clock and timer source for settle/blink-reset delays
            capture_store: Stores one image per satisfied challenge
            result_builder: Builds the final VerificationResult
            analyzer: Derives head rotation / EAR signals from landmarks
            challenges: Ordered challenge table
            settle_delay: Seconds between satisfying a challenge and capturing it
            blink_reset_delay: Seconds before a registered closure re-arms
            both_eyes_threshold: Average EAR below which both eyes count as closed
            single_eye_threshold: Per-eye EAR below which one eye counts as closed
            allow_single_eye_blink: Accept a one-eye closure (wink) as a blink
            on_verification_complete: Invoked once with the result on completion
            on_cancel: Invoked once if the session is cancelled before completion
            on_feedback: Receives status updates for the UI
        """
        if not challenges:
            raise ValueError("At least one challenge is required")

        self.scheduler = scheduler
        self.capture_store = capture_store or CaptureStore()
        self.result_builder = result_builder or VerificationResultBuilder()
        self.analyzer = analyzer or GeometryAnalyzer()
        self.challenges = tuple(challenges)
        self.settle_delay = settle_delay
        self.blink_reset_delay = blink_reset_delay
        self.both_eyes_threshold = both_eyes_threshold
        self.single_eye_threshold = single_eye_threshold
        self.allow_single_eye_blink = allow_single_eye_blink
        self.on_verification_complete = on_verification_complete
        self.on_cancel = on_cancel
        self.on_feedback = on_feedback

        self._state = MachineState.IDLE
        self._session: Optional[VerificationSession] = None
        self._result: Optional[VerificationResult] = None
        self._latest_frame: Optional[np.ndarray] = None
        self._capture_pending = False
        self._timers: Set[TimerHandle] = set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> MachineState:
        return self._state

    @property
    def session(self) -> Optional[VerificationSession]:
        return self._session

    @property
    def result(self) -> Optional[VerificationResult]:
        return self._result

    @property
    def is_terminal(self) -> bool:
        return self._state in (MachineState.COMPLETED, MachineState.CANCELLED)

    @property
    def pending_timer_count(self) -> int:
        return len(self._timers)

    @property
    def active_challenge(self) -> Optional[ChallengeDefinition]:
        if self._state != MachineState.RUNNING or self._session is None:
            return None
        return self._session.current_challenge

    def challenge_state(self, key: ChallengeKey) -> ChallengeState:
        session = self._session
        if session is None:
            return ChallengeState.PENDING
        if session.per_challenge_result.get(key, False):
            return ChallengeState.SATISFIED
        active = self.active_challenge
        if active is not None and active.key == key:
            return ChallengeState.ACTIVE
        return ChallengeState.PENDING

    def challenge_states(self) -> Dict[ChallengeKey, ChallengeState]:
        return {c.key: self.challenge_state(c.key) for c in self.challenges}

    def progress(self) -> List[Dict[str, Any]]:
        """Per-step view for a step indicator: key, label, instruction and state"""
        return [
            {
                "key": c.key.value,
                "label": c.label,
                "instruction": c.instruction,
                "state": self.challenge_state(c.key).value,
            }
            for c in self.challenges
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> VerificationSession:
        """
        Begin a session at the first challenge.

        Raises:
            InvalidTransitionError: the machine is not Idle (use reset() instead)
        """
        if self._state != MachineState.IDLE:
            raise InvalidTransitionError(f"start() requires state idle, current state is {self._state.value}")

        self._session = self._new_session()
        self._state = MachineState.RUNNING
        logger.info(f"Verification session {self._session.session_id} started")
        self._issue_current_challenge()
        return self._session

    def reset(self) -> VerificationSession:
        """
        Discard all progress and return to the first challenge.

        Pending timers are cancelled and a fresh session replaces the old one,
        so any callback still holding the old session becomes a no-op.
        """
        self._cancel_timers()
        previous = self._session
        self._session = self._new_session()
        self._result = None
        self._capture_pending = False
        self._state = MachineState.RUNNING

        if previous is not None:
            logger.info(f"Session {previous.session_id} reset; new session {self._session.session_id}")
        self._emit(FeedbackType.SESSION_RESET, "Verification restarted",
                   {"session_id": self._session.session_id})
        self._issue_current_challenge()
        return self._session

    def cancel(self) -> bool:
        """
        Abort before completion. No result is produced.

        Returns:
            bool: True if the session was cancelled, False if already terminal
        """
        if self.is_terminal:
            return False

        self._cancel_timers()
        self._capture_pending = False
        self._state = MachineState.CANCELLED
        session_id = self._session.session_id if self._session else None
        logger.info(f"Verification session {session_id} cancelled")
        self._emit(FeedbackType.SESSION_CANCELLED, "Verification cancelled", {"session_id": session_id})
        if self.on_cancel is not None:
            self.on_cancel()
        return True

    def shutdown(self) -> None:
        """Teardown: cancel all pending timers without emitting anything"""
        self._cancel_timers()
        self._capture_pending = False

    # ------------------------------------------------------------------
    # Per-frame processing
    # ------------------------------------------------------------------

    def process_frame(self, analysis: Optional[FrameAnalysis], frame: Optional[np.ndarray] = None) -> bool:
        """
        Evaluate the active challenge against one frame.

        Args:
            analysis: Detector output, or None when no face was found
            frame: The BGR frame the analysis came from; kept as the capture source

        Returns:
            bool: True if the active challenge was satisfied by this frame
        """
        if frame is not None:
            self._latest_frame = frame

        if self._state == MachineState.SETTLING and self._capture_pending and frame is not None:
            self._finish_settling(self._session)
            return False

        if self._state != MachineState.RUNNING:
            return False

        session = self._session
        challenge = session.current_challenge
        signals = self.analyzer.analyze(analysis)

        if challenge.key == ChallengeKey.BLINK:
            signals.blink_event = self._update_blink(session, signals)

        if not challenge.predicate(signals, session):
            return False

        self._satisfy(session, challenge)
        return True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _new_session(self) -> VerificationSession:
        return VerificationSession(ordered_challenges=self.challenges, started_at=self.scheduler.now())

    def _issue_current_challenge(self) -> None:
        challenge = self._session.current_challenge
        logger.info(f"Challenge {self._session.current_index + 1}/{len(self.challenges)}: {challenge.key.value}")
        self._emit(
            FeedbackType.CHALLENGE_ISSUED,
            challenge.instruction,
            {
                "challenge": challenge.key.value,
                "label": challenge.label,
                "index": self._session.current_index,
                "total": len(self.challenges),
            }
        )

    def _satisfy(self, session: VerificationSession, challenge: ChallengeDefinition) -> None:
        key = challenge.key
        session.per_challenge_result[key] = True
        session.challenge_timestamps[key] = self.scheduler.now()
        session.settling_key = key
        self._state = MachineState.SETTLING

        logger.info(f"Challenge '{key.value}' satisfied; settling for {self.settle_delay:.2f}s")
        self._emit(FeedbackType.CHALLENGE_SATISFIED, challenge.status_message, {"challenge": key.value})
        self._schedule(self.settle_delay, lambda: self._on_settle_elapsed(session, key))

    def _on_settle_elapsed(self, session: VerificationSession, key: ChallengeKey) -> None:
        if session is not self._session or self._state != MachineState.SETTLING or session.settling_key != key:
            logger.warning(f"Ignoring stale settle callback for '{key.value}' (session {session.session_id})")
            return
        self._finish_settling(session)

    def _finish_settling(self, session: VerificationSession) -> None:
        key = session.settling_key
        if not self.capture_store.capture_current_challenge_image(
            session, self._latest_frame, captured_at=self.scheduler.now()
        ):
            # Retried on the next frame that carries pixels
            self._capture_pending = True
            return

        self._capture_pending = False
        self._emit(FeedbackType.IMAGE_CAPTURED, f"Captured {key.value} image", {"challenge": key.value})
        session.settling_key = None
        session.current_index += 1

        if session.is_exhausted:
            self._complete(session)
        else:
            self._state = MachineState.RUNNING
            self._issue_current_challenge()

    def _complete(self, session: VerificationSession) -> None:
        session.completed_at = self.scheduler.now()
        self._state = MachineState.COMPLETED
        self._cancel_timers()
        self._result = self.result_builder.build_result(session)

        duration = session.completed_at - session.started_at
        logger.info(
            f"Verification session {session.session_id} completed in {duration:.2f}s: "
            f"success={self._result.success}"
        )
        self._emit(
            FeedbackType.VERIFICATION_COMPLETE,
            "Verification successful!" if self._result.success else "Verification failed. Please try again.",
            {"success": self._result.success}
        )
        if self.on_verification_complete is not None:
            self.on_verification_complete(self._result)

    # ------------------------------------------------------------------
    # Blink sub-machine
    # ------------------------------------------------------------------

    def _update_blink(self, session: VerificationSession, signals: FrameSignals) -> bool:
        """
        Register at most one blink event per closure.

        Open -> Closed on a closed-eye frame (event fires); Closed -> Open only
        via the reset timer, whatever the EAR is at that moment.
        """
        ear = signals.eye_aspect_ratio
        if ear is None or session.blink_state != BlinkState.OPEN:
            return False

        both_closed = ear.average < self.both_eyes_threshold
        left_closed = ear.left < self.single_eye_threshold
        right_closed = ear.right < self.single_eye_threshold
        wink = self.allow_single_eye_blink and left_closed != right_closed

        if not (both_closed or wink):
            return False

        session.blink_state = BlinkState.CLOSED
        session.blink_event_count += 1

        kind = "blink" if both_closed else ("left wink" if left_closed else "right wink")
        logger.info(
            f"{kind} detected (count={session.blink_event_count}): "
            f"EAR left={ear.left:.3f} right={ear.right:.3f} avg={ear.average:.3f}"
        )
        self._schedule(self.blink_reset_delay, lambda: self._on_blink_reset(session))
        return True

    def _on_blink_reset(self, session: VerificationSession) -> None:
        if session is not self._session or session.blink_state != BlinkState.CLOSED:
            logger.debug(f"Ignoring stale blink reset (session {session.session_id})")
            return
        session.blink_state = BlinkState.OPEN

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle: Optional[TimerHandle] = None

        def _run():
            self._timers.discard(handle)
            callback()

        handle = self.scheduler.call_later(delay, _run)
        self._timers.add(handle)
        return handle

    def _cancel_timers(self) -> None:
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()

    def _emit(self, feedback_type: FeedbackType, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        if self.on_feedback is not None:
            self.on_feedback(VerificationFeedback(type=feedback_type, message=message, data=data))
