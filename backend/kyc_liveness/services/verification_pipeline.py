"""
Verification pipeline: samples frames, runs detection and drives the state machine

FrameSource -> LandmarkDetector -> ChallengeStateMachine -> caller callbacks
"""
import asyncio
import inspect
import logging
import time
import numpy as np
from typing import Callable, Iterable, Optional

from ..config import config
from ..errors import InvalidTransitionError, ModelLoadError, SessionAborted
from ..models.data_models import MachineState, VerificationFeedback, VerificationResult
from .challenge_state_machine import ChallengeStateMachine
from .frame_source import FrameSource
from .landmark_detector import LandmarkDetector
from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler

logger = logging.getLogger(__name__)


class VerificationPipeline:
    """
    Runs one verification at a time on the asyncio event loop.

    Detection is awaited before the next frame is sampled, so there is never
    more than one detection in flight and frames are consumed in order.
    """

    def __init__(
        self,
        detector: LandmarkDetector,
        frame_source: FrameSource,
        scheduler: Optional[Scheduler] = None,
        interval: float = config.DETECTION_INTERVAL_SECONDS,
        on_verification_complete: Optional[Callable[[VerificationResult], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        on_feedback: Optional[Callable[[VerificationFeedback], None]] = None,
        **machine_options
    ):
        """
        Args:
            detector: Landmark detector (sync or async detect())
            frame_source: Where frames come from
            scheduler: Timer source; defaults to the running event loop
            interval: Seconds between frame samples
            on_verification_complete: Invoked once with the final result
            on_cancel: Invoked if the caller aborts before completion
            on_feedback: Receives status updates for the UI
            **machine_options: Forwarded to ChallengeStateMachine (delays, thresholds)
        """
        self.detector = detector
        self.frame_source = frame_source
        self.scheduler = scheduler or AsyncioScheduler()
        self.interval = interval
        self.on_verification_complete = on_verification_complete
        self.on_cancel = on_cancel

        self.machine = ChallengeStateMachine(
            self.scheduler,
            on_verification_complete=self._handle_complete,
            on_cancel=self._handle_cancel,
            on_feedback=on_feedback,
            **machine_options
        )
        self.frames_processed = 0
        self._detector_ready = False
        self._done: Optional[asyncio.Future] = None

    @property
    def is_running(self) -> bool:
        return self._done is not None and not self._done.done()

    async def run(self) -> VerificationResult:
        """
        Run a verification until it completes or is cancelled.

        The detector is initialized once and reused by later runs. A run
        after a completed or cancelled one starts from a fresh session.

        Returns:
            VerificationResult: the completed verification

        Raises:
            ModelLoadError: the detector could not be initialized
            CameraAccessError: the frame source could not be opened
            SessionAborted: cancel() was called before completion
        """
        if self.is_running:
            raise InvalidTransitionError("Verification is already running")

        if not self._detector_ready:
            self.detector.initialize()
            self._detector_ready = True

        self.frame_source.open()
        self._done = asyncio.get_running_loop().create_future()

        try:
            if self.machine.state == MachineState.IDLE:
                self.machine.start()
            else:
                self.machine.reset()

            while not self._done.done():
                await self._process_next_frame()
                if self._done.done():
                    break
                await asyncio.wait({self._done}, timeout=self.interval)

            return self._done.result()
        finally:
            self.machine.shutdown()
            self.frame_source.release()
            logger.info(f"Verification pipeline stopped after {self.frames_processed} frame(s)")

    async def _process_next_frame(self) -> None:
        current = self.frame_source.current_frame()
        if current is None:
            return
        pixels, _, _ = current

        try:
            analysis = self.detector.detect(pixels)
            if inspect.isawaitable(analysis):
                analysis = await analysis
        except ModelLoadError:
            raise
        except Exception as e:
            logger.error(f"Landmark detection failed, skipping frame: {e}")
            return

        # cancel() may have landed while detection was in flight
        if self._done.done():
            return

        self.machine.process_frame(analysis, pixels)
        self.frames_processed += 1

    def cancel(self) -> bool:
        """Abort the running verification. No result is produced."""
        return self.machine.cancel()

    def reset(self) -> None:
        """Restart from the first challenge; the detector stays initialized"""
        self.machine.reset()

    def close(self) -> None:
        """Release everything, including the detector's model"""
        self.machine.shutdown()
        self.frame_source.release()
        self.detector.close()
        self._detector_ready = False

    def _handle_complete(self, result: VerificationResult) -> None:
        if self._done is not None and not self._done.done():
            self._done.set_result(result)
        if self.on_verification_complete is not None:
            self.on_verification_complete(result)

    def _handle_cancel(self) -> None:
        if self._done is not None and not self._done.done():
            self._done.set_exception(SessionAborted("Verification cancelled by caller"))
        if self.on_cancel is not None:
            self.on_cancel()


def replay_frames(
    detector: LandmarkDetector,
    frames: Iterable[np.ndarray],
    fps: float,
    on_feedback: Optional[Callable[[VerificationFeedback], None]] = None,
    start: Optional[float] = None,
    **machine_options
) -> Optional[VerificationResult]:
    """
    Verify a recorded clip. Time advances by 1/fps per frame, so settle and
    blink-reset delays are measured in video time rather than wall time.

    Args:
        detector: Landmark detector with a synchronous detect()
        frames: BGR frames in playback order
        fps: Frame rate of the recording
        start: Wall-clock time of the first frame; defaults to now. Result
            timestamps are offsets from it in video time.

    Returns:
        VerificationResult if every challenge completed within the clip, else None
    """
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")

    detector.initialize()
    scheduler = ManualScheduler(start=time.time() if start is None else start)
    machine = ChallengeStateMachine(scheduler, on_feedback=on_feedback, **machine_options)
    machine.start()

    frame_period = 1.0 / fps
    count = 0
    try:
        for frame in frames:
            machine.process_frame(detector.detect(frame), frame)
            scheduler.advance(frame_period)
            count += 1
            if machine.state == MachineState.COMPLETED:
                break
        # Let a final settle delay elapse after the last frame
        if machine.state == MachineState.SETTLING:
            scheduler.advance(machine.settle_delay)
    finally:
        machine.shutdown()

    logger.info(f"Replayed {count} frame(s); final state {machine.state.value}")
    return machine.result
