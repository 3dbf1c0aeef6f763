"""
Error taxonomy for the liveness verification engine

A face that is simply not found is not an error: the detector returns None
and the active challenge stays unsatisfied.
"""


class LivenessError(Exception):
    """Base class for all liveness verification errors"""


class ModelLoadError(LivenessError):
    """The landmark detector (or expression model) failed to initialize. Fatal."""


class CameraAccessError(LivenessError):
    """No camera device, or permission to use it was denied. Fatal."""


class ComputationDegenerate(LivenessError):
    """
    A geometric signal could not be computed for this frame, e.g. a
    near-zero eye width. The frame is skipped without any state change.
    """


class SessionAborted(LivenessError):
    """The caller cancelled the verification before it completed."""


class InvalidTransitionError(LivenessError):
    """A state machine operation was invoked in a state that does not allow it."""
