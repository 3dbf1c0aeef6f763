"""
Verification Result Builder
"""
from types import MappingProxyType

from ..models.data_models import VerificationResult, VerificationSession


class VerificationResultBuilder:
    """Derives the immutable final result from a session's per-challenge outcomes."""

    def build_result(self, session: VerificationSession) -> VerificationResult:
        """
        Snapshot the session into a VerificationResult.

        Per-challenge results, images and timestamps are copied and exposed
        read-only, so neither a later reset() nor the caller can alter a
        delivered result. `success` is computed by the result itself as the
        AND over per_challenge_result.
        """
        return VerificationResult(
            session_id=session.session_id,
            per_challenge_result=MappingProxyType(dict(session.per_challenge_result)),
            captured_images=MappingProxyType(dict(session.captured_images)),
            challenge_timestamps=MappingProxyType(dict(session.challenge_timestamps)),
            started_at=session.started_at,
            completed_at=session.completed_at
        )
