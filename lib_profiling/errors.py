"""Exception hierarchy for the profiling engine."""

from __future__ import annotations


class ProfilingError(Exception):
    """Base class for all engine errors."""


class ExtractionError(ProfilingError):
    """An interaction event is missing a mandatory identifier."""


class InsufficientDataError(ProfilingError):
    """Too little aggregated activity to score traits."""

    def __init__(self, message: str, message_count: int = 0, required: int = 0) -> None:
        super().__init__(message)
        self.message_count = message_count
        self.required = required


class ConsentMissingError(ProfilingError):
    """The user has not granted consent; nothing may be analysed or written."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Consent not granted for user '{user_id}'")
        self.user_id = user_id


class ValidationProviderError(ProfilingError):
    """The Tier-2 provider timed out, errored, or returned an unusable reply."""


class CorrelationComputeError(ProfilingError):
    """A benchmark correlation could not be computed reliably."""


class RunFailure(ProfilingError):
    """An analysis run aborted on an unhandled error."""


class RunStateError(ProfilingError, ValueError):
    """An illegal analysis-run status transition was requested."""
