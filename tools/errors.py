from typing import Any, Dict, Optional


class IntakeError(Exception):
    """Base class for all gateway errors."""

    status_code = 500


class StepSkipped(IntakeError):
    """A fan-out step decided not to run (below threshold, nothing to send...)."""


class ConfigMissing(StepSkipped):
    """The collaborator has no credentials configured."""


class UpstreamError(IntakeError):
    """A collaborator answered non-2xx, or the request never completed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ValidationError(IntakeError):
    """Required input is missing from the request."""

    status_code = 400


class FileLimitError(IntakeError):
    """Uploads exceed the per-request limits."""

    status_code = 413

    def __init__(self, message: str, limits: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.limits = limits or {}
