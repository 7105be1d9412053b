"""
Exception taxonomy for the change-orchestration loop.

Every failure is scoped to the request that raised it. Only expected,
locally-recoverable conditions are modelled as exceptions here; mechanical
edit failures and installer failures travel as result objects instead.
"""


class LoopError(Exception):
    """Base class for all loop errors."""


class AmbiguousRequestError(LoopError):
    """Raised when a request lacks enough information to derive any step."""

    def __init__(self, message: str, question: str = "") -> None:
        super().__init__(message)
        self.question = question or "Could you describe the change in more detail?"


class UnknownStepError(LoopError):
    """Raised when a status update names a step absent from the current plan."""

    def __init__(self, step_id: int) -> None:
        super().__init__(f"Step {step_id} is not part of the current plan")
        self.step_id = step_id


class NoActionableCauseError(LoopError):
    """Raised when an error carries no location and no recognisable pattern."""

    def __init__(self, message: str, events: list | None = None) -> None:
        super().__init__(message)
        self.events = list(events or [])
