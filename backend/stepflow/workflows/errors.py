"""Exception hierarchy for the flow engine and its collaborators."""


class StepflowError(Exception):
    """Base error type."""


class FlowSpecError(StepflowError):
    """Raised when a flow declaration references unknown streams or steps."""


class ExtractionError(StepflowError):
    """Raised by a step when the inbound event carries a malformed payload."""


class ExternalLookupError(StepflowError):
    """Raised when a collaborator call made during a prompt fails."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class StateStoreError(StepflowError):
    """Raised when conversation state could not be read or merged."""


class CompletionError(StepflowError):
    """Raised when a prompt signals completion more than once."""


class TurnTimeoutError(StepflowError):
    """Raised when a prompt does not signal completion in time."""
