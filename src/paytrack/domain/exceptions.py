class PaytrackError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(PaytrackError):
    """Requested payroll run does not exist."""


class ConflictError(PaytrackError):
    """Operation conflicts with existing state (e.g. a run already exists for the period)."""


class StageTransitionError(PaytrackError):
    """A stage action was invoked before the stage became eligible."""


class AuthenticationError(PaytrackError):
    """No bearer token is available for an authenticated request."""
