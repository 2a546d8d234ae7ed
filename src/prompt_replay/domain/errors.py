"""
Domain Errors

Exception taxonomy of the replay engine. None of these is fatal to a run:
the orchestrator turns per-trace errors into failed results and reports
persistence problems by leaving the results url empty.
"""


class ReplayError(Exception):
    """Base class for replay engine errors"""
    pass


class ResolutionNotFound(ReplayError):
    """No usable prompt variables were located for a trace"""
    pass


class ProviderCallFailure(ReplayError):
    """A provider adapter returned an unusable response"""
    pass


class StoreUnavailable(ReplayError):
    """The trace store could not be reached or answered with a non-2xx status"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(ReplayError):
    """Writing the detailed results payload failed"""
    pass


class SchemaValidationError(ReplayError):
    """Model output does not satisfy the neutral schema"""

    def __init__(self, message: str, path: str = "$"):
        super().__init__(f"{path}: {message}")
        self.path = path
