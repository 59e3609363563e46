"""
Exception hierarchy for praetor-monitor.
"""


class PraetorError(Exception):
    """Base class for all praetor-monitor errors."""
    pass


class PlatformError(PraetorError):
    """A call to the automation platform did not produce a usable response."""
    pass


class PlatformTransportError(PlatformError):
    """Network failure or timeout while talking to the platform."""
    pass


class PlatformHTTPError(PlatformError):
    """The platform answered with a non-success status code."""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        message = f"HTTP {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SchedulerError(PraetorError):
    """Invalid use of a sync scheduler instance."""
    pass


class InvalidVariablesError(PraetorError):
    """Operator-supplied variables are not a JSON object."""
    pass
