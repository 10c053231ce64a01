class WebFetchError(Exception):
    """Base class for errors raised by the fetch pipeline."""


class InvalidLocator(WebFetchError):
    """The input URL cannot be parsed or uses an unsupported scheme."""


class ProcessLaunchFailure(WebFetchError):
    """An external process could not be started."""


class OperationAborted(WebFetchError):
    """The invocation's cancellation token fired while a stage was running."""

    def __init__(self, message: str = "Aborted"):
        super().__init__(message)
