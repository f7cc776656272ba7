"""Exception types raised by queue transports and archive stores."""


class TelemetryError(Exception):
    """Base class for pipeline errors."""


class QueueTransportError(TelemetryError):
    """The work queue could not be reached or rejected the whole request."""


class ArchiveWriteError(TelemetryError):
    """An archive object could not be written."""

    def __init__(self, key: str, message: str):
        super().__init__(f"{key}: {message}")
        self.key = key


class ArchiveNotConfiguredError(TelemetryError):
    """The consumer was invoked without an archive store to write to."""
