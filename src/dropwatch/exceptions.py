"""Custom exceptions for the dropwatch package."""


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class ConfigurationError(WatcherError):
    """Configuration is missing, unreadable or invalid."""
    pass


class RootError(WatcherError):
    """Error related to watched root management."""
    pass


class RootNotFoundError(RootError):
    """Specified root folder does not exist."""
    pass


class RootAlreadyExistsError(RootError):
    """Root folder is already being watched."""
    pass


class SourceError(WatcherError):
    """A single watched root could not be observed."""
    pass


class SinkError(WatcherError):
    """A notification or log sink failed to deliver an event."""
    pass


class WatcherAlreadyRunningError(WatcherError):
    """Watch engine is already running."""
    pass
