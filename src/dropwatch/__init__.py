"""
Drop Folder Watcher Package

Watches folders for newly written files and new subdirectories and tells
an operator when an artifact has landed and is safe to use.

Features:
- Native (inotify/FSEvents/ReadDirectoryChanges) or polling observation
- Debounce-by-inactivity detection of files that finished writing
- Extension allow-list and hidden entry filtering
- Longest-prefix mapping of paths to their watched root
- Non-blocking fan-out of events to notification and log sinks
"""

from .models import (
    EventType,
    RawEventKind,
    FileState,
    LogLevel,
    WatchedRoot,
    TrackedFile,
    RawFSEvent,
    SemanticEvent,
)

from .config import WatcherConfig, load_config, find_config_path

from .exceptions import (
    WatcherError,
    ConfigurationError,
    RootError,
    RootNotFoundError,
    RootAlreadyExistsError,
    SourceError,
    SinkError,
    WatcherAlreadyRunningError,
)

from .path_resolver import PathResolver, Resolution
from .stability import StabilityTracker
from .sources import WatchSource, WatchSourcePool, FSEventHandler
from .router import EventRouter
from .sinks import (
    NotificationSink,
    LogSink,
    NotificationDispatcher,
    LogDispatcher,
    ConsoleSink,
    DailyFileLogSink,
    DesktopNotifier,
    SoundPlayer,
)
from .engine import WatchEngine


__all__ = [
    # Models
    "EventType",
    "RawEventKind",
    "FileState",
    "LogLevel",
    "WatchedRoot",
    "TrackedFile",
    "RawFSEvent",
    "SemanticEvent",
    # Config
    "WatcherConfig",
    "load_config",
    "find_config_path",
    # Exceptions
    "WatcherError",
    "ConfigurationError",
    "RootError",
    "RootNotFoundError",
    "RootAlreadyExistsError",
    "SourceError",
    "SinkError",
    "WatcherAlreadyRunningError",
    # Components
    "PathResolver",
    "Resolution",
    "StabilityTracker",
    "WatchSource",
    "WatchSourcePool",
    "FSEventHandler",
    "EventRouter",
    # Sinks
    "NotificationSink",
    "LogSink",
    "NotificationDispatcher",
    "LogDispatcher",
    "ConsoleSink",
    "DailyFileLogSink",
    "DesktopNotifier",
    "SoundPlayer",
    # Engine
    "WatchEngine",
]

__version__ = "0.1.0"
