"""Data models for the dropwatch package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional
import time


class EventType(Enum):
    """Types of semantic events emitted by the engine."""
    FILE_READY = "file_ready"
    DIRECTORY_ADDED = "directory_added"
    SCAN_COMPLETE = "scan_complete"
    WATCH_ERROR = "watch_error"
    RAW_OBSERVED = "raw_observed"


class RawEventKind(Enum):
    """Types of raw events produced by a watch source."""
    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    ERROR = "error"
    SCAN_COMPLETE = "scan_complete"


class FileState(Enum):
    """Lifecycle states of a tracked file."""
    GROWING = "growing"
    SETTLED = "settled"
    REMOVED = "removed"


class LogLevel(Enum):
    """Levels accepted by log sinks."""
    INFO = "INFO"
    ERROR = "ERROR"
    DEBUG = "DEBUG"


@dataclass(frozen=True)
class WatchedRoot:
    """
    A top-level directory configured for monitoring.

    Attributes:
        id: Display identifier used in notifications and logs
        path: Absolute, resolved path of the directory
    """
    id: str
    path: Path

    def __post_init__(self):
        if not self.path.is_absolute():
            raise ValueError(f"root path must be absolute: {self.path}")

    @classmethod
    def from_path(cls, path: Path) -> "WatchedRoot":
        """Create a root from a configured folder, resolving it."""
        resolved = Path(path).resolve()
        return cls(id=str(resolved), path=resolved)

    def __str__(self) -> str:
        return self.id


@dataclass
class TrackedFile:
    """
    A file that is being written and has not settled yet.

    Attributes:
        path: Absolute path of the file
        root: The watched root that contains the file
        size: Last observed size in bytes
        mtime_ns: Last observed modification time in nanoseconds
        first_seen_at: Clock time of the first observation
        last_changed_at: Clock time of the last observed size/mtime change
        last_checked_at: Clock time of the last stability check
        state: Current lifecycle state
        binary: Whether the longer binary re-check interval applies
    """
    path: Path
    root: WatchedRoot
    size: int
    mtime_ns: int
    first_seen_at: float
    last_changed_at: float
    last_checked_at: float
    state: FileState = FileState.GROWING
    binary: bool = False

    @property
    def signature(self) -> tuple:
        """Size and mtime pair used to detect changes."""
        return (self.size, self.mtime_ns)

    def settles_at(self, stability_window: float) -> float:
        """Clock time at which the file becomes settled if left untouched."""
        return self.last_changed_at + stability_window


@dataclass
class RawFSEvent:
    """
    Raw event from a watch source before filtering and stabilisation.

    Attributes:
        kind: The raw event kind
        path: Affected path (None for root-level errors and scan completion)
        root: The watched root that produced the event
        is_directory: Whether the source reported a directory
        detail: Human readable detail for ERROR events
        timestamp: Unix timestamp when the event occurred
    """
    kind: RawEventKind
    path: Optional[Path]
    root: Optional[WatchedRoot] = None
    is_directory: bool = False
    detail: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SemanticEvent:
    """
    Event emitted by the watch engine and delivered to every sink.

    Attributes:
        event_type: Which kind of semantic event this is
        path: Absolute path of the file or directory, if any
        root: Owning watched root, if the path resolved to one
        relative_path: Path relative to the owning root (or the absolute
            path when no root contains it)
        message: Error message for WATCH_ERROR events
        raw_kind: Raw event kind for RAW_OBSERVED events
        timestamp: Unix timestamp when the event was created
    """
    event_type: EventType
    path: Optional[Path] = None
    root: Optional[WatchedRoot] = None
    relative_path: Optional[Path] = None
    message: Optional[str] = None
    raw_kind: Optional[RawEventKind] = None
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def file_ready(
        cls,
        path: Path,
        root: Optional[WatchedRoot],
        relative_path: Optional[Path] = None,
    ) -> "SemanticEvent":
        return cls(
            EventType.FILE_READY,
            path=path,
            root=root,
            relative_path=relative_path or path,
        )

    @classmethod
    def directory_added(
        cls,
        path: Path,
        root: Optional[WatchedRoot],
        relative_path: Optional[Path] = None,
    ) -> "SemanticEvent":
        return cls(
            EventType.DIRECTORY_ADDED,
            path=path,
            root=root,
            relative_path=relative_path or path,
        )

    @classmethod
    def scan_complete(cls) -> "SemanticEvent":
        return cls(EventType.SCAN_COMPLETE)

    @classmethod
    def watch_error(cls, message: str, root: Optional[WatchedRoot] = None) -> "SemanticEvent":
        return cls(EventType.WATCH_ERROR, root=root, message=message)

    @classmethod
    def raw_observed(cls, kind: RawEventKind, path: Optional[Path]) -> "SemanticEvent":
        return cls(EventType.RAW_OBSERVED, path=path, raw_kind=kind)

    @property
    def is_critical(self) -> bool:
        """Critical events are never dropped by the router."""
        return self.event_type in (EventType.FILE_READY, EventType.WATCH_ERROR)

    @property
    def is_debug(self) -> bool:
        return self.event_type == EventType.RAW_OBSERVED

    def to_dict(self) -> dict:
        """Convert to dictionary for logging and serialization."""
        return {
            "event_type": self.event_type.value,
            "path": str(self.path) if self.path else None,
            "root": self.root.id if self.root else None,
            "relative_path": str(self.relative_path) if self.relative_path else None,
            "message": self.message,
            "raw_kind": self.raw_kind.value if self.raw_kind else None,
            "timestamp": self.timestamp,
        }
