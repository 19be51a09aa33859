"""Configuration for the dropwatch package."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DROPWATCH_CONFIG"
DEFAULT_CONFIG_NAME = "config.json"


def _default_binary_extensions() -> List[str]:
    return [
        ".mxf", ".mov", ".mp4", ".m4v", ".mkv", ".avi", ".mts", ".r3d", ".braw",
        ".wav", ".aif", ".aiff", ".mp3", ".flac",
        ".zip", ".tar", ".gz", ".7z", ".rar", ".iso", ".dmg",
        ".bin", ".exe", ".dll", ".so",
        ".jpg", ".jpeg", ".png", ".tif", ".tiff", ".exr", ".dpx", ".psd", ".pdf",
    ]


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


@dataclass
class WatcherConfig:
    """
    Configuration options for the watch engine and its host.

    Attributes:
        watch_folders: Directories to monitor
        ext_to_watch: File extension that triggers ready notifications
        use_polling: Use stat polling instead of native OS events
        interval_ms: Polling re-scan interval for the watch sources
        binary_interval_ms: Stability re-check interval for binary files
        binary_extensions: Extensions treated as binary files
        stability_threshold_ms: Time a file must stay unchanged to settle
        poll_interval_ms: How often in-flight files are re-checked
        enable_debug_logging: Route every raw event as a debug event
        recursive: Whether to watch subdirectories
        sound_notification_path: Sound played when a file is ready
        app_icon_path: Icon shown in desktop notifications
        log_folder: Folder for date-stamped log files
        router_queue_size: Capacity of the sink dispatch queue
        shutdown_timeout_s: Time allowed for draining sinks on shutdown
    """
    watch_folders: List[Path] = field(default_factory=list)
    ext_to_watch: str = ".mxf"
    use_polling: bool = False
    interval_ms: int = 2000
    binary_interval_ms: int = 3000
    binary_extensions: List[str] = field(default_factory=_default_binary_extensions)
    stability_threshold_ms: int = 5000
    poll_interval_ms: int = 1000
    enable_debug_logging: bool = False
    recursive: bool = True
    sound_notification_path: Optional[Path] = None
    app_icon_path: Optional[Path] = None
    log_folder: Path = field(default_factory=lambda: Path("logs"))
    router_queue_size: int = 1000
    shutdown_timeout_s: float = 5.0

    def __post_init__(self):
        self.watch_folders = [Path(p) for p in self.watch_folders]
        self.ext_to_watch = _normalize_extension(self.ext_to_watch)
        self.binary_extensions = [_normalize_extension(e) for e in self.binary_extensions]
        if isinstance(self.log_folder, str):
            self.log_folder = Path(self.log_folder)
        if isinstance(self.sound_notification_path, str):
            self.sound_notification_path = Path(self.sound_notification_path)
        if isinstance(self.app_icon_path, str):
            self.app_icon_path = Path(self.app_icon_path)

        if not self.ext_to_watch:
            raise ConfigurationError("ext_to_watch must not be empty")
        for name in ("interval_ms", "binary_interval_ms", "stability_threshold_ms", "poll_interval_ms"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        if self.router_queue_size <= 0:
            raise ConfigurationError("router_queue_size must be positive")

    @property
    def ext_label(self) -> str:
        """Extension without the dot, upper-cased for display (e.g. MXF)."""
        return self.ext_to_watch.lstrip(".").upper()

    def is_watched_file(self, path: Path) -> bool:
        """Check whether a path carries the watched extension (case-insensitive)."""
        return str(path).lower().endswith(self.ext_to_watch)

    def is_binary(self, path: Path) -> bool:
        """Check whether a path should use the binary re-check interval."""
        return Path(path).suffix.lower() in self.binary_extensions

    def validate_roots(self) -> None:
        """
        Check that every watch folder exists and is a directory.

        Raises:
            ConfigurationError: If no folders are configured or one is invalid
        """
        if not self.watch_folders:
            raise ConfigurationError("No watch folders configured")
        for folder in self.watch_folders:
            if not folder.exists():
                raise ConfigurationError(f"Watch folder not found at: {folder}")
            if not folder.is_dir():
                raise ConfigurationError(f"Watch folder is not a directory: {folder}")


def find_config_path(explicit: Optional[str] = None) -> Path:
    """
    Locate the configuration file.

    Order: explicit argument, DROPWATCH_CONFIG environment variable,
    then config.json in the current directory.
    """
    if explicit:
        return Path(explicit).resolve()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).resolve()
    return Path.cwd() / DEFAULT_CONFIG_NAME


def _expect(data: Dict[str, Any], key: str, kind: type, default: Any = None) -> Any:
    value = data.get(key, default)
    if value is None:
        return default
    # bool is an int subclass; keep flags and numbers apart
    if kind is int and isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}")
    if not isinstance(value, kind):
        raise ConfigurationError(f"'{key}' must be of type {kind.__name__}, got {value!r}")
    return value


def config_from_dict(data: Dict[str, Any], base_dir: Path) -> WatcherConfig:
    """
    Build a WatcherConfig from the JSON config schema.

    Relative paths resolve against base_dir. A configured icon that does
    not exist is dropped.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a JSON object")

    folders = _expect(data, "watchFolders", list)
    if not folders:
        raise ConfigurationError("'watchFolders' must list at least one folder")
    watch_folders = [(base_dir / str(p)).resolve() for p in folders]

    settings = _expect(data, "watcherSettings", dict, {})

    sound = _expect(data, "soundNotificationPath", str)
    icon = _expect(data, "appIconPath", str)
    icon_path = (base_dir / icon).resolve() if icon else None
    if icon_path is not None and not icon_path.exists():
        logger.debug(f"App icon not found, notifications will use the default: {icon_path}")
        icon_path = None

    kwargs: Dict[str, Any] = dict(
        watch_folders=watch_folders,
        ext_to_watch=_expect(data, "extToWatch", str, ".mxf"),
        use_polling=_expect(settings, "usePolling", bool, False),
        stability_threshold_ms=_expect(settings, "stabilityThreshold", int, 5000),
        poll_interval_ms=_expect(settings, "pollingInterval", int, 1000),
        interval_ms=_expect(settings, "interval", int, 2000),
        binary_interval_ms=_expect(settings, "binaryInterval", int, 3000),
        enable_debug_logging=_expect(data, "enableDebugLogging", bool, False),
        sound_notification_path=(base_dir / sound).resolve() if sound else None,
        app_icon_path=icon_path,
        log_folder=(base_dir / _expect(data, "logFolder", str, "./logs")).resolve(),
    )
    return WatcherConfig(**kwargs)


def load_config(path: Path) -> WatcherConfig:
    """
    Load and parse a JSON configuration file.

    Args:
        path: Path to config.json

    Returns:
        The parsed configuration

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"{path.name} not found! Please create it.")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Could not parse {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Could not read {path}: {e}") from e
    return config_from_dict(data, path.resolve().parent)
