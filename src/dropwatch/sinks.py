"""
Sinks that turn semantic events into notifications and log lines.

The engine only knows about the EventRouter; everything here is host-side
glue. Notifications and sound playback are fire-and-forget subprocesses.
A notifier that cannot be started raises SinkError, which the router logs
and discards; sound and log file failures are handled here.
"""

import logging
import shutil
import subprocess
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol

from .exceptions import SinkError
from .models import EventType, LogLevel, SemanticEvent

logger = logging.getLogger(__name__)

SCAN_COMPLETE_MESSAGE = "Initial scan complete. Watcher is now ready for new changes."


class NotificationSink(Protocol):
    def notify(self, title: str, message: str, relative_path: str, owning_root_id: Optional[str]) -> None:
        ...


class LogSink(Protocol):
    def write(self, level: LogLevel, message: str, timestamp: float) -> None:
        ...


def _relative(event: SemanticEvent) -> str:
    return str(event.relative_path or event.path or "")


class NotificationDispatcher:
    """Maps semantic events onto a NotificationSink (and optional sound)."""

    def __init__(
        self,
        notifier: NotificationSink,
        ext_label: str = "MXF",
        sound_player: Optional["SoundPlayer"] = None,
    ):
        self.notifier = notifier
        self.ext_label = ext_label
        self.sound_player = sound_player

    def handle(self, event: SemanticEvent) -> None:
        root_id = event.root.id if event.root else None

        if event.event_type == EventType.FILE_READY:
            rel = _relative(event)
            self.notifier.notify(
                f"New {self.ext_label} File Ready on {root_id}!",
                f"File: {rel}",
                rel,
                root_id,
            )
            if self.sound_player is not None:
                self.sound_player.play()
        elif event.event_type == EventType.DIRECTORY_ADDED:
            rel = _relative(event)
            self.notifier.notify("New Folder Created", f"Path: {rel}", rel, root_id)
            if self.sound_player is not None:
                self.sound_player.play()
        elif event.event_type == EventType.WATCH_ERROR:
            self.notifier.notify(
                "Watcher Script Error!",
                f"An error occurred: {event.message}",
                "",
                root_id,
            )


def format_log_message(event: SemanticEvent) -> Optional[tuple]:
    """Return (LogLevel, message) for an event, or None if it is not logged."""
    if event.event_type == EventType.FILE_READY:
        return LogLevel.INFO, f"New file is stable and ready: {event.path}"
    if event.event_type == EventType.DIRECTORY_ADDED:
        return LogLevel.INFO, f"New directory detected: {event.path}"
    if event.event_type == EventType.SCAN_COMPLETE:
        return LogLevel.INFO, SCAN_COMPLETE_MESSAGE
    if event.event_type == EventType.WATCH_ERROR:
        return LogLevel.ERROR, f"Watcher error: {event.message}"
    if event.event_type == EventType.RAW_OBSERVED:
        kind = event.raw_kind.value if event.raw_kind else "unknown"
        return LogLevel.DEBUG, f"Event '{kind}' detected on: {event.path}"
    return None


class LogDispatcher:
    """Maps semantic events onto a LogSink."""

    def __init__(self, log_sink: LogSink):
        self.log_sink = log_sink

    def handle(self, event: SemanticEvent) -> None:
        formatted = format_log_message(event)
        if formatted is None:
            return
        level, message = formatted
        self.log_sink.write(level, message, event.timestamp)


class ConsoleSink:
    """Echoes events to the console through the logging module."""

    TAGS = {
        EventType.FILE_READY: "[FILE READY]",
        EventType.DIRECTORY_ADDED: "[FOLDER ADDED]",
        EventType.SCAN_COMPLETE: "[INFO]",
        EventType.WATCH_ERROR: "[ERROR]",
        EventType.RAW_OBSERVED: "[DEBUG]",
    }

    def __init__(self, console_logger: Optional[logging.Logger] = None):
        self.logger = console_logger or logging.getLogger("dropwatch.console")

    def handle(self, event: SemanticEvent) -> None:
        formatted = format_log_message(event)
        if formatted is None:
            return
        level, message = formatted
        line = f"{self.TAGS[event.event_type]} {message}"
        if level == LogLevel.ERROR:
            self.logger.error(line)
        elif level == LogLevel.DEBUG:
            self.logger.debug(line)
        else:
            self.logger.info(line)


class DailyFileLogSink:
    """
    Appends log lines to a date-stamped file (<folder>/YYYY-MM-DD.log).

    Lines look like "[2024-05-01 13:45:02] [INFO] message". A failed write
    is reported on stderr and otherwise ignored.
    """

    def __init__(self, folder: Path):
        self.folder = Path(folder)
        self.folder.mkdir(parents=True, exist_ok=True)

    def path_for(self, when: datetime) -> Path:
        return self.folder / f"{when:%Y-%m-%d}.log"

    def write(self, level: LogLevel, message: str, timestamp: Optional[float] = None) -> None:
        when = datetime.fromtimestamp(timestamp if timestamp is not None else time.time())
        line = f"[{when:%Y-%m-%d %H:%M:%S}] [{level.value.upper()}] {message}\n"
        try:
            with open(self.path_for(when), "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            print(f"CRITICAL: Failed to write to log file: {e}", file=sys.stderr)

    def info(self, message: str) -> None:
        self.write(LogLevel.INFO, message)

    def error(self, message: str) -> None:
        self.write(LogLevel.ERROR, message)


def _spawn(cmd: List[str]) -> None:
    """
    Start a detached helper process; never wait for it.

    Raises:
        SinkError: If the helper cannot be started
    """
    try:
        subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as e:
        raise SinkError(f"Could not start {cmd[0]}: {e}") from e


def _ps_quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def _applescript_quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class DesktopNotifier:
    """
    NotificationSink that shows a desktop popup with the platform's tool.

    macOS uses osascript, Windows a PowerShell balloon tip, and other
    platforms notify-send. A missing tool is logged once.
    """

    def __init__(self, icon_path: Optional[Path] = None, platform: Optional[str] = None):
        self.icon_path = icon_path
        self.platform = platform or sys.platform
        self._warned = False

    def build_command(self, title: str, message: str) -> Optional[List[str]]:
        if self.platform == "darwin":
            script = f"display notification {_applescript_quote(message)} with title {_applescript_quote(title)}"
            return ["osascript", "-e", script]
        if self.platform == "win32":
            script = (
                "Add-Type -AssemblyName System.Windows.Forms; "
                "$n = New-Object System.Windows.Forms.NotifyIcon; "
                "$n.Icon = [System.Drawing.SystemIcons]::Information; "
                "$n.Visible = $true; "
                f"$n.ShowBalloonTip(5000, {_ps_quote(title)}, {_ps_quote(message)}, 'Info'); "
                "Start-Sleep -Seconds 6; $n.Dispose()"
            )
            return ["powershell", "-NoProfile", "-Command", script]
        if shutil.which("notify-send") is None:
            return None
        cmd = ["notify-send", "--app-name=dropwatch"]
        if self.icon_path:
            cmd.append(f"--icon={self.icon_path}")
        cmd.extend([title, message])
        return cmd

    def notify(self, title: str, message: str, relative_path: str = "", owning_root_id: Optional[str] = None) -> None:
        cmd = self.build_command(title, message)
        if cmd is None:
            if not self._warned:
                logger.warning("No desktop notification tool found, notifications are disabled")
                self._warned = True
            return
        _spawn(cmd)


class SoundPlayer:
    """Plays a notification sound without waiting for it to finish."""

    def __init__(self, sound_path: Optional[Path], platform: Optional[str] = None):
        self.sound_path = Path(sound_path) if sound_path else None
        self.platform = platform or sys.platform

    def build_command(self) -> Optional[List[str]]:
        path = str(self.sound_path)
        if self.platform == "darwin":
            return ["afplay", path]
        if self.platform == "win32":
            script = f"(New-Object Media.SoundPlayer {_ps_quote(path)}).PlaySync()"
            return ["powershell", "-NoProfile", "-Command", script]
        for player in ("paplay", "aplay", "ffplay"):
            if shutil.which(player):
                if player == "ffplay":
                    return [player, "-nodisp", "-autoexit", "-loglevel", "quiet", path]
                return [player, path]
        return None

    def play(self) -> bool:
        """
        Start playback.

        Returns:
            True if a player process was started
        """
        if self.sound_path is None or not self.sound_path.exists():
            return False
        cmd = self.build_command()
        if cmd is None:
            logger.error("[SOUND-ERROR] Could not play sound: no audio player found")
            return False
        try:
            _spawn(cmd)
        except SinkError as e:
            logger.error(f"[SOUND-ERROR] Could not play sound: {e}")
            return False
        return True
