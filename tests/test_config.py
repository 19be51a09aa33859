"""Tests for config module."""

import json
import pytest
from pathlib import Path

from dropwatch.config import (
    CONFIG_ENV_VAR,
    WatcherConfig,
    config_from_dict,
    find_config_path,
    load_config,
)
from dropwatch.exceptions import ConfigurationError


class TestWatcherConfig:
    """Tests for WatcherConfig class."""

    def test_default_values(self):
        config = WatcherConfig()
        assert config.watch_folders == []
        assert config.ext_to_watch == ".mxf"
        assert config.use_polling is False
        assert config.interval_ms == 2000
        assert config.binary_interval_ms == 3000
        assert config.stability_threshold_ms == 5000
        assert config.poll_interval_ms == 1000
        assert config.enable_debug_logging is False
        assert config.recursive is True
        assert config.log_folder == Path("logs")
        assert config.router_queue_size == 1000

    def test_extension_normalized(self):
        assert WatcherConfig(ext_to_watch="MOV").ext_to_watch == ".mov"
        assert WatcherConfig(ext_to_watch=" .Mxf ").ext_to_watch == ".mxf"

    def test_ext_label(self):
        assert WatcherConfig(ext_to_watch=".mxf").ext_label == "MXF"

    def test_string_paths_converted(self):
        config = WatcherConfig(
            watch_folders=["/mnt/ingest"],
            log_folder="/var/log/dropwatch",
            sound_notification_path="/opt/ding.wav",
        )
        assert config.watch_folders == [Path("/mnt/ingest")]
        assert config.log_folder == Path("/var/log/dropwatch")
        assert config.sound_notification_path == Path("/opt/ding.wav")

    def test_empty_extension_rejected(self):
        with pytest.raises(ConfigurationError):
            WatcherConfig(ext_to_watch="  ")

    @pytest.mark.parametrize("field", ["interval_ms", "stability_threshold_ms", "poll_interval_ms"])
    def test_non_positive_intervals_rejected(self, field):
        with pytest.raises(ConfigurationError, match=field):
            WatcherConfig(**{field: 0})

    def test_is_watched_file_case_insensitive(self):
        config = WatcherConfig(ext_to_watch=".mxf")
        assert config.is_watched_file(Path("/a/clip.mxf")) is True
        assert config.is_watched_file(Path("/a/CLIP.MXF")) is True
        assert config.is_watched_file(Path("/a/clip.mxf.part")) is False
        assert config.is_watched_file(Path("/a/clip.mov")) is False

    def test_is_binary(self):
        config = WatcherConfig(binary_extensions=["MXF", ".wav"])
        assert config.is_binary(Path("/a/clip.MXF")) is True
        assert config.is_binary(Path("/a/take.wav")) is True
        assert config.is_binary(Path("/a/notes.txt")) is False

    def test_validate_roots(self, tmp_path):
        WatcherConfig(watch_folders=[tmp_path]).validate_roots()

    def test_validate_no_roots(self):
        with pytest.raises(ConfigurationError, match="No watch folders"):
            WatcherConfig().validate_roots()

    def test_validate_missing_root(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Watch folder not found at"):
            WatcherConfig(watch_folders=[tmp_path / "missing"]).validate_roots()

    def test_validate_file_root(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x")
        with pytest.raises(ConfigurationError, match="not a directory"):
            WatcherConfig(watch_folders=[target]).validate_roots()


class TestLoadConfig:
    """Tests for loading config.json."""

    def write(self, tmp_path, data):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_full_config(self, tmp_path):
        (tmp_path / "icon.png").write_bytes(b"png")
        path = self.write(tmp_path, {
            "watchFolders": ["ingest", "/mnt/renders"],
            "extToWatch": ".MOV",
            "soundNotificationPath": "sounds/ding.wav",
            "appIconPath": "icon.png",
            "logFolder": "./logs",
            "enableDebugLogging": True,
            "watcherSettings": {
                "usePolling": True,
                "stabilityThreshold": 8000,
                "pollingInterval": 500,
            },
        })

        config = load_config(path)

        assert config.watch_folders == [(tmp_path / "ingest").resolve(), Path("/mnt/renders").resolve()]
        assert config.ext_to_watch == ".mov"
        assert config.use_polling is True
        assert config.stability_threshold_ms == 8000
        assert config.poll_interval_ms == 500
        assert config.enable_debug_logging is True
        assert config.sound_notification_path == (tmp_path / "sounds" / "ding.wav").resolve()
        assert config.app_icon_path == (tmp_path / "icon.png").resolve()
        assert config.log_folder == (tmp_path / "logs").resolve()

    def test_minimal_config_uses_defaults(self, tmp_path):
        path = self.write(tmp_path, {"watchFolders": ["ingest"]})

        config = load_config(path)

        assert config.ext_to_watch == ".mxf"
        assert config.use_polling is False
        assert config.stability_threshold_ms == 5000
        assert config.poll_interval_ms == 1000
        assert config.sound_notification_path is None
        assert config.app_icon_path is None

    def test_missing_icon_dropped(self, tmp_path):
        path = self.write(tmp_path, {"watchFolders": ["ingest"], "appIconPath": "nope.png"})
        assert load_config(path).app_icon_path is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="config.json not found! Please create it."):
            load_config(tmp_path / "config.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Could not parse"):
            load_config(path)

    def test_missing_watch_folders(self, tmp_path):
        path = self.write(tmp_path, {"extToWatch": ".mxf"})

        with pytest.raises(ConfigurationError, match="watchFolders"):
            load_config(path)

    def test_wrong_types(self, tmp_path):
        with pytest.raises(ConfigurationError, match="watchFolders"):
            config_from_dict({"watchFolders": "/mnt/ingest"}, tmp_path)
        with pytest.raises(ConfigurationError, match="stabilityThreshold"):
            config_from_dict(
                {"watchFolders": ["a"], "watcherSettings": {"stabilityThreshold": "5s"}},
                tmp_path,
            )
        with pytest.raises(ConfigurationError, match="pollingInterval"):
            config_from_dict(
                {"watchFolders": ["a"], "watcherSettings": {"pollingInterval": True}},
                tmp_path,
            )

    def test_root_must_be_object(self, tmp_path):
        with pytest.raises(ConfigurationError):
            config_from_dict(["a"], tmp_path)


class TestFindConfigPath:
    """Tests for find_config_path."""

    def test_explicit_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, "/elsewhere/config.json")
        assert find_config_path(str(tmp_path / "my.json")) == (tmp_path / "my.json").resolve()

    def test_environment_variable(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.json"))
        assert find_config_path() == (tmp_path / "env.json").resolve()

    def test_current_directory(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)
        assert find_config_path() == Path.cwd() / "config.json"
