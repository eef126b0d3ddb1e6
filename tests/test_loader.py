"""Tests for loader module."""

import json
import os

import pytest

from shellwatch.config import DaemonConfig
from shellwatch.exceptions import ConfigError
from shellwatch.loader import (
    find_config_files,
    load_watch_specs,
    parse_config_file,
    parse_watch_entry,
    read_config_file,
)
from shellwatch.models import EventMask, Rejection, WatchSpec


def always_exists(path):
    return True


def never_exists(path):
    return False


class TestParseWatchEntry:
    """Tests for parse_watch_entry."""

    def test_valid_entry(self):
        result = parse_watch_entry(
            {
                "path": "/tmp/in",
                "events": ["CLOSE_WRITE", "MOVED_TO"],
                "command": "mv $@/$# $@/done/$#",
                "file_match": "*.dat",
                "check_interval": 5,
            },
            always_exists,
        )

        assert isinstance(result, WatchSpec)
        assert result.path == "/tmp/in"
        assert result.event_mask == EventMask.CLOSE_WRITE | EventMask.MOVED_TO
        assert result.command_template == "mv $@/$# $@/done/$#"
        assert result.file_match == "*.dat"
        assert result.stabilization_interval == 5

    def test_defaults(self):
        result = parse_watch_entry(
            {"path": "/tmp/in", "events": ["CREATE"], "command": "true"},
            always_exists,
        )

        assert isinstance(result, WatchSpec)
        assert result.file_match == ""
        assert result.stabilization_interval == 0

    def test_deprecated_dir_key(self):
        result = parse_watch_entry(
            {"dir": "/tmp/in", "events": ["CREATE"], "command": "true"},
            always_exists,
        )

        assert isinstance(result, WatchSpec)
        assert result.path == "/tmp/in"

    def test_relative_path_made_absolute(self, tmp_path, monkeypatch):
        (tmp_path / "incoming").mkdir()
        monkeypatch.chdir(tmp_path)

        result = parse_watch_entry(
            {"path": "incoming", "events": ["CREATE"], "command": "true"}
        )

        assert isinstance(result, WatchSpec)
        assert result.path == os.path.join(os.getcwd(), "incoming")

    def test_not_an_object(self):
        result = parse_watch_entry(["/tmp/in"], always_exists)
        assert isinstance(result, Rejection)
        assert "not an object" in result.reason

    @pytest.mark.parametrize("missing", ["path", "events", "command"])
    def test_missing_required_field(self, missing):
        entry = {"path": "/tmp/in", "events": ["CREATE"], "command": "true"}
        del entry[missing]

        result = parse_watch_entry(entry, always_exists)

        assert isinstance(result, Rejection)
        assert "missing" in result.reason
        assert result.entry == entry

    @pytest.mark.parametrize("field, value", [
        ("path", 12),
        ("events", "CREATE"),
        ("command", ["echo"]),
        ("file_match", 3),
        ("check_interval", "5"),
        ("check_interval", 1.5),
        ("check_interval", True),
    ])
    def test_wrong_types(self, field, value):
        entry = {"path": "/tmp/in", "events": ["CREATE"], "command": "true"}
        entry[field] = value

        result = parse_watch_entry(entry, always_exists)

        assert isinstance(result, Rejection)
        assert field in result.reason

    def test_negative_interval(self):
        result = parse_watch_entry(
            {"path": "/tmp/in", "events": ["CREATE"], "command": "true", "check_interval": -2},
            always_exists,
        )
        assert isinstance(result, Rejection)

    def test_empty_command(self):
        result = parse_watch_entry(
            {"path": "/tmp/in", "events": ["CREATE"], "command": "  "},
            always_exists,
        )
        assert isinstance(result, Rejection)

    def test_path_does_not_exist(self):
        result = parse_watch_entry(
            {"path": "/nonexistent/12345", "events": ["CREATE"], "command": "true"},
            never_exists,
        )
        assert isinstance(result, Rejection)
        assert "does not exist" in result.reason

    def test_no_recognized_event(self):
        result = parse_watch_entry(
            {"path": "/tmp/in", "events": ["BOGUS", 7], "command": "true"},
            always_exists,
        )
        assert isinstance(result, Rejection)
        assert "No events" in result.reason

    def test_bad_event_names_are_skipped(self):
        result = parse_watch_entry(
            {"path": "/tmp/in", "events": ["BOGUS", 7, "IN_DELETE"], "command": "true"},
            always_exists,
        )
        assert isinstance(result, WatchSpec)
        assert result.event_mask == EventMask.DELETE

    def test_null_optional_fields(self):
        result = parse_watch_entry(
            {
                "path": "/tmp/in",
                "events": ["CREATE"],
                "command": "true",
                "file_match": None,
                "check_interval": None,
            },
            always_exists,
        )
        assert isinstance(result, WatchSpec)
        assert result.file_match == ""
        assert result.stabilization_interval == 0


class TestReadConfigFile:
    """Tests for read_config_file."""

    def test_reads_array(self, tmp_path):
        path = tmp_path / "watches.json"
        path.write_text(json.dumps([{"path": "/tmp"}]))
        assert read_config_file(path) == [{"path": "/tmp"}]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            read_config_file(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("[{")
        with pytest.raises(ConfigError, match="deserializing"):
            read_config_file(path)

    def test_not_an_array(self, tmp_path):
        path = tmp_path / "object.json"
        path.write_text(json.dumps({"path": "/tmp"}))
        with pytest.raises(ConfigError, match="array"):
            read_config_file(path)


class TestParseConfigFile:
    """Tests for parse_config_file."""

    def test_bad_entry_does_not_abort_others(self, tmp_path):
        watched = tmp_path / "in"
        watched.mkdir()
        path = tmp_path / "watches.json"
        path.write_text(json.dumps([
            {"path": str(watched), "events": ["CREATE"], "command": "echo one"},
            {"path": str(tmp_path / "missing"), "events": ["CREATE"], "command": "echo two"},
            "garbage",
            {"path": str(watched), "events": ["DELETE"], "command": "echo three"},
        ]))

        specs, rejections = parse_config_file(path)

        assert [s.command_template for s in specs] == ["echo one", "echo three"]
        assert len(rejections) == 2


class TestFindConfigFiles:
    """Tests for config file discovery."""

    def test_main_file_then_sorted_directory(self, tmp_path):
        (tmp_path / "shellwatch.json").write_text("[]")
        conf_dir = tmp_path / "shellwatch"
        conf_dir.mkdir()
        (conf_dir / "b.json").write_text("[]")
        (conf_dir / "a.json").write_text("[]")
        (conf_dir / "notes.txt").write_text("ignored")

        files = find_config_files(DaemonConfig(config_root=tmp_path))

        assert files == [
            tmp_path / "shellwatch.json",
            conf_dir / "a.json",
            conf_dir / "b.json",
        ]

    def test_nothing_configured(self, tmp_path):
        assert find_config_files(DaemonConfig(config_root=tmp_path)) == []

    def test_unreadable_directory_is_skipped(self, tmp_path, monkeypatch):
        (tmp_path / "shellwatch.json").write_text("[]")
        (tmp_path / "shellwatch").mkdir()

        def denied(self, pattern):
            raise PermissionError(13, "Permission denied", str(self))

        monkeypatch.setattr(type(tmp_path), "glob", denied)

        files = find_config_files(DaemonConfig(config_root=tmp_path))

        assert files == [tmp_path / "shellwatch.json"]


class TestLoadWatchSpecs:
    """Tests for load_watch_specs."""

    def test_skips_unusable_files(self, tmp_path):
        watched = tmp_path / "in"
        watched.mkdir()
        conf_dir = tmp_path / "shellwatch"
        conf_dir.mkdir()
        (conf_dir / "a.json").write_text("not json")
        (conf_dir / "b.json").write_text(json.dumps([
            {"path": str(watched), "events": ["CLOSE_WRITE"], "command": "echo $#"},
        ]))

        specs = list(load_watch_specs(DaemonConfig(config_root=tmp_path)))

        assert len(specs) == 1
        assert specs[0].path == str(watched)
        assert specs[0].event_mask == EventMask.CLOSE_WRITE
