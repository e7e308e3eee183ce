"""
Unit tests for the layered configuration files and command-line overrides.
"""

from pathlib import Path

import pytest

from gtasks_ical_sync.config import build_sync_config
from gtasks_ical_sync.config import load_config_files
from gtasks_ical_sync.models import DEFAULT_STATE_DB
from gtasks_ical_sync.models import ConfigError


def _write(path: Path, body: str) -> Path:
    path.write_text("[gtasks-ical-sync]\n" + body)
    return path


class TestLoadConfigFiles:
    def test_no_files_is_empty(self, isolated_config):
        file_config = load_config_files()
        assert file_config.values == {}
        assert file_config.files_read == []

    def test_later_files_override_earlier(self, isolated_config):
        _write(isolated_config / "etc.conf", "listname = System\nretries = 7\n")
        _write(isolated_config / "user.conf", "listname = User\n")
        explicit = _write(isolated_config / "explicit.conf", "path = ~/tasks.ics\n")

        file_config = load_config_files(explicit)

        assert file_config.get("listname") == "User"
        assert file_config.get_int("retries", 3) == 7
        assert file_config.get_path("path") == Path("~/tasks.ics").expanduser()
        assert file_config.files_read == [
            isolated_config / "etc.conf",
            isolated_config / "user.conf",
            explicit,
        ]

    def test_missing_explicit_file(self, isolated_config):
        with pytest.raises(ConfigError, match="not found"):
            load_config_files(isolated_config / "nope.conf")

    def test_unknown_key(self, isolated_config):
        _write(isolated_config / "user.conf", "colour = blue\n")
        with pytest.raises(ConfigError, match="colour"):
            load_config_files()

    def test_syntax_error(self, isolated_config):
        (isolated_config / "user.conf").write_text("this is not ini\n")
        with pytest.raises(ConfigError):
            load_config_files()

    def test_other_sections_are_ignored(self, isolated_config):
        (isolated_config / "user.conf").write_text("[something-else]\ncolour = blue\n")
        assert load_config_files().values == {}


class TestTypedValues:
    def test_bad_integer(self, isolated_config):
        _write(isolated_config / "user.conf", "timeout = soon\n")
        with pytest.raises(ConfigError, match="timeout"):
            load_config_files().get_int("timeout", 30)

    def test_negative_integer(self, isolated_config):
        _write(isolated_config / "user.conf", "retries = -1\n")
        with pytest.raises(ConfigError):
            load_config_files().get_int("retries", 3)

    def test_booleans(self, isolated_config):
        _write(isolated_config / "user.conf", "ipv4_only = yes\nverbose = off\n")
        file_config = load_config_files()
        assert file_config.get_bool("ipv4_only") is True
        assert file_config.get_bool("verbose") is False

    def test_bad_boolean(self, isolated_config):
        _write(isolated_config / "user.conf", "ipv4_only = maybe\n")
        with pytest.raises(ConfigError):
            load_config_files().get_bool("ipv4_only")


class TestBuildSyncConfig:
    def test_command_line_wins(self, isolated_config, tmp_path):
        _write(
            isolated_config / "user.conf",
            f"listname = Shopping\npath = {tmp_path / 'file.ics'}\ntimeout = 10\n",
        )
        cfg = build_sync_config(
            load_config_files(),
            listname="Work",
            path=tmp_path / "cli.ics",
            state_db=tmp_path / "state.db",
            sync_direction="to-remote",
            task_ids=("r1",),
            dry_run=True,
        )
        assert cfg.listname == "Work"
        assert cfg.local_path == tmp_path / "cli.ics"
        assert cfg.state_db_path == tmp_path / "state.db"
        assert cfg.sync_direction == "to-remote"
        assert cfg.task_ids == ("r1",)
        assert cfg.dry_run is True
        assert cfg.timeout == 10
        assert cfg.retries == 3

    def test_file_values_fill_in(self, isolated_config, tmp_path):
        _write(isolated_config / "user.conf", f"listname = Shopping\npath = {tmp_path}\n")
        cfg = build_sync_config(load_config_files())
        assert cfg.listname == "Shopping"
        assert cfg.local_path == tmp_path
        assert cfg.state_db_path == DEFAULT_STATE_DB
        assert cfg.sync_direction == "both"

    def test_path_is_required(self, isolated_config):
        with pytest.raises(ConfigError, match="path"):
            build_sync_config(load_config_files())

    def test_bad_direction(self, isolated_config, tmp_path):
        with pytest.raises(ConfigError):
            build_sync_config(load_config_files(), path=tmp_path, sync_direction="sideways")
