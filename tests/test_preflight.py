"""
Unit tests for the preflight checks and their exit codes.
"""

from dataclasses import replace

from rich.console import Console

from gtasks_ical_sync.preflight import CONFIG
from gtasks_ical_sync.preflight import CREDENTIALS
from gtasks_ical_sync.preflight import OFFLINE
from gtasks_ical_sync.preflight import collect_issues
from gtasks_ical_sync.preflight import exit_code_for
from gtasks_ical_sync.preflight import run_preflight_checks


def _online():
    return None


def _offline():
    return "[Errno -3] Temporary failure in name resolution"


def _kinds(issues):
    return [kind for kind, *_ in issues]


def test_all_good(sync_config):
    sync_config.token_file.write_text("{}")
    assert collect_issues(sync_config, _online) == []


def test_no_credentials_at_all(sync_config):
    assert _kinds(collect_issues(sync_config, _online)) == [CREDENTIALS]


def test_client_secrets_alone_are_enough(sync_config):
    sync_config.client_secrets_file.write_text("{}")
    assert collect_issues(sync_config, _online) == []


def test_local_parent_missing(sync_config, tmp_path):
    sync_config.token_file.write_text("{}")
    cfg = replace(sync_config, local_path=tmp_path / "missing" / "tasks.ics")
    assert _kinds(collect_issues(cfg, _online)) == [CONFIG]


def test_offline(sync_config):
    sync_config.token_file.write_text("{}")
    issues = collect_issues(sync_config, _offline)
    assert _kinds(issues) == [OFFLINE]
    assert "name resolution" in issues[0][2]


def test_state_db_directory_is_created(sync_config, tmp_path):
    sync_config.token_file.write_text("{}")
    cfg = replace(sync_config, state_db_path=tmp_path / "state" / "sync.db")
    assert collect_issues(cfg, _online) == []
    assert (tmp_path / "state").is_dir()


def test_exit_code_priority():
    assert exit_code_for([]) == 0
    assert exit_code_for([(CREDENTIALS, "", "", "")]) == 4
    assert exit_code_for([(CREDENTIALS, "", "", ""), (OFFLINE, "", "", "")]) == 3
    assert exit_code_for([(OFFLINE, "", "", ""), (CONFIG, "", "", "")]) == 2


def test_run_preflight_prints_every_issue(sync_config):
    console = Console(record=True, width=200)
    code = run_preflight_checks(sync_config, console, _offline)
    output = console.export_text()
    assert code == 3
    assert "Preflight checks failed" in output
    assert "Google credentials" in output
    assert "Network" in output
