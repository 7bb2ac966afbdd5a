"""Test the command-line interface"""

import json
import time
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from pomosync import __version__
from pomosync.cli import cli
from pomosync.core.config import _ENV_OVERRIDES
from pomosync.core.database import TaskStore
from pomosync.core.exceptions import NetworkError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(temp_dir, monkeypatch):
    for name in _ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    path = temp_dir / "config.yaml"
    path.write_text(f"""
remote:
  client_id: "client-123"
  client_secret: "secret-456"
storage:
  database_path: "{(temp_dir / 'tasks.db').as_posix()}"
security:
  token_storage_path: "{(temp_dir / 'tokens.json').as_posix()}"
logging:
  console_output: false
  file: null
""", encoding="utf-8")
    return path


@pytest.fixture
def invoke(runner, config_file):
    def _invoke(*args, **kwargs):
        return runner.invoke(cli, ["--config", str(config_file), *args], **kwargs)
    return _invoke


@pytest.fixture
def connected(temp_dir):
    (temp_dir / "tokens.json").write_text(json.dumps({
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "obtained_at": time.time(),
    }))


def stored_tasks(temp_dir):
    with TaskStore(temp_dir / "tasks.db") as store:
        return store.list_tasks()


class TestTaskCommands:
    """Test local task management"""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_add_and_list(self, invoke, temp_dir):
        result = invoke("add", "Draft report", "--estimate", "3", "--priority", "high")
        assert result.exit_code == 0, result.output
        assert "Added task 1: Draft report (0/3)" in result.output

        result = invoke("list")
        assert result.exit_code == 0
        assert "Draft report" in result.output
        assert "0/3" in result.output
        assert "not synced" in result.output

    def test_list_empty(self, invoke):
        result = invoke("list")
        assert "No tasks yet" in result.output

    def test_done_and_pending_filter(self, invoke, temp_dir):
        invoke("add", "Water plants", "-e", "2")
        result = invoke("done", "1")
        assert "Completed task 1: Water plants (2/2)" in result.output

        result = invoke("list", "--pending")
        assert "Water plants" not in result.output

        invoke("undo", "1")
        assert stored_tasks(temp_dir)[0].is_complete is False

    def test_pomodoro(self, invoke, temp_dir):
        invoke("add", "Short task")
        result = invoke("pomodoro", "1")
        assert result.exit_code == 0
        assert "Completed task 1" in result.output
        assert stored_tasks(temp_dir)[0].completed_pomodoros == 1

    def test_edit(self, invoke, temp_dir):
        invoke("add", "Draft", "--notes", "old")
        result = invoke("edit", "1", "--name", "Draft report", "--notes", "")
        assert result.exit_code == 0, result.output

        task = stored_tasks(temp_dir)[0]
        assert task.name == "Draft report"
        assert task.notes is None

    def test_edit_without_options(self, invoke):
        invoke("add", "Draft")
        result = invoke("edit", "1")
        assert result.exit_code == 2
        assert "Nothing to change" in result.output

    def test_invalid_value(self, invoke):
        invoke("add", "Draft")
        result = invoke("edit", "1", "--estimate", "0")
        assert result.exit_code == 1
        assert "Estimated pomodoros" in result.output

    def test_remove_unknown_task(self, invoke):
        result = invoke("rm", "99")
        assert result.exit_code == 1
        assert "Task 99 not found" in result.output

    def test_bad_config_file(self, runner, temp_dir):
        bad = temp_dir / "bad.yaml"
        bad.write_text("sync: [", encoding="utf-8")
        result = runner.invoke(cli, ["--config", str(bad), "list"])
        assert result.exit_code == 1
        assert "Invalid YAML" in result.output


class TestSyncCommands:
    """Test sync, status and auth commands"""

    def test_sync_requires_login(self, invoke):
        result = invoke("sync")
        assert result.exit_code == 1
        assert "Not connected" in result.output

    def test_sync_pushes_tasks(self, invoke, temp_dir, remote, connected):
        invoke("add", "Draft report", "-e", "3")

        with patch("pomosync.cli.RemoteTaskClient", return_value=remote):
            result = invoke("sync")

        assert result.exit_code == 0, result.output
        assert "Sync completed" in result.output
        assert "Created:   1" in result.output
        assert remote.tokens_seen == ["access-1"]
        assert stored_tasks(temp_dir)[0].is_linked

    def test_sync_reports_failure(self, invoke, remote, connected):
        remote.fail("list_tasks", "*", NetworkError("Remote service unavailable (HTTP 503)"))
        with patch("pomosync.cli.RemoteTaskClient", return_value=remote):
            result = invoke("sync")

        assert result.exit_code == 1
        assert "HTTP 503" in result.output

    def test_status(self, invoke, connected):
        invoke("add", "Draft report")
        result = invoke("status")
        assert result.exit_code == 0
        assert "Total:        1" in result.output
        assert "Connected" in result.output

    def test_auth_status_not_connected(self, invoke):
        result = invoke("auth", "status")
        assert "Not connected" in result.output

    def test_login_with_code(self, invoke, temp_dir):
        token_body = {"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3599}
        with patch("pomosync.remote.auth.TokenManager._post_token", return_value=token_body) as post:
            result = invoke("auth", "login", "--code", "4/abc")

        assert result.exit_code == 0, result.output
        assert post.call_args.args[0]["code"] == "4/abc"
        assert json.loads((temp_dir / "tokens.json").read_text())["access_token"] == "access-1"

    def test_logout(self, invoke, temp_dir, connected):
        result = invoke("auth", "logout")
        assert result.exit_code == 0
        assert not (temp_dir / "tokens.json").exists()

    def test_watch_reports_an_error_once(self, invoke, remote, connected):
        remote.fail("list_tasks", "*", NetworkError("Remote service unavailable (HTTP 503)"))

        with patch("pomosync.cli.RemoteTaskClient", return_value=remote), \
                patch("pomosync.cli.time.sleep", side_effect=[None, None, None, KeyboardInterrupt]):
            result = invoke("watch")

        assert result.exit_code == 130
        assert result.output.count("Sync error: Remote service unavailable (HTTP 503)") == 1
