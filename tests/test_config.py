"""Test configuration loading and validation"""

import os
from pathlib import Path

import pytest

from pomosync.core import config as config_module
from pomosync.core.config import Config, SyncConfig, find_config_file, load_config
from pomosync.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, temp_dir):
    """No stray config file or POMOSYNC_* variable leaks into a test"""
    for name in config_module._ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(temp_dir)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_DIR", temp_dir / "home")


def write_config(temp_dir: Path, content: str) -> Path:
    path = temp_dir / "config.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadConfig:
    """Test reading config.yaml"""

    def test_defaults_without_file(self):
        config = load_config()

        assert config.source is None
        assert config.sync == SyncConfig()
        assert config.sync.cooldown == 30.0
        assert config.sync.debounce == 8.0
        assert config.sync.auto_interval == 120.0
        assert config.sync.periodic_interval == 600.0
        assert config.sync.token_max_age == 3000.0
        assert config.network.request_timeout == 30.0
        assert config.remote.tasklist == "@default"

    def test_values_from_file(self, temp_dir):
        path = write_config(temp_dir, """
remote:
  client_id: "abc.apps.googleusercontent.com"
  tasklist: "work"
storage:
  database_path: "~/pomo/tasks.db"
sync:
  cooldown: 10
  periodic_interval: 300
network:
  max_retries: 5
  jitter: 0.2
logging:
  level: "debug"
  file: "pomosync.log"
""")

        config = load_config(path)

        assert config.source == path
        assert config.remote.client_id == "abc.apps.googleusercontent.com"
        assert config.remote.tasklist == "work"
        assert config.storage.database_path == Path("~/pomo/tasks.db").expanduser()
        assert config.sync.cooldown == 10.0
        assert config.sync.periodic_interval == 300.0
        assert config.sync.debounce == 8.0
        assert config.network.max_retries == 5
        assert config.network.jitter == 0.2
        assert config.logging.level == "DEBUG"
        assert config.config_directory() == temp_dir

    def test_config_found_in_working_directory(self, temp_dir):
        path = write_config(temp_dir, "sync:\n  cooldown: 5\n")
        assert find_config_file() == Path.cwd() / "config.yaml"
        assert load_config().sync.cooldown == 5.0
        assert path.exists()

    def test_empty_file(self, temp_dir):
        config = load_config(write_config(temp_dir, ""))
        assert config.sync == SyncConfig()

    def test_missing_explicit_file(self, temp_dir):
        with pytest.raises(ConfigError, match="not found"):
            load_config(temp_dir / "nope.yaml")

    def test_default_config_directory(self):
        assert Config().config_directory() == config_module.DEFAULT_CONFIG_DIR


class TestValidation:
    """Test rejected configurations"""

    @pytest.mark.parametrize("content", [
        "remote: [unclosed",
        "- just\n- a list\n",
        "sync: 5\n",
        "sync:\n  cooldown: -1\n",
        "sync:\n  cooldown: yes\n",
        "network:\n  max_retries: 0\n",
        "network:\n  jitter: 1.5\n",
        "logging:\n  level: LOUD\n",
        "remote:\n  client_id: 42\n",
    ])
    def test_invalid_config(self, temp_dir, content):
        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, content), use_env=False)


class TestEnvironment:
    """Test POMOSYNC_* overrides"""

    def test_environment_overrides_file(self, temp_dir, monkeypatch):
        path = write_config(temp_dir, 'remote:\n  client_id: "from-file"\n')
        monkeypatch.setenv("POMOSYNC_CLIENT_ID", "from-env")
        monkeypatch.setenv("POMOSYNC_DB_PATH", str(temp_dir / "env.db"))
        monkeypatch.setenv("POMOSYNC_LOG_LEVEL", "warning")

        config = load_config(path)

        assert config.remote.client_id == "from-env"
        assert config.storage.database_path == temp_dir / "env.db"
        assert config.logging.level == "WARNING"

    def test_environment_ignored_when_disabled(self, temp_dir, monkeypatch):
        monkeypatch.setenv("POMOSYNC_CLIENT_ID", "from-env")
        assert load_config(use_env=False).remote.client_id == ""

    def test_dotenv_file(self, temp_dir):
        (temp_dir / ".env").write_text("POMOSYNC_CLIENT_SECRET=dotenv-secret\n")

        try:
            config = load_config()
        finally:
            # load_dotenv writes straight into os.environ
            os.environ.pop("POMOSYNC_CLIENT_SECRET", None)

        assert config.remote.client_secret == "dotenv-secret"
