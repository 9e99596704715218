"""Tests for configuration loading."""

from pathlib import Path

import pytest

from finanzapro.config import Config, SyncConfig, load_config
from finanzapro.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of these tests."""
    for name in (
        "FINANZAPRO_CONFIG",
        "FINANZAPRO_REMOTE_URL",
        "FINANZAPRO_API_KEY",
        "FINANZAPRO_ACCESS_TOKEN",
        "FINANZAPRO_USER_ID",
        "FINANZAPRO_DATA_DIR",
        "FINANZAPRO_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(text)
    return path


class TestLoadConfig:
    def test_values_from_file(self, tmp_path):
        path = write_config(
            tmp_path,
            f"""
data_dir = "{tmp_path / 'data'}"
log_level = "debug"

[remote]
base_url = "https://example.test"
api_key = "anon"
user_id = "user-9"

[sync]
debounce_seconds = 0.5
max_attempts = 0
""",
        )

        config = load_config(path)

        assert config.remote.base_url == "https://example.test"
        assert config.remote.is_configured
        assert config.remote.user_id == "user-9"
        assert config.sync.debounce_seconds == 0.5
        assert config.sync.max_attempts == 0
        assert config.sync.backoff_base_seconds == SyncConfig().backoff_base_seconds
        assert config.log_level == "DEBUG"
        assert config.db_path == tmp_path / "data" / "finanzapro.db"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, '[remote]\nbase_url = "https://file.test"\n')
        monkeypatch.setenv("FINANZAPRO_REMOTE_URL", "https://env.test")
        monkeypatch.setenv("FINANZAPRO_DATA_DIR", str(tmp_path / "env-data"))

        config = load_config(path)

        assert config.remote.base_url == "https://env.test"
        assert config.data_dir == tmp_path / "env-data"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "nope.toml")

    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, 'log_level = "INFO"\n')
        monkeypatch.setenv("FINANZAPRO_CONFIG", str(path))
        assert load_config().log_level == "INFO"

    @pytest.mark.parametrize(
        "text",
        [
            "[sync]\ndebounce_seconds = \"soon\"\n",
            "[sync]\ndebounce_seconds = -1\n",
            "[sync]\nmax_attempts = -2\n",
            "remote = 3\n",
            'log_level = "LOUD"\n',
            "not toml at all [\n",
        ],
    )
    def test_invalid_values(self, tmp_path, text):
        with pytest.raises(ConfigError):
            load_config(write_config(tmp_path, text))


class TestConfigDefaults:
    def test_remote_unconfigured_by_default(self):
        assert Config().remote.is_configured is False

    def test_mock_paths_live_in_data_dir(self, tmp_path):
        config = Config(data_dir=tmp_path)
        assert config.mock_db_path.parent == tmp_path
        assert config.mock_remote_path.parent == tmp_path
