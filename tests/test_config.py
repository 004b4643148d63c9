"""
Tests for Settings: documented variable names work from the process
environment and from a .env file alike.
"""
from polaris.config import Settings

DOCUMENTED = [
    "POLARIS_DB_PATH", "POLARIS_PREDICTION_TIMEOUT", "POLARIS_CACHE_TTL", "POLARIS_PENDING_TTL",
    "POLARIS_VERSION", "POLARIS_API_TOKEN", "POLARIS_BREAK_GLASS_ADMINS", "GOOGLE_ACCESS_TOKEN",
]


def clear_env(monkeypatch):
    for name in DOCUMENTED:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch, tmp_path):
    clear_env(monkeypatch)

    config = Settings(_env_file=tmp_path / "missing.env")

    assert config.db_path == "polaris.db"
    assert config.cache_ttl_seconds == 600
    assert config.pending_action_ttl_seconds == 300
    assert config.break_glass_admins == []
    assert config.api_token is None
    assert config.google_access_token is None


def test_dotenv_file_uses_documented_names(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "GOOGLE_ACCESS_TOKEN=ya29.token\n"
        "POLARIS_PREDICTION_TIMEOUT=12.5\n"
        "POLARIS_CACHE_TTL=60\n"
        "POLARIS_PENDING_TTL=900\n"
        "POLARIS_VERSION=2.0.0\n"
        "POLARIS_API_TOKEN=secret\n"
        "UNRELATED_VARIABLE=x\n",
        encoding="utf-8",
    )

    config = Settings(_env_file=env_file)

    assert config.google_access_token == "ya29.token"
    assert config.prediction_timeout_seconds == 12.5
    assert config.cache_ttl_seconds == 60
    assert config.pending_action_ttl_seconds == 900
    assert config.app_version == "2.0.0"
    assert config.api_token == "secret"


def test_process_environment(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    monkeypatch.setenv("POLARIS_DB_PATH", "/data/polaris.db")
    monkeypatch.setenv("POLARIS_BREAK_GLASS_ADMINS", '["owner@example.com"]')

    config = Settings(_env_file=tmp_path / "missing.env")

    assert config.db_path == "/data/polaris.db"
    assert config.break_glass_admins == ["owner@example.com"]
