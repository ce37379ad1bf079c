from unittest.mock import patch

import pytest

from eventjobs.config.settings import Settings, get_settings


def test_default_settings():
    """Test default settings values."""
    settings = Settings()

    assert settings.app_name == "Event Jobs"
    assert settings.version == "1.0.0"
    assert settings.job_poll_interval_ms == 30000
    assert settings.job_default_max_retries == 3
    assert settings.event_backlog_on_startup is True
    assert settings.job_visibility_timeout_s > settings.job_handler_timeout_s


def test_visibility_timeout_must_exceed_handler_timeout():
    """A claim must not expire while its handler may still be running."""
    with pytest.raises(ValueError, match="JOB_VISIBILITY_TIMEOUT_S"):
        Settings(job_visibility_timeout_s=60, job_handler_timeout_s=120)


def test_production_blocks_sqlite():
    """Test that production environment rejects SQLite."""
    with pytest.raises(ValueError, match="SQLite is not allowed in production"):
        Settings(environment="production", database_url="sqlite+aiosqlite:///./jobs.db")


def test_poll_interval_lower_bound():
    with pytest.raises(ValueError):
        Settings(job_poll_interval_ms=10)


def test_settings_dependency_injection():
    """Test the get_settings dependency function."""
    settings = get_settings()
    assert isinstance(settings, Settings)
    assert settings.app_name == "Event Jobs"


@patch.dict(
    "os.environ",
    {"JOB_POLL_INTERVAL_MS": "5000", "JOB_WORKER_ENABLED": "false", "JOB_BATCH_SIZE": "10"},
)
def test_env_var_loading():
    """Test that environment variables are loaded correctly."""
    settings = Settings()
    assert settings.job_poll_interval_ms == 5000
    assert settings.job_worker_enabled is False
    assert settings.job_batch_size == 10
