"""Unit tests for configuration management."""

import os
from collections.abc import Generator

import pytest
from pydantic import ValidationError

from invoice_scanner.shared.config import Settings, get_settings


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before and after test."""
    original_env = dict(os.environ)
    env_vars = [k for k in os.environ if k.startswith("APP_")]
    for var in env_vars:
        del os.environ[var]
    yield
    os.environ.clear()
    os.environ.update(original_env)


def test_settings_defaults(clean_env: None) -> None:
    """Test that settings have correct default values."""
    settings = Settings(_env_file=None)

    assert settings.environment == "development"
    assert settings.log_level == "INFO"
    assert settings.service_name == "invoice-scanner"
    assert settings.upload_prefix == "uploads/"
    assert settings.upload_grant_expires_seconds == 300
    assert (settings.ocr_max_attempts, settings.ocr_base_delay_seconds) == (3, 1.0)
    assert (settings.extraction_max_attempts, settings.extraction_base_delay_seconds) == (2, 2.0)
    assert settings.search_window == 100


def test_settings_from_env_vars(clean_env: None) -> None:
    """Test that settings can be overridden via environment variables."""
    os.environ["APP_ENVIRONMENT"] = "production"
    os.environ["APP_LOG_LEVEL"] = "ERROR"
    os.environ["APP_OCR_MAX_ATTEMPTS"] = "5"
    os.environ["APP_STORAGE_BUCKET"] = "scans"

    settings = Settings(_env_file=None)

    assert settings.environment == "production"
    assert settings.log_level == "ERROR"
    assert settings.ocr_max_attempts == 5
    assert settings.storage_bucket == "scans"


def test_settings_case_insensitive(clean_env: None) -> None:
    """Test that environment variables are case insensitive."""
    os.environ["app_log_level"] = "DEBUG"

    settings = Settings(_env_file=None)

    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "overrides",
    [
        {"search_window": 101},
        {"reconcile_batch_size": 0},
        {"ocr_max_attempts": 0},
        {"ocr_provider": "donut"},
    ],
)
def test_settings_validation(clean_env: None, overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)  # type: ignore[arg-type]


def test_get_settings_factory(clean_env: None) -> None:
    """Test that factory function returns Settings instance."""
    settings = get_settings()

    assert isinstance(settings, Settings)
    assert settings.service_name == "invoice-scanner"
