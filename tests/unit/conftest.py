"""Fixtures shared by all unit tests.

Every unit test runs with a clean environment, fresh settings and no
correlation ID; ``log_messages`` records what loguru emitted.
"""

import os
from collections.abc import Generator

import pytest
from loguru import logger
from pytest_mock import MockerFixture, MockType

from src.core.config import LogConfig, Settings, get_settings
from src.core.context import RequestContext
from src.core.error_context import _get_sensitive_fields

SETTINGS_ENV_PREFIXES = (
    "APP_",
    "API_",
    "ENVIRONMENT",
    "DEBUG",
    "LOG_CONFIG__",
    "DATABASE_CONFIG__",
    "MESSAGING_CONFIG__",
)

TEST_ENV = {
    "APP_NAME": "TestApp",
    "APP_VERSION": "1.0.0",
    "ENVIRONMENT": "development",
    "DEBUG": "false",
    "API_HOST": "127.0.0.1",
    "API_PORT": "3000",
}


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Settings read from ``TEST_ENV``."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    return Settings()


@pytest.fixture
def mock_get_settings(mocker: MockerFixture) -> MockType:
    """Patch the settings seen by error sanitization.

    The configured sensitive fields are ``custom_secret``, ``my_password``
    and ``api_token``.
    """
    log_config = mocker.Mock(spec=LogConfig)
    log_config.sensitive_fields = ["custom_secret", "my_password", "api_token"]
    settings = mocker.Mock(spec=Settings, log_config=log_config)

    _get_sensitive_fields.cache_clear()
    return mocker.patch("src.core.error_context.get_settings", return_value=settings)


@pytest.fixture
def log_messages() -> Generator[list[str]]:
    """``LEVEL|message`` for every loguru record emitted during the test."""
    messages: list[str] = []

    def sink(message: object) -> None:
        record = message.record  # type: ignore[attr-defined]
        messages.append(f"{record['level'].name}|{record['message']}")

    handler_id = logger.add(sink, level="DEBUG", format="{message}")
    yield messages
    logger.remove(handler_id)


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_request_context() -> Generator[None]:
    RequestContext.clear()
    yield
    RequestContext.clear()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Hide settings variables of the host and restore the environment afterwards."""
    saved = dict(os.environ)
    for key in list(os.environ):
        if key.startswith(SETTINGS_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)

    yield

    os.environ.clear()
    os.environ.update(saved)
