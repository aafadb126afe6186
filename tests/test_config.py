"""Tests for the Config class."""

import logging
import os
from importlib import reload
from pathlib import Path
from unittest.mock import patch

import pytest

from docdraft import config as config_module
from docdraft.config import Config


@pytest.fixture(autouse=True)
def _restore_config_module():
    yield
    reload(config_module)


def test_get_openai_api_key_from_env():
    """Test OpenAI API key retrieval from environment."""
    with patch.dict(os.environ, {"OPENAI_API_KEY": "test-api-key"}):
        assert Config.get_openai_api_key() == "test-api-key"


def test_get_openai_api_key_empty_when_not_set():
    """Test OpenAI API key returns empty string when not set."""
    with patch.dict(os.environ, {}, clear=True):
        assert not Config.get_openai_api_key()


def test_validate_success_with_api_key():
    with patch.object(Config, "get_openai_api_key", return_value="test-key"):
        Config.validate()


def test_validate_fails_without_api_key():
    with (
        patch.object(Config, "get_openai_api_key", return_value=""),
        pytest.raises(ValueError, match="OPENAI_API_KEY is required"),
    ):
        Config.validate()


@pytest.mark.parametrize(
    ("env_var", "default_value", "test_value", "expected_type"),
    [
        ("LOG_LEVEL", "INFO", "debug", str),
        ("OPENAI_LOG_LEVEL", "WARNING", "error", str),
        ("EMBEDDING_MODEL", "text-embedding-3-small", "text-embedding-ada-002", str),
        ("CHAT_MODEL", "gpt-4.1", "gpt-4o", str),
        ("FALLBACK_CHAT_MODEL", "gpt-4.1-mini", "gpt-4o-mini", str),
        ("MODEL_MAX_ATTEMPTS", 3, "5", int),
        ("CHUNK_SIZE", 2000, "1500", int),
        ("CHUNK_OVERLAP", 200, "300", int),
        ("RAG_TOP_K", 3, "5", int),
        ("HISTORY_LIMIT", 10, "20", int),
        ("MAX_FAILED_ATTEMPTS", 3, "2", int),
        ("CHAT_TEMPERATURE", 0.2, "0.5", float),
    ],
)
def test_config_loading_from_env(env_var, default_value, test_value, expected_type):
    with (
        patch.dict(os.environ, {}, clear=True),
        patch.object(Path, "exists", return_value=False),
    ):
        reload(config_module)
        actual_default = getattr(config_module.Config, env_var)
        assert actual_default == default_value

    with (
        patch.dict(os.environ, {env_var: test_value}),
        patch.object(Path, "exists", return_value=False),
    ):
        reload(config_module)
        actual_value = getattr(config_module.Config, env_var)
        if expected_type is str and env_var.endswith("LOG_LEVEL"):
            assert actual_value == test_value.upper()
        else:
            assert actual_value == expected_type(test_value)


@pytest.mark.parametrize(
    ("env_var", "test_path"),
    [
        ("INDEX_DIR", "/custom/index"),
        ("DATABASE_PATH", "/custom/path/docdraft.db"),
        ("TEMPLATES_REGISTRY_PATH", "/custom/templates.json"),
        ("TEMPLATE_DOCX_DIR", "/custom/docx"),
        ("TEMPLATE_PREVIEW_DIR", "/custom/previews"),
        ("GENERATED_DOCUMENTS_DIR", "/custom/generated"),
        ("KNOWLEDGE_BASE_DIR", "/custom/knowledge_base"),
    ],
)
def test_path_config_loading(env_var, test_path):
    """Test Path configuration loading from environment variables."""
    with patch.dict(os.environ, {}, clear=True):
        reload(config_module)
        assert isinstance(getattr(config_module.Config, env_var), Path)

    with patch.dict(os.environ, {env_var: test_path}):
        reload(config_module)
        assert getattr(config_module.Config, env_var) == Path(test_path)


def test_openai_base_url_from_env():
    with patch.dict(os.environ, {"OPENAI_BASE_URL": "https://custom.openai.com"}):
        reload(config_module)
        assert config_module.Config.OPENAI_BASE_URL == "https://custom.openai.com"


@pytest.mark.parametrize(
    ("log_level", "openai_level", "expected_level", "expected_openai_level"),
    [
        ("INFO", "WARNING", logging.INFO, logging.WARNING),
        ("DEBUG", "ERROR", logging.DEBUG, logging.ERROR),
        ("INVALID", "INVALID", logging.INFO, logging.WARNING),
    ],
)
def test_setup_logging_levels(
    log_level, openai_level, expected_level, expected_openai_level
):
    """Verify logging setup respects overrides and falls back on invalid values."""
    with (
        patch.object(Config, "LOG_LEVEL", log_level),
        patch.object(Config, "OPENAI_LOG_LEVEL", openai_level),
        patch("docdraft.config.logging.basicConfig") as mock_basic,
        patch("docdraft.config.logging.getLogger") as mock_get_logger,
    ):
        mock_logger = mock_get_logger.return_value

        Config.setup_logging()

        mock_basic.assert_called_once_with(
            level=expected_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        mock_get_logger.assert_called_once_with("openai")
        mock_logger.setLevel.assert_called_once_with(expected_openai_level)


def test_get_logger():
    with patch("docdraft.config.logging.getLogger") as mock_get_logger:
        result = Config.get_logger("test.module")

        mock_get_logger.assert_called_once_with("test.module")
        assert result == mock_get_logger.return_value


def test_api_headers_use_user_agent():
    with patch.object(Config, "API_USER_AGENT", "docdraft-test/2.0"):
        assert Config.get_api_headers() == {"User-Agent": "docdraft-test/2.0"}

    with patch.object(Config, "API_USER_AGENT", ""):
        assert Config.get_api_headers() == {}


@pytest.mark.parametrize(
    ("env_var", "invalid_value", "error_match"),
    [
        ("CHUNK_SIZE", "not_a_number", "invalid literal for int"),
        ("CHAT_TEMPERATURE", "not_a_float", "could not convert string to float"),
    ],
)
def test_type_conversion_errors(env_var, invalid_value, error_match):
    with (
        patch.dict(os.environ, {env_var: invalid_value}),
        pytest.raises(ValueError, match=error_match),
    ):
        reload(config_module)


def test_no_dotenv_loading_when_missing():
    """Test that .env file loading is skipped when file doesn't exist."""
    with (
        patch.object(Path, "exists", return_value=False),
        patch("dotenv.load_dotenv") as mock_load,
    ):
        reload(config_module)

        mock_load.assert_not_called()
