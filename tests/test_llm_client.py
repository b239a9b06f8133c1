
import os
from unittest.mock import patch
import pytest
from realmsync.utils.config import OPENROUTER_BASE_URL
from realmsync.utils.llm_client import create_openrouter_client

@pytest.fixture
def mock_openai():
    with patch("realmsync.utils.llm_client.AsyncOpenAI") as mock:
        yield mock

def test_create_client_defaults(mock_openai):
    # Ensure no env vars interfere
    with patch.dict(os.environ, {}, clear=True):
        create_openrouter_client()
        mock_openai.assert_called_once()
        call_kwargs = mock_openai.call_args.kwargs
        assert call_kwargs.get("api_key") is None
        assert call_kwargs.get("base_url") == OPENROUTER_BASE_URL
        assert call_kwargs.get("max_retries") == 0
        assert call_kwargs.get("default_headers") is None

def test_create_client_explicit_args(mock_openai):
    create_openrouter_client(
        api_key="sk-explicit",
        base_url="https://explicit.com",
        timeout=30.0,
        max_retries=5
    )

    mock_openai.assert_called_once()
    call_kwargs = mock_openai.call_args.kwargs
    assert call_kwargs["api_key"] == "sk-explicit"
    assert call_kwargs["base_url"] == "https://explicit.com"
    assert call_kwargs["timeout"] == 30.0
    assert call_kwargs["max_retries"] == 5

def test_create_client_env_vars(mock_openai):
    env = {
        "OPENROUTER_API_KEY": "sk-env",
        "OPENROUTER_BASE_URL": "https://env.com"
    }
    with patch.dict(os.environ, env):
        create_openrouter_client()

        mock_openai.assert_called_once()
        call_kwargs = mock_openai.call_args.kwargs
        assert call_kwargs["api_key"] == "sk-env"
        assert call_kwargs["base_url"] == "https://env.com"

def test_create_client_args_override_env(mock_openai):
    env = {
        "OPENROUTER_API_KEY": "sk-env",
        "OPENROUTER_BASE_URL": "https://env.com"
    }
    with patch.dict(os.environ, env):
        create_openrouter_client(
            api_key="sk-override",
            base_url="https://override.com"
        )

        mock_openai.assert_called_once()
        call_kwargs = mock_openai.call_args.kwargs
        assert call_kwargs["api_key"] == "sk-override"
        assert call_kwargs["base_url"] == "https://override.com"

def test_create_client_attribution_headers(mock_openai):
    create_openrouter_client(
        api_key="sk-x",
        app_url="https://realmsync.app",
        app_title="Realm Sync",
        default_headers={"X-Trace": "1"},
    )

    headers = mock_openai.call_args.kwargs["default_headers"]
    assert headers == {
        "X-Trace": "1",
        "HTTP-Referer": "https://realmsync.app",
        "X-Title": "Realm Sync",
    }
