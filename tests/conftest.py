"""Pytest configuration and fixtures."""

import os
from unittest.mock import patch

import pytest


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["CARDGEN_ENV"] = "test"


@pytest.fixture(autouse=True)
def no_usage_logging():
    """Keep LLM usage logging off the network."""
    with patch("cardgen.chains.generate_fields.log_llm_usage") as mock_log:
        yield mock_log
