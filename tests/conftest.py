"""Pytest configuration and fixtures."""

import os

import pytest


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["PERSISTENCE_BACKEND"] = "memory"
    os.environ["CONVOGRAPH_ENV"] = "test"
    os.environ.pop("TAVILY_API_KEY", None)
    os.environ.pop("SERPAPI_API_KEY", None)
