"""
Pytest configuration and shared fixtures for llmbridge tests.

WHAT: Centralized test configuration with markers
WHY: Enable test organization, filtering, and shared test utilities
HOW: Define pytest markers and shared fixtures
"""

import pytest

from llmbridge.core.config import StaticConfig
from llmbridge.llm.provider_factory import reset_provider
from llmbridge.llm.types import Message, ModelConfig, Tool


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (isolated component tests)"
    )
    config.addinivalue_line(
        "markers", "providers: Provider tests against mocked HTTP backends"
    )
    config.addinivalue_line(
        "markers", "streaming: Streaming decode and stream consumer tests"
    )


@pytest.fixture(autouse=True)
def reset_provider_singleton():
    """
    Reset provider singleton before each test.

    WHAT: Clear provider cache between tests
    WHY: Prevent test pollution and ensure clean state
    HOW: Call reset_provider() before and after each test
    """
    reset_provider()
    yield
    reset_provider()


@pytest.fixture
def test_config():
    """
    Static configuration for providers.

    WHAT: Provide consistent test configuration
    WHY: Isolate tests from environment variables
    HOW: Plain mapping behind the ConfigProvider interface
    """
    return StaticConfig({
        "ANTHROPIC_API_KEY": "test-anthropic-key",
        "ANTHROPIC_HOST": "https://api.anthropic.test",
        "GROQ_API_KEY": "test-groq-key",
        "GROQ_HOST": "https://api.groq.test",
        "OLLAMA_HOST": "localhost",
        "LLM_MODE": "auto",
    })


@pytest.fixture
def conversation():
    """A short conversation with one user turn."""
    return [Message.user().with_text("What is the weather in Paris?")]


@pytest.fixture
def weather_tool():
    return Tool(
        name="get_weather",
        description="Look up current weather",
        input_schema={
            "type": "object",
            "properties": {"city": {"type": "string"}},
            "required": ["city"],
        },
    )


@pytest.fixture
def model_config():
    return ModelConfig("test-model")


