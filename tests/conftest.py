"""
Pytest configuration and fixtures for test suite.

This module:
- Detects CI environment and skips tests requiring external services
- Provides fakes for evidence providers, sockets and a wired service graph
- Resets process-wide state (reasoning cooldown, installed services)
"""

import os
import socket
import pytest

from app.core.container import set_services
from app.services.llms.groq_service import reset_cooldown
from app.services.verdict.types import EvidenceItem
from tests.fakes import FakeClock, FakeRetriever, build_services

# Detect CI environment
IS_CI = os.environ.get("CI") or os.environ.get("GITHUB_ACTIONS") or os.environ.get("GITLAB_CI")


def is_kafka_available():
    """Check if a Kafka broker is reachable on localhost:9092."""
    try:
        sock = socket.create_connection(("localhost", 9092), timeout=1)
        sock.close()
        return True
    except OSError:
        return False


def is_groq_available():
    """Check if Groq API key is configured."""
    return bool(os.environ.get("GROQ_API_KEY"))


def is_google_cse_available():
    """Check if Google CSE credentials are configured."""
    return bool(os.environ.get("GOOGLE_API_KEY")) and bool(os.environ.get("GOOGLE_CSE_ID"))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "kafka_required: mark test as requiring a Kafka broker")
    config.addinivalue_line("markers", "groq_required: mark test as requiring Groq API")
    config.addinivalue_line("markers", "google_cse_required: mark test as requiring Google CSE API")
    config.addinivalue_line("markers", "integration: mark test as integration test")


def pytest_collection_modifyitems(config, items):
    """Automatically skip tests based on environment."""
    for item in items:
        if "kafka_required" in item.keywords and not is_kafka_available():
            item.add_marker(pytest.mark.skip(reason="Kafka not available (expected in CI)"))

        if "groq_required" in item.keywords and not is_groq_available():
            item.add_marker(pytest.mark.skip(reason="Groq API key not configured"))

        if "google_cse_required" in item.keywords and not is_google_cse_available():
            item.add_marker(pytest.mark.skip(reason="Google CSE credentials not configured"))

        if IS_CI and "integration" in item.keywords and not os.environ.get("RUN_INTEGRATION_TESTS"):
            item.add_marker(pytest.mark.skip(reason="Integration tests skipped in CI by default"))


@pytest.fixture(autouse=True)
def _reset_process_state():
    reset_cooldown()
    yield
    reset_cooldown()
    set_services(None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def paris_evidence():
    return [
        EvidenceItem(
            snippet="The Eiffel Tower is in Paris, France.",
            provider="wikipedia",
            url="https://en.wikipedia.org/wiki/Eiffel_Tower",
            title="Wikipedia - Eiffel Tower",
            rank=0,
        )
    ]


@pytest.fixture
def services(paris_evidence):
    wired = build_services(FakeRetriever(paris_evidence))
    set_services(wired)
    return wired
