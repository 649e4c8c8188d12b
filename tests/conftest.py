"""Shared fixtures for the middleware test suite."""

from __future__ import annotations

import logging
from typing import Iterator

import pytest

import revenium_google
from revenium_google import Config, ReveniumGoogle, create_client
from support import FakeGenaiClient, MeteringRecorder

ENV_VARS = (
    "GOOGLE_API_KEY",
    "GOOGLE_CLOUD_PROJECT",
    "GOOGLE_CLOUD_LOCATION",
    "REVENIUM_METERING_API_KEY",
    "REVENIUM_METERING_BASE_URL",
    "REVENIUM_VERTEX_DISABLE",
    "REVENIUM_DEBUG",
    "REVENIUM_CAPTURE_PROMPTS",
)


@pytest.fixture(autouse=True)
def clean_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Isolate every test from the host environment and the process-wide client."""
    for name in ENV_VARS:
        # setenv first so values loaded by python-dotenv are undone too
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    logger = logging.getLogger("revenium")
    level = logger.level
    yield
    revenium_google.reset()
    logger.setLevel(level)


@pytest.fixture()
def config() -> Config:
    return Config(revenium_api_key="hak_test_key", google_api_key="g-test-key")


@pytest.fixture()
def genai_client() -> FakeGenaiClient:
    return FakeGenaiClient()


@pytest.fixture()
def recorder() -> MeteringRecorder:
    return MeteringRecorder()


@pytest.fixture()
def client(config: Config, genai_client: FakeGenaiClient, recorder: MeteringRecorder) -> Iterator[ReveniumGoogle]:
    metered = create_client(config, genai_client=genai_client, transport=recorder.transport)
    yield metered
    metered.close(timeout=5)
