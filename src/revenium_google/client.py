"""
Metered Google GenAI client and the process-wide client.

``ReveniumGoogle`` wraps a ``google.genai.Client`` and exposes metered
namespaces mirroring the SDK:

    client = revenium_google.initialize()
    response = client.models.generate_content(model="gemini-2.0-flash", contents="Hi")
    client.flush()

The process-wide client is built once by ``initialize()`` and read with
``get_client()``. Applications that manage their own lifecycle can build
independent clients with ``create_client()``.
"""

import logging
import threading
from typing import Any

import httpx
from google import genai

from .config import Config
from .delivery import MeteringClient
from .instrument_genai import (
    AsyncMeteredClient,
    MeteredImages,
    MeteredModels,
    MeteredVideos,
    MeteringContext,
)
from .provider import detect_provider
from .tasks import PendingTasks
from .types import ConfigError, Provider, ProviderError

logger = logging.getLogger("revenium")

# Global state
_lock = threading.Lock()
_client: "ReveniumGoogle | None" = None


def _create_genai_client(config: Config, provider: Provider) -> Any:
    """Build the underlying SDK client for the detected provider."""
    if provider.is_vertex_ai:
        if not config.project_id:
            raise ConfigError("GOOGLE_CLOUD_PROJECT is required for Vertex AI")
        if not config.location:
            raise ConfigError("GOOGLE_CLOUD_LOCATION is required for Vertex AI")
        kwargs: dict[str, Any] = {
            "vertexai": True,
            "project": config.project_id,
            "location": config.location,
        }
    else:
        if not config.google_api_key:
            raise ConfigError("GOOGLE_API_KEY is required for the Gemini Developer API")
        kwargs = {"api_key": config.google_api_key}

    try:
        return genai.Client(**kwargs)
    except Exception as e:
        raise ProviderError(f"failed to create {provider.value} client", e) from e


class ReveniumGoogle:
    """
    A ``google.genai.Client`` whose calls are metered.

    Metering happens on background tasks; call ``flush()`` (or ``close()``)
    before the process exits to wait for them.

    Attributes:
        models: Metered ``generate_content`` / ``generate_content_stream``
        aio: Async counterpart; ``aio.models`` mirrors ``models``
        images: Metered image generation, edit and upscale
        videos: Metered video generation and completion polling
    """

    def __init__(
        self,
        config: Config,
        genai_client: Any = None,
        transport: httpx.BaseTransport | None = None,
    ):
        config.validate()
        self._config = config
        self._provider = detect_provider(config)
        self._genai_client = genai_client or _create_genai_client(config, self._provider)
        self._metering = MeteringClient(config, transport=transport)
        self._tasks = PendingTasks()

        ctx = MeteringContext(
            config=config,
            provider=self._provider,
            metering=self._metering,
            tasks=self._tasks,
        )
        sdk_models = self._genai_client.models
        self.models = MeteredModels(sdk_models, ctx)
        self.aio = AsyncMeteredClient(self._genai_client.aio, ctx)
        self.images = MeteredImages(sdk_models, ctx)
        self.videos = MeteredVideos(sdk_models, self._genai_client.operations, ctx)

        logger.debug(f"[revenium] Client ready (provider={self._provider.value})")

    @property
    def config(self) -> Config:
        return self._config

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def genai_client(self) -> Any:
        """The wrapped SDK client; calls made on it directly are not metered."""
        return self._genai_client

    def flush(self, timeout: float | None = None) -> bool:
        """
        Wait for in-flight metering tasks.

        Returns:
            True if every task finished, False if ``timeout`` expired first
        """
        pending = self._tasks.pending
        if pending:
            logger.debug(f"[revenium] Flushing {pending} pending metering task(s)")
        done = self._tasks.wait(timeout)
        if not done:
            logger.warning(f"[revenium] Flush timed out with {self._tasks.pending} task(s) pending")
        return done

    def metering_stats(self) -> dict[str, int]:
        """Counts of pending, succeeded and failed metering tasks."""
        return self._tasks.stats()

    def close(self, timeout: float | None = None) -> None:
        """Flush pending metering, then release the HTTP connection pool."""
        self.flush(timeout)
        self._metering.close()

    def __enter__(self) -> "ReveniumGoogle":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def create_client(
    config: Config,
    genai_client: Any = None,
    transport: httpx.BaseTransport | None = None,
) -> ReveniumGoogle:
    """
    Build an independent metered client.

    Args:
        config: Middleware configuration; validated here
        genai_client: Existing SDK client to wrap; built from ``config`` if omitted
        transport: HTTP transport for metering requests

    Raises:
        ConfigError: Missing or malformed credentials
        ProviderError: The SDK client could not be created
    """
    return ReveniumGoogle(config, genai_client=genai_client, transport=transport)


def initialize(**overrides: Any) -> ReveniumGoogle:
    """
    Build the process-wide client from the environment.

    Keyword arguments override the values read from the environment (see
    ``Config.from_env``). Calling it again after a successful initialization
    returns the existing client.

    Raises:
        ConfigError: Missing or malformed credentials
        ProviderError: The SDK client could not be created
    """
    global _client

    with _lock:
        if _client is not None:
            logger.debug("[revenium] Already initialized")
            return _client

        config = Config.from_env(**overrides)
        if config.debug:
            logging.getLogger("revenium").setLevel(logging.DEBUG)

        _client = create_client(config)
        logger.info(f"[revenium] Initialized (provider={_client.provider.value})")
        return _client


def is_initialized() -> bool:
    return _client is not None


def get_client() -> ReveniumGoogle:
    """Return the process-wide client; raises ``ConfigError`` before ``initialize()``."""
    client = _client
    if client is None:
        raise ConfigError("middleware not initialized, call initialize() first")
    return client


def reset() -> None:
    """Close and forget the process-wide client."""
    global _client

    with _lock:
        client, _client = _client, None

    if client is not None:
        client.close()
        logger.debug("[revenium] Process-wide client reset")
