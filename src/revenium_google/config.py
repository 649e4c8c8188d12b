"""
Configuration for the Revenium Google GenAI middleware.

Configuration is built once, either explicitly or from the environment, and
is immutable afterwards:

    from revenium_google import Config, create_client

    config = Config(
        revenium_api_key="hak_...",
        google_api_key="...",
        capture_prompts=True,
    )
    client = create_client(config)

Environment variables (``Config.from_env``):

    GOOGLE_API_KEY                Gemini Developer API key
    GOOGLE_CLOUD_PROJECT          Vertex AI project (selects Vertex AI)
    GOOGLE_CLOUD_LOCATION         Vertex AI location
    REVENIUM_METERING_API_KEY     Revenium metering key (required, "hak_...")
    REVENIUM_METERING_BASE_URL    Metering base URL
    REVENIUM_VERTEX_DISABLE       "1"/"true" forces the Gemini Developer API
    REVENIUM_DEBUG                "1"/"true" enables debug logging
    REVENIUM_CAPTURE_PROMPTS      "1"/"true" sends prompts and responses
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .types import ConfigError

logger = logging.getLogger("revenium")

DEFAULT_BASE_URL = "https://api.revenium.ai"
DEFAULT_REQUEST_TIMEOUT = 10.0
API_KEY_PREFIX = "hak_"

# Loaded in order; values already present in the environment are kept, so
# earlier files take precedence over later ones.
ENV_FILES = (".env.local", ".env")


@dataclass(frozen=True)
class Config:
    """Immutable per-process configuration.

    Attributes:
        google_api_key: Gemini Developer API key
        project_id: Google Cloud project for Vertex AI
        location: Google Cloud location for Vertex AI
        revenium_api_key: Revenium metering API key
        revenium_base_url: Metering base URL, without the ``/meter/v2`` path
        vertex_disabled: Force the Gemini Developer API even if a project is set
        debug: Enable debug logging on the ``revenium`` logger
        capture_prompts: Include prompts and responses in metering payloads
        request_timeout: Per-attempt timeout of metering requests, in seconds
    """

    google_api_key: str = ""
    project_id: str = ""
    location: str = ""
    revenium_api_key: str = ""
    revenium_base_url: str = DEFAULT_BASE_URL
    vertex_disabled: bool = False
    debug: bool = False
    capture_prompts: bool = False
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self) -> None:
        # Frozen dataclass: normalize through object.__setattr__.
        base_url = normalize_base_url(self.revenium_base_url) or DEFAULT_BASE_URL
        object.__setattr__(self, "revenium_base_url", base_url)

    @classmethod
    def from_env(cls, load_env_files: bool = True, **overrides: Any) -> "Config":
        """
        Build a configuration from environment variables.

        Args:
            load_env_files: Whether to load ``.env.local``/``.env`` first
            **overrides: Field values that take precedence over the environment

        Returns:
            The resulting configuration (not yet validated)
        """
        unknown = set(overrides) - {f.name for f in fields(cls)}
        if unknown:
            raise ConfigError(f"unknown configuration option(s): {', '.join(sorted(unknown))}")

        if load_env_files:
            load_env_files_from(Path.cwd())

        values: dict[str, Any] = {
            "google_api_key": os.getenv("GOOGLE_API_KEY", ""),
            "project_id": os.getenv("GOOGLE_CLOUD_PROJECT", ""),
            "location": os.getenv("GOOGLE_CLOUD_LOCATION", ""),
            "revenium_api_key": os.getenv("REVENIUM_METERING_API_KEY", ""),
            "revenium_base_url": os.getenv("REVENIUM_METERING_BASE_URL") or DEFAULT_BASE_URL,
            "vertex_disabled": _env_flag("REVENIUM_VERTEX_DISABLE"),
            "debug": _env_flag("REVENIUM_DEBUG"),
            "capture_prompts": _env_flag("REVENIUM_CAPTURE_PROMPTS"),
        }
        values.update(overrides)

        logger.debug("[revenium] Configuration loaded from environment")
        return cls(**values)

    def validate(self) -> None:
        """Raise ``ConfigError`` unless the metering credentials are usable."""
        if not self.revenium_api_key:
            raise ConfigError("REVENIUM_METERING_API_KEY is required")

        if not self.revenium_api_key.startswith(API_KEY_PREFIX):
            raise ConfigError("invalid Revenium API key format")

        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")

        logger.debug("[revenium] Configuration validation passed")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true")


def load_env_files_from(directory: Path) -> None:
    """Load ``.env.local`` and ``.env`` from a directory and its parent."""
    for search_dir in (directory, directory.parent):
        for name in ENV_FILES:
            env_path = search_dir / name
            if env_path.is_file():
                load_dotenv(env_path, override=False)
                logger.debug(f"[revenium] Loaded environment file {env_path}")


def normalize_base_url(base_url: str) -> str:
    """
    Normalize a metering base URL to the bare origin.

    Strips a trailing slash and a trailing ``/meter/v2``, ``/meter`` or
    ``/v2``; endpoint paths are appended by the delivery engine.

    Example:
        >>> normalize_base_url("https://api.revenium.ai/meter/v2/")
        'https://api.revenium.ai'
    """
    if not base_url:
        return ""

    base_url = base_url.rstrip("/")
    for suffix in ("/meter/v2", "/meter", "/v2"):
        if base_url.endswith(suffix):
            return base_url[: -len(suffix)]
    return base_url
