"""
Revenium Google - usage metering for the Google GenAI SDK

Wraps a ``google.genai.Client`` so every content, image and video generation
call is metered to Revenium in the background, on both the Gemini Developer
API and Vertex AI.
"""

from .types import (
    Provider,
    StopReason,
    CallKind,
    NormalizedUsage,
    VisionDetectionResult,
    PromptData,
    UsageRecord,
    CallTiming,
    ReveniumError,
    ConfigError,
    ProviderError,
    NetworkError,
    ValidationError,
    MeteringError,
    VideoGenerationError,
)
from .config import Config, DEFAULT_BASE_URL, normalize_base_url
from .provider import detect_provider
from .client import (
    ReveniumGoogle,
    create_client,
    initialize,
    is_initialized,
    get_client,
    reset,
)
from .context import (
    usage_metadata,
    set_usage_metadata,
    reset_usage_metadata,
    get_usage_metadata,
)
from .stop_reason import map_finish_reason
from .normalize import normalize_usage
from .vision import detect_vision_content
from .prompts import MAX_PROMPT_LENGTH, TRUNCATION_MARKER, truncate_text
from .extractor import extract_usage
from .payload import build_chat_payload, build_image_payload, build_video_payload
from .delivery import MeteringClient

__version__ = "0.1.0"

__all__ = [
    # Types
    "Provider",
    "StopReason",
    "CallKind",
    "NormalizedUsage",
    "VisionDetectionResult",
    "PromptData",
    "UsageRecord",
    "CallTiming",
    # Errors
    "ReveniumError",
    "ConfigError",
    "ProviderError",
    "NetworkError",
    "ValidationError",
    "MeteringError",
    "VideoGenerationError",
    # Configuration
    "Config",
    "DEFAULT_BASE_URL",
    "normalize_base_url",
    "detect_provider",
    # Client
    "ReveniumGoogle",
    "create_client",
    "initialize",
    "is_initialized",
    "get_client",
    "reset",
    # Call metadata
    "usage_metadata",
    "set_usage_metadata",
    "reset_usage_metadata",
    "get_usage_metadata",
    # Extraction
    "map_finish_reason",
    "normalize_usage",
    "detect_vision_content",
    "MAX_PROMPT_LENGTH",
    "TRUNCATION_MARKER",
    "truncate_text",
    "extract_usage",
    # Payloads and delivery
    "build_chat_payload",
    "build_image_payload",
    "build_video_payload",
    "MeteringClient",
]
