"""
Type definitions for the Revenium Google GenAI middleware.

These types describe what is extracted from a single Google GenAI call and
handed to the payload builder, plus the error hierarchy of the package.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Provider(str, Enum):
    """Backend a Google GenAI call targets."""

    GOOGLE_AI = "GOOGLE_AI"
    VERTEX_AI = "VERTEX_AI"

    @property
    def is_google_ai(self) -> bool:
        return self is Provider.GOOGLE_AI

    @property
    def is_vertex_ai(self) -> bool:
        return self is Provider.VERTEX_AI


class StopReason(str, Enum):
    """Standardized stop reasons accepted by the metering API."""

    END = "END"
    END_SEQUENCE = "END_SEQUENCE"
    TIMEOUT = "TIMEOUT"
    TOKEN_LIMIT = "TOKEN_LIMIT"
    COST_LIMIT = "COST_LIMIT"
    COMPLETION_LIMIT = "COMPLETION_LIMIT"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


class CallKind(str, Enum):
    """Kind of metered call; selects the endpoint and the operation type."""

    CHAT = "CHAT"
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


@dataclass(frozen=True)
class NormalizedUsage:
    """Token counts read from a response's ``usage_metadata`` block."""

    input_tokens: int = 0
    """Prompt tokens consumed."""

    output_tokens: int = 0
    """Candidate (output) tokens produced."""

    total_tokens: int = 0
    """Total tokens (prompt + candidates when the SDK omits it)."""

    cached_tokens: int = 0
    """Tokens served from cached content."""

    reasoning_tokens: int = 0
    """Thinking tokens used by reasoning models."""


@dataclass(frozen=True)
class VisionDetectionResult:
    """Image content found in the request contents."""

    has_vision_content: bool = False
    """Whether any image part was found."""

    image_count: int = 0
    """Number of image parts (inline blobs and file references)."""

    total_image_size_bytes: int = 0
    """Summed size of inline image data. File references count as 0."""

    media_types: tuple[str, ...] = ()
    """Distinct image MIME types, in first-seen order."""


@dataclass(frozen=True)
class PromptData:
    """Captured prompt and response text, already truncated."""

    system_prompt: str = ""
    input_messages: str = ""
    """JSON array of ``{"role", "content"}`` objects."""

    output_response: str = ""
    prompts_truncated: bool = False


@dataclass(frozen=True)
class UsageRecord:
    """Everything the payload builder needs from one request/response pair."""

    usage: NormalizedUsage = field(default_factory=NormalizedUsage)
    """Token counts (all zero when the response or usage block is absent)."""

    stop_reason: StopReason = StopReason.END
    """Mapped stop reason."""

    temperature: float | None = None
    """Temperature from the request config, if set."""

    vision: VisionDetectionResult = field(default_factory=VisionDetectionResult)
    """Vision statistics of the request contents."""

    prompts: PromptData | None = None
    """Captured prompt data; ``None`` unless prompt capture is enabled."""


@dataclass(frozen=True)
class CallTiming:
    """Wall-clock instants of one call, all timezone-aware UTC."""

    request_time: datetime
    """When the wrapper was entered."""

    completion_start_time: datetime
    """When the first output arrived (response time for non-streaming calls)."""

    response_time: datetime
    """When the call finished, failed or was stopped."""


# =============================================================================
# Errors
# =============================================================================


class ReveniumError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(f"{message}: {cause}" if cause else message)
        self.message = message
        self.cause = cause


class ConfigError(ReveniumError):
    """Missing or malformed configuration; fatal to initialization."""


class ProviderError(ReveniumError):
    """The underlying Google GenAI client could not be constructed."""


class NetworkError(ReveniumError):
    """Transport failure while delivering a metering payload (retryable)."""


class ValidationError(ReveniumError):
    """The metering API rejected a payload with a 4xx status (not retried)."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class MeteringError(ReveniumError):
    """Generic or terminal metering delivery failure."""


class VideoGenerationError(ReveniumError):
    """A polled video operation finished with an error or without a response."""

    def __init__(self, message: str, error: Any = None):
        super().__init__(message)
        self.error = error
