"""
Metering payload construction.

Payloads are flat JSON objects matching the Revenium metering wire contract.
Billing-critical fields (token counts, stop reason, image/video counts) are
always top-level; only non-billing detail goes under ``attributes``.
"""

from datetime import datetime, timezone
from typing import Any, Mapping
from uuid import uuid4

from .normalize import get_field
from .prompts import add_prompt_data_to_payload
from .types import CallKind, CallTiming, Provider, StopReason, UsageRecord
from .vision import build_vision_attributes

SDK_VERSION = "0.1.0"
MIDDLEWARE_SOURCE = "revenium-middleware-google-python"
COST_TYPE = "AI"

# Caller metadata copied into payloads. Anything else is dropped.
METADATA_FIELDS = (
    # Core tracking fields
    "organizationId",
    "productId",
    "subscriptionId",
    "taskType",
    "taskId",
    "agent",
    "subscriber",
    "responseQualityScore",
    "modelSource",
    "mediationLatency",
    "temperature",
    # Trace visualization fields
    "traceId",
    "transactionId",
    "traceType",
    "traceName",
    "environment",
    "region",
    "retryNumber",
    "credentialAlias",
    "parentTransactionId",
)


def _snake(name: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name)


_FIELD_ALIASES = {_snake(name): name for name in METADATA_FIELDS if _snake(name) != name}


def format_timestamp(moment: datetime) -> str:
    """Format an instant as ISO-8601 UTC with millisecond precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def duration_ms(start: datetime, end: datetime) -> int:
    """Whole milliseconds between two instants (never negative)."""
    return max(int((end - start).total_seconds() * 1000), 0)


def generate_transaction_id() -> str:
    return str(uuid4())


def add_metadata_to_payload(payload: dict[str, Any], metadata: Mapping[str, Any] | None) -> None:
    """
    Copy allow-listed call metadata into a payload.

    Keys may be given in wire form (``organizationId``) or snake_case
    (``organization_id``); the wire form wins when both are present.
    """
    if not metadata:
        return

    for key, value in metadata.items():
        field = _FIELD_ALIASES.get(key, key)
        if field not in METADATA_FIELDS:
            continue
        if field != key and field in metadata:
            continue
        payload[field] = value


def _base_payload(
    kind: CallKind,
    stop_reason: StopReason | str,
    model: str,
    provider: Provider,
    timing: CallTiming,
) -> dict[str, Any]:
    return {
        "stopReason": stop_reason.value if isinstance(stop_reason, StopReason) else stop_reason,
        "costType": COST_TYPE,
        "operationType": kind.value,
        "model": model,
        "provider": provider.value,
        "transactionId": generate_transaction_id(),
        "requestTime": format_timestamp(timing.request_time),
        "responseTime": format_timestamp(timing.response_time),
        "requestDuration": duration_ms(timing.request_time, timing.response_time),
        "middlewareSource": MIDDLEWARE_SOURCE,
    }


def _finish_payload(
    payload: dict[str, Any],
    kind: CallKind,
    metadata: Mapping[str, Any] | None,
    error: BaseException | str | None,
) -> dict[str, Any]:
    add_metadata_to_payload(payload, metadata)

    if error is not None:
        payload["errorReason"] = str(error) or type(error).__name__

    # Fixed per call kind; metadata can never override these.
    payload["operationType"] = kind.value
    payload["costType"] = COST_TYPE
    return payload


def build_chat_payload(
    record: UsageRecord,
    *,
    model: str,
    provider: Provider,
    timing: CallTiming,
    is_streamed: bool,
    metadata: Mapping[str, Any] | None = None,
    error: BaseException | str | None = None,
) -> dict[str, Any]:
    """
    Build the metering payload of a content-generation call.

    Args:
        record: Extracted usage
        model: Model name as passed by the caller
        provider: Backend the call targeted
        timing: Request, first-output and response instants
        is_streamed: Whether the call was a streaming call
        metadata: Caller metadata from the call scope
        error: Error raised by the SDK, if the call failed

    Returns:
        The payload dict
    """
    usage = record.usage
    payload = _base_payload(CallKind.CHAT, record.stop_reason, model, provider, timing)
    payload.update(
        {
            "isStreamed": is_streamed,
            "inputTokenCount": usage.input_tokens,
            "outputTokenCount": usage.output_tokens,
            "reasoningTokenCount": usage.reasoning_tokens,
            "cacheCreationTokenCount": 0,
            "cacheReadTokenCount": usage.cached_tokens,
            "totalTokenCount": usage.total_tokens,
            "completionStartTime": format_timestamp(timing.completion_start_time),
            "timeToFirstToken": duration_ms(timing.request_time, timing.completion_start_time),
        }
    )

    if record.temperature is not None:
        payload["temperature"] = record.temperature

    if record.prompts is not None:
        add_prompt_data_to_payload(payload, record.prompts)

    vision_attributes = build_vision_attributes(record.vision)
    if vision_attributes:
        payload["attributes"] = vision_attributes

    return _finish_payload(payload, CallKind.CHAT, metadata, error)


def build_image_payload(
    *,
    model: str,
    provider: Provider,
    timing: CallTiming,
    requested_count: int,
    actual_count: int = 0,
    attributes: Mapping[str, Any] | None = None,
    metadata: Mapping[str, Any] | None = None,
    error: BaseException | str | None = None,
) -> dict[str, Any]:
    """Build the metering payload of an image generation, edit or upscale call."""
    stop_reason = StopReason.ERROR if error is not None else StopReason.END
    payload = _base_payload(CallKind.IMAGE, stop_reason, model, provider, timing)
    payload["actualImageCount"] = 0 if error is not None else actual_count
    payload["requestedImageCount"] = requested_count

    if attributes:
        payload["attributes"] = dict(attributes)

    return _finish_payload(payload, CallKind.IMAGE, metadata, error)


def build_video_payload(
    *,
    model: str,
    provider: Provider,
    timing: CallTiming,
    requested_count: int,
    actual_count: int = 0,
    stop_reason: StopReason | str = StopReason.END,
    attributes: Mapping[str, Any] | None = None,
    metadata: Mapping[str, Any] | None = None,
    error: BaseException | str | None = None,
) -> dict[str, Any]:
    """
    Build the metering payload of a video generation call.

    Video generation is a long-running operation: the start of the operation
    is metered with stop reason ``PENDING`` and the completion (or failure)
    with its own payload.
    """
    if error is not None:
        stop_reason = StopReason.ERROR
    payload = _base_payload(CallKind.VIDEO, stop_reason, model, provider, timing)
    payload["actualVideoCount"] = 0 if error is not None else actual_count
    payload["requestedVideoCount"] = requested_count

    if attributes:
        payload["attributes"] = dict(attributes)

    return _finish_payload(payload, CallKind.VIDEO, metadata, error)


def _enum_text(value: Any) -> str:
    value = getattr(value, "value", value)
    return value if isinstance(value, str) else str(value)


def image_config_attributes(config: Any, **extra: Any) -> dict[str, Any]:
    """Non-billing detail of an image config, for the ``attributes`` object."""
    attributes: dict[str, Any] = dict(extra)
    for name, key in (
        ("aspect_ratio", "aspectRatio"),
        ("output_mime_type", "outputMimeType"),
        ("person_generation", "personGeneration"),
    ):
        value = get_field(config, name)
        if value:
            attributes[key] = _enum_text(value)
    return attributes
