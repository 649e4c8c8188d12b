"""
Mapping of Google GenAI finish reasons to metering stop reasons.

Google reports why generation stopped with a ``FinishReason`` enum on each
candidate. The metering API only accepts a closed set of stop reasons, so
every Google value (including values added in future SDK releases) is mapped
onto that set. Mapping never raises: unknown values fall back to the
caller-supplied default with a warning.
"""

import logging
from typing import Any

from .normalize import get_field
from .types import StopReason

logger = logging.getLogger("revenium")

_FINISH_REASON_MAP: dict[str, StopReason | None] = {
    # Natural completion
    "STOP": StopReason.END,
    # Token limit
    "MAX_TOKENS": StopReason.TOKEN_LIMIT,
    # Safety and content filtering
    "SAFETY": StopReason.ERROR,
    "RECITATION": StopReason.ERROR,
    "BLOCKLIST": StopReason.ERROR,
    "PROHIBITED_CONTENT": StopReason.ERROR,
    "SPII": StopReason.ERROR,
    "MODEL_ARMOR": StopReason.ERROR,
    "IMAGE_SAFETY": StopReason.ERROR,
    "IMAGE_PROHIBITED_CONTENT": StopReason.ERROR,
    "IMAGE_RECITATION": StopReason.ERROR,
    # Tool-call failures
    "MALFORMED_FUNCTION_CALL": StopReason.ERROR,
    "UNEXPECTED_TOOL_CALL": StopReason.ERROR,
    "NO_IMAGE": StopReason.ERROR,
    # Both spellings
    "CANCELLED": StopReason.CANCELLED,
    "CANCELED": StopReason.CANCELLED,
    # None means "use the default"
    "FINISH_REASON_UNSPECIFIED": None,
    "OTHER": None,
    "IMAGE_OTHER": None,
}


def _reason_text(finish_reason: Any) -> str:
    """Return the raw string of a finish reason (SDK enum member or str)."""
    if finish_reason is None:
        return ""
    value = getattr(finish_reason, "value", finish_reason)
    return value if isinstance(value, str) else str(value)


def map_finish_reason(
    finish_reason: Any,
    default: StopReason = StopReason.END,
) -> StopReason:
    """
    Map a Google finish reason to a metering stop reason (case-insensitive).

    Args:
        finish_reason: ``google.genai.types.FinishReason`` member, string or None
        default: Stop reason for empty, unspecified or unknown values

    Returns:
        A member of ``StopReason``; never raises
    """
    reason = _reason_text(finish_reason).strip()
    if not reason:
        return default

    normalized = reason.upper()
    if normalized in _FINISH_REASON_MAP:
        mapped = _FINISH_REASON_MAP[normalized]
        return default if mapped is None else mapped

    logger.warning(
        f"[revenium] Unknown finishReason: {reason!r}. Using fallback: {default.value!r}."
    )
    return default


def extract_finish_reason(response: Any) -> str:
    """
    Extract the finish reason of the first candidate of a response.

    Works for both streaming chunks and complete responses, as objects or
    dicts. Returns an empty string when there is no candidate or no reason.
    """
    candidates = get_field(response, "candidates")
    if not candidates:
        return ""

    return _reason_text(get_field(candidates[0], "finish_reason"))
