"""
Usage extraction for a single Google GenAI request/response pair.

``extract_usage`` combines token normalization, stop-reason mapping, vision
detection and (opt-in) prompt capture into one immutable ``UsageRecord``.
It is a pure function of its inputs: calling it twice on the same pair
yields equal records.
"""

from typing import Any

from .normalize import get_field, usage_from_response
from .prompts import extract_prompts_from_request, extract_response_content, response_text
from .stop_reason import extract_finish_reason, map_finish_reason
from .types import StopReason, UsageRecord
from .vision import detect_vision_content


def extract_temperature(config: Any) -> float | None:
    """Temperature set on a ``GenerateContentConfig`` (or dict), if any."""
    temperature = get_field(config, "temperature")
    if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
        return None
    return float(temperature)


def extract_usage(
    contents: Any,
    config: Any = None,
    response: Any = None,
    *,
    capture_prompts: bool = False,
    output_text: str | None = None,
    finish_reason: Any = None,
    default_stop_reason: StopReason = StopReason.END,
) -> UsageRecord:
    """
    Build the usage record of one call.

    Args:
        contents: Request contents (for vision detection and prompt capture)
        config: Request ``GenerateContentConfig`` or dict
        response: Response, last streamed chunk carrying usage, or None on error
        capture_prompts: Whether to capture prompt and response text
        output_text: Accumulated streamed text; read from ``response`` when None
        finish_reason: Finish reason overriding the one found on ``response``
        default_stop_reason: Stop reason when no finish reason is known

    Returns:
        The usage record
    """
    if finish_reason is None:
        finish_reason = extract_finish_reason(response)

    prompts = None
    if capture_prompts:
        prompts = extract_prompts_from_request(contents, config)
        text = output_text if output_text is not None else response_text(response)
        prompts = extract_response_content(text, prompts)

    return UsageRecord(
        usage=usage_from_response(response),
        stop_reason=map_finish_reason(finish_reason, default_stop_reason),
        temperature=extract_temperature(config),
        vision=detect_vision_content(contents),
        prompts=prompts,
    )
