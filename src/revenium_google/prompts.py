"""
Prompt capture for metering analytics (opt-in).

When ``capture_prompts`` is enabled, the system instruction, the input
messages and the model response are sent with the metering payload. Each
captured field is limited to ``MAX_PROMPT_LENGTH`` characters; longer
fields are cut and end with ``TRUNCATION_MARKER``.

Input messages are serialized to a JSON array. Each message is truncated at
half the limit *before* serialization, so the array itself is never cut and
always parses.
"""

import json
import logging
from typing import Any

from .normalize import get_field, normalize_contents, part_text
from .types import PromptData

logger = logging.getLogger("revenium")

MAX_PROMPT_LENGTH = 50000
TRUNCATION_MARKER = "...[TRUNCATED]"


def _cut(text: str, length: int) -> str:
    """Cut ``text`` to ``length`` characters without leaving half a surrogate pair."""
    head = text[: max(length, 0)]
    if head and "\ud800" <= head[-1] <= "\udbff":
        head = head[:-1]
    return head


def truncate_text(text: str, limit: int = MAX_PROMPT_LENGTH) -> tuple[str, bool]:
    """
    Truncate ``text`` to at most ``limit`` characters, marker included.

    Returns:
        Tuple of (possibly truncated text, whether it was truncated)
    """
    if len(text) <= limit:
        return text, False
    return _cut(text, limit - len(TRUNCATION_MARKER)) + TRUNCATION_MARKER, True


def _joined_text(parts: list[Any], separator: str = "\n") -> str:
    return separator.join(text for text in (part_text(p) for p in parts) if text)


def extract_prompts_from_request(contents: Any, config: Any = None) -> PromptData:
    """
    Extract the system instruction and input messages of a request.

    Args:
        contents: The ``contents`` argument of a generate call
        config: ``GenerateContentConfig`` (or dict) carrying ``system_instruction``

    Returns:
        Captured prompt data; ``output_response`` is left empty
    """
    truncated = False

    system_prompt = ""
    system_instruction = get_field(config, "system_instruction")
    if system_instruction is not None:
        system_prompt = "\n".join(
            text
            for text in (_joined_text(parts) for _role, parts in normalize_contents(system_instruction))
            if text
        )
        system_prompt, was_cut = truncate_text(system_prompt)
        if was_cut:
            truncated = True
            logger.debug(f"[revenium] System prompt truncated to {MAX_PROMPT_LENGTH} characters")

    messages = []
    half_limit = MAX_PROMPT_LENGTH // 2
    for role, parts in normalize_contents(contents):
        text, was_cut = truncate_text(_joined_text(parts), half_limit)
        truncated = truncated or was_cut
        messages.append({"role": role, "content": text})

    input_messages = json.dumps(messages, ensure_ascii=False) if messages else ""

    return PromptData(
        system_prompt=system_prompt,
        input_messages=input_messages,
        prompts_truncated=truncated,
    )


def response_text(response: Any) -> str:
    """
    Text of the first candidate of a response or streamed chunk.

    Thought parts are skipped, matching ``GenerateContentResponse.text``.
    """
    candidates = get_field(response, "candidates")
    if not candidates:
        return ""

    parts = get_field(get_field(candidates[0], "content"), "parts") or []
    return "".join(part_text(part) for part in parts if not get_field(part, "thought"))


def extract_response_content(text: str, prompts: PromptData) -> PromptData:
    """
    Attach the (truncated) response text to previously captured prompt data.

    Used for both complete responses and accumulated streaming output.
    """
    output, was_cut = truncate_text(text)
    if was_cut:
        logger.debug(f"[revenium] Output response truncated to {MAX_PROMPT_LENGTH} characters")

    return PromptData(
        system_prompt=prompts.system_prompt,
        input_messages=prompts.input_messages,
        output_response=output,
        prompts_truncated=prompts.prompts_truncated or was_cut,
    )


def add_prompt_data_to_payload(payload: dict[str, Any], data: PromptData) -> None:
    """Add the non-empty prompt capture fields to a metering payload."""
    if data.system_prompt:
        payload["systemPrompt"] = data.system_prompt
    if data.input_messages:
        payload["inputMessages"] = data.input_messages
    if data.output_response:
        payload["outputResponse"] = data.output_response
    if data.prompts_truncated:
        payload["promptsTruncated"] = True
