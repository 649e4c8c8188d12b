"""
Usage normalization utilities.

Google GenAI responses report usage in a ``usage_metadata`` block. Responses
may arrive as SDK (pydantic) objects or, from tests and REST-style callers,
as plain dicts with either snake_case or camelCase keys. This module reads
both shapes and normalizes them into ``NormalizedUsage``.
"""

from typing import Any

from .types import NormalizedUsage


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """
    Read a field from an SDK object or a dict.

    Dicts are looked up by the snake_case name first, then its camelCase
    form. ``None`` values count as missing.
    """
    if obj is None:
        return default

    if isinstance(obj, dict):
        value = obj.get(name)
        if value is None:
            value = obj.get(_camel(name))
    else:
        value = getattr(obj, name, None)

    return default if value is None else value


def _is_content(item: Any) -> bool:
    if isinstance(item, dict):
        return "parts" in item or "role" in item
    return not isinstance(item, (str, bytes)) and hasattr(item, "parts")


def normalize_contents(contents: Any) -> list[tuple[str, list[Any]]]:
    """
    Normalize the ``contents`` argument of a generate call into messages.

    The SDK accepts a string, a ``Content``, a part, or a list mixing them.
    Consecutive bare strings and parts are grouped into one user message, as
    the SDK does when it builds the request.

    Returns:
        List of ``(role, parts)`` tuples; role defaults to ``"user"``
    """
    if contents is None:
        return []

    items = contents if isinstance(contents, (list, tuple)) else [contents]
    messages: list[tuple[str, list[Any]]] = []
    pending: list[Any] = []

    for item in items:
        if item is None:
            continue
        if _is_content(item):
            if pending:
                messages.append(("user", pending))
                pending = []
            role = get_field(item, "role") or "user"
            parts = get_field(item, "parts") or []
            if not isinstance(parts, (list, tuple)):
                parts = [parts]
            messages.append((str(role), list(parts)))
        else:
            pending.append(item)

    if pending:
        messages.append(("user", pending))

    return messages


def part_text(part: Any) -> str:
    """Return the text of a part (a bare string counts as a text part)."""
    if isinstance(part, str):
        return part
    text = get_field(part, "text")
    return text if isinstance(text, str) else ""


def _count(usage: Any, name: str) -> int:
    value = get_field(usage, name, 0)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def normalize_usage(usage: Any) -> NormalizedUsage:
    """
    Normalize a ``usage_metadata`` block into token counts.

    Args:
        usage: ``GenerateContentResponseUsageMetadata``, dict, or None

    Returns:
        Token counts; all zero when ``usage`` is None. The total is computed
        as prompt + candidates when the block does not supply one.

    Example:
        >>> response = client.models.generate_content(...)
        >>> normalized = normalize_usage(response.usage_metadata)
        >>> print(f"Input: {normalized.input_tokens}, Output: {normalized.output_tokens}")
    """
    if usage is None:
        return NormalizedUsage()

    input_tokens = _count(usage, "prompt_token_count")
    output_tokens = _count(usage, "candidates_token_count")

    return NormalizedUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=_count(usage, "total_token_count") or (input_tokens + output_tokens),
        cached_tokens=_count(usage, "cached_content_token_count"),
        reasoning_tokens=_count(usage, "thoughts_token_count"),
    )


def usage_from_response(response: Any) -> NormalizedUsage:
    """Normalize the usage block of a response (or streamed chunk)."""
    return normalize_usage(get_field(response, "usage_metadata"))
