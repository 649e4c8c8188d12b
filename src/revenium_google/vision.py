"""
Vision content detection for Google GenAI requests.

Scans request contents for image parts, either inline blobs
(``Part.inline_data``) or file references (``Part.file_data``), so image
inputs can be reported alongside token usage.
"""

import base64
import binascii
from typing import Any

from .normalize import get_field, normalize_contents
from .types import VisionDetectionResult


def _is_image_mime_type(mime_type: Any) -> bool:
    return isinstance(mime_type, str) and mime_type.lower().startswith("image/")


def _blob_size(data: Any) -> int:
    """Size in bytes of inline data; base64 strings are measured decoded."""
    if data is None:
        return 0
    if isinstance(data, (bytes, bytearray, memoryview)):
        return len(data)
    if isinstance(data, str):
        try:
            return len(base64.b64decode(data, validate=True))
        except (binascii.Error, ValueError):
            return len(data.encode("utf-8"))
    return 0


def detect_vision_content(contents: Any) -> VisionDetectionResult:
    """
    Scan request contents for image content.

    Args:
        contents: The ``contents`` argument of a generate call (any shape the
            SDK accepts), or None

    Returns:
        Image count, total inline byte size and distinct media types. Never
        raises; unknown shapes are skipped.
    """
    image_count = 0
    total_bytes = 0
    media_types: list[str] = []

    for _role, parts in normalize_contents(contents):
        for part in parts:
            if part is None or isinstance(part, str):
                continue

            inline_data = get_field(part, "inline_data")
            file_data = get_field(part, "file_data")

            for source, size in (
                (inline_data, _blob_size(get_field(inline_data, "data"))),
                # File references (URIs) have no size we can measure.
                (file_data, 0),
            ):
                if source is None:
                    continue
                mime_type = get_field(source, "mime_type")
                if not _is_image_mime_type(mime_type):
                    continue
                image_count += 1
                total_bytes += size
                if mime_type not in media_types:
                    media_types.append(mime_type)

    return VisionDetectionResult(
        has_vision_content=image_count > 0,
        image_count=image_count,
        total_image_size_bytes=total_bytes,
        media_types=tuple(media_types),
    )


def build_vision_attributes(result: VisionDetectionResult) -> dict[str, Any] | None:
    """Build the ``attributes`` entries for a payload, or None without images."""
    if not result.has_vision_content:
        return None

    return {
        "vision_image_count": result.image_count,
        "vision_total_size_bytes": result.total_image_size_bytes,
        "vision_media_types": list(result.media_types),
    }
