"""Provider selection between the Gemini Developer API and Vertex AI."""

from typing import TYPE_CHECKING

from .types import Provider

if TYPE_CHECKING:
    from .config import Config


def detect_provider(config: "Config | None") -> Provider:
    """
    Decide which backend calls target.

    An explicit ``vertex_disabled`` flag forces the Gemini Developer API.
    Otherwise a configured Google Cloud project selects Vertex AI, and the
    Gemini Developer API is the default.
    """
    if config is None:
        return Provider.GOOGLE_AI

    if config.vertex_disabled:
        return Provider.GOOGLE_AI

    if config.project_id:
        return Provider.VERTEX_AI

    return Provider.GOOGLE_AI
