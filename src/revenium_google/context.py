"""
Call-scoped usage metadata using contextvars.

Business context (organization, task, trace ids, subscriber, ...) is
attached to the current scope and picked up by every metered call made
inside it, without threading a parameter through the application:

    with revenium_google.usage_metadata(organizationId="acme", taskType="summary"):
        response = client.models.generate_content(model=..., contents=...)

Only allow-listed keys reach the payload; see ``payload.METADATA_FIELDS``.
"""

import contextvars
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Generator, Mapping

_EMPTY: Mapping[str, Any] = MappingProxyType({})

# Context variable holding the metadata of the current call scope
_usage_metadata: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar(
    "revenium_usage_metadata", default=_EMPTY
)


@contextmanager
def usage_metadata(
    metadata: Mapping[str, Any] | None = None, **fields: Any
) -> Generator[Mapping[str, Any], None, None]:
    """
    Context manager attaching usage metadata to every call made inside it.

    Nested scopes merge with the enclosing one; inner keys win.

    Args:
        metadata: Optional mapping of metadata keys
        **fields: Metadata given as keyword arguments

    Example:
        with usage_metadata({"subscriber": {"id": "u-1"}}, traceId="t-42"):
            client.models.generate_content(...)
    """
    token = set_usage_metadata(metadata, **fields)
    try:
        yield _usage_metadata.get()
    finally:
        _usage_metadata.reset(token)


def set_usage_metadata(
    metadata: Mapping[str, Any] | None = None, **fields: Any
) -> contextvars.Token[Mapping[str, Any]]:
    """
    Merge metadata into the current scope.

    For framework integrations where a ``with`` block does not fit. Returns
    a token for ``reset_usage_metadata``.
    """
    merged = dict(_usage_metadata.get())
    merged.update(metadata or {})
    merged.update(fields)
    return _usage_metadata.set(MappingProxyType(merged))


def reset_usage_metadata(token: contextvars.Token[Mapping[str, Any]]) -> None:
    """Restore the metadata scope that was active before ``set_usage_metadata``."""
    _usage_metadata.reset(token)


def get_usage_metadata() -> Mapping[str, Any]:
    """Read-only view of the metadata of the current scope (empty if unset)."""
    return _usage_metadata.get()
