"""Test doubles: SDK-shaped responses, a fake Google GenAI client and a recording metering API."""

from __future__ import annotations

import asyncio
import json
import threading
from types import SimpleNamespace
from typing import Any, Iterator

import httpx
from google.genai import types


# ----------------------------
# Responses (SDK shapes)
# ----------------------------


def make_response(
    text: str = "Hello there",
    finish_reason: Any = types.FinishReason.STOP,
    prompt_tokens: int | None = 10,
    output_tokens: int | None = 5,
    total_tokens: int | None = 15,
) -> types.GenerateContentResponse:
    usage = None
    if prompt_tokens is not None:
        usage = types.GenerateContentResponseUsageMetadata(
            prompt_token_count=prompt_tokens,
            candidates_token_count=output_tokens,
            total_token_count=total_tokens,
        )
    return types.GenerateContentResponse(
        candidates=[
            types.Candidate(
                content=types.Content(role="model", parts=[types.Part(text=text)]),
                finish_reason=finish_reason,
            )
        ],
        usage_metadata=usage,
    )


def make_chunk(text: str, finish_reason: Any = None, usage: bool = False) -> types.GenerateContentResponse:
    if usage:
        return make_response(text, finish_reason)
    return make_response(text, finish_reason, prompt_tokens=None)


# ----------------------------
# Fake SDK client
# ----------------------------


def _stream(items: list[Any]) -> Iterator[Any]:
    for item in items:
        if isinstance(item, BaseException):
            raise item
        yield item


async def _async_stream(items: list[Any]):
    for item in items:
        if isinstance(item, asyncio.Event):
            await item.wait()
            continue
        if isinstance(item, BaseException):
            raise item
        yield item


class FakeModels:
    """Stands in for ``client.models``; ``results`` maps a method to its outcome."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.results: dict[str, Any] = {}

    def _result(self, method: str, kwargs: dict[str, Any]) -> Any:
        self.calls.append((method, kwargs))
        result = self.results.get(method)
        if isinstance(result, BaseException):
            raise result
        return result

    def generate_content(self, **kwargs: Any) -> Any:
        return self._result("generate_content", kwargs)

    def generate_content_stream(self, **kwargs: Any) -> Iterator[Any]:
        return _stream(self._result("generate_content_stream", kwargs))

    def generate_images(self, **kwargs: Any) -> Any:
        return self._result("generate_images", kwargs)

    def edit_image(self, **kwargs: Any) -> Any:
        return self._result("edit_image", kwargs)

    def upscale_image(self, **kwargs: Any) -> Any:
        return self._result("upscale_image", kwargs)

    def generate_videos(self, **kwargs: Any) -> Any:
        return self._result("generate_videos", kwargs)


class FakeAsyncModels:
    def __init__(self, models: FakeModels) -> None:
        self._models = models

    async def generate_content(self, **kwargs: Any) -> Any:
        return self._models._result("generate_content", kwargs)

    async def generate_content_stream(self, **kwargs: Any):
        return _async_stream(self._models._result("generate_content_stream", kwargs))


class FakeOperations:
    """Returns queued operation states, repeating the last one."""

    def __init__(self) -> None:
        self.states: list[Any] = []
        self.polls = 0

    def get(self, operation: Any) -> Any:
        self.polls += 1
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        if isinstance(state, BaseException):
            raise state
        return state


class FakeGenaiClient:
    def __init__(self) -> None:
        self.models = FakeModels()
        self.aio = SimpleNamespace(models=FakeAsyncModels(self.models))
        self.operations = FakeOperations()


# ----------------------------
# Metering API
# ----------------------------


class MeteringRecorder:
    """Metering API double answering with queued statuses (200 once empty)."""

    def __init__(self, statuses: list[int] | None = None) -> None:
        self.statuses = list(statuses or [])
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()
        self.transport = httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, json={"id": "m-1"})

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


