"""
Google GenAI SDK instrumentation.

Wraps the entry points of a ``google.genai.Client`` (content generation,
streaming, image and video generation) so every call is metered. Each
wrapper times the call, hands the request, the response (or the error) and
the call metadata to a background task, and returns the SDK's result or
re-raises the SDK's exception unchanged. Extraction, payload building and
delivery all happen on the background task.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Iterator, Mapping

from .config import Config
from .context import get_usage_metadata
from .delivery import MeteringClient
from .extractor import extract_usage
from .normalize import get_field
from .payload import build_chat_payload, build_image_payload, build_video_payload, image_config_attributes
from .prompts import response_text
from .stop_reason import extract_finish_reason
from .tasks import PendingTasks
from .types import CallKind, CallTiming, Provider, StopReason, VideoGenerationError

logger = logging.getLogger("revenium")

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_VIDEO_TIMEOUT = 300.0


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MeteringContext:
    """What every wrapper needs to meter a call; shared by one client."""

    config: Config
    provider: Provider
    metering: MeteringClient
    tasks: PendingTasks


# =============================================================================
# Background metering
# =============================================================================


def _meter_chat(
    ctx: MeteringContext,
    model: str,
    contents: Any,
    config: Any,
    response: Any,
    timing: CallTiming,
    metadata: Mapping[str, Any],
    is_streamed: bool,
    error: BaseException | None,
    output_text: str | None,
    finish_reason: Any,
    default_stop_reason: StopReason,
) -> None:
    """Extract usage, build the chat payload and deliver it (background)."""
    record = extract_usage(
        contents,
        config,
        response,
        capture_prompts=ctx.config.capture_prompts,
        output_text=output_text,
        finish_reason=finish_reason,
        default_stop_reason=default_stop_reason,
    )
    payload = build_chat_payload(
        record,
        model=model,
        provider=ctx.provider,
        timing=timing,
        is_streamed=is_streamed,
        metadata=metadata,
        error=error,
    )
    ctx.metering.deliver(payload, CallKind.CHAT)
    logger.debug(
        f"[revenium] Metering sent (model={model}, tokens={record.usage.total_tokens})"
    )


def _dispatch_chat(
    ctx: MeteringContext,
    *,
    model: str,
    contents: Any,
    config: Any,
    response: Any,
    timing: CallTiming,
    metadata: Mapping[str, Any],
    is_streamed: bool,
    error: BaseException | None = None,
    output_text: str | None = None,
    finish_reason: Any = None,
    default_stop_reason: StopReason = StopReason.END,
) -> None:
    # A stream that fails partway still reports the usage already received.
    if error is not None:
        finish_reason = ""
        default_stop_reason = StopReason.ERROR
    ctx.tasks.spawn(
        _meter_chat,
        ctx,
        model,
        contents,
        config,
        response,
        timing,
        metadata,
        is_streamed,
        error,
        output_text,
        finish_reason,
        default_stop_reason,
    )


def _dispatch(ctx: MeteringContext, kind: CallKind, build: Callable[..., dict[str, Any]], **kwargs: Any) -> None:
    """Build and deliver an image or video payload on a background task."""

    def meter() -> None:
        payload = build(provider=ctx.provider, **kwargs)
        ctx.metering.deliver(payload, kind)
        logger.debug(f"[revenium] {kind.value} metering sent (model={kwargs.get('model')})")

    ctx.tasks.spawn(meter)


# =============================================================================
# Streaming
# =============================================================================


class _StreamState:
    """What a streaming call accumulates while chunks flow to the caller."""

    def __init__(self, capture_text: bool):
        self.capture_text = capture_text
        self.chunk_count = 0
        self.completion_start_time: datetime | None = None
        self.usage_metadata: Any = None
        self.finish_reason = ""
        self.text_parts: list[str] = []

    def observe(self, chunk: Any) -> None:
        if self.completion_start_time is None:
            self.completion_start_time = _now()
        self.chunk_count += 1

        usage = get_field(chunk, "usage_metadata")
        if usage is not None:
            self.usage_metadata = usage

        reason = extract_finish_reason(chunk)
        if reason:
            self.finish_reason = reason

        if self.capture_text:
            text = response_text(chunk)
            if text:
                self.text_parts.append(text)

    def timing(self, request_time: datetime) -> CallTiming:
        response_time = _now()
        return CallTiming(
            request_time=request_time,
            # Falls back to the end time only when no chunk ever arrived.
            completion_start_time=self.completion_start_time or response_time,
            response_time=response_time,
        )

    def final_response(self) -> dict[str, Any]:
        return {"usage_metadata": self.usage_metadata}

    def output_text(self) -> str | None:
        return "".join(self.text_parts) if self.capture_text else None


def _finish_stream(
    ctx: MeteringContext,
    state: _StreamState,
    *,
    model: str,
    contents: Any,
    config: Any,
    request_time: datetime,
    metadata: Mapping[str, Any],
    error: BaseException | None,
    stop_reason: StopReason,
) -> None:
    _dispatch_chat(
        ctx,
        model=model,
        contents=contents,
        config=config,
        response=state.final_response(),
        timing=state.timing(request_time),
        metadata=metadata,
        is_streamed=True,
        error=error,
        output_text=state.output_text(),
        finish_reason=state.finish_reason,
        default_stop_reason=stop_reason,
    )


def _metered_stream(
    ctx: MeteringContext,
    stream: Iterator[Any],
    *,
    model: str,
    contents: Any,
    config: Any,
    request_time: datetime,
    metadata: Mapping[str, Any],
) -> Iterator[Any]:
    """
    Forward chunks unchanged and meter the stream exactly once.

    The ``finally`` block is the single exit reached on normal exhaustion,
    on ``close()`` (or garbage collection) after the consumer stops early,
    and on an error raised by the SDK mid-stream.
    """
    state = _StreamState(capture_text=ctx.config.capture_prompts)
    error: BaseException | None = None

    try:
        for chunk in stream:
            state.observe(chunk)
            yield chunk
        logger.debug(f"[revenium] Stream completed: {state.chunk_count} chunks")
    except GeneratorExit:
        logger.debug(f"[revenium] Stream stopped by consumer after {state.chunk_count} chunks")
        raise
    except Exception as e:
        logger.debug(f"[revenium] Stream error after {state.chunk_count} chunks: {e}")
        error = e
        raise
    finally:
        _finish_stream(
            ctx,
            state,
            model=model,
            contents=contents,
            config=config,
            request_time=request_time,
            metadata=metadata,
            error=error,
            stop_reason=StopReason.END,
        )


async def _metered_async_stream(
    ctx: MeteringContext,
    stream: AsyncIterator[Any],
    *,
    model: str,
    contents: Any,
    config: Any,
    request_time: datetime,
    metadata: Mapping[str, Any],
) -> AsyncIterator[Any]:
    """Async counterpart of ``_metered_stream``; task cancellation meters as CANCELLED."""
    state = _StreamState(capture_text=ctx.config.capture_prompts)
    error: BaseException | None = None
    stop_reason = StopReason.END

    try:
        async for chunk in stream:
            state.observe(chunk)
            yield chunk
        logger.debug(f"[revenium] Stream completed: {state.chunk_count} chunks")
    except GeneratorExit:
        logger.debug(f"[revenium] Stream stopped by consumer after {state.chunk_count} chunks")
        raise
    except asyncio.CancelledError:
        logger.debug(f"[revenium] Stream cancelled after {state.chunk_count} chunks")
        stop_reason = StopReason.CANCELLED
        raise
    except Exception as e:
        logger.debug(f"[revenium] Stream error after {state.chunk_count} chunks: {e}")
        error = e
        raise
    finally:
        _finish_stream(
            ctx,
            state,
            model=model,
            contents=contents,
            config=config,
            request_time=request_time,
            metadata=metadata,
            error=error,
            stop_reason=stop_reason,
        )


# =============================================================================
# Content generation
# =============================================================================


def _immediate_failure(
    ctx: MeteringContext,
    error: BaseException,
    *,
    model: str,
    contents: Any,
    config: Any,
    request_time: datetime,
    metadata: Mapping[str, Any],
    is_streamed: bool,
) -> None:
    logger.debug(f"[revenium] {model} call failed: {error}")
    failed_at = _now()
    _dispatch_chat(
        ctx,
        model=model,
        contents=contents,
        config=config,
        response=None,
        timing=CallTiming(request_time, failed_at, failed_at),
        metadata=metadata,
        is_streamed=is_streamed,
        error=error,
    )


def _meter_response(
    ctx: MeteringContext,
    response: Any,
    *,
    model: str,
    contents: Any,
    config: Any,
    request_time: datetime,
    metadata: Mapping[str, Any],
) -> None:
    response_time = _now()
    logger.debug(
        f"[revenium] generate_content completed in "
        f"{(response_time - request_time).total_seconds() * 1000:.0f}ms"
    )
    _dispatch_chat(
        ctx,
        model=model,
        contents=contents,
        config=config,
        response=response,
        # Non-streaming output arrives all at once.
        timing=CallTiming(request_time, response_time, response_time),
        metadata=metadata,
        is_streamed=False,
    )


class MeteredModels:
    """Metered counterpart of ``client.models`` for content generation."""

    def __init__(self, models: Any, ctx: MeteringContext):
        self._models = models
        self._ctx = ctx

    def generate_content(self, *, model: str, contents: Any, config: Any = None, **kwargs: Any) -> Any:
        """Call ``models.generate_content`` and meter it in the background."""
        metadata = get_usage_metadata()
        request_time = _now()
        logger.debug(f"[revenium] generate_content called with model: {model}")

        try:
            response = self._models.generate_content(model=model, contents=contents, config=config, **kwargs)
        except Exception as e:
            _immediate_failure(
                self._ctx, e, model=model, contents=contents, config=config,
                request_time=request_time, metadata=metadata, is_streamed=False,
            )
            raise

        _meter_response(
            self._ctx, response, model=model, contents=contents, config=config,
            request_time=request_time, metadata=metadata,
        )
        return response

    def generate_content_stream(
        self, *, model: str, contents: Any, config: Any = None, **kwargs: Any
    ) -> Iterator[Any]:
        """Call ``models.generate_content_stream``; the stream is metered once it ends."""
        metadata = get_usage_metadata()
        request_time = _now()
        logger.debug(f"[revenium] generate_content_stream called with model: {model}")

        try:
            stream = self._models.generate_content_stream(
                model=model, contents=contents, config=config, **kwargs
            )
        except Exception as e:
            _immediate_failure(
                self._ctx, e, model=model, contents=contents, config=config,
                request_time=request_time, metadata=metadata, is_streamed=True,
            )
            raise

        return _metered_stream(
            self._ctx, iter(stream), model=model, contents=contents, config=config,
            request_time=request_time, metadata=metadata,
        )


class AsyncMeteredModels:
    """Metered counterpart of ``client.aio.models``."""

    def __init__(self, models: Any, ctx: MeteringContext):
        self._models = models
        self._ctx = ctx

    async def generate_content(self, *, model: str, contents: Any, config: Any = None, **kwargs: Any) -> Any:
        metadata = get_usage_metadata()
        request_time = _now()
        logger.debug(f"[revenium] async generate_content called with model: {model}")

        try:
            response = await self._models.generate_content(
                model=model, contents=contents, config=config, **kwargs
            )
        except Exception as e:
            _immediate_failure(
                self._ctx, e, model=model, contents=contents, config=config,
                request_time=request_time, metadata=metadata, is_streamed=False,
            )
            raise

        _meter_response(
            self._ctx, response, model=model, contents=contents, config=config,
            request_time=request_time, metadata=metadata,
        )
        return response

    async def generate_content_stream(
        self, *, model: str, contents: Any, config: Any = None, **kwargs: Any
    ) -> AsyncIterator[Any]:
        metadata = get_usage_metadata()
        request_time = _now()
        logger.debug(f"[revenium] async generate_content_stream called with model: {model}")

        try:
            stream = await self._models.generate_content_stream(
                model=model, contents=contents, config=config, **kwargs
            )
        except Exception as e:
            _immediate_failure(
                self._ctx, e, model=model, contents=contents, config=config,
                request_time=request_time, metadata=metadata, is_streamed=True,
            )
            raise

        return _metered_async_stream(
            self._ctx, stream.__aiter__(), model=model, contents=contents, config=config,
            request_time=request_time, metadata=metadata,
        )


class AsyncMeteredClient:
    """Metered counterpart of ``client.aio``."""

    def __init__(self, aio: Any, ctx: MeteringContext):
        self.models = AsyncMeteredModels(aio.models, ctx)


# =============================================================================
# Images
# =============================================================================


def _requested_count(config: Any, name: str) -> int:
    count = get_field(config, name, 0)
    return count if isinstance(count, int) and count > 0 else 1


def _generated_count(response: Any, name: str) -> int:
    return len(get_field(response, name) or [])


class MeteredImages:
    """Image generation (Imagen) with metering: generate, edit and upscale."""

    def __init__(self, models: Any, ctx: MeteringContext):
        self._models = models
        self._ctx = ctx

    def _call(
        self,
        method: str,
        *,
        model: str,
        requested_count: int,
        attributes: dict[str, Any],
        **call_kwargs: Any,
    ) -> Any:
        metadata = get_usage_metadata()
        request_time = _now()
        logger.debug(f"[revenium] {method} called with model: {model}")

        try:
            response = getattr(self._models, method)(model=model, **call_kwargs)
        except Exception as e:
            logger.debug(f"[revenium] {method} error: {e}")
            failed_at = _now()
            _dispatch(
                self._ctx, CallKind.IMAGE, build_image_payload,
                model=model,
                timing=CallTiming(request_time, failed_at, failed_at),
                requested_count=requested_count,
                metadata=metadata,
                error=e,
            )
            raise

        response_time = _now()
        actual_count = _generated_count(response, "generated_images")
        logger.debug(f"[revenium] {method} completed, images generated: {actual_count}")
        _dispatch(
            self._ctx, CallKind.IMAGE, build_image_payload,
            model=model,
            timing=CallTiming(request_time, response_time, response_time),
            requested_count=requested_count,
            actual_count=actual_count,
            attributes=attributes,
            metadata=metadata,
        )
        return response

    def generate_images(self, *, model: str, prompt: str, config: Any = None, **kwargs: Any) -> Any:
        return self._call(
            "generate_images",
            model=model,
            requested_count=_requested_count(config, "number_of_images"),
            attributes=image_config_attributes(config),
            prompt=prompt,
            config=config,
            **kwargs,
        )

    def edit_image(
        self, *, model: str, prompt: str, reference_images: Any, config: Any = None, **kwargs: Any
    ) -> Any:
        return self._call(
            "edit_image",
            model=model,
            requested_count=_requested_count(config, "number_of_images"),
            attributes=image_config_attributes(config, operationSubtype="edit"),
            prompt=prompt,
            reference_images=reference_images,
            config=config,
            **kwargs,
        )

    def upscale_image(
        self, *, model: str, image: Any, upscale_factor: str, config: Any = None, **kwargs: Any
    ) -> Any:
        return self._call(
            "upscale_image",
            model=model,
            requested_count=1,
            attributes={"operationSubtype": "upscale", "upscaleFactor": upscale_factor},
            image=image,
            upscale_factor=upscale_factor,
            config=config,
            **kwargs,
        )


# =============================================================================
# Videos
# =============================================================================


class MeteredVideos:
    """
    Video generation (Veo) with metering.

    Video generation is a long-running operation. ``generate_videos`` meters
    the start of the operation; ``wait_for_video_generation`` polls it to
    completion and meters the result.
    """

    def __init__(
        self,
        models: Any,
        operations: Any,
        ctx: MeteringContext,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._models = models
        self._operations = operations
        self._ctx = ctx
        self._sleep = sleep

    def generate_videos(self, *, model: str, prompt: str | None = None, config: Any = None, **kwargs: Any) -> Any:
        """Start a video generation operation and meter its start."""
        metadata = get_usage_metadata()
        request_time = _now()
        requested_count = _requested_count(config, "number_of_videos")
        logger.debug(f"[revenium] generate_videos called with model: {model}")

        try:
            operation = self._models.generate_videos(model=model, prompt=prompt, config=config, **kwargs)
        except Exception as e:
            logger.debug(f"[revenium] generate_videos error: {e}")
            failed_at = _now()
            _dispatch(
                self._ctx, CallKind.VIDEO, build_video_payload,
                model=model,
                timing=CallTiming(request_time, failed_at, failed_at),
                requested_count=requested_count,
                metadata=metadata,
                error=e,
            )
            raise

        response_time = _now()
        attributes: dict[str, Any] = {"operationPhase": "start"}
        name = get_field(operation, "name")
        if name:
            attributes["operationName"] = name
        aspect_ratio = get_field(config, "aspect_ratio")
        if aspect_ratio:
            attributes["aspectRatio"] = aspect_ratio

        logger.debug(f"[revenium] generate_videos operation started: {name}")
        _dispatch(
            self._ctx, CallKind.VIDEO, build_video_payload,
            model=model,
            timing=CallTiming(request_time, response_time, response_time),
            requested_count=requested_count,
            stop_reason="PENDING",
            attributes=attributes,
            metadata=metadata,
        )
        return operation

    def wait_for_video_generation(
        self,
        operation: Any,
        *,
        model: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_VIDEO_TIMEOUT,
        requested_count: int | None = None,
    ) -> Any:
        """
        Poll a video operation until it completes and meter the outcome.

        Args:
            operation: Operation returned by ``generate_videos``
            model: Model the operation was started with
            poll_interval: Seconds between polls
            timeout: Seconds to wait before giving up
            requested_count: Videos requested; defaults to the number generated

        Returns:
            The ``GenerateVideosResponse`` of the finished operation

        Raises:
            TimeoutError: The operation did not finish within ``timeout``
            VideoGenerationError: The operation finished with an error or
                without a response
        """
        metadata = get_usage_metadata()
        wait_start = _now()
        deadline = time.monotonic() + timeout
        current = operation

        def meter_error(reason: str) -> None:
            failed_at = _now()
            _dispatch(
                self._ctx, CallKind.VIDEO, build_video_payload,
                model=model,
                timing=CallTiming(wait_start, failed_at, failed_at),
                requested_count=requested_count or 0,
                metadata=metadata,
                error=reason,
            )

        while not get_field(current, "done"):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.debug(f"[revenium] Video generation timed out after {timeout}s")
                meter_error(f"operation timeout after {timeout}s")
                raise TimeoutError(f"video generation did not finish within {timeout}s")

            self._sleep(min(poll_interval, remaining))
            try:
                current = self._operations.get(current)
            except Exception as e:
                logger.error(f"[revenium] Failed to get operation status: {e}")
                continue
            logger.debug("[revenium] Video generation still in progress...")

        op_error = get_field(current, "error")
        if op_error:
            meter_error(str(op_error))
            raise VideoGenerationError(f"video generation failed: {op_error}", op_error)

        response = get_field(current, "response") or get_field(current, "result")
        if response is None:
            meter_error("video generation completed but no response")
            raise VideoGenerationError("video generation completed but no response")

        response_time = _now()
        actual_count = _generated_count(response, "generated_videos")
        attributes: dict[str, Any] = {"operationPhase": "complete"}
        filtered = get_field(response, "rai_media_filtered_count", 0)
        if filtered:
            attributes["raiFilteredCount"] = filtered
            attributes["raiFilteredReasons"] = list(get_field(response, "rai_media_filtered_reasons") or [])

        logger.debug(f"[revenium] Video generation completed, videos generated: {actual_count}")
        _dispatch(
            self._ctx, CallKind.VIDEO, build_video_payload,
            model=model,
            timing=CallTiming(wait_start, response_time, response_time),
            requested_count=requested_count if requested_count is not None else actual_count,
            actual_count=actual_count,
            attributes=attributes,
            metadata=metadata,
        )
        return response
