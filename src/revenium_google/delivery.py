"""
Delivery of metering payloads to the Revenium metering API.

Each payload is serialized to JSON and POSTed to the endpoint of its call
kind. Delivery retries transient failures with exponential backoff and
classifies errors:

- 2xx: accepted
- 4xx: ``ValidationError``, returned immediately (retrying cannot help)
- request failure (transport, decoding, redirects): ``NetworkError``, retried
- any other status: ``MeteringError``, retried

When every attempt fails, a terminal ``MeteringError`` chaining the last
error is raised. Callers on the background path log it and move on.
"""

import json
import logging
import time
from typing import Any, Callable, Mapping

import httpx

from .config import Config
from .payload import SDK_VERSION
from .types import CallKind, MeteringError, NetworkError, ValidationError

logger = logging.getLogger("revenium")

ENDPOINTS = {
    CallKind.CHAT: "/meter/v2/ai/completions",
    CallKind.IMAGE: "/meter/v2/ai/images",
    CallKind.VIDEO: "/meter/v2/ai/video",
}

MAX_ATTEMPTS = 3
INITIAL_BACKOFF = 0.1
USER_AGENT = f"revenium-middleware-google-python/{SDK_VERSION}"


def serialize_payload(payload: Mapping[str, Any]) -> bytes:
    """Serialize a payload to UTF-8 JSON; unknown values are stringified."""
    return json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")


class MeteringClient:
    """
    Sends metering payloads with retry and error classification.

    Safe to share between threads: the underlying ``httpx.Client`` is.

    Attributes:
        close: Close the underlying HTTP connection pool
    """

    def __init__(
        self,
        config: Config,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._sleep = sleep
        self._http = httpx.Client(
            base_url=config.revenium_base_url,
            timeout=config.request_timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json; charset=utf-8",
                "x-api-key": config.revenium_api_key,
                "User-Agent": USER_AGENT,
            },
        )

    def deliver(self, payload: Mapping[str, Any], kind: CallKind = CallKind.CHAT) -> None:
        """
        Deliver one payload, retrying transient failures.

        Args:
            payload: The metering payload; it is not modified
            kind: Call kind selecting the endpoint

        Raises:
            ValidationError: The API rejected the payload (4xx)
            MeteringError: The payload could not be serialized, or every
                attempt failed
        """
        path = ENDPOINTS[kind]
        try:
            body = serialize_payload(payload)
        except (TypeError, ValueError) as e:
            raise MeteringError("failed to serialize metering payload", e) from e

        last_error: Exception | None = None
        backoff = INITIAL_BACKOFF

        for attempt in range(1, MAX_ATTEMPTS + 1):
            if attempt > 1:
                self._sleep(backoff)
                backoff *= 2

            try:
                self._send(path, body)
                return
            except ValidationError:
                raise
            except (NetworkError, MeteringError) as e:
                last_error = e
                logger.debug(f"[revenium] Metering attempt {attempt}/{MAX_ATTEMPTS} failed: {e}")

        raise MeteringError(
            f"metering failed after {MAX_ATTEMPTS} attempts", last_error
        ) from last_error

    def _send(self, path: str, body: bytes) -> None:
        """Send a single metering request."""
        logger.debug(f"[revenium] Sending metering payload to {path}: {body.decode('utf-8')}")

        try:
            response = self._http.post(path, content=body)
        except httpx.RequestError as e:
            logger.error(f"[revenium] Metering network error: {e}")
            raise NetworkError("metering request failed", e) from e

        status = response.status_code
        logger.debug(f"[revenium] Metering response status: {status}, body: {response.text}")

        if 200 <= status < 300:
            return

        logger.error(f"[revenium] Metering API error response (status {status}): {response.text}")
        if 400 <= status < 500:
            raise ValidationError(
                f"metering API returned {status}: {response.text}",
                status_code=status,
                body=response.text,
            )
        raise MeteringError(f"metering API error: status {status}: {response.text}")

    def close(self) -> None:
        self._http.close()
