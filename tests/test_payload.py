from datetime import datetime, timedelta, timezone

from revenium_google import (
    CallTiming,
    NormalizedUsage,
    PromptData,
    Provider,
    StopReason,
    UsageRecord,
    VisionDetectionResult,
    build_chat_payload,
    build_image_payload,
    build_video_payload,
)
from revenium_google.payload import duration_ms, format_timestamp, image_config_attributes

START = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
TIMING = CallTiming(
    request_time=START,
    completion_start_time=START + timedelta(milliseconds=250),
    response_time=START + timedelta(milliseconds=900),
)


def _record(**kwargs):
    kwargs.setdefault("usage", NormalizedUsage(10, 5, 15, 2, 1))
    return UsageRecord(**kwargs)


class TestChatPayload:
    def test_fields(self):
        payload = build_chat_payload(
            _record(temperature=0.5),
            model="gemini-2.0-flash",
            provider=Provider.GOOGLE_AI,
            timing=TIMING,
            is_streamed=False,
        )

        assert payload["stopReason"] == "END"
        assert payload["costType"] == "AI"
        assert payload["operationType"] == "CHAT"
        assert payload["model"] == "gemini-2.0-flash"
        assert payload["provider"] == "GOOGLE_AI"
        assert payload["isStreamed"] is False
        assert payload["inputTokenCount"] == 10
        assert payload["outputTokenCount"] == 5
        assert payload["totalTokenCount"] == 15
        assert payload["cacheReadTokenCount"] == 2
        assert payload["cacheCreationTokenCount"] == 0
        assert payload["reasoningTokenCount"] == 1
        assert payload["temperature"] == 0.5
        assert payload["requestTime"] == "2025-03-01T12:00:00.000Z"
        assert payload["completionStartTime"] == "2025-03-01T12:00:00.250Z"
        assert payload["responseTime"] == "2025-03-01T12:00:00.900Z"
        assert payload["requestDuration"] == 900
        assert payload["timeToFirstToken"] == 250
        assert payload["middlewareSource"] == "revenium-middleware-google-python"
        assert payload["transactionId"]
        assert "attributes" not in payload
        assert "errorReason" not in payload

    def test_transaction_ids_are_unique(self):
        first = build_chat_payload(_record(), model="m", provider=Provider.GOOGLE_AI, timing=TIMING, is_streamed=False)
        second = build_chat_payload(_record(), model="m", provider=Provider.GOOGLE_AI, timing=TIMING, is_streamed=False)
        assert first["transactionId"] != second["transactionId"]

    def test_metadata_is_filtered_to_allow_list(self):
        metadata = {
            "organizationId": "acme",
            "task_type": "summary",
            "subscriber": {"id": "u-1", "email": "a@b.c"},
            "traceId": "trace-7",
            "transactionId": "txn-fixed",
            "operationType": "IMAGE",
            "costType": "FREE",
            "password": "secret",
        }

        payload = build_chat_payload(
            _record(),
            model="m",
            provider=Provider.VERTEX_AI,
            timing=TIMING,
            is_streamed=True,
            metadata=metadata,
        )

        assert payload["organizationId"] == "acme"
        assert payload["taskType"] == "summary"
        assert payload["subscriber"] == {"id": "u-1", "email": "a@b.c"}
        assert payload["traceId"] == "trace-7"
        assert payload["transactionId"] == "txn-fixed"
        assert payload["operationType"] == "CHAT"
        assert payload["costType"] == "AI"
        assert payload["provider"] == "VERTEX_AI"
        assert "password" not in payload
        assert "task_type" not in payload

    def test_vision_goes_under_attributes(self):
        vision = VisionDetectionResult(True, 1, 1024, ("image/png",))

        payload = build_chat_payload(
            _record(vision=vision), model="m", provider=Provider.GOOGLE_AI, timing=TIMING, is_streamed=False
        )

        assert payload["attributes"] == {
            "vision_image_count": 1,
            "vision_total_size_bytes": 1024,
            "vision_media_types": ["image/png"],
        }
        assert "vision_image_count" not in payload

    def test_prompt_fields(self):
        prompts = PromptData(system_prompt="sys", input_messages="[]", output_response="out", prompts_truncated=True)

        payload = build_chat_payload(
            _record(prompts=prompts), model="m", provider=Provider.GOOGLE_AI, timing=TIMING, is_streamed=False
        )

        assert payload["systemPrompt"] == "sys"
        assert payload["inputMessages"] == "[]"
        assert payload["outputResponse"] == "out"
        assert payload["promptsTruncated"] is True

    def test_error(self):
        payload = build_chat_payload(
            _record(usage=NormalizedUsage(), stop_reason=StopReason.ERROR),
            model="m",
            provider=Provider.GOOGLE_AI,
            timing=TIMING,
            is_streamed=False,
            error=RuntimeError("quota exceeded"),
        )

        assert payload["stopReason"] == "ERROR"
        assert payload["errorReason"] == "quota exceeded"
        assert payload["totalTokenCount"] == 0


class TestImagePayload:
    def test_success(self):
        payload = build_image_payload(
            model="imagen-3.0-generate-002",
            provider=Provider.GOOGLE_AI,
            timing=TIMING,
            requested_count=4,
            actual_count=3,
            attributes={"aspectRatio": "16:9"},
        )

        assert payload["operationType"] == "IMAGE"
        assert payload["stopReason"] == "END"
        assert payload["requestedImageCount"] == 4
        assert payload["actualImageCount"] == 3
        assert payload["attributes"] == {"aspectRatio": "16:9"}

    def test_error_reports_no_images(self):
        payload = build_image_payload(
            model="imagen",
            provider=Provider.GOOGLE_AI,
            timing=TIMING,
            requested_count=2,
            actual_count=2,
            error=ValueError("blocked"),
        )

        assert payload["stopReason"] == "ERROR"
        assert payload["actualImageCount"] == 0
        assert payload["errorReason"] == "blocked"


class TestVideoPayload:
    def test_pending_start(self):
        payload = build_video_payload(
            model="veo-2.0-generate-001",
            provider=Provider.VERTEX_AI,
            timing=TIMING,
            requested_count=1,
            stop_reason="PENDING",
            attributes={"operationPhase": "start"},
        )

        assert payload["operationType"] == "VIDEO"
        assert payload["stopReason"] == "PENDING"
        assert payload["actualVideoCount"] == 0
        assert payload["requestedVideoCount"] == 1

    def test_error_overrides_stop_reason(self):
        payload = build_video_payload(
            model="veo",
            provider=Provider.VERTEX_AI,
            timing=TIMING,
            requested_count=1,
            stop_reason="PENDING",
            error="operation timeout",
        )

        assert payload["stopReason"] == "ERROR"
        assert payload["errorReason"] == "operation timeout"


def test_image_config_attributes_reads_enums_and_strings():
    config = {"aspect_ratio": "1:1", "output_mime_type": "image/png", "person_generation": None}
    assert image_config_attributes(config, operationSubtype="edit") == {
        "operationSubtype": "edit",
        "aspectRatio": "1:1",
        "outputMimeType": "image/png",
    }
    assert image_config_attributes(None) == {}


def test_timestamps_and_durations():
    naive = datetime(2025, 1, 2, 3, 4, 5, 678900)
    assert format_timestamp(naive) == "2025-01-02T03:04:05.678Z"
    assert duration_ms(START, START - timedelta(seconds=1)) == 0
