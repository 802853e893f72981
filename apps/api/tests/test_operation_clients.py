"""Provider operation client tests against mocked HTTP transports."""

from __future__ import annotations

from datetime import UTC, datetime
import json
import unittest

import httpx

from app.adapters.providers import (
    LipSyncRequest,
    MockOperationClient,
    StitchRequest,
    SynthRequest,
    build_providers,
)
from app.adapters.providers.base import classify_status_code
from app.adapters.providers.stitch import HttpStitchOperationClient, normalize_stitch_job
from app.adapters.providers.syncso import SyncSoOperationClient, normalize_syncso_job
from app.adapters.providers.veo import VEO_LIMITS, VeoOperationClient, normalize_veo_operation
from app.core.config import Settings
from app.domain.operations import (
    Capability,
    OperationHandle,
    OperationStatus,
    ProviderError,
    ProviderErrorKind,
)


class _Recorder:
    def __init__(self, status_code: int = 200, body: object | None = None) -> None:
        self.status_code = status_code
        self.body = body if body is not None else {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def _veo(recorder: _Recorder) -> VeoOperationClient:
    return VeoOperationClient(
        project_id="demo-project",
        location="us-central1",
        model_id="veo-3.1-generate-001",
        token_provider=None,
        http_client=recorder.client(),
    )


def _handle(capability: Capability, operation_id: str) -> OperationHandle:
    return OperationHandle(capability=capability, operation_id=operation_id, submitted_at=datetime.now(UTC))


class ProviderLimitsTests(unittest.TestCase):
    def test_out_of_range_requests_are_clamped(self) -> None:
        request = SynthRequest(prompt="p", duration_seconds=20.0, aspect_ratio="4:3")

        clamped = VEO_LIMITS.clamp(request)

        self.assertEqual(clamped.duration_seconds, 8)
        self.assertEqual(clamped.aspect_ratio, "16:9")
        self.assertEqual(VEO_LIMITS.clamp_duration(1.5), 4)
        self.assertEqual(VEO_LIMITS.clamp_aspect_ratio("9:16"), "9:16")

    def test_status_code_classification(self) -> None:
        cases = {
            429: ProviderErrorKind.RATE_LIMITED,
            402: ProviderErrorKind.QUOTA_EXCEEDED,
            500: ProviderErrorKind.PROVIDER_UNAVAILABLE,
            503: ProviderErrorKind.PROVIDER_UNAVAILABLE,
            400: ProviderErrorKind.INVALID_INPUT,
            422: ProviderErrorKind.INVALID_INPUT,
        }
        for status_code, kind in cases.items():
            with self.subTest(status_code=status_code):
                self.assertEqual(classify_status_code(status_code), kind)


class VeoOperationClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_submit_posts_long_running_prediction(self) -> None:
        recorder = _Recorder(body={"name": "projects/demo-project/operations/op-1"})
        client = _veo(recorder)

        handle = await client.submit(
            SynthRequest(
                prompt="Neon city",
                duration_seconds=12.0,
                aspect_ratio="9:16",
                reference_image_ref="gs://bucket/face.png",
            )
        )
        await client.aclose()

        self.assertEqual(handle.capability, Capability.SYNTH)
        self.assertEqual(handle.operation_id, "projects/demo-project/operations/op-1")
        request = recorder.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertTrue(str(request.url).endswith("/models/veo-3.1-generate-001:predictLongRunning"))
        body = recorder.last_json()
        self.assertEqual(body["instances"][0]["prompt"], "Neon city")
        self.assertEqual(body["instances"][0]["image"], {"gcsUri": "gs://bucket/face.png", "mimeType": "image/png"})
        self.assertEqual(body["parameters"]["durationSeconds"], 8)
        self.assertEqual(body["parameters"]["aspectRatio"], "9:16")
        self.assertEqual(body["parameters"]["sampleCount"], 1)
        self.assertFalse(body["parameters"]["generateAudio"])

    async def test_submit_errors_are_classified(self) -> None:
        cases = {
            429: ProviderErrorKind.RATE_LIMITED,
            402: ProviderErrorKind.QUOTA_EXCEEDED,
            503: ProviderErrorKind.PROVIDER_UNAVAILABLE,
            400: ProviderErrorKind.INVALID_INPUT,
        }
        for status_code, kind in cases.items():
            with self.subTest(status_code=status_code):
                recorder = _Recorder(status_code=status_code, body={"error": "nope"})
                client = _veo(recorder)
                with self.assertRaises(ProviderError) as context:
                    await client.submit(SynthRequest(prompt="p", duration_seconds=8, aspect_ratio="16:9"))
                await client.aclose()
                self.assertEqual(context.exception.kind, kind)
                self.assertEqual(len(recorder.requests), 1)

    async def test_transport_failure_is_provider_unavailable(self) -> None:
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = VeoOperationClient(
            project_id="demo-project",
            location="us-central1",
            model_id="veo-3.1-generate-001",
            token_provider=None,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(_refuse)),
        )
        with self.assertRaises(ProviderError) as context:
            await client.submit(SynthRequest(prompt="p", duration_seconds=8, aspect_ratio="16:9"))
        await client.aclose()

        self.assertEqual(context.exception.kind, ProviderErrorKind.PROVIDER_UNAVAILABLE)
        self.assertTrue(context.exception.retryable)

    async def test_poll_fetches_operation_and_normalizes(self) -> None:
        recorder = _Recorder(
            body={"done": True, "response": {"videos": [{"gcsUri": "gs://bucket/out.mp4"}]}},
        )
        client = _veo(recorder)

        result = await client.poll(_handle(Capability.SYNTH, "projects/demo-project/operations/op-1"))
        await client.aclose()

        self.assertTrue(str(recorder.requests[0].url).endswith(":fetchPredictOperation"))
        self.assertEqual(recorder.last_json(), {"operationName": "projects/demo-project/operations/op-1"})
        self.assertEqual(result.status, OperationStatus.SUCCEEDED)
        self.assertEqual(result.artifact_ref, "gs://bucket/out.mp4")

    async def test_non_retryable_poll_error_is_raised_once(self) -> None:
        recorder = _Recorder(status_code=404, body={"error": "unknown operation"})
        client = _veo(recorder)

        with self.assertRaises(ProviderError) as context:
            await client.poll(_handle(Capability.SYNTH, "op-missing"))
        await client.aclose()

        self.assertEqual(context.exception.kind, ProviderErrorKind.INVALID_INPUT)
        self.assertEqual(len(recorder.requests), 1)


class VeoNormalizationTests(unittest.TestCase):
    def test_operation_states(self) -> None:
        self.assertEqual(normalize_veo_operation({"done": False}).status, OperationStatus.PROCESSING)
        self.assertEqual(normalize_veo_operation({}).status, OperationStatus.PROCESSING)

        failed = normalize_veo_operation({"done": True, "error": {"message": "quota"}})
        self.assertEqual(failed.status, OperationStatus.FAILED)
        self.assertEqual(failed.error, "quota")

        empty = normalize_veo_operation({"done": True, "response": {}})
        self.assertEqual(empty.status, OperationStatus.FAILED)

    def test_video_locations(self) -> None:
        inline = normalize_veo_operation({"done": True, "response": {"videos": [{"bytesBase64Encoded": "AAAA"}]}})
        self.assertEqual(inline.artifact_ref, "data:video/mp4;base64,AAAA")

        generated = normalize_veo_operation(
            {"done": True, "response": {"generatedVideos": [{"video": {"uri": "gs://bucket/gen.mp4"}}]}}
        )
        self.assertEqual(generated.artifact_ref, "gs://bucket/gen.mp4")

        predicted = normalize_veo_operation({"done": True, "response": {"predictions": [{"videoUri": "gs://b/p.mp4"}]}})
        self.assertEqual(predicted.artifact_ref, "gs://b/p.mp4")


class SyncSoOperationClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_submit_sends_api_key_and_segment_window(self) -> None:
        recorder = _Recorder(body={"id": "sync-1", "status": "PENDING"})
        client = SyncSoOperationClient(api_key="key-1", http_client=recorder.client())

        handle = await client.submit(
            LipSyncRequest(video_ref="https://cdn/clip.mp4", audio_ref="https://cdn/song.mp3", start_seconds=8.0, end_seconds=16.0)
        )
        await client.aclose()

        self.assertEqual(handle.operation_id, "sync-1")
        self.assertEqual(handle.capability, Capability.LIPSYNC)
        request = recorder.requests[0]
        self.assertEqual(str(request.url), "https://api.sync.so/v2/generate")
        self.assertEqual(request.headers["x-api-key"], "key-1")
        body = recorder.last_json()
        self.assertEqual(body["input"][0], {"type": "video", "url": "https://cdn/clip.mp4"})
        self.assertEqual(body["input"][1]["segments_secs"], [[8.0, 16.0]])

    async def test_poll_reads_generation(self) -> None:
        recorder = _Recorder(body={"id": "sync-1", "status": "COMPLETED", "outputUrl": "https://cdn/synced.mp4"})
        client = SyncSoOperationClient(api_key="key-1", http_client=recorder.client())

        result = await client.poll(_handle(Capability.LIPSYNC, "sync-1"))
        await client.aclose()

        self.assertEqual(recorder.requests[0].method, "GET")
        self.assertEqual(str(recorder.requests[0].url), "https://api.sync.so/v2/generate/sync-1")
        self.assertEqual(result.status, OperationStatus.SUCCEEDED)
        self.assertEqual(result.artifact_ref, "https://cdn/synced.mp4")

    def test_status_vocabulary(self) -> None:
        self.assertEqual(normalize_syncso_job({"status": "PENDING"}).status, OperationStatus.PENDING)
        self.assertEqual(normalize_syncso_job({"status": "PROCESSING"}).status, OperationStatus.PROCESSING)
        self.assertEqual(normalize_syncso_job({"status": "REJECTED"}).status, OperationStatus.FAILED)
        self.assertEqual(normalize_syncso_job({"status": "SOMETHING_NEW"}).status, OperationStatus.PROCESSING)
        self.assertEqual(normalize_syncso_job({"status": "COMPLETED"}).status, OperationStatus.FAILED)


class StitchOperationClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_submit_orders_clips_and_overlays_audio(self) -> None:
        recorder = _Recorder(body={"id": "stitch-1"})
        client = HttpStitchOperationClient(base_url="https://stitch.local/", api_key="k", http_client=recorder.client())

        handle = await client.submit(
            StitchRequest(job_id="job-1", artifact_refs=("a.mp4", "b.mp4"), audio_ref="song.mp3", duration_seconds=16.0)
        )
        await client.aclose()

        self.assertEqual(handle.operation_id, "stitch-1")
        self.assertEqual(str(recorder.requests[0].url), "https://stitch.local/stitch")
        self.assertEqual(recorder.requests[0].headers["Authorization"], "Bearer k")
        body = recorder.last_json()
        self.assertEqual(body["clips"], [{"index": 0, "url": "a.mp4"}, {"index": 1, "url": "b.mp4"}])
        self.assertEqual(body["audio"], {"url": "song.mp3", "start_seconds": 0, "end_seconds": 16.0})

    async def test_audio_window_starts_at_first_clip_offset(self) -> None:
        recorder = _Recorder(body={"id": "stitch-2"})
        client = HttpStitchOperationClient(base_url="https://stitch.local", api_key="k", http_client=recorder.client())

        await client.submit(
            StitchRequest(
                job_id="job-1",
                artifact_refs=("a.mp4", "b.mp4"),
                audio_ref="song.mp3",
                duration_seconds=16.0,
                audio_start_seconds=10.0,
            )
        )
        await client.aclose()

        self.assertEqual(recorder.last_json()["audio"], {"url": "song.mp3", "start_seconds": 10.0, "end_seconds": 26.0})

    async def test_empty_clip_list_is_invalid_input(self) -> None:
        recorder = _Recorder(body={"id": "stitch-1"})
        client = HttpStitchOperationClient(base_url="https://stitch.local", http_client=recorder.client())

        with self.assertRaises(ProviderError) as context:
            await client.submit(StitchRequest(job_id="job-1", artifact_refs=(), audio_ref=None, duration_seconds=0.0))
        await client.aclose()

        self.assertEqual(context.exception.kind, ProviderErrorKind.INVALID_INPUT)
        self.assertEqual(recorder.requests, [])

    def test_status_vocabulary(self) -> None:
        self.assertEqual(normalize_stitch_job({"status": "queued"}).status, OperationStatus.PENDING)
        self.assertEqual(normalize_stitch_job({"status": "running"}).status, OperationStatus.PROCESSING)
        self.assertEqual(normalize_stitch_job({"status": "succeeded", "url": "out.mp4"}).artifact_ref, "out.mp4")
        self.assertEqual(normalize_stitch_job({"status": "succeeded"}).status, OperationStatus.FAILED)
        self.assertEqual(normalize_stitch_job({"status": "error", "error": "boom"}).error, "boom")


class BuildProvidersTests(unittest.TestCase):
    def test_defaults_are_mock_clients_without_stitching(self) -> None:
        providers = build_providers(Settings())

        self.assertIsInstance(providers.synth, MockOperationClient)
        self.assertIsInstance(providers.lipsync, MockOperationClient)
        self.assertIsNone(providers.stitch)
        self.assertIs(providers.for_capability(Capability.LIPSYNC), providers.lipsync)
        self.assertIsNone(providers.for_capability(Capability.STITCH))

    def test_real_providers_require_credentials(self) -> None:
        cases = {
            "veo": Settings(synth_provider="veo"),
            "syncso": Settings(lipsync_provider="syncso"),
            "stitch": Settings(stitch_provider="http"),
        }
        for name, settings in cases.items():
            with self.subTest(provider=name):
                with self.assertRaises(ValueError):
                    build_providers(settings)

    def test_configured_providers_are_selected(self) -> None:
        providers = build_providers(
            Settings(
                synth_provider="veo",
                vertex_project_id="demo-project",
                lipsync_provider="syncso",
                syncso_api_key="key-1",
                stitch_provider="http",
                stitch_base_url="https://stitch.local",
            )
        )

        self.assertIsInstance(providers.synth, VeoOperationClient)
        self.assertIsInstance(providers.lipsync, SyncSoOperationClient)
        self.assertIsInstance(providers.stitch, HttpStitchOperationClient)
