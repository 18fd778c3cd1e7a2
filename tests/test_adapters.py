import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from avatar_shorts.api import (
    AvatarJob,
    BackgroundRemovalJob,
    CaptionJob,
    CaptionsAvatarAdapter,
    CreatomateCaptionAdapter,
    UnscreenBackgroundAdapter,
    get_adapter,
    list_adapters,
)
from avatar_shorts.api.base import JobHandle, OutcomeStatus, ensure_direct_video_url
from avatar_shorts.core.exceptions import (
    ExternalJobFailed,
    FormatIncompatible,
    ProviderError,
    SubmissionRejected,
)

from conftest import make_config, mock_client


class Recorder:
    """MockTransport handler that replays canned responses per path."""

    def __init__(self, routes):
        self.routes = {key: list(value) for key, value in routes.items()}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        queue = self.routes[key]
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        return response


class TestFactory:
    def test_registered_adapters(self):
        assert {"avatar", "background_removal", "caption"} <= set(list_adapters())

    def test_get_adapter_builds_configured_instance(self):
        config = make_config()
        adapter = get_adapter("avatar", config)
        assert isinstance(adapter, CaptionsAvatarAdapter)
        assert adapter.api_key == "captions-key"

    def test_unknown_adapter(self):
        with pytest.raises(ValueError):
            get_adapter("teleport", make_config())


class TestCaptionsAvatarAdapter:
    """Captions.ai: JSON body, x-api-key header, upper-case states"""

    def test_submit_and_poll_to_completion(self):
        recorder = Recorder({
            ("POST", "/api/creator/submit"): [httpx.Response(200, json={"operationId": "op-1"})],
            ("POST", "/api/creator/poll"): [
                httpx.Response(200, json={"state": "PROCESSING"}),
                httpx.Response(200, json={"state": "COMPLETE", "url": "https://cdn/avatar.mp4"}),
            ],
        })
        adapter = CaptionsAvatarAdapter(make_config().avatar, client=mock_client(recorder))

        result = asyncio.run(adapter.run(AvatarJob(script="Hello", creator_id="kate")))

        assert result == "https://cdn/avatar.mp4"
        submit = recorder.requests[0]
        assert submit.headers["x-api-key"] == "captions-key"
        assert json.loads(submit.content) == {"script": "Hello", "creatorName": "kate", "resolution": "fhd"}
        polls = recorder.requests[1:]
        assert len(polls) == 2
        assert all(json.loads(r.content) == {"operationId": "op-1"} for r in polls)

    def test_failed_state_carries_error_detail(self):
        recorder = Recorder({
            ("POST", "/api/creator/submit"): [httpx.Response(200, json={"operationId": "op-2"})],
            ("POST", "/api/creator/poll"): [httpx.Response(200, json={"state": "FAILED", "error": "quota exceeded"})],
        })
        adapter = CaptionsAvatarAdapter(make_config().avatar, client=mock_client(recorder))

        with pytest.raises(ExternalJobFailed) as exc_info:
            asyncio.run(adapter.run(AvatarJob(script="Hello", creator_id="kate")))

        assert exc_info.value.message == "quota exceeded"

    def test_rejected_submission_keeps_status_and_body(self):
        recorder = Recorder({
            ("POST", "/api/creator/submit"): [httpx.Response(402, text="payment required")],
        })
        adapter = CaptionsAvatarAdapter(make_config().avatar, client=mock_client(recorder))

        with pytest.raises(SubmissionRejected) as exc_info:
            asyncio.run(adapter.submit(AvatarJob(script="Hello", creator_id="kate")))

        assert exc_info.value.status_code == 402
        assert exc_info.value.details["response_body"] == "payment required"
        assert not exc_info.value.recoverable

    def test_missing_operation_id_is_rejected(self):
        recorder = Recorder({("POST", "/api/creator/submit"): [httpx.Response(200, json={})]})
        adapter = CaptionsAvatarAdapter(make_config().avatar, client=mock_client(recorder))

        with pytest.raises(SubmissionRejected):
            asyncio.run(adapter.submit(AvatarJob(script="Hello", creator_id="kate")))

    def test_transient_status_error_is_retried(self):
        recorder = Recorder({
            ("POST", "/api/creator/submit"): [httpx.Response(200, json={"operationId": "op-3"})],
            ("POST", "/api/creator/poll"): [
                httpx.Response(503, text="busy"),
                httpx.Response(200, json={"state": "COMPLETE", "url": "https://cdn/a.mp4"}),
            ],
        })
        adapter = CaptionsAvatarAdapter(make_config().avatar, client=mock_client(recorder))

        assert asyncio.run(adapter.run(AvatarJob("Hi", "kate"))) == "https://cdn/a.mp4"


class TestUnscreenBackgroundAdapter:
    """Unscreen: form-encoded body, X-Api-Key header, lower-case statuses"""

    def test_submit_is_form_encoded_and_polls_self_link(self):
        recorder = Recorder({
            ("POST", "/v1.0/videos"): [httpx.Response(200, json={
                "data": {"id": "v-9", "links": {"self": "https://api.unscreen.com/v1.0/videos/v-9"}},
            })],
            ("GET", "/v1.0/videos/v-9"): [
                httpx.Response(200, json={"data": {"attributes": {"status": "processing"}}}),
                httpx.Response(200, json={"data": {"attributes": {"status": "done", "result_url": "https://cdn/keyed.mp4"}}}),
            ],
        })
        adapter = UnscreenBackgroundAdapter(make_config().background_removal, client=mock_client(recorder))

        result = asyncio.run(adapter.run(BackgroundRemovalJob(video_url="https://cdn/avatar.mp4")))

        assert result == "https://cdn/keyed.mp4"
        submit = recorder.requests[0]
        assert submit.headers["X-Api-Key"] == "unscreen-key"
        assert submit.headers["content-type"].startswith("application/x-www-form-urlencoded")
        form = parse_qs(submit.content.decode())
        assert form["video_url"] == ["https://cdn/avatar.mp4"]
        assert form["format"] == ["mp4"]
        assert form["background_color"] == ["00FF00"]

    def test_errors_document_fails_job(self):
        recorder = Recorder({
            ("POST", "/v1.0/videos"): [httpx.Response(200, json={"data": {"id": "v-1"}})],
            ("GET", "/v1.0/videos/v-1"): [httpx.Response(200, json={"errors": [{"title": "Invalid", "detail": "video too long"}]})],
        })
        adapter = UnscreenBackgroundAdapter(make_config().background_removal, client=mock_client(recorder))

        with pytest.raises(ExternalJobFailed) as exc_info:
            asyncio.run(adapter.run(BackgroundRemovalJob(video_url="https://cdn/avatar.mp4")))

        assert exc_info.value.message == "video too long"

    def test_check_classifies_single_status(self):
        recorder = Recorder({
            ("GET", "/v1.0/videos/v-2"): [httpx.Response(200, json={"data": {"attributes": {"status": "queued"}}})],
        })
        adapter = UnscreenBackgroundAdapter(make_config().background_removal, client=mock_client(recorder))

        outcome = asyncio.run(adapter.check(JobHandle(stage="BackgroundRemoval", job_id="v-2")))

        assert outcome.status == OutcomeStatus.PENDING
        assert not outcome.is_terminal

    def test_job_not_yet_visible_is_polled_again(self):
        """
        Test: first status GET answers 404, second reports done
        Ensures: the keyed video URL is returned after two status checks
        """
        recorder = Recorder({
            ("POST", "/v1.0/videos"): [httpx.Response(200, json={"data": {"id": "v-3"}})],
            ("GET", "/v1.0/videos/v-3"): [
                httpx.Response(404, json={"errors": [{"title": "Not Found"}]}),
                httpx.Response(200, json={"data": {"attributes": {"status": "done", "result_url": "https://cdn/late.mp4"}}}),
            ],
        })
        adapter = UnscreenBackgroundAdapter(make_config().background_removal, client=mock_client(recorder))

        result = asyncio.run(adapter.run(BackgroundRemovalJob(video_url="https://cdn/avatar.mp4")))

        assert result == "https://cdn/late.mp4"
        assert [r.method for r in recorder.requests] == ["POST", "GET", "GET"]

    @pytest.mark.parametrize("body", [b"[]", b"null", b"\"queued\""])
    def test_non_object_status_body_is_polled_again(self, body):
        recorder = Recorder({
            ("POST", "/v1.0/videos"): [httpx.Response(200, json={"data": {"id": "v-4"}})],
            ("GET", "/v1.0/videos/v-4"): [
                httpx.Response(200, content=body, headers={"content-type": "application/json"}),
                httpx.Response(200, json={"data": {"attributes": {"status": "done", "result_url": "https://cdn/ok.mp4"}}}),
            ],
        })
        adapter = UnscreenBackgroundAdapter(make_config().background_removal, client=mock_client(recorder))

        result = asyncio.run(adapter.run(BackgroundRemovalJob(video_url="https://cdn/avatar.mp4")))

        assert result == "https://cdn/ok.mp4"

    def test_check_refuses_non_object_body(self):
        recorder = Recorder({("GET", "/v1.0/videos/v-5"): [httpx.Response(200, json=["done"])]})
        adapter = UnscreenBackgroundAdapter(make_config().background_removal, client=mock_client(recorder))

        with pytest.raises(ProviderError) as exc_info:
            asyncio.run(adapter.check(JobHandle(stage="BackgroundRemoval", job_id="v-5")))

        assert exc_info.value.recoverable


class TestCreatomateCaptionAdapter:
    """Creatomate: Bearer auth, sync or async answers"""

    def test_synchronous_answer_needs_no_polling(self):
        recorder = Recorder({
            ("POST", "/v1/renders"): [httpx.Response(200, json=[{"id": "r-1", "status": "succeeded", "url": "https://cdn/final.mp4"}])],
        })
        adapter = CreatomateCaptionAdapter(make_config().caption, client=mock_client(recorder))

        result = asyncio.run(adapter.run(CaptionJob(video_url="https://host/ws/final.mp4")))

        assert result == "https://cdn/final.mp4"
        assert len(recorder.requests) == 1
        assert recorder.requests[0].headers["Authorization"] == "Bearer creatomate-key"

    def test_asynchronous_answer_is_polled(self):
        recorder = Recorder({
            ("POST", "/v1/renders"): [httpx.Response(202, json={"id": "r-2", "status": "planned"})],
            ("GET", "/v1/renders/r-2"): [
                httpx.Response(200, json={"id": "r-2", "status": "rendering"}),
                httpx.Response(200, json={"id": "r-2", "status": "succeeded", "url": "https://cdn/captioned.mp4"}),
            ],
        })
        config = make_config(caption={"feature_flags": {"captions": True}})
        adapter = CreatomateCaptionAdapter(config.caption, client=mock_client(recorder))

        result = asyncio.run(adapter.run(CaptionJob(video_url="https://host/ws/final.mp4")))

        assert result == "https://cdn/captioned.mp4"
        assert json.loads(recorder.requests[0].content) == {"video_url": "https://host/ws/final.mp4", "captions": True}

    def test_archive_url_is_format_incompatible(self):
        recorder = Recorder({("POST", "/v1/renders"): [httpx.Response(200, json={})]})
        adapter = CreatomateCaptionAdapter(make_config().caption, client=mock_client(recorder))

        with pytest.raises(FormatIncompatible) as exc_info:
            asyncio.run(adapter.submit(CaptionJob(video_url="https://cdn/result.zip")))

        assert exc_info.value.code == "SubmissionRejected"
        assert isinstance(exc_info.value, SubmissionRejected)
        assert recorder.requests == []


class TestEnsureDirectVideoUrl:
    @pytest.mark.parametrize("url", ["https://x/a.zip", "https://x/a.tar.gz", "https://x/A.ZIP?sig=1"])
    def test_archives_rejected(self, url):
        with pytest.raises(FormatIncompatible):
            ensure_direct_video_url(url)

    def test_video_passes_through(self):
        assert ensure_direct_video_url("https://x/a.mp4?zip=1") == "https://x/a.mp4?zip=1"
