"""Tests for VoiceProviderClient against an in-process fake provider."""
import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from riskwatch.services.providers import (
    InvalidResponse,
    LocatorExpired,
    MissingCredentials,
    NotFound,
    ProviderTimeout,
    ProviderUnavailable,
    RateLimited,
    RecordingLocator,
    VoiceProviderClient,
    VoiceProviderConfig,
    format_transcript,
)


async def _call(request):
    call_id = request.match_info["call_id"]
    if request.headers.get("X-API-Key") != "test-key":
        return web.Response(status=401)
    if call_id == "missing":
        return web.Response(status=404, text="not found")
    if call_id == "limited":
        return web.Response(status=429)
    if call_id == "broken":
        return web.Response(status=503, text="upstream down")
    if call_id == "odd-metadata":
        return web.json_response({"callId": call_id, "metadata": "n/a"})
    if call_id == "slow":
        await asyncio.sleep(1.0)
    return web.json_response({
        "callId": call_id,
        "from": "+15551234567",
        "created": "2026-01-01T10:00:00Z",
        "ended": "2026-01-01T10:05:00Z",
        "endReason": "hangup",
    })


async def _recording(request):
    call_id = request.match_info["call_id"]
    if call_id == "redirect":
        raise web.HTTPFound(str(request.url.with_path("/audio/ok").with_query({})))
    if call_id == "expired":
        raise web.HTTPFound(str(request.url.with_path("/audio/expired").with_query({})))
    if call_id == "json":
        return web.json_response({"recordingUrl": "https://cdn.example/rec.wav?sig=abc"})
    if call_id == "nested-url":
        return web.json_response({"url": {"href": "https://cdn.example/rec.wav"}})
    if call_id == "no-recording":
        return web.Response(status=404)
    return web.json_response({"unexpected": True})


async def _messages(request):
    return web.json_response({
        "results": [
            {"role": "MESSAGE_ROLE_AGENT", "text": "Hello, how are you?"},
            {"role": "MESSAGE_ROLE_USER", "text": "Not great."},
            {"role": "MESSAGE_ROLE_USER", "text": "   "},
            {"role": "MESSAGE_ROLE_AGENT"},
        ]
    })


async def _list_calls(request):
    limit = int(request.query.get("limit", "50"))
    return web.json_response({
        "results": [{"callId": f"call-{i}"} for i in range(limit)]
    })


async def _audio_ok(request):
    return web.Response(body=b"RIFF....WAVEfmt", content_type="audio/wav")


async def _audio_expired(request):
    return web.Response(status=403, text="signature expired")


@pytest_asyncio.fixture
async def provider_server():
    app = web.Application()
    app.router.add_get("/api/calls", _list_calls)
    app.router.add_get("/api/calls/{call_id}", _call)
    app.router.add_get("/api/calls/{call_id}/recording", _recording)
    app.router.add_get("/api/calls/{call_id}/messages", _messages)
    app.router.add_get("/audio/ok", _audio_ok)
    app.router.add_get("/audio/expired", _audio_expired)

    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def client(provider_server):
    config = VoiceProviderConfig(
        api_key="test-key",
        api_url=str(provider_server.make_url("/api/calls")),
        metadata_timeout_seconds=0.3,
    )
    return VoiceProviderClient(config)


@pytest.mark.asyncio
class TestCallMetadata:

    async def test_fetch_call_metadata(self, client):
        metadata = await client.fetch_call_metadata("c1")

        assert metadata.call_id == "c1"
        assert metadata.originator == "+15551234567"
        assert metadata.created_at.year == 2026
        assert metadata.end_reason == "hangup"

    async def test_404_is_not_found(self, client):
        with pytest.raises(NotFound):
            await client.fetch_call_metadata("missing")

    async def test_429_is_rate_limited(self, client):
        with pytest.raises(RateLimited):
            await client.fetch_call_metadata("limited")

    async def test_5xx_is_unavailable(self, client):
        with pytest.raises(ProviderUnavailable):
            await client.fetch_call_metadata("broken")

    async def test_timeout_is_typed(self, client):
        with pytest.raises(ProviderTimeout):
            await client.fetch_call_metadata("slow")

    async def test_non_object_metadata_is_ignored(self, client):
        metadata = await client.fetch_call_metadata("odd-metadata")

        assert metadata.call_id == "odd-metadata"
        assert metadata.originator is None

    async def test_missing_key_fails_before_request(self, provider_server):
        client = VoiceProviderClient(
            VoiceProviderConfig(api_key=None, api_url=str(provider_server.make_url("/api/calls")))
        )
        with pytest.raises(MissingCredentials):
            await client.fetch_call_metadata("c1")

    async def test_rejected_key_is_missing_credentials(self, provider_server):
        client = VoiceProviderClient(
            VoiceProviderConfig(api_key="wrong", api_url=str(provider_server.make_url("/api/calls")))
        )
        with pytest.raises(MissingCredentials):
            await client.fetch_call_metadata("c1")


@pytest.mark.asyncio
class TestRecordings:

    async def test_locator_from_redirect(self, client):
        locator = await client.fetch_fresh_recording_locator("redirect")
        assert locator.url.endswith("/audio/ok")

    async def test_locator_from_json(self, client):
        locator = await client.fetch_fresh_recording_locator("json")
        assert locator.url == "https://cdn.example/rec.wav?sig=abc"

    async def test_unexpected_locator_payload(self, client):
        with pytest.raises(InvalidResponse):
            await client.fetch_fresh_recording_locator("odd")

    async def test_non_string_locator_url_is_invalid(self, client):
        with pytest.raises(InvalidResponse):
            await client.fetch_fresh_recording_locator("nested-url")

    async def test_no_recording_is_not_found(self, client):
        with pytest.raises(NotFound):
            await client.fetch_fresh_recording_locator("no-recording")

    async def test_download_recording(self, client):
        locator = await client.fetch_fresh_recording_locator("redirect")
        audio = await client.download_recording(locator)
        assert audio.startswith(b"RIFF")

    async def test_rejected_locator_is_expired(self, client):
        locator = await client.fetch_fresh_recording_locator("expired")
        with pytest.raises(LocatorExpired):
            await client.download_recording(locator)

    async def test_unreachable_locator_is_unavailable(self, client):
        with pytest.raises(ProviderUnavailable):
            await client.download_recording(RecordingLocator(url="http://127.0.0.1:9/rec.wav"))


@pytest.mark.asyncio
class TestMessagesAndListing:

    async def test_transcript_messages_are_ordered_and_filtered(self, client):
        messages = await client.fetch_transcript_messages("c1")

        assert [(m.speaker_role, m.text) for m in messages] == [
            ("agent", "Hello, how are you?"),
            ("user", "Not great."),
        ]
        assert format_transcript(messages) == "Agent: Hello, how are you?\nUser: Not great."

    async def test_list_calls_respects_limit(self, client):
        calls = await client.list_calls(3)
        assert [c["callId"] for c in calls] == ["call-0", "call-1", "call-2"]

    async def test_check_connection(self, client):
        assert await client.check_connection() is True

    async def test_check_connection_without_key(self, provider_server):
        client = VoiceProviderClient(VoiceProviderConfig(api_key=None))
        assert await client.check_connection() is False
