import httpx
import pytest

from services.uploads.domain.errors import ProviderError
from services.uploads.infrastructure.provider import (
    StreamProviderClient,
    thumbnail_url_builder,
)

STREAM_URL = "https://api.example.com/client/v4/accounts/acct/stream"


def _client(handler) -> StreamProviderClient:
    return StreamProviderClient(
        api_base_url="https://api.example.com/client/v4/",
        account_id="acct",
        api_token="token",
        timeout_seconds=5,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_create_upload_session_reads_location_and_media_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(
            201,
            headers={
                "Location": "https://upload.example.com/tus/abc",
                "stream-media-id": "abc",
            },
        )

    session = await _client(handler).create_upload_session(
        upload_length=1000, tus_resumable="1.0.0", metadata="name SW50cm8="
    )

    request = seen["request"]
    assert session.provider_asset_id == "abc"
    assert session.upload_url == "https://upload.example.com/tus/abc"
    assert str(request.url) == f"{STREAM_URL}?direct_user=true"
    assert request.headers["Authorization"] == "Bearer token"
    assert request.headers["Upload-Length"] == "1000"
    assert request.headers["Upload-Metadata"] == "name SW50cm8="


@pytest.mark.asyncio
async def test_create_upload_session_errors():
    refused = _client(lambda request: httpx.Response(403, text="denied"))
    incomplete = _client(lambda request: httpx.Response(201, headers={"Location": "x"}))

    with pytest.raises(ProviderError) as excinfo:
        await refused.create_upload_session(upload_length=1, tus_resumable="1.0.0", metadata="")
    assert excinfo.value.status_code == 403
    with pytest.raises(ProviderError, match="Missing required headers"):
        await incomplete.create_upload_session(upload_length=1, tus_resumable="1.0.0", metadata="")


@pytest.mark.asyncio
async def test_forward_request_sends_body_only_for_patch():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append((request.method, request.content))
        return httpx.Response(204, headers={"Upload-Offset": "4"})

    client = _client(handler)
    patched = await client.forward_request(
        "https://upload.example.com/tus/abc", "PATCH", {"Upload-Offset": "0"}, b"abcd"
    )
    await client.forward_request(
        "https://upload.example.com/tus/abc", "HEAD", {"Tus-Resumable": "1.0.0"}, b"ignored"
    )

    assert patched.status_code == 204
    assert patched.headers["upload-offset"] == "4"
    assert bodies == [("PATCH", b"abcd"), ("HEAD", b"")]


@pytest.mark.asyncio
async def test_transport_errors_become_provider_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(ProviderError):
        await _client(handler).forward_request("https://upload.example.com/tus/abc", "HEAD", {})


@pytest.mark.asyncio
async def test_get_asset_info_and_delete():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/gone"):
            return httpx.Response(404)
        if request.method == "GET":
            return httpx.Response(200, json={"result": {"uid": "abc", "status": {"state": "ready"}}})
        return httpx.Response(200)

    client = _client(handler)

    assert (await client.get_asset_info("abc"))["status"] == {"state": "ready"}
    with pytest.raises(ProviderError) as excinfo:
        await client.get_asset_info("gone")
    assert excinfo.value.status_code == 404
    await client.delete_asset("abc")
    await client.delete_asset("gone")


def test_thumbnail_url_builder():
    build = thumbnail_url_builder("https://videodelivery.net/")

    assert build("abc") == "https://videodelivery.net/abc/thumbnails/thumbnail.jpg"
