import base64

import httpx
import pytest

from services.image_service import ImageService


def make_service(handler, api_key="key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ImageService(api_key, http_client=client)


@pytest.mark.asyncio
async def test_generate_returns_inline_image():
    png = b"\x89PNG fake"

    def handler(request):
        assert request.url.params["key"] == "key"
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [
                {"text": "here you go"},
                {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(png).decode()}},
            ]}}]
        })

    service = make_service(handler)

    assert await service.generate("a cat") == png
    await service.close()
    assert service.http_client.is_closed


@pytest.mark.asyncio
async def test_generate_handles_non_json_body():
    service = make_service(lambda request: httpx.Response(200, text="<html>oops</html>"))

    assert await service.generate("a cat") is None
    await service.close()


@pytest.mark.asyncio
async def test_generate_handles_error_status():
    service = make_service(lambda request: httpx.Response(429, text="quota"))

    assert await service.generate("a cat") is None
    await service.close()


@pytest.mark.asyncio
async def test_generate_disabled_without_key():
    def handler(request):
        raise AssertionError("no request expected")

    service = make_service(handler, api_key=None)

    assert not service.enabled
    assert await service.generate("a cat") is None
    await service.close()
