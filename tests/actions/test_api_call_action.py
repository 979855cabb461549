import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from fieldflow.actions.api_call import ApiCallAction
from fieldflow.errors import ExternalCallError, ExternalCallTimeoutError, StepValidationError


async def echo(request: web.Request) -> web.Response:
    return web.json_response({
        "received": await request.json(),
        "auth": request.headers.get("Authorization"),
        "content_type": request.headers.get("Content-Type"),
        "path": request.path,
    })


async def pong(request: web.Request) -> web.Response:
    return web.Response(text="pong")


async def fail(request: web.Request) -> web.Response:
    return web.json_response({"error": "boom"}, status=500)


async def accepted(request: web.Request) -> web.Response:
    return web.Response(status=202, text="queued")


async def slow(request: web.Request) -> web.Response:
    await asyncio.sleep(2)
    return web.Response(text="late")


@pytest_asyncio.fixture
async def http_server():
    app = web.Application()
    app.router.add_post("/echo/{entity_id}", echo)
    app.router.add_get("/ping", pong)
    app.router.add_post("/fail", fail)
    app.router.add_post("/accepted", accepted)
    app.router.add_get("/slow", slow)
    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


def call(**config):
    return {"name": "notify", "action": "api_call", "config": config}


@pytest.mark.asyncio
async def test_post_interpolates_url_headers_and_body(http_server, instance):
    url = str(http_server.make_url("/echo/")) + "{{entity_id}}"
    result = await ApiCallAction()(
        instance,
        call(
            url=url,
            headers={"Authorization": "Bearer {{token}}"},
            body={"customer": "{{entity_id}}", "items": ["{{job_no}}"], "n": 3},
        ),
        {"token": "abc", "job_no": "J-9"},
    )
    assert result["success"] is True
    assert result["status"] == 200
    assert result["response"]["path"] == "/echo/c-1"
    assert result["response"]["auth"] == "Bearer abc"
    assert result["response"]["content_type"] == "application/json"
    assert result["response"]["received"] == {"customer": "c-1", "items": ["J-9"], "n": 3}


@pytest.mark.asyncio
async def test_text_response_is_returned_as_text(http_server, instance):
    result = await ApiCallAction()(instance, call(url=str(http_server.make_url("/ping")), method="GET"), {})
    assert result["response"] == "pong"


@pytest.mark.asyncio
async def test_unexpected_status_fails(http_server, instance):
    with pytest.raises(ExternalCallError, match="API call failed with status 500") as exc_info:
        await ApiCallAction()(instance, call(url=str(http_server.make_url("/fail"))), {})
    assert exc_info.value.status == 500
    assert "boom" in str(exc_info.value)


@pytest.mark.asyncio
async def test_expected_status_override(http_server, instance):
    url = str(http_server.make_url("/accepted"))
    result = await ApiCallAction()(instance, call(url=url, expectedStatus=202), {})
    assert result["status"] == 202

    with pytest.raises(ExternalCallError, match="status 202"):
        await ApiCallAction()(instance, call(url=url, expected_status=[200]), {})


@pytest.mark.asyncio
async def test_timeout(http_server, instance):
    with pytest.raises(ExternalCallTimeoutError, match="API call timed out after 200ms"):
        await ApiCallAction()(
            instance, call(url=str(http_server.make_url("/slow")), method="GET", timeout=200), {}
        )


@pytest.mark.asyncio
async def test_requires_url(instance):
    with pytest.raises(StepValidationError, match="API call action requires url in config"):
        await ApiCallAction()(instance, call(method="GET"), {})
