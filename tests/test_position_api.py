import asyncio
import json

import httpx
import pytest

from board.reorder.errors import NetworkFailure
from core.position_api import HttpPositionTransport
from domain.models import BulkPositionRequest, CleanupInstruction, PositionUpdate

BASE = "https://api.example.test/v1"


def _request(**kw):
    defaults = dict(
        items=(PositionUpdate("a", "doing", 2048),),
        batch_id="doing-7-1700000000000",
        sequence=7,
        cleanup=CleanupInstruction(("a",), "doing"),
    )
    defaults.update(kw)
    return BulkPositionRequest(**defaults)


def _transport(handler, **kw):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpPositionTransport("view-1", base_url=BASE + "/", client=client, backoff=0, **kw)


def test_put_positions_sends_payload_and_parses_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "items": [{"itemId": "a", "groupId": "doing", "position": 4096}],
                "sequence": 7,
                "batchId": "doing-7-1700000000000",
            },
        )

    async def run():
        async with _transport(handler) as transport:
            return await transport.put_positions(_request())

    response = asyncio.run(run())
    assert seen["method"] == "PUT"
    assert seen["url"] == f"{BASE}/views/view-1/item-positions"
    assert seen["body"] == {
        "items": [{"itemId": "a", "groupId": "doing", "position": 2048}],
        "cleanup": {"itemIds": ["a"], "keepGroupId": "doing"},
        "batchId": "doing-7-1700000000000",
        "sequence": 7,
    }
    assert response.ok
    assert response.sequence == 7
    assert response.items == (PositionUpdate("a", "doing", 4096),)


def test_empty_body_confirms_request_as_sent():
    async def run():
        transport = _transport(lambda request: httpx.Response(204))
        return await transport.put_positions(_request(cleanup=None))

    response = asyncio.run(run())
    assert response.items == (PositionUpdate("a", "doing", 2048),)
    assert response.sequence == 7


def test_missing_sequence_is_filled_from_request():
    handler = lambda request: httpx.Response(200, json={"items": []})  # noqa: E731

    response = asyncio.run(_transport(handler).put_positions(_request()))
    assert response.sequence == 7
    assert response.batch_id == "doing-7-1700000000000"
    assert response.items == (PositionUpdate("a", "doing", 2048),)


def test_error_field_marks_response_not_ok():
    handler = lambda request: httpx.Response(200, json={"sequence": 7, "error": "conflict"})  # noqa: E731

    response = asyncio.run(_transport(handler).put_positions(_request()))
    assert not response.ok
    assert response.error == "conflict"


def test_invalid_json_raises_network_failure():
    handler = lambda request: httpx.Response(200, content=b"<html>oops</html>")  # noqa: E731

    with pytest.raises(NetworkFailure):
        asyncio.run(_transport(handler).put_positions(_request()))


def test_http_error_status_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(NetworkFailure) as info:
        asyncio.run(_transport(handler, retries=3).put_positions(_request()))
    assert len(calls) == 1
    assert info.value.context["status"] == 500


def test_transport_errors_retried_then_surface():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(NetworkFailure) as info:
        asyncio.run(_transport(handler, retries=2).put_positions(_request()))
    assert len(calls) == 3
    assert info.value.context["attempts"] == 3


def test_transport_error_then_success():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ReadTimeout("slow", request=request)
        return httpx.Response(204)

    response = asyncio.run(_transport(handler, retries=1).put_positions(_request()))
    assert response.ok
    assert len(calls) == 2


def test_update_group_patches_item():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={})

    asyncio.run(_transport(handler).update_group("a", "doing"))
    assert seen == {
        "method": "PATCH",
        "url": f"{BASE}/items/a",
        "body": {"groupId": "doing", "skipInvalidate": True},
    }
