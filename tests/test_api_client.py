import json

import httpx
import pytest

from peercall.services.api_client import CallApiClient
from peercall.services.call.exceptions import CallApiError


def make_client(handler, token="tok", **kwargs):
    return CallApiClient(
        "http://api.test/api",
        token=token,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_initiate_call_returns_room_id():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"roomId": "room-abc", "callId": "abc"})

    async with make_client(handler) as api:
        room_id = await api.initiate_call("t1")

    assert room_id == "room-abc"
    assert seen == {"path": "/api/call/initiate", "auth": "Bearer tok", "body": {"therapistId": "t1"}}


@pytest.mark.asyncio
async def test_initiate_call_without_room_id():
    async with make_client(lambda r: httpx.Response(200, json={"ok": True})) as api:
        with pytest.raises(CallApiError):
            await api.initiate_call("t1")


@pytest.mark.asyncio
async def test_initiate_call_builds_room_from_call_id():
    async with make_client(lambda r: httpx.Response(200, json={"callId": "abc"}), room_prefix="call") as api:
        assert await api.initiate_call("t1") == "call-abc"


@pytest.mark.asyncio
async def test_error_status_raises_with_code():
    def handler(request):
        return httpx.Response(400, json={"error": "Insufficient balance"})

    async with make_client(handler) as api:
        with pytest.raises(CallApiError) as exc:
            await api.initiate_call("t1")

    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_transport_error_raises_call_api_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with make_client(handler) as api:
        with pytest.raises(CallApiError):
            await api.answer_call("abc")


@pytest.mark.asyncio
async def test_answer_and_end_call_paths():
    requests = []

    def handler(request):
        requests.append((request.method, request.url.path, request.content))
        if request.url.path.endswith("/answer/abc"):
            return httpx.Response(204)
        return httpx.Response(200, json={"call": {"durationMinutes": 2, "costInCoins": 10}})

    async with make_client(handler, token=None) as api:
        assert await api.answer_call("abc") == {}
        data = await api.end_call("abc", "therapist")

    assert data["call"]["costInCoins"] == 10
    assert requests[0][:2] == ("POST", "/api/call/answer/abc")
    assert requests[1][:2] == ("POST", "/api/call/end/abc")
    assert json.loads(requests[1][2]) == {"endedBy": "therapist"}


@pytest.mark.asyncio
async def test_availability_get_and_set():
    state = {"isAvailable": False}

    def handler(request):
        if request.method == "PUT":
            state["isAvailable"] = json.loads(request.content)["isAvailable"]
            return httpx.Response(200, json={"therapist": {"_id": "t1", "isAvailable": state["isAvailable"]}})
        return httpx.Response(200, json={"isAvailable": state["isAvailable"]})

    async with make_client(handler) as api:
        assert await api.get_availability() is False
        assert await api.set_availability(True) is True
        assert await api.get_availability() is True


@pytest.mark.asyncio
async def test_availability_response_without_flag():
    async with make_client(lambda r: httpx.Response(200, json={"therapist": {}})) as api:
        with pytest.raises(CallApiError):
            await api.get_availability()


@pytest.mark.asyncio
async def test_fetch_callees_and_history():
    def handler(request):
        if request.url.path == "/api/user/therapists":
            return httpx.Response(200, json={"therapists": [
                {"_id": "t1", "name": "Dr. One", "isAvailable": True},
                {"_id": "t2", "name": "Dr. Two", "isAvailable": False},
            ]})
        return httpx.Response(200, json={"calls": [{
            "_id": "c1",
            "therapistId": {"_id": "t1", "name": "Dr. One"},
            "startTime": "2024-03-01T10:30:00Z",
            "durationMinutes": 65,
            "costInCoins": 325,
            "status": "ended_by_user",
        }]})

    async with make_client(handler) as api:
        callees = await api.fetch_callees()
        history = await api.fetch_call_history()

    assert [(c.id, c.is_available) for c in callees] == [("t1", True), ("t2", False)]
    assert history[0].therapist.name == "Dr. One"
    assert history[0].duration_minutes == 65
    assert history[0].start_time.year == 2024


@pytest.mark.asyncio
async def test_invalid_json_raises():
    async with make_client(lambda r: httpx.Response(200, content=b"<html>")) as api:
        with pytest.raises(CallApiError):
            await api.fetch_callees()
