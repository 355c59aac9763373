from unittest.mock import AsyncMock

import pytest

from peercall.services.call.callee import CalleeOrchestrator, CalleeState
from peercall.services.call.exceptions import CallApiError
from peercall.services.call.ui import HeadlessNavigator
from peercall.services.session import CallRole, NegotiatorState
from tests.helpers import ROOM, FakeCallApi, MediaKit, description_payload


def make_callee(channel, api, notifier, kit=None, is_available=False):
    kit = kit or MediaKit()
    built = []
    factory = kit.factory(channel, call_records=api)

    def tracking_factory(role, room_id, remote_party_id):
        negotiator = factory(role, room_id, remote_party_id)
        built.append(negotiator)
        return negotiator

    callee = CalleeOrchestrator(
        channel,
        api,
        tracking_factory,
        HeadlessNavigator(),
        notifier,
        callee_id="t1",
        is_available=is_available,
    )
    return callee, built


def incoming(room_id=ROOM, caller_id="u1", target_id="t1"):
    return {"targetId": target_id, "callerId": caller_id, "callerName": "Alice", "roomId": room_id}


@pytest.mark.asyncio
async def test_connect_registers_presence(channel, api, notifier):
    callee, _ = make_callee(channel, api, notifier)
    assert callee.state is CalleeState.OFFLINE

    await callee.connect()

    assert callee.state is CalleeState.IDLE
    assert channel.emitted("therapist-connect") == ["t1"]
    assert channel.listener_count("incoming-call") == 1

    await callee.disconnect()
    assert callee.state is CalleeState.OFFLINE
    assert channel.listener_count("incoming-call") == 0


# =============================================================================
# Availability
# =============================================================================

@pytest.mark.asyncio
async def test_availability_follows_server_confirmation(channel, notifier):
    api = FakeCallApi(is_available=True)
    callee, _ = make_callee(channel, api, notifier)

    assert await callee.refresh_availability() is True
    assert await callee.toggle_availability() is False
    assert callee.is_available is False
    assert api.calls[-1] == ("set_availability", False)


@pytest.mark.asyncio
async def test_availability_unchanged_when_update_fails(channel, api, notifier):
    callee, _ = make_callee(channel, api, notifier, is_available=True)
    api.fail = True

    assert await callee.set_availability(False) is True
    assert callee.is_available is True
    assert ("Error", "Failed to update availability") in notifier.notices


@pytest.mark.asyncio
async def test_refresh_availability_failure_keeps_value(channel, notifier):
    api = AsyncMock()
    api.get_availability.side_effect = CallApiError("registry down", status_code=503)
    callee, _ = make_callee(channel, api, notifier, is_available=True)

    assert await callee.refresh_availability() is True
    api.get_availability.assert_awaited_once()


@pytest.mark.asyncio
async def test_availability_uses_confirmed_value_not_requested(channel, api, notifier):
    callee, _ = make_callee(channel, api, notifier)

    async def stubborn(is_available):
        return False

    api.set_availability = stubborn

    assert await callee.set_availability(True) is False
    assert callee.is_available is False


# =============================================================================
# Incoming calls
# =============================================================================

@pytest.mark.asyncio
async def test_incoming_call_shows_prompt(channel, api, notifier):
    callee, built = make_callee(channel, api, notifier)
    await callee.connect()

    await channel.dispatch("incoming-call", incoming())

    assert callee.state is CalleeState.PROMPTING
    assert callee.incoming.room_id == ROOM
    assert callee.navigator.incoming_call.caller_name == "Alice"
    assert built == []


@pytest.mark.asyncio
async def test_incoming_call_for_other_callee_is_ignored(channel, api, notifier):
    callee, _ = make_callee(channel, api, notifier)
    await callee.connect()

    await channel.dispatch("incoming-call", incoming(target_id="t9"))
    await channel.dispatch("incoming-call", {"targetId": "t1"})

    assert callee.state is CalleeState.IDLE
    assert callee.navigator.incoming_call is None


@pytest.mark.asyncio
async def test_second_call_while_prompting_is_rejected_busy(channel, api, notifier):
    callee, _ = make_callee(channel, api, notifier)
    await callee.connect()

    await channel.dispatch("incoming-call", incoming())
    await channel.dispatch("incoming-call", incoming(room_id="room-call2", caller_id="u2"))

    assert callee.incoming.room_id == ROOM
    assert channel.emitted("call-rejected") == [
        {"callerId": "u2", "calleeId": "t1", "roomId": "room-call2", "reason": "busy"}
    ]


@pytest.mark.asyncio
async def test_accept_starts_receiver_session(channel, api, notifier):
    callee, built = make_callee(channel, api, notifier)
    await callee.connect()
    await channel.dispatch("incoming-call", incoming())

    assert await callee.accept() is True

    assert ("answer_call", "call1") in api.calls
    assert channel.emitted("call-accepted") == [{"callerId": "u1", "calleeId": "t1", "roomId": ROOM}]
    assert callee.state is CalleeState.IN_CALL
    assert callee.navigator.incoming_call is None
    assert callee.navigator.current_view == "call"
    assert built[0].role is CallRole.RECEIVER
    assert built[0].state is NegotiatorState.AWAITING_REMOTE_DESCRIPTION

    # busy while in a call
    await channel.dispatch("incoming-call", incoming(room_id="room-call2", caller_id="u2"))
    assert channel.emitted("call-rejected")[0]["reason"] == "busy"

    await channel.dispatch("offer", description_payload("offer"))
    assert len(channel.emitted("answer")) == 1

    await callee.end_call()
    assert callee.state is CalleeState.IDLE
    assert api.ended == [("call1", "therapist")]


@pytest.mark.asyncio
async def test_accept_for_stale_prompt_is_refused(channel, api, notifier):
    callee, built = make_callee(channel, api, notifier)
    await callee.connect()

    assert await callee.accept() is False

    await channel.dispatch("incoming-call", incoming())
    other = callee.incoming.model_copy(update={"room_id": "room-other"})
    assert await callee.accept(other) is False
    assert callee.state is CalleeState.PROMPTING
    assert built == []


@pytest.mark.asyncio
async def test_accept_failure_returns_to_idle(channel, api, notifier):
    callee, built = make_callee(channel, api, notifier)
    await callee.connect()
    await channel.dispatch("incoming-call", incoming())
    api.fail = True

    assert await callee.accept() is False

    assert callee.state is CalleeState.IDLE
    assert channel.emitted("call-accepted") == []
    assert built == []
    assert ("Error", "Failed to accept call") in notifier.notices
    assert channel.emitted("call-rejected") == [
        {"callerId": "u1", "calleeId": "t1", "roomId": ROOM, "reason": "accept_failed"}
    ]


@pytest.mark.asyncio
async def test_accept_signaling_failure_still_releases_caller(channel, api, notifier):
    callee, built = make_callee(channel, api, notifier)
    await callee.connect()
    await channel.dispatch("incoming-call", incoming())
    channel.fail_events.add("call-accepted")

    assert await callee.accept() is False

    assert callee.state is CalleeState.IDLE
    assert built == []
    assert [r["reason"] for r in channel.emitted("call-rejected")] == ["accept_failed"]


@pytest.mark.asyncio
async def test_reject_sends_rejection_without_session(channel, api, notifier):
    callee, built = make_callee(channel, api, notifier)
    await callee.connect()
    await channel.dispatch("incoming-call", incoming())

    assert await callee.reject() is True

    assert callee.state is CalleeState.IDLE
    assert channel.emitted("call-rejected") == [{"callerId": "u1", "calleeId": "t1", "roomId": ROOM}]
    assert callee.navigator.incoming_call is None
    assert built == []

    # the next call prompts again
    await channel.dispatch("incoming-call", incoming(room_id="room-call2"))
    assert callee.state is CalleeState.PROMPTING


@pytest.mark.asyncio
async def test_remote_end_notifies_and_returns(channel, api, notifier):
    callee, built = make_callee(channel, api, notifier)
    await callee.connect()
    await channel.dispatch("incoming-call", incoming())
    await callee.accept()
    await channel.dispatch("offer", description_payload("offer"))

    await channel.dispatch("call-ended", {"roomId": ROOM, "endedBy": "user"})

    assert built[0].is_closed
    assert channel.emitted("end-call") == []
    assert callee.state is CalleeState.IDLE
    assert callee.navigator.current_view == "dashboard"
    assert ("Call Ended", "The other party ended the call") in notifier.notices
    assert api.ended == []
