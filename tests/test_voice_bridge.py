import asyncio
import json

import httpx
import pytest

from conftest import FakeTokens, FakeTransport
from models.session_models import VoiceState
from services.errors import ConfigurationError, MicrophonePermissionError, VoiceConnectionError
from services.realtime.voice_bridge import DATA_CHANNEL_LABEL, VoiceToolBridge, exchange_sdp

ANSWER_SDP = "v=0\r\nanswer"


def sdp_client(status_code=201, text=ANSWER_SDP, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, text=text)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_bridge(transport=None, tokens=None, handlers=None, statuses=None):
    transport = transport or FakeTransport()
    bridge = VoiceToolBridge(
        tokens or FakeTokens(),
        lambda: transport,
        handlers=handlers or {},
        tool_definitions=[{"type": "function", "name": "draw_on_canvas"}],
        http_client=sdp_client(),
        on_status=(statuses.append if statuses is not None else None),
    )
    return bridge, transport


def sent_types(transport):
    return [json.loads(message)["type"] for message in transport.sent]


def test_exchange_sdp_posts_offer_with_model_and_secret():
    async def scenario():
        seen = []
        answer = await exchange_sdp(
            "v=0\r\noffer",
            "ek_secret",
            url="https://api.openai.com/v1/realtime",
            model="gpt-4o-realtime-preview-2024-12-17",
            http_client=sdp_client(seen=seen),
        )
        return answer, seen[0]

    answer, request = asyncio.run(scenario())

    assert answer == ANSWER_SDP
    assert request.headers["content-type"] == "application/sdp"
    assert request.headers["authorization"] == "Bearer ek_secret"
    assert request.url.params["model"] == "gpt-4o-realtime-preview-2024-12-17"
    assert request.content == b"v=0\r\noffer"


def test_exchange_sdp_rejects_failed_exchange():
    async def scenario():
        await exchange_sdp("offer", "ek", http_client=sdp_client(status_code=400, text="bad"))

    with pytest.raises(VoiceConnectionError):
        asyncio.run(scenario())


def test_start_registers_tools_when_channel_opens():
    async def scenario():
        bridge, transport = make_bridge()
        await bridge.start()
        state_before_open = bridge.session.state
        transport.open_channel()
        return bridge, transport, state_before_open

    bridge, transport, state_before_open = asyncio.run(scenario())

    assert transport.label == DATA_CHANNEL_LABEL
    assert transport.answer == ANSWER_SDP
    assert state_before_open == VoiceState.GATHERING_ICE
    assert bridge.session.state == VoiceState.LISTENING
    update = json.loads(transport.sent[0])
    assert update["type"] == "session.update"
    assert update["session"]["tools"] == [{"type": "function", "name": "draw_on_canvas"}]
    assert bridge.session.registered_tools == ["draw_on_canvas"]


def test_streamed_arguments_are_reassembled_and_answered():
    async def scenario():
        received = []

        async def draw(arguments):
            received.append(arguments)
            return {"status": "ok", "result": "drawn"}

        bridge, transport = make_bridge(handlers={"draw_on_canvas": draw})
        await bridge.start()
        transport.open_channel()
        transport.deliver(json.dumps({"type": "response.output_item.added", "item": {"type": "function_call", "call_id": "c1", "name": "draw_on_canvas"}}))
        transport.deliver(json.dumps({"type": "response.function_call_arguments.delta", "call_id": "c1", "delta": '{"mode":'}))
        transport.deliver(json.dumps({"type": "response.function_call_arguments.delta", "call_id": "c1", "delta": '"answer"}'}))
        transport.deliver(json.dumps({"type": "response.function_call_arguments.done", "call_id": "c1"}))
        calling = bridge.session.state
        await asyncio.sleep(0.01)
        return received, transport, calling, bridge

    received, transport, calling, bridge = asyncio.run(scenario())

    assert received == [{"mode": "answer"}]
    assert calling == VoiceState.CALLING_TOOL
    assert sent_types(transport) == ["session.update", "conversation.item.create", "response.create"]
    item = json.loads(transport.sent[1])["item"]
    assert item["type"] == "function_call_output"
    assert item["call_id"] == "c1"
    assert json.loads(item["output"]) == {"status": "ok", "result": "drawn"}
    assert len(bridge.accumulator) == 0


def test_malformed_arguments_still_get_an_answer():
    async def scenario():
        async def draw(arguments):
            raise AssertionError("handler must not run")

        bridge, transport = make_bridge(handlers={"draw_on_canvas": draw})
        await bridge.start()
        transport.open_channel()
        transport.deliver(
            json.dumps({"type": "response.function_call_arguments.done", "call_id": "c2", "name": "draw_on_canvas", "arguments": "{bad"})
        )
        await asyncio.sleep(0.01)
        return transport

    transport = asyncio.run(scenario())

    assert sent_types(transport) == ["session.update", "conversation.item.create", "response.create"]
    output = json.loads(json.loads(transport.sent[1])["item"]["output"])
    assert output["status"] == "error"


def test_failing_tool_reports_error_output():
    async def scenario():
        async def analyze(arguments):
            raise RuntimeError("analyzer down")

        bridge, transport = make_bridge(handlers={"analyze_workspace": analyze})
        await bridge.start()
        transport.open_channel()
        transport.deliver(
            json.dumps({"type": "response.function_call_arguments.done", "call_id": "c3", "name": "analyze_workspace", "arguments": "{}"})
        )
        await asyncio.sleep(0.01)
        return transport

    transport = asyncio.run(scenario())

    output = json.loads(json.loads(transport.sent[1])["item"]["output"])
    assert output == {"status": "error", "error": "analyzer down"}
    assert sent_types(transport)[-1] == "response.create"


def test_malformed_event_is_reported_not_raised():
    async def scenario():
        statuses = []
        bridge, transport = make_bridge(statuses=statuses)
        await bridge.start()
        transport.open_channel()
        transport.deliver("not json")
        return bridge

    bridge = asyncio.run(scenario())

    assert bridge.session.status == "Received a malformed event"
    assert bridge.active


def test_permission_denied_is_a_distinct_state():
    async def scenario():
        transport = FakeTransport(microphone_error=MicrophonePermissionError("denied"))
        bridge, _ = make_bridge(transport=transport)
        await bridge.start()
        return bridge, transport

    bridge, transport = asyncio.run(scenario())

    assert bridge.session.state == VoiceState.PERMISSION_DENIED
    assert not bridge.active
    assert transport.closed == 1


def test_missing_key_ends_in_error_state():
    async def scenario():
        bridge, _ = make_bridge(tokens=FakeTokens(error=ConfigurationError("OPENAI_API_KEY not configured")))
        await bridge.start()
        return bridge

    bridge = asyncio.run(scenario())

    assert bridge.session.state == VoiceState.ERROR
    assert "OPENAI_API_KEY" in bridge.session.status


def test_mute_toggles_track_without_ending_session():
    async def scenario():
        bridge, transport = make_bridge()
        with pytest.raises(RuntimeError):
            bridge.set_muted(True)
        await bridge.start()
        transport.open_channel()
        bridge.set_muted(True)
        return bridge, transport

    bridge, transport = asyncio.run(scenario())

    assert transport.muted is True
    assert bridge.session.muted is True
    assert bridge.active


def test_stop_is_idempotent():
    async def scenario():
        bridge, transport = make_bridge()
        await bridge.start()
        transport.open_channel()
        await bridge.stop()
        await bridge.stop()
        return bridge, transport

    bridge, transport = asyncio.run(scenario())

    assert transport.closed == 1
    assert bridge.session.state == VoiceState.IDLE
    assert bridge.session.registered_tools == []


def test_connection_failure_clears_mute_and_channel_state():
    async def scenario():
        bridge, transport = make_bridge()
        await bridge.start()
        transport.open_channel()
        bridge.set_muted(True)
        transport.on_connection_state("failed")
        await asyncio.sleep(0.01)
        return bridge, transport

    bridge, transport = asyncio.run(scenario())

    assert bridge.session.state == VoiceState.ERROR
    assert bridge.session.status == "Connection failed"
    assert bridge.session.connection_state == "failed"
    assert bridge.session.muted is False
    assert bridge.session.data_channel_state == "closed"
    assert bridge.session.registered_tools == []
    assert transport.closed == 1


def test_unfinished_calls_are_dropped_when_response_ends():
    async def scenario():
        bridge, transport = make_bridge()
        await bridge.start()
        transport.open_channel()
        call = {"type": "function_call", "call_id": "c4", "name": "draw_on_canvas"}
        transport.deliver(json.dumps({"type": "response.output_item.added", "item": call}))
        transport.deliver(json.dumps({"type": "response.function_call_arguments.delta", "call_id": "c4", "delta": '{"mo'}))
        open_calls = len(bridge.accumulator)
        transport.deliver(json.dumps({"type": "response.done"}))
        return bridge, transport, open_calls

    bridge, transport, open_calls = asyncio.run(scenario())

    assert open_calls == 1
    assert len(bridge.accumulator) == 0
    assert bridge.session.state == VoiceState.LISTENING
    assert sent_types(transport) == ["session.update"]
