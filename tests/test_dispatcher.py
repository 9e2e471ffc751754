"""Tests for tool listing and dispatch."""

from __future__ import annotations

import asyncio
import json

import pytest

from nooterra_bridge.dispatcher import CALL_TOOL, SEARCH_TOOL, ToolDispatcher

_WEATHER = {
    "did": "did:noot:weather",
    "capabilityId": "cap.weather.forecast.v1",
    "description": "Forecasts weather",
    "endpoint": "https://agents.example/weather",
    "reputation": 0.87,
}


def _succeed_with(payload: dict):
    return lambda n: (
        200,
        {
            "workflow": {"status": "success"},
            "nodes": [{"name": "main", "result_payload": payload}],
        },
    )


# ---------------------------------------------------------------------------
# list_tools
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_tools_meta_tools_first(dispatcher: ToolDispatcher, nooterra):
    nooterra.capabilities = [_WEATHER]

    tools = await dispatcher.list_tools()

    assert [t.name for t in tools] == [SEARCH_TOOL, CALL_TOOL, "cap_weather_forecast_v1"]
    assert tools[0].input_schema["required"] == ["query"]
    assert tools[1].input_schema["required"] == ["capabilityId"]


@pytest.mark.asyncio
async def test_capability_descriptor_text_and_schema(dispatcher: ToolDispatcher, nooterra):
    nooterra.capabilities = [_WEATHER]

    tool = (await dispatcher.list_tools())[2]

    assert tool.description == "Forecasts weather\n\nAgent: did:noot:weather\nReputation: 87%"
    wire = tool.to_wire()
    assert wire["inputSchema"]["required"] == ["query"]
    assert set(wire["inputSchema"]["properties"]) == {"query", "data"}


@pytest.mark.asyncio
async def test_list_tools_caps_at_twenty_in_cache_order(dispatcher: ToolDispatcher, nooterra):
    nooterra.capabilities = [
        {"did": f"did:{i}", "capabilityId": f"cap.n{i}.v1", "reputation": i / 30}
        for i in range(30)
    ]

    tools = await dispatcher.list_tools()

    assert len(tools) == 22
    assert [t.name for t in tools[2:]] == [f"cap_n{i}_v1" for i in range(20)]


@pytest.mark.asyncio
async def test_list_tools_survives_discovery_failure(dispatcher: ToolDispatcher, nooterra):
    nooterra.discover_status = 500

    tools = await dispatcher.list_tools()

    assert [t.name for t in tools] == [SEARCH_TOOL, CALL_TOOL]


@pytest.mark.asyncio
async def test_list_tools_warns_once_per_collision(dispatcher: ToolDispatcher, nooterra, caplog):
    nooterra.capabilities = [
        {"did": "a", "capabilityId": "cap.image-gen.v1"},
        {"did": "b", "capabilityId": "cap.imagegen.v1"},
    ]

    with caplog.at_level("WARNING", logger="nooterra_bridge.dispatcher"):
        await dispatcher.list_tools()
        await dispatcher.list_tools()

    warnings = [r for r in caplog.records if "cap_imagegen_v1" in r.getMessage()]
    assert len(warnings) == 1


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_search_renders_hits(dispatcher: ToolDispatcher, nooterra):
    nooterra.search_results = [
        {"capabilityId": "cap.weather.forecast.v1", "description": "Forecasts weather",
         "reputation": 0.9},
        {"capabilityId": "cap.weather.alerts.v1", "description": "Severe alerts",
         "reputation": 0.456},
    ]

    result = await dispatcher.call_tool(SEARCH_TOOL, {"query": "weather"})

    assert not result.is_error
    assert result.joined_text == (
        "• cap.weather.forecast.v1: Forecasts weather (rep: 90%)\n"
        "• cap.weather.alerts.v1: Severe alerts (rep: 46%)"
    )
    [request] = nooterra.requests
    assert request.url.path == "/v1/agent/discovery"
    assert json.loads(request.content) == {"query": "weather", "limit": 10}
    assert "x-api-key" not in request.headers


@pytest.mark.asyncio
async def test_search_no_results(dispatcher: ToolDispatcher, nooterra):
    result = await dispatcher.call_tool(SEARCH_TOOL, {"query": "nothing"})
    assert result.joined_text == "No agents found for that query."
    assert not result.is_error


@pytest.mark.asyncio
async def test_search_skips_malformed_hits(dispatcher: ToolDispatcher, nooterra):
    nooterra.search_results = [
        {"capabilityId": "cap.broken.v1", "description": {"text": "not a string"}},
        "junk",
        {"capabilityId": "cap.weather.forecast.v1", "description": "Forecasts weather",
         "reputation": 0.9},
    ]

    result = await dispatcher.call_tool(SEARCH_TOOL, {"query": "weather"})

    assert not result.is_error
    assert result.joined_text == "• cap.weather.forecast.v1: Forecasts weather (rep: 90%)"


@pytest.mark.asyncio
async def test_search_failure_renders_retry_message(dispatcher: ToolDispatcher, nooterra):
    nooterra.search_status = 500
    result = await dispatcher.call_tool(SEARCH_TOOL, {"query": "weather"})
    assert result.joined_text == "Search failed. Try again later."

    nooterra.search_status = 200
    nooterra.raise_on.add("/v1/agent/discovery")
    result = await dispatcher.call_tool(SEARCH_TOOL, {"query": "weather"})
    assert result.joined_text == "Search failed. Try again later."


# ---------------------------------------------------------------------------
# call
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_call_invokes_by_explicit_id(dispatcher: ToolDispatcher, nooterra):
    nooterra.status_for_poll = _succeed_with({"answer": 42})

    result = await dispatcher.call_tool(
        CALL_TOOL, {"capabilityId": "cap.math.solve.v1", "inputs": {"expr": "6*7"}}
    )

    assert not result.is_error
    assert json.loads(result.joined_text) == {"answer": 42}
    [body] = nooterra.published()
    assert body["nodes"]["main"] == {"capabilityId": "cap.math.solve.v1", "payload": {"expr": "6*7"}}
    # Not routed through discovery.
    assert nooterra.count("/v1/discover") == 0


@pytest.mark.asyncio
async def test_call_defaults_inputs_to_empty_object(dispatcher: ToolDispatcher, nooterra):
    nooterra.status_for_poll = _succeed_with({"ok": True})

    await dispatcher.call_tool(CALL_TOOL, {"capabilityId": "cap.ping.v1"})

    assert nooterra.published()[0]["nodes"]["main"]["payload"] == {}


@pytest.mark.asyncio
async def test_call_requires_capability_id(dispatcher: ToolDispatcher, nooterra):
    result = await dispatcher.call_tool(CALL_TOOL, {"inputs": {}})
    assert result.is_error
    assert "capabilityId" in result.joined_text
    assert nooterra.requests == []


# ---------------------------------------------------------------------------
# capability tools
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unknown_tool_returns_error_without_workflow(dispatcher: ToolDispatcher, nooterra):
    nooterra.capabilities = [_WEATHER]
    await dispatcher.list_tools()
    before = len(nooterra.requests)

    result = await dispatcher.call_tool("cap_does_not_exist", {"query": "x"})

    assert result.is_error
    assert "cap_does_not_exist" in result.joined_text
    assert SEARCH_TOOL in result.joined_text
    assert len(nooterra.requests) == before


@pytest.mark.asyncio
async def test_decoded_name_is_not_used_for_routing(dispatcher: ToolDispatcher, nooterra):
    nooterra.capabilities = [{"did": "a", "capabilityId": "cap.image-gen.v1"}]
    await dispatcher.list_tools()

    # decode("cap_image_gen_v1") == "cap.image.gen.v1", which is not a real capability.
    result = await dispatcher.call_tool("cap_image_gen_v1", {"query": "cat"})

    assert result.is_error
    assert nooterra.published() == []


@pytest.mark.asyncio
async def test_weather_end_to_end(dispatcher: ToolDispatcher, nooterra):
    nooterra.capabilities = [_WEATHER]
    forecast = {"city": "NYC", "forecast": "sunny", "high_c": 24}
    nooterra.status_for_poll = _succeed_with(forecast)

    tools = await dispatcher.list_tools()
    assert "cap_weather_forecast_v1" in [t.name for t in tools]

    result = await dispatcher.call_tool("cap_weather_forecast_v1", {"query": "NYC"})

    assert not result.is_error
    [body] = nooterra.published()
    assert body["nodes"]["main"]["capabilityId"] == "cap.weather.forecast.v1"
    assert body["nodes"]["main"]["payload"] == {"query": "NYC"}
    assert result.joined_text == json.dumps(forecast, indent=2)


@pytest.mark.asyncio
async def test_data_fields_merge_over_query(dispatcher: ToolDispatcher, nooterra):
    nooterra.capabilities = [_WEATHER]
    nooterra.status_for_poll = _succeed_with({})

    await dispatcher.call_tool(
        "cap_weather_forecast_v1",
        {"query": "NYC", "data": {"units": "metric", "query": "Boston"}},
    )

    payload = nooterra.published()[0]["nodes"]["main"]["payload"]
    assert payload == {"query": "Boston", "units": "metric"}


@pytest.mark.asyncio
async def test_workflow_failure_becomes_error_result(dispatcher: ToolDispatcher, nooterra):
    nooterra.capabilities = [_WEATHER]
    nooterra.status_for_poll = lambda n: (
        200,
        {
            "workflow": {"status": "failed"},
            "nodes": [{"name": "main", "result_payload": {"error": "city not found"}}],
        },
    )

    result = await dispatcher.call_tool("cap_weather_forecast_v1", {"query": "Atlantis"})

    assert result.is_error
    assert result.joined_text == "Error: city not found"


@pytest.mark.asyncio
async def test_timeout_becomes_error_result(dispatcher: ToolDispatcher, nooterra):
    result = await dispatcher.call_tool(CALL_TOOL, {"capabilityId": "cap.slow.v1"})

    assert result.is_error
    assert "timed out" in result.joined_text


@pytest.mark.asyncio
async def test_submission_failure_becomes_error_result(dispatcher: ToolDispatcher, nooterra):
    nooterra.publish_status = 401
    nooterra.publish_body = {"error": "bad api key"}

    result = await dispatcher.call_tool(CALL_TOOL, {"capabilityId": "cap.x.v1"})

    assert result.is_error
    assert "bad api key" in result.joined_text
    assert result.to_wire()["isError"] is True


@pytest.mark.asyncio
async def test_concurrent_calls_return_their_own_results(dispatcher: ToolDispatcher, nooterra):
    nooterra.distinct_workflow_ids = True
    nooterra.status_for_workflow = lambda workflow_id, n: (
        200,
        {
            "workflow": {"status": "success" if n >= 2 else "pending"},
            "nodes": [
                {
                    "name": "main",
                    "result_payload": {"from": nooterra.workflow_capabilities[workflow_id]},
                },
            ],
        },
    )

    first, second = await asyncio.gather(
        dispatcher.call_tool(CALL_TOOL, {"capabilityId": "cap.first.v1"}),
        dispatcher.call_tool(CALL_TOOL, {"capabilityId": "cap.second.v1"}),
    )

    assert json.loads(first.joined_text) == {"from": "cap.first.v1"}
    assert json.loads(second.joined_text) == {"from": "cap.second.v1"}
    assert sorted(nooterra.workflow_polls) == ["wf-1", "wf-2"]
