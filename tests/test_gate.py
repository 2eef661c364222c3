import json

import pytest

from evmauth.errors import EntitlementCheckError, EntitlementDenied, UpstreamFailure
from evmauth.proof import RESERVED_KEY

from conftest import FakeChecker, RecordingHandler


@pytest.mark.asyncio
async def test_free_tool_runs_directly(make_gate, make_operation):
    handler = RecordingHandler({"status": "ok", "message": "running"})
    checker = FakeChecker()
    gate = make_gate(checker)

    envelope = await gate.call(make_operation("ping", handler), {})

    assert handler.calls == [{}]
    assert checker.protected == []
    text = envelope["content"][0]["text"]
    assert text == json.dumps(handler.result, indent=2)
    assert '"status": "ok"' in text


@pytest.mark.asyncio
async def test_free_tool_receives_arguments_unmodified(make_gate, make_operation):
    handler = RecordingHandler("pong")
    checker = FakeChecker()
    args = {"echo": 1, RESERVED_KEY: "anything"}

    envelope = await make_gate(checker).call(make_operation("ping", handler), args)

    assert handler.calls == [args]
    assert checker.requests == []
    assert envelope == {"content": [{"type": "text", "text": "pong"}]}


@pytest.mark.asyncio
async def test_gated_tool_without_proof_is_denied(make_gate, make_operation):
    handler = RecordingHandler()
    gate = make_gate(FakeChecker(allow=False))

    with pytest.raises(EntitlementDenied) as exc_info:
        await gate.call(make_operation("getCurrentWeather", handler), {"latitude": 1})

    assert exc_info.value.required_tier == 1
    assert exc_info.value.reason == "EVMAUTH_PROOF_MISSING"
    assert handler.calls == []


@pytest.mark.asyncio
async def test_checker_sees_original_arguments(make_gate, make_operation):
    handler = RecordingHandler()
    checker = FakeChecker(allow=False)
    args = {"latitude": 37.7749, "longitude": -122.4194, RESERVED_KEY: "<invalid-json>"}

    with pytest.raises(EntitlementDenied) as exc_info:
        await make_gate(checker).call(make_operation("getCurrentWeather", handler), args)

    assert checker.protected == [1]
    (request,) = checker.requests
    assert request == {
        "method": "tools/call",
        "params": {"name": "getCurrentWeather", "arguments": args},
    }
    assert request["params"]["arguments"][RESERVED_KEY] == "<invalid-json>"
    assert exc_info.value.required_tier == 1
    assert handler.calls == []


@pytest.mark.asyncio
async def test_entitled_call_strips_proof_for_handler(make_gate, make_operation, valid_proof):
    handler = RecordingHandler({"temp": 20})
    checker = FakeChecker(allow=True)
    args = {"latitude": 1, RESERVED_KEY: valid_proof}

    envelope = await make_gate(checker).call(make_operation("getCurrentWeather", handler), args)

    assert handler.calls == [{"latitude": 1}]
    assert json.loads(envelope["content"][0]["text"]) == {"temp": 20}


@pytest.mark.asyncio
async def test_inner_callback_strips_rewrapped_arguments(make_gate, make_operation):
    handler = RecordingHandler()

    class RewrappingChecker(FakeChecker):
        def protect(self, tier, inner):
            async def wrapped(request):
                forwarded = {"params": {"arguments": {"q": 1, RESERVED_KEY: {"signature": "s"}}}}
                return await inner(forwarded)

            return wrapped

    await make_gate(RewrappingChecker()).call(make_operation("getForecast", handler), {})
    assert handler.calls == [{"q": 1}]


@pytest.mark.asyncio
async def test_demo_mode_bypasses_checker(make_gate, make_operation):
    handler = RecordingHandler({"forecast": []})
    checker = FakeChecker(allow=False)
    gate = make_gate(checker, demo=True)

    envelope = await gate.call(make_operation("getForecast", handler), {"latitude": 1})

    assert checker.protected == []
    assert handler.calls == [{"latitude": 1}]
    assert json.loads(envelope["content"][0]["text"]) == {"forecast": []}


@pytest.mark.asyncio
@pytest.mark.parametrize("proof", [None, "garbage", {"signature": "0x1"}])
async def test_demo_mode_always_strips_proof(make_gate, make_operation, proof):
    handler = RecordingHandler()
    args = {"latitude": 1}
    if proof is not None:
        args[RESERVED_KEY] = proof

    await make_gate(FakeChecker(), demo=True).call(make_operation("getForecast", handler), args)

    assert handler.calls == [{"latitude": 1}]


@pytest.mark.asyncio
async def test_demo_flag_read_per_call(registry, make_operation):
    from evmauth.gate import ToolGate

    state = {"demo": True}
    gate = ToolGate(registry, FakeChecker(allow=False), demo_mode=lambda: state["demo"])
    operation = make_operation("getCurrentWeather")

    await gate.call(operation, {})
    state["demo"] = False
    with pytest.raises(EntitlementDenied):
        await gate.call(operation, {})


@pytest.mark.asyncio
async def test_demo_mode_from_environment(monkeypatch, registry, make_operation):
    from config import Config
    from evmauth.gate import ToolGate

    gate = ToolGate(registry, FakeChecker(allow=False), demo_mode=Config.demo_mode)
    operation = make_operation("getCurrentWeather")

    monkeypatch.setenv("DEMO_MODE", "true")
    await gate.call(operation, {})
    monkeypatch.setenv("DEMO_MODE", "false")
    with pytest.raises(EntitlementDenied):
        await gate.call(operation, {})


@pytest.mark.asyncio
async def test_checker_failure_propagates(make_gate, make_operation):
    error = EntitlementCheckError("Ledger RPC request failed: boom")
    gate = make_gate(FakeChecker(error=error))

    with pytest.raises(EntitlementCheckError, match="boom"):
        await gate.call(make_operation("getCurrentWeather"), {})


@pytest.mark.asyncio
async def test_handler_failure_propagates_unchanged(make_gate, make_operation):
    error = UpstreamFailure("Failed to get forecast: No response from Nubila API")
    handler = RecordingHandler(error=error)

    with pytest.raises(UpstreamFailure) as exc_info:
        await make_gate(FakeChecker(allow=True)).call(make_operation("getForecast", handler), {})
    assert exc_info.value is error


@pytest.mark.asyncio
async def test_plain_string_checker_response_is_enveloped(make_gate, make_operation):
    gate = make_gate(FakeChecker(response="raw text"))
    envelope = await gate.call(make_operation("getCurrentWeather"), {})
    assert envelope == {"content": [{"type": "text", "text": "raw text"}]}


@pytest.mark.asyncio
async def test_top_level_checker_error_is_raised(make_gate, make_operation):
    gate = make_gate(FakeChecker(response={"error": {"message": "Token expired"}}))
    with pytest.raises(EntitlementDenied, match="Token expired") as exc_info:
        await gate.call(make_operation("getForecast"), {})
    assert exc_info.value.required_tier == 3


@pytest.mark.asyncio
async def test_missing_checker_fails_closed(make_gate, make_operation):
    handler = RecordingHandler()
    with pytest.raises(EntitlementDenied) as exc_info:
        await make_gate(None).call(make_operation("getForecast", handler), {})
    assert exc_info.value.reason == "EVMAUTH_UNAVAILABLE"
    assert handler.calls == []


@pytest.mark.asyncio
async def test_unregistered_tool_treated_as_free(make_gate, make_operation):
    handler = RecordingHandler("ok")
    checker = FakeChecker()
    await make_gate(checker).call(make_operation("unlisted", handler), {})
    assert handler.calls == [{}]
    assert checker.protected == []


@pytest.mark.asyncio
async def test_handler_error_field_is_data_on_gated_path(make_gate, make_operation):
    result = {"error": "upstream had partial data", "temperature": 20}
    handler = RecordingHandler(result)

    free = await make_gate(FakeChecker()).call(make_operation("ping", handler), {})
    gated = await make_gate(FakeChecker(allow=True)).call(
        make_operation("getCurrentWeather", handler), {}
    )

    assert gated == free
    assert json.loads(gated["content"][0]["text"]) == result
