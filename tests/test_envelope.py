import json

import pytest
from mcp import types as mcp_types

from evmauth.envelope import (
    envelope_to_content,
    error_result,
    normalize_response,
    wrap_result,
)
from evmauth.errors import EntitlementDenied


def _envelope(text):
    return {"content": [{"type": "text", "text": text}]}


def test_wrap_result_strings_pass_through():
    assert wrap_result("hello") == _envelope("hello")


def test_wrap_result_pretty_prints_structures():
    result = {"status": "ok", "n": 1}
    assert wrap_result(result) == _envelope(json.dumps(result, indent=2))


def test_nested_error_is_raised():
    raw = _envelope(json.dumps({"error": {"message": "X"}}))
    with pytest.raises(EntitlementDenied) as exc_info:
        normalize_response(raw)
    assert str(exc_info.value) == "X"


def test_nested_error_carries_reason_and_tier():
    error = {
        "code": "EVMAUTH_INSUFFICIENT_BALANCE",
        "message": "no token",
        "details": {"requiredTokens": [3], "chainId": 1223953},
    }
    with pytest.raises(EntitlementDenied) as exc_info:
        normalize_response(_envelope(json.dumps({"error": error})), required_tier=1)
    exc = exc_info.value
    assert exc.reason == "EVMAUTH_INSUFFICIENT_BALANCE"
    assert exc.required_tier == 3
    assert exc.details["chainId"] == 1223953


def test_string_error_uses_fallback_tier():
    with pytest.raises(EntitlementDenied) as exc_info:
        normalize_response(_envelope(json.dumps({"error": "denied"})), required_tier=5)
    assert str(exc_info.value) == "denied"
    assert exc_info.value.required_tier == 5


@pytest.mark.parametrize("text", ["plain text", "{not json", json.dumps({"status": "ok"})])
def test_non_error_envelopes_pass_through(text):
    raw = _envelope(text)
    assert normalize_response(raw) is raw


def test_envelope_is_not_double_wrapped():
    raw = wrap_result({"a": 1})
    assert normalize_response(raw) == raw


def test_empty_content_passes_through():
    raw = {"content": []}
    assert normalize_response(raw) is raw


def test_top_level_error_defaults_message():
    with pytest.raises(EntitlementDenied) as exc_info:
        normalize_response({"error": {"code": "EVMAUTH_DENIED"}})
    assert str(exc_info.value) == "Authentication failed"


def test_plain_results_wrapped_once():
    assert normalize_response("sunny") == _envelope("sunny")
    assert normalize_response([1, 2]) == _envelope(json.dumps([1, 2], indent=2))


def test_envelope_to_content():
    blocks = envelope_to_content(_envelope("hi"))
    assert len(blocks) == 1
    assert isinstance(blocks[0], mcp_types.TextContent)
    assert blocks[0].text == "hi"


def test_error_result_keeps_code_and_details():
    denial = EntitlementDenied(
        "no token", reason="EVMAUTH_INSUFFICIENT_BALANCE", required_tier=3, chainId=1223953
    )

    result = error_result(denial)

    assert result.isError is True
    assert json.loads(result.content[0].text) == {
        "error": {
            "code": "EVMAUTH_INSUFFICIENT_BALANCE",
            "message": "no token",
            "details": {"chainId": 1223953, "requiredTokens": [3]},
        }
    }
