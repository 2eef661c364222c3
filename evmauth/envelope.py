#!/usr/bin/env python3
"""
Uniform ``{"content": [{"type": "text", "text": ...}]}`` tool responses.
The Radius-style checker reports denials as a *successful* envelope whose
text is a JSON error document. ``normalize_response`` turns those back into
exceptions, and ``error_result`` renders any gate error for the MCP caller
as that same JSON document with ``isError`` set.
"""

import json
from collections.abc import Mapping
from typing import Dict, List

from mcp import types as mcp_types

from evmauth.errors import (
    DEFAULT_DENIAL_MESSAGE,
    EVMAUTH_DENIED,
    EntitlementDenied,
)

Envelope = Dict[str, List[Dict[str, str]]]


def to_text(result):
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, default=str)


def wrap_result(result) -> Envelope:
    """Wrap a raw handler result in a single text content item."""
    return {"content": [{"type": "text", "text": to_text(result)}]}


def is_envelope(raw):
    return isinstance(raw, Mapping) and isinstance(raw.get("content"), list)


def _first_text(envelope):
    content = envelope["content"]
    if not content:
        return None
    first = content[0]
    if isinstance(first, Mapping):
        text = first.get("text")
    else:
        text = getattr(first, "text", None)
    return text if isinstance(text, str) else None


def denial_from_error(error, required_tier=None):
    """Build an ``EntitlementDenied`` from a checker error payload."""
    if isinstance(error, str):
        return EntitlementDenied(error, required_tier=required_tier)
    if not isinstance(error, Mapping):
        return EntitlementDenied(DEFAULT_DENIAL_MESSAGE, required_tier=required_tier)

    details = error.get("details")
    details = dict(details) if isinstance(details, Mapping) else {}
    required_tokens = details.pop("requiredTokens", None)
    if isinstance(required_tokens, list) and required_tokens:
        required_tier = required_tokens[0]
    return EntitlementDenied(
        error.get("message") or DEFAULT_DENIAL_MESSAGE,
        reason=error.get("code") or EVMAUTH_DENIED,
        required_tier=required_tier,
        **details,
    )


def normalize_response(raw, required_tier=None) -> Envelope:
    """Coerce whatever the checker returned into an Envelope.

    Raises ``EntitlementDenied`` when the payload is really an error, whether
    it is embedded in the first content item or given at the top level.
    """
    if is_envelope(raw):
        text = _first_text(raw)
        if text is not None:
            try:
                parsed = json.loads(text)
            except ValueError:
                return raw
            if isinstance(parsed, Mapping) and parsed.get("error"):
                raise denial_from_error(parsed["error"], required_tier)
        return raw

    if isinstance(raw, Mapping) and raw.get("error"):
        raise denial_from_error(raw["error"], required_tier)

    return wrap_result(raw)


def envelope_to_content(envelope) -> List[mcp_types.TextContent]:
    """Convert an Envelope into MCP SDK content blocks."""
    blocks = []
    for item in envelope.get("content", []):
        if isinstance(item, mcp_types.TextContent):
            blocks.append(item)
        else:
            blocks.append(mcp_types.TextContent(type="text", text=to_text(item.get("text", ""))))
    return blocks


def error_result(error) -> mcp_types.CallToolResult:
    """Failed tool result carrying the error's code and details as JSON."""
    text = json.dumps({"error": error.as_dict()}, indent=2, default=str)
    return mcp_types.CallToolResult(
        content=[mcp_types.TextContent(type="text", text=text)],
        isError=True,
    )
