#!/usr/bin/env python3
"""
Tier-gated tool execution.
``ToolGate.call`` decides per call whether a tool runs directly, runs behind
the entitlement checker, or is refused:

1. demo mode on: strip the proof and run the handler (no entitlement logic);
2. tier 0: run the handler with the caller's arguments as given;
3. tier > 0: hand the checker the *unstripped* request, let it invoke the
   handler only when the caller is entitled, and normalize its envelope.

The handler never sees ``__evmauth``: the inner callback strips it again
because the checker is free to re-wrap the request it was given.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from evmauth.envelope import normalize_response, wrap_result
from evmauth.errors import EVMAUTH_UNAVAILABLE, EntitlementDenied
from evmauth.proof import extract_proof, strip_proof
from evmauth.tiers import FREE_TIER

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Operation:
    """A named tool: description, JSON input schema and async handler."""

    name: str
    description: str
    parameters: Mapping[str, Any]
    handler: Callable[[dict], Awaitable[Any]]


def _never():
    return False


class ToolGate:
    def __init__(self, registry, checker=None, demo_mode=_never):
        self.registry = registry
        self.checker = checker
        self._demo_mode = demo_mode

    def demo_mode(self):
        return bool(self._demo_mode())

    async def call(self, operation, arguments):
        args = dict(arguments or {})
        tier = self.registry.required_tier(operation.name)

        if self.demo_mode():
            logger.warning(
                "[%s] DEMO MODE ACTIVE - Token #%s requirement bypassed",
                operation.name,
                tier,
            )
            result = await operation.handler(strip_proof(args))
            return wrap_result(result)

        if tier == FREE_TIER:
            result = await operation.handler(args)
            return wrap_result(result)

        return await self._call_gated(operation, tier, args)

    async def _call_gated(self, operation, tier, args):
        name = operation.name
        extracted = extract_proof(args)
        if not extracted.present:
            logger.info("[%s] No __evmauth in args", name)
        elif extracted.parse_error is not None:
            logger.warning("[%s] %s", name, extracted.parse_error)
        else:
            signature = extracted.signature
            logger.info(
                "[%s] __evmauth present, signature length: %s",
                name,
                len(signature) if signature else None,
            )

        if self.checker is None:
            raise EntitlementDenied(
                f"Entitlement checking is unavailable; '{name}' requires Token #{tier}",
                reason=EVMAUTH_UNAVAILABLE,
                required_tier=tier,
            )

        call_description = {
            "method": "tools/call",
            "params": {"name": name, "arguments": args},
        }
        # envelopes built here hold handler output, never a checker denial
        produced = []

        async def entitled(request):
            params = request.get("params") or {}
            clean_args = extract_proof(params.get("arguments") or {}).clean_args
            envelope = wrap_result(await operation.handler(clean_args))
            produced.append(envelope)
            return envelope

        protected = self.checker.protect(tier, entitled)
        try:
            response = await protected(call_description)
            if any(response is envelope for envelope in produced):
                return response
            return normalize_response(response, required_tier=tier)
        except Exception as e:
            logger.error("[%s] Error: %s", name, e)
            raise
