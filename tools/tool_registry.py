#!/usr/bin/env python3
"""
Tool registry for the Nubila weather MCP server.
Centralizes tool registration: every tool is advertised with its tier-aware
schema and description, and every call is routed through the EVMAuth gate.
"""

import logging

from mcp import types as mcp_types
from mcp.server.lowlevel import Server

from config import Config
from evmauth.envelope import envelope_to_content, error_result
from evmauth.errors import EVMAuthError
from evmauth.gate import Operation, ToolGate
from evmauth.schema import augment_schema, describe_operation
from evmauth.tiers import TOKEN_REQUIREMENTS, TierRegistry, tier_label
from tools.weather import WEATHER_OPERATIONS

logger = logging.getLogger("mcp.tools")


def build_gate(checker, registry=None, demo_mode=Config.demo_mode):
    """Gate wired to the live DEMO_MODE flag."""
    if registry is None:
        registry = TierRegistry(TOKEN_REQUIREMENTS)
    return ToolGate(registry, checker, demo_mode)


def prepare_operations(operations, registry):
    """Advertised copies of ``operations`` with tier-aware schema and text."""
    prepared = {}
    for operation in operations:
        if operation.name in prepared:
            raise ValueError(f"Tool '{operation.name}' registered twice")
        if operation.name not in registry:
            logger.warning("Tool '%s' has no tier entry; it will be free", operation.name)
        tier = registry.required_tier(operation.name)
        prepared[operation.name] = Operation(
            name=operation.name,
            description=describe_operation(operation.description, tier),
            parameters=augment_schema(operation.parameters, tier),
            handler=operation.handler,
        )
        if tier == 0:
            logger.info("%s - FREE (no token required)", operation.name)
        else:
            logger.info(
                "%s - Protected with Token ID %s (%s)",
                operation.name,
                tier,
                tier_label(tier),
            )
    return prepared


def list_tool_schemas(operations):
    return [
        mcp_types.Tool(
            name=op.name,
            description=op.description,
            inputSchema=dict(op.parameters),
        )
        for op in operations.values()
    ]


async def dispatch_tool(gate, operations, name, arguments):
    """Run a tool through the gate and return MCP content blocks."""
    operation = operations.get(name)
    if operation is None:
        raise ValueError(
            f"Tool '{name}' not found. Available tools: {', '.join(operations)}"
        )
    logger.info("[%s] Incoming call", name)
    envelope = await gate.call(operation, arguments)
    return envelope_to_content(envelope)


def register_all_tools(app: Server, gate: ToolGate, operations=WEATHER_OPERATIONS):
    """Register all weather tools with the low-level MCP server."""
    prepared = prepare_operations(operations, gate.registry)

    @app.list_tools()
    async def list_tools() -> list[mcp_types.Tool]:
        return list_tool_schemas(prepared)

    @app.call_tool()
    async def call_tool(name: str, arguments: dict):
        try:
            return await dispatch_tool(gate, prepared, name, arguments)
        except EVMAuthError as e:
            # keep code and requiredTokens so the agent can authenticate and retry
            return error_result(e)

    return prepared
