#!/usr/bin/env python3
"""
Nubila Weather MCP Server protected with EVMAuth token tiers.

Tools are gated per tier (see evmauth/tiers.py); callers attach an
``__evmauth`` proof which is checked against the EVMAuth contract before the
weather tool runs. Serves over stdio (local agents) or streamable HTTP.

ENV:
  RADIUS_CONTRACT_ADDRESS, RADIUS_CHAIN_ID, RADIUS_RPC_URL -> EVMAuth ledger
  NUBILA_API_KEY -> Nubila Weather API (mock data when unset)
  DEMO_MODE=true -> bypass authentication (never in production)
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

import mcp.server.stdio
import uvicorn
from mcp.server.lowlevel import Server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from rich.console import Console
from rich.table import Table
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

from config import Config
from evmauth.checker import build_checker
from evmauth.errors import ConfigurationError
from evmauth.tiers import tier_label
from tools.tool_registry import build_gate, register_all_tools
from utils.http_client import close_http_client

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

console = Console(stderr=True)


def setup_logging(log_file, console_output=True, debug=False):
    """Log to ``log_file`` and, unless running as a daemon, to stderr.

    stdout is left alone: the stdio transport owns it.
    """
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(formatter)
    handlers = [file_handler]
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO, handlers=handlers, force=True
    )
    logging.getLogger("mcp.tools").setLevel(logging.DEBUG if debug else logging.INFO)
    return log_file


def create_app(checker, demo_mode=Config.demo_mode):
    """Low-level MCP server with every weather tool registered behind the gate."""
    app = Server(Config.SERVER_NAME, version=Config.SERVER_VERSION)
    gate = build_gate(checker, demo_mode=demo_mode)
    operations = register_all_tools(app, gate)
    return app, gate, operations


def build_http_app(app: Server, tool_count=0):
    """Starlette app exposing ``/mcp`` (streamable HTTP) and ``/health``."""
    session_manager = StreamableHTTPSessionManager(app=app, stateless=True)

    async def handle_mcp(scope, receive, send):
        await session_manager.handle_request(scope, receive, send)

    async def health(request):
        return JSONResponse(
            {
                "status": "ok",
                "server": Config.SERVER_NAME,
                "version": Config.SERVER_VERSION,
                "tools": tool_count,
                "demo_mode": Config.demo_mode(),
            }
        )

    @contextlib.asynccontextmanager
    async def lifespan(starlette_app):
        async with session_manager.run():
            yield

    return Starlette(
        routes=[Route("/health", health), Mount("/mcp", app=handle_mcp)],
        lifespan=lifespan,
    )


def print_banner(gate, operations, transport, host, port):
    table = Table(title="Token Requirements", show_header=True, header_style="bold magenta")
    table.add_column("Tool", style="cyan", no_wrap=True)
    table.add_column("Tier", style="green")
    for name in operations:
        tier = gate.registry.required_tier(name)
        table.add_row(name, f"{tier_label(tier)} (Token {tier})")
    console.print(table)

    if transport == "http":
        console.print(f"MCP endpoint: http://{host}:{port}/mcp")
        console.print(f"Health check: http://{host}:{port}/health")
    else:
        console.print("Transport: stdio")

    if Config.demo_mode():
        console.print(
            "[bold yellow]DEMO MODE: ACTIVE - Authentication bypassed for all protected tools[/]"
        )
        console.print("[yellow]WARNING: This mode is for demonstration only. Do not use in production![/]")
    else:
        console.print("EVMAuth protection: [green]Enabled[/]")
        console.print(f"Contract: {Config.RADIUS_CONTRACT_ADDRESS}")
        console.print(f"Chain ID: {Config.RADIUS_CHAIN_ID}")


async def run_stdio(app: Server):
    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


async def run_http(app: Server, host, port, tool_count=0):
    config = uvicorn.Config(build_http_app(app, tool_count), host=host, port=port, log_config=None)
    await uvicorn.Server(config).serve()


async def run_server(
    app, transport="stdio", host=Config.SERVER_HOST, port=Config.SERVER_PORT, tool_count=0
):
    """Serve until the client disconnects or SIGTERM arrives."""
    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGTERM, task.cancel)

    logging.info("Nubila MCP Server starting (%s transport)", transport)
    if Config.demo_mode():
        logging.warning("DEMO MODE: ACTIVE - authentication bypassed for all protected tools")
    try:
        if transport == "http":
            await run_http(app, host, port, tool_count)
        else:
            await run_stdio(app)
    except asyncio.CancelledError:
        logging.info("SIGTERM received, shutting down gracefully")
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGTERM)
        await close_http_client()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Nubila Weather MCP Server (EVMAuth protected)")
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default=Config.MCP_TRANSPORT,
        help="MCP transport to serve",
    )
    parser.add_argument("--host", default=Config.SERVER_HOST, help="HTTP bind host")
    parser.add_argument("--port", type=int, default=Config.SERVER_PORT, help="HTTP port")
    parser.add_argument(
        "--daemon", action="store_true", help="Run in daemon mode (log to file only)"
    )
    args = parser.parse_args(argv)

    log_file = setup_logging(
        Path(Config.LOG_DIR) / "mcp_server.log",
        console_output=not args.daemon,
        debug=Config.DEBUG,
    )

    try:
        checker = build_checker(Config)
    except ConfigurationError as e:
        logging.error("Server failed to start: %s", e)
        return 1

    app, gate, operations = create_app(checker)
    if not args.daemon:
        print_banner(gate, operations, args.transport, args.host, args.port)
        console.print(f"Logs: {log_file}")

    try:
        asyncio.run(
            run_server(app, args.transport, args.host, args.port, len(operations))
        )
    except KeyboardInterrupt:
        logging.info("Server shutting down...")
    except Exception as e:
        logging.exception("Server error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
