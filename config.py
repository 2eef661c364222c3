#!/usr/bin/env python3
"""
Configuration module for the Nubila weather MCP server.
Centralizes API keys, EVMAuth ledger settings, and environment variables.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default="false"):
    return os.getenv(name, default).strip().lower() == "true"


class Config:
    """Configuration class for weather server settings."""

    # Nubila Weather API
    NUBILA_API_URL = os.getenv("NUBILA_API_URL", "https://api.nubila.ai")
    NUBILA_API_KEY = os.getenv("NUBILA_API_KEY")
    NUBILA_TIMEOUT = 10.0

    # HTTP Settings
    HTTP_TIMEOUT = 20.0
    HTTP_CONNECT_TIMEOUT = 10.0
    USER_AGENT = "NubilaWeatherMCP/1.0"

    # EVMAuth / Radius ledger
    RADIUS_CONTRACT_ADDRESS = os.getenv(
        "RADIUS_CONTRACT_ADDRESS", "0x9f2B42FB651b75CC3db4ef9FEd913A22BA4629Cf"
    )
    RADIUS_CHAIN_ID = os.getenv("RADIUS_CHAIN_ID", "1223953")
    RADIUS_RPC_URL = os.getenv("RADIUS_RPC_URL", "https://rpc.testnet.radiustech.xyz")
    RADIUS_CACHE_TTL = int(os.getenv("RADIUS_CACHE_TTL", "300"))
    RADIUS_CACHE_MAX_SIZE = int(os.getenv("RADIUS_CACHE_MAX_SIZE", "1000"))

    # Server Settings
    SERVER_NAME = "evmauth-mcp-server"
    SERVER_VERSION = "1.0.0"
    SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
    SERVER_PORT = int(os.getenv("PORT", "3001"))
    MCP_TRANSPORT = os.getenv("MCP_TRANSPORT", "stdio")
    DEBUG = _env_flag("DEBUG")

    # Tool Settings
    DEFAULT_FORECAST_HOURS = 24
    MAX_FORECAST_HOURS = 48
    DEFAULT_UNITS = "C"

    # File Paths
    LOG_DIR = os.getenv("LOG_DIR", "logs")

    @classmethod
    def demo_mode(cls):
        """Whether DEMO_MODE bypasses entitlement checks.

        Read from the environment on every call so it can change without a
        restart.
        """
        return _env_flag("DEMO_MODE")

    @classmethod
    def has_nubila_api_key(cls):
        """Check if a Nubila API key is configured."""
        return bool(cls.NUBILA_API_KEY)

