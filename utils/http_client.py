#!/usr/bin/env python3
"""
Shared outbound HTTP client.
One pooled httpx.AsyncClient serves both the Nubila weather API and the
EVMAuth ledger RPC; it is created lazily and rebuilt if something closed it.
"""

import logging

import httpx

from config import Config

logger = logging.getLogger(__name__)

_client = None


def _build_client():
    return httpx.AsyncClient(
        timeout=httpx.Timeout(Config.HTTP_TIMEOUT, connect=Config.HTTP_CONNECT_TIMEOUT),
        headers={"User-Agent": Config.USER_AGENT, "Accept": "application/json"},
    )


def get_http_client() -> httpx.AsyncClient:
    """Pooled client for Nubila and ledger requests."""
    global _client
    if _client is None or _client.is_closed:
        logger.debug("Opening shared HTTP client")
        _client = _build_client()
    return _client


async def close_http_client():
    """Release pooled connections at shutdown. Safe to call twice."""
    global _client
    client, _client = _client, None
    if client is not None and not client.is_closed:
        await client.aclose()
        logger.debug("Shared HTTP client closed")
