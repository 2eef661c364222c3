#!/usr/bin/env python3
"""
EVMAuth entitlement checking against the on-chain token ledger.

A checker exposes ``protect(tier, handler) -> wrapped``. The wrapped callable
receives an MCP-shaped ``{"method": "tools/call", "params": {...}}`` request
whose arguments still carry ``__evmauth``. When the caller is entitled the
inner handler runs and its envelope is returned untouched; otherwise the
checker answers with a Radius-style error envelope (a JSON error document in
the first text item) and the inner handler never runs.

Ledger failures (RPC unreachable, JSON-RPC error) raise
``EntitlementCheckError`` instead of producing a denial, so an outage is not
mistaken for a missing token.
"""

import itertools
import json
import logging
import math
import re
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Tuple

import httpx

from evmauth.envelope import Envelope
from evmauth.errors import (
    EVMAUTH_INSUFFICIENT_BALANCE,
    EVMAUTH_INVALID_PROOF,
    EVMAUTH_PROOF_EXPIRED,
    EVMAUTH_PROOF_MISSING,
    ConfigurationError,
    EntitlementCheckError,
)
from evmauth.proof import extract_proof
from utils.http_client import get_http_client

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# ERC-1155 balanceOf(address,uint256)
BALANCE_OF_SELECTOR = "0x00fdd58e"

ProtectedHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class EntitlementChecker(Protocol):
    def protect(self, tier: int, handler: ProtectedHandler) -> ProtectedHandler:
        ...


def _abi_word(value: int) -> str:
    return format(value, "064x")


def encode_balance_of(wallet: str, token_id: int) -> str:
    return BALANCE_OF_SELECTOR + _abi_word(int(wallet, 16)) + _abi_word(token_id)


def _timestamp(value) -> Optional[float]:
    """Epoch seconds from a proof field, or None when not a finite number."""
    if isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if math.isfinite(seconds) else None


class LedgerEntitlementChecker:
    """Checks ERC-1155 token balances on the EVMAuth contract via JSON-RPC."""

    def __init__(
        self,
        contract_address: str,
        chain_id: int,
        rpc_url: str,
        cache_ttl: float = 300,
        cache_max_size: int = 1000,
        debug: bool = False,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        if not isinstance(contract_address, str) or not ADDRESS_RE.match(contract_address):
            raise ConfigurationError(
                f"Invalid EVMAuth contract address: {contract_address!r}",
                contractAddress=contract_address,
            )
        if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
            raise ConfigurationError(f"Invalid chain id: {chain_id!r}", chainId=chain_id)
        if not rpc_url or not str(rpc_url).startswith(("http://", "https://")):
            raise ConfigurationError(f"Invalid RPC URL: {rpc_url!r}", rpcUrl=rpc_url)
        if cache_ttl < 0 or cache_max_size < 0:
            raise ConfigurationError("Cache ttl and size must be non-negative")

        self.contract_address = contract_address
        self.chain_id = chain_id
        self.rpc_url = rpc_url
        self.cache_ttl = cache_ttl
        self.cache_max_size = cache_max_size
        self.debug = debug
        self._client = client
        self._clock = clock
        self._cache: "OrderedDict[Tuple[str, int], Tuple[float, int]]" = OrderedDict()
        self._rpc_ids = itertools.count(1)

    def _http(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    def protect(self, tier: int, handler: ProtectedHandler) -> ProtectedHandler:
        async def protected(request: Dict[str, Any]) -> Any:
            denial = await self.check(tier, request)
            if denial is not None:
                return denial
            return await handler(request)

        return protected

    async def check(self, tier: int, request: Mapping[str, Any]) -> Optional[Envelope]:
        """Return an error envelope when the request is not entitled, else None."""
        params = request.get("params") or {}
        extracted = extract_proof(params.get("arguments") or {})

        if not extracted.present:
            return self.error_envelope(
                tier,
                EVMAUTH_PROOF_MISSING,
                f"EVMAuth proof required: this tool needs Token #{tier}. "
                "Authenticate and retry with the __evmauth argument.",
            )
        if not extracted.parsed:
            return self.error_envelope(
                tier, EVMAUTH_INVALID_PROOF, "EVMAuth proof could not be decoded"
            )
        if not extracted.signature:
            return self.error_envelope(
                tier, EVMAUTH_INVALID_PROOF, "EVMAuth proof is missing a signature"
            )

        proof = extracted.proof
        challenge = proof.get("challenge") if isinstance(proof.get("challenge"), Mapping) else {}
        message = challenge.get("message") if isinstance(challenge.get("message"), Mapping) else {}
        if self.debug:
            logger.debug(
                "EVMAuth proof for token #%s: challenge=%s signature_length=%d",
                tier,
                json.dumps(message, default=str),
                len(extracted.signature),
            )

        wallet = message.get("walletAddress") or proof.get("walletAddress")
        if not isinstance(wallet, str) or not ADDRESS_RE.match(wallet):
            return self.error_envelope(
                tier, EVMAUTH_INVALID_PROOF, "EVMAuth proof does not name a valid wallet"
            )

        if message.get("expiresAt") is not None:
            expires_at = _timestamp(message["expiresAt"])
            if expires_at is None:
                return self.error_envelope(
                    tier, EVMAUTH_INVALID_PROOF, "EVMAuth proof has a malformed expiry"
                )
            if expires_at < self._clock():
                return self.error_envelope(
                    tier, EVMAUTH_PROOF_EXPIRED, "EVMAuth proof has expired"
                )

        required = message.get("requiredTokens")
        if isinstance(required, list) and required:
            if tier not in [t for t in required if isinstance(t, int)]:
                return self.error_envelope(
                    tier,
                    EVMAUTH_INVALID_PROOF,
                    f"EVMAuth proof was not issued for Token #{tier}",
                )

        balance = await self.balance_of(wallet, tier)
        if balance <= 0:
            return self.error_envelope(
                tier,
                EVMAUTH_INSUFFICIENT_BALANCE,
                f"Wallet {wallet} does not hold Token #{tier}",
                walletAddress=wallet,
            )
        return None

    async def balance_of(self, wallet: str, token_id: int) -> int:
        key = (wallet.lower(), token_id)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._rpc_ids),
            "method": "eth_call",
            "params": [
                {"to": self.contract_address, "data": encode_balance_of(wallet, token_id)},
                "latest",
            ],
        }
        try:
            r = await self._http().post(self.rpc_url, json=payload)
            r.raise_for_status()
            body = r.json()
        except httpx.HTTPError as e:
            raise EntitlementCheckError(
                f"Ledger RPC request failed: {e}", rpcUrl=self.rpc_url
            ) from e
        except ValueError as e:
            raise EntitlementCheckError(
                "Ledger RPC returned malformed JSON", rpcUrl=self.rpc_url
            ) from e

        if not isinstance(body, Mapping):
            raise EntitlementCheckError("Ledger RPC returned an unexpected payload")
        if body.get("error"):
            error = body["error"]
            msg = error.get("message") if isinstance(error, Mapping) else str(error)
            raise EntitlementCheckError(f"Ledger RPC error: {msg}", rpcUrl=self.rpc_url)

        result = body.get("result")
        try:
            balance = int(result, 16) if result not in ("0x", "") else 0
        except (TypeError, ValueError) as e:
            raise EntitlementCheckError(
                f"Ledger RPC returned a non-numeric balance: {result!r}"
            ) from e

        if balance > 0:
            self._cache_put(key, balance)
        return balance

    def _cache_get(self, key):
        if not self.cache_ttl or not self.cache_max_size:
            return None
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires, balance = entry
        if expires <= self._clock():
            del self._cache[key]
            return None
        return balance

    def _cache_put(self, key, balance):
        if not self.cache_ttl or not self.cache_max_size:
            return
        self._cache[key] = (self._clock() + self.cache_ttl, balance)
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_max_size:
            self._cache.popitem(last=False)

    def error_envelope(self, tier: int, code: str, message: str, **details: Any) -> Envelope:
        error = {
            "code": code,
            "message": message,
            "details": {
                "requiredTokens": [tier],
                "contractAddress": self.contract_address,
                "chainId": self.chain_id,
                **details,
            },
        }
        logger.info("EVMAuth denied token #%s: %s", tier, code)
        return {"content": [{"type": "text", "text": json.dumps({"error": error}, indent=2)}]}


def build_checker(config, client: Optional[httpx.AsyncClient] = None) -> LedgerEntitlementChecker:
    """Construct the ledger checker from a ``Config``-like object.

    Raises ``ConfigurationError`` on a malformed address, chain id or RPC URL.
    """
    try:
        chain_id = int(config.RADIUS_CHAIN_ID)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"RADIUS_CHAIN_ID must be an integer, got {config.RADIUS_CHAIN_ID!r}"
        ) from e
    return LedgerEntitlementChecker(
        contract_address=config.RADIUS_CONTRACT_ADDRESS,
        chain_id=chain_id,
        rpc_url=config.RADIUS_RPC_URL,
        cache_ttl=config.RADIUS_CACHE_TTL,
        cache_max_size=config.RADIUS_CACHE_MAX_SIZE,
        debug=config.DEBUG,
        client=client,
    )
