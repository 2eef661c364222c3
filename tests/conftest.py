import json

import pytest

from config import Config
from evmauth.gate import Operation, ToolGate
from evmauth.proof import RESERVED_KEY
from evmauth.tiers import TierRegistry


class RecordingHandler:
    """Async tool handler that records the arguments it was called with."""

    def __init__(self, result=None, error=None):
        self.result = {"status": "ok"} if result is None else result
        self.error = error
        self.calls = []

    async def __call__(self, args):
        self.calls.append(args)
        if self.error is not None:
            raise self.error
        return self.result


class FakeChecker:
    """Stand-in for the Radius checker.

    Denies with a JSON error envelope unless ``allow`` is set, and records
    every request it is handed.
    """

    def __init__(self, allow=False, error=None, response=None):
        self.allow = allow
        self.error = error
        self.response = response
        self.protected = []
        self.requests = []

    def protect(self, tier, handler):
        self.protected.append(tier)

        async def wrapped(request):
            self.requests.append(request)
            if self.error is not None:
                raise self.error
            if self.response is not None:
                return self.response
            if self.allow:
                return await handler(request)
            error = {
                "code": "EVMAUTH_PROOF_MISSING",
                "message": f"EVMAuth proof required for Token #{tier}",
                "details": {"requiredTokens": [tier]},
            }
            return {"content": [{"type": "text", "text": json.dumps({"error": error})}]}

        return wrapped


@pytest.fixture(autouse=True)
def no_demo_mode(monkeypatch):
    monkeypatch.delenv("DEMO_MODE", raising=False)


@pytest.fixture(autouse=True)
def offline_nubila(monkeypatch):
    monkeypatch.setattr(Config, "NUBILA_API_KEY", None)


@pytest.fixture
def registry():
    return TierRegistry({"ping": 0, "getCurrentWeather": 1, "getForecast": 3})


@pytest.fixture
def make_gate(registry):
    def _make(checker=None, demo=False):
        return ToolGate(registry, checker, demo_mode=lambda: demo)

    return _make


@pytest.fixture
def make_operation():
    def _make(name, handler=None):
        handler = handler or RecordingHandler()
        return Operation(
            name=name,
            description=f"{name} tool",
            parameters={"type": "object", "properties": {}},
            handler=handler,
        )

    return _make


@pytest.fixture
def valid_proof():
    return {
        "challenge": {
            "message": {
                "walletAddress": "0x" + "ab" * 20,
                "requiredTokens": [1],
                "nonce": "n-1",
                "expiresAt": 4_102_444_800,
            }
        },
        "signature": "0x" + "11" * 65,
    }


@pytest.fixture
def reserved_key():
    return RESERVED_KEY
