#!/usr/bin/env python3
"""
Error taxonomy for EVMAuth tool gating.
Every failure surfaced by the gate carries a stable ``code`` so MCP clients
can tell a denial apart from a broken upstream without parsing messages.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

# Startup / configuration
EVMAUTH_E_CONFIG = "EVMAUTH_E_CONFIG"

# Entitlement denials (same codes the Radius SDK reports)
EVMAUTH_PROOF_MISSING = "EVMAUTH_PROOF_MISSING"
EVMAUTH_INVALID_PROOF = "EVMAUTH_INVALID_PROOF"
EVMAUTH_PROOF_EXPIRED = "EVMAUTH_PROOF_EXPIRED"
EVMAUTH_INSUFFICIENT_BALANCE = "EVMAUTH_INSUFFICIENT_BALANCE"
EVMAUTH_UNAVAILABLE = "EVMAUTH_UNAVAILABLE"
EVMAUTH_DENIED = "EVMAUTH_DENIED"

# Ledger / upstream
EVMAUTH_E_LEDGER = "EVMAUTH_E_LEDGER"
NUBILA_E_UPSTREAM = "NUBILA_E_UPSTREAM"

DEFAULT_DENIAL_MESSAGE = "Authentication failed"


@dataclass(eq=False)
class EVMAuthError(Exception):
    """Base exception with a stable error code.

    ``str(exc)`` is the human message; ``as_dict()`` is the machine-readable
    document sent back to MCP callers.
    """

    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        Exception.__init__(self, self.message)

    def as_dict(self) -> Dict[str, Any]:
        d = {"code": self.code, "message": self.message}
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self):
        return self.message


class ConfigurationError(EVMAuthError):
    """The entitlement checker could not be constructed. Fatal at startup."""

    def __init__(self, message, **details):
        super().__init__(code=EVMAUTH_E_CONFIG, message=message, details=details)


class EntitlementDenied(EVMAuthError):
    """The caller does not hold the tier required by the tool."""

    def __init__(
        self,
        message=DEFAULT_DENIAL_MESSAGE,
        *,
        reason=EVMAUTH_DENIED,
        required_tier=None,
        **details,
    ):
        self.reason = reason
        self.required_tier = required_tier
        if required_tier is not None:
            details.setdefault("requiredTokens", [required_tier])
        super().__init__(code=reason, message=message, details=details)


class EntitlementCheckError(EVMAuthError):
    """The ledger could not be consulted (RPC down, malformed reply)."""

    def __init__(self, message, **details):
        super().__init__(code=EVMAUTH_E_LEDGER, message=message, details=details)


class UpstreamFailure(EVMAuthError):
    """The Nubila weather API failed. Never retried here."""

    def __init__(self, message, **details):
        super().__init__(code=NUBILA_E_UPSTREAM, message=message, details=details)


class ProofParseWarning(UserWarning):
    """The ``__evmauth`` value could not be decoded into a proof object.

    Diagnostic only: extraction carries on and the checker decides whether
    the opaque value is acceptable.
    """
