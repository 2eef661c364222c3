#!/usr/bin/env python3
"""
Extraction of the ``__evmauth`` authorization proof from tool arguments.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass

from evmauth.errors import ProofParseWarning

RESERVED_KEY = "__evmauth"


@dataclass(frozen=True)
class ExtractedProof:
    """Result of splitting a caller's arguments into proof and clean args.

    ``proof`` is the decoded object when decoding worked, otherwise the raw
    value as supplied. ``parse_error`` is set only for diagnostics.
    """

    proof: object
    clean_args: dict
    present: bool = False
    parse_error: ProofParseWarning = None

    @property
    def parsed(self):
        return self.present and self.parse_error is None

    @property
    def signature(self):
        if not self.parsed or not isinstance(self.proof, Mapping):
            return None
        signature = self.proof.get("signature")
        return signature if isinstance(signature, str) else None


def strip_proof(args):
    """Shallow copy of ``args`` without the reserved proof key."""
    clean = dict(args or {})
    clean.pop(RESERVED_KEY, None)
    return clean


def parse_proof(raw):
    """Decode a proof value. Returns ``(proof, warning_or_None)``."""
    if isinstance(raw, Mapping):
        return raw, None
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            decoded = json.loads(raw)
        except ValueError as e:
            return raw, ProofParseWarning(f"Failed to parse auth proof: {e}")
        if isinstance(decoded, Mapping):
            return decoded, None
        return raw, ProofParseWarning(
            f"Auth proof decoded to {type(decoded).__name__}, expected an object"
        )
    return raw, ProofParseWarning(
        f"Auth proof has unsupported type {type(raw).__name__}"
    )


def extract_proof(args) -> ExtractedProof:
    """Split ``args`` into the authorization proof and clean arguments.

    Never raises: a proof that cannot be decoded is kept as an opaque value
    and flagged through ``parse_error``. Denial is the checker's call, not
    ours. The reserved key is always absent from ``clean_args``.
    """
    clean_args = strip_proof(args)
    if not args or RESERVED_KEY not in args:
        return ExtractedProof(proof=None, clean_args=clean_args)

    proof, warning = parse_proof(args[RESERVED_KEY])
    return ExtractedProof(
        proof=proof, clean_args=clean_args, present=True, parse_error=warning
    )
