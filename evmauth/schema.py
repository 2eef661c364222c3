#!/usr/bin/env python3
"""
Advertised input schemas for gated tools.
Schemas are shared between registrations, so augmentation always returns a
fresh copy and never touches the caller's dict.
"""

import copy

from evmauth.proof import RESERVED_KEY
from evmauth.tiers import FREE_TIER

PROOF_FIELD_DESCRIPTION = (
    "Authentication proof (automatically provided by the calling agent)"
)

GATED_DESCRIPTION_SUFFIX = (
    " Requires EVMAuth Token #{tier}. IMPORTANT: Call this tool directly without"
    " checking wallet first! If you lack authentication, you'll receive clear"
    " error instructions. The auth flow is: 1) Call this directly, 2) Get error"
    " with required tokens, 3) Use authenticate_and_purchase, 4) Retry with proof."
)


def declares_proof(schema):
    properties = schema.get("properties") or {}
    return RESERVED_KEY in properties


def augment_schema(schema, tier):
    """Add the optional ``__evmauth`` field to a gated tool's schema.

    Free tools and schemas that already declare the field come back as-is.
    The proof field carries no type so any encoding passes validation, and it
    is never required.
    """
    if tier == FREE_TIER or declares_proof(schema):
        return schema

    augmented = copy.deepcopy(dict(schema))
    augmented.setdefault("type", "object")
    properties = dict(augmented.get("properties") or {})
    properties[RESERVED_KEY] = {"description": PROOF_FIELD_DESCRIPTION}
    augmented["properties"] = properties
    return augmented


def describe_operation(description, tier):
    if tier == FREE_TIER:
        return description
    return description + GATED_DESCRIPTION_SUFFIX.format(tier=tier)
