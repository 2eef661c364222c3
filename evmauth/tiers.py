#!/usr/bin/env python3
"""
Tool -> EVMAuth token tier mapping.
Tier 0 is public. Positive tiers are ERC-1155 token ids on the EVMAuth
contract; by convention 1 is basic, 3 premium and 5 pro.
"""

import logging
from types import MappingProxyType

from evmauth.errors import ConfigurationError

logger = logging.getLogger(__name__)

FREE_TIER = 0

TOKEN_REQUIREMENTS = MappingProxyType(
    {
        "ping": 0,  # health check
        "getCurrentWeather": 1,  # basic
        "getForecast": 3,  # premium
        "getDetailedWeatherAnalysis": 5,  # pro
    }
)

TIER_LABELS = MappingProxyType({0: "Free", 1: "Basic", 3: "Premium", 5: "Pro"})


class TierRegistry:
    """Read-only lookup of the tier each tool requires."""

    def __init__(self, requirements=TOKEN_REQUIREMENTS):
        for name, tier in requirements.items():
            if not isinstance(tier, int) or isinstance(tier, bool) or tier < 0:
                raise ConfigurationError(
                    f"Invalid tier {tier!r} for tool '{name}'", tool=name
                )
        self._requirements = MappingProxyType(dict(requirements))

    def required_tier(self, operation_name: str) -> int:
        """Tier required by ``operation_name``.

        Unregistered tools fall back to the free tier. That default is
        permissive, so it is logged rather than relied upon.
        """
        tier = self._requirements.get(operation_name)
        if tier is None:
            logger.warning(
                "No tier registered for tool '%s'; treating it as free", operation_name
            )
            return FREE_TIER
        return tier

    def __contains__(self, operation_name):
        return operation_name in self._requirements


def tier_label(tier):
    return TIER_LABELS.get(tier, f"Token #{tier}")
