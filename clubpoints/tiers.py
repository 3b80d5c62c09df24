# clubpoints/tiers.py

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Tuple


class Tier(str, Enum):
    """Competitive tier of a tournament. Values are the stored stat keys."""

    SILVER_ASIA_1 = 'silverAsia1'
    SILVER_EU_1 = 'silverEu1'
    SILVER_EU_2 = 'silverEu2'
    SILVER_US_1 = 'silverUs1'
    SILVER_US_2 = 'silverUs2'
    GOLD_LIMITED = 'goldLimited'
    HALLOWEEN_CUP = 'halloweenCup'
    ASIA = 'asia'
    ROUND_MADNESS_EU = 'roundMadnessEu'
    ROUND_MADNESS_US = 'roundMadnessUs'
    ROUND_MADNESS_INDIA = 'roundMadnessIndia'
    DIAMOND = 'diamond'
    PLATINUM = 'platinum'
    GOLD = 'gold'
    AMERICA = 'america'
    UNKNOWN = 'Unknown'

    @property
    def is_tracked(self) -> bool:
        return self is not Tier.UNKNOWN


@dataclass(frozen=True)
class TierRule:
    tier: Tier
    required: Tuple[str, ...]

    def matches(self, normalized_name: str) -> bool:
        return all(part in normalized_name for part in self.required)


# First match wins. Region/number combinations must stay ahead of the bare
# tier names they contain ("gold limited" before "gold").
TIER_RULES: Tuple[TierRule, ...] = (
    TierRule(Tier.SILVER_ASIA_1, ('silver', 'singapore')),
    TierRule(Tier.SILVER_EU_1, ('silver', 'eu', '1')),
    TierRule(Tier.SILVER_EU_2, ('silver', 'eu', '2')),
    TierRule(Tier.SILVER_US_1, ('silver', 'us', '1')),
    TierRule(Tier.SILVER_US_2, ('silver', 'us', '2')),
    TierRule(Tier.GOLD_LIMITED, ('gold', 'limited')),
    TierRule(Tier.HALLOWEEN_CUP, ('halloween',)),
    TierRule(Tier.ASIA, ('asia cup',)),
    TierRule(Tier.ROUND_MADNESS_EU, ('round madness', 'eu')),
    TierRule(Tier.ROUND_MADNESS_US, ('round madness', 'us')),
    TierRule(Tier.ROUND_MADNESS_INDIA, ('round madness', 'india')),
    TierRule(Tier.DIAMOND, ('diamond',)),
    TierRule(Tier.PLATINUM, ('platinum',)),
    TierRule(Tier.GOLD, ('gold',)),
    TierRule(Tier.AMERICA, ('america',)),
    # Championships are recognized but not tracked.
    TierRule(Tier.UNKNOWN, ('championship',)),
)


def _points(*values: str) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    return tuple(Decimal(v) for v in values)


ZERO_POINTS = _points('0', '0', '0', '0')

POINTS_TABLE = {
    Tier.DIAMOND: _points('36', '18', '9', '9'),
    Tier.PLATINUM: _points('18', '9', '4.5', '4.5'),
    Tier.GOLD_LIMITED: _points('6', '3', '1.5', '1.5'),
    Tier.GOLD: _points('5', '2.5', '1.2', '1.2'),
    Tier.SILVER_EU_2: _points('2', '1', '0.5', '0.5'),
    Tier.SILVER_EU_1: _points('1.6', '0.8', '0.4', '0.4'),
    Tier.SILVER_US_1: _points('1.4', '0.7', '0.3', '0.3'),
    Tier.ASIA: _points('1.2', '0.6', '0.3', '0.3'),
    Tier.AMERICA: _points('2', '1', '0.5', '0.5'),
    Tier.SILVER_US_2: _points('1.2', '0.6', '0', '0'),
    Tier.SILVER_ASIA_1: _points('1.8', '0.9', '0.4', '0.4'),
    Tier.ROUND_MADNESS_EU: _points('10', '5', '2.5', '1.7'),
    Tier.ROUND_MADNESS_US: _points('7', '3.5', '1.7', '1.2'),
    Tier.ROUND_MADNESS_INDIA: _points('6.4', '3.2', '1.6', '1.1'),
    Tier.HALLOWEEN_CUP: _points('10', '5', '2.5', '2.5'),
    Tier.UNKNOWN: ZERO_POINTS,
}

# 4th place shares the bronze counter.
PLACEMENT_FIELDS = {
    1: 'first',
    2: 'second',
    3: 'third',
    4: 'third',
}

STAT_FIELDS = ('first', 'second', 'third')


def classify(name: Any) -> Tier:
    """Return the tier for a tournament display name. Never raises."""
    if not name or not isinstance(name, str):
        return Tier.UNKNOWN

    normalized = name.lower()
    for rule in TIER_RULES:
        if rule.matches(normalized):
            return rule.tier
    return Tier.UNKNOWN


def _coerce_tier(tier: Any) -> Optional[Tier]:
    if isinstance(tier, Tier):
        return tier
    try:
        return Tier(tier)
    except (TypeError, ValueError):
        return None


def points_for(tier: Any) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    """Points for 1st-4th place. Unrecognized tiers score nothing."""
    resolved = _coerce_tier(tier)
    if resolved is None:
        return ZERO_POINTS
    return POINTS_TABLE.get(resolved, ZERO_POINTS)


def points_at(tier: Any, placement: int) -> Decimal:
    if placement not in PLACEMENT_FIELDS:
        return Decimal('0')
    return points_for(tier)[placement - 1]


def stat_field_for_placement(placement: int) -> Optional[str]:
    return PLACEMENT_FIELDS.get(placement)


def placement_suffix(placement: int) -> str:
    return {1: 'st', 2: 'nd', 3: 'rd'}.get(placement, 'th')
