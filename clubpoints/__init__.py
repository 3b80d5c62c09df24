# clubpoints/__init__.py
"""
Tournament result processing for club leaderboards.

Classifies tournaments from the results feed into tiers, awards placement
points to the top four teams, and keeps season and lifetime totals for
competitors and the clubs they play for.
"""

from .tiers import Tier, classify, points_for, points_at, stat_field_for_placement
from .teams import ParticipantRow, Team, group_by_team, order_by_placement, normalize_id
from .eligibility import Eligibility, evaluate

__all__ = [
    'Tier',
    'classify',
    'points_for',
    'points_at',
    'stat_field_for_placement',
    'ParticipantRow',
    'Team',
    'group_by_team',
    'order_by_placement',
    'normalize_id',
    'Eligibility',
    'evaluate',
]
