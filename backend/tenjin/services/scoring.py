"""
Tenjin Scoring Engine
Maps a deep-analysis wellness audit to a 0-100 score.

Each of the four categories contributes 25 points at its ideal status,
10 at its secondary status and 0 otherwise (worst tier or anything the
model invented). Status comparison is case-insensitive.
"""

from typing import Iterable, List, Tuple

from tenjin.models.schemas import WellnessAudit
from tenjin.models.session import CATEGORIES, Category
from tenjin.utils.rounding import round_int

IDEAL_POINTS = 25
SECONDARY_POINTS = 10


def _status(audit: WellnessAudit, category: Category) -> str:
    return getattr(audit, category.key).status.strip().lower()


def is_ideal(audit: WellnessAudit, category: Category) -> bool:
    return _status(audit, category) == category.ideal.lower()


def is_secondary(audit: WellnessAudit, category: Category) -> bool:
    return _status(audit, category) == category.secondary.lower()


def score(audit: WellnessAudit) -> int:
    total = 0
    for category in CATEGORIES:
        if is_ideal(audit, category):
            total += IDEAL_POINTS
        elif is_secondary(audit, category):
            total += SECONDARY_POINTS
    return total


def session_average(audits: Iterable[WellnessAudit]) -> int:
    """round(mean(score)) over every audit so far; 0 when there are none."""
    scores = [score(a) for a in audits]
    if not scores:
        return 0
    return round_int(sum(scores) / len(scores))


def deviations(audit: WellnessAudit) -> List[Tuple[str, str]]:
    """(alert label, reported status) for every category not at its ideal."""
    return [
        (category.alert_label, getattr(audit, category.key).status)
        for category in CATEGORIES
        if not is_ideal(audit, category)
    ]
