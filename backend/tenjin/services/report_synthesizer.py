"""
Tenjin Session Report Synthesizer
Builds the end-of-session report content from the full wellness-audit
history. Rendering belongs to the document renderer; this module only
computes numbers and picks which guidance variant applies.
"""

import logging
import time
from collections import Counter
from typing import Dict, Optional, Sequence, Tuple

from tenjin.core.config import settings
from tenjin.models.schemas import WellnessAudit
from tenjin.models.session import CATEGORIES, Category, CategoryReport, SessionReport
from tenjin.services.scoring import is_ideal, is_secondary, session_average
from tenjin.utils.rounding import round_half_up

logger = logging.getLogger("tenjin.report")

PRAISE = "praise"
CORRECTIVE = "corrective"


# ── Guidance text ────────────────────────────────────────
# key -> (praise, corrective recommendation, rationale)

GUIDANCE: Dict[str, Tuple[str, str, Tuple[str, ...]]] = {
    "neckAngle": (
        "Neck alignment held steady through the session. Keep the monitor where it is.",
        "Elevate monitor to eye level and utilize lumbar support.",
        (
            "Continuous forward head tilt (text neck) places extreme torque on the cervical vertebrae.",
            "For every inch your head moves forward, it gains 10 lbs of effective weight.",
            "Sustained load causes chronic disc degeneration and nerve impingement.",
        ),
    ),
    "distance": (
        "Viewing distance stayed in the comfortable range.",
        "Maintain an arm's length (50-70cm) from display surfaces.",
        (
            "Close-range viewing triggers excessive convergence and accommodation.",
            "This constant muscular effort leads to asthenopia: orbital pain and light sensitivity.",
            "Long-term it contributes to changes in corneal curvature.",
        ),
    ),
    "blinking": (
        "Blink rate looked healthy and your eyes stayed open and alert.",
        "Take a 5-minute screen break or use hydrating eye drops.",
        (
            "A low blink rate or heavy/droopy eyelids signal ocular surface dehydration and cognitive fatigue.",
            "Blinking is the only way to re-lubricate the eye.",
            "Failure to blink results in inflammation and meibomian gland dysfunction.",
        ),
    ),
    "focus": (
        "Attention stayed on task with few lateral distractions.",
        "Minimize environmental stimuli and peripheral distractions.",
        (
            "Lateral gaze shifts and micro-distractions trigger context-switching penalties.",
            "This exhausts the prefrontal cortex and reduces the quality of deep work.",
            "It significantly increases the probability of errors.",
        ),
    ),
}


def category_score(audits: Sequence[WellnessAudit], category: Category) -> float:
    """round((10 * ideal + 5 * secondary) / n, 1); 0.0 for no audits."""
    if not audits:
        return 0.0
    ideal = sum(1 for a in audits if is_ideal(a, category))
    secondary = sum(1 for a in audits if is_secondary(a, category))
    return round_half_up((ideal * 10 + secondary * 5) / len(audits), 1)


def status_distribution(audits: Sequence[WellnessAudit], category: Category) -> Dict[str, int]:
    return dict(Counter(getattr(a, category.key).status for a in audits))


def guidance_variant(score_value: float, praise_threshold: float = settings.GUIDANCE_PRAISE_THRESHOLD) -> str:
    return PRAISE if score_value >= praise_threshold else CORRECTIVE


def synthesize_report(
    audits: Sequence[WellnessAudit],
    total_minutes: int,
    praise_threshold: float = settings.GUIDANCE_PRAISE_THRESHOLD,
    generated_at: Optional[float] = None,
) -> SessionReport:
    if not audits:
        raise ValueError("Cannot synthesize a report from an empty wellness history")

    categories = []
    for category in CATEGORIES:
        value = category_score(audits, category)
        variant = guidance_variant(value, praise_threshold)
        praise, recommendation, rationale = GUIDANCE[category.key]
        categories.append(CategoryReport(
            key=category.key,
            label=category.report_label,
            score=value,
            guidance=variant,
            recommendation=praise if variant == PRAISE else recommendation,
            rationale=() if variant == PRAISE else rationale,
            distribution=status_distribution(audits, category),
        ))

    report = SessionReport(
        total_minutes=max(1, int(total_minutes)),
        total_audits=len(audits),
        overall_score_percent=session_average(audits),
        categories=tuple(categories),
        generated_at=time.time() if generated_at is None else generated_at,
    )
    logger.info(
        "Session report: %d audits over %dm, overall %d%% (%s)",
        report.total_audits, report.total_minutes, report.overall_score_percent,
        ", ".join(f"{c.key}={c.score}" for c in report.categories),
    )
    return report
