"""
Pydantic schemas for payloads exchanged with the remote analysis collaborators.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Literal


# ── Deep-analysis audit ──────────────────────────────────
class CategoryAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    message: str = ""


class WellnessAudit(BaseModel):
    """
    Point-in-time wellness assessment returned by the deep-analysis model.

    Status values are kept as free text: the model is asked for a fixed set
    but does return extras (e.g. ``Heavy/Droopy`` for blinking), which score
    as zero rather than failing validation.
    """
    model_config = ConfigDict(frozen=True)

    neckAngle: CategoryAssessment
    distance: CategoryAssessment
    blinking: CategoryAssessment
    focus: CategoryAssessment
    summary: str = ""


# ── reportErgonomics tool-call arguments ─────────────────
class ErgonomicsReport(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    posture: Literal["Good", "Slouching", "Forward Head", "Unknown"]
    distance: float = Field(ge=0)
    blinksPerMinute: float = Field(ge=0)
    isFocused: bool
    isTired: bool
    feedback: str


REPORT_ERGONOMICS = "reportErgonomics"

REPORT_ERGONOMICS_DECLARATION = {
    "name": REPORT_ERGONOMICS,
    "description": "Updates current ergonomic and attention metrics.",
    "parameters": {
        "type": "OBJECT",
        "properties": {
            "posture": {"type": "STRING", "enum": ["Good", "Slouching", "Forward Head", "Unknown"]},
            "distance": {"type": "NUMBER"},
            "blinksPerMinute": {"type": "NUMBER"},
            "isFocused": {"type": "BOOLEAN"},
            "isTired": {"type": "BOOLEAN"},
            "feedback": {"type": "STRING"},
        },
        "required": ["posture", "distance", "blinksPerMinute", "isFocused", "isTired", "feedback"],
    },
}

LIVE_SYSTEM_INSTRUCTION = (
    "Tenjin's Vision Monitor. Report workspace ergonomics every 10 seconds. "
    "Focus on detecting Neck Posture, Screen Distance, and Blinking "
    "(specifically if eyelids are droopy/heavy). No audio feedback unless triggered."
)

AUDIT_INSTRUCTION = (
    "Precision Wellness Audit: 1. Neck (Optimal/Strained/Poor), "
    "2. Distance (Perfect/Close/Too Close), "
    "3. Blinking (Normal/Slow/Dry Eyes/Heavy/Droopy), "
    "4. Focus (Focused/Distracted/Tilted Away). "
    "Detection Priority: If eyelids appear heavy, droopy, or halfway closed, "
    "mark Blinking as 'Heavy/Droopy'. Return JSON."
)

_ASSESSMENT_SCHEMA = {
    "type": "OBJECT",
    "properties": {"status": {"type": "STRING"}, "message": {"type": "STRING"}},
}

AUDIT_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "neckAngle": _ASSESSMENT_SCHEMA,
        "distance": _ASSESSMENT_SCHEMA,
        "blinking": _ASSESSMENT_SCHEMA,
        "focus": _ASSESSMENT_SCHEMA,
        "summary": {"type": "STRING"},
    },
    "required": ["neckAngle", "distance", "blinking", "focus", "summary"],
}
