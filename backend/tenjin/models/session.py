"""
Live Session Models
In-memory records owned by the session engine. Nothing here is persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class SessionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"


class Posture(str, Enum):
    GOOD = "Good"
    SLOUCHING = "Slouching"
    FORWARD_HEAD = "Forward Head"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Category:
    """One assessed wellness category and its status tiers."""
    key: str              # field name on WellnessAudit
    alert_label: str      # used in notification text
    report_label: str     # used in the session report
    ideal: str
    secondary: str
    worst: Tuple[str, ...] = ()


CATEGORIES: Tuple[Category, ...] = (
    Category("neckAngle", "Neck", "Postural Integrity", "Optimal", "Strained", ("Poor",)),
    Category("distance", "Distance", "Visual Proximity", "Perfect", "Close", ("Too Close",)),
    Category("blinking", "Ocular", "Ocular Health & Blink Rate", "Normal", "Slow", ("Dry Eyes", "Heavy/Droopy")),
    Category("focus", "Focus", "Cognitive Alignment", "Focused", "Distracted", ("Tilted Away",)),
)


@dataclass(frozen=True)
class WorkspaceMetric:
    """Routine ergonomics reading decoded from a reportErgonomics tool call."""
    posture: Posture = Posture.UNKNOWN
    distance: float = 0.0
    blinks_per_minute: float = 0.0
    is_focused: bool = True
    is_tired: bool = False
    feedback: str = ""
    timestamp: float = 0.0
    current_audit_score: int = 0
    session_avg_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "posture": self.posture.value,
            "distance": self.distance,
            "blinksPerMinute": self.blinks_per_minute,
            "isFocused": self.is_focused,
            "isTired": self.is_tired,
            "feedback": self.feedback,
            "timestamp": int(self.timestamp * 1000),
            "currentAuditScore": self.current_audit_score,
            "sessionAvgScore": self.session_avg_score,
        }


@dataclass(frozen=True)
class ToolCallEvent:
    """A single function call pushed by the streaming collaborator."""
    id: Optional[str]
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MediaChunk:
    data: str         # base64
    mime_type: str


@dataclass(frozen=True)
class NotificationEvent:
    title: str
    message: str
    emitted_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "emitted_at": self.emitted_at,
        }


@dataclass(frozen=True)
class LiveSessionConfig:
    """What the streaming collaborator is opened with."""
    system_instruction: str
    function_declarations: Tuple[Dict[str, Any], ...]
    response_modalities: Tuple[str, ...] = ("AUDIO",)


@dataclass(frozen=True)
class CategoryReport:
    key: str
    label: str
    score: float                    # 0.0 - 10.0, one decimal
    guidance: str                   # "praise" | "corrective"
    recommendation: str
    rationale: Tuple[str, ...]
    distribution: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "score": self.score,
            "guidance": self.guidance,
            "recommendation": self.recommendation,
            "rationale": list(self.rationale),
            "distribution": dict(self.distribution),
        }


@dataclass(frozen=True)
class SessionReport:
    """End-of-session content handed to the document renderer."""
    total_minutes: int
    total_audits: int
    overall_score_percent: int
    categories: Tuple[CategoryReport, ...]
    generated_at: float

    def category(self, key: str) -> CategoryReport:
        for c in self.categories:
            if c.key == key:
                return c
        raise KeyError(key)

    @property
    def per_category_score(self) -> Dict[str, float]:
        return {c.key: c.score for c in self.categories}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_minutes": self.total_minutes,
            "total_audits": self.total_audits,
            "overall_score_percent": self.overall_score_percent,
            "categories": [c.to_dict() for c in self.categories],
            "generated_at": self.generated_at,
        }


def idle_metrics(feedback: str = "Initializing Tenjin Vision Engine...", timestamp: float = 0.0) -> WorkspaceMetric:
    return WorkspaceMetric(feedback=feedback, timestamp=timestamp)
