"""
Tenjin Metric History Store
Ordered, append-only logs of routine metrics and deep-analysis audits for
the running session. Both logs are cleared together.
"""

import logging
from typing import List, Optional, Tuple

from tenjin.models.schemas import WellnessAudit
from tenjin.models.session import WorkspaceMetric
from tenjin.services.scoring import session_average

logger = logging.getLogger("tenjin.store")


class MetricHistoryStore:

    def __init__(self):
        self._metrics: List[WorkspaceMetric] = []
        self._audits: List[WellnessAudit] = []

    def append_metric(self, metric: WorkspaceMetric) -> None:
        self._metrics.append(metric)

    def append_audit(self, audit: WellnessAudit) -> None:
        self._audits.append(audit)

    def clear(self) -> None:
        if self._metrics or self._audits:
            logger.debug(
                "Clearing history (%d metrics, %d audits)",
                len(self._metrics), len(self._audits),
            )
        self._metrics = []
        self._audits = []

    @property
    def metrics(self) -> Tuple[WorkspaceMetric, ...]:
        return tuple(self._metrics)

    @property
    def audits(self) -> Tuple[WellnessAudit, ...]:
        return tuple(self._audits)

    @property
    def latest_audit(self) -> Optional[WellnessAudit]:
        return self._audits[-1] if self._audits else None

    @property
    def first_metric_timestamp(self) -> Optional[float]:
        return self._metrics[0].timestamp if self._metrics else None

    def session_average(self) -> int:
        return session_average(self._audits)

    def __len__(self) -> int:
        return len(self._metrics)
