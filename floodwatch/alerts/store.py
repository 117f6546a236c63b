"""
store.py — Explicitly owned in-memory containers for alerts and reports.

Each ``AlertEngine`` owns its own pair of stores; nothing here is a module
global, so independent engines (tests, multiple cities) never share state.
Persistence is out of scope. A database-backed store only has to offer the
same methods.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from floodwatch.alerts.models import Alert, Report
from floodwatch.spatial.geo_math import Coordinates, is_within_radius

logger = logging.getLogger(__name__)


class AlertStore:
    """Alerts keyed by id, in creation order."""

    def __init__(self, alerts: Iterable[Alert] = ()) -> None:
        self._alerts: Dict[str, Alert] = {}
        for alert in alerts:
            self.add(alert)

    def __len__(self) -> int:
        return len(self._alerts)

    def __contains__(self, alert_id: object) -> bool:
        return alert_id in self._alerts

    def add(self, alert: Alert) -> None:
        if alert.is_active and self.active_for_area(alert.area_name) is not None:
            raise ValueError(
                f"An active alert already exists for area {alert.area_name!r}"
            )
        self._alerts[alert.id] = alert

    def get(self, alert_id: str) -> Optional[Alert]:
        return self._alerts.get(alert_id)

    def all(self) -> List[Alert]:
        return list(self._alerts.values())

    def active(self) -> List[Alert]:
        return [a for a in self._alerts.values() if a.is_active]

    def history(self) -> List[Alert]:
        """Resolved alerts, most recently resolved first."""
        resolved = [a for a in self._alerts.values() if not a.is_active]
        return sorted(
            resolved,
            key=lambda a: a.resolved_at or a.triggered_at,
            reverse=True,
        )

    def active_for_area(self, area_name: str) -> Optional[Alert]:
        for alert in self._alerts.values():
            if alert.is_active and alert.area_name == area_name:
                return alert
        return None


class ReportStore:
    """Append-only report log; only ``is_active`` is ever changed."""

    def __init__(self, reports: Iterable[Report] = ()) -> None:
        self._reports: Dict[str, Report] = {}
        for report in reports:
            self.add(report)

    def __len__(self) -> int:
        return len(self._reports)

    def add(self, report: Report) -> None:
        if report.id in self._reports:
            raise ValueError(f"Duplicate report id {report.id!r}")
        self._reports[report.id] = report

    def get(self, report_id: str) -> Optional[Report]:
        return self._reports.get(report_id)

    def all(self) -> List[Report]:
        return list(self._reports.values())

    def fresh(self, now: datetime, window: timedelta) -> List[Report]:
        """Active reports inside the staleness window, in submission order."""
        return [r for r in self._reports.values() if r.is_fresh(now, window)]

    def deactivate_near(self, center: Coordinates, radius_m: float) -> int:
        """Mark every active report within ``radius_m`` of ``center`` inactive."""
        count = 0
        for report in self._reports.values():
            if report.is_active and is_within_radius(center, report.location, radius_m):
                report.is_active = False
                count += 1
        if count:
            logger.info(
                "Deactivated %d report(s) within %.0fm of %.5f,%.5f",
                count, radius_m, center.lat, center.lng,
            )
        return count
