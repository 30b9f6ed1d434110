"""
Mitigation report generation.

ReportingService turns a finished wizard state into a ReportSnapshot
({asset, techniques, scores, totalRisk, timestamp}) plus per-technique mitigation
detail. Rendering the report into a file format is the job of a ReportExporter.
"""

from __future__ import annotations

import io
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import pandas as pd

from .exceptions import StepMismatchError
from .models import ReportSnapshot, Technique, WizardState, WizardStep
from .risk import DEFAULT_SCORE, average_risk, risk_distribution, risk_level
from .storage import TechniqueRepository

FALLBACK_MITIGATIONS = ["General Security Measures"]

KEY_RECOMMENDATIONS = [
    {
        "title": "Implement Network Segmentation",
        "detail": "Isolate critical ICS components from corporate networks to reduce attack surface.",
    },
    {
        "title": "Deploy Multi-factor Authentication",
        "detail": "Strengthen access controls for privileged accounts and critical systems.",
    },
    {
        "title": "Regular Security Updates",
        "detail": "Maintain current patch levels and implement change management processes.",
    },
    {
        "title": "Continuous Monitoring",
        "detail": "Implement security monitoring and incident response capabilities.",
    },
]


@dataclass
class ReportRow:
    technique: Technique
    score: int
    level: str
    mitigations: List[str] = field(default_factory=list)


@dataclass
class MitigationReport:
    snapshot: ReportSnapshot
    total_level: str
    distribution: Dict[str, int]
    rows: List[ReportRow]
    recommendations: List[Dict[str, str]] = field(default_factory=lambda: [dict(r) for r in KEY_RECOMMENDATIONS])


def snapshot_to_dict(snapshot: ReportSnapshot) -> Dict[str, Any]:
    """Wire form of a snapshot, camelCase like the API."""
    return {
        "asset": {
            "name": snapshot.asset.name,
            "type": snapshot.asset.type.value if snapshot.asset.type else None,
        },
        "techniques": [
            {"id": t.id, "name": t.name, "tactic": t.tactic, "description": t.description}
            for t in snapshot.techniques
        ],
        "scores": [
            {"techniqueId": s.technique_id, "score": s.score, "asset": s.asset} for s in snapshot.scores
        ],
        "totalRisk": snapshot.total_risk,
        "timestamp": snapshot.timestamp_iso,
    }


class ReportingService:
    """Builds report snapshots and mitigation detail from wizard state."""

    def __init__(self, repository: TechniqueRepository) -> None:
        self._repo = repository

    # PUBLIC_INTERFACE
    def snapshot(self, state: WizardState, now: Optional[datetime] = None) -> ReportSnapshot:
        """Capture asset, techniques, scores and total risk at this moment."""
        return ReportSnapshot(
            asset=state.asset,
            techniques=tuple(state.selected),
            scores=tuple(state.scores),
            total_risk=average_risk([s.score for s in state.scores]),
            timestamp=now or datetime.now(timezone.utc),
        )

    # PUBLIC_INTERFACE
    def generate(self, state: WizardState, now: Optional[datetime] = None) -> MitigationReport:
        """
        Build the full mitigation report.

        Raises StepMismatchError unless the wizard has reached the Report step.
        """
        if state.step != WizardStep.REPORT:
            raise StepMismatchError("The report is available once the wizard reaches the Report step")
        snap = self.snapshot(state, now=now)
        rows = []
        for t in snap.techniques:
            rs = state.score_for(t.id)
            score = rs.score if rs else DEFAULT_SCORE
            rows.append(
                ReportRow(
                    technique=t,
                    score=score,
                    level=risk_level(score).value,
                    mitigations=self._repo.get_mitigations(t.id) or list(FALLBACK_MITIGATIONS),
                )
            )
        return MitigationReport(
            snapshot=snap,
            total_level=risk_level(snap.total_risk).value,
            distribution=risk_distribution([s.score for s in snap.scores]),
            rows=rows,
        )


class ReportExporter(Protocol):
    media_type: str
    extension: str

    def export(self, report: MitigationReport) -> bytes:
        ...


class JsonReportExporter:
    """Serializes the report snapshot and mitigation detail as JSON."""
    media_type = "application/json"
    extension = "json"

    def export(self, report: MitigationReport) -> bytes:
        doc = snapshot_to_dict(report.snapshot)
        doc["totalLevel"] = report.total_level
        doc["distribution"] = report.distribution
        doc["mitigations"] = {r.technique.id: r.mitigations for r in report.rows}
        doc["recommendations"] = report.recommendations
        return json.dumps(doc, indent=2).encode("utf-8")


class ExcelReportExporter:
    """Writes a two-sheet workbook: Summary and Techniques."""
    media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    extension = "xlsx"

    def export(self, report: MitigationReport) -> bytes:
        snap = report.snapshot
        summary = pd.DataFrame(
            [
                ("Asset", snap.asset.name),
                ("Asset Type", snap.asset.type.label if snap.asset.type else ""),
                ("Total Risk", snap.total_risk),
                ("Risk Level", report.total_level),
                ("High Risk Techniques", report.distribution.get("high", 0)),
                ("Medium Risk Techniques", report.distribution.get("medium", 0)),
                ("Low Risk Techniques", report.distribution.get("low", 0)),
                ("Generated", snap.timestamp_iso),
            ],
            columns=["Field", "Value"],
        )
        techniques = pd.DataFrame(
            [
                {
                    "Technique ID": r.technique.id,
                    "Technique Name": r.technique.name,
                    "Tactic": r.technique.tactic,
                    "Description": r.technique.description or "",
                    "Risk Score": r.score,
                    "Risk Level": r.level,
                    "Mitigations": "; ".join(r.mitigations),
                }
                for r in report.rows
            ],
            columns=[
                "Technique ID",
                "Technique Name",
                "Tactic",
                "Description",
                "Risk Score",
                "Risk Level",
                "Mitigations",
            ],
        )
        buf = io.BytesIO()
        with pd.ExcelWriter(buf, engine="openpyxl") as writer:
            summary.to_excel(writer, sheet_name="Summary", index=False)
            techniques.to_excel(writer, sheet_name="Techniques", index=False)
        return buf.getvalue()


EXPORTERS: Dict[str, ReportExporter] = {
    "json": JsonReportExporter(),
    "xlsx": ExcelReportExporter(),
}
