"""
Step views.

Each builder reads the slice of wizard state its step owns (plus catalog data where
needed) and renders a plain view model for the client. Views never mutate state;
changes go through WizardController commands.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .models import ASSET_TYPE_LABELS, Technique, WizardState, WizardStep
from .report import ReportingService, snapshot_to_dict
from .risk import DEFAULT_SCORE, RISK_LEGEND, risk_level
from .storage import TechniqueRepository

STEPS = {
    WizardStep.ASSET_INPUT: ("Asset Input", "Define your ICS assets"),
    WizardStep.TECHNIQUE_SELECTION: ("Technique Selection", "Select MITRE ATT&CK techniques"),
    WizardStep.RISK_SCORING: ("Risk Scoring", "Calculate risk scores"),
    WizardStep.REPORT: ("Generate Report", "Review and export results"),
}


def _technique(t: Technique) -> Dict[str, Any]:
    return {"id": t.id, "name": t.name, "tactic": t.tactic, "description": t.description}


def asset_input_view(state: WizardState) -> Dict[str, Any]:
    asset = state.asset
    return {
        "asset": {"name": asset.name, "type": asset.type.value if asset.type else None},
        "assetTypes": [{"value": k.value, "label": v} for k, v in ASSET_TYPE_LABELS.items()],
        # both fields are required for a complete asset, only the name gates Next
        "complete": bool(asset.name.strip()) and asset.type is not None,
    }


def technique_selection_view(
    state: WizardState, repository: TechniqueRepository, tactic: Optional[str] = None
) -> Dict[str, Any]:
    selected_ids = {t.id for t in state.selected}
    available: List[Dict[str, Any]] = []
    if tactic:
        for t in repository.get_techniques_by_tactic(tactic):
            item = _technique(t)
            item["selected"] = t.id in selected_ids
            available.append(item)
    return {
        "tactics": repository.get_tactics(),
        "tactic": tactic,
        "available": available,
        "selected": [_technique(t) for t in state.selected],
        "selectedCount": len(state.selected),
    }


def risk_scoring_view(state: WizardState) -> Dict[str, Any]:
    rows = []
    for t in state.selected:
        rs = state.score_for(t.id)
        score = rs.score if rs else DEFAULT_SCORE
        rows.append({"technique": _technique(t), "score": score, "level": risk_level(score).value})
    return {
        "asset": state.asset.name,
        "rows": rows,
        "totalRisk": state.total_risk,
        "totalLevel": risk_level(state.total_risk).value,
        "legend": [dict(item) for item in RISK_LEGEND],
    }


def mitigation_report_view(state: WizardState, repository: TechniqueRepository) -> Dict[str, Any]:
    report = ReportingService(repository).generate(state)
    return {
        "snapshot": snapshot_to_dict(report.snapshot),
        "totalLevel": report.total_level,
        "distribution": report.distribution,
        "rows": [
            {
                "technique": _technique(r.technique),
                "score": r.score,
                "level": r.level,
                "mitigations": r.mitigations,
            }
            for r in report.rows
        ],
        "recommendations": report.recommendations,
        "exportFormats": ["json", "xlsx"],
    }


# PUBLIC_INTERFACE
def render_step(
    state: WizardState, repository: TechniqueRepository, tactic: Optional[str] = None
) -> Dict[str, Any]:
    """Render the current step: title, navigation flags and step content."""
    title, description = STEPS[state.step]
    if state.step == WizardStep.ASSET_INPUT:
        content = asset_input_view(state)
    elif state.step == WizardStep.TECHNIQUE_SELECTION:
        content = technique_selection_view(state, repository, tactic)
    elif state.step == WizardStep.RISK_SCORING:
        content = risk_scoring_view(state)
    else:
        content = mitigation_report_view(state, repository)
    return {
        "step": int(state.step),
        "title": title,
        "description": description,
        "can_advance": state.can_advance,
        "can_go_back": state.can_go_back,
        "content": content,
    }
