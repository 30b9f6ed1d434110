"""
Pydantic schemas for the ICS risk assessment wizard.

These schemas define the public API interfaces for requests and responses.
Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator
from pydantic.alias_generators import to_camel

from .models import AssetType


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# PUBLIC_INTERFACE
class HealthResponse(BaseModel):
    """Health check response."""
    message: str = Field(..., description="Service health message.")
    catalog_loaded: bool = Field(..., description="Whether technique data is loaded.")


# PUBLIC_INTERFACE
class ImportRow(_WireModel):
    """One technique row for import/export: {techniqueId, techniqueName, tactic, description?, mitigations?}."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    technique_id: constr(strip_whitespace=True, min_length=1) = Field(..., description="Technique identifier, e.g. T0817.")
    technique_name: constr(strip_whitespace=True, min_length=1) = Field(..., description="Technique name.")
    tactic: constr(strip_whitespace=True, min_length=1) = Field(..., description="Tactic the technique belongs to.")
    description: Optional[str] = Field(None, description="Technique description.")
    mitigations: List[str] = Field(default_factory=list, description="Ordered mitigation names.")

    @field_validator("description", mode="before")
    @classmethod
    def _blank_description_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("mitigations", mode="before")
    @classmethod
    def _mitigations_list(cls, v: Any) -> Any:
        if v is None:
            return []
        return v

    @field_validator("mitigations")
    @classmethod
    def _drop_blank_mitigations(cls, v: List[str]) -> List[str]:
        return [m for m in v if m]


# PUBLIC_INTERFACE
class ImportResultResponse(_WireModel):
    """Outcome of a successful import."""
    imported: int = Field(..., description="Number of techniques loaded.")
    tactics: List[str] = Field(default_factory=list, description="Tactics now available.")


# PUBLIC_INTERFACE
class TechniqueResponse(_WireModel):
    """Technique reference data."""
    id: str = Field(..., description="Technique identifier.")
    name: str = Field(..., description="Technique name.")
    tactic: str = Field(..., description="Tactic.")
    description: Optional[str] = Field(None, description="Description.")


# PUBLIC_INTERFACE
class MitigationsResponse(_WireModel):
    """Mitigations for one technique."""
    technique_id: str = Field(..., description="Technique identifier.")
    mitigations: List[str] = Field(default_factory=list, description="Mitigation names.")


# PUBLIC_INTERFACE
class AssetTypeResponse(BaseModel):
    """Selectable asset category."""
    value: AssetType = Field(..., description="Asset type key.")
    label: str = Field(..., description="Human readable label.")


# PUBLIC_INTERFACE
class RiskCalculationRequest(_WireModel):
    """Ad-hoc risk aggregation request."""
    scores: List[float] = Field(..., description="Risk scores (1-10); must be finite.")
    weights: Optional[List[float]] = Field(None, description="Optional weights, parallel to scores.")


# PUBLIC_INTERFACE
class RiskCalculationResponse(_WireModel):
    """Aggregated risk and its band."""
    total_risk: float = Field(..., description="Mean risk rounded to one decimal.")
    level: str = Field(..., description="Risk level band.")
    weighted: bool = Field(..., description="Whether the weighted mean was applied.")


# PUBLIC_INTERFACE
class AssetRequest(_WireModel):
    """Asset definition for step 1."""
    name: str = Field("", description="Asset name.")
    type: Optional[AssetType] = Field(None, description="Asset category.")


# PUBLIC_INTERFACE
class AssetResponse(_WireModel):
    """Asset under assessment."""
    name: str = Field(..., description="Asset name.")
    type: Optional[AssetType] = Field(None, description="Asset category.")


# PUBLIC_INTERFACE
class TechniqueSelectRequest(_WireModel):
    """Select a technique for assessment."""
    technique_id: constr(strip_whitespace=True, min_length=1) = Field(..., description="Technique identifier.")


# PUBLIC_INTERFACE
class ScoreUpdateRequest(_WireModel):
    """Set a technique risk score. Values outside 1-10 are clamped; NaN is rejected."""
    score: float = Field(..., description="Risk score.")


# PUBLIC_INTERFACE
class RiskScoreResponse(_WireModel):
    """Risk score of one technique."""
    technique_id: str = Field(..., description="Technique identifier.")
    score: int = Field(..., description="Score 1-10.")
    asset: str = Field(..., description="Asset name the score applies to.")


# PUBLIC_INTERFACE
class WizardStateResponse(_WireModel):
    """Snapshot of an assessment wizard."""
    id: str = Field(..., description="Assessment session id.")
    step: int = Field(..., description="Current step (1-4).")
    step_name: str = Field(..., description="Current step name.")
    asset: AssetResponse = Field(..., description="Asset data.")
    selected: List[TechniqueResponse] = Field(default_factory=list, description="Selected techniques.")
    scores: List[RiskScoreResponse] = Field(default_factory=list, description="Risk scores.")
    can_advance: bool = Field(..., description="Whether Next is enabled.")
    can_go_back: bool = Field(..., description="Whether Previous is enabled.")
    total_risk: float = Field(..., description="Current mean risk.")


# PUBLIC_INTERFACE
class StepViewResponse(_WireModel):
    """Rendered view model of the current step."""
    id: str = Field(..., description="Assessment session id.")
    step: int = Field(..., description="Step number.")
    title: str = Field(..., description="Step title.")
    description: str = Field(..., description="Step description.")
    can_advance: bool = Field(..., description="Whether Next is enabled.")
    can_go_back: bool = Field(..., description="Whether Previous is enabled.")
    content: Dict[str, Any] = Field(default_factory=dict, description="Step specific content.")


# PUBLIC_INTERFACE
class ReportRowResponse(_WireModel):
    """One technique line of the mitigation report."""
    technique: TechniqueResponse = Field(..., description="Technique.")
    score: int = Field(..., description="Risk score.")
    level: str = Field(..., description="Risk level.")
    mitigations: List[str] = Field(default_factory=list, description="Recommended mitigations.")


# PUBLIC_INTERFACE
class ReportSnapshotResponse(_WireModel):
    """Report snapshot: {asset, techniques, scores, totalRisk, timestamp}."""
    asset: AssetResponse = Field(..., description="Assessed asset.")
    techniques: List[TechniqueResponse] = Field(default_factory=list, description="Selected techniques.")
    scores: List[RiskScoreResponse] = Field(default_factory=list, description="Risk scores.")
    total_risk: float = Field(..., description="Mean risk.")
    timestamp: str = Field(..., description="ISO-8601 generation time (UTC).")


# PUBLIC_INTERFACE
class ReportResponse(_WireModel):
    """Full mitigation report."""
    snapshot: ReportSnapshotResponse = Field(..., description="Structured snapshot.")
    total_level: str = Field(..., description="Risk level of the total.")
    distribution: Dict[str, int] = Field(default_factory=dict, description="High/medium/low counts.")
    rows: List[ReportRowResponse] = Field(default_factory=list, description="Per technique detail.")
    recommendations: List[Dict[str, str]] = Field(default_factory=list, description="Key recommendations.")
