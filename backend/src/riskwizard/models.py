"""
Domain models for the ICS risk assessment wizard.

These are internal models representing core entities. They are not Pydantic models and
are intended for use within the wizard logic and storage layers.

Note:
- Public interfaces are provided via Pydantic schemas in schemas.py.
- Reference data (Technique) and wizard snapshots (WizardState) are frozen dataclasses;
  state changes always produce a new snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import List, Optional, Tuple


class AssetType(str, Enum):
    """Categories of ICS assets that can be assessed."""
    HMI = "hmi"
    PLC = "plc"
    WORKSTATION = "workstation"
    SCADA = "scada"
    HISTORIAN = "historian"
    RTU = "rtu"

    @property
    def label(self) -> str:
        return ASSET_TYPE_LABELS[self]


ASSET_TYPE_LABELS = {
    AssetType.HMI: "Human Machine Interface (HMI)",
    AssetType.PLC: "Programmable Logic Controller (PLC)",
    AssetType.WORKSTATION: "Engineering Workstation",
    AssetType.SCADA: "SCADA System",
    AssetType.HISTORIAN: "Data Historian",
    AssetType.RTU: "Remote Terminal Unit (RTU)",
}


class RiskLevel(str, Enum):
    """Risk bands derived from a 1-10 score."""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    MINIMAL = "Minimal"


class WizardStep(IntEnum):
    """The four linear steps of an assessment."""
    ASSET_INPUT = 1
    TECHNIQUE_SELECTION = 2
    RISK_SCORING = 3
    REPORT = 4


@dataclass(frozen=True)
class Asset:
    """The ICS asset under assessment."""
    name: str = ""
    type: Optional[AssetType] = None


@dataclass(frozen=True)
class Technique:
    """An adversary technique, grouped under exactly one tactic."""
    id: str
    name: str
    tactic: str
    description: Optional[str] = None


@dataclass(frozen=True)
class RiskScore:
    """Risk rating of one selected technique for the current asset."""
    technique_id: str
    score: int
    asset: str


@dataclass
class TechniqueRow:
    """One normalized import/export row: a technique plus its mitigations."""
    technique_id: str
    technique_name: str
    tactic: str
    description: Optional[str] = None
    mitigations: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class WizardState:
    """Immutable snapshot of an assessment wizard."""
    step: WizardStep = WizardStep.ASSET_INPUT
    asset: Asset = field(default_factory=Asset)
    selected: Tuple[Technique, ...] = ()
    scores: Tuple[RiskScore, ...] = ()
    can_advance: bool = False
    can_go_back: bool = False
    total_risk: float = 0.0

    def score_for(self, technique_id: str) -> Optional[RiskScore]:
        for s in self.scores:
            if s.technique_id == technique_id:
                return s
        return None


@dataclass(frozen=True)
class ReportSnapshot:
    """Structured report handed to export collaborators."""
    asset: Asset
    techniques: Tuple[Technique, ...]
    scores: Tuple[RiskScore, ...]
    total_risk: float
    timestamp: datetime

    @property
    def timestamp_iso(self) -> str:
        return self.timestamp.isoformat().replace("+00:00", "Z")
