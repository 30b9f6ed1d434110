"""
Assessment wizard controller.

The wizard walks an assessment through four linear steps:

    AssetInput -> TechniqueSelection -> RiskScoring -> Report

Callers send commands (SetAsset, SelectTechnique, ...) to WizardController.dispatch
and get back an immutable WizardState. The controller keeps one invariant at all
times: the technique ids of the risk scores equal the ids of the selected techniques.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple, Union

from .exceptions import StepMismatchError, UnknownTechniqueError
from .models import Asset, AssetType, RiskScore, Technique, WizardState, WizardStep
from .risk import DEFAULT_SCORE, average_risk, clamp_score
from .storage import TechniqueRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SetAsset:
    name: str
    type: Optional[AssetType] = None


@dataclass(frozen=True)
class SelectTechnique:
    technique_id: str


@dataclass(frozen=True)
class DeselectTechnique:
    technique_id: str


@dataclass(frozen=True)
class SetScore:
    technique_id: str
    score: float


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Previous:
    pass


@dataclass(frozen=True)
class Reset:
    pass


Command = Union[SetAsset, SelectTechnique, DeselectTechnique, SetScore, Next, Previous, Reset]


def can_advance(state: WizardState) -> bool:
    """Guard for leaving the current step forward."""
    if state.step == WizardStep.ASSET_INPUT:
        return bool(state.asset.name.strip())
    if state.step == WizardStep.TECHNIQUE_SELECTION:
        return len(state.selected) > 0
    if state.step == WizardStep.RISK_SCORING:
        return len(state.scores) > 0
    return False


def _finalize(state: WizardState) -> WizardState:
    # recompute derived fields
    state = replace(
        state,
        can_go_back=state.step != WizardStep.ASSET_INPUT,
        total_risk=average_risk([s.score for s in state.scores]),
    )
    return replace(state, can_advance=can_advance(state))


def sync_scores(
    selected: Tuple[Technique, ...], scores: Tuple[RiskScore, ...], asset_name: str
) -> Tuple[RiskScore, ...]:
    """One score per selected technique, keeping existing values and defaulting new ones."""
    existing: Dict[str, RiskScore] = {s.technique_id: s for s in scores}
    out = []
    for t in selected:
        prev = existing.get(t.id)
        value = prev.score if prev else DEFAULT_SCORE
        out.append(RiskScore(technique_id=t.id, score=value, asset=asset_name))
    return tuple(out)


class WizardController:
    """Holds one assessment's wizard state and applies commands to it."""

    def __init__(self, repository: TechniqueRepository, state: Optional[WizardState] = None) -> None:
        self._repo = repository
        self._state = _finalize(state or WizardState())

    @property
    def state(self) -> WizardState:
        return self._state

    @property
    def repository(self) -> TechniqueRepository:
        return self._repo

    # PUBLIC_INTERFACE
    def dispatch(self, command: Command) -> WizardState:
        """Apply a command and return the new state snapshot."""
        handler = getattr(self, f"_on_{type(command).__name__}", None)
        if handler is None:
            raise TypeError(f"Unsupported wizard command: {command!r}")
        new_state = handler(command)
        self._state = _finalize(new_state)
        return self._state

    def _require_step(self, step: WizardStep, action: str) -> None:
        if self._state.step != step:
            raise StepMismatchError(
                f"Cannot {action} on step {self._state.step.name}; go back to {step.name} first"
            )

    def _on_SetAsset(self, cmd: SetAsset) -> WizardState:
        self._require_step(WizardStep.ASSET_INPUT, "edit the asset")
        return replace(self._state, asset=Asset(name=cmd.name, type=cmd.type))

    def _on_SelectTechnique(self, cmd: SelectTechnique) -> WizardState:
        self._require_step(WizardStep.TECHNIQUE_SELECTION, "change the technique selection")
        state = self._state
        if any(t.id == cmd.technique_id for t in state.selected):
            return state
        technique = self._repo.get_technique(cmd.technique_id)
        if technique is None:
            raise UnknownTechniqueError(cmd.technique_id)
        score = RiskScore(technique_id=technique.id, score=DEFAULT_SCORE, asset=state.asset.name)
        return replace(state, selected=state.selected + (technique,), scores=state.scores + (score,))

    def _on_DeselectTechnique(self, cmd: DeselectTechnique) -> WizardState:
        self._require_step(WizardStep.TECHNIQUE_SELECTION, "change the technique selection")
        state = self._state
        if not any(t.id == cmd.technique_id for t in state.selected):
            raise UnknownTechniqueError(cmd.technique_id, f"Technique {cmd.technique_id} is not selected")
        return replace(
            state,
            selected=tuple(t for t in state.selected if t.id != cmd.technique_id),
            scores=tuple(s for s in state.scores if s.technique_id != cmd.technique_id),
        )

    def _on_SetScore(self, cmd: SetScore) -> WizardState:
        self._require_step(WizardStep.RISK_SCORING, "change risk scores")
        state = self._state
        if state.score_for(cmd.technique_id) is None:
            raise UnknownTechniqueError(cmd.technique_id, f"Technique {cmd.technique_id} is not selected")
        value = clamp_score(cmd.score)
        return replace(
            state,
            scores=tuple(
                replace(s, score=value) if s.technique_id == cmd.technique_id else s for s in state.scores
            ),
        )

    def _on_Next(self, cmd: Next) -> WizardState:
        state = self._state
        if not can_advance(state):
            # Next is disabled, not an error
            return state
        step = WizardStep(state.step + 1)
        if step == WizardStep.RISK_SCORING:
            state = replace(state, scores=sync_scores(state.selected, state.scores, state.asset.name))
        logger.info("Wizard advanced %s -> %s", state.step.name, step.name)
        return replace(state, step=step)

    def _on_Previous(self, cmd: Previous) -> WizardState:
        state = self._state
        if state.step == WizardStep.ASSET_INPUT:
            return state
        step = WizardStep(state.step - 1)
        logger.info("Wizard moved back %s -> %s", state.step.name, step.name)
        return replace(state, step=step)

    def _on_Reset(self, cmd: Reset) -> WizardState:
        return WizardState()

    # Convenience wrappers

    def set_asset(self, name: str, type: Optional[AssetType] = None) -> WizardState:
        return self.dispatch(SetAsset(name=name, type=type))

    def select_technique(self, technique_id: str) -> WizardState:
        return self.dispatch(SelectTechnique(technique_id))

    def deselect_technique(self, technique_id: str) -> WizardState:
        return self.dispatch(DeselectTechnique(technique_id))

    def set_score(self, technique_id: str, score: float) -> WizardState:
        return self.dispatch(SetScore(technique_id, score))

    def next(self) -> WizardState:
        return self.dispatch(Next())

    def previous(self) -> WizardState:
        return self.dispatch(Previous())

    def reset(self) -> WizardState:
        return self.dispatch(Reset())
