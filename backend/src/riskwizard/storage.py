"""
In-memory storage implementations for the risk assessment wizard.

These repositories provide a minimal abstraction layer so that we can later replace
them with persistent storage without changing the rest of the code. Instances are
created by main.create_app and passed to whoever needs them.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from .models import Technique, TechniqueRow

if TYPE_CHECKING:
    from .wizard import WizardController

logger = logging.getLogger(__name__)


def _gen_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_urlsafe(12)}"


class TechniqueRepository:
    """In-memory catalog of tactics, techniques by tactic and mitigations by technique."""

    def __init__(self) -> None:
        self._tactics: List[str] = []
        self._by_tactic: Dict[str, List[Technique]] = {}
        self._mitigations: Dict[str, List[str]] = {}

    # PUBLIC_INTERFACE
    def load_rows(self, rows: Iterable[TechniqueRow]) -> None:
        """
        Replace the whole catalog with the given rows.

        The new mapping is built aside and swapped in at the end, so a failure
        while building leaves the previous catalog in place.
        """
        tactics: List[str] = []
        by_tactic: Dict[str, List[Technique]] = {}
        mitigations: Dict[str, List[str]] = {}
        for row in rows:
            if row.tactic not in by_tactic:
                tactics.append(row.tactic)
                by_tactic[row.tactic] = []
            by_tactic[row.tactic].append(
                Technique(
                    id=row.technique_id,
                    name=row.technique_name,
                    tactic=row.tactic,
                    description=row.description,
                )
            )
            if row.mitigations:
                mitigations[row.technique_id] = list(row.mitigations)
        self._tactics, self._by_tactic, self._mitigations = tactics, by_tactic, mitigations
        logger.info(
            "Catalog loaded: %d tactics, %d techniques",
            len(tactics),
            sum(len(v) for v in by_tactic.values()),
        )

    # PUBLIC_INTERFACE
    def get_tactics(self) -> List[str]:
        """Distinct tactic names in first-seen order."""
        return list(self._tactics)

    # PUBLIC_INTERFACE
    def get_techniques_by_tactic(self, tactic: str) -> List[Technique]:
        """Techniques of a tactic, empty for unknown tactics."""
        return list(self._by_tactic.get(tactic, []))

    # PUBLIC_INTERFACE
    def get_mitigations(self, technique_id: str) -> List[str]:
        """Mitigations of a technique, empty when none are known."""
        return list(self._mitigations.get(technique_id, []))

    # PUBLIC_INTERFACE
    def get_technique(self, technique_id: str) -> Optional[Technique]:
        """Look up a technique by id."""
        for techniques in self._by_tactic.values():
            for t in techniques:
                if t.id == technique_id:
                    return t
        return None

    # PUBLIC_INTERFACE
    def list_techniques(self) -> List[Technique]:
        """All techniques, grouped by tactic in first-seen order."""
        return [t for tactic in self._tactics for t in self._by_tactic[tactic]]

    # PUBLIC_INTERFACE
    def export_rows(self) -> List[TechniqueRow]:
        """Dump the catalog back to rows that re-import to the same mapping."""
        return [
            TechniqueRow(
                technique_id=t.id,
                technique_name=t.name,
                tactic=t.tactic,
                description=t.description,
                mitigations=self.get_mitigations(t.id),
            )
            for t in self.list_techniques()
        ]

    @property
    def is_loaded(self) -> bool:
        return bool(self._tactics)


class AssessmentRepository:
    """
    In-memory store of running assessment wizards, keyed by session id.

    Sessions are never expired by time. When max_sessions is set and the store is full,
    adding a session evicts the oldest one; None leaves the store unbounded.
    """

    def __init__(self, max_sessions: Optional[int] = None) -> None:
        self._by_id: Dict[str, WizardController] = {}
        self._max_sessions = max_sessions

    # PUBLIC_INTERFACE
    def add(self, controller: WizardController) -> str:
        """Store a controller and return its new session id."""
        if self._max_sessions is not None:
            while self._by_id and len(self._by_id) >= self._max_sessions:
                # dicts keep insertion order, so the first key is the oldest session
                oldest = next(iter(self._by_id))
                del self._by_id[oldest]
                logger.info("Assessment session %s evicted, limit of %d reached", oldest, self._max_sessions)
        sid = _gen_id("asm")
        self._by_id[sid] = controller
        logger.info("Assessment session %s created", sid)
        return sid

    # PUBLIC_INTERFACE
    def get(self, session_id: str) -> Optional[WizardController]:
        """Get a controller by session id."""
        return self._by_id.get(session_id)

    # PUBLIC_INTERFACE
    def delete(self, session_id: str) -> bool:
        """Delete a session, returns True if deleted."""
        deleted = self._by_id.pop(session_id, None) is not None
        if deleted:
            logger.info("Assessment session %s deleted", session_id)
        return deleted

    def __len__(self) -> int:
        return len(self._by_id)
