"""
Error hierarchy for the risk assessment backend.

Route handlers in main.py translate these into HTTP responses; everything below
the HTTP layer raises them directly.
"""

from __future__ import annotations

from typing import Optional


class RiskWizardError(Exception):
    """Base exception for all risk wizard errors."""


class DataImportError(RiskWizardError):
    """Raised when an import is rejected. The technique catalog is left untouched."""

    def __init__(self, message: str, row: Optional[int] = None) -> None:
        super().__init__(message)
        self.row = row


class ImportInProgressError(RiskWizardError):
    """Raised when an import is started while another one is still running."""


class UnknownTechniqueError(RiskWizardError):
    """Raised when a technique id is not in the catalog or not part of the selection."""

    def __init__(self, technique_id: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Unknown technique: {technique_id}")
        self.technique_id = technique_id


class StepMismatchError(RiskWizardError):
    """Raised when a command targets a wizard step other than the current one."""
