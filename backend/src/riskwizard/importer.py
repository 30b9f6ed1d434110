"""
Technique catalog importer.

Accepts either a spreadsheet upload (.xlsx / .xls) or a pre-parsed list of rows,
validates everything up front and only then replaces the catalog held by the
TechniqueRepository. A rejected import never touches the current catalog.

Expected spreadsheet columns (header matching ignores case, spaces and punctuation):
Technique ID, Technique Name, Tactic, Description, Mitigations.
"""

from __future__ import annotations

import io
import json
import logging
import re
import threading
from contextlib import contextmanager
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import pandas as pd
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from .exceptions import DataImportError, ImportInProgressError
from .models import TechniqueRow
from .schemas import ImportRow
from .storage import TechniqueRepository

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".xlsx", ".xls")

# normalized header -> ImportRow field alias
_COLUMNS = {
    "techniqueid": "techniqueId",
    "techniquename": "techniqueName",
    "tactic": "tactic",
    "description": "description",
    "mitigations": "mitigations",
}
_REQUIRED_COLUMNS = ("techniqueId", "techniqueName", "tactic")
_MITIGATION_SPLIT = re.compile(r"[;,|\n]")


def _normalize_header(header: Any) -> str:
    return re.sub(r"[^a-z]", "", str(header).lower())


def split_mitigations(cell: Any) -> List[str]:
    """Split a delimited mitigations cell into trimmed, non-blank names."""
    if cell is None:
        return []
    if isinstance(cell, (list, tuple)):
        parts = [str(c) for c in cell]
    else:
        parts = _MITIGATION_SPLIT.split(str(cell))
    return [p.strip() for p in parts if p and p.strip()]


def check_extension(filename: str) -> None:
    """Reject file names whose extension is not a recognized spreadsheet format."""
    suffix = Path(filename or "").suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise DataImportError(
            f"Invalid file type '{suffix or filename}'. Please upload an Excel file (.xlsx or .xls)"
        )


def parse_spreadsheet(content: bytes) -> List[Dict[str, Any]]:
    """
    Parse the first sheet of an Excel workbook into raw row dicts keyed by field alias.

    Raises DataImportError when the workbook cannot be read or required columns are missing.
    """
    try:
        df = pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=str)
    except Exception as exc:
        raise DataImportError(f"Could not read the Excel file: {exc}") from exc

    rename: Dict[Any, str] = {}
    for col in df.columns:
        key = _COLUMNS.get(_normalize_header(col))
        if key and key not in rename.values():
            rename[col] = key
    missing = [c for c in _REQUIRED_COLUMNS if c not in rename.values()]
    if missing:
        raise DataImportError(f"Missing required column(s): {', '.join(missing)}")

    df = df[list(rename)].rename(columns=rename).fillna("")
    records: List[Dict[str, Any]] = []
    for rec in df.to_dict(orient="records"):
        # skip fully blank lines that spreadsheets tend to carry
        if not any(str(v).strip() for v in rec.values()):
            continue
        rec["mitigations"] = split_mitigations(rec.get("mitigations"))
        records.append(rec)
    return records


def validate_rows(rows: Sequence[Mapping[str, Any]]) -> List[TechniqueRow]:
    """
    Validate raw rows and convert them into TechniqueRow records.

    Checks every row (required fields, types) and that technique ids are unique.
    Row numbers in errors are 1-based.
    """
    if not rows:
        raise DataImportError("No technique rows found")
    out: List[TechniqueRow] = []
    seen: Dict[str, int] = {}
    for idx, raw in enumerate(rows, start=1):
        try:
            row = raw if isinstance(raw, ImportRow) else ImportRow.model_validate(raw)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in e["loc"]) for e in exc.errors())
            raise DataImportError(f"Row {idx} is malformed ({fields})", row=idx) from exc
        if row.technique_id in seen:
            raise DataImportError(
                f"Row {idx} repeats technique id {row.technique_id} (first seen in row {seen[row.technique_id]})",
                row=idx,
            )
        seen[row.technique_id] = idx
        out.append(
            TechniqueRow(
                technique_id=row.technique_id,
                technique_name=row.technique_name,
                tactic=row.tactic,
                description=row.description,
                mitigations=list(row.mitigations),
            )
        )
    return out


class CatalogImporter:
    """
    Loads technique data into a TechniqueRepository.

    Only one import may run at a time; a concurrent attempt is rejected with
    ImportInProgressError rather than queued.
    """

    def __init__(self, repository: TechniqueRepository, max_bytes: Optional[int] = None) -> None:
        self._repo = repository
        self._max_bytes = max_bytes
        self._lock = threading.Lock()

    @property
    def max_bytes(self) -> Optional[int]:
        return self._max_bytes

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold the import slot for the duration of the block."""
        if not self._lock.acquire(blocking=False):
            logger.warning("Import rejected: another import is in progress")
            raise ImportInProgressError("An import is already in progress")
        try:
            yield
        finally:
            self._lock.release()

    def _commit(self, rows: List[TechniqueRow], source: str) -> int:
        self._repo.load_rows(rows)
        logger.info("Imported %d techniques from %s", len(rows), source)
        return len(rows)

    # PUBLIC_INTERFACE
    def import_rows(self, rows: Sequence[Mapping[str, Any]], source: str = "rows") -> int:
        """Validate pre-parsed rows and replace the catalog. Returns the number of techniques loaded."""
        with self.exclusive():
            try:
                validated = validate_rows(rows)
            except DataImportError as exc:
                logger.warning("Import from %s rejected: %s", source, exc)
                raise
            return self._commit(validated, source)

    # PUBLIC_INTERFACE
    def import_file(self, filename: str, content: bytes) -> int:
        """Parse and import a spreadsheet synchronously."""
        with self.exclusive():
            validated = self._parse_file(filename, content)
            return self._commit(validated, filename)

    # PUBLIC_INTERFACE
    async def import_file_async(self, filename: str, content: bytes) -> int:
        """Parse a spreadsheet in a worker thread, then import it. The import slot is held throughout."""
        with self.exclusive():
            validated = await run_in_threadpool(self._parse_file, filename, content)
            return self._commit(validated, filename)

    # PUBLIC_INTERFACE
    def load_sample(self, path: Optional[str] = None) -> int:
        """
        Import the seed dataset (packaged techniques.json unless a path is given).

        An unreadable seed file raises DataImportError like any other rejected import.
        """
        source = path or "sample data"
        try:
            if path:
                text = Path(path).read_text(encoding="utf-8")
            else:
                text = resources.files("riskwizard").joinpath("data/techniques.json").read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DataImportError(f"Could not read seed data from {source}: {exc}") from exc
        try:
            rows = json.loads(text)
        except ValueError as exc:
            raise DataImportError(f"Seed data is not valid JSON: {exc}") from exc
        if not isinstance(rows, list):
            raise DataImportError("Seed data must be a JSON list of rows")
        return self.import_rows(rows, source=source)

    def _parse_file(self, filename: str, content: bytes) -> List[TechniqueRow]:
        try:
            check_extension(filename)
            if self._max_bytes is not None and len(content) > self._max_bytes:
                raise DataImportError(f"File exceeds the {self._max_bytes} byte import limit")
            return validate_rows(parse_spreadsheet(content))
        except DataImportError as exc:
            logger.warning("Import of %s rejected: %s", filename, exc)
            raise
