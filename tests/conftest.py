"""Pytest configuration and shared fixtures for the risk wizard."""

import io

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from riskwizard.config import Settings
from riskwizard.importer import CatalogImporter
from riskwizard.main import create_app
from riskwizard.storage import TechniqueRepository
from riskwizard.wizard import WizardController

DRIVE_BY_ROW = {
    "techniqueId": "T0817",
    "techniqueName": "Drive-by Compromise",
    "tactic": "Initial Access",
    "mitigations": ["Network Segmentation"],
}


def make_xlsx(rows, columns=None):
    """Build real .xlsx bytes from a list of row dicts."""
    df = pd.DataFrame(rows, columns=columns)
    buf = io.BytesIO()
    df.to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


@pytest.fixture
def repository():
    return TechniqueRepository()


@pytest.fixture
def importer(repository):
    return CatalogImporter(repository, max_bytes=1024 * 1024)


@pytest.fixture
def seeded_repository(repository, importer):
    importer.load_sample()
    return repository


@pytest.fixture
def controller(seeded_repository):
    return WizardController(seeded_repository)


@pytest.fixture
def app():
    """Create application for testing with the bundled sample data."""
    return create_app(Settings(log_level="WARNING", seed_on_startup=True))


@pytest.fixture
def client(app):
    return TestClient(app)
