"""
Pytest configuration and fixtures for Shapeport tests.
"""

import io
import sys
import zipfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from shapeport.core.settings import ExportSettings
from shapeport.domain.models import ConfigParameter, ExportFormat, ExportRequest, ExportUnit
from shapeport.infra.onshape_client import caller_identity

API_BASE = "https://cad.test/api/v6"
AUTH_HEADER = "Basic dGVzdDp0ZXN0"


def make_response(status_code=200, content=b"", headers=None, text="", reason="OK"):
    """Fake requests.Response for the mesh download paths."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.content = content
    response.headers = headers or {}
    response.text = text
    response.reason = reason
    return response


def make_zip(files):
    """Build an in-memory zip from {name: bytes}."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as bundle:
        for name, data in files.items():
            bundle.writestr(name, data)
    return buffer.getvalue()


def read_zip(data):
    """Return {name: bytes} for every file in a zip."""
    with zipfile.ZipFile(io.BytesIO(data)) as bundle:
        return {name: bundle.read(name) for name in bundle.namelist()}


@pytest.fixture
def settings():
    """Fast settings: no polling delay, small pool."""
    return ExportSettings(api_base=API_BASE, poll_interval_seconds=0, max_workers=4)


@pytest.fixture
def mock_client():
    """Mock OnshapeClient with a working url() helper."""
    client = MagicMock()
    client.url.side_effect = lambda path: f"{API_BASE}/{path}"
    client.get_default_workspace.return_value = "w1"
    client.identity = caller_identity(AUTH_HEADER)
    return client


@pytest.fixture
def width_param():
    return ConfigParameter(key="Width", keyDisplay="Width", values=[50, 60], unit="mm")


@pytest.fixture
def make_unit():
    """Factory for ExportUnits on the Frame/Bracket studio."""

    def _make(export_format=ExportFormat.STL, combine=False, **overrides):
        fields = {
            "document_id": "d1",
            "studio_id": "e1",
            "studio_name": "Frame",
            "part_id": None if combine else "JHD",
            "part_name": None if combine else "Bracket",
            "format": export_format,
            "combine_scope": combine,
        }
        fields.update(overrides)
        return ExportUnit(**fields)

    return _make


@pytest.fixture
def make_request():
    """Factory for ExportRequests on the Frame/Bracket studio."""

    def _make(**overrides):
        body = {
            "documentId": "d1",
            "elementId": "e1",
            "elementName": "Frame",
            "partId": "JHD",
            "partName": "Bracket",
            "formats": ["STL"],
        }
        body.update(overrides)
        return ExportRequest(**body)

    return _make
