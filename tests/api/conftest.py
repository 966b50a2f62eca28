"""Fixtures API : client FastAPI sur la configuration de test et exports Amazon à uploader."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

FIXTURES = Path(__file__).parent.parent / "fixtures"
UPLOADS = [
    ("amazon.fr_transactions.csv", "text/csv"),
    ("settlement_UK.txt", "text/plain"),
    ("ads_report.csv", "text/csv"),
]


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    """Client dont le lifespan charge tests/fixtures/config (EUR, USD 0.9, GBP 1.2)."""
    monkeypatch.setenv("CONFIG_DIR", str(FIXTURES / "config"))

    from api.app.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def amazon_files() -> list[tuple[str, tuple[str, bytes, str]]]:
    """Champs multipart ``files`` : un export France, un settlement UK, un rapport ads."""
    return [
        ("files", (name, (FIXTURES / "amazon" / name).read_bytes(), media_type))
        for name, media_type in UPLOADS
    ]
