from pathlib import Path

import pytest

from diag_ecom.config.loader import AppConfig, Thresholds


@pytest.fixture
def fixtures_dir() -> Path:
    """Chemin vers le répertoire de fixtures."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def amazon_dir(fixtures_dir: Path) -> Path:
    """Exports Amazon d'exemple (transactions FR, settlement UK, publicité US)."""
    return fixtures_dir / "amazon"


@pytest.fixture
def sample_config() -> AppConfig:
    """AppConfig de test : taux simplifiés, plafond de remboursement relevé."""
    return AppConfig(
        reporting_currency="EUR",
        exchange_rates={"EUR": 1.0, "USD": 0.9, "GBP": 1.2},
        thresholds=Thresholds(max_refund_rate=60.0),
    )
