"""Chargement et validation de la configuration YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from diag_ecom.models import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_REPORTING_CURRENCY = "EUR"

# Multiplicateurs devise → EUR (approximatifs, à surcharger par configuration)
DEFAULT_EXCHANGE_RATES: dict[str, float] = {
    "EUR": 1.0,
    "USD": 0.9259,
    "GBP": 1.1759,
    "CAD": 0.6852,
    "MXN": 0.0537,
    "BRL": 0.1852,
    "JPY": 0.0062,
    "AUD": 0.6019,
    "INR": 0.0111,
    "AED": 0.25,
    "SAR": 0.25,
    "PLN": 0.2315,
    "SEK": 0.088,
    "SGD": 0.6852,
    "TRY": 0.0287,
    "EGP": 0.0296,
}

RATES_FILE = "exchange_rates.yaml"
THRESHOLDS_FILE = "thresholds.yaml"


@dataclass
class Thresholds:
    """Seuils des contrôles de cohérence (non frozen — dataclass technique)."""

    absolute_tolerance: float = 0.01  # devise de reporting
    relative_tolerance_pct: float = 0.001  # % du total déclaré
    max_fee_percent: float = 40.0
    max_refund_rate: float = 10.0
    missing_data_fraction: float = 0.05
    missing_data_warning_fraction: float = 0.5


@dataclass
class AppConfig:
    """Configuration complète de l'application (non frozen — dataclass technique)."""

    reporting_currency: str = DEFAULT_REPORTING_CURRENCY
    exchange_rates: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_EXCHANGE_RATES))
    thresholds: Thresholds = field(default_factory=Thresholds)
    min_schema_matches: int = 2


def _load_yaml(filepath: Path) -> dict[str, object] | None:
    """Charge un fichier YAML ; retourne None si le fichier est absent."""
    if not filepath.exists():
        logger.info("Fichier %s absent — valeurs par défaut conservées", filepath)
        return None
    try:
        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML malformé dans {filepath} : {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Le fichier {filepath} doit contenir un mapping YAML (reçu : {type(data).__name__})")
    return data


def _validate_currency_code(code: object, context: str) -> str:
    code_str = str(code).strip().upper()
    if len(code_str) != 3 or not code_str.isalpha():
        raise ConfigError(f"Code devise invalide {code!r} dans {context} : 3 lettres attendues")
    return code_str


def validate_rates(rates: dict[object, object], reporting_currency: str, context: str) -> dict[str, float]:
    """Valide une table de taux et garantit ``rates[reporting_currency] == 1.0``."""
    validated: dict[str, float] = {}
    for code, raw_rate in rates.items():
        code_str = _validate_currency_code(code, context)
        if isinstance(raw_rate, bool) or not isinstance(raw_rate, (int, float)):
            raise ConfigError(f"Taux invalide pour '{code_str}' dans {context} : doit être un nombre")
        rate = float(raw_rate)
        if rate <= 0:
            raise ConfigError(f"Taux invalide pour '{code_str}' dans {context} : {rate} doit être strictement positif")
        validated[code_str] = rate

    if reporting_currency in validated and validated[reporting_currency] != 1.0:
        raise ConfigError(
            f"La devise de reporting {reporting_currency} doit avoir un taux de 1.0 dans {context} "
            f"(reçu : {validated[reporting_currency]})"
        )
    validated[reporting_currency] = 1.0
    return validated


def rebase_rates(rates: dict[str, float], reporting_currency: str) -> dict[str, float]:
    """Réexprime une table de taux vers une autre devise de reporting."""
    if reporting_currency not in rates:
        raise ConfigError(
            f"Devise de reporting {reporting_currency} absente de la table de taux par défaut : "
            f"renseigner 'rates' dans {RATES_FILE}"
        )
    base = rates[reporting_currency]
    rebased = {code: rate / base for code, rate in rates.items()}
    rebased[reporting_currency] = 1.0
    return rebased


def _validate_rates_file(data: dict[str, object]) -> tuple[str, dict[str, float]]:
    """Valide et extrait la devise de reporting et la table de taux."""
    context = RATES_FILE

    reporting_currency = _validate_currency_code(
        data.get("reporting_currency", DEFAULT_REPORTING_CURRENCY), context
    )

    raw_rates = data.get("rates", {})
    if not isinstance(raw_rates, dict):
        raise ConfigError(f"'rates' doit être un mapping dans {context}")

    return reporting_currency, validate_rates(raw_rates, reporting_currency, context)


def _validate_thresholds(data: dict[str, object]) -> Thresholds:
    """Valide les seuils ; les clés absentes gardent leur valeur par défaut."""
    context = THRESHOLDS_FILE
    thresholds = Thresholds()
    known = set(vars(thresholds))

    for key, raw_value in data.items():
        if key not in known:
            raise ConfigError(f"Seuil inconnu '{key}' dans {context}")
        if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
            raise ConfigError(f"Seuil '{key}' invalide dans {context} : doit être un nombre")
        value = float(raw_value)
        if value < 0:
            raise ConfigError(f"Seuil '{key}' invalide dans {context} : {value} est négatif")
        setattr(thresholds, key, value)

    if thresholds.missing_data_warning_fraction < thresholds.missing_data_fraction:
        raise ConfigError(
            f"'missing_data_warning_fraction' doit être >= 'missing_data_fraction' dans {context}"
        )
    return thresholds


def load_config(config_dir: Path) -> AppConfig:
    """Charge et valide la configuration depuis un répertoire.

    Args:
        config_dir: Répertoire contenant ``exchange_rates.yaml`` et
            ``thresholds.yaml``. Un fichier absent conserve les défauts.

    Returns:
        AppConfig validée.

    Raises:
        ConfigError: Si un fichier est malformé ou contient des valeurs invalides.
    """
    logger.info("Chargement de la configuration depuis %s", config_dir)

    config = AppConfig()

    rates_data = _load_yaml(config_dir / RATES_FILE)
    if rates_data is not None:
        reporting_currency, rates = _validate_rates_file(rates_data)
        config.reporting_currency = reporting_currency
        if "rates" in rates_data:
            config.exchange_rates = rates
        else:
            config.exchange_rates = rebase_rates(DEFAULT_EXCHANGE_RATES, reporting_currency)

    thresholds_data = _load_yaml(config_dir / THRESHOLDS_FILE)
    if thresholds_data is not None:
        config.thresholds = _validate_thresholds(thresholds_data)

    logger.debug(
        "reporting_currency: %s, %d taux, seuils: %s",
        config.reporting_currency,
        len(config.exchange_rates),
        config.thresholds,
    )

    return config
