"""Conversion vers la devise de reporting."""

from __future__ import annotations

from collections.abc import Mapping

FALLBACK_RATE = 1.0


def lookup_rate(rate_table: Mapping[str, float], currency: str) -> tuple[float, bool]:
    """Retourne (taux, trouvé). Devise absente : taux 1.0 et ``trouvé=False``."""
    rate = rate_table.get(currency.upper()) if currency else None
    if rate is None:
        return FALLBACK_RATE, False
    return rate, True


def convert_to_reporting(amount: float, rate: float) -> float:
    return amount * rate


def convert_from_reporting(amount: float, rate: float) -> float:
    """Conversion inverse ; le taux doit être strictement positif."""
    if rate <= 0:
        raise ValueError(f"Taux de change invalide : {rate}")
    return amount / rate
