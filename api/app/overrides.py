"""Validation et application des overrides de configuration (devise, taux, seuils)."""

from __future__ import annotations

import dataclasses
import re
from typing import Any

from pydantic import BaseModel, field_validator, model_validator

from diag_ecom.config.loader import AppConfig, rebase_rates

# --- Regex de validation ---
RE_CURRENCY = re.compile(r"^[A-Z]{3}$")


class ThresholdsOverride(BaseModel):
    """Override partiel des seuils de contrôle."""

    absolute_tolerance: float | None = None
    relative_tolerance_pct: float | None = None
    max_fee_percent: float | None = None
    max_refund_rate: float | None = None
    missing_data_fraction: float | None = None
    missing_data_warning_fraction: float | None = None

    @field_validator("*")
    @classmethod
    def validate_positive(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError(f"Seuil négatif : {v}")
        return v


class ConfigOverridesSchema(BaseModel):
    """Schéma Pydantic pour les overrides envoyés avec un upload."""

    reporting_currency: str | None = None
    exchange_rates: dict[str, float] | None = None
    thresholds: ThresholdsOverride | None = None

    @field_validator("reporting_currency")
    @classmethod
    def validate_currency(cls, v: str | None) -> str | None:
        if v is not None and not RE_CURRENCY.match(v):
            raise ValueError(f"Code devise invalide : '{v}'")
        return v

    @field_validator("exchange_rates")
    @classmethod
    def validate_rates(cls, v: dict[str, float] | None) -> dict[str, float] | None:
        if v is None:
            return None
        for code, rate in v.items():
            if not RE_CURRENCY.match(code):
                raise ValueError(f"Code devise invalide : '{code}'")
            if rate <= 0:
                raise ValueError(f"Taux '{code}' invalide : {rate} doit être strictement positif")
        return v

    @model_validator(mode="after")
    def validate_reporting_rate(self) -> ConfigOverridesSchema:
        if self.reporting_currency and self.exchange_rates:
            rate = self.exchange_rates.get(self.reporting_currency)
            if rate is not None and rate != 1.0:
                raise ValueError(f"La devise de reporting {self.reporting_currency} doit avoir un taux de 1.0")
        return self


def apply_overrides(config: AppConfig, overrides: dict[str, Any]) -> AppConfig:
    """Applique les overrides au config — merge partiel, retourne une copie.

    Un changement de devise de reporting réexprime la table courante vers
    la nouvelle devise avant fusion des taux fournis. Les taux fournis sont
    exprimés dans la devise de reporting résultante.

    Raises:
        ValidationError: Overrides mal formés.
        ConfigError: Nouvelle devise de reporting sans taux connu ni fourni.
    """
    schema = ConfigOverridesSchema.model_validate(overrides)

    replacements: dict[str, Any] = {}

    reporting_currency = config.reporting_currency
    rates = dict(config.exchange_rates)

    if schema.reporting_currency and schema.reporting_currency != config.reporting_currency:
        reporting_currency = schema.reporting_currency
        replacements["reporting_currency"] = reporting_currency
        if reporting_currency in rates or not schema.exchange_rates:
            rates = rebase_rates(rates, reporting_currency)
        else:
            # Devise absente de la table courante : seuls les taux fournis s'appliquent
            rates = {}
        replacements["exchange_rates"] = rates

    if schema.exchange_rates:
        rates = {**rates, **schema.exchange_rates}
        rates[reporting_currency] = 1.0
        replacements["exchange_rates"] = rates

    if schema.thresholds:
        changes = schema.thresholds.model_dump(exclude_none=True)
        if changes:
            replacements["thresholds"] = dataclasses.replace(config.thresholds, **changes)

    if not replacements:
        return config

    return dataclasses.replace(config, **replacements)
