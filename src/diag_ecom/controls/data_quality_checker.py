"""Contrôle de couverture des champs obligatoires (montant, devise) par fichier."""

from __future__ import annotations

import logging
from collections import Counter

from diag_ecom.config.loader import Thresholds
from diag_ecom.models import SCOPE_GLOBAL, Aggregates, DiscrepancyAlert, FileQuality

logger = logging.getLogger(__name__)


class DataQualityChecker:
    """Signale les champs non résolus sur une part excessive des lignes."""

    @staticmethod
    def check(aggregates: Aggregates, thresholds: Thresholds) -> list[DiscrepancyAlert]:
        alerts: list[DiscrepancyAlert] = []
        gaps: Counter[str] = Counter()

        for quality in aggregates.data_quality.values():
            unusable_amounts = quality.missing_amount + quality.invalid_amount
            alerts.extend(DataQualityChecker._check_field(quality, "montant", unusable_amounts, thresholds))
            alerts.extend(
                DataQualityChecker._check_field(quality, "devise", quality.missing_currency, thresholds)
            )
            gaps.update(quality.currency_gaps)

        for currency in sorted(gaps):
            alerts.append(
                DiscrepancyAlert(
                    type="missing_data",
                    severity="warning",
                    scope=SCOPE_GLOBAL,
                    description=(
                        f"Devise {currency} absente de la table de taux : {gaps[currency]} ligne(s) "
                        f"converties au taux 1.0"
                    ),
                    actual_value=float(gaps[currency]),
                    reference=currency,
                    recommendation=f"Ajouter le taux {currency} dans exchange_rates.yaml",
                )
            )

        return alerts

    @staticmethod
    def _check_field(
        quality: FileQuality, label: str, missing: int, thresholds: Thresholds
    ) -> list[DiscrepancyAlert]:
        if quality.row_count == 0 or missing == 0:
            return []
        fraction = missing / quality.row_count
        if fraction <= thresholds.missing_data_fraction:
            return []

        severity = "warning" if fraction >= thresholds.missing_data_warning_fraction else "info"
        return [
            DiscrepancyAlert(
                type="missing_data",
                severity=severity,
                scope=SCOPE_GLOBAL,
                description=(
                    f"Champ {label} non renseigné sur {missing}/{quality.row_count} lignes "
                    f"({fraction:.0%}) dans {quality.file_name}"
                ),
                expected_value=float(quality.row_count),
                actual_value=float(quality.row_count - missing),
                difference=float(missing),
                reference=quality.file_name,
                recommendation=f"Vérifier que l'export contient une colonne {label} exploitable",
            )
        ]
