"""Contrôle du total recalculé par pays contre le total déclaré par la source."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from diag_ecom.config.loader import Thresholds
from diag_ecom.models import Aggregates, DiscrepancyAlert

logger = logging.getLogger(__name__)


def exceeds_tolerance(calculated: float, reported: float, thresholds: Thresholds) -> bool:
    """Vrai si l'écart dépasse à la fois la tolérance absolue et la tolérance relative."""
    diff = abs(calculated - reported)
    relative_limit = abs(reported) * thresholds.relative_tolerance_pct / 100
    return diff > thresholds.absolute_tolerance and diff > relative_limit


class TotalChecker:
    """Compare ``calculated_total`` de chaque pays au total déclaré."""

    @staticmethod
    def check(
        aggregates: Aggregates,
        thresholds: Thresholds,
        reported_totals: Mapping[str, float] | None = None,
    ) -> list[DiscrepancyAlert]:
        """Un total fourni dans ``reported_totals`` prime sur celui lu dans les fichiers.

        Un pays déclaré sans aucune transaction est comparé à un total calculé nul.
        """
        reported_by_country: dict[str, float] = {
            country: metrics.reported_total
            for country, metrics in aggregates.by_country.items()
            if metrics.reported_total is not None
        }
        reported_by_country.update(reported_totals or {})

        alerts: list[DiscrepancyAlert] = []
        for country in sorted(reported_by_country):
            reported = reported_by_country[country]
            metrics = aggregates.by_country.get(country)
            calculated = metrics.calculated_total if metrics is not None else 0.0

            if not exceeds_tolerance(calculated, reported, thresholds):
                continue

            diff = calculated - reported
            alerts.append(
                DiscrepancyAlert(
                    type="calculation_error",
                    severity="critical",
                    scope=country,
                    description=(
                        f"Total recalculé incohérent pour {country} : "
                        f"calculé={calculated:.2f}, déclaré={reported:.2f}, écart={diff:.2f}"
                    ),
                    expected_value=round(reported, 2),
                    actual_value=round(calculated, 2),
                    difference=round(diff, 2),
                    recommendation=(
                        "Vérifier les lignes non classées (catégorie 'other') et les montants "
                        "illisibles, puis rapprocher avec le relevé de la marketplace"
                    ),
                )
            )

        return alerts
