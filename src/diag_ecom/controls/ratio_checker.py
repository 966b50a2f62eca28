"""Contrôles de ratios par pays : frais, remboursements, soldes négatifs."""

from __future__ import annotations

import logging

from diag_ecom.config.loader import Thresholds
from diag_ecom.models import Aggregates, CountryMetrics, DiscrepancyAlert

logger = logging.getLogger(__name__)


class RatioChecker:
    """Détecte les pays dont les ratios sortent des plafonds configurés."""

    @staticmethod
    def check(aggregates: Aggregates, thresholds: Thresholds) -> list[DiscrepancyAlert]:
        alerts: list[DiscrepancyAlert] = []
        for metrics in aggregates.by_country.values():
            alerts.extend(RatioChecker._check_fee_percent(metrics, thresholds))
            alerts.extend(RatioChecker._check_refund_rate(metrics, thresholds))
            alerts.extend(RatioChecker._check_balance(metrics))
        return alerts

    @staticmethod
    def _check_fee_percent(metrics: CountryMetrics, thresholds: Thresholds) -> list[DiscrepancyAlert]:
        if metrics.fee_percent <= thresholds.max_fee_percent:
            return []
        return [
            DiscrepancyAlert(
                type="unusual_fee",
                severity="warning",
                scope=metrics.country,
                description=(
                    f"Frais à {metrics.fee_percent:.1f}% des ventes nettes pour {metrics.country} "
                    f"(plafond {thresholds.max_fee_percent:.1f}%)"
                ),
                expected_value=thresholds.max_fee_percent,
                actual_value=round(metrics.fee_percent, 2),
                difference=round(metrics.fee_percent - thresholds.max_fee_percent, 2),
                recommendation="Auditer les frais FBA et de stockage, vérifier les dimensions déclarées",
            )
        ]

    @staticmethod
    def _check_refund_rate(metrics: CountryMetrics, thresholds: Thresholds) -> list[DiscrepancyAlert]:
        if metrics.refund_rate <= thresholds.max_refund_rate:
            return []
        return [
            DiscrepancyAlert(
                type="high_refund",
                severity="warning",
                scope=metrics.country,
                description=(
                    f"Taux de remboursement de {metrics.refund_rate:.1f}% pour {metrics.country} "
                    f"(plafond {thresholds.max_refund_rate:.1f}%)"
                ),
                expected_value=thresholds.max_refund_rate,
                actual_value=round(metrics.refund_rate, 2),
                difference=round(metrics.refund_rate - thresholds.max_refund_rate, 2),
                recommendation="Analyser les motifs de retour par SKU et la qualité des fiches produit",
            )
        ]

    @staticmethod
    def _check_balance(metrics: CountryMetrics) -> list[DiscrepancyAlert]:
        """Une seule alerte par pays, que les ventes nettes ou l'EBITDA soient négatifs."""
        negative = [
            label
            for label, value in (("ventes nettes", metrics.net_sales), ("EBITDA", metrics.ebitda))
            if round(value, 2) < 0
        ]
        if not negative:
            return []
        actual = metrics.net_sales if round(metrics.net_sales, 2) < 0 else metrics.ebitda
        return [
            DiscrepancyAlert(
                type="negative_balance",
                severity="critical",
                scope=metrics.country,
                description=(
                    f"Solde négatif pour {metrics.country} : {' et '.join(negative)} "
                    f"(ventes nettes={metrics.net_sales:.2f}, EBITDA={metrics.ebitda:.2f})"
                ),
                expected_value=0.0,
                actual_value=round(actual, 2),
                difference=round(actual, 2),
                recommendation="Vérifier la structure de coûts et les remboursements du pays",
            )
        ]
