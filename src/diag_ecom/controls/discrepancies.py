"""Point d'entrée de la détection d'incohérences."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from diag_ecom.config.loader import Thresholds
from diag_ecom.controls.data_quality_checker import DataQualityChecker
from diag_ecom.controls.ratio_checker import RatioChecker
from diag_ecom.controls.total_checker import TotalChecker
from diag_ecom.models import SEVERITIES, Aggregates, DiscrepancyAlert

logger = logging.getLogger(__name__)

_SEVERITY_RANK = {severity: rank for rank, severity in enumerate(SEVERITIES)}


def alert_sort_key(alert: DiscrepancyAlert) -> tuple[int, str, str, str, str]:
    return (
        _SEVERITY_RANK.get(alert.severity, len(SEVERITIES)),
        alert.type,
        alert.scope,
        alert.reference or "",
        alert.description,
    )


def detect_discrepancies(
    aggregates: Aggregates,
    reported_totals: Mapping[str, float] | None = None,
    thresholds: Thresholds | None = None,
) -> list[DiscrepancyAlert]:
    """Exécute tous les contrôles et retourne les alertes triées.

    Les contrôles sont indépendants : plusieurs alertes peuvent viser le même
    pays. Le tri (sévérité, type, périmètre) rend le résultat identique d'un
    appel à l'autre pour les mêmes agrégats.

    Args:
        aggregates: Résultat de ``aggregate``.
        reported_totals: Totaux déclarés par pays, prioritaires sur ceux lus
            dans les fichiers.
        thresholds: Seuils ; valeurs par défaut si None.
    """
    thresholds = thresholds or Thresholds()

    total_alerts = TotalChecker.check(aggregates, thresholds, reported_totals)
    logger.info("TotalChecker: %d alertes détectées", len(total_alerts))

    ratio_alerts = RatioChecker.check(aggregates, thresholds)
    logger.info("RatioChecker: %d alertes détectées", len(ratio_alerts))

    quality_alerts = DataQualityChecker.check(aggregates, thresholds)
    logger.info("DataQualityChecker: %d alertes détectées", len(quality_alerts))

    return sorted(total_alerts + ratio_alerts + quality_alerts, key=alert_sort_key)
