"""Tests pour controls/ — totaux, ratios, qualité des données et tri des alertes."""

from __future__ import annotations

import datetime

import pytest

from diag_ecom.config.loader import Thresholds
from diag_ecom.controls.data_quality_checker import DataQualityChecker
from diag_ecom.controls.discrepancies import detect_discrepancies
from diag_ecom.controls.ratio_checker import RatioChecker
from diag_ecom.controls.total_checker import TotalChecker, exceeds_tolerance
from diag_ecom.engine.aggregator import aggregate
from diag_ecom.models import Aggregates, FileDescriptor, NormalizedTransaction, RawRow


def _make_tx(**overrides: object) -> NormalizedTransaction:
    """Helper pour construire une NormalizedTransaction."""
    defaults: dict[str, object] = {
        "file_id": "f1",
        "order_id": None,
        "sku": "SKU-A",
        "asin": None,
        "marketplace": "amazon.fr",
        "country": "France",
        "currency": "EUR",
        "date": datetime.date(2024, 3, 1),
        "transaction_type": "Order",
        "category": "revenue",
        "subcategory": "sales",
        "fulfillment_model": "FBA",
        "amount": 1000.0,
        "amount_converted": 1000.0,
        "raw_row": RawRow({}),
    }
    defaults.update(overrides)
    return NormalizedTransaction(**defaults)  # type: ignore[arg-type]


def _healthy_france() -> Aggregates:
    """Un pays sain : calculated_total = 1000.00, aucun ratio anormal."""
    return aggregate([_make_tx()])


class TestTotalChecker:
    """Écart entre total recalculé et total déclaré."""

    def test_two_cents_over_is_critical(self) -> None:
        """1000.00 calculé contre 1000.02 déclaré : une alerte critique."""
        alerts = detect_discrepancies(_healthy_france(), reported_totals={"France": 1000.02})
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == "calculation_error"
        assert alert.severity == "critical"
        assert alert.scope == "France"
        assert alert.expected_value == 1000.02
        assert alert.actual_value == 1000.0
        assert alert.difference == pytest.approx(-0.02)

    def test_half_cent_within_tolerance(self) -> None:
        """Écart de 0.005 : aucune alerte."""
        assert detect_discrepancies(_healthy_france(), reported_totals={"France": 1000.005}) == []

    def test_exact_match(self) -> None:
        assert TotalChecker.check(_healthy_france(), Thresholds(), {"France": 1000.0}) == []

    def test_file_reported_total_used(self) -> None:
        agg = aggregate([_make_tx(reported_total=900.0)])
        alerts = TotalChecker.check(agg, Thresholds())
        assert len(alerts) == 1
        assert alerts[0].difference == pytest.approx(100.0)

    def test_caller_total_overrides_file_total(self) -> None:
        agg = aggregate([_make_tx(reported_total=900.0)])
        assert TotalChecker.check(agg, Thresholds(), {"France": 1000.0}) == []

    def test_reported_country_without_transactions(self) -> None:
        """Pays déclaré mais absent des fichiers : comparé à un total nul."""
        alerts = TotalChecker.check(_healthy_france(), Thresholds(), {"Germany": 50.0})
        assert len(alerts) == 1
        assert alerts[0].scope == "Germany"
        assert alerts[0].actual_value == 0.0

    def test_no_reported_totals(self) -> None:
        assert TotalChecker.check(_healthy_france(), Thresholds()) == []

    def test_relative_tolerance_on_large_totals(self) -> None:
        """Sur 1 000 000, un écart de 5 reste sous 0.001 %."""
        thresholds = Thresholds()
        assert not exceeds_tolerance(1_000_005.0, 1_000_000.0, thresholds)
        assert exceeds_tolerance(1_000_011.0, 1_000_000.0, thresholds)


class TestRatioChecker:
    """Plafonds de frais et de remboursement, soldes négatifs."""

    def test_unusual_fee(self) -> None:
        agg = aggregate([_make_tx(), _make_tx(category="fee", subcategory="fba", amount=450.0, amount_converted=450.0)])
        alerts = RatioChecker.check(agg, Thresholds())
        assert [a.type for a in alerts] == ["unusual_fee"]
        assert alerts[0].severity == "warning"
        assert alerts[0].actual_value == 45.0

    def test_fee_under_threshold_not_flagged(self) -> None:
        agg = aggregate([_make_tx(), _make_tx(category="fee", subcategory="fba", amount=300.0, amount_converted=300.0)])
        assert RatioChecker.check(agg, Thresholds()) == []

    def test_high_refund(self) -> None:
        txs = [_make_tx() for _ in range(4)] + [
            _make_tx(category="refund", subcategory="refund", amount=10.0, amount_converted=10.0)
        ]
        alerts = RatioChecker.check(aggregate(txs), Thresholds(max_refund_rate=10.0))
        assert [a.type for a in alerts] == ["high_refund"]
        assert alerts[0].actual_value == 25.0

    def test_negative_balance_once_per_country(self) -> None:
        """Ventes nettes et EBITDA négatifs : une seule alerte critique."""
        txs = [
            _make_tx(amount=10.0, amount_converted=10.0),
            _make_tx(category="refund", subcategory="refund", amount=50.0, amount_converted=50.0),
        ]
        alerts = [a for a in RatioChecker.check(aggregate(txs), Thresholds()) if a.type == "negative_balance"]
        assert len(alerts) == 1
        assert alerts[0].severity == "critical"
        assert alerts[0].actual_value == -40.0

    def test_negative_ebitda_only(self) -> None:
        agg = aggregate([_make_tx(category="fee", subcategory="advertising", amount=32.5, amount_converted=32.5)])
        alerts = RatioChecker.check(agg, Thresholds())
        assert [a.type for a in alerts] == ["negative_balance"]
        assert alerts[0].actual_value == -32.5

    def test_rounding_noise_not_negative(self) -> None:
        agg = aggregate([_make_tx(amount=0.1, amount_converted=0.1),
                         _make_tx(category="refund", subcategory="refund", amount=0.100001, amount_converted=0.100001)])
        assert not [a for a in RatioChecker.check(agg, Thresholds()) if a.type == "negative_balance"]


class TestDataQualityChecker:
    """Champs obligatoires non résolus."""

    @staticmethod
    def _aggregate(missing: int, total: int) -> Aggregates:
        txs = [_make_tx(flags=("missing_amount",)) for _ in range(missing)]
        txs += [_make_tx() for _ in range(total - missing)]
        files = [FileDescriptor("f1", "export.csv", "transaction", "amazon.fr", "France", "EUR", "EU", total, None)]
        return aggregate(txs, files)

    def test_below_fraction_ignored(self) -> None:
        assert DataQualityChecker.check(self._aggregate(1, 100), Thresholds()) == []

    def test_info_severity(self) -> None:
        alerts = DataQualityChecker.check(self._aggregate(10, 100), Thresholds())
        assert len(alerts) == 1
        assert alerts[0].type == "missing_data"
        assert alerts[0].severity == "info"
        assert alerts[0].reference == "export.csv"

    def test_warning_severity(self) -> None:
        alerts = DataQualityChecker.check(self._aggregate(60, 100), Thresholds())
        assert alerts[0].severity == "warning"

    def test_currency_gap_warning(self) -> None:
        txs = [_make_tx(currency="XYZ", flags=("currency_gap",)), _make_tx()]
        alerts = DataQualityChecker.check(aggregate(txs), Thresholds())
        gap_alerts = [a for a in alerts if a.reference == "XYZ"]
        assert len(gap_alerts) == 1
        assert gap_alerts[0].severity == "warning"
        assert gap_alerts[0].actual_value == 1.0


class TestDetectDiscrepancies:
    """Point d'entrée : agrégation des contrôles et tri."""

    def test_sorted_by_severity(self) -> None:
        txs = [
            _make_tx(),
            _make_tx(category="refund", subcategory="refund", amount=10.0, amount_converted=10.0),
            _make_tx(country="UK", marketplace="amazon.co.uk", category="fee", subcategory="storage",
                     amount=5.0, amount_converted=5.0),
        ]
        alerts = detect_discrepancies(aggregate(txs), reported_totals={"France": 500.0})
        severities = [a.severity for a in alerts]
        assert severities == sorted(severities, key=["critical", "warning", "info"].index)
        assert {a.type for a in alerts} == {"calculation_error", "high_refund", "negative_balance"}

    def test_deterministic(self) -> None:
        txs = [
            _make_tx(),
            _make_tx(category="refund", subcategory="refund", amount=10.0, amount_converted=10.0),
            _make_tx(country="UK", marketplace="amazon.co.uk", category="fee", subcategory="storage",
                     amount=5.0, amount_converted=5.0),
        ]
        agg = aggregate(txs)
        assert detect_discrepancies(agg, {"France": 1.0}) == detect_discrepancies(agg, {"France": 1.0})

    def test_aggregates_not_modified(self) -> None:
        agg = _healthy_france()
        before = agg.by_country["France"]
        detect_discrepancies(agg, reported_totals={"France": 1.0})
        assert agg.by_country["France"] is before

    def test_default_thresholds(self) -> None:
        assert detect_discrepancies(_healthy_france()) == []
