"""Tests pour engine/schema_detector.py — détection du type de rapport."""

from __future__ import annotations

from diag_ecom.engine.schema_detector import (
    REPORT_TYPE_KEYWORDS,
    detect_report_type,
    normalize_headers,
    score_report_types,
)

SELLER_HEADERS = [
    "order-id",
    "sku",
    "Product Charges",
    "Referral Fee",
    "FBA Fee",
    "marketplace",
]


class TestDetectReportType:
    """Tests de la classification par mots-clés."""

    def test_seller_report(self) -> None:
        """Les en-têtes vendeur donnent 'seller'."""
        assert detect_report_type(SELLER_HEADERS) == "seller"

    def test_seller_scores(self) -> None:
        """5 mots-clés vendeur, aucun mot-clé transaction."""
        scores = score_report_types(SELLER_HEADERS)
        assert scores["seller"] >= 5
        assert scores["transaction"] == 0

    def test_settlement_report(self) -> None:
        headers = [
            "settlement-id", "settlement-start-date", "total-amount", "amount-type",
            "amount-description", "amount", "posted-date", "sku",
        ]
        assert detect_report_type(headers) == "settlement"

    def test_ads_report(self) -> None:
        headers = ["Date", "Campaign Name", "Impressions", "Clicks", "Spend", "ACOS"]
        assert detect_report_type(headers) == "ads"

    def test_case_and_whitespace_insensitive(self) -> None:
        headers = ["  ORDER-ID ", "SKU", "  Referral FEE"]
        assert detect_report_type(headers) == "seller"

    def test_empty_headers_unknown(self) -> None:
        """Liste vide → unknown, sans exception."""
        assert detect_report_type([]) == "unknown"

    def test_blank_and_none_headers_ignored(self) -> None:
        assert detect_report_type(["", "   ", None]) == "unknown"  # type: ignore[list-item]

    def test_single_match_below_threshold(self) -> None:
        """Un seul mot-clé ne suffit pas (minimum 2)."""
        assert detect_report_type(["sku", "foo", "bar"]) == "unknown"

    def test_custom_min_matches(self) -> None:
        assert detect_report_type(["sku", "foo"], min_matches=1) == "seller"

    def test_unrelated_headers(self) -> None:
        assert detect_report_type(["nom", "prénom", "adresse"]) == "unknown"

    def test_tie_goes_to_first_registered_type(self) -> None:
        """Égalité : le premier type du registre l'emporte."""
        # 2 mots-clés seller, 2 mots-clés vendor
        headers = ["refund", "chargeback", "po units", "shortages"]
        scores = score_report_types(headers)
        assert scores["seller"] == scores["vendor"] == 2
        assert detect_report_type(headers) == "seller"

    def test_deterministic(self) -> None:
        results = {detect_report_type(SELLER_HEADERS) for _ in range(5)}
        assert results == {"seller"}

    def test_registry_order(self) -> None:
        assert list(REPORT_TYPE_KEYWORDS)[:2] == ["seller", "vendor"]


class TestNormalizeHeaders:
    """Tests de la normalisation des en-têtes."""

    def test_lower_and_strip(self) -> None:
        assert normalize_headers([" Date/Time ", "SKU"]) == ["date/time", "sku"]

    def test_drops_empty(self) -> None:
        assert normalize_headers(["", None, "x"]) == ["x"]
