"""Tests pour engine/rules.py — catégories financières et modèle logistique."""

from __future__ import annotations

import pytest

from diag_ecom.engine.rules import KeywordRule, classify_category, classify_fulfillment, first_match


class TestClassifyCategory:
    """Champs structurés d'abord, description en dernier recours."""

    @pytest.mark.parametrize(
        ("subtype", "amount_type", "description", "expected"),
        [
            ("Order", "", "Widget A", ("revenue", "sales")),
            ("Order", "ItemPrice", "Principal", ("revenue", "sales")),
            ("Order", "ItemPrice", "Shipping Credit", ("revenue", "shipping")),
            ("Refund", "ItemPrice", "Principal", ("refund", "refund")),
            ("Order", "ItemFees", "Commission", ("fee", "referral")),
            ("Order", "ItemFees", "FBAPerUnitFulfillmentFee", ("fee", "fba")),
            ("FBA Inventory Fee", "", "FBA storage fee", ("fee", "storage")),
            ("Service Fee", "", "Cost of Advertising", ("fee", "advertising")),
            ("Service Fee", "", "Subscription Fee", ("fee", "subscription")),
            ("Adjustment", "", "FBA Inventory Reimbursement - Lost:Warehouse", ("reimbursement", "lost")),
            ("Adjustment", "", "FBA Inventory Reimbursement - Damaged:Warehouse", ("reimbursement", "damaged")),
            ("Adjustment", "", "Reimbursement - Customer Return", ("reimbursement", "customer_service")),
            ("Transfer", "", "To account ending in: 123", ("other", "transfer")),
        ],
    )
    def test_known_rows(self, subtype: str, amount_type: str, description: str, expected: tuple[str, str]) -> None:
        assert classify_category(subtype=subtype, amount_type=amount_type, description=description) == expected

    def test_reimbursement_before_refund(self) -> None:
        """« Reimbursement ... Return » reste une indemnisation."""
        category, _ = classify_category(description="Reimbursement for customer return")
        assert category == "reimbursement"

    def test_empty_row_defaults_to_other_unknown(self) -> None:
        assert classify_category() == ("other", "unknown")

    def test_unrecognized_text(self) -> None:
        assert classify_category(subtype="Foo", description="bar") == ("other", "unknown")

    def test_report_type_context(self) -> None:
        """Un rapport publicitaire classe ses lignes en frais de publicité."""
        assert classify_category(description="Brand Campaign", report_type="ads") == ("fee", "advertising")

    def test_reimbursement_report_refines_reason(self) -> None:
        assert classify_category(subtype="Damaged_Warehouse", report_type="reimbursement") == (
            "reimbursement",
            "damaged",
        )

    def test_case_insensitive(self) -> None:
        assert classify_category(subtype="REFUND") == ("refund", "refund")

    def test_description_only_when_structured_fields_match_nothing(self) -> None:
        assert classify_category(subtype="Adjustment", description="FBA storage fee") == ("fee", "storage")

    def test_inbound_placement_before_fba(self) -> None:
        assert classify_category(subtype="Service Fee", description="FBA Inbound Placement Service Fee") == (
            "fee",
            "inbound_placement",
        )

    def test_german_refund_not_reimbursement(self) -> None:
        assert classify_category(subtype="Rückerstattung") == ("refund", "refund")


class TestProductTitles:
    """Un titre produit contenant un mot-clé ne change pas la catégorie d'une commande."""

    @pytest.mark.parametrize(
        "title",
        ["Coffee Grinder", "Point of No Return", "Storage box", "Advertising Poster", "Refund Policy Book"],
    )
    def test_order_with_keyword_title_is_sale(self, title: str) -> None:
        assert classify_category(subtype="Order", description=title) == ("revenue", "sales")

    def test_refund_with_shipping_title_stays_principal(self) -> None:
        assert classify_category(subtype="Refund", description="Shipping Container Toy") == ("refund", "refund")

    def test_fee_substring_inside_word_ignored(self) -> None:
        """« coffee » ne contient pas le mot « fee »."""
        assert classify_category(description="Coffee Grinder") == ("other", "unknown")

    @pytest.mark.parametrize(
        ("description", "expected"),
        [
            ("Storage Fee", ("fee", "storage")),
            ("Return of shipment", ("refund", "refund")),
        ],
    )
    def test_description_fallback_on_whole_words(self, description: str, expected: tuple[str, str]) -> None:
        assert classify_category(description=description) == expected


class TestSettlementAmountTypes:
    """Le type de montant d'une ligne settlement prime sur le type de transaction."""

    def test_refunded_commission_is_fee(self) -> None:
        assert classify_category(subtype="Refund", amount_type="ItemFees", description="Commission") == (
            "fee",
            "referral",
        )

    def test_refunded_shipping_is_refund_shipping(self) -> None:
        assert classify_category(subtype="Refund", amount_type="ItemPrice", description="Shipping") == (
            "refund",
            "shipping",
        )

    def test_item_tax(self) -> None:
        assert classify_category(subtype="Order", amount_type="ItemPrice", description="Tax") == ("other", "tax")

    def test_withheld_tax(self) -> None:
        assert classify_category(
            subtype="Order", amount_type="ItemWithheldTax", description="MarketplaceFacilitatorTax-Principal"
        ) == ("other", "tax")

    def test_promotion(self) -> None:
        assert classify_category(subtype="Order", amount_type="Promotion", description="Principal") == (
            "revenue",
            "promotion",
        )


class TestClassifyFulfillment:
    """Modèle logistique : valeur exacte puis mots-clés."""

    @pytest.mark.parametrize(
        ("fulfillment", "expected"),
        [
            ("Amazon", "FBA"),
            ("AFN", "FBA"),
            ("Merchant", "FBM"),
            ("MFN", "FBM"),
            ("AWD", "AWD"),
            ("SWA", "SWA"),
        ],
    )
    def test_exact_values(self, fulfillment: str, expected: str) -> None:
        assert classify_fulfillment(fulfillment=fulfillment) == expected

    def test_keyword_in_description(self) -> None:
        assert classify_fulfillment(description="Fulfilled by Amazon order") == "FBA"

    def test_whole_word_only(self) -> None:
        """« fbaxyz » ne contient pas le mot FBA."""
        assert classify_fulfillment(sku="FBAXYZ-01") == "Unknown"

    def test_awd_before_fba(self) -> None:
        assert classify_fulfillment(description="AWD transfer to FBA") == "AWD"

    def test_default_unknown(self) -> None:
        assert classify_fulfillment() == "Unknown"


class TestKeywordRule:
    def test_and_any_of(self) -> None:
        rule = KeywordRule(("fee",), ("fee", "storage"), and_any_of=("storage",))
        assert rule.matches("storage fee")
        assert not rule.matches("closing fee")

    def test_first_match_default(self) -> None:
        assert first_match([], "anything", ("x", "y")) == ("x", "y")
