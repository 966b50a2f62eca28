"""Détection du type de rapport à partir des en-têtes de colonnes."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from diag_ecom.models import REPORT_TYPE_UNKNOWN

logger = logging.getLogger(__name__)

MIN_KEYWORD_MATCHES = 2

# Registre ordonné : en cas d'égalité, le premier type déclaré l'emporte.
REPORT_TYPE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "seller": (
        "product charges", "item price", "promotional rebates", "referral fee",
        "fba fee", "fulfillment fee", "storage fee", "closing fee", "refund",
        "chargeback", "order-id", "sku", "marketplace",
    ),
    "vendor": (
        "po units", "po net receipts", "net shipped cogs", "shortages",
        "chargebacks", "co-op", "mdf", "marketing funds", "operational deductions",
        "freight allowances", "damage allowance", "defect allowance", "bulk returns",
        "net receivables", "asin", "vendor code",
    ),
    "transaction": (
        "date/time", "settlement id", "product sales", "selling fees", "fba fees",
        "other transaction fees", "marketplace withheld tax", "tax collection model",
        "order city", "order postal", "account type", "shipping credits",
    ),
    "settlement": (
        "settlement-id", "settlement-start-date", "settlement-end-date", "deposit-date",
        "total-amount", "amount-type", "amount-description", "posted-date",
        "merchant-order-id", "adjustment-id", "fulfillment-id",
    ),
    "refund": (
        "return-date", "return date", "return reason", "refund amount", "refund-date",
        "detailed-disposition", "license-plate-number", "customer-comments",
    ),
    "ads": (
        "campaign", "ad group", "impressions", "clicks", "spend", "acos", "roas",
        "cost per click", "cpc", "advertised sku", "advertised asin", "portfolio",
        "sponsored",
    ),
    "reimbursement": (
        "reimbursement-id", "reimbursement id", "case-id", "amount-per-unit",
        "amount-total", "quantity-reimbursed", "approval-date", "original-reimbursement",
    ),
    "awd": (
        "awd", "warehousing", "distribution", "inventory-placement", "replenishment",
    ),
    "storage": (
        "storage fee", "storage-rate", "monthly-storage-fee", "average-quantity-on-hand",
        "item-volume", "product-size-tier", "storage-utilization", "long-term-storage",
    ),
    "logistics": (
        "carrier", "tracking", "shipment-id", "ship-date", "fulfillment-center",
        "ship-to", "estimated-arrival", "shipping-price",
    ),
    "tax": (
        "vat", "taxable", "tax jurisdiction", "tax-rate", "tax_calculation",
        "total_activity_value", "invoice-number", "tax_collection_responsibility",
    ),
}

REPORT_TYPES = (*REPORT_TYPE_KEYWORDS, REPORT_TYPE_UNKNOWN)


def normalize_headers(headers: Iterable[object]) -> list[str]:
    """Minuscule + trim ; les en-têtes vides ou None sont ignorés."""
    normalized: list[str] = []
    for header in headers:
        if header is None:
            continue
        text = str(header).lower().strip()
        if text:
            normalized.append(text)
    return normalized


def score_report_types(headers: Iterable[object]) -> dict[str, int]:
    """Nombre de mots-clés de chaque type présents dans au moins un en-tête."""
    normalized = normalize_headers(headers)
    return {
        report_type: sum(1 for keyword in keywords if any(keyword in h for h in normalized))
        for report_type, keywords in REPORT_TYPE_KEYWORDS.items()
    }


def detect_report_type(headers: Iterable[object], min_matches: int = MIN_KEYWORD_MATCHES) -> str:
    """Retourne le type de rapport le mieux noté, ou ``unknown``.

    Ne lève jamais d'exception : une liste vide ou sans signal donne ``unknown``.
    """
    scores = score_report_types(headers)

    best_type = REPORT_TYPE_UNKNOWN
    best_count = 0
    for report_type, count in scores.items():
        if count > best_count:
            best_type = report_type
            best_count = count

    if best_count < min_matches:
        logger.debug("Type de rapport non reconnu (meilleur score %d)", best_count)
        return REPORT_TYPE_UNKNOWN

    logger.debug("Type de rapport détecté : %s (%d mots-clés)", best_type, best_count)
    return best_type
