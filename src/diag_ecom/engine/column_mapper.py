"""Résolution des champs canoniques vers les colonnes source."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from diag_ecom.models import RawRow

logger = logging.getLogger(__name__)

CANONICAL_FIELDS = (
    "order_id",
    "sku",
    "asin",
    "date",
    "amount",
    "currency",
    "country",
    "subtype",
    "fulfillment",
    "description",
    "amount_type",
    "reported_total",
)

# Colonnes détaillées d'un rapport de transactions (ventes, crédits, frais, taxes)
COMPONENT_FIELDS = (
    "product_sales",
    "shipping_credits",
    "giftwrap_credits",
    "promotional_rebates",
    "product_sales_tax",
    "shipping_credits_tax",
    "giftwrap_credits_tax",
    "promotional_rebates_tax",
    "marketplace_withheld_tax",
    "selling_fees",
    "fba_fees",
    "other_transaction_fees",
    "other",
)

# Ordre de résolution : une colonne attribuée n'est plus candidate pour les
# champs suivants ("amount-description" doit revenir à description, pas à amount).
RESOLUTION_ORDER = (
    "description",
    "amount_type",
    "reported_total",
    "currency",
    "fulfillment",
    "order_id",
    "sku",
    "asin",
    "date",
    "subtype",
    "amount",
    "country",
)

# Motifs par défaut (rapports vendeur / transactions), par priorité décroissante
DEFAULT_PATTERNS: dict[str, tuple[str, ...]] = {
    "order_id": (
        "order-id", "order id", "orderid", "amazon-order-id", "merchant-order-id",
        "pedido", "order number", "ordernumber", "transaction-id",
    ),
    "sku": ("sku", "merchant-sku", "seller-sku", "msku", "seller sku", "merchant sku"),
    "asin": ("asin", "fnsku", "product-id", "item-id"),
    "date": (
        "date/time", "posted-date", "settlement-start-date", "transaction-date",
        "date", "datetime", "fecha", "posted date", "order-date",
    ),
    "amount": (
        "total", "amount", "total-amount", "net-amount", "importe", "monto",
        "product sales", "product-sales", "item price", "item-price",
    ),
    "currency": ("currency", "currency-code", "divisa", "moneda", "amount-currency"),
    "country": (
        "marketplace", "marketplace-name", "amazon-marketplace", "sales-channel",
        "marketplace name", "store", "country",
    ),
    "subtype": ("transaction-type", "type", "transaction type", "order-type", "event-type"),
    "fulfillment": ("fulfillment-channel", "fulfillment channel", "fulfillment", "fulfilment"),
    "description": (
        "amount-description", "description", "item-description", "fee-description",
        "transaction-description",
    ),
    "amount_type": ("amount-type", "amount type", "fee-type", "charge-type"),
    "reported_total": (
        "actual total amount", "actual total", "actual-amount", "settlement amount",
        "reported total", "reported-total",
    ),
}

# Variantes de vocabulaire par type de rapport (remplacent les motifs par défaut)
REPORT_TYPE_PATTERNS: dict[str, dict[str, tuple[str, ...]]] = {
    "vendor": {
        "order_id": ("purchase order", "po number", "po-number", "invoice number", "invoice-id"),
        "sku": ("model number", "vendor sku", "sku", "ean", "upc"),
        "amount": (
            "net receivables", "net shipped cogs", "shipped cogs", "invoice amount",
            "amount", "total",
        ),
        "subtype": ("deduction type", "transaction type", "chargeback type", "type"),
        "date": ("invoice date", "shipped date", "date"),
    },
    "settlement": {
        "order_id": ("order-id", "merchant-order-id", "adjustment-id"),
        "date": ("posted-date-time", "posted-date", "settlement-start-date", "deposit-date", "date"),
        "amount": ("amount", "total-amount", "net-amount"),
        "subtype": ("transaction-type", "type"),
        "reported_total": ("total-amount", "actual total", "settlement amount"),
    },
    "ads": {
        "amount": ("spend", "total cost", "cost", "amount"),
        "sku": ("advertised sku", "sku"),
        "asin": ("advertised asin", "asin"),
        "subtype": ("campaign type", "ad type", "type"),
        "description": ("campaign name", "campaign", "ad group name", "ad group"),
        "date": ("date", "start date", "day"),
    },
    "reimbursement": {
        "order_id": ("amazon-order-id", "order-id", "case-id"),
        "amount": ("amount-total", "amount total", "amount-per-unit", "amount"),
        "subtype": ("reason", "reimbursement-reason", "type"),
        "date": ("approval-date", "approval date", "date"),
        "currency": ("currency-unit", "currency"),
    },
    "refund": {
        "amount": ("refund amount", "refund-amount", "amount", "total"),
        "date": ("return-date", "return date", "refund-date", "date"),
        "subtype": ("return reason", "reason", "type"),
        "order_id": ("order-id", "order id", "amazon-order-id"),
    },
}

# Taxes avant montants hors taxe : "product sales tax" contient "product sales"
COMPONENT_RESOLUTION_ORDER = (
    "product_sales_tax",
    "shipping_credits_tax",
    "giftwrap_credits_tax",
    "promotional_rebates_tax",
    "marketplace_withheld_tax",
    "product_sales",
    "shipping_credits",
    "giftwrap_credits",
    "promotional_rebates",
    "selling_fees",
    "fba_fees",
    "other_transaction_fees",
    "other",
)

COMPONENT_PATTERNS: dict[str, tuple[str, ...]] = {
    "product_sales_tax": ("product sales tax", "product-sales-tax"),
    "shipping_credits_tax": ("shipping credits tax", "shipping-credits-tax", "postage credits tax"),
    "giftwrap_credits_tax": ("gift wrap credits tax", "giftwrap credits tax", "gift-wrap-credits-tax"),
    "promotional_rebates_tax": ("promotional rebates tax", "promotional-rebates-tax"),
    "marketplace_withheld_tax": ("marketplace withheld tax", "marketplace-withheld-tax", "marketplace facilitator tax"),
    "product_sales": ("product sales", "product-sales", "ventas de productos", "ventes de produits", "umsätze"),
    "shipping_credits": ("shipping credits", "shipping-credits", "postage credits", "abonos de envío"),
    "giftwrap_credits": ("gift wrap credits", "giftwrap credits", "gift-wrap-credits"),
    "promotional_rebates": ("promotional rebates", "promotional-rebates", "promo rebates"),
    "selling_fees": ("selling fees", "selling-fees", "referral fee", "tarifas de venta", "verkaufsgebühren"),
    "fba_fees": ("fba fees", "fba-fees", "fba fee", "fulfillment fee", "fulfilment fee"),
    "other_transaction_fees": ("other transaction fees", "other-transaction-fees", "other fees"),
    "other": ("other", "otros", "sonstige", "autre"),
}

# Types de rapport dont les lignes portent le détail des composantes
COMPONENT_REPORT_TYPES = frozenset({"transaction"})


def normalize_header(header: object) -> str:
    return str(header).lower().strip() if header is not None else ""


def patterns_for(report_type: str) -> dict[str, tuple[str, ...]]:
    """Motifs effectifs pour un type de rapport (défauts + variantes)."""
    patterns = dict(DEFAULT_PATTERNS)
    patterns.update(REPORT_TYPE_PATTERNS.get(report_type, {}))
    return patterns


def find_column(
    headers: list[str],
    patterns: Iterable[str],
    excluded: set[str] | frozenset[str] = frozenset(),
) -> str | None:
    """Première colonne dont l'en-tête normalisé contient le premier motif possible.

    Les motifs sont essayés par priorité ; pour un motif, l'ordre des en-têtes décide.
    """
    candidates = [(h, normalize_header(h)) for h in headers if h not in excluded]
    for pattern in patterns:
        needle = pattern.lower()
        for header, norm in candidates:
            if norm and needle in norm:
                return header
    return None


@dataclass(frozen=True)
class ColumnMap:
    """Champ canonique → colonne source ; un champ non résolu est absent."""

    columns: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", MappingProxyType(dict(self.columns)))

    def __contains__(self, canonical: object) -> bool:
        return canonical in self.columns

    def column_for(self, canonical: str) -> str | None:
        return self.columns.get(canonical)

    def value(self, row: RawRow, canonical: str) -> object | None:
        """Valeur brute du champ pour une ligne, None si absent ou vide."""
        return row.get(self.columns.get(canonical))

    def text(self, row: RawRow, canonical: str) -> str:
        value = self.value(row, canonical)
        return "" if value is None else str(value).strip()

    @property
    def missing(self) -> list[str]:
        return [f for f in CANONICAL_FIELDS if f not in self.columns]

    @property
    def components(self) -> list[str]:
        """Composantes détaillées résolues, dans l'ordre canonique."""
        return [f for f in COMPONENT_FIELDS if f in self.columns]

    def to_dict(self) -> dict[str, str]:
        return dict(self.columns)


def map_columns(headers: Iterable[object], report_type: str = "unknown") -> ColumnMap:
    """Résout chaque champ canonique vers une colonne source.

    Déterministe : le résultat ne dépend que du contenu et de l'ordre des en-têtes.
    """
    header_list = [str(h) for h in headers if h is not None and str(h).strip()]
    patterns = patterns_for(report_type)

    order = list(RESOLUTION_ORDER)
    if report_type in COMPONENT_REPORT_TYPES:
        patterns.update(COMPONENT_PATTERNS)
        order.extend(COMPONENT_RESOLUTION_ORDER)

    resolved: dict[str, str] = {}
    used: set[str] = set()
    for canonical in order:
        column = find_column(header_list, patterns[canonical], excluded=used)
        if column is not None:
            resolved[canonical] = column
            used.add(column)

    column_map = ColumnMap({f: resolved[f] for f in (*CANONICAL_FIELDS, *COMPONENT_FIELDS) if f in resolved})
    logger.debug("Colonnes résolues (%s) : %s", report_type, column_map.to_dict())
    if column_map.missing:
        logger.debug("Champs non résolus : %s", ", ".join(column_map.missing))
    return column_map
