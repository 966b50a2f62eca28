"""Normalisation des lignes brutes en transactions canoniques."""

from __future__ import annotations

import datetime
import logging
import math
import re
from collections import Counter
from collections.abc import Iterable, Mapping

import pandas as pd

from diag_ecom.config.loader import DEFAULT_EXCHANGE_RATES
from diag_ecom.engine.column_mapper import ColumnMap
from diag_ecom.engine.currency import convert_to_reporting, lookup_rate
from diag_ecom.engine.locale_resolver import lookup_marketplace
from diag_ecom.engine.rules import FEE_REVERSAL, classify_category, classify_fulfillment
from diag_ecom.models import (
    FLAG_CURRENCY_GAP,
    FLAG_INVALID_AMOUNT,
    FLAG_MISSING_AMOUNT,
    FLAG_MISSING_CURRENCY,
    FLAG_SUMMARY_ROW,
    REPORT_TYPE_UNKNOWN,
    AmountLine,
    Locale,
    NormalizedTransaction,
    RawRow,
)

logger = logging.getLogger(__name__)

# Catégories stockées en valeur absolue, soustraites à l'agrégation
MAGNITUDE_CATEGORIES = frozenset({"fee", "refund", "reimbursement"})

# Rapports comptables signés : un frais positif y est une reprise de frais
LEDGER_REPORT_TYPES = frozenset({"transaction", "settlement"})

# Composante d'un rapport de transactions → (catégorie, sous-catégorie)
COMPONENT_CATEGORIES: dict[str, tuple[str, str]] = {
    "product_sales": ("revenue", "sales"),
    "shipping_credits": ("revenue", "shipping"),
    "giftwrap_credits": ("revenue", "giftwrap"),
    "promotional_rebates": ("revenue", "promotion"),
    "product_sales_tax": ("other", "tax"),
    "shipping_credits_tax": ("other", "tax"),
    "giftwrap_credits_tax": ("other", "tax"),
    "promotional_rebates_tax": ("other", "tax"),
    "marketplace_withheld_tax": ("other", "tax"),
    "selling_fees": ("fee", "referral"),
    "fba_fees": ("fee", "fba"),
}

# Composantes sans nature propre : elles prennent la classification de la ligne
GENERIC_COMPONENTS = frozenset({"other_transaction_fees", "other"})

# Ventes négatives reclassées en remboursement, avec leur sous-catégorie
REFUNDABLE_COMPONENTS: dict[str, str] = {
    "product_sales": "refund",
    "shipping_credits": "shipping",
    "giftwrap_credits": "giftwrap",
}

_CURRENCY_NOISE = re.compile(r"[^0-9,.\-()+]")
_TRAILING_TZ = re.compile(r"\s+(?!AM$|PM$)[A-Z]{2,5}$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def parse_amount(value: object) -> tuple[float, str | None]:
    """Convertit une cellule en montant.

    Returns:
        (montant, drapeau) ; le drapeau vaut ``missing_amount`` pour une
        cellule vide et ``invalid_amount`` pour une valeur illisible, le
        montant valant alors 0.
    """
    if value is None:
        return 0.0, FLAG_MISSING_AMOUNT
    if isinstance(value, bool):
        return 0.0, FLAG_INVALID_AMOUNT
    if isinstance(value, (int, float)):
        if math.isnan(value):
            return 0.0, FLAG_MISSING_AMOUNT
        if math.isinf(value):
            return 0.0, FLAG_INVALID_AMOUNT
        return float(value), None

    text = str(value).strip()
    if not text:
        return 0.0, FLAG_MISSING_AMOUNT

    cleaned = _CURRENCY_NOISE.sub("", text)
    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1]
    if cleaned.endswith("-"):
        negative = True
        cleaned = cleaned[:-1]
    if cleaned.startswith("-"):
        negative = not negative
        cleaned = cleaned[1:]
    cleaned = cleaned.lstrip("+")

    if "," in cleaned and "." in cleaned:
        # Le dernier séparateur rencontré est la décimale
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        head, _, tail = cleaned.rpartition(",")
        if cleaned.count(",") == 1 and len(tail) != 3:
            cleaned = f"{head}.{tail}"
        else:
            cleaned = cleaned.replace(",", "")
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")

    try:
        amount = float(cleaned)
    except ValueError:
        return 0.0, FLAG_INVALID_AMOUNT
    if math.isinf(amount) or math.isnan(amount):
        return 0.0, FLAG_INVALID_AMOUNT
    return (-amount if negative else amount), None


def parse_date(value: object, dayfirst: bool = False) -> datetime.date | None:
    """Date d'une cellule ; None si vide ou illisible."""
    if value is None or pd.isna(value):
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value

    text = _TRAILING_TZ.sub("", str(value).strip())
    if not text:
        return None
    if _ISO_DATE.match(text):
        dayfirst = False
    parsed = pd.to_datetime(text, errors="coerce", dayfirst=dayfirst)
    if pd.isna(parsed):
        return None
    return parsed.date()


def _row_currency(row: RawRow, column_map: ColumnMap) -> str | None:
    code = column_map.text(row, "currency").upper()
    return code or None


def signed_line(category: str, subcategory: str, amount: float, rate: float, ledger: bool = False) -> AmountLine:
    """Applique la convention de signe à un montant brut.

    Dans un rapport comptable signé (``ledger``), un frais positif est une
    reprise de frais : sous-catégorie ``fee_reversal``, stockée en valeur
    absolue comme les autres frais.
    """
    if category == "fee" and ledger and amount > 0:
        subcategory = FEE_REVERSAL
    if category in MAGNITUDE_CATEGORIES:
        amount = abs(amount)
    return AmountLine(category, subcategory, amount, convert_to_reporting(amount, rate))


def component_lines(
    row: RawRow,
    column_map: ColumnMap,
    rate: float,
    category: str,
    subcategory: str,
) -> tuple[tuple[AmountLine, ...], bool]:
    """Composantes non nulles d'une ligne de rapport de transactions.

    Returns:
        (composantes, au moins une cellule illisible).
    """
    lines: list[AmountLine] = []
    invalid = False
    for name in column_map.components:
        amount, flag = parse_amount(column_map.value(row, name))
        if flag == FLAG_INVALID_AMOUNT:
            invalid = True
        if flag is not None or amount == 0:
            continue

        if name in GENERIC_COMPONENTS:
            line_category, line_subcategory = (
                ("fee", "other") if category in ("revenue", "refund") else (category, subcategory)
            )
        else:
            line_category, line_subcategory = COMPONENT_CATEGORIES[name]

        if name in REFUNDABLE_COMPONENTS and amount < 0 and (category == "refund" or name == "product_sales"):
            line_category, line_subcategory = "refund", REFUNDABLE_COMPONENTS[name]
        lines.append(signed_line(line_category, line_subcategory, amount, rate, ledger=True))
    return tuple(lines), invalid


def normalize_row(
    row: RawRow | Mapping[str, object],
    column_map: ColumnMap,
    locale: Locale,
    rate_table: Mapping[str, float],
    *,
    file_id: str = "",
    report_type: str = REPORT_TYPE_UNKNOWN,
) -> NormalizedTransaction:
    """Une ligne brute → une transaction. Ne lève jamais pour une donnée manquante.

    Une ligne de rapport de transactions dont les colonnes détaillées
    (ventes produit, frais de vente, frais FBA…) sont renseignées porte ces
    composantes ; sa colonne ``total`` devient alors le total déclaré.
    """
    row = RawRow.of(row)
    flags: list[str] = []

    marketplace, country, region_currency = locale.marketplace, locale.country, locale.currency
    override = lookup_marketplace(column_map.value(row, "country"))
    if override is not None:
        marketplace, country, region_currency = override.marketplace, override.country, override.currency

    row_currency = _row_currency(row, column_map)
    currency = row_currency or region_currency
    if row_currency is None and override is None and locale.source == "default":
        flags.append(FLAG_MISSING_CURRENCY)

    rate, known = lookup_rate(rate_table, currency)

    amount, amount_flag = parse_amount(column_map.value(row, "amount"))
    reported_total: float | None = None
    if "reported_total" in column_map:
        raw_total, total_flag = parse_amount(column_map.value(row, "reported_total"))
        if total_flag is None:
            reported_total = convert_to_reporting(raw_total, rate)
    elif column_map.components and amount_flag is None:
        reported_total = convert_to_reporting(amount, rate)

    if amount_flag == FLAG_MISSING_AMOUNT and reported_total is not None:
        flags.append(FLAG_SUMMARY_ROW)
    elif amount_flag is not None:
        flags.append(amount_flag)
    if not known:
        flags.append(FLAG_CURRENCY_GAP)

    subtype = column_map.text(row, "subtype")
    description = column_map.text(row, "description")
    sku = column_map.text(row, "sku")
    category, subcategory = classify_category(
        subtype=subtype,
        amount_type=column_map.text(row, "amount_type"),
        description=description,
        report_type=report_type,
    )
    fulfillment_model = classify_fulfillment(
        fulfillment=column_map.text(row, "fulfillment"),
        description=description,
        sku=sku,
    )

    line = signed_line(category, subcategory, amount, rate, ledger=report_type in LEDGER_REPORT_TYPES)
    components, invalid_component = component_lines(row, column_map, rate, category, subcategory)
    if invalid_component and FLAG_INVALID_AMOUNT not in flags:
        flags.append(FLAG_INVALID_AMOUNT)

    return NormalizedTransaction(
        file_id=file_id,
        order_id=column_map.text(row, "order_id") or None,
        sku=sku or None,
        asin=column_map.text(row, "asin") or None,
        marketplace=marketplace,
        country=country,
        currency=currency,
        date=parse_date(column_map.value(row, "date"), dayfirst=locale.region not in ("NA", "Unknown")),
        transaction_type=subtype,
        category=category,
        subcategory=line.subcategory,
        fulfillment_model=fulfillment_model,
        amount=line.amount,
        amount_converted=line.amount_converted,
        raw_row=row,
        description=description,
        reported_total=reported_total,
        flags=tuple(flags),
        components=components,
    )


def normalize(
    rows: Iterable[RawRow | Mapping[str, object]],
    column_map: ColumnMap,
    locale: Locale,
    rate_table: Mapping[str, float] | None = None,
    *,
    file_id: str = "",
    report_type: str = REPORT_TYPE_UNKNOWN,
) -> list[NormalizedTransaction]:
    """Normalise toutes les lignes d'un fichier.

    Garantit exactement une transaction par ligne d'entrée : les lignes
    inclassables ou incomplètes sont conservées avec des valeurs par défaut
    et des drapeaux.

    Args:
        rows: Lignes brutes (``RawRow`` ou mappings).
        column_map: Résolution des champs canoniques.
        locale: Locale du fichier.
        rate_table: Devise → multiplicateur vers la devise de reporting.
            Par défaut, la table EUR intégrée.
        file_id: Identifiant du fichier d'origine.
        report_type: Type de rapport : classification et convention de signe.
    """
    rates = DEFAULT_EXCHANGE_RATES if rate_table is None else rate_table

    transactions = [
        normalize_row(row, column_map, locale, rates, file_id=file_id, report_type=report_type)
        for row in rows
    ]

    gaps = Counter(tx.currency for tx in transactions if FLAG_CURRENCY_GAP in tx.flags)
    for currency, count in sorted(gaps.items()):
        logger.warning("Devise %s absente de la table de taux : %d ligne(s) converties au taux 1.0", currency, count)

    invalid = sum(1 for tx in transactions if FLAG_INVALID_AMOUNT in tx.flags)
    if invalid:
        logger.warning("%d montant(s) illisible(s) ramenés à 0", invalid)

    reversals = sum(1 for tx in transactions for line in tx.lines if line.subcategory == FEE_REVERSAL)
    if reversals:
        logger.debug("%d reprise(s) de frais déduite(s) des frais", reversals)

    return transactions
