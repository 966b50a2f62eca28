"""Agrégation des transactions normalisées par pays, modèle, type de frais et SKU.

Fonctions pures : les agrégats sont recalculés à partir de la liste de
transactions, jamais mis à jour incrémentalement. Les sommes passent par
``math.fsum`` pour que le résultat ne dépende pas de l'ordre des lignes.
"""

from __future__ import annotations

import math
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable, Iterator, Sequence

from diag_ecom.engine.rules import FEE_REVERSAL
from diag_ecom.models import (
    FLAG_CURRENCY_GAP,
    FLAG_INVALID_AMOUNT,
    FLAG_MISSING_AMOUNT,
    FLAG_MISSING_CURRENCY,
    UNKNOWN,
    Aggregates,
    AmountLine,
    CountryMetrics,
    FeeTypeMetrics,
    FileDescriptor,
    FileQuality,
    GlobalMetrics,
    ModelBreakdown,
    ModelMetrics,
    MonthMetrics,
    NormalizedTransaction,
    SkuMetrics,
)


def percent(numerator: float, denominator: float) -> float:
    """``numerator / denominator * 100``, 0 si le dénominateur est nul."""
    if denominator == 0:
        return 0.0
    return numerator / denominator * 100


def _lines(transactions: Iterable[NormalizedTransaction], category: str) -> Iterator[AmountLine]:
    for tx in transactions:
        for line in tx.lines:
            if line.category == category:
                yield line


def _signed(line: AmountLine) -> float:
    """Montant d'une composante à la synthèse : une reprise de frais vient en déduction."""
    return -line.amount_converted if line.subcategory == FEE_REVERSAL else line.amount_converted


def _total(transactions: Iterable[NormalizedTransaction], category: str) -> float:
    return math.fsum(_signed(line) for line in _lines(transactions, category))


def _count(transactions: Iterable[NormalizedTransaction], category: str, subcategory: str) -> int:
    """Transactions portant au moins une composante ``category`` / ``subcategory``."""
    return sum(
        1
        for tx in transactions
        if any(line.category == category and line.subcategory == subcategory for line in tx.lines)
    )


def _sales_count(transactions: Iterable[NormalizedTransaction]) -> int:
    return _count(transactions, "revenue", "sales")


def _refund_count(transactions: Iterable[NormalizedTransaction]) -> int:
    # Remboursements du principal uniquement, pas des frais de port ni des reprises de frais
    return _count(transactions, "refund", "refund")


def _by_subcategory(transactions: Iterable[NormalizedTransaction], category: str) -> dict[str, float]:
    groups: dict[str, list[float]] = defaultdict(list)
    for line in _lines(transactions, category):
        groups[line.subcategory].append(_signed(line))
    return {key: math.fsum(groups[key]) for key in sorted(groups)}


def _group(
    transactions: Iterable[NormalizedTransaction], key: Callable[[NormalizedTransaction], str]
) -> dict[str, list[NormalizedTransaction]]:
    groups: dict[str, list[NormalizedTransaction]] = defaultdict(list)
    for tx in transactions:
        groups[key(tx)].append(tx)
    return {k: groups[k] for k in sorted(groups)}


def _most_common(values: Iterable[str], default: str) -> str:
    """Valeur la plus fréquente ; égalité départagée par ordre alphabétique."""
    counts = Counter(values)
    if not counts:
        return default
    return min(counts, key=lambda v: (-counts[v], v))


def _model_breakdown(transactions: Sequence[NormalizedTransaction]) -> dict[str, ModelBreakdown]:
    return {
        model: ModelBreakdown(
            sales=_total(txs, "revenue"),
            fees=_total(txs, "fee"),
            refunds=_total(txs, "refund"),
        )
        for model, txs in _group(transactions, lambda tx: tx.fulfillment_model).items()
    }


def country_metrics(country: str, transactions: Sequence[NormalizedTransaction]) -> CountryMetrics:
    """Agrégat d'un pays."""
    gross_sales = _total(transactions, "revenue")
    total_refunds = _total(transactions, "refund")
    fees = _by_subcategory(transactions, "fee")
    total_fees = _total(transactions, "fee")
    reimbursements = _by_subcategory(transactions, "reimbursement")
    total_reimbursements = _total(transactions, "reimbursement")
    other_total = _total(transactions, "other")

    sales_count = _sales_count(transactions)
    refund_count = _refund_count(transactions)

    net_sales = gross_sales - total_refunds
    total_expenses = total_fees
    ebitda = net_sales - total_expenses
    calculated_total = ebitda + total_reimbursements + other_total

    reported = [tx.reported_total for tx in transactions if tx.reported_total is not None]

    return CountryMetrics(
        country=country,
        marketplace=_most_common((tx.marketplace for tx in transactions), UNKNOWN),
        currency=_most_common((tx.currency for tx in transactions), UNKNOWN),
        gross_sales=gross_sales,
        sales_count=sales_count,
        total_refunds=total_refunds,
        refund_count=refund_count,
        refund_rate=percent(refund_count, sales_count),
        fees=fees,
        total_fees=total_fees,
        fee_percent=percent(total_fees, net_sales),
        reimbursements=reimbursements,
        total_reimbursements=total_reimbursements,
        other_total=other_total,
        model_breakdown=_model_breakdown(transactions),
        net_sales=net_sales,
        total_expenses=total_expenses,
        ebitda=ebitda,
        ebitda_margin=percent(ebitda, net_sales),
        calculated_total=calculated_total,
        reported_total=math.fsum(reported) if reported else None,
        transaction_count=len(transactions),
    )


def model_metrics(model: str, transactions: Sequence[NormalizedTransaction]) -> ModelMetrics:
    total_sales = _total(transactions, "revenue")
    total_refunds = _total(transactions, "refund")
    total_fees = _total(transactions, "fee")
    sales_count = _sales_count(transactions)
    refund_count = _refund_count(transactions)
    return ModelMetrics(
        model=model,
        total_sales=total_sales,
        total_fees=total_fees,
        fee_percent=percent(total_fees, total_sales - total_refunds),
        total_refunds=total_refunds,
        refund_count=refund_count,
        sales_count=sales_count,
        refund_rate=percent(refund_count, sales_count),
        countries=sorted({tx.country for tx in transactions}),
        transaction_count=len(transactions),
    )


def fee_type_metrics(transactions: Sequence[NormalizedTransaction]) -> dict[str, FeeTypeMetrics]:
    """Frais par sous-catégorie ; les reprises de frais apparaissent en négatif."""
    by_type: dict[str, list[tuple[str, float]]] = defaultdict(list)
    for tx in transactions:
        for line in tx.lines:
            if line.category == "fee":
                by_type[line.subcategory].append((tx.country, _signed(line)))
    grand_total = math.fsum(amount for entries in by_type.values() for _, amount in entries)

    result: dict[str, FeeTypeMetrics] = {}
    for fee_type in sorted(by_type):
        entries = by_type[fee_type]
        total = math.fsum(amount for _, amount in entries)
        countries: dict[str, list[float]] = defaultdict(list)
        for country, amount in entries:
            countries[country].append(amount)
        result[fee_type] = FeeTypeMetrics(
            fee_type=fee_type,
            total_amount=total,
            percent_of_total=percent(total, grand_total),
            by_country={c: math.fsum(countries[c]) for c in sorted(countries)},
            transaction_count=len(entries),
        )
    return result


def sku_metrics(sku: str, transactions: Sequence[NormalizedTransaction]) -> SkuMetrics:
    total_sales = _total(transactions, "revenue")
    total_fees = _total(transactions, "fee")
    total_refunds = _total(transactions, "refund")
    total_reimbursements = _total(transactions, "reimbursement")
    sales_count = _sales_count(transactions)
    refund_count = _refund_count(transactions)

    net_sales = total_sales - total_refunds
    profit = net_sales - total_fees + total_reimbursements
    asins = sorted({tx.asin for tx in transactions if tx.asin})
    models = [tx.fulfillment_model for tx in transactions if tx.fulfillment_model != UNKNOWN]

    return SkuMetrics(
        sku=sku,
        asin=asins[0] if asins else None,
        total_sales=total_sales,
        total_fees=total_fees,
        fee_percent=percent(total_fees, net_sales),
        total_refunds=total_refunds,
        refund_count=refund_count,
        refund_rate=percent(refund_count, sales_count),
        total_reimbursements=total_reimbursements,
        countries=sorted({tx.country for tx in transactions}),
        fulfillment_model=_most_common(models, UNKNOWN),
        profit=profit,
        profit_margin=percent(profit, net_sales),
        transaction_count=len(transactions),
    )


def global_metrics(
    by_country: dict[str, CountryMetrics], transactions: Sequence[NormalizedTransaction]
) -> GlobalMetrics:
    """Totaux globaux, calculés comme somme des agrégats pays."""
    countries = list(by_country.values())

    def _sum(attr: str) -> float:
        return math.fsum(getattr(c, attr) for c in countries)

    total_sales = _sum("gross_sales")
    total_refunds = _sum("total_refunds")
    total_fees = _sum("total_fees")
    total_reimbursements = _sum("total_reimbursements")
    other_total = _sum("other_total")
    sales_count = sum(c.sales_count for c in countries)
    refund_count = sum(c.refund_count for c in countries)

    net_sales = _sum("net_sales")
    ebitda = _sum("ebitda")

    return GlobalMetrics(
        total_sales=total_sales,
        total_fees=total_fees,
        total_refunds=total_refunds,
        total_reimbursements=total_reimbursements,
        other_total=other_total,
        net_sales=net_sales,
        total_expenses=_sum("total_expenses"),
        ebitda=ebitda,
        calculated_total=_sum("calculated_total"),
        fee_percent=percent(total_fees, net_sales),
        refund_rate=percent(refund_count, sales_count),
        profit_margin=percent(ebitda, net_sales),
        sales_count=sales_count,
        refund_count=refund_count,
        transaction_count=sum(c.transaction_count for c in countries),
        sku_count=len({tx.sku for tx in transactions if tx.sku}),
        countries_count=len([c for c in by_country if c != UNKNOWN]),
    )


def month_metrics(transactions: Sequence[NormalizedTransaction]) -> dict[str, MonthMetrics]:
    """Agrégat par mois ``YYYY-MM`` ; les transactions sans date n'y figurent pas."""
    dated = [tx for tx in transactions if tx.date is not None]
    result: dict[str, MonthMetrics] = {}
    for month, txs in _group(dated, lambda tx: tx.date.strftime("%Y-%m")).items():
        gross_sales = _total(txs, "revenue")
        total_refunds = _total(txs, "refund")
        result[month] = MonthMetrics(
            month=month,
            gross_sales=gross_sales,
            total_refunds=total_refunds,
            total_fees=_total(txs, "fee"),
            net_sales=gross_sales - total_refunds,
            transaction_count=len(txs),
        )
    return result


def transaction_type_counts(transactions: Iterable[NormalizedTransaction]) -> dict[str, int]:
    """Nombre de lignes par type de transaction source (``Unknown`` si vide)."""
    counts = Counter(tx.transaction_type or UNKNOWN for tx in transactions)
    return {key: counts[key] for key in sorted(counts)}


def data_quality(
    transactions: Sequence[NormalizedTransaction],
    files: Iterable[FileDescriptor] | None = None,
) -> dict[str, FileQuality]:
    """Couverture montant / devise par fichier."""
    names = {f.file_id: f.file_name for f in files or ()}
    result: dict[str, FileQuality] = {}
    for file_id, txs in _group(transactions, lambda tx: tx.file_id).items():
        gaps = Counter(tx.currency for tx in txs if tx.has_flag(FLAG_CURRENCY_GAP))
        result[file_id] = FileQuality(
            file_id=file_id,
            file_name=names.get(file_id, file_id),
            row_count=len(txs),
            missing_amount=sum(1 for tx in txs if tx.has_flag(FLAG_MISSING_AMOUNT)),
            invalid_amount=sum(1 for tx in txs if tx.has_flag(FLAG_INVALID_AMOUNT)),
            missing_currency=sum(1 for tx in txs if tx.has_flag(FLAG_MISSING_CURRENCY)),
            currency_gaps={currency: gaps[currency] for currency in sorted(gaps)},
        )
    return result


def aggregate(
    transactions: Sequence[NormalizedTransaction],
    files: Iterable[FileDescriptor] | None = None,
) -> Aggregates:
    """Calcule toutes les vues agrégées d'un ensemble de transactions.

    Args:
        transactions: Transactions d'un ou plusieurs fichiers.
        files: Descripteurs des fichiers, pour nommer les lignes de qualité.

    Returns:
        Aggregates (pays, modèle, type de frais, SKU, global, qualité,
        mois, types de transaction).
    """
    by_country = {
        country: country_metrics(country, txs)
        for country, txs in _group(transactions, lambda tx: tx.country).items()
    }
    by_model = {
        model: model_metrics(model, txs)
        for model, txs in _group(transactions, lambda tx: tx.fulfillment_model).items()
    }
    by_sku = {
        sku: sku_metrics(sku, txs)
        for sku, txs in _group([tx for tx in transactions if tx.sku], lambda tx: tx.sku).items()
    }

    return Aggregates(
        by_country=by_country,
        by_model=by_model,
        by_fee_type=fee_type_metrics(transactions),
        by_sku=by_sku,
        global_metrics=global_metrics(by_country, transactions),
        data_quality=data_quality(transactions, files),
        by_month=month_metrics(transactions),
        by_transaction_type=transaction_type_counts(transactions),
    )
