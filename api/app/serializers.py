"""Conversion des dataclasses métier vers les structures JSON de l'API."""

from __future__ import annotations

from diag_ecom.models import (
    AnalysisResult,
    CountryMetrics,
    DiscrepancyAlert,
    FeeTypeMetrics,
    FileDescriptor,
    FileError,
    FileQuality,
    GlobalMetrics,
    ModelMetrics,
    MonthMetrics,
    NormalizedTransaction,
    SkuMetrics,
)


def _r(value: float | None) -> float | None:
    return None if value is None else round(value, 2)


def serialize_file(descriptor: FileDescriptor) -> dict[str, object]:
    """Sérialise un FileDescriptor vers le format JSON de l'API."""
    date_range = None
    if descriptor.date_range is not None:
        date_range = {
            "start": descriptor.date_range[0].isoformat(),
            "end": descriptor.date_range[1].isoformat(),
        }
    return {
        "file_id": descriptor.file_id,
        "file_name": descriptor.file_name,
        "report_type": descriptor.report_type,
        "marketplace": descriptor.marketplace,
        "country": descriptor.country,
        "currency": descriptor.currency,
        "region": descriptor.region,
        "row_count": descriptor.row_count,
        "date_range": date_range,
        "column_map": descriptor.column_map,
    }


def serialize_error(error: FileError) -> dict[str, object]:
    return {"file_name": error.file_name, "error_type": error.error_type, "message": error.message}


def serialize_alert(alert: DiscrepancyAlert) -> dict[str, object]:
    """Sérialise une DiscrepancyAlert vers le format JSON de l'API."""
    return {
        "type": alert.type,
        "severity": alert.severity,
        "scope": alert.scope,
        "description": alert.description,
        "expected_value": alert.expected_value,
        "actual_value": alert.actual_value,
        "difference": alert.difference,
        "reference": alert.reference,
        "recommendation": alert.recommendation,
    }


def serialize_country(metrics: CountryMetrics) -> dict[str, object]:
    return {
        "country": metrics.country,
        "marketplace": metrics.marketplace,
        "currency": metrics.currency,
        "gross_sales": _r(metrics.gross_sales),
        "sales_count": metrics.sales_count,
        "total_refunds": _r(metrics.total_refunds),
        "refund_count": metrics.refund_count,
        "refund_rate": _r(metrics.refund_rate),
        "fees": {k: _r(v) for k, v in metrics.fees.items()},
        "total_fees": _r(metrics.total_fees),
        "fee_percent": _r(metrics.fee_percent),
        "reimbursements": {k: _r(v) for k, v in metrics.reimbursements.items()},
        "total_reimbursements": _r(metrics.total_reimbursements),
        "other_total": _r(metrics.other_total),
        "model_breakdown": {
            model: {"sales": _r(b.sales), "fees": _r(b.fees), "refunds": _r(b.refunds)}
            for model, b in metrics.model_breakdown.items()
        },
        "net_sales": _r(metrics.net_sales),
        "total_expenses": _r(metrics.total_expenses),
        "ebitda": _r(metrics.ebitda),
        "ebitda_margin": _r(metrics.ebitda_margin),
        "calculated_total": _r(metrics.calculated_total),
        "reported_total": _r(metrics.reported_total),
        "transaction_count": metrics.transaction_count,
    }


def serialize_model(metrics: ModelMetrics) -> dict[str, object]:
    return {
        "model": metrics.model,
        "total_sales": _r(metrics.total_sales),
        "total_fees": _r(metrics.total_fees),
        "fee_percent": _r(metrics.fee_percent),
        "total_refunds": _r(metrics.total_refunds),
        "refund_count": metrics.refund_count,
        "sales_count": metrics.sales_count,
        "refund_rate": _r(metrics.refund_rate),
        "countries": metrics.countries,
        "transaction_count": metrics.transaction_count,
    }


def serialize_fee_type(metrics: FeeTypeMetrics) -> dict[str, object]:
    return {
        "fee_type": metrics.fee_type,
        "total_amount": _r(metrics.total_amount),
        "percent_of_total": _r(metrics.percent_of_total),
        "by_country": {k: _r(v) for k, v in metrics.by_country.items()},
        "transaction_count": metrics.transaction_count,
    }


def serialize_sku(metrics: SkuMetrics) -> dict[str, object]:
    return {
        "sku": metrics.sku,
        "asin": metrics.asin,
        "total_sales": _r(metrics.total_sales),
        "total_fees": _r(metrics.total_fees),
        "fee_percent": _r(metrics.fee_percent),
        "total_refunds": _r(metrics.total_refunds),
        "refund_count": metrics.refund_count,
        "refund_rate": _r(metrics.refund_rate),
        "total_reimbursements": _r(metrics.total_reimbursements),
        "countries": metrics.countries,
        "fulfillment_model": metrics.fulfillment_model,
        "profit": _r(metrics.profit),
        "profit_margin": _r(metrics.profit_margin),
        "transaction_count": metrics.transaction_count,
    }


def serialize_month(metrics: MonthMetrics) -> dict[str, object]:
    return {
        "month": metrics.month,
        "gross_sales": _r(metrics.gross_sales),
        "total_refunds": _r(metrics.total_refunds),
        "total_fees": _r(metrics.total_fees),
        "net_sales": _r(metrics.net_sales),
        "transaction_count": metrics.transaction_count,
    }


def serialize_global(metrics: GlobalMetrics) -> dict[str, object]:
    return {
        "total_sales": _r(metrics.total_sales),
        "total_fees": _r(metrics.total_fees),
        "total_refunds": _r(metrics.total_refunds),
        "total_reimbursements": _r(metrics.total_reimbursements),
        "other_total": _r(metrics.other_total),
        "net_sales": _r(metrics.net_sales),
        "total_expenses": _r(metrics.total_expenses),
        "ebitda": _r(metrics.ebitda),
        "calculated_total": _r(metrics.calculated_total),
        "fee_percent": _r(metrics.fee_percent),
        "refund_rate": _r(metrics.refund_rate),
        "profit_margin": _r(metrics.profit_margin),
        "sales_count": metrics.sales_count,
        "refund_count": metrics.refund_count,
        "transaction_count": metrics.transaction_count,
        "sku_count": metrics.sku_count,
        "countries_count": metrics.countries_count,
    }


def serialize_quality(quality: FileQuality) -> dict[str, object]:
    return {
        "file_id": quality.file_id,
        "file_name": quality.file_name,
        "row_count": quality.row_count,
        "missing_amount": quality.missing_amount,
        "invalid_amount": quality.invalid_amount,
        "missing_currency": quality.missing_currency,
        "currency_gaps": quality.currency_gaps,
    }


def serialize_transaction(tx: NormalizedTransaction) -> dict[str, object]:
    """Sérialise une NormalizedTransaction vers le format JSON léger de l'API (sans ligne brute)."""
    return {
        "file_id": tx.file_id,
        "order_id": tx.order_id,
        "sku": tx.sku,
        "asin": tx.asin,
        "marketplace": tx.marketplace,
        "country": tx.country,
        "currency": tx.currency,
        "date": tx.date.isoformat() if tx.date is not None else None,
        "transaction_type": tx.transaction_type,
        "category": tx.category,
        "subcategory": tx.subcategory,
        "fulfillment_model": tx.fulfillment_model,
        "amount": tx.amount,
        "amount_converted": _r(tx.amount_converted),
        "description": tx.description,
        "flags": list(tx.flags),
        "components": [
            {
                "category": line.category,
                "subcategory": line.subcategory,
                "amount": line.amount,
                "amount_converted": _r(line.amount_converted),
            }
            for line in tx.components
        ],
    }


def serialize_response(
    result: AnalysisResult,
    summary: dict[str, object],
    include_transactions: bool = True,
) -> dict[str, object]:
    """Assemble la réponse complète AnalyzeResponse."""
    agg = result.aggregates
    response: dict[str, object] = {
        "files": [serialize_file(f) for f in result.files],
        "errors": [serialize_error(e) for e in result.errors],
        "by_country": [serialize_country(m) for m in agg.by_country.values()],
        "by_model": [serialize_model(m) for m in agg.by_model.values()],
        "by_fee_type": [serialize_fee_type(m) for m in agg.by_fee_type.values()],
        "by_sku": [serialize_sku(m) for m in agg.by_sku.values()],
        "by_month": [serialize_month(m) for m in agg.by_month.values()],
        "by_transaction_type": dict(agg.by_transaction_type),
        "global": serialize_global(agg.global_metrics),
        "data_quality": [serialize_quality(q) for q in agg.data_quality.values()],
        "alerts": [serialize_alert(a) for a in result.alerts],
        "summary": summary,
    }
    if include_transactions:
        response["transactions"] = [serialize_transaction(t) for t in result.transactions]
    return response
