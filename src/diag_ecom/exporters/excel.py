"""Export Excel multi-onglets et résumé console."""

from __future__ import annotations

from collections import Counter
from io import BytesIO
from pathlib import Path

import pandas as pd

from diag_ecom.config.loader import AppConfig
from diag_ecom.models import AnalysisResult

COUNTRY_COLUMNS = [
    "country",
    "marketplace",
    "currency",
    "gross_sales",
    "total_refunds",
    "net_sales",
    "total_fees",
    "fee_percent",
    "total_reimbursements",
    "other_total",
    "ebitda",
    "ebitda_margin",
    "calculated_total",
    "reported_total",
    "sales_count",
    "refund_count",
    "refund_rate",
    "transaction_count",
]

MODEL_COLUMNS = [
    "model",
    "total_sales",
    "total_fees",
    "fee_percent",
    "total_refunds",
    "refund_rate",
    "sales_count",
    "refund_count",
    "countries",
    "transaction_count",
]

FEE_COLUMNS = ["fee_type", "total_amount", "percent_of_total", "transaction_count", "by_country"]

MONTH_COLUMNS = ["month", "gross_sales", "total_refunds", "net_sales", "total_fees", "transaction_count"]

TYPE_COLUMNS = ["transaction_type", "transaction_count"]

SKU_COLUMNS = [
    "sku",
    "asin",
    "fulfillment_model",
    "total_sales",
    "total_fees",
    "fee_percent",
    "total_refunds",
    "refund_rate",
    "total_reimbursements",
    "profit",
    "profit_margin",
    "countries",
    "transaction_count",
]

ALERT_COLUMNS = [
    "type",
    "severity",
    "scope",
    "description",
    "expected_value",
    "actual_value",
    "difference",
    "reference",
    "recommendation",
]

FILE_COLUMNS = [
    "file_name",
    "report_type",
    "marketplace",
    "country",
    "currency",
    "region",
    "row_count",
    "date_start",
    "date_end",
    "status",
    "message",
]

TRANSACTION_COLUMNS = [
    "file_name",
    "date",
    "order_id",
    "sku",
    "asin",
    "marketplace",
    "country",
    "currency",
    "transaction_type",
    "category",
    "subcategory",
    "fulfillment_model",
    "amount",
    "amount_converted",
    "description",
    "flags",
]


def _r(value: float | None) -> float | None:
    return None if value is None else round(value, 2)


def build_sheets(result: AnalysisResult) -> dict[str, pd.DataFrame]:
    """Construit les DataFrames de chaque onglet, dans l'ordre d'écriture."""
    agg = result.aggregates

    countries = [
        {
            "country": m.country,
            "marketplace": m.marketplace,
            "currency": m.currency,
            "gross_sales": _r(m.gross_sales),
            "total_refunds": _r(m.total_refunds),
            "net_sales": _r(m.net_sales),
            "total_fees": _r(m.total_fees),
            "fee_percent": _r(m.fee_percent),
            "total_reimbursements": _r(m.total_reimbursements),
            "other_total": _r(m.other_total),
            "ebitda": _r(m.ebitda),
            "ebitda_margin": _r(m.ebitda_margin),
            "calculated_total": _r(m.calculated_total),
            "reported_total": _r(m.reported_total),
            "sales_count": m.sales_count,
            "refund_count": m.refund_count,
            "refund_rate": _r(m.refund_rate),
            "transaction_count": m.transaction_count,
        }
        for m in agg.by_country.values()
    ]

    models = [
        {
            "model": m.model,
            "total_sales": _r(m.total_sales),
            "total_fees": _r(m.total_fees),
            "fee_percent": _r(m.fee_percent),
            "total_refunds": _r(m.total_refunds),
            "refund_rate": _r(m.refund_rate),
            "sales_count": m.sales_count,
            "refund_count": m.refund_count,
            "countries": ", ".join(m.countries),
            "transaction_count": m.transaction_count,
        }
        for m in agg.by_model.values()
    ]

    fees = [
        {
            "fee_type": f.fee_type,
            "total_amount": _r(f.total_amount),
            "percent_of_total": _r(f.percent_of_total),
            "transaction_count": f.transaction_count,
            "by_country": ", ".join(f"{c}: {v:.2f}" for c, v in f.by_country.items()),
        }
        for f in sorted(agg.by_fee_type.values(), key=lambda f: f.total_amount, reverse=True)
    ]

    skus = [
        {
            "sku": s.sku,
            "asin": s.asin,
            "fulfillment_model": s.fulfillment_model,
            "total_sales": _r(s.total_sales),
            "total_fees": _r(s.total_fees),
            "fee_percent": _r(s.fee_percent),
            "total_refunds": _r(s.total_refunds),
            "refund_rate": _r(s.refund_rate),
            "total_reimbursements": _r(s.total_reimbursements),
            "profit": _r(s.profit),
            "profit_margin": _r(s.profit_margin),
            "countries": ", ".join(s.countries),
            "transaction_count": s.transaction_count,
        }
        for s in sorted(agg.by_sku.values(), key=lambda s: s.total_sales, reverse=True)
    ]

    months = [
        {
            "month": m.month,
            "gross_sales": _r(m.gross_sales),
            "total_refunds": _r(m.total_refunds),
            "net_sales": _r(m.net_sales),
            "total_fees": _r(m.total_fees),
            "transaction_count": m.transaction_count,
        }
        for m in agg.by_month.values()
    ]

    types = [{"transaction_type": t, "transaction_count": n} for t, n in agg.by_transaction_type.items()]

    alerts = [
        {
            "type": a.type,
            "severity": a.severity,
            "scope": a.scope,
            "description": a.description,
            "expected_value": a.expected_value,
            "actual_value": a.actual_value,
            "difference": a.difference,
            "reference": a.reference,
            "recommendation": a.recommendation,
        }
        for a in result.alerts
    ]

    files: list[dict[str, object]] = [
        {
            "file_name": f.file_name,
            "report_type": f.report_type,
            "marketplace": f.marketplace,
            "country": f.country,
            "currency": f.currency,
            "region": f.region,
            "row_count": f.row_count,
            "date_start": f.date_range[0] if f.date_range else None,
            "date_end": f.date_range[1] if f.date_range else None,
            "status": "ok",
            "message": "",
        }
        for f in result.files
    ]
    files.extend(
        {"file_name": e.file_name, "status": e.error_type, "message": e.message} for e in result.errors
    )

    names = {f.file_id: f.file_name for f in result.files}
    transactions = [
        {
            "file_name": names.get(t.file_id, t.file_id),
            "date": t.date,
            "order_id": t.order_id,
            "sku": t.sku,
            "asin": t.asin,
            "marketplace": t.marketplace,
            "country": t.country,
            "currency": t.currency,
            "transaction_type": t.transaction_type,
            "category": t.category,
            "subcategory": t.subcategory,
            "fulfillment_model": t.fulfillment_model,
            "amount": t.amount,
            "amount_converted": round(t.amount_converted, 2),
            "description": t.description,
            "flags": ", ".join(t.flags),
        }
        for t in result.transactions
    ]

    return {
        "Pays": pd.DataFrame(countries, columns=COUNTRY_COLUMNS),
        "Modèles": pd.DataFrame(models, columns=MODEL_COLUMNS),
        "Frais": pd.DataFrame(fees, columns=FEE_COLUMNS),
        "SKU": pd.DataFrame(skus, columns=SKU_COLUMNS),
        "Mois": pd.DataFrame(months, columns=MONTH_COLUMNS),
        "Types": pd.DataFrame(types, columns=TYPE_COLUMNS),
        "Alertes": pd.DataFrame(alerts, columns=ALERT_COLUMNS),
        "Fichiers": pd.DataFrame(files, columns=FILE_COLUMNS),
        "Transactions": pd.DataFrame(transactions, columns=TRANSACTION_COLUMNS),
    }


def build_overview(result: AnalysisResult, config: AppConfig) -> pd.DataFrame:
    """Onglet de synthèse : indicateurs globaux en devise de reporting."""
    g = result.aggregates.global_metrics
    rows = [
        ("Devise de reporting", config.reporting_currency),
        ("Fichiers traités", len(result.files)),
        ("Fichiers ignorés", len(result.errors)),
        ("Transactions", g.transaction_count),
        ("Pays", g.countries_count),
        ("SKU", g.sku_count),
        ("Ventes brutes", _r(g.total_sales)),
        ("Remboursements", _r(g.total_refunds)),
        ("Ventes nettes", _r(g.net_sales)),
        ("Frais", _r(g.total_fees)),
        ("Frais / ventes nettes (%)", _r(g.fee_percent)),
        ("Indemnisations", _r(g.total_reimbursements)),
        ("Autres", _r(g.other_total)),
        ("EBITDA", _r(g.ebitda)),
        ("Marge (%)", _r(g.profit_margin)),
        ("Taux de remboursement (%)", _r(g.refund_rate)),
        ("Total calculé", _r(g.calculated_total)),
    ]
    return pd.DataFrame(rows, columns=["indicateur", "valeur"])


def _write(result: AnalysisResult, target: Path | BytesIO, config: AppConfig) -> None:
    sheets = {"Synthèse": build_overview(result, config), **build_sheets(result)}
    with pd.ExcelWriter(target, engine="openpyxl") as writer:
        for name, df in sheets.items():
            df.to_excel(writer, sheet_name=name, index=False)


def export(result: AnalysisResult, output_path: Path, config: AppConfig) -> None:
    """Exporte le diagnostic dans un fichier Excel multi-onglets."""
    _write(result, output_path, config)


def export_to_bytes(result: AnalysisResult, config: AppConfig) -> BytesIO:
    """Exporte le diagnostic en mémoire ; le buffer est repositionné au début."""
    buffer = BytesIO()
    _write(result, buffer, config)
    buffer.seek(0)
    return buffer


def print_summary(result: AnalysisResult) -> None:
    """Affiche un résumé en console."""
    g = result.aggregates.global_metrics

    print("=== Résumé ===")
    print(f"Fichiers traités : {len(result.files)}")
    for f in result.files:
        print(f"  {f.file_name} : {f.report_type}, {f.marketplace}, {f.row_count} lignes")
    print(f"Transactions normalisées : {len(result.transactions)}")

    print(f"Ventes brutes : {g.total_sales:.2f}")
    print(f"Remboursements : {g.total_refunds:.2f}")
    print(f"Frais : {g.total_fees:.2f} ({g.fee_percent:.1f}% des ventes nettes)")
    print(f"EBITDA : {g.ebitda:.2f}")

    if not result.alerts:
        print("Aucune alerte détectée")
    else:
        severity_counts: Counter[str] = Counter(a.severity for a in result.alerts)
        print(
            f"Alertes : {severity_counts['critical']} critical, "
            f"{severity_counts['warning']} warning, {severity_counts['info']} info"
        )
        type_counts: Counter[str] = Counter(a.type for a in result.alerts)
        print("  Par type :")
        for alert_type, count in sorted(type_counts.items()):
            print(f"    {alert_type:<20s}: {count}")

    if result.errors:
        print(f"Fichiers en erreur : {len(result.errors)}")
        for e in result.errors:
            print(f"  {e.file_name} : {e.message}")
