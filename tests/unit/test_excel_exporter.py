"""Tests pour exporters/excel.py — export Excel et résumé console."""

from __future__ import annotations

import datetime
from pathlib import Path

import openpyxl
import pytest

from diag_ecom.config.loader import AppConfig
from diag_ecom.engine.aggregator import aggregate
from diag_ecom.exporters.excel import (
    ALERT_COLUMNS,
    COUNTRY_COLUMNS,
    MONTH_COLUMNS,
    TYPE_COLUMNS,
    build_overview,
    build_sheets,
    export,
    export_to_bytes,
    print_summary,
)
from diag_ecom.models import (
    AnalysisResult,
    DiscrepancyAlert,
    FileDescriptor,
    FileError,
    NormalizedTransaction,
    RawRow,
)


def _make_tx(**overrides: object) -> NormalizedTransaction:
    """Helper pour construire une NormalizedTransaction."""
    defaults: dict[str, object] = {
        "file_id": "f1",
        "order_id": "402-0001",
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
        "amount": 100.0,
        "amount_converted": 100.0,
        "raw_row": RawRow({}),
    }
    defaults.update(overrides)
    return NormalizedTransaction(**defaults)  # type: ignore[arg-type]


def _make_alert(**overrides: object) -> DiscrepancyAlert:
    """Helper pour construire une DiscrepancyAlert."""
    defaults: dict[str, object] = {
        "type": "calculation_error",
        "severity": "critical",
        "scope": "France",
        "description": "Total recalculé incohérent",
        "expected_value": 100.02,
        "actual_value": 100.0,
        "difference": -0.02,
    }
    defaults.update(overrides)
    return DiscrepancyAlert(**defaults)  # type: ignore[arg-type]


def _make_result(alerts: list[DiscrepancyAlert] | None = None, errors: list[FileError] | None = None) -> AnalysisResult:
    txs = [
        _make_tx(),
        _make_tx(category="fee", subcategory="fba", amount=15.0, amount_converted=15.0, flags=("currency_gap",)),
    ]
    files = [
        FileDescriptor(
            "f1", "amazon.fr_transactions.csv", "transaction", "amazon.fr", "France", "EUR", "EU", 2,
            (datetime.date(2024, 3, 1), datetime.date(2024, 3, 1)), {"amount": "total"},
        )
    ]
    return AnalysisResult(
        files=files,
        transactions=txs,
        aggregates=aggregate(txs, files),
        alerts=alerts if alerts is not None else [_make_alert()],
        errors=errors or [],
    )


class TestExportNominal:
    """Tests de l'export Excel nominal."""

    def test_sheets_created(self, tmp_path: Path, sample_config: AppConfig) -> None:
        """Synthèse en premier, puis les vues détaillées."""
        output = tmp_path / "output.xlsx"
        export(_make_result(), output, sample_config)

        wb = openpyxl.load_workbook(output)
        assert wb.sheetnames == [
            "Synthèse", "Pays", "Modèles", "Frais", "SKU", "Mois", "Types", "Alertes", "Fichiers", "Transactions",
        ]

    def test_country_headers(self, tmp_path: Path, sample_config: AppConfig) -> None:
        output = tmp_path / "output.xlsx"
        export(_make_result(), output, sample_config)

        ws = openpyxl.load_workbook(output)["Pays"]
        headers = [cell.value for cell in ws[1]]
        assert headers == COUNTRY_COLUMNS
        assert ws.cell(row=2, column=1).value == "France"

    def test_alert_row(self, tmp_path: Path, sample_config: AppConfig) -> None:
        output = tmp_path / "output.xlsx"
        export(_make_result(), output, sample_config)

        ws = openpyxl.load_workbook(output)["Alertes"]
        assert [cell.value for cell in ws[1]] == ALERT_COLUMNS
        assert ws.cell(row=2, column=1).value == "calculation_error"
        assert ws.cell(row=2, column=2).value == "critical"

    def test_no_alerts_keeps_headers(self, tmp_path: Path, sample_config: AppConfig) -> None:
        output = tmp_path / "output.xlsx"
        export(_make_result(alerts=[]), output, sample_config)

        ws = openpyxl.load_workbook(output)["Alertes"]
        assert [cell.value for cell in ws[1]] == ALERT_COLUMNS
        assert ws.max_row == 1

    def test_export_to_bytes(self, sample_config: AppConfig) -> None:
        buffer = export_to_bytes(_make_result(), sample_config)
        assert buffer.tell() == 0
        wb = openpyxl.load_workbook(buffer)
        assert "Transactions" in wb.sheetnames


class TestBuildSheets:
    def test_transactions_sheet(self) -> None:
        df = build_sheets(_make_result())["Transactions"]
        assert len(df) == 2
        assert df.iloc[0]["file_name"] == "amazon.fr_transactions.csv"
        assert df.iloc[1]["flags"] == "currency_gap"

    def test_files_sheet_includes_errors(self) -> None:
        errors = [FileError("notes.pdf", "UnsupportedFormatError", "Format non supporté")]
        df = build_sheets(_make_result(errors=errors))["Fichiers"]
        assert list(df["file_name"]) == ["amazon.fr_transactions.csv", "notes.pdf"]

    def test_fee_sheet(self) -> None:
        df = build_sheets(_make_result())["Frais"]
        assert df.iloc[0]["fee_type"] == "fba"
        assert df.iloc[0]["total_amount"] == 15.0

    def test_month_sheet(self) -> None:
        df = build_sheets(_make_result())["Mois"]
        assert list(df.columns) == MONTH_COLUMNS
        assert df.iloc[0]["month"] == "2024-03"
        assert df.iloc[0]["gross_sales"] == 100.0
        assert df.iloc[0]["total_fees"] == 15.0

    def test_transaction_type_sheet(self) -> None:
        df = build_sheets(_make_result())["Types"]
        assert list(df.columns) == TYPE_COLUMNS
        assert df.to_dict("records") == [{"transaction_type": "Order", "transaction_count": 2}]

    def test_overview(self, sample_config: AppConfig) -> None:
        df = build_overview(_make_result(), sample_config)
        values = dict(zip(df["indicateur"], df["valeur"]))
        assert values["Devise de reporting"] == "EUR"
        assert values["Ventes brutes"] == 100.0
        assert values["Frais"] == 15.0
        assert values["EBITDA"] == 85.0


class TestPrintSummary:
    """Tests du résumé console."""

    def test_summary_with_alerts(self, capsys: pytest.CaptureFixture[str]) -> None:
        print_summary(_make_result(alerts=[_make_alert(), _make_alert(type="high_refund", severity="warning")]))
        output = capsys.readouterr().out

        assert "=== Résumé ===" in output
        assert "Transactions normalisées : 2" in output
        assert "Alertes : 1 critical, 1 warning, 0 info" in output
        assert "calculation_error" in output

    def test_summary_without_alerts(self, capsys: pytest.CaptureFixture[str]) -> None:
        print_summary(_make_result(alerts=[]))
        assert "Aucune alerte détectée" in capsys.readouterr().out

    def test_summary_with_errors(self, capsys: pytest.CaptureFixture[str]) -> None:
        errors = [FileError("vide.csv", "EmptyFileError", "Fichier vide : 'vide.csv'")]
        print_summary(_make_result(errors=errors))
        output = capsys.readouterr().out
        assert "Fichiers en erreur : 1" in output
        assert "vide.csv" in output
