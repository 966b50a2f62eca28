"""Tests unitaires pour le point d'entrée CLI main.py."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import patch

import openpyxl
import pytest

from diag_ecom.main import EXIT_CONFIG, EXIT_NO_RESULT, EXIT_UNEXPECTED, main, parse_args


class TestParseArgs:
    def test_defaults(self) -> None:
        args = parse_args(["exports/", "diagnostic.xlsx"])
        assert (args.input_dir, args.output_file) == ("exports/", "diagnostic.xlsx")
        assert args.config_dir == "./config/"
        assert args.log_level == "INFO"

    def test_options(self) -> None:
        args = parse_args(["exports/", "diagnostic.xlsx", "--config-dir", "/etc/diag", "--log-level", "DEBUG"])
        assert args.config_dir == "/etc/diag"
        assert args.log_level == "DEBUG"

    @pytest.mark.parametrize("argv", [[], ["exports/"], ["exports/", "d.xlsx", "--log-level", "VERBOSE"]])
    def test_usage_errors(self, argv: list[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            parse_args(argv)
        assert exc_info.value.code == 2

    def test_help_lists_extensions_and_exit_codes(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit):
            parse_args(["--help"])
        out = " ".join(capsys.readouterr().out.split())
        assert ".xlsx" in out and ".tsv" in out
        assert "Codes de sortie" in out


class TestMain:
    def test_empty_input_dir(self, tmp_path: Path, fixtures_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        input_dir = tmp_path / "exports"
        input_dir.mkdir()
        with pytest.raises(SystemExit) as exc_info:
            main([str(input_dir), str(tmp_path / "out.xlsx"), "--config-dir", str(fixtures_dir / "config")])
        assert exc_info.value.code == EXIT_NO_RESULT == 3
        assert "ERREUR : Aucun fichier n'a pu être lu" in capsys.readouterr().out

    def test_negative_rate_is_config_error(self, tmp_path: Path) -> None:
        (tmp_path / "exchange_rates.yaml").write_text("rates:\n  USD: -1\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["exports/", "out.xlsx", "--config-dir", str(tmp_path)])
        assert exc_info.value.code == EXIT_CONFIG == 2

    def test_unexpected_error(self, fixtures_dir: Path) -> None:
        with patch("diag_ecom.main.PipelineOrchestrator.run", side_effect=RuntimeError("boom")):
            with pytest.raises(SystemExit) as exc_info:
                main(["exports/", "out.xlsx", "--config-dir", str(fixtures_dir / "config")])
        assert exc_info.value.code == EXIT_UNEXPECTED == 1

    def test_full_run(self, tmp_path: Path, fixtures_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        output = tmp_path / "diagnostic.xlsx"
        main([str(fixtures_dir / "amazon"), str(output), "--config-dir", str(fixtures_dir / "config")])

        assert "Synthèse" in openpyxl.load_workbook(output).sheetnames
        assert "=== Résumé ===" in capsys.readouterr().out

    def test_log_level_applied(self, tmp_path: Path, fixtures_dir: Path) -> None:
        with patch("logging.basicConfig") as mock_basic:
            with pytest.raises(SystemExit):
                main([str(tmp_path), "out.xlsx", "--config-dir", str(fixtures_dir / "config"), "--log-level", "DEBUG"])
        mock_basic.assert_called_once()
        assert mock_basic.call_args.kwargs["level"] == logging.DEBUG
