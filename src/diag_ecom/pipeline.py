"""Orchestrateur du traitement par lot : fichiers → transactions → agrégats → alertes."""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from collections.abc import Callable, Iterable, Iterator
from io import BytesIO
from pathlib import Path

from diag_ecom.config.loader import AppConfig
from diag_ecom.controls.discrepancies import detect_discrepancies
from diag_ecom.engine import aggregate, detect_report_type, map_columns, normalize, resolve_locale
from diag_ecom.exporters.excel import export, print_summary
from diag_ecom.models import (
    AnalysisResult,
    BatchProgress,
    FileDescriptor,
    FileError,
    FileOutcome,
    NoResultError,
    NormalizedTransaction,
    ParseError,
)
from diag_ecom.parsers import decode, is_supported

logger = logging.getLogger(__name__)

FileSource = Path | BytesIO | bytes


class PipelineOrchestrator:
    """Orchestre le pipeline fichiers → diagnostic → Excel.

    Les fichiers sont traités un par un, dans l'ordre d'upload ; les agrégats
    ne sont publiés qu'une fois tout le lot normalisé.
    """

    def run(self, input_dir: Path, output_path: Path, config: AppConfig) -> None:
        """Exécute le pipeline complet sur un répertoire."""
        files = self._detect_files(input_dir)
        result = self.analyze(files, config)

        export(result, output_path, config)
        print_summary(result)

    def run_from_buffers(
        self,
        files: dict[str, bytes],
        config: AppConfig,
        on_progress: Callable[[BatchProgress], None] | None = None,
    ) -> tuple[AnalysisResult, dict[str, object]]:
        """Exécute le pipeline à partir de fichiers en mémoire.

        Args:
            files: Dictionnaire {nom_fichier: contenu_bytes}, dans l'ordre d'upload.
            config: Configuration de l'application.
            on_progress: Rappel invoqué entre deux fichiers.

        Returns:
            Tuple (résultat, résumé).
        """
        result = self.analyze(list(files.items()), config, on_progress)
        return result, self.summarize(result, config)

    def analyze(
        self,
        files: Iterable[tuple[str, FileSource]],
        config: AppConfig,
        on_progress: Callable[[BatchProgress], None] | None = None,
    ) -> AnalysisResult:
        """Traite un lot complet.

        Raises:
            NoResultError: Aucun fichier du lot n'a pu être lu.
        """
        descriptors: list[FileDescriptor] = []
        transactions: list[NormalizedTransaction] = []
        errors: list[FileError] = []

        for outcome in self.iter_files(files, config):
            if outcome.error is not None:
                errors.append(outcome.error)
            elif outcome.descriptor is not None:
                descriptors.append(outcome.descriptor)
                transactions.extend(outcome.transactions)

            if on_progress is not None:
                on_progress(
                    BatchProgress(
                        processed=outcome.index + 1,
                        total=outcome.total,
                        file_name=outcome.file_name,
                        ok=outcome.error is None,
                    )
                )

        if not descriptors:
            reasons = "; ".join(e.message for e in errors) or "lot vide"
            raise NoResultError(f"Aucun fichier n'a pu être lu ({reasons})")

        aggregates = aggregate(transactions, descriptors)
        alerts = detect_discrepancies(aggregates, thresholds=config.thresholds)
        logger.info(
            "Lot traité : %d fichier(s), %d transaction(s), %d alerte(s), %d fichier(s) ignoré(s)",
            len(descriptors),
            len(transactions),
            len(alerts),
            len(errors),
        )

        return AnalysisResult(
            files=descriptors,
            transactions=transactions,
            aggregates=aggregates,
            alerts=alerts,
            errors=errors,
        )

    def iter_files(self, files: Iterable[tuple[str, FileSource]], config: AppConfig) -> Iterator[FileOutcome]:
        """Traite les fichiers un par un et produit un ``FileOutcome`` par fichier.

        Un échec de décodage n'interrompt pas le lot : il est rendu comme
        ``FileError`` dans le résultat du fichier concerné.
        """
        batch = list(files)
        total = len(batch)
        for index, (file_name, source) in enumerate(batch):
            try:
                descriptor, transactions = self.process_file(file_name, source, config)
            except ParseError as e:
                logger.error("Fichier %s ignoré : %s", file_name, e)
                yield FileOutcome(
                    index=index,
                    total=total,
                    file_name=file_name,
                    descriptor=None,
                    transactions=(),
                    error=FileError(file_name=file_name, error_type=type(e).__name__, message=str(e)),
                )
                continue

            yield FileOutcome(
                index=index,
                total=total,
                file_name=file_name,
                descriptor=descriptor,
                transactions=tuple(transactions),
            )

    @staticmethod
    def process_file(
        file_name: str, source: FileSource, config: AppConfig
    ) -> tuple[FileDescriptor, list[NormalizedTransaction]]:
        """Décode, classe et normalise un fichier."""
        decoded = decode(file_name, source)
        report_type = detect_report_type(decoded.headers, config.min_schema_matches)
        column_map = map_columns(decoded.headers, report_type)
        locale = resolve_locale(file_name, decoded.headers, decoded.rows[0], config.reporting_currency)

        file_id = uuid.uuid4().hex
        transactions = normalize(
            decoded.rows,
            column_map,
            locale,
            config.exchange_rates,
            file_id=file_id,
            report_type=report_type,
        )

        dates = [tx.date for tx in transactions if tx.date is not None]
        descriptor = FileDescriptor(
            file_id=file_id,
            file_name=file_name,
            report_type=report_type,
            marketplace=locale.marketplace,
            country=locale.country,
            currency=locale.currency,
            region=locale.region,
            row_count=len(decoded.rows),
            date_range=(min(dates), max(dates)) if dates else None,
            column_map=column_map.to_dict(),
        )
        logger.info(
            "%s : rapport %s, %s (%s), %d ligne(s)",
            file_name,
            report_type,
            locale.marketplace,
            locale.currency,
            descriptor.row_count,
        )
        return descriptor, transactions

    def summarize(self, result: AnalysisResult, config: AppConfig) -> dict[str, object]:
        """Construit le résumé : fichiers, totaux globaux, ventes par pays, alertes."""
        g = result.aggregates.global_metrics
        alerts_par_severite = Counter(a.severity for a in result.alerts)
        rapports_par_type = Counter(f.report_type for f in result.files)

        return {
            "devise_reporting": config.reporting_currency,
            "fichiers": {"traites": len(result.files), "ignores": len(result.errors)},
            "rapports_par_type": dict(sorted(rapports_par_type.items())),
            "transactions": len(result.transactions),
            "totaux": {
                "ventes": round(g.total_sales, 2),
                "remboursements": round(g.total_refunds, 2),
                "frais": round(g.total_fees, 2),
                "indemnisations": round(g.total_reimbursements, 2),
                "ventes_nettes": round(g.net_sales, 2),
                "ebitda": round(g.ebitda, 2),
                "total_calcule": round(g.calculated_total, 2),
            },
            "ratios": {
                "frais_pct": round(g.fee_percent, 1),
                "taux_remboursement": round(g.refund_rate, 1),
                "marge": round(g.profit_margin, 1),
            },
            "ventes_par_pays": {
                country: round(m.gross_sales, 2)
                for country, m in sorted(
                    result.aggregates.by_country.items(), key=lambda item: item[1].gross_sales, reverse=True
                )
            },
            "alertes_par_severite": dict(alerts_par_severite),
        }

    @staticmethod
    def _detect_files(input_dir: Path) -> list[tuple[str, Path]]:
        """Fichiers supportés du répertoire, triés par nom."""
        found: list[tuple[str, Path]] = []
        if not input_dir.is_dir():
            logger.error("Répertoire d'entrée introuvable : %s", input_dir)
            return found
        for path in sorted(input_dir.iterdir()):
            if not path.is_file():
                continue
            if not is_supported(path.name):
                logger.info("Fichier %s ignoré : extension non supportée", path.name)
                continue
            found.append((path.name, path))
        return found
