"""Modèles de données métier et hiérarchie d'exceptions."""

from __future__ import annotations

import datetime
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


# --- Exceptions métier ---


class DiagEcomError(Exception):
    """Erreur de base pour l'application diag-ecom."""


class ConfigError(DiagEcomError):
    """YAML malformé, clé manquante, valeur invalide."""


class ParseError(DiagEcomError):
    """Fichier illisible ou non décodable."""


class UnsupportedFormatError(ParseError):
    """Extension de fichier non reconnue."""


class EmptyFileError(ParseError):
    """Fichier décodé sans aucune ligne de données."""


class NoResultError(DiagEcomError):
    """Aucun fichier du lot n'a pu être lu."""


# --- Constantes de classification ---

UNKNOWN = "Unknown"

REPORT_TYPE_UNKNOWN = "unknown"

CATEGORIES = ("revenue", "refund", "fee", "reimbursement", "other")
FULFILLMENT_MODELS = ("FBA", "FBM", "AWD", "SWA", UNKNOWN)

# Drapeaux posés par la normalisation (jamais d'exception)
FLAG_INVALID_AMOUNT = "invalid_amount"
FLAG_MISSING_AMOUNT = "missing_amount"
FLAG_MISSING_CURRENCY = "missing_currency"
FLAG_CURRENCY_GAP = "currency_gap"
# Ligne de synthèse (settlement) : total déclaré sans montant de détail
FLAG_SUMMARY_ROW = "summary_row"

SEVERITIES = ("critical", "warning", "info")

SCOPE_GLOBAL = "global"


# --- Lignes brutes ---


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


@dataclass(frozen=True)
class RawRow:
    """Ligne brute produite par le décodage : colonne source → valeur scalaire.

    Les cellules vides (chaîne blanche, NaN, None) sont lues comme absentes.
    """

    cells: Mapping[str, object]

    def __post_init__(self) -> None:
        object.__setattr__(self, "cells", MappingProxyType(dict(self.cells)))

    @classmethod
    def of(cls, row: RawRow | Mapping[str, object]) -> RawRow:
        if isinstance(row, RawRow):
            return row
        return cls(row)

    def get(self, column: str | None) -> object | None:
        if column is None:
            return None
        value = self.cells.get(column)
        if _is_blank(value):
            return None
        return value

    def to_dict(self) -> dict[str, object]:
        return {k: (None if _is_blank(v) else v) for k, v in self.cells.items()}

    def __len__(self) -> int:
        return len(self.cells)


@dataclass(frozen=True)
class DecodedFile:
    """Résultat du décodage d'un fichier tabulaire."""

    headers: list[str]
    rows: list[RawRow]


# --- Dataclasses métier (frozen) ---


@dataclass(frozen=True)
class Locale:
    """Marketplace / pays / devise / région résolus pour un fichier."""

    marketplace: str
    country: str
    currency: str
    region: str
    source: str = "default"  # file_name | marketplace_column | currency_column | default


@dataclass(frozen=True)
class FileDescriptor:
    """Métadonnées d'un fichier importé (une instance par upload)."""

    file_id: str
    file_name: str
    report_type: str
    marketplace: str
    country: str
    currency: str
    region: str
    row_count: int
    date_range: tuple[datetime.date, datetime.date] | None
    column_map: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AmountLine:
    """Composante financière d'une transaction, dans la convention de signe des transactions."""

    category: str
    subcategory: str
    amount: float
    amount_converted: float


@dataclass(frozen=True)
class NormalizedTransaction:
    """Transaction canonique issue d'une ligne brute.

    Convention de signe : les frais, remboursements et indemnisations sont
    stockés en valeur absolue ; les ventes et ``other`` gardent leur signe.
    Une reprise de frais (sous-catégorie ``fee_reversal``) est aussi stockée
    en valeur absolue et vient en déduction des frais à l'agrégation.

    ``components`` détaille les colonnes d'un rapport de transactions
    (ventes produit, frais de vente, frais FBA…) ; vide, la transaction ne
    porte qu'une composante, sa catégorie et son montant.
    """

    file_id: str
    order_id: str | None
    sku: str | None
    asin: str | None
    marketplace: str
    country: str
    currency: str
    date: datetime.date | None
    transaction_type: str
    category: str
    subcategory: str
    fulfillment_model: str
    amount: float
    amount_converted: float
    raw_row: RawRow
    description: str = ""
    reported_total: float | None = None
    flags: tuple[str, ...] = ()
    components: tuple[AmountLine, ...] = ()

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags

    @property
    def lines(self) -> tuple[AmountLine, ...]:
        if self.components:
            return self.components
        if FLAG_SUMMARY_ROW in self.flags:
            return ()
        return (AmountLine(self.category, self.subcategory, self.amount, self.amount_converted),)


@dataclass(frozen=True)
class ModelBreakdown:
    """Ventes / frais / remboursements d'un modèle logistique dans un pays."""

    sales: float
    fees: float
    refunds: float


@dataclass(frozen=True)
class CountryMetrics:
    """Agrégat par pays (convertis en devise de reporting)."""

    country: str
    marketplace: str
    currency: str
    gross_sales: float
    sales_count: int
    total_refunds: float
    refund_count: int
    refund_rate: float
    fees: dict[str, float]
    total_fees: float
    fee_percent: float
    reimbursements: dict[str, float]
    total_reimbursements: float
    other_total: float
    model_breakdown: dict[str, ModelBreakdown]
    net_sales: float
    total_expenses: float
    ebitda: float
    ebitda_margin: float
    calculated_total: float
    reported_total: float | None
    transaction_count: int


@dataclass(frozen=True)
class ModelMetrics:
    """Agrégat par modèle logistique (FBA, FBM, AWD, SWA, Unknown)."""

    model: str
    total_sales: float
    total_fees: float
    fee_percent: float
    total_refunds: float
    refund_count: int
    sales_count: int
    refund_rate: float
    countries: list[str]
    transaction_count: int


@dataclass(frozen=True)
class FeeTypeMetrics:
    """Agrégat par type de frais (sous-catégorie ``fee``)."""

    fee_type: str
    total_amount: float
    percent_of_total: float
    by_country: dict[str, float]
    transaction_count: int


@dataclass(frozen=True)
class SkuMetrics:
    """Agrégat par SKU."""

    sku: str
    asin: str | None
    total_sales: float
    total_fees: float
    fee_percent: float
    total_refunds: float
    refund_count: int
    refund_rate: float
    total_reimbursements: float
    countries: list[str]
    fulfillment_model: str
    profit: float
    profit_margin: float
    transaction_count: int


@dataclass(frozen=True)
class GlobalMetrics:
    """Totaux globaux — somme des agrégats pays."""

    total_sales: float
    total_fees: float
    total_refunds: float
    total_reimbursements: float
    other_total: float
    net_sales: float
    total_expenses: float
    ebitda: float
    calculated_total: float
    fee_percent: float
    refund_rate: float
    profit_margin: float
    sales_count: int
    refund_count: int
    transaction_count: int
    sku_count: int
    countries_count: int


@dataclass(frozen=True)
class MonthMetrics:
    """Agrégat par mois calendaire (clé ``YYYY-MM``), lignes datées uniquement."""

    month: str
    gross_sales: float
    total_refunds: float
    total_fees: float
    net_sales: float
    transaction_count: int


@dataclass(frozen=True)
class FileQuality:
    """Couverture des champs obligatoires pour un fichier."""

    file_id: str
    file_name: str
    row_count: int
    missing_amount: int
    invalid_amount: int
    missing_currency: int
    currency_gaps: dict[str, int]


@dataclass(frozen=True)
class Aggregates:
    """Vues dérivées d'un ensemble de transactions (jamais source de vérité)."""

    by_country: dict[str, CountryMetrics]
    by_model: dict[str, ModelMetrics]
    by_fee_type: dict[str, FeeTypeMetrics]
    by_sku: dict[str, SkuMetrics]
    global_metrics: GlobalMetrics
    data_quality: dict[str, FileQuality]
    by_month: dict[str, MonthMetrics] = field(default_factory=dict)
    by_transaction_type: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class DiscrepancyAlert:
    """Incohérence détectée, signalée et jamais corrigée automatiquement."""

    type: str
    severity: str
    scope: str
    description: str
    expected_value: float | None = None
    actual_value: float | None = None
    difference: float | None = None
    reference: str | None = None
    recommendation: str = ""


# --- Traitement par lot ---


@dataclass(frozen=True)
class FileError:
    """Fichier du lot écarté (format non supporté, fichier vide, illisible)."""

    file_name: str
    error_type: str
    message: str


@dataclass(frozen=True)
class FileOutcome:
    """Résultat du traitement d'un fichier du lot."""

    index: int
    total: int
    file_name: str
    descriptor: FileDescriptor | None
    transactions: tuple[NormalizedTransaction, ...]
    error: FileError | None = None


@dataclass(frozen=True)
class BatchProgress:
    """Événement de progression émis entre deux fichiers."""

    processed: int
    total: int
    file_name: str
    ok: bool

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return self.processed / self.total * 100


@dataclass(frozen=True)
class AnalysisResult:
    """Résultat complet d'un lot.

    Convention : les champs ``list[]`` ne doivent pas être mutés après
    construction.
    """

    files: list[FileDescriptor]
    transactions: list[NormalizedTransaction]
    aggregates: Aggregates
    alerts: list[DiscrepancyAlert]
    errors: list[FileError]
