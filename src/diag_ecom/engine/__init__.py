"""Moteur de normalisation et d'agrégation des transactions."""

from __future__ import annotations

from diag_ecom.engine.aggregator import aggregate
from diag_ecom.engine.column_mapper import ColumnMap, map_columns
from diag_ecom.engine.locale_resolver import resolve_locale
from diag_ecom.engine.normalizer import normalize
from diag_ecom.engine.schema_detector import detect_report_type

__all__ = [
    "ColumnMap",
    "aggregate",
    "detect_report_type",
    "map_columns",
    "normalize",
    "resolve_locale",
]
