"""Résolution marketplace / pays / devise / région d'un fichier."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

from diag_ecom.engine.column_mapper import DEFAULT_PATTERNS, find_column
from diag_ecom.models import UNKNOWN, Locale, RawRow

logger = logging.getLogger(__name__)

# domaine → (pays, code ISO, devise, région)
MARKETPLACES: dict[str, tuple[str, str, str, str]] = {
    "amazon.com": ("USA", "US", "USD", "NA"),
    "amazon.ca": ("Canada", "CA", "CAD", "NA"),
    "amazon.com.mx": ("Mexico", "MX", "MXN", "NA"),
    "amazon.com.br": ("Brazil", "BR", "BRL", "SA"),
    "amazon.co.uk": ("UK", "GB", "GBP", "EU"),
    "amazon.de": ("Germany", "DE", "EUR", "EU"),
    "amazon.fr": ("France", "FR", "EUR", "EU"),
    "amazon.it": ("Italy", "IT", "EUR", "EU"),
    "amazon.es": ("Spain", "ES", "EUR", "EU"),
    "amazon.nl": ("Netherlands", "NL", "EUR", "EU"),
    "amazon.pl": ("Poland", "PL", "PLN", "EU"),
    "amazon.se": ("Sweden", "SE", "SEK", "EU"),
    "amazon.com.be": ("Belgium", "BE", "EUR", "EU"),
    "amazon.co.jp": ("Japan", "JP", "JPY", "APAC"),
    "amazon.com.au": ("Australia", "AU", "AUD", "APAC"),
    "amazon.sg": ("Singapore", "SG", "SGD", "APAC"),
    "amazon.in": ("India", "IN", "INR", "APAC"),
    "amazon.ae": ("UAE", "AE", "AED", "MENA"),
    "amazon.sa": ("Saudi Arabia", "SA", "SAR", "MENA"),
    "amazon.eg": ("Egypt", "EG", "EGP", "MENA"),
    "amazon.com.tr": ("Turkey", "TR", "TRY", "MENA"),
}

# Noms alternatifs rencontrés dans les noms de fichiers et colonnes marketplace
COUNTRY_ALIASES: dict[str, str] = {
    "united states": "amazon.com",
    "usa": "amazon.com",
    "etats-unis": "amazon.com",
    "united kingdom": "amazon.co.uk",
    "royaume-uni": "amazon.co.uk",
    "deutschland": "amazon.de",
    "allemagne": "amazon.de",
    "espagne": "amazon.es",
    "españa": "amazon.es",
    "italie": "amazon.it",
    "italia": "amazon.it",
    "pays-bas": "amazon.nl",
    "mexique": "amazon.com.mx",
    "belgique": "amazon.com.be",
    "japon": "amazon.co.jp",
}

_DOMAINS_LONGEST_FIRST = sorted(MARKETPLACES, key=len, reverse=True)
_CODE_TO_DOMAIN = {code: domain for domain, (_, code, _, _) in MARKETPLACES.items()}
_CURRENCY_TO_DOMAINS: dict[str, list[str]] = {}
for _domain, (_, _, _currency, _) in MARKETPLACES.items():
    _CURRENCY_TO_DOMAINS.setdefault(_currency, []).append(_domain)

# Les codes ISO ne sont acceptés que comme jetons isolés en majuscules ("report_DE_2024.csv")
_TOKEN_SEPARATORS = re.compile(r"[^0-9A-Za-zÀ-ÿ]+")


def locale_for(domain: str, source: str) -> Locale:
    country, _, currency, region = MARKETPLACES[domain]
    return Locale(marketplace=domain, country=country, currency=currency, region=region, source=source)


def unknown_locale(currency: str) -> Locale:
    return Locale(marketplace=UNKNOWN, country=UNKNOWN, currency=currency, region=UNKNOWN, source="default")


def _tokens(text: str) -> list[str]:
    return [t for t in _TOKEN_SEPARATORS.split(text) if t]


def _from_text(text: str) -> str | None:
    """Domaine reconnu dans un texte libre (nom de fichier ou valeur marketplace)."""
    lowered = text.lower()
    for domain in _DOMAINS_LONGEST_FIRST:
        if domain in lowered:
            return domain

    padded = f" {' '.join(_tokens(lowered))} "
    names = {info[0].lower(): domain for domain, info in MARKETPLACES.items()}
    names.update(COUNTRY_ALIASES)
    for name in sorted(names, key=len, reverse=True):
        if f" {name} " in padded:
            return names[name]
    return None


def _from_file_name(file_name: str) -> str | None:
    domain = _from_text(file_name)
    if domain is not None:
        return domain
    for token in _tokens(file_name):
        if token.isupper() and token in _CODE_TO_DOMAIN:
            return _CODE_TO_DOMAIN[token]
    return None


def lookup_marketplace(value: object) -> Locale | None:
    """Locale correspondant à une valeur de colonne marketplace, None si inconnue."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    domain = _from_text(text)
    if domain is None and text.upper() in _CODE_TO_DOMAIN:
        domain = _CODE_TO_DOMAIN[text.upper()]
    if domain is None:
        return None
    return locale_for(domain, "marketplace_column")


def _sample_value(sample_row: RawRow | Mapping[str, object] | None, column: str | None) -> object | None:
    if sample_row is None or column is None:
        return None
    return RawRow.of(sample_row).get(column)


def resolve_locale(
    file_name: str,
    headers: Iterable[object] = (),
    sample_row: RawRow | Mapping[str, object] | None = None,
    default_currency: str = "EUR",
) -> Locale:
    """Infère la locale d'un fichier ; ne lève jamais d'exception.

    Ordre : indice dans le nom de fichier, colonne marketplace de la ligne
    échantillon, colonne devise de la ligne échantillon, puis locale ``Unknown``
    avec la devise de reporting configurée.
    """
    domain = _from_file_name(file_name or "")
    if domain is not None:
        logger.debug("Locale %s déduite du nom de fichier %s", domain, file_name)
        return locale_for(domain, "file_name")

    header_list = [str(h) for h in headers if h is not None and str(h).strip()]

    marketplace_col = find_column(header_list, DEFAULT_PATTERNS["country"])
    by_marketplace = lookup_marketplace(_sample_value(sample_row, marketplace_col))
    if by_marketplace is not None:
        return by_marketplace

    currency_col = find_column(header_list, DEFAULT_PATTERNS["currency"])
    currency_value = _sample_value(sample_row, currency_col)
    if currency_value is not None:
        currency = str(currency_value).strip().upper()
        domains = _CURRENCY_TO_DOMAINS.get(currency, [])
        if len(domains) == 1:
            return locale_for(domains[0], "currency_column")
        if currency:
            # EUR : plusieurs marketplaces possibles, seule la devise est sûre
            return Locale(UNKNOWN, UNKNOWN, currency, UNKNOWN, "currency_column")

    logger.info("Locale non déterminée pour %s — devise par défaut %s", file_name, default_currency)
    return unknown_locale(default_currency)
