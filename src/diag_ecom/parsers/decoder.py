"""Décodage des exports tabulaires (CSV / TXT / TSV / Excel) en lignes brutes."""

from __future__ import annotations

import logging
from io import BytesIO, StringIO
from pathlib import Path

import pandas as pd

from diag_ecom.models import DecodedFile, EmptyFileError, ParseError, RawRow, UnsupportedFormatError

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {".csv", ".txt", ".tsv"}
EXCEL_EXTENSIONS = {".xlsx", ".xls"}
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | EXCEL_EXTENSIONS

ENCODINGS = ("utf-8-sig", "latin-1")
SEPARATORS = (",", ";", "\t")

# Indicateurs d'une vraie ligne d'en-tête (les exports Amazon ont un préambule)
HEADER_INDICATORS = (
    "date/time", "date", "datetime", "order id", "order-id", "product sales",
    "selling fees", "fba fees", "type", "sku", "marketplace", "total", "amount",
    "currency", "asin", "description",
)
MIN_HEADER_INDICATORS = 3
HEADER_SCAN_LINES = 30


def extension_of(file_name: str) -> str:
    return Path(file_name).suffix.lower()


def is_supported(file_name: str) -> bool:
    return extension_of(file_name) in SUPPORTED_EXTENSIONS


def detect_separator(header: str, candidates: tuple[str, ...] = SEPARATORS) -> str:
    """Détecte le séparateur en comptant les occurrences dans la ligne d'en-tête."""
    if not header.strip():
        return candidates[0] if candidates else ","

    best = candidates[0]
    best_count = 0
    for sep in candidates:
        count = header.count(sep)
        if count > best_count:
            best_count = count
            best = sep
    return best


def count_header_indicators(cells: list[str]) -> int:
    """Nombre de cellules contenant au moins un indicateur d'en-tête."""
    normalized = [str(c).lower().strip() for c in cells]
    return sum(1 for cell in normalized if any(indicator in cell for indicator in HEADER_INDICATORS))


def _split_cells(line: str) -> list[str]:
    return max((line.split(sep) for sep in SEPARATORS), key=len)


def find_header_index(lines: list[list[str]]) -> int:
    """Index de la première ligne portant au moins 3 indicateurs d'en-tête, 0 sinon."""
    for idx, cells in enumerate(lines[:HEADER_SCAN_LINES]):
        if count_header_indicators(cells) >= MIN_HEADER_INDICATORS:
            return idx
    return 0


def _read_bytes(source: Path | BytesIO | bytes) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, BytesIO):
        pos = source.tell()
        source.seek(0)
        content = source.read()
        source.seek(pos)
        return content
    return Path(source).read_bytes()


def _decode_text(content: bytes, file_name: str) -> str:
    for encoding in ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ParseError(f"Encodage illisible pour '{file_name}'")


def _clean_headers(columns: list[object]) -> list[str]:
    headers: list[str] = []
    seen: dict[str, int] = {}
    for i, col in enumerate(columns):
        name = "" if col is None or (isinstance(col, float) and pd.isna(col)) else str(col).strip()
        name = name or f"Unnamed: {i}"
        if name in seen:
            seen[name] += 1
            name = f"{name}.{seen[name]}"
        else:
            seen[name] = 0
        headers.append(name)
    return headers


def _decode_delimited(content: bytes, file_name: str) -> pd.DataFrame:
    text = _decode_text(content, file_name)
    lines = text.splitlines()
    if not any(line.strip() for line in lines):
        raise EmptyFileError(f"Fichier vide : '{file_name}'")

    header_idx = find_header_index([_split_cells(line) for line in lines[:HEADER_SCAN_LINES]])
    separator = detect_separator(lines[header_idx])
    if header_idx:
        logger.info("En-tête trouvé ligne %d pour %s", header_idx + 1, file_name)

    try:
        return pd.read_csv(
            StringIO("\n".join(lines[header_idx:])),
            sep=separator,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as e:
        raise EmptyFileError(f"Fichier vide : '{file_name}'") from e
    except (pd.errors.ParserError, ValueError) as e:
        raise ParseError(f"Fichier '{file_name}' illisible : {e}") from e


def _decode_excel(content: bytes, file_name: str) -> pd.DataFrame:
    try:
        raw = pd.read_excel(BytesIO(content), sheet_name=0, header=None, dtype=object)
    except Exception as e:  # openpyxl / xlrd lèvent leurs propres exceptions
        raise ParseError(f"Classeur '{file_name}' illisible : {e}") from e

    raw = raw.dropna(how="all")
    if raw.empty:
        raise EmptyFileError(f"Fichier vide : '{file_name}'")

    scan = [[str(v) for v in row if not pd.isna(v)] for row in raw.head(HEADER_SCAN_LINES).itertuples(index=False)]
    header_pos = find_header_index(scan)

    df = raw.iloc[header_pos + 1:].copy()
    df.columns = raw.iloc[header_pos].tolist()
    return df


def decode(file_name: str, source: Path | BytesIO | bytes) -> DecodedFile:
    """Décode un fichier en en-têtes + lignes brutes.

    Raises:
        UnsupportedFormatError: Extension non reconnue.
        EmptyFileError: Aucune ligne de données (en-tête compris).
        ParseError: Contenu illisible.
    """
    extension = extension_of(file_name)
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(
            f"Format non supporté pour '{file_name}' : extensions acceptées "
            f"{', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )

    content = _read_bytes(source)
    if not content.strip():
        raise EmptyFileError(f"Fichier vide : '{file_name}'")

    if extension in TEXT_EXTENSIONS:
        df = _decode_delimited(content, file_name)
    else:
        df = _decode_excel(content, file_name)

    headers = _clean_headers(list(df.columns))
    df.columns = headers

    if len(df) == 0:
        raise EmptyFileError(f"Aucune ligne de données dans '{file_name}'")

    rows = [RawRow(record) for record in df.to_dict(orient="records")]
    logger.debug("%s : %d colonnes, %d lignes", file_name, len(headers), len(rows))
    return DecodedFile(headers=headers, rows=rows)
