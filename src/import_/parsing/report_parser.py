"""
Parser for uploaded referral reports.

Supports two shapes:
- Delimited text (.csv): header row followed by data rows
- Workbook (.xlsx): first sheet, optionally preceded by a banner row such as
  "Sales Rep: Jane Roe" that carries the rep name
"""

import csv
import io
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from src.exceptions import ParseError

CSV_EXTENSIONS = (".csv",)
WORKBOOK_EXTENSIONS = (".xlsx",)

_BANNER_PREFIX = re.compile(r"^.*?:\s*")


@dataclass
class RawRow:
    """One data row keyed by header text."""

    row_number: int
    values: dict[str, Any]


@dataclass
class ParsedReport:
    """Rows extracted from an uploaded report."""

    file_format: str
    rows: list[RawRow] = field(default_factory=list)
    # Rep name found in a workbook banner, if any
    banner_rep_name: str | None = None


def parse_report(content: bytes, filename: str) -> ParsedReport:
    """
    Parse an uploaded report by file extension.

    Args:
        content: Raw file bytes
        filename: Original filename (used to pick the parser)

    Returns:
        ParsedReport with data rows

    Raises:
        ParseError: If the file type is unsupported or the content is malformed
    """
    ext = Path(filename).suffix.lower()
    if ext in CSV_EXTENSIONS:
        return _parse_csv(content)
    if ext in WORKBOOK_EXTENSIONS:
        return _parse_workbook(content)
    raise ParseError(
        f"Unsupported file type '{ext or filename}'. Please use CSV or XLSX."
    )


def resolve_rep_name(report: ParsedReport, constants: dict[str, Any], fallback: str) -> str:
    """
    Pick the rep name for a report.

    A workbook banner wins, then the mapping's rep_name constant, then the
    configured fallback.
    """
    if report.banner_rep_name:
        return report.banner_rep_name
    constant = constants.get("rep_name")
    if isinstance(constant, str) and constant.strip():
        return constant.strip()
    return fallback


def extract_banner_rep_name(banner: str) -> str | None:
    """
    Take everything after the first colon of a banner cell.

    Examples:
        "Sales Rep: Jane Roe" -> "Jane Roe"
        "Report for: Acme: West" -> "Acme: West"
        "Jane Roe" -> "Jane Roe"
    """
    name = _BANNER_PREFIX.sub("", banner.strip(), count=1).strip()
    return name or None


def _parse_csv(content: bytes) -> ParsedReport:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"CSV file is not valid UTF-8: {e}") from e

    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ParseError("CSV file has no header row")

    rows: list[RawRow] = []
    try:
        for values in reader:
            # Extra cells beyond the header land under the None key
            values.pop(None, None)  # type: ignore[call-overload]
            if _is_blank(values.values()):
                continue
            rows.append(RawRow(row_number=reader.line_num, values=dict(values)))
    except csv.Error as e:
        raise ParseError(f"Malformed CSV at line {reader.line_num}: {e}") from e

    return ParsedReport(file_format="csv", rows=rows)


def _parse_workbook(content: bytes) -> ParsedReport:
    try:
        wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError, ValueError) as e:
        raise ParseError(f"Could not read workbook: {e}") from e

    try:
        if not wb.worksheets:
            raise ParseError("Workbook has no sheets")
        ws = wb.worksheets[0]
        all_rows = [list(r) for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()

    if all(_is_blank(r) for r in all_rows):
        return ParsedReport(file_format="xlsx")

    banner_rep_name: str | None = None
    header_index = 0
    if _is_banner(all_rows[0], all_rows[1] if len(all_rows) > 1 else []):
        banner_rep_name = extract_banner_rep_name(str(all_rows[0][0]))
        header_index = 1

    if header_index >= len(all_rows):
        return ParsedReport(file_format="xlsx", banner_rep_name=banner_rep_name)

    headers = [str(h).strip() if h is not None else "" for h in all_rows[header_index]]
    if not any(headers):
        raise ParseError(f"Workbook header row {header_index + 1} is empty")

    rows: list[RawRow] = []
    for offset, cells in enumerate(all_rows[header_index + 1 :], start=header_index + 2):
        if _is_blank(cells):
            continue
        values = {
            header: cells[idx] if idx < len(cells) else None
            for idx, header in enumerate(headers)
            if header
        }
        rows.append(RawRow(row_number=offset, values=values))

    return ParsedReport(file_format="xlsx", rows=rows, banner_rep_name=banner_rep_name)


def _is_banner(cells: list[Any], next_cells: list[Any]) -> bool:
    """
    A banner row has text in A1 and nothing else.

    A lone A1 without a colon is only a banner when the next row is wider,
    otherwise it is the header of a single-column sheet.
    """
    if not cells or not isinstance(cells[0], str) or not cells[0].strip():
        return False
    if not _is_blank(cells[1:]):
        return False
    if ":" in cells[0]:
        return True
    return sum(1 for c in next_cells if not _is_blank([c])) > 1


def _is_blank(cells: Any) -> bool:
    return all(c is None or (isinstance(c, str) and not c.strip()) for c in cells)
