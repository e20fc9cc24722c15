"""Parsing of uploaded referral reports (CSV and XLSX)."""

from src.import_.parsing.report_parser import (
    ParsedReport,
    RawRow,
    parse_report,
    resolve_rep_name,
)

__all__ = [
    "ParsedReport",
    "RawRow",
    "parse_report",
    "resolve_rep_name",
]
