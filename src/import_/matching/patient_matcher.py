"""
Patient matching for report imports.

Matches incoming records to existing patients by a normalized composite key
of patient name and primary insurance. Matching is exact on the normalized
key only: no fuzzy or partial-token matching, because merging into the wrong
patient is worse than a missed match the operator can still catch in the
New list.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.import_.records import MappedRecord, SubjectRecord

MatchKey = tuple[str, str]


class MatchStatus(str, Enum):
    """Outcome of matching one incoming record."""

    MATCHED = "matched"
    NO_MATCH = "no_match"
    EMPTY_KEY = "empty_key"  # Never matched, always treated as new
    MULTIPLE_MATCHES = "multiple_matches"  # Requires manual resolution


@dataclass
class MatchResult:
    """Result of matching one incoming record."""

    record: MappedRecord
    status: MatchStatus
    key: MatchKey
    subject: SubjectRecord | None = None
    candidate_count: int = 0


def normalize_key_part(value: Any) -> str:
    """Trim and upper-case a natural-key value; None becomes ''."""
    if value is None:
        return ""
    return str(value).strip().upper()


def build_match_key(name: Any, insurance: Any) -> MatchKey:
    return (normalize_key_part(name), normalize_key_part(insurance))


def is_empty_key(key: MatchKey) -> bool:
    return not any(key)


class PatientMatcher:
    """
    Matches incoming records against a pre-loaded set of patients.

    Keys for existing patients are built once at construction.
    """

    def __init__(self, existing: list[SubjectRecord]):
        self._index: dict[MatchKey, list[SubjectRecord]] = {}
        for subject in existing:
            key = build_match_key(subject.name, subject.insurance)
            if is_empty_key(key):
                continue
            self._index.setdefault(key, []).append(subject)

    def match(self, record: MappedRecord) -> MatchResult:
        key = build_match_key(record.name, record.insurance)
        if is_empty_key(key):
            return MatchResult(record=record, status=MatchStatus.EMPTY_KEY, key=key)

        candidates = self._index.get(key, [])
        if not candidates:
            return MatchResult(record=record, status=MatchStatus.NO_MATCH, key=key)
        if len(candidates) > 1:
            return MatchResult(
                record=record,
                status=MatchStatus.MULTIPLE_MATCHES,
                key=key,
                candidate_count=len(candidates),
            )
        return MatchResult(
            record=record,
            status=MatchStatus.MATCHED,
            key=key,
            subject=candidates[0],
            candidate_count=1,
        )

    def match_all(self, records: list[MappedRecord]) -> list[MatchResult]:
        return [self.match(r) for r in records]
