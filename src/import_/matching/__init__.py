"""
Patient matching for report imports.

This module handles:
- Building normalized match keys from natural-key fields
- Resolving zero-or-one existing patient per incoming record
- Flagging ambiguous keys for manual resolution
"""

from src.import_.matching.patient_matcher import (
    MatchResult,
    MatchStatus,
    PatientMatcher,
    build_match_key,
)

__all__ = [
    "PatientMatcher",
    "MatchResult",
    "MatchStatus",
    "build_match_key",
]
