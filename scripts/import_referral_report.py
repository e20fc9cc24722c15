#!/usr/bin/env python3
"""
Import a referral report (CSV or XLSX) into Intake from the command line.

This script is used by intake staff for bulk loads outside the web console.
It uploads the report, prints the review batch (new / updated / skipped),
and commits the new and updated records (minus any excluded rows) after
confirmation.

The import process:
1. Uploads the file and receives a review batch (nothing written yet)
2. Prints the per-row review with field-level changes
3. Commits the batch, or discards it if the operator declines

Usage:
    python scripts/import_referral_report.py <report_file> <operator_email> --env dev
    python scripts/import_referral_report.py referrals.xlsx jane.doe@example.com --env staging --yes

Requirements:
    - INTAKE_SERVICE_SECRET set to the service auth signing secret
    - The intake package installed (pip install -e .)
"""

import argparse
import base64
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx

from src.core.auth import Permissions, create_service_token

# Environment configuration
ENVIRONMENTS = {
    "local": {"intake_url": "http://localhost:8000"},
    "dev": {"intake_url": "https://intake-dev.example.internal"},
    "staging": {"intake_url": "https://intake-staging.example.internal"},
    "prod": {"intake_url": "https://intake.example.internal"},
}

SUPPORTED_SUFFIXES = {".csv", ".xlsx"}

CLI_SERVICE_NAME = "intake-cli"
CLI_PERMISSIONS = [Permissions.IMPORT_READ, Permissions.IMPORT_WRITE]


def upload_report(
    intake_url: str, token: str, file_name: str, file_content: bytes
) -> dict[str, Any]:
    """Upload a report and return the review batch."""
    response = httpx.post(
        f"{intake_url}/import/reports",
        headers={"Authorization": f"Bearer {token}"},
        json={
            "file_name": file_name,
            "data": base64.b64encode(file_content).decode("utf-8"),
        },
        timeout=120.0,
    )
    response.raise_for_status()
    result: dict[str, Any] = response.json()
    return result


def commit_review(
    intake_url: str,
    token: str,
    review_id: str,
    stoplight_status: str,
    auto_merge_safe: bool,
    selected_new: list[int] | None = None,
    selected_updated: list[int] | None = None,
    referral_date: datetime | None = None,
) -> dict[str, Any]:
    """Commit a review batch; None selections keep every item."""
    payload: dict[str, Any] = {
        "stoplight_status": stoplight_status,
        "auto_merge_safe": auto_merge_safe,
    }
    if referral_date is not None:
        payload["referral_date"] = referral_date.isoformat()
    if selected_new is not None:
        payload["selected_new"] = selected_new
    if selected_updated is not None:
        payload["selected_updated"] = selected_updated

    response = httpx.post(
        f"{intake_url}/import/reports/{review_id}/commit",
        headers={"Authorization": f"Bearer {token}"},
        json=payload,
        timeout=300.0,
    )
    response.raise_for_status()
    result: dict[str, Any] = response.json()
    return result


def discard_review(intake_url: str, token: str, review_id: str) -> None:
    response = httpx.delete(
        f"{intake_url}/import/reports/{review_id}",
        headers={"Authorization": f"Bearer {token}"},
        timeout=30.0,
    )
    response.raise_for_status()


def print_review(review: dict[str, Any], verbose: bool) -> None:
    print(f"\nReview {review['review_id']} ({review['file_format']}, rep: {review['rep_name']})")
    print(f"  Total rows: {review['total_rows']}")
    print(f"  New: {len(review['new_records'])}")
    print(f"  Updated: {len(review['updated_records'])}")
    print(f"  Skipped: {len(review['skipped_records'])}")

    if not verbose:
        return

    for item in review["updated_records"]:
        print(f"\n  [UPDATE] row {item['row_number']}: {item['patient_name']}")
        for change in item["changes"]:
            print(
                f"      {change['entity']}.{change['field']}: "
                f"{change['from_value']!r} -> {change['to_value']!r}"
            )
    for item in review["skipped_records"]:
        print(f"  [SKIP] row {item['row_number']}: {item['patient_name']} ({item['reason']})")


def selection_excluding(items: list[dict[str, Any]], excluded_rows: set[int]) -> list[int]:
    """Indices of review items whose source row is not excluded."""
    return [item["index"] for item in items if item["row_number"] not in excluded_rows]


def print_http_error(e: httpx.HTTPStatusError) -> None:
    print(f"Error: Request failed with status {e.response.status_code}", file=sys.stderr)
    try:
        error_detail = e.response.json()
        print(f"  Detail: {error_detail.get('detail', e.response.text)}", file=sys.stderr)
    except ValueError:
        print(f"  Response: {e.response.text}", file=sys.stderr)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Import a referral report into Intake",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Review a report and confirm before committing
    python scripts/import_referral_report.py referrals.csv jane.doe@example.com --env dev -v

    # Leave rows 4 and 9 out of the commit
    python scripts/import_referral_report.py referrals.csv jane.doe@example.com --exclude-row 4 --exclude-row 9

    # Backdate the referrals on created orders
    python scripts/import_referral_report.py referrals.csv jane.doe@example.com --referral-date 2025-02-14

    # Commit without prompting, flagging new records yellow
    python scripts/import_referral_report.py referrals.xlsx jane.doe@example.com \\
        --env staging --yes --stoplight yellow

    # Review only; the batch is discarded
    python scripts/import_referral_report.py referrals.csv jane.doe@example.com --dry-run
        """,
    )

    parser.add_argument(
        "file_path",
        type=Path,
        help="Path to the CSV or XLSX report to import",
    )

    parser.add_argument(
        "operator_email",
        help="Email of the operator the import is recorded against",
    )

    parser.add_argument(
        "--env",
        choices=list(ENVIRONMENTS),
        default="dev",
        help="Target environment (default: dev)",
    )

    parser.add_argument(
        "--stoplight",
        choices=["green", "yellow", "red"],
        default="green",
        help="Stoplight status for created records (default: green)",
    )

    parser.add_argument(
        "--referral-date",
        type=datetime.fromisoformat,
        default=None,
        metavar="YYYY-MM-DD",
        help="Referral date stamped on created orders (default: now)",
    )

    parser.add_argument(
        "--overwrite-with-blanks",
        action="store_true",
        help="Allow empty report cells to clear populated fields",
    )

    parser.add_argument(
        "--exclude-row",
        dest="excluded_rows",
        type=int,
        action="append",
        default=[],
        metavar="ROW",
        help="Source row number to leave out of the commit (repeatable)",
    )

    parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Commit without asking for confirmation",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the review and discard it without committing",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print field-level changes and skip reasons",
    )

    args = parser.parse_args()

    # Validate inputs
    if not args.file_path.exists():
        print(f"Error: File not found: {args.file_path}", file=sys.stderr)
        sys.exit(1)

    if args.file_path.suffix.lower() not in SUPPORTED_SUFFIXES:
        print(f"Error: Expected a .csv or .xlsx file, got: {args.file_path}", file=sys.stderr)
        sys.exit(1)

    secret = os.getenv("INTAKE_SERVICE_SECRET")
    if not secret:
        print("Error: INTAKE_SERVICE_SECRET is not set", file=sys.stderr)
        sys.exit(1)

    intake_url = ENVIRONMENTS[args.env]["intake_url"]
    if args.verbose:
        print(f"Environment: {args.env}")
        print(f"Intake URL: {intake_url}")
        print(f"File: {args.file_path}")

    file_content = args.file_path.read_bytes()
    print(f"Read {len(file_content):,} bytes from {args.file_path}")

    token = create_service_token(
        CLI_SERVICE_NAME,
        secret=secret,
        email=args.operator_email,
        permissions=CLI_PERMISSIONS,
    )

    try:
        review = upload_report(intake_url, token, args.file_path.name, file_content)
    except httpx.HTTPStatusError as e:
        print_http_error(e)
        sys.exit(1)
    except httpx.HTTPError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print_review(review, args.verbose)
    review_id = review["review_id"]

    excluded = set(args.excluded_rows)
    selected_new = selection_excluding(review["new_records"], excluded)
    selected_updated = selection_excluding(review["updated_records"], excluded)
    if excluded:
        print(f"Excluding rows: {', '.join(map(str, sorted(excluded)))}")

    if not selected_new and not selected_updated:
        print("\nNothing to import.")
        discard_review(intake_url, token, review_id)
        sys.exit(0)

    if args.dry_run:
        print("\n[DRY RUN] Discarding review without committing")
        discard_review(intake_url, token, review_id)
        sys.exit(0)

    if not args.yes:
        answer = input("\nCommit all new and updated records? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            discard_review(intake_url, token, review_id)
            print("Discarded.")
            sys.exit(0)

    print(f"Committing to {args.env}...")
    try:
        result = commit_review(
            intake_url,
            token,
            review_id,
            args.stoplight,
            auto_merge_safe=not args.overwrite_with_blanks,
            selected_new=selected_new if excluded else None,
            selected_updated=selected_updated if excluded else None,
            referral_date=args.referral_date,
        )
    except httpx.HTTPStatusError as e:
        print_http_error(e)
        sys.exit(1)
    except httpx.HTTPError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("\nImport complete!")
    print(f"  Patients created: {result.get('created', 0)}")
    print(f"  Orders created: {result.get('dependents_created', 0)}")
    print(f"  Equipment created: {result.get('linked_created', 0)}")
    print(f"  Updated: {result.get('updated', 0)}")
    print(f"  Unchanged: {result.get('unchanged', 0)}")
    print(f"  Skipped: {result.get('skipped', 0)}")

    if result.get("warnings"):
        print(f"  Warnings: {len(result['warnings'])}")
        for warning in result["warnings"]:
            print(f"    - {warning}")


if __name__ == "__main__":
    main()
