#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path

from invoicebook.errors import AuthenticationError, ImportFileError
from invoicebook.normalizer import import_file
from invoicebook.session import session_from_token


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("invoicebook.import")


def _env(name: str) -> str | None:
    value = os.getenv(name)
    return value.strip() if value else None


def _print_progress(current: int, total: int) -> None:
    print(f"\rImported {current}/{total}", end="", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Import invoices from a .csv or .xlsx spreadsheet.")
    parser.add_argument("path", help="Spreadsheet to import; the first row must hold the headers")
    parser.add_argument("--token", default=_env("INVOICE_API_TOKEN"), help="Bearer token (JWT)")
    parser.add_argument("--user-id", default=_env("INVOICE_USER_ID"), help="Overrides the token's user id")
    args = parser.parse_args()

    if not args.token:
        raise SystemExit("Missing required value: token (--token or INVOICE_API_TOKEN)")

    path = Path(args.path)
    if not path.exists():
        raise SystemExit(f"File not found: {path}")

    try:
        session = session_from_token(args.token, user_id=args.user_id)
        report = import_file(path.name, path.read_bytes(), session, progress=_print_progress)
    except (AuthenticationError, ImportFileError) as exc:
        raise SystemExit(f"Import failed: {exc}")
    print()

    output = {
        "message": report.message,
        "total": report.total,
        "succeeded": report.succeeded,
        "failed": report.failed,
        "skipped": report.skipped,
        "errors": report.errors,
        "refreshed": report.refreshed,
        "invoice_count": len(report.invoices),
    }
    print(json.dumps(output, indent=2))
    if report.failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
