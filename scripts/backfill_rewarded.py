#!/usr/bin/env python3
"""
Mark already-resolved reports as rewarded.

Reports resolved before the one-time reward flag existed have
points_awarded = False, so toggling them away from and back to `resolved`
would award their owner a second time. This sets the flag without touching
any balance.

Safe by default (dry-run). Use --apply to persist changes.
"""

import argparse


def backfill(db, apply: bool = False) -> int:
    """Return the number of reports that are (or would be) flagged."""
    from cars_backend.db.models import Report, ReportStatus

    reports = (
        db.query(Report)
        .filter(Report.status == ReportStatus.RESOLVED, Report.points_awarded.is_(False))
        .all()
    )
    if apply:
        for report in reports:
            report.points_awarded = True
    return len(reports)


def main() -> int:
    parser = argparse.ArgumentParser(description="Flag resolved reports as already rewarded.")
    parser.add_argument("--apply", action="store_true", help="Persist changes (default: dry-run)")
    args = parser.parse_args()

    from cars_backend.db.session import get_db_session, init_db

    init_db()

    with get_db_session() as db:
        flagged = backfill(db, apply=args.apply)

    mode = "APPLY" if args.apply else "DRY-RUN"
    print(f"[{mode}] Resolved reports flagged as rewarded: {flagged}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
