"""
Migration: Recompute violator_user_ids for resolved session reports.

The violation ledger counts report_violators rows instead of reading the
decision. Reports resolved before those rows existed (or whose cached
violator_user_ids list is stale) are rewritten from their decision and the
class's current members.

Usage:
    python -m migrations.backfill_violator_user_ids [--dry-run]
"""
import sys
import os

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import SessionLocal
from app.models.db_models import LearningClassDB, ReportStatus, SessionReportDB
from app.services.session_reports import set_violators, violator_user_ids


def run_migration(dry_run: bool = False) -> int:
    """Returns the number of reports whose violator list changed."""
    db = SessionLocal()
    changed = 0
    try:
        reports = (
            db.query(SessionReportDB)
            .filter(
                SessionReportDB.status == ReportStatus.RESOLVED,
                SessionReportDB.decision.isnot(None),
            )
            .all()
        )

        classes = {}
        for report in reports:
            learning_class = classes.get(report.class_id)
            if learning_class is None:
                learning_class = db.query(LearningClassDB).filter(LearningClassDB.id == report.class_id).first()
                classes[report.class_id] = learning_class
            if learning_class is None:
                print(f"Skipping report {report.id}: class {report.class_id} not found")
                continue

            expected = violator_user_ids(report.decision, learning_class)
            cached = sorted(report.violator_user_ids or [])
            indexed = sorted(v.user_id for v in report.violators)
            if cached != sorted(expected) or indexed != sorted(expected):
                print(f"Report {report.id}: {cached} / {indexed} -> {expected}")
                set_violators(report, expected)
                changed += 1

        if dry_run:
            db.rollback()
            print(f"Dry run: {changed} of {len(reports)} reports would change")
        else:
            db.commit()
            print(f"Updated {changed} of {len(reports)} reports")
    finally:
        db.close()

    return changed


if __name__ == "__main__":
    run_migration(dry_run="--dry-run" in sys.argv)
