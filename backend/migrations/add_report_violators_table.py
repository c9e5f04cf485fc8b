"""
Migration: Create report_violators.

One row per (resolved report, user at fault), indexed on user_id, so the
violation ledger counts in SQL instead of scanning every resolution.

Run backfill_violator_user_ids afterwards to fill it for reports resolved
before the table existed.
"""
from sqlalchemy import create_engine, text
import os

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/skillbridge"
)


def run_migration():
    """Create the report_violators table and its indexes."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        result = conn.execute(text("""
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_name = 'report_violators'
            )
        """))
        if result.fetchone()[0]:
            print("report_violators table already exists")
            return

        conn.execute(text("""
            CREATE TABLE report_violators (
                id VARCHAR(36) PRIMARY KEY,
                report_id VARCHAR(36) NOT NULL REFERENCES session_reports(id) ON DELETE CASCADE,
                user_id VARCHAR(36) NOT NULL,
                CONSTRAINT uq_report_violator UNIQUE (report_id, user_id)
            )
        """))
        conn.execute(text("CREATE INDEX ix_report_violators_report_id ON report_violators (report_id)"))
        conn.execute(text("CREATE INDEX ix_report_violators_user_id ON report_violators (user_id)"))
        conn.commit()
        print("Created report_violators table")


if __name__ == "__main__":
    run_migration()
