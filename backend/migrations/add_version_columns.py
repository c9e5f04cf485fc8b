"""
Migration: Add optimistic concurrency counters.

- learning_classes.version: presence webhooks update a class and its
  sessions as one aggregate
- session_reports.version: admins and reporters update the same report
  (resolution, status, evidence, notes)

The `version` column lets concurrent writers detect each other; rows that
existed before the column start at 1.
"""
from sqlalchemy import create_engine, text
import os

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/skillbridge"
)

VERSIONED_TABLES = ["learning_classes", "session_reports"]


def run_migration():
    """Add version column to every versioned table."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        for table in VERSIONED_TABLES:
            result = conn.execute(text("""
                SELECT column_name
                FROM information_schema.columns
                WHERE table_name = :table AND column_name = 'version'
            """), {"table": table})

            if result.fetchone():
                print(f"{table}.version already exists")
                continue

            conn.execute(text(f"""
                ALTER TABLE {table}
                ADD COLUMN version INTEGER NOT NULL DEFAULT 1
            """))
            print(f"Added version column to {table} table")

        conn.commit()


if __name__ == "__main__":
    run_migration()
