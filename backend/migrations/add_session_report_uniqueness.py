"""
Migration: Unique indexes for session reports.

- uq_session_report_reporter: one report per reporter per session
- uq_report_evidence_position / uq_report_admin_note_position: one entry
  per position, so the append-only order of evidence and notes is total

Refuses to build an index while duplicates exist; they must be merged by
hand first, otherwise the index build would fail half way.
"""
from sqlalchemy import create_engine, text
import os

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/skillbridge"
)

# index name -> (table, columns)
UNIQUE_INDEXES = {
    "uq_session_report_reporter": ("session_reports", "class_id, session_number, reported_by_user_id"),
    "uq_report_evidence_position": ("report_evidence", "report_id, position"),
    "uq_report_admin_note_position": ("report_admin_notes", "report_id, position"),
}


def index_exists(conn, index_name: str) -> bool:
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM pg_indexes
            WHERE indexname = :index_name
        )
    """), {"index_name": index_name})
    return result.fetchone()[0]


def find_duplicates(conn, table: str, columns: str):
    return conn.execute(text(f"""
        SELECT {columns}, COUNT(*) AS n
        FROM {table}
        GROUP BY {columns}
        HAVING COUNT(*) > 1
    """)).fetchall()


def run_migration():
    """Add the unique indexes that are still missing."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        for index_name, (table, columns) in UNIQUE_INDEXES.items():
            if index_exists(conn, index_name):
                print(f"{index_name} already exists")
                continue

            duplicates = find_duplicates(conn, table, columns)
            if duplicates:
                print(f"Found {len(duplicates)} duplicated ({columns}) groups in {table}:")
                for row in duplicates:
                    print(f"  {tuple(row)}")
                print(f"Resolve these before building {index_name}.")
                continue

            conn.execute(text(f"CREATE UNIQUE INDEX {index_name} ON {table} ({columns})"))
            conn.commit()
            print(f"Created {index_name} on {table}")


if __name__ == "__main__":
    run_migration()
