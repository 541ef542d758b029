import sqlite3
from typing import List

from .config import DATABASE_URL
from .models import METRIC_FIELDS, Snapshot


def get_db_connection(database_url: str = DATABASE_URL):
    conn = sqlite3.connect(database_url.replace("sqlite:///", ""))
    conn.row_factory = sqlite3.Row
    return conn


def create_tables(database_url: str = DATABASE_URL):
    conn = get_db_connection(database_url)
    try:
        cursor = conn.cursor()
        # timestamp is UTC with millisecond resolution so consecutive reports order cleanly
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS system_data (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
                hostname TEXT,
                os TEXT,
                kernel TEXT,
                uptime TEXT,
                shell TEXT,
                cpu TEXT,
                cpu_percentage TEXT,
                mem_stats TEXT,
                ram_percentage TEXT,
                total_disk_space TEXT,
                free_disk_space TEXT,
                used_disk_space TEXT,
                system_arch TEXT
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_system_data_host_time ON system_data (hostname, timestamp)"
        )
        conn.commit()
    finally:
        conn.close()


def insert_snapshot(values: tuple, database_url: str = DATABASE_URL) -> sqlite3.Row:
    """
    Appends one snapshot. `values` holds the metric columns in METRIC_FIELDS order;
    id and timestamp are filled in by the database.
    Returns the (id, timestamp) the row was stored with.
    """
    columns = ", ".join(METRIC_FIELDS)
    placeholders = ", ".join("?" for _ in METRIC_FIELDS)
    conn = get_db_connection(database_url)
    try:
        cursor = conn.cursor()
        cursor.execute(f"INSERT INTO system_data ({columns}) VALUES ({placeholders})", values)
        conn.commit()
        cursor.execute("SELECT id, timestamp FROM system_data WHERE id = ?", (cursor.lastrowid,))
        return cursor.fetchone()
    finally:
        conn.close()


def fetch_latest_snapshots(database_url: str = DATABASE_URL) -> List[Snapshot]:
    """
    Most recent snapshot for every distinct hostname, ordered by hostname.

    When two rows for a host share the newest timestamp, the one with the
    higher id wins, so exactly one row surfaces per host.
    The returned snapshots are already redacted.
    """
    conn = get_db_connection(database_url)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT *
            FROM (
                SELECT *,
                       ROW_NUMBER() OVER (
                           PARTITION BY hostname
                           ORDER BY timestamp DESC, id DESC
                       ) AS recency
                FROM system_data
            )
            WHERE recency = 1
            ORDER BY hostname
        """)
        return [_row_to_snapshot(row).redacted() for row in cursor.fetchall()]
    finally:
        conn.close()


def count_snapshots(database_url: str = DATABASE_URL) -> int:
    conn = get_db_connection(database_url)
    try:
        return conn.execute("SELECT COUNT(*) FROM system_data").fetchone()[0]
    finally:
        conn.close()


def _row_to_snapshot(row: sqlite3.Row) -> Snapshot:
    data = {name: row[name] or "" for name in METRIC_FIELDS}
    return Snapshot(id=row["id"], timestamp=row["timestamp"] or "", **data)
