from __future__ import annotations

import sqlite3
import uuid
from datetime import UTC, datetime

from normalize.bmkg_time import ParsedDateTime
from normalize.earthquake import EarthquakeRecord
from store.db import Database


SOURCE_BMKG = "bmkg"
SOURCE_MANUAL = "manual"
CATEGORY_EARTHQUAKE = "earthquake"

STATUS_ONGOING = "ongoing"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")


def find_existing_disaster(
    db: Database, record: EarthquakeRecord, event: ParsedDateTime
) -> dict | None:
    """Exact-match lookup on the feed dedup key.

    No tolerance is applied to coordinates or magnitude; a value re-emitted
    with different rounding is a different event.
    """
    with db.lock:
        row = db.conn.execute(
            """
            SELECT *
            FROM disasters
            WHERE source = ?
              AND category = ?
              AND lat = ?
              AND long = ?
              AND magnitude = ?
              AND date = ?
              AND time = ?
            LIMIT 1;
            """,
            (
                SOURCE_BMKG,
                CATEGORY_EARTHQUAKE,
                record.latitude,
                record.longitude,
                record.magnitude,
                event.date,
                event.time,
            ),
        ).fetchone()
    if row is None:
        return None
    return {k: row[k] for k in row.keys()}


def insert_disaster(db: Database, disaster: dict) -> dict:
    row = {
        "disaster_id": str(uuid.uuid4()),
        "description": "",
        "status": STATUS_ONGOING,
        "location": None,
        "coordinate": None,
        "lat": None,
        "long": None,
        "magnitude": None,
        "depth": None,
        "shakemap_url": None,
        "reported_by": None,
        "created_at": _utc_now_iso(),
        "completed_at": None,
        "completed_by": None,
        **disaster,
    }
    columns = list(row.keys())
    with db.lock:
        try:
            db.conn.execute(
                f"""
                INSERT INTO disasters({", ".join(columns)})
                VALUES({", ".join("?" for _ in columns)});
                """,
                [row[c] for c in columns],
            )
            db.conn.commit()
        except sqlite3.Error:
            db.conn.rollback()
            raise
    return row


def get_disaster(db: Database, disaster_id: str) -> dict | None:
    with db.lock:
        row = db.conn.execute(
            "SELECT * FROM disasters WHERE disaster_id = ?;", (disaster_id,)
        ).fetchone()
    if row is None:
        return None
    return {k: row[k] for k in row.keys()}


def list_disasters(
    db: Database,
    *,
    status: str | None = None,
    source: str | None = None,
    limit: int = 100,
) -> list[dict]:
    where: list[str] = []
    params: list[object] = []
    if status:
        where.append("status = ?")
        params.append(status)
    if source:
        where.append("source = ?")
        params.append(source)
    where_sql = f"WHERE {' AND '.join(where)}" if where else ""
    params.append(limit)

    with db.lock:
        rows = db.conn.execute(
            f"""
            SELECT *
            FROM disasters
            {where_sql}
            ORDER BY date DESC, time DESC, created_at DESC
            LIMIT ?;
            """,
            params,
        ).fetchall()
    return [{k: r[k] for k in r.keys()} for r in rows]


def count_disasters(db: Database, *, source: str | None = None) -> int:
    with db.lock:
        if source is None:
            row = db.conn.execute("SELECT COUNT(*) AS n FROM disasters;").fetchone()
        else:
            row = db.conn.execute(
                "SELECT COUNT(*) AS n FROM disasters WHERE source = ?;", (source,)
            ).fetchone()
    return int(row["n"])


def mark_disaster_completed(
    db: Database, disaster_id: str, *, completed_by: str
) -> None:
    with db.lock:
        try:
            db.conn.execute(
                """
                UPDATE disasters
                SET status = ?,
                    completed_at = ?,
                    completed_by = ?
                WHERE disaster_id = ?;
                """,
                (STATUS_COMPLETED, _utc_now_iso(), completed_by, disaster_id),
            )
            db.conn.commit()
        except sqlite3.Error:
            db.conn.rollback()
            raise


def assign_volunteer(db: Database, disaster_id: str, user_id: str) -> str:
    with db.lock:
        db.conn.execute(
            """
            INSERT OR IGNORE INTO disaster_volunteers(volunteer_id, disaster_id, user_id, assigned_at)
            VALUES(?, ?, ?, ?);
            """,
            (str(uuid.uuid4()), disaster_id, user_id, _utc_now_iso()),
        )
        db.conn.commit()
        row = db.conn.execute(
            """
            SELECT volunteer_id
            FROM disaster_volunteers
            WHERE disaster_id = ? AND user_id = ?;
            """,
            (disaster_id, user_id),
        ).fetchone()
    return str(row["volunteer_id"])


def get_assignment(db: Database, disaster_id: str, user_id: str) -> dict | None:
    with db.lock:
        row = db.conn.execute(
            """
            SELECT volunteer_id, disaster_id, user_id, assigned_at
            FROM disaster_volunteers
            WHERE disaster_id = ? AND user_id = ?;
            """,
            (disaster_id, user_id),
        ).fetchone()
    if row is None:
        return None
    return {k: row[k] for k in row.keys()}


def list_assigned_users(
    db: Database, disaster_id: str, *, exclude_user_id: str | None = None
) -> list[dict]:
    params: list[object] = [disaster_id]
    exclude_sql = ""
    if exclude_user_id is not None:
        exclude_sql = "AND dv.user_id != ?"
        params.append(exclude_user_id)
    with db.lock:
        rows = db.conn.execute(
            f"""
            SELECT u.user_id, u.name, u.type, u.status, dv.assigned_at
            FROM disaster_volunteers dv
            JOIN users u ON u.user_id = dv.user_id
            WHERE dv.disaster_id = ? {exclude_sql}
            ORDER BY dv.assigned_at ASC;
            """,
            params,
        ).fetchall()
    return [{k: r[k] for k in r.keys()} for r in rows]


def insert_report(
    db: Database,
    *,
    disaster_id: str,
    volunteer_id: str,
    title: str,
    description: str,
    lat: float | None,
    long: float | None,
    is_final_stage: bool,
) -> dict:
    report = {
        "report_id": str(uuid.uuid4()),
        "disaster_id": disaster_id,
        "title": title,
        "description": description,
        "lat": lat,
        "long": long,
        "is_final_stage": 1 if is_final_stage else 0,
        "reported_by": volunteer_id,
        "created_at": _utc_now_iso(),
    }
    columns = list(report.keys())
    with db.lock:
        try:
            db.conn.execute(
                f"""
                INSERT INTO disaster_reports({", ".join(columns)})
                VALUES({", ".join("?" for _ in columns)});
                """,
                [report[c] for c in columns],
            )
            db.conn.commit()
        except sqlite3.Error:
            db.conn.rollback()
            raise
    return report
