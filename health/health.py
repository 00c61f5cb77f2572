from __future__ import annotations

from datetime import UTC, datetime

from store.db import Database


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")


def record_fetch_success(
    db: Database,
    *,
    feed_kind: str,
    url: str,
    status_code: int,
    fetch_ms: int,
) -> None:
    now_iso = _utc_now_iso()
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO feed_status(
              feed_kind, url, last_fetch_at, last_success_at, consecutive_failures,
              success_count, last_status_code, last_fetch_ms
            )
            VALUES(?, ?, ?, ?, 0, 1, ?, ?)
            ON CONFLICT(feed_kind) DO UPDATE SET
              url = excluded.url,
              last_fetch_at = excluded.last_fetch_at,
              last_success_at = excluded.last_success_at,
              last_status_code = excluded.last_status_code,
              last_fetch_ms = excluded.last_fetch_ms,
              consecutive_failures = 0,
              last_error = NULL,
              last_error_at = NULL,
              success_count = success_count + 1;
            """,
            (feed_kind, url, now_iso, now_iso, status_code, fetch_ms),
        )
        db.conn.commit()


def record_fetch_error(
    db: Database,
    *,
    feed_kind: str,
    url: str,
    status_code: int | None,
    fetch_ms: int | None,
    error: str,
) -> int:
    now_iso = _utc_now_iso()
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO feed_status(
              feed_kind, url, last_fetch_at, last_error_at, consecutive_failures,
              error_count, last_status_code, last_fetch_ms, last_error
            )
            VALUES(?, ?, ?, ?, 1, 1, ?, ?, ?)
            ON CONFLICT(feed_kind) DO UPDATE SET
              url = excluded.url,
              last_fetch_at = excluded.last_fetch_at,
              last_error_at = excluded.last_error_at,
              last_status_code = COALESCE(excluded.last_status_code, last_status_code),
              last_fetch_ms = COALESCE(excluded.last_fetch_ms, last_fetch_ms),
              consecutive_failures = consecutive_failures + 1,
              error_count = error_count + 1,
              last_error = excluded.last_error;
            """,
            (feed_kind, url, now_iso, now_iso, status_code, fetch_ms, error),
        )
        db.conn.commit()
        row = db.conn.execute(
            "SELECT consecutive_failures FROM feed_status WHERE feed_kind = ?;",
            (feed_kind,),
        ).fetchone()
    return int(row["consecutive_failures"])


def list_feed_status(db: Database) -> list[dict]:
    with db.lock:
        rows = db.conn.execute(
            """
            SELECT feed_kind, url, last_fetch_at, last_success_at, last_error_at,
                   consecutive_failures, success_count, error_count,
                   last_status_code, last_fetch_ms, last_error
            FROM feed_status
            ORDER BY feed_kind ASC;
            """
        ).fetchall()
    return [{k: r[k] for k in r.keys()} for r in rows]
