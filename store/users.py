from __future__ import annotations

import uuid
from datetime import UTC, datetime

from store.db import Database


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")


def create_user(
    db: Database,
    *,
    name: str,
    user_type: str = "volunteer",
    status: str = "active",
    email: str | None = None,
) -> str:
    user_id = str(uuid.uuid4())
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO users(user_id, name, email, type, status, created_at)
            VALUES(?, ?, ?, ?, ?, ?);
            """,
            (user_id, name, email, user_type, status, _utc_now_iso()),
        )
        db.conn.commit()
    return user_id


def find_active_admin(db: Database) -> str | None:
    with db.lock:
        row = db.conn.execute(
            """
            SELECT user_id
            FROM users
            WHERE type = 'admin' AND status = 'active'
            ORDER BY created_at ASC
            LIMIT 1;
            """
        ).fetchone()
    return str(row["user_id"]) if row is not None else None


def register_device(
    db: Database,
    *,
    user_id: str,
    fcm_token: str,
    platform: str = "android",
    device_name: str | None = None,
    app_version: str | None = None,
) -> str:
    now_iso = _utc_now_iso()
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO user_devices(
              device_id, user_id, fcm_token, platform, device_name, app_version,
              is_active, last_used_at
            )
            VALUES(?, ?, ?, ?, ?, ?, 1, ?)
            ON CONFLICT(fcm_token) DO UPDATE SET
              user_id = excluded.user_id,
              platform = excluded.platform,
              device_name = COALESCE(excluded.device_name, device_name),
              app_version = COALESCE(excluded.app_version, app_version),
              is_active = 1,
              last_used_at = excluded.last_used_at;
            """,
            (
                str(uuid.uuid4()),
                user_id,
                fcm_token,
                platform,
                device_name,
                app_version,
                now_iso,
            ),
        )
        db.conn.commit()
        row = db.conn.execute(
            "SELECT device_id FROM user_devices WHERE fcm_token = ?;", (fcm_token,)
        ).fetchone()
    return str(row["device_id"])


def active_device_tokens(db: Database, user_ids: list[str]) -> list[str]:
    if not user_ids:
        return []
    placeholders = ",".join("?" for _ in user_ids)
    with db.lock:
        rows = db.conn.execute(
            f"""
            SELECT fcm_token
            FROM user_devices
            WHERE user_id IN ({placeholders}) AND is_active = 1
            ORDER BY user_id, device_id;
            """,
            user_ids,
        ).fetchall()
    return [str(r["fcm_token"]) for r in rows]


def delete_device_tokens(db: Database, tokens: list[str]) -> int:
    if not tokens:
        return 0
    placeholders = ",".join("?" for _ in tokens)
    with db.lock:
        cursor = db.conn.execute(
            f"DELETE FROM user_devices WHERE fcm_token IN ({placeholders});", tokens
        )
        db.conn.commit()
    return cursor.rowcount


def insert_notifications(
    db: Database,
    *,
    user_ids: list[str],
    title: str,
    message: str,
    category: str,
) -> int:
    now_iso = _utc_now_iso()
    with db.lock:
        db.conn.executemany(
            """
            INSERT INTO notifications(notification_id, user_id, title, message, category, is_read, sent_at)
            VALUES(?, ?, ?, ?, ?, 0, ?);
            """,
            [
                (str(uuid.uuid4()), user_id, title, message, category, now_iso)
                for user_id in user_ids
            ],
        )
        db.conn.commit()
    return len(user_ids)


def list_notifications(db: Database, user_id: str, *, unread_only: bool = False) -> list[dict]:
    unread_sql = "AND is_read = 0" if unread_only else ""
    with db.lock:
        rows = db.conn.execute(
            f"""
            SELECT notification_id, user_id, title, message, category, is_read, sent_at
            FROM notifications
            WHERE user_id = ? {unread_sql}
            ORDER BY sent_at DESC;
            """,
            (user_id,),
        ).fetchall()
    return [{k: r[k] for k in r.keys()} for r in rows]
