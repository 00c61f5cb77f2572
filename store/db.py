from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Database:
    conn: sqlite3.Connection
    lock: threading.Lock


_MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version INTEGER NOT NULL PRIMARY KEY
        );

        CREATE TABLE IF NOT EXISTS users (
          user_id TEXT NOT NULL PRIMARY KEY,
          name TEXT NOT NULL,
          email TEXT NULL,
          type TEXT NOT NULL DEFAULT 'volunteer',
          status TEXT NOT NULL DEFAULT 'active',
          created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS users_type_status_idx ON users(type, status);

        CREATE TABLE IF NOT EXISTS disasters (
          disaster_id TEXT NOT NULL PRIMARY KEY,
          title TEXT NOT NULL,
          description TEXT NOT NULL DEFAULT '',
          source TEXT NOT NULL,
          category TEXT NOT NULL,
          status TEXT NOT NULL,
          date TEXT NOT NULL,
          time TEXT NOT NULL,
          location TEXT NULL,
          coordinate TEXT NULL,
          lat REAL NULL,
          long REAL NULL,
          magnitude REAL NULL,
          depth REAL NULL,
          shakemap_url TEXT NULL,
          reported_by TEXT NULL,
          created_at TEXT NOT NULL,
          completed_at TEXT NULL,
          completed_by TEXT NULL,

          FOREIGN KEY (reported_by) REFERENCES users(user_id) ON DELETE SET NULL
        );

        CREATE INDEX IF NOT EXISTS disasters_status_idx ON disasters(status);
        CREATE INDEX IF NOT EXISTS disasters_created_at_idx ON disasters(created_at);

        CREATE UNIQUE INDEX IF NOT EXISTS disasters_bmkg_event_uq
          ON disasters(source, category, lat, long, magnitude, date, time)
          WHERE source = 'bmkg' AND category = 'earthquake';

        CREATE TABLE IF NOT EXISTS disaster_volunteers (
          volunteer_id TEXT NOT NULL PRIMARY KEY,
          disaster_id TEXT NOT NULL,
          user_id TEXT NOT NULL,
          assigned_at TEXT NOT NULL,
          FOREIGN KEY (disaster_id) REFERENCES disasters(disaster_id) ON DELETE CASCADE,
          FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
        );

        CREATE UNIQUE INDEX IF NOT EXISTS disaster_volunteers_uq
          ON disaster_volunteers(disaster_id, user_id);

        CREATE TABLE IF NOT EXISTS disaster_reports (
          report_id TEXT NOT NULL PRIMARY KEY,
          disaster_id TEXT NOT NULL,
          title TEXT NOT NULL,
          description TEXT NOT NULL DEFAULT '',
          lat REAL NULL,
          long REAL NULL,
          is_final_stage INTEGER NOT NULL DEFAULT 0,
          reported_by TEXT NOT NULL,
          created_at TEXT NOT NULL,
          FOREIGN KEY (disaster_id) REFERENCES disasters(disaster_id) ON DELETE CASCADE,
          FOREIGN KEY (reported_by) REFERENCES disaster_volunteers(volunteer_id)
        );

        CREATE INDEX IF NOT EXISTS disaster_reports_disaster_idx
          ON disaster_reports(disaster_id);

        CREATE TABLE IF NOT EXISTS notifications (
          notification_id TEXT NOT NULL PRIMARY KEY,
          user_id TEXT NOT NULL,
          title TEXT NOT NULL,
          message TEXT NOT NULL,
          category TEXT NOT NULL,
          is_read INTEGER NOT NULL DEFAULT 0,
          sent_at TEXT NOT NULL,
          FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS notifications_user_idx ON notifications(user_id, is_read);

        CREATE TABLE IF NOT EXISTS user_devices (
          device_id TEXT NOT NULL PRIMARY KEY,
          user_id TEXT NOT NULL,
          fcm_token TEXT NOT NULL,
          platform TEXT NOT NULL DEFAULT 'android',
          device_name TEXT NULL,
          app_version TEXT NULL,
          is_active INTEGER NOT NULL DEFAULT 1,
          last_used_at TEXT NULL,
          FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
        );

        CREATE UNIQUE INDEX IF NOT EXISTS user_devices_token_uq ON user_devices(fcm_token);
        CREATE INDEX IF NOT EXISTS user_devices_user_active_idx
          ON user_devices(user_id, is_active);
        """,
    ),
    (
        2,
        """
        CREATE TABLE IF NOT EXISTS feed_status (
          feed_kind TEXT NOT NULL PRIMARY KEY,
          url TEXT NOT NULL,
          last_fetch_at TEXT NULL,
          last_success_at TEXT NULL,
          last_error_at TEXT NULL,
          consecutive_failures INTEGER NOT NULL DEFAULT 0,
          success_count INTEGER NOT NULL DEFAULT 0,
          error_count INTEGER NOT NULL DEFAULT 0,
          last_status_code INTEGER NULL,
          last_fetch_ms INTEGER NULL,
          last_error TEXT NULL
        );
        """,
    ),
]


def open_database(path: Path) -> Database:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA busy_timeout=5000;")
    _apply_migrations(conn)
    return Database(conn=conn, lock=threading.Lock())


def _apply_migrations(conn: sqlite3.Connection) -> None:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER NOT NULL PRIMARY KEY);"
    )
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) AS v FROM schema_migrations;"
    ).fetchone()
    current_version = int(row["v"])

    for version, sql in _MIGRATIONS:
        if version <= current_version:
            continue
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_migrations(version) VALUES (?);", (version,))
        conn.commit()
