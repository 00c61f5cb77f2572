from __future__ import annotations

import argparse
from pathlib import Path

from app.settings import Settings
from store.db import open_database
from store.users import create_user


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("name")
    parser.add_argument("--email", default=None)
    parser.add_argument(
        "--type", dest="user_type", choices=("admin", "officer", "volunteer"), default="volunteer"
    )
    parser.add_argument("--inactive", action="store_true")
    parser.add_argument("--db", type=Path, default=None)
    args = parser.parse_args()

    settings = Settings()
    db = open_database(args.db or settings.db_path)
    try:
        user_id = create_user(
            db,
            name=args.name,
            email=args.email,
            user_type=args.user_type,
            status="inactive" if args.inactive else "active",
        )
    finally:
        with db.lock:
            db.conn.close()

    print(user_id)


if __name__ == "__main__":
    main()
