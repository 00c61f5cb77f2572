import sqlite3

import pytest

from store.disasters import (
    assign_volunteer,
    get_disaster,
    insert_disaster,
    insert_report,
    mark_disaster_completed,
)
from store.users import create_user


def _disaster(db) -> dict:
    return insert_disaster(
        db,
        {
            "title": "Flood",
            "source": "manual",
            "category": "flood",
            "status": "ongoing",
            "date": "2025-10-21",
            "time": "08:00:00",
        },
    )


def test_failed_report_insert_leaves_no_open_transaction(db) -> None:
    disaster = _disaster(db)

    with pytest.raises(sqlite3.IntegrityError):
        insert_report(
            db,
            disaster_id=disaster["disaster_id"],
            volunteer_id="not-a-volunteer",
            title="Roads blocked",
            description="",
            lat=None,
            long=None,
            is_final_stage=False,
        )

    assert db.conn.in_transaction is False

    volunteer_id = assign_volunteer(
        db, disaster["disaster_id"], create_user(db, name="Volunteer")
    )
    insert_report(
        db,
        disaster_id=disaster["disaster_id"],
        volunteer_id=volunteer_id,
        title="Roads blocked",
        description="",
        lat=None,
        long=None,
        is_final_stage=True,
    )
    mark_disaster_completed(db, disaster["disaster_id"], completed_by=volunteer_id)

    assert db.conn.in_transaction is False
    stored = get_disaster(db, disaster["disaster_id"])
    assert stored["status"] == "completed"
    assert stored["completed_by"] == volunteer_id
