from __future__ import annotations

import logging
import sqlite3

from normalize.bmkg_time import ParsedDateTime
from normalize.earthquake import EarthquakeRecord
from store.db import Database
from store.disasters import (
    CATEGORY_EARTHQUAKE,
    SOURCE_BMKG,
    STATUS_ONGOING,
    assign_volunteer,
    insert_disaster,
)
from store.users import find_active_admin


LOGGER = logging.getLogger(__name__)

TITLE_MAX_CHARS = 45
LOCATION_MAX_CHARS = 45


class DuplicateDisasterError(Exception):
    """The disaster store already holds a row for this feed event."""


def build_title(record: EarthquakeRecord) -> str:
    title = f"Earthquake M{record.magnitude:.1f} – {record.region or 'unknown location'}"
    return title[:TITLE_MAX_CHARS]


def build_description(record: EarthquakeRecord) -> str:
    parts = [
        f"Earthquake of magnitude {record.magnitude:.1f} occurred in "
        f"{record.region or 'unknown location'} at a depth of {record.depth_km:.1f} km."
    ]
    if record.felt_report:
        parts.append(f"Felt: {record.felt_report}")
    if record.tsunami_potential:
        parts.append(f"Tsunami potential: {record.tsunami_potential}")
    return " ".join(parts)


def assign_default_responder(db: Database, disaster_id: str) -> str | None:
    try:
        admin_id = find_active_admin(db)
        if admin_id is None:
            LOGGER.warning("no active admin to assign to disaster %s", disaster_id)
            return None
        assign_volunteer(db, disaster_id, admin_id)
    except sqlite3.Error as e:
        LOGGER.warning("failed to assign admin to disaster %s: %s", disaster_id, e)
        return None
    LOGGER.info("assigned admin %s to disaster %s", admin_id, disaster_id)
    return admin_id


def materialize_disaster(
    db: Database, record: EarthquakeRecord, event: ParsedDateTime
) -> dict:
    coordinate = record.coordinate_string or f"{record.latitude}, {record.longitude}"
    location = record.region[:LOCATION_MAX_CHARS] if record.region else None

    try:
        disaster = insert_disaster(
            db,
            {
                "title": build_title(record),
                "description": build_description(record),
                "source": SOURCE_BMKG,
                "category": CATEGORY_EARTHQUAKE,
                "status": STATUS_ONGOING,
                "date": event.date,
                "time": event.time,
                "location": location,
                "coordinate": coordinate,
                "lat": record.latitude,
                "long": record.longitude,
                "magnitude": record.magnitude,
                "depth": record.depth_km,
                "shakemap_url": record.shakemap_url,
                "reported_by": None,
            },
        )
    except sqlite3.IntegrityError as e:
        if "UNIQUE" not in str(e):
            raise
        raise DuplicateDisasterError(
            f"earthquake at {event.date} {event.time} already stored"
        ) from e

    assign_default_responder(db, disaster["disaster_id"])
    LOGGER.info(
        "created disaster %s from BMKG: %s (%s)",
        disaster["disaster_id"],
        disaster["title"],
        coordinate,
    )
    return disaster
