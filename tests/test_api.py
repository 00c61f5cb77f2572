import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import app
from events.bus import DISASTER_COMPLETED, REPORT_CREATED, Event, EventBus
from ingest.bmkg_sync import BmkgSync
from store.disasters import assign_volunteer, get_disaster, insert_disaster
from store.users import create_user, insert_notifications


class RecordingBus:
    def __init__(self) -> None:
        self.events = []
        self.dropped = 0

    async def publish(self, event) -> int:
        self.events.append(event)
        return 1


@pytest.fixture
def api(db, bmkg_transport):
    bus = RecordingBus()
    app.state.db = db
    app.state.bus = bus

    def serve(payloads: dict | None = None):
        client = httpx.AsyncClient(transport=bmkg_transport(payloads or {}))
        app.state.sync = BmkgSync(client, db, user_agent="test")
        return TestClient(app)

    serve.bus = bus
    return serve


def _disaster(db, **overrides) -> dict:
    return insert_disaster(
        db,
        {
            "title": "Earthquake M5.4 – Luwu",
            "source": "bmkg",
            "category": "earthquake",
            "status": "ongoing",
            "date": "2025-10-21",
            "time": "15:57:01",
            **overrides,
        },
    )


def test_sync_latest_endpoint(api, bmkg_fixture) -> None:
    client = api({"latest": bmkg_fixture("latest")})

    first = client.post("/api/bmkg/sync/latest")
    second = client.post("/api/bmkg/sync/latest")

    assert first.status_code == 200
    assert first.json()["created"] is True
    assert first.json()["message"] == "Latest earthquake synced successfully"
    assert second.json()["skipped"] is True
    assert second.json()["data"]["disaster_id"] == first.json()["data"]["disaster_id"]


def test_sync_all_endpoint_summary(api, bmkg_fixture) -> None:
    client = api(
        {
            "latest": bmkg_fixture("latest"),
            "recent": bmkg_fixture("recent"),
            "felt": bmkg_fixture("felt"),
        }
    )
    body = client.post("/api/bmkg/sync/all").json()
    assert body["summary"]["total_created"] == 7
    assert body["summary"]["sync_types"] == ["latest", "recent", "felt"]
    assert body["results"]["recent"]["stats"]["created"] == 4


def test_sync_failure_is_500(api) -> None:
    client = api({"recent": 503})
    r = client.post("/api/bmkg/sync/recent")
    assert r.status_code == 500
    assert r.json()["success"] is False


def test_malformed_feed_body_is_reported_not_raised(api, bmkg_fixture) -> None:
    client = api({"latest": b"\xff\xfe not json", "recent": bmkg_fixture("recent")})

    latest = client.post("/api/bmkg/sync/latest")
    assert latest.status_code == 500
    assert latest.json()["success"] is False

    preview = client.get("/api/bmkg/earthquakes/latest")
    assert preview.status_code == 500

    combined = client.post("/api/bmkg/sync/all")
    assert combined.status_code == 200
    assert combined.json()["summary"]["total_created"] == 5


def test_unknown_sync_type_is_rejected(api) -> None:
    assert api().post("/api/bmkg/sync/everything").status_code == 422


def test_latest_earthquake_preview_does_not_store(api, db, bmkg_fixture) -> None:
    client = api({"latest": bmkg_fixture("latest")})
    r = client.get("/api/bmkg/earthquakes/latest")
    assert r.status_code == 200
    data = r.json()["data"]
    assert (data["latitude"], data["longitude"]) == (-3.2, 120.5)
    assert client.get("/api/disasters").json() == []


def test_latest_earthquake_preview_feed_error(api) -> None:
    r = api({"latest": 500}).get("/api/bmkg/earthquakes/latest")
    assert r.status_code == 500
    assert r.json()["message"] == "Failed to fetch latest earthquake data from BMKG"


def test_feed_status_endpoint(api, bmkg_fixture) -> None:
    client = api({"latest": bmkg_fixture("latest"), "felt": 502})
    client.post("/api/bmkg/sync/latest")
    client.post("/api/bmkg/sync/felt")
    feeds = {f["feed_kind"]: f for f in client.get("/api/bmkg/feeds").json()}
    assert feeds["latest"]["consecutive_failures"] == 0
    assert feeds["felt"]["consecutive_failures"] == 1
    assert feeds["felt"]["last_status_code"] == 502


def test_health_reports_failing_feeds_and_dropped_events(api, bmkg_fixture) -> None:
    client = api({"latest": bmkg_fixture("latest"), "felt": 502})
    client.post("/api/bmkg/sync/latest")
    client.post("/api/bmkg/sync/felt")

    bus = EventBus(maxsize=1)

    async def overflow():
        await bus.subscribe()
        for n in range(3):
            await bus.publish(Event(type=REPORT_CREATED, data={"n": n}))

    asyncio.run(overflow())
    app.state.bus = bus

    body = client.get("/api/health").json()
    assert body["failing_feeds"] == ["felt"]
    assert {f["feed_kind"] for f in body["feeds"]} == {"latest", "felt"}
    assert body["events_dropped"] == 2


def test_disaster_list_and_detail(api, db) -> None:
    client = api()
    disaster = _disaster(db)
    _disaster(db, title="Flood", source="manual", category="flood", status="completed")
    admin = create_user(db, name="Admin", user_type="admin")
    assign_volunteer(db, disaster["disaster_id"], admin)

    listed = client.get("/api/disasters", params={"source": "bmkg"}).json()
    assert [d["disaster_id"] for d in listed] == [disaster["disaster_id"]]
    assert len(client.get("/api/disasters", params={"status": "completed"}).json()) == 1

    detail = client.get(f"/api/disasters/{disaster['disaster_id']}").json()
    assert [v["user_id"] for v in detail["volunteers"]] == [admin]

    missing = client.get("/api/disasters/nope")
    assert missing.status_code == 404
    assert missing.json() == {"error": "not_found"}


def test_report_requires_assignment(api, db) -> None:
    client = api()
    disaster = _disaster(db)
    outsider = create_user(db, name="Outsider")

    r = client.post(
        f"/api/disasters/{disaster['disaster_id']}/reports",
        json={"user_id": outsider, "title": "Roads blocked"},
    )
    assert r.status_code == 403
    assert r.json() == {"error": "not_assigned"}

    r = client.post(
        "/api/disasters/nope/reports", json={"user_id": outsider, "title": "x"}
    )
    assert r.status_code == 404
    assert api.bus.events == []


def test_report_publishes_event(api, db) -> None:
    client = api()
    disaster = _disaster(db)
    volunteer = create_user(db, name="Volunteer")
    assign_volunteer(db, disaster["disaster_id"], volunteer)

    r = client.post(
        f"/api/disasters/{disaster['disaster_id']}/reports",
        json={"user_id": volunteer, "title": "Roads blocked", "lat": -3.2, "long": 120.5},
    )

    assert r.status_code == 201
    assert r.json()["message"] == "Disaster report created successfully."
    [event] = api.bus.events
    assert event.type == REPORT_CREATED
    assert event.data["report_title"] == "Roads blocked"
    assert event.data["disaster_title"] == disaster["title"]
    assert event.data["user_id"] == volunteer
    assert get_disaster(db, disaster["disaster_id"])["status"] == "ongoing"


def test_final_stage_report_completes_disaster_once(api, db) -> None:
    client = api()
    disaster = _disaster(db)
    volunteer = create_user(db, name="Volunteer")
    assign_volunteer(db, disaster["disaster_id"], volunteer)
    url = f"/api/disasters/{disaster['disaster_id']}/reports"

    client.post(url, json={"user_id": volunteer, "title": "Done", "is_final_stage": True})
    client.post(url, json={"user_id": volunteer, "title": "Again", "is_final_stage": True})

    assert [e.type for e in api.bus.events] == [
        REPORT_CREATED,
        DISASTER_COMPLETED,
        REPORT_CREATED,
    ]
    stored = get_disaster(db, disaster["disaster_id"])
    assert stored["status"] == "completed"
    assert stored["completed_at"] is not None


def test_invalid_report_body_is_rejected(api, db) -> None:
    disaster = _disaster(db)
    r = api().post(
        f"/api/disasters/{disaster['disaster_id']}/reports",
        json={"user_id": "u", "title": "x", "lat": 123.0},
    )
    assert r.status_code == 422


def test_device_registration(api, db) -> None:
    client = api()
    user_id = create_user(db, name="Volunteer")

    first = client.post("/api/devices", json={"user_id": user_id, "fcm_token": "abc"})
    again = client.post(
        "/api/devices",
        json={"user_id": user_id, "fcm_token": "abc", "platform": "ios"},
    )
    assert first.status_code == 200
    assert again.json()["device_id"] == first.json()["device_id"]

    unknown = client.post("/api/devices", json={"user_id": "ghost", "fcm_token": "xyz"})
    assert unknown.status_code == 404
    assert unknown.json() == {"error": "unknown_user"}


def test_user_notifications(api, db) -> None:
    client = api()
    user_id = create_user(db, name="Volunteer")
    insert_notifications(
        db, user_ids=[user_id], title="t", message="m", category="new_disaster_report"
    )

    [note] = client.get(f"/api/users/{user_id}/notifications").json()
    assert note["message"] == "m"
    assert client.get("/api/users/other/notifications").json() == []
