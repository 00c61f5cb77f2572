from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager, suppress

import httpx
from fastapi import FastAPI, Path, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.logging_setup import configure_logging
from app.settings import Settings
from events.bus import DISASTER_COMPLETED, REPORT_CREATED, Event, EventBus
from health.health import list_feed_status
from ingest.bmkg_sync import BmkgSync
from ingest.fetch import FeedError
from ingest.scheduler import run_scheduler
from normalize.earthquake import InvalidRecordError
from notify.consumer import run_notification_consumer
from notify.fanout import NotificationFanout
from notify.push import create_push_client
from store.db import Database, open_database
from store.disasters import (
    STATUS_COMPLETED,
    get_assignment,
    get_disaster,
    insert_report,
    list_assigned_users,
    list_disasters,
    mark_disaster_completed,
)
from store.users import list_notifications, register_device


LOGGER = logging.getLogger(__name__)


class ReportIn(BaseModel):
    user_id: str
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    lat: float | None = Field(default=None, ge=-90, le=90)
    long: float | None = Field(default=None, ge=-180, le=180)
    is_final_stage: bool = False


class DeviceIn(BaseModel):
    user_id: str
    fcm_token: str = Field(min_length=1, max_length=255)
    platform: str = Field(default="android", pattern="^(android|ios|web)$")
    device_name: str | None = Field(default=None, max_length=100)
    app_version: str | None = Field(default=None, max_length=20)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()
    configure_logging(settings.log_level)
    db = open_database(settings.db_path)
    bus = EventBus()
    push = create_push_client(settings.firebase_credentials_path)
    fanout = NotificationFanout(db, push)
    client = httpx.AsyncClient(follow_redirects=True)
    sync = BmkgSync(client, db, user_agent=settings.user_agent)

    app.state.settings = settings
    app.state.db = db
    app.state.bus = bus
    app.state.sync = sync

    queue = await bus.subscribe()
    tasks = [asyncio.create_task(run_notification_consumer(bus, queue, fanout))]
    if settings.scheduler_enabled:
        tasks.append(asyncio.create_task(run_scheduler(settings=settings, sync=sync)))
    else:
        LOGGER.info("scheduler disabled; BMKG sync runs only on demand")

    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        await client.aclose()
        if push is not None:
            push.close()
        with db.lock:
            db.conn.close()


app = FastAPI(lifespan=lifespan)


@app.post("/api/bmkg/sync/{kind}")
async def api_bmkg_sync(
    request: Request,
    kind: str = Path(pattern="^(latest|recent|felt|all)$"),
) -> JSONResponse:
    sync: BmkgSync = request.app.state.sync
    result = await sync.sync(kind)
    return JSONResponse(result.to_dict(), status_code=200 if result.success else 500)


@app.get("/api/bmkg/earthquakes/latest")
async def api_bmkg_latest(request: Request) -> JSONResponse:
    sync: BmkgSync = request.app.state.sync
    try:
        record = await sync.fetch_latest_record()
    except (FeedError, InvalidRecordError) as e:
        LOGGER.error("BMKG latest API error: %s", e)
        return JSONResponse(
            {
                "success": False,
                "message": "Failed to fetch latest earthquake data from BMKG",
                "error": str(e),
            },
            status_code=500,
        )
    return JSONResponse(
        {
            "success": True,
            "message": "Latest earthquake data retrieved successfully",
            "data": record.to_dict() if record is not None else None,
        }
    )


@app.get("/api/bmkg/feeds")
def api_bmkg_feeds(request: Request) -> JSONResponse:
    db: Database = request.app.state.db
    return JSONResponse(list_feed_status(db))


@app.get("/api/health")
def api_health(request: Request) -> JSONResponse:
    db: Database = request.app.state.db
    bus: EventBus = request.app.state.bus
    feeds = list_feed_status(db)
    return JSONResponse(
        {
            "feeds": feeds,
            "failing_feeds": [f["feed_kind"] for f in feeds if f["consecutive_failures"]],
            "events_dropped": bus.dropped,
        }
    )


@app.get("/api/disasters")
def api_disasters(
    request: Request,
    status: str | None = Query(default=None, pattern="^(ongoing|completed|cancelled)$"),
    source: str | None = Query(default=None, pattern="^(bmkg|manual)$"),
    limit: int = Query(default=100, ge=1, le=500),
) -> JSONResponse:
    db: Database = request.app.state.db
    return JSONResponse(list_disasters(db, status=status, source=source, limit=limit))


@app.get("/api/disasters/{disaster_id}")
def api_disaster(request: Request, disaster_id: str) -> JSONResponse:
    db: Database = request.app.state.db
    disaster = get_disaster(db, disaster_id)
    if disaster is None:
        return JSONResponse({"error": "not_found"}, status_code=404)
    disaster["volunteers"] = list_assigned_users(db, disaster_id)
    return JSONResponse(disaster)


@app.post("/api/disasters/{disaster_id}/reports")
async def api_create_report(
    request: Request, disaster_id: str, body: ReportIn
) -> JSONResponse:
    db: Database = request.app.state.db
    bus: EventBus = request.app.state.bus

    disaster = get_disaster(db, disaster_id)
    if disaster is None:
        return JSONResponse({"error": "not_found"}, status_code=404)
    assignment = get_assignment(db, disaster_id, body.user_id)
    if assignment is None:
        return JSONResponse({"error": "not_assigned"}, status_code=403)

    report = insert_report(
        db,
        disaster_id=disaster_id,
        volunteer_id=str(assignment["volunteer_id"]),
        title=body.title,
        description=body.description,
        lat=body.lat,
        long=body.long,
        is_final_stage=body.is_final_stage,
    )
    await bus.publish(
        Event(
            type=REPORT_CREATED,
            data={
                "disaster_id": disaster_id,
                "disaster_title": disaster["title"],
                "report_id": report["report_id"],
                "report_title": report["title"],
                "user_id": body.user_id,
            },
        )
    )

    if body.is_final_stage and disaster["status"] != STATUS_COMPLETED:
        mark_disaster_completed(
            db, disaster_id, completed_by=str(assignment["volunteer_id"])
        )
        await bus.publish(
            Event(
                type=DISASTER_COMPLETED,
                data={
                    "disaster_id": disaster_id,
                    "disaster_title": disaster["title"],
                    "user_id": body.user_id,
                },
            )
        )

    return JSONResponse(
        {"message": "Disaster report created successfully.", "data": report},
        status_code=201,
    )


@app.post("/api/devices")
def api_register_device(request: Request, body: DeviceIn) -> JSONResponse:
    db: Database = request.app.state.db
    try:
        device_id = register_device(
            db,
            user_id=body.user_id,
            fcm_token=body.fcm_token,
            platform=body.platform,
            device_name=body.device_name,
            app_version=body.app_version,
        )
    except sqlite3.IntegrityError:
        return JSONResponse({"error": "unknown_user"}, status_code=404)
    return JSONResponse({"device_id": device_id})


@app.get("/api/users/{user_id}/notifications")
def api_user_notifications(
    request: Request, user_id: str, unread_only: bool = False
) -> JSONResponse:
    db: Database = request.app.state.db
    return JSONResponse(list_notifications(db, user_id, unread_only=unread_only))
