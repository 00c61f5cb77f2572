"""
BMKG earthquake ingestion: fetch a feed, normalize its records, skip the ones
already stored and materialize the rest as disasters.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

import httpx

from health.health import record_fetch_error, record_fetch_success
from ingest.fetch import FeedError, feed_url, fetch_feed
from ingest.materialize import DuplicateDisasterError, materialize_disaster
from ingest.parsers.bmkg import parse_bmkg_document, records_of
from normalize.bmkg_time import resolve_event_datetime
from normalize.earthquake import (
    EarthquakeRecord,
    InvalidRecordError,
    normalize_bmkg_record,
)
from store.db import Database
from store.disasters import find_existing_disaster


LOGGER = logging.getLogger(__name__)

FEED_KINDS = ("latest", "recent", "felt")
SYNC_KINDS = FEED_KINDS + ("all",)


@dataclass
class SyncResult:
    success: bool
    message: str
    data: object = None
    created_count: int = 0
    skipped_count: int = 0
    total_processed: int = 0
    datetime_fallbacks: int = 0
    mode: str = "single"
    sub_results: dict[str, SyncResult] = field(default_factory=dict)

    def to_dict(self) -> dict:
        out: dict = {
            "success": self.success,
            "message": self.message,
            "data": self.data,
        }
        if self.mode == "single":
            if self.created_count:
                out["created"] = True
            elif self.skipped_count:
                out["skipped"] = True
        if self.mode in ("single", "batch"):
            out["stats"] = {
                "created": self.created_count,
                "skipped": self.skipped_count,
                "total_processed": self.total_processed,
                "datetime_fallbacks": self.datetime_fallbacks,
            }
        if self.mode == "combined":
            out["summary"] = {
                "total_created": self.created_count,
                "total_skipped": self.skipped_count,
                "sync_types": list(self.sub_results.keys()),
            }
            out["results"] = {k: v.to_dict() for k, v in self.sub_results.items()}
        return out


@dataclass
class _RecordOutcome:
    created: dict | None = None
    existing: dict | None = None
    fell_back: bool = False


class BmkgSync:
    def __init__(
        self,
        client: httpx.AsyncClient,
        db: Database,
        *,
        user_agent: str,
    ) -> None:
        self._client = client
        self._db = db
        self._user_agent = user_agent

    async def sync(self, kind: str) -> SyncResult:
        if kind == "latest":
            return await self.sync_latest()
        if kind == "recent":
            return await self.sync_recent()
        if kind == "felt":
            return await self.sync_felt()
        if kind == "all":
            return await self.sync_all()
        raise ValueError(f"unknown sync type: {kind}")

    async def sync_latest(self) -> SyncResult:
        try:
            raws = await self._fetch_records("latest")
        except FeedError as e:
            LOGGER.error("BMKG sync error (latest): %s", e)
            return SyncResult(
                success=False,
                message=f"Failed to sync latest earthquake: {e}",
            )

        if not raws:
            return SyncResult(
                success=False, message="No earthquake data available from BMKG"
            )

        try:
            record = normalize_bmkg_record(raws[0])
        except InvalidRecordError as e:
            LOGGER.warning("latest BMKG record rejected: %s (%r)", e, raws[0])
            return SyncResult(
                success=False,
                message=f"Latest earthquake record is invalid: {e}",
                total_processed=1,
            )

        try:
            outcome = self._process_record(record)
        except sqlite3.Error as e:
            LOGGER.error(
                "failed to create disaster from BMKG data: %s (%r)", e, record.to_dict()
            )
            return SyncResult(
                success=False,
                message=f"Failed to sync latest earthquake: {e}",
                total_processed=1,
            )

        fallbacks = 1 if outcome.fell_back else 0
        if outcome.existing is not None:
            return SyncResult(
                success=True,
                message="Latest earthquake already exists in database",
                data=outcome.existing,
                skipped_count=1,
                total_processed=1,
                datetime_fallbacks=fallbacks,
            )
        return SyncResult(
            success=True,
            message="Latest earthquake synced successfully",
            data=outcome.created,
            created_count=1,
            total_processed=1,
            datetime_fallbacks=fallbacks,
        )

    async def sync_recent(self) -> SyncResult:
        return await self._sync_batch("recent")

    async def sync_felt(self) -> SyncResult:
        return await self._sync_batch("felt")

    async def sync_all(self) -> SyncResult:
        sub_results = {
            "latest": await self.sync_latest(),
            "recent": await self.sync_recent(),
            "felt": await self.sync_felt(),
        }
        created = sum(r.created_count for r in sub_results.values())
        skipped = sum(r.skipped_count for r in sub_results.values())
        failed = [k for k, r in sub_results.items() if not r.success]

        message = f"Sync completed. Created {created} new disasters, skipped {skipped} existing ones."
        if failed:
            message += f" Failed: {', '.join(failed)}."

        return SyncResult(
            success=len(failed) < len(sub_results),
            message=message,
            data={k: r.data for k, r in sub_results.items()},
            created_count=created,
            skipped_count=skipped,
            total_processed=sum(r.total_processed for r in sub_results.values()),
            datetime_fallbacks=sum(r.datetime_fallbacks for r in sub_results.values()),
            mode="combined",
            sub_results=sub_results,
        )

    async def fetch_latest_record(self) -> EarthquakeRecord | None:
        """Fetch and normalize the latest event without storing it."""
        raws = await self._fetch_records("latest")
        if not raws:
            return None
        return normalize_bmkg_record(raws[0])

    async def _sync_batch(self, kind: str) -> SyncResult:
        try:
            raws = await self._fetch_records(kind)
        except FeedError as e:
            LOGGER.error("BMKG sync error (%s): %s", kind, e)
            return SyncResult(
                success=False,
                message=f"Failed to sync {kind} earthquakes: {e}",
                mode="batch",
            )

        if not raws:
            return SyncResult(
                success=False,
                message="No earthquake data available from BMKG",
                mode="batch",
            )

        created: list[dict] = []
        skipped = 0
        fallbacks = 0
        for raw in raws:
            try:
                record = normalize_bmkg_record(raw)
            except InvalidRecordError as e:
                LOGGER.warning("skipping invalid BMKG %s record: %s (%r)", kind, e, raw)
                continue
            try:
                outcome = self._process_record(record)
            except sqlite3.Error as e:
                LOGGER.error(
                    "failed to create disaster from BMKG %s data: %s (%r)",
                    kind,
                    e,
                    record.to_dict(),
                )
                continue
            if outcome.fell_back:
                fallbacks += 1
            if outcome.created is not None:
                created.append(outcome.created)
            else:
                skipped += 1

        return SyncResult(
            success=True,
            message=(
                f"Synced {len(created)} {kind} earthquakes. "
                f"{skipped} already existed and were skipped."
            ),
            data=created,
            created_count=len(created),
            skipped_count=skipped,
            total_processed=len(raws),
            datetime_fallbacks=fallbacks,
            mode="batch",
        )

    async def _fetch_records(self, kind: str) -> list[dict]:
        url = feed_url(kind)
        try:
            result = await fetch_feed(self._client, kind, user_agent=self._user_agent)
        except FeedError as e:
            record_fetch_error(
                self._db,
                feed_kind=kind,
                url=url,
                status_code=e.status_code,
                fetch_ms=e.elapsed_ms,
                error=str(e),
            )
            raise

        record_fetch_success(
            self._db,
            feed_kind=kind,
            url=url,
            status_code=result.status_code,
            fetch_ms=result.elapsed_ms,
        )
        return records_of(parse_bmkg_document(result.document))

    def _process_record(self, record: EarthquakeRecord) -> _RecordOutcome:
        event = resolve_event_datetime(record.datetime_utc, record.datetime_local)
        existing = find_existing_disaster(self._db, record, event)
        if existing is not None:
            return _RecordOutcome(existing=existing, fell_back=event.fell_back)
        try:
            disaster = materialize_disaster(self._db, record, event)
        except DuplicateDisasterError:
            # Lost the insert race to a concurrent sync; the row now exists.
            existing = find_existing_disaster(self._db, record, event)
            return _RecordOutcome(existing=existing or {}, fell_back=event.fell_back)
        return _RecordOutcome(created=disaster, fell_back=event.fell_back)
