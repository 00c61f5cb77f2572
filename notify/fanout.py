from __future__ import annotations

import logging
from dataclasses import dataclass

from events.bus import DISASTER_COMPLETED, REPORT_CREATED, Event
from notify.push import PushClient
from store.db import Database
from store.disasters import list_assigned_users
from store.users import (
    active_device_tokens,
    delete_device_tokens,
    insert_notifications,
)


LOGGER = logging.getLogger(__name__)

PUSH_BATCH_SIZE = 500

CATEGORY_NEW_REPORT = "new_disaster_report"
CATEGORY_STATUS_CHANGED = "disaster_status_changed"


@dataclass
class FanoutResult:
    notified_users: int = 0
    push_enabled: bool = False
    tokens: int = 0
    sent: int = 0
    failed: int = 0
    invalid_tokens_removed: int = 0


def _chunks(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class NotificationFanout:
    """Stores in-app notifications for a disaster's responders and pushes
    them to their devices when a push client is available."""

    def __init__(self, db: Database, push: PushClient | None = None) -> None:
        self._db = db
        self._push = push

    @property
    def push_enabled(self) -> bool:
        return self._push is not None

    def notify_assigned(
        self,
        disaster_id: str,
        *,
        exclude_user_id: str | None,
        title: str,
        message: str,
        category: str,
        push_body: str | None = None,
        data: dict[str, str] | None = None,
    ) -> FanoutResult:
        users = list_assigned_users(
            self._db, disaster_id, exclude_user_id=exclude_user_id
        )
        user_ids = [str(u["user_id"]) for u in users]
        result = FanoutResult(push_enabled=self.push_enabled)
        if not user_ids:
            LOGGER.info("no other responders assigned to disaster %s", disaster_id)
            return result

        result.notified_users = insert_notifications(
            self._db, user_ids=user_ids, title=title, message=message, category=category
        )

        if self._push is None:
            LOGGER.info(
                "push disabled; stored %d notifications for disaster %s",
                result.notified_users,
                disaster_id,
            )
            return result

        tokens = active_device_tokens(self._db, user_ids)
        result.tokens = len(tokens)
        if not tokens:
            LOGGER.info("no active devices for responders of disaster %s", disaster_id)
            return result

        invalid_tokens: list[str] = []
        for chunk in _chunks(tokens, PUSH_BATCH_SIZE):
            try:
                batch = self._push.send_multicast(
                    chunk, title=title, body=push_body or message, data=data or {}
                )
            except Exception as e:
                LOGGER.error("push batch of %d tokens failed: %s", len(chunk), e)
                result.failed += len(chunk)
                continue
            result.sent += batch.success_count
            result.failed += batch.failure_count
            invalid_tokens.extend(batch.invalid_tokens)

        if invalid_tokens:
            result.invalid_tokens_removed = delete_device_tokens(self._db, invalid_tokens)

        if result.failed:
            LOGGER.warning(
                "push partially failed for disaster %s: sent=%d failed=%d invalid=%d",
                disaster_id,
                result.sent,
                result.failed,
                len(invalid_tokens),
            )
        else:
            LOGGER.info(
                "push sent for disaster %s: sent=%d", disaster_id, result.sent
            )
        return result

    def handle(self, event: Event) -> FanoutResult | None:
        data = event.data
        if event.type == REPORT_CREATED:
            disaster_title = data["disaster_title"]
            report_title = data["report_title"]
            return self.notify_assigned(
                data["disaster_id"],
                exclude_user_id=data.get("user_id"),
                title="New Disaster Report",
                message=f"A new report has been added to {disaster_title}: {report_title}",
                push_body=f"A new report has been added to {disaster_title}",
                category=CATEGORY_NEW_REPORT,
                data={
                    "type": CATEGORY_NEW_REPORT,
                    "disaster_id": data["disaster_id"],
                    "report_id": data["report_id"],
                    "disaster_title": disaster_title,
                    "report_title": report_title,
                },
            )
        if event.type == DISASTER_COMPLETED:
            disaster_title = data["disaster_title"]
            return self.notify_assigned(
                data["disaster_id"],
                exclude_user_id=data.get("user_id"),
                title="Disaster Status Changed",
                message=f"Disaster '{disaster_title}' has been marked as completed",
                category=CATEGORY_STATUS_CHANGED,
                data={
                    "type": CATEGORY_STATUS_CHANGED,
                    "disaster_id": data["disaster_id"],
                    "disaster_title": disaster_title,
                    "status": "completed",
                },
            )
        return None
