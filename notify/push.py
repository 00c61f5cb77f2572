from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import firebase_admin
from firebase_admin import credentials, exceptions, messaging


LOGGER = logging.getLogger(__name__)

DEFAULT_APP_NAME = "disaster-sync-push"

# Per-token failures meaning the token will never be deliverable again.
_INVALID_TOKEN_ERRORS = (
    messaging.UnregisteredError,
    messaging.SenderIdMismatchError,
    exceptions.InvalidArgumentError,
)


@dataclass(frozen=True)
class PushBatchResult:
    success_count: int
    failure_count: int
    invalid_tokens: list[str] = field(default_factory=list)


class PushClient(Protocol):
    def send_multicast(
        self, tokens: list[str], *, title: str, body: str, data: dict[str, str]
    ) -> PushBatchResult: ...


class FirebasePushClient:
    def __init__(self, app: firebase_admin.App) -> None:
        self._app = app

    def send_multicast(
        self, tokens: list[str], *, title: str, body: str, data: dict[str, str]
    ) -> PushBatchResult:
        message = messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=title, body=body),
            data={str(k): str(v) for k, v in data.items()},
        )
        response = messaging.send_each_for_multicast(message, app=self._app)
        invalid = [
            token
            for token, item in zip(tokens, response.responses)
            if not item.success and isinstance(item.exception, _INVALID_TOKEN_ERRORS)
        ]
        return PushBatchResult(
            success_count=response.success_count,
            failure_count=response.failure_count,
            invalid_tokens=invalid,
        )

    def close(self) -> None:
        firebase_admin.delete_app(self._app)


def create_push_client(
    credentials_path: Path | None, *, app_name: str = DEFAULT_APP_NAME
) -> FirebasePushClient | None:
    """Build a Firebase push client, or ``None`` when push is not configured."""
    if credentials_path is None:
        LOGGER.info("push notifications disabled: FIREBASE_CREDENTIALS_PATH not set")
        return None
    if not credentials_path.is_file():
        LOGGER.warning("Firebase credentials file not found: %s", credentials_path)
        return None

    try:
        cred = credentials.Certificate(str(credentials_path))
        app = firebase_admin.initialize_app(cred, name=app_name)
    except (ValueError, OSError) as e:
        LOGGER.error("failed to initialize Firebase from %s: %s", credentials_path, e)
        return None

    LOGGER.info("Firebase push client initialized from %s", credentials_path)
    return FirebasePushClient(app)
