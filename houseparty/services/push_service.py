"""Push notification delivery through Firebase Cloud Messaging."""

import asyncio
import logging
from typing import Callable

import firebase_admin
from firebase_admin import credentials, messaging

from houseparty.config import Settings

logger = logging.getLogger(__name__)

# (token, title, body, data) -> message id; blocking.
Sender = Callable[[str, str, str, dict[str, str]], str]


class PushDispatcher:
    """Fans a notification out to device tokens in throttled batches.

    Tokens are sent ``batch_size`` at a time; each batch is awaited in full
    and followed by a short pause before the next one. A failure for one
    token only counts as a miss for that token.
    """

    def __init__(self, settings: Settings, sender: Sender | None = None):
        self.batch_size = max(1, settings.push_batch_size)
        self.batch_delay = settings.push_batch_delay_seconds
        self._settings = settings
        self._sender = sender
        self._app: firebase_admin.App | None = None
        self._init_attempted = False

    def _firebase_app(self) -> firebase_admin.App | None:
        if self._app is not None or self._init_attempted:
            return self._app
        self._init_attempted = True

        if not self._settings.firebase_credentials_path:
            logger.warning("Firebase credentials not configured; push notifications disabled")
            return None
        try:
            cred = credentials.Certificate(self._settings.firebase_credentials_path)
            options = {"projectId": self._settings.firebase_project_id} if self._settings.firebase_project_id else None
            self._app = firebase_admin.initialize_app(cred, options, name="houseparty")
            logger.info("Firebase Admin initialized")
        except ValueError:
            self._app = firebase_admin.get_app("houseparty")
        except Exception as exc:
            logger.error("Firebase init failed: %s", exc)
        return self._app

    def _send_fcm(self, token: str, title: str, body: str, data: dict[str, str]) -> str:
        app = self._firebase_app()
        if app is None:
            raise RuntimeError("FCM not configured")
        message = messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body),
            data={k: str(v) for k, v in data.items()},
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(
                    sound="default", channel_id="houseparty_notifications"
                ),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
            ),
        )
        return messaging.send(message, app=app)

    async def send(self, token: str, title: str, body: str, data: dict[str, str] | None = None) -> bool:
        sender = self._sender or self._send_fcm
        loop = asyncio.get_running_loop()
        try:
            message_id = await loop.run_in_executor(None, sender, token, title, body, data or {})
        except Exception as exc:
            logger.error("Push to %s... failed: %s", token[:12], exc)
            return False
        logger.info("Push sent to %s...: %s", token[:12], message_id)
        return True

    async def send_many(
        self, tokens: list[str], title: str, body: str, data: dict[str, str] | None = None
    ) -> int:
        if not tokens:
            return 0

        delivered = 0
        for start in range(0, len(tokens), self.batch_size):
            batch = tokens[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self.send(token, title, body, data) for token in batch),
                return_exceptions=True,
            )
            delivered += sum(1 for result in results if result is True)
            if start + self.batch_size < len(tokens):
                await asyncio.sleep(self.batch_delay)

        logger.info("Push notifications delivered to %d/%d devices", delivered, len(tokens))
        return delivered
