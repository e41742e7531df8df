"""Push transports and best-effort "rep ready" dispatch."""

import asyncio
import json
from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, Field
from pywebpush import webpush

from daily_rep.models.profile import UserProfile

logger = structlog.get_logger()

REP_READY_TITLE = "Your Daily Rep is Ready!"


class PushMessage(BaseModel):
    title: str = Field(max_length=100)
    body: str = Field(max_length=500)
    data: dict[str, Any] = Field(default_factory=dict)


class PushTransport(Protocol):
    name: str

    def accepts(self, profile: UserProfile) -> bool:
        ...

    async def send(self, profile: UserProfile, message: PushMessage) -> None:
        ...


class DevicePushTransport:
    """Mobile push through a device-token gateway.

    Args:
        url: Gateway endpoint receiving ``{to, title, body, data}`` JSON.
        api_key: Optional bearer token for the gateway.
        timeout: Request timeout in seconds.
    """

    name = "device"

    def __init__(self, url: str, api_key: str | None = None, timeout: float = 10.0):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def accepts(self, profile: UserProfile) -> bool:
        return profile.push_enabled and bool(profile.push_token)

    async def send(self, profile: UserProfile, message: PushMessage) -> None:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {
            "to": profile.push_token,
            "title": message.title,
            "body": message.body,
            "data": message.data,
            "sound": "default",
            "priority": "high",
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()


class WebPushTransport:
    """Browser push using a stored subscription and VAPID credentials.

    Args:
        vapid_private_key: VAPID private key (PEM or base64url).
        vapid_subject: Contact URI sent in the VAPID claims.
    """

    name = "web"

    def __init__(self, vapid_private_key: str, vapid_subject: str):
        self.vapid_private_key = vapid_private_key
        self.vapid_subject = vapid_subject

    def accepts(self, profile: UserProfile) -> bool:
        return profile.push_enabled and bool(profile.web_push_subscription)

    async def send(self, profile: UserProfile, message: PushMessage) -> None:
        payload = json.dumps({
            "title": message.title,
            "body": message.body,
            "icon": "/favicon.ico",
            "badge": "/favicon.ico",
            "data": message.data,
        })
        # pywebpush is synchronous
        await asyncio.to_thread(
            webpush,
            subscription_info=profile.web_push_subscription,
            data=payload,
            vapid_private_key=self.vapid_private_key,
            vapid_claims={"sub": self.vapid_subject},
        )


class Notifier:
    """Fans a notification out to every transport a user is registered with.

    Failures are logged and never raised.

    Args:
        transports: Injected push transports.
    """

    def __init__(self, transports: list[PushTransport] | None = None):
        self.transports = list(transports or [])

    async def notify_rep_ready(self, profile: UserProfile, rep_id: str, title: str) -> bool:
        """Send the "new rep ready" push. Returns True if any transport delivered."""
        message = PushMessage(
            title=REP_READY_TITLE,
            body=title[:500],
            data={"type": "new_rep", "rep_id": rep_id},
        )
        delivered = False
        for transport in self.transports:
            if not transport.accepts(profile):
                continue
            try:
                await transport.send(profile, message)
                delivered = True
                logger.info("notification_sent", user_id=profile.user_id, transport=transport.name)
            except Exception as e:
                logger.warning(
                    "notification_failed",
                    user_id=profile.user_id,
                    transport=transport.name,
                    error=str(e),
                )
        return delivered
