"""Tests for push transports and best-effort notification dispatch."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from daily_rep.models.profile import UserProfile
from daily_rep.notifications.push import (
    REP_READY_TITLE,
    DevicePushTransport,
    Notifier,
    PushMessage,
    WebPushTransport,
)

SUBSCRIPTION = {"endpoint": "https://push.test/abc", "keys": {"auth": "a", "p256dh": "p"}}


def _fake_transport(name: str, accepts: bool = True, error: Exception | None = None):
    transport = MagicMock()
    transport.name = name
    transport.accepts.return_value = accepts
    transport.send = AsyncMock(side_effect=error)
    return transport


class TestNotifier:
    async def test_sends_to_accepting_transports(self):
        device = _fake_transport("device")
        web = _fake_transport("web", accepts=False)
        profile = UserProfile(user_id="u1")

        delivered = await Notifier([device, web]).notify_rep_ready(profile, "rep-1", "Do squats")

        assert delivered is True
        web.send.assert_not_called()
        _, message = device.send.call_args.args
        assert message.title == REP_READY_TITLE
        assert message.body == "Do squats"
        assert message.data == {"type": "new_rep", "rep_id": "rep-1"}

    async def test_failure_does_not_raise_or_stop_others(self):
        broken = _fake_transport("device", error=httpx.ConnectError("refused"))
        web = _fake_transport("web")

        delivered = await Notifier([broken, web]).notify_rep_ready(UserProfile(user_id="u1"), "r", "t")

        assert delivered is True
        web.send.assert_awaited_once()

    async def test_no_transports(self):
        assert await Notifier().notify_rep_ready(UserProfile(user_id="u1"), "r", "t") is False


class TestDevicePushTransport:
    def test_accepts_requires_token_and_opt_in(self):
        transport = DevicePushTransport("https://gateway.test/send")
        assert not transport.accepts(UserProfile(user_id="u1", push_token="tok"))
        assert not transport.accepts(UserProfile(user_id="u1", push_enabled=True))
        assert transport.accepts(UserProfile(user_id="u1", push_enabled=True, push_token="tok"))

    async def test_posts_payload(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["auth"] = request.headers.get("Authorization")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        real_client = httpx.AsyncClient
        transport = DevicePushTransport("https://gateway.test/send", api_key="secret")
        profile = UserProfile(user_id="u1", push_enabled=True, push_token="tok")
        message = PushMessage(title="Hi", body="Body", data={"rep_id": "r1"})

        with patch(
            "daily_rep.notifications.push.httpx.AsyncClient",
            lambda **kw: real_client(transport=httpx.MockTransport(handler), **kw),
        ):
            await transport.send(profile, message)

        assert captured["auth"] == "Bearer secret"
        assert captured["body"]["to"] == "tok"
        assert captured["body"]["title"] == "Hi"
        assert captured["body"]["data"] == {"rep_id": "r1"}


class TestWebPushTransport:
    async def test_send_uses_subscription(self):
        transport = WebPushTransport("private-key", "mailto:test@example.com")
        profile = UserProfile(user_id="u1", push_enabled=True, web_push_subscription=SUBSCRIPTION)
        assert transport.accepts(profile)

        with patch("daily_rep.notifications.push.webpush") as webpush:
            await transport.send(profile, PushMessage(title="Hi", body="Body"))

        kwargs = webpush.call_args.kwargs
        assert kwargs["subscription_info"] == SUBSCRIPTION
        assert kwargs["vapid_claims"] == {"sub": "mailto:test@example.com"}
        assert json.loads(kwargs["data"])["title"] == "Hi"
