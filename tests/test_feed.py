import json

from websockets.exceptions import ConnectionClosed

from app.client import ChangeFeed
from app.core.retry import RetryPolicy

CHANNEL = "typing_status:chat-1"


class FakeSocket:
    def __init__(self, frames, drop=False):
        self.frames = frames
        self.drop = drop
        self.sent = []
        self.closed = False

    async def send(self, text):
        self.sent.append(json.loads(text))

    async def close(self):
        self.closed = True

    async def __aiter__(self):
        for frame in self.frames:
            yield frame
        if self.drop:
            raise ConnectionClosed(None, None)


def change(event, user_id, channel=CHANNEL):
    return {
        "type": "change",
        "channel": channel,
        "event": event,
        "table": "typing_status",
        "record": {"chat_id": "chat-1", "user_id": user_id},
    }


class StubApi:
    """Serves one typing list per poll"""

    def __init__(self, *polls):
        self.polls = list(polls)
        self.calls = []

    async def get_typing_users(self, chat_id):
        self.calls.append(chat_id)
        return self.polls.pop(0) if self.polls else []


def typing_row(user_id, expires_at):
    return {"chat_id": "chat-1", "user_id": user_id, "expires_at": expires_at}


async def test_realtime_events_reach_handlers():
    socket = FakeSocket([
        "not json",
        json.dumps({"type": "error", "message": "Not allowed"}),
        json.dumps(change("INSERT", "ana")),
    ])
    urls = []

    async def connect(url):
        urls.append(url)
        return socket

    feed = ChangeFeed("ws://chat.test/ws/realtime", "tok en", connect=connect)
    received = []

    async def handler(event):
        received.append(event)
        await feed.close()

    feed.on(CHANNEL, handler)
    await feed.run()

    assert urls == ["ws://chat.test/ws/realtime?token=tok+en"]
    assert socket.sent == [{"type": "subscribe", "channel": CHANNEL}]
    assert [e["record"]["user_id"] for e in received] == ["ana"]
    assert socket.closed
    assert feed.mode == "closed"


async def test_dropped_connection_reconnects():
    sockets = [
        FakeSocket([], drop=True),
        FakeSocket([json.dumps(change("DELETE", "ana"))]),
    ]

    async def connect(url):
        return sockets.pop(0)

    feed = ChangeFeed("ws://chat.test/ws/realtime", "token", connect=connect)
    received = []

    async def handler(event):
        received.append(event["event"])
        await feed.close()

    feed.on(CHANNEL, handler)
    await feed.run()

    assert sockets == []
    assert received == ["DELETE"]


async def test_failing_handler_does_not_stop_the_feed():
    socket = FakeSocket([json.dumps(change("INSERT", "ana")), json.dumps(change("INSERT", "ben"))])

    async def connect(url):
        return socket

    feed = ChangeFeed("ws://chat.test/ws/realtime", "token", connect=connect)
    seen = []

    def broken(event):
        raise RuntimeError("render failed")

    async def handler(event):
        seen.append(event["record"]["user_id"])
        if len(seen) == 2:
            await feed.close()

    feed.on(CHANNEL, broken)
    feed.on(CHANNEL, handler)
    await feed.run()

    assert seen == ["ana", "ben"]


async def test_falls_back_to_polling_when_realtime_is_down():
    attempts = []

    async def connect(url):
        attempts.append(url)
        raise OSError("connection refused")

    api = StubApi(
        [typing_row("ana", "t1")],
        [typing_row("ana", "t2"), typing_row("ben", "t2")],
        [typing_row("ben", "t2")],
    )
    delays = []
    feed = None

    async def sleep(delay):
        delays.append(delay)
        if len(api.calls) == 3:
            await feed.close()

    feed = ChangeFeed(
        "ws://chat.test/ws/realtime", "token",
        connect=connect, api_client=api, sleep=sleep,
        retry_policy=RetryPolicy(max_retries=2), poll_interval=0.5,
    )
    received = []
    feed.on(CHANNEL, received.append)

    await feed.run()

    assert len(attempts) == 3
    assert delays[:2] == [1.0, 2.0]
    assert delays[2:] == [0.5, 0.5, 0.5]
    assert [(e["event"], e["record"]["user_id"]) for e in received] == [
        ("INSERT", "ana"),
        ("UPDATE", "ana"),
        ("INSERT", "ben"),
        ("DELETE", "ana"),
    ]
    assert all(e["channel"] == CHANNEL for e in received)
    assert api.calls == ["chat-1", "chat-1", "chat-1"]


async def test_custom_poller_and_unsubscribe():
    feed = ChangeFeed("ws://chat.test/ws/realtime", "token")

    async def poll_notifications():
        return [{"type": "change", "channel": "notifications:ana", "event": "INSERT", "record": {}}]

    feed.add_poller("notifications:ana", poll_notifications)
    remove = feed.on("notifications:ana", lambda event: None)

    assert len(await feed.poll_channel("notifications:ana")) == 1
    assert await feed.poll_channel("chat_messages:chat-1") == []

    remove()
    assert feed.channels == []
