from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from adapters.telegram_mapper import build_callback, build_post, display_name


class DummyPeer:
    def __init__(self, username: "str | None" = None, first_name=None, last_name=None, title=None) -> None:
        self.username = username
        self.first_name = first_name
        self.last_name = last_name
        self.title = title


class DummyMessage:
    def __init__(
        self,
        *,
        chat_id: int,
        message_id: int,
        text: "str | None",
        chat: DummyPeer,
        sender: "DummyPeer | None" = None,
        sender_id: "int | None" = None,
        is_private: bool = False,
        is_group: bool = False,
        is_channel: bool = False,
        post: bool = False,
        post_author: "str | None" = None,
        reply_to_msg_id: "int | None" = None,
    ) -> None:
        self.chat_id = chat_id
        self.id = message_id
        self.raw_text = text
        self._chat = chat
        self._sender = sender
        self.sender_id = sender_id
        self.is_private = is_private
        self.is_group = is_group
        self.is_channel = is_channel
        self.post = post
        self.post_author = post_author
        self.reply_to_msg_id = reply_to_msg_id
        self.date = datetime(2024, 1, 1, tzinfo=timezone.utc)

    async def get_chat(self):
        return self._chat

    async def get_sender(self):
        return self._sender


class DummyQuery:
    def __init__(self, query_id: int) -> None:
        self.query_id = query_id


class DummyCallbackEvent:
    def __init__(self, data: bytes) -> None:
        self.query = DummyQuery(77)
        self.sender_id = 5
        self.chat_id = 5
        self.message_id = 900
        self.data = data


def test_private_message_maps_sender_and_reply() -> None:
    user = DummyPeer(username="Alice")
    message = DummyMessage(
        chat_id=42,
        message_id=3,
        text="hello",
        chat=user,
        sender=user,
        sender_id=42,
        is_private=True,
        reply_to_msg_id=1001,
    )

    post = asyncio.run(build_post(message))

    assert post.chat_type == "private"
    assert post.is_private is True
    assert post.from_id == 42
    assert post.from_name == "@Alice"
    assert post.chat_username == "alice"
    assert post.reply_to_message_id == 1001
    assert post.text == "hello"


def test_channel_post_has_no_sender() -> None:
    channel = DummyPeer(username="NewsChan", title="News")
    message = DummyMessage(
        chat_id=-100500,
        message_id=9,
        text=None,
        chat=channel,
        sender_id=-100500,
        is_channel=True,
        post=True,
    )

    post = asyncio.run(build_post(message))

    assert post.chat_type == "channel"
    assert post.from_id is None
    assert post.from_name == "@NewsChan"
    assert post.text == ""


def test_display_name_fallbacks() -> None:
    assert display_name(DummyPeer(first_name="Ann", last_name="Lee"), 1) == "Ann Lee"
    assert display_name(DummyPeer(), 7) == "ID:7"
    assert display_name(None, None) == "unknown"


def test_callback_data_is_decoded() -> None:
    callback = build_callback(DummyCallbackEvent(b"approve:1_2_3"))

    assert callback.query_id == 77
    assert callback.from_id == 5
    assert callback.message_id == 900
    assert callback.data == "approve:1_2_3"
