"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline.
"""

from __future__ import annotations

from typing import Any, Optional

from telethon.tl.custom import Message

from core.models import InboundCallback, InboundPost


def chat_type_from_message(message: Message) -> str:
    if getattr(message, "is_private", False):
        return "private"
    if getattr(message, "is_group", False):
        return "group"
    if getattr(message, "is_channel", False):
        return "channel"
    return "unknown"


def display_name(sender: Any, sender_id: Optional[int]) -> str:
    """Prefer @username, then the full name, then the numeric id."""

    username = getattr(sender, "username", None)
    if username:
        return f"@{username}"
    first = getattr(sender, "first_name", None)
    last = getattr(sender, "last_name", None)
    if first or last:
        return " ".join(part for part in [first, last] if part)
    title = getattr(sender, "title", None)
    if title:
        return str(title)
    return f"ID:{sender_id}" if sender_id else "unknown"


async def build_post(message: Message) -> InboundPost:
    """Build a core InboundPost from a Telethon Message."""

    chat = await message.get_chat()
    chat_type = chat_type_from_message(message)

    from_id: Optional[int] = None
    if getattr(message, "post", False):
        # Channel posts carry no user; fall back to the signature or title.
        from_name = getattr(message, "post_author", None) or display_name(chat, message.chat_id)
    else:
        sender = await message.get_sender()
        from_id = message.sender_id
        from_name = display_name(sender, from_id)

    username = getattr(chat, "username", None)

    return InboundPost(
        chat_id=message.chat_id,
        chat_username=username.lower() if isinstance(username, str) and username else None,
        chat_type=chat_type,
        message_id=message.id,
        from_id=from_id,
        from_name=from_name,
        date=message.date,
        # Media captions live in the same field as plain text.
        text=message.raw_text or "",
        reply_to_message_id=getattr(message, "reply_to_msg_id", None),
    )


def build_callback(event: Any) -> InboundCallback:
    """Build a core InboundCallback from a Telethon CallbackQuery event."""

    data = event.data or b""
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    return InboundCallback(
        query_id=event.query.query_id,
        from_id=event.sender_id,
        chat_id=event.chat_id,
        message_id=event.message_id,
        data=data,
    )
