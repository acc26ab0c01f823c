"""Administrative command surface.

Each command maps onto one store mutation (through the session) plus an
acknowledgement. Commands that need an argument and receive none open a
force-reply prompt; the admin's reply to that prompt completes the command.
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from core.errors import ValidationError
from core.formatting import (
    build_traffic_keyboard,
    format_buttons,
    format_stats,
    format_template_test,
    format_templates,
    sorted_buttons,
)
from core.models import AdTemplate, ConfigPatch, InboundPost, Keyboard, TrafficButton
from core.ports import TransportPort
from core.session import ModeratorSession
from core.template_matcher import clamp_threshold, rank_templates

LOGGER = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\"([^\"]*)\"|'([^']*)'|(\S+)")
_URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)
_COMMAND_RE = re.compile(r"^/(\w+)(?:@\S+)?(?:\s+(.*))?$", re.DOTALL)

HELP_TEXT = "\n".join(
    [
        "🆘 <b>Help</b>",
        "• Send a post in private chat or a monitored group/channel; it is reviewed before publishing.",
        "• Posts that look like a known advertisement template are flagged for the reviewers.",
        "• Approved posts are forwarded to the target channel.",
        "• Admins: /target /review /welcome /allowlist_mode /strict /threshold /admins /buttons "
        "/templates /tpl_test /allow /block /sources /stats",
    ]
)


def tokenize(raw: str) -> List[str]:
    """Split arguments on whitespace, keeping quoted strings together."""

    tokens = []
    for match in _TOKEN_RE.finditer(raw or ""):
        double, single, bare = match.groups()
        tokens.append(next(value for value in (double, single, bare) if value is not None))
    return tokens


def parse_user_id(raw: str) -> int:
    value = (raw or "").strip()
    try:
        user_id = int(value)
    except ValueError:
        raise ValidationError("❌ A numeric user ID is required.") from None
    if not user_id:
        raise ValidationError("❌ A numeric user ID is required.")
    return user_id


def parse_threshold(raw: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError("❌ The threshold must be a number between 0 and 1.") from None
    if not 0.0 <= value <= 1.0:
        raise ValidationError("❌ The threshold must be a number between 0 and 1.")
    return value


def parse_index(raw: str, size: int) -> int:
    try:
        index = int(raw) - 1
    except (TypeError, ValueError):
        raise ValidationError("❌ Index out of range (list first to see the numbers).") from None
    if index < 0 or index >= size:
        raise ValidationError("❌ Index out of range (list first to see the numbers).")
    return index


def parse_button(tokens: List[str]) -> TrafficButton:
    if len(tokens) < 3:
        raise ValidationError('❌ Usage: "text" url order')
    text, url, order_raw = tokens[0], tokens[1], tokens[2]
    if not text or not _URL_RE.match(url):
        raise ValidationError("❌ Invalid button: the URL must start with http:// or https://")
    try:
        order = int(order_raw)
    except ValueError:
        raise ValidationError("❌ Invalid button: the order must be an integer.") from None
    return TrafficButton(text=text, url=url, order=order)


def parse_template(tokens: List[str], default_threshold: float) -> AdTemplate:
    if len(tokens) < 2 or not tokens[0] or not tokens[1]:
        raise ValidationError('❌ Usage: "name" "content" [threshold 0~1]')
    threshold = parse_threshold(tokens[2]) if len(tokens) > 2 else clamp_threshold(default_threshold)
    # Multi-line template content may be typed with literal \n separators.
    content = tokens[1].replace("\\n", "\n")
    return AdTemplate(name=tokens[0], content=content, threshold=threshold)


@dataclass(frozen=True)
class Reply:
    text: str
    buttons: Optional[Keyboard] = None


@dataclass(frozen=True)
class Command:
    handler: Callable[[str], Reply]
    # "none": ignores args; "optional": no args means "show"; "required": prompts.
    args: str = "none"
    prompt: str = ""
    admin_only: bool = True


class AdminCommands:
    """Command handlers; each returns the acknowledgement to send back."""

    def __init__(self, session: ModeratorSession) -> None:
        self._session = session

    # -- targets and texts -------------------------------------------------

    def target(self, raw: str) -> Reply:
        value = raw.strip()
        if not value:
            return Reply(f"🎯 Forward target: {html.escape(self._session.config.forward_target_id) or '(unset)'}")
        self._session.update_config(ConfigPatch(forward_target_id=value))
        return Reply(f"✅ Forward target updated: {html.escape(value)}")

    def review(self, raw: str) -> Reply:
        value = raw.strip()
        if not value:
            current = self._session.config.review_target_id or "(off, cards go to each admin)"
            return Reply(f"🔍 Review target: {html.escape(current)}")
        if value.lower() == "off":
            value = ""
        self._session.update_config(ConfigPatch(review_target_id=value))
        return Reply(f"✅ Review target set to: {html.escape(value) or '(off, cards go to each admin)'}")

    def welcome(self, raw: str) -> Reply:
        value = raw.strip()
        if not value:
            return Reply(f"👋 Welcome text:\n{html.escape(self._session.config.welcome_text)}")
        self._session.update_config(ConfigPatch(welcome_text=value))
        return Reply("✅ Welcome text updated.")

    # -- policy switches ---------------------------------------------------

    def toggle_allowlist_mode(self, _: str = "") -> Reply:
        enabled = not self._session.config.allowlist_mode
        self._session.update_config(ConfigPatch(allowlist_mode=enabled))
        return Reply(f"🧾 Allow-list mode: {'✅ on' if enabled else '❌ off'}")

    def toggle_strict(self, _: str = "") -> Reply:
        enabled = not self._session.strict_mode
        self._session.update_config(ConfigPatch(strict_template=enabled))
        state = "✅ on (only template matches are queued)" if enabled else "❌ off (everything is queued)"
        return Reply(f"📐 Strict template mode: {state}")

    def threshold(self, raw: str) -> Reply:
        value = raw.strip()
        if not value:
            return Reply(f"⚙️ Global threshold: {self._session.config.default_threshold}")
        threshold = parse_threshold(value)
        self._session.update_config(ConfigPatch(default_threshold=threshold))
        return Reply(f"✅ Global threshold updated to {threshold}")

    # -- admins ------------------------------------------------------------

    def admins(self, _: str = "") -> Reply:
        ids = "\n".join(str(admin_id) for admin_id in self._session.config.admin_ids) or "(none)"
        return Reply(f"👑 Admins:\n{ids}")

    def admin_add(self, raw: str) -> Reply:
        user_id = parse_user_id(raw)
        current = list(self._session.config.admin_ids)
        if user_id not in current:
            current.append(user_id)
            self._session.update_config(ConfigPatch(admin_ids=current))
        return Reply(f"✅ Admin added: {user_id}")

    def admin_del(self, raw: str) -> Reply:
        user_id = parse_user_id(raw)
        remaining = [admin_id for admin_id in self._session.config.admin_ids if admin_id != user_id]
        if not remaining:
            raise ValidationError("❌ Cannot remove the last admin.")
        self._session.update_config(ConfigPatch(admin_ids=remaining))
        return Reply(f"✅ Admin removed: {user_id}")

    # -- buttons -----------------------------------------------------------

    def buttons(self, _: str = "") -> Reply:
        return Reply(format_buttons(self._session.buttons), build_traffic_keyboard(self._session.buttons))

    def button_add(self, raw: str) -> Reply:
        button = parse_button(tokenize(raw))
        self._session.replace_buttons([*self._session.buttons, button])
        return self._with_preview("✅ Button added.")

    def button_set(self, raw: str) -> Reply:
        tokens = tokenize(raw)
        if len(tokens) < 4:
            raise ValidationError('❌ Usage: number "text" url order')
        ordered = sorted_buttons(self._session.buttons)
        index = parse_index(tokens[0], len(ordered))
        ordered[index] = parse_button(tokens[1:])
        self._session.replace_buttons(ordered)
        return self._with_preview("✅ Button updated.")

    def button_del(self, raw: str) -> Reply:
        ordered = sorted_buttons(self._session.buttons)
        index = parse_index(raw.strip(), len(ordered))
        del ordered[index]
        self._session.replace_buttons(ordered)
        return self._with_preview("✅ Button removed.")

    def _with_preview(self, message: str) -> Reply:
        return Reply(f"{message}\n\n{format_buttons(self._session.buttons)}", build_traffic_keyboard(self._session.buttons))

    # -- templates ---------------------------------------------------------

    def templates(self, _: str = "") -> Reply:
        return Reply(format_templates(self._session.templates, self._session.config.default_threshold))

    def tpl_add(self, raw: str) -> Reply:
        template = parse_template(tokenize(raw), self._session.config.default_threshold)
        self._session.replace_templates([*self._session.templates, template])
        return Reply(f"✅ Template added: {html.escape(template.name)}")

    def tpl_set(self, raw: str) -> Reply:
        tokens = tokenize(raw)
        if len(tokens) < 3:
            raise ValidationError('❌ Usage: number "name" "content" [threshold 0~1]')
        templates = list(self._session.templates)
        index = parse_index(tokens[0], len(templates))
        templates[index] = parse_template(tokens[1:], self._session.config.default_threshold)
        self._session.replace_templates(templates)
        return Reply(f"✅ Template #{index + 1} updated.")

    def tpl_del(self, raw: str) -> Reply:
        templates = list(self._session.templates)
        index = parse_index(raw.strip(), len(templates))
        removed = templates.pop(index)
        self._session.replace_templates(templates)
        return Reply(f"✅ Template removed: {html.escape(removed.name)}")

    def tpl_test(self, raw: str) -> Reply:
        scores = rank_templates(raw, self._session.templates, self._session.config.default_threshold)
        return Reply(format_template_test(scores))

    # -- allow / block -----------------------------------------------------

    def allow(self, raw: str) -> Reply:
        user_id = parse_user_id(raw)
        self._session.allow(user_id)
        return Reply(f"✅ Added to the allow list: {user_id}")

    def unallow(self, raw: str) -> Reply:
        user_id = parse_user_id(raw)
        self._session.unallow(user_id)
        return Reply(f"✅ Removed from the allow list: {user_id}")

    def block(self, raw: str) -> Reply:
        user_id = parse_user_id(raw)
        self._session.block(user_id)
        return Reply(f"🚫 Blocked: {user_id}")

    def unblock(self, raw: str) -> Reply:
        user_id = parse_user_id(raw)
        self._session.unblock(user_id)
        return Reply(f"✅ Unblocked: {user_id}")

    # -- source allow-list ------------------------------------------------

    def sources(self, _: str = "") -> Reply:
        entries = "\n".join(self._session.config.sources_allow) or "(empty = every source is accepted)"
        return Reply(f"🧱 Source allow-list:\n{html.escape(entries)}")

    def source_add(self, raw: str) -> Reply:
        value = raw.strip()
        if not value:
            raise ValidationError("❌ A chat ID or @username is required.")
        current = list(self._session.config.sources_allow)
        if value not in current:
            current.append(value)
            self._session.update_config(ConfigPatch(sources_allow=current))
        return Reply(f"✅ Source allowed: {html.escape(value)}")

    def source_del(self, raw: str) -> Reply:
        value = raw.strip()
        remaining = [entry for entry in self._session.config.sources_allow if entry != value]
        self._session.update_config(ConfigPatch(sources_allow=remaining))
        return Reply(f"✅ Source removed: {html.escape(value)}")

    def sources_clear(self, _: str = "") -> Reply:
        self._session.update_config(ConfigPatch(sources_allow=[]))
        return Reply("✅ Source allow-list cleared (every source is accepted).")

    # -- read-only -----------------------------------------------------------

    def stats(self, _: str = "") -> Reply:
        return Reply(format_stats(self._session.stats()))

    def start(self, _: str = "") -> Reply:
        return Reply(html.escape(self._session.config.welcome_text), build_traffic_keyboard(self._session.buttons))

    def help(self, _: str = "") -> Reply:
        return Reply(HELP_TEXT)

    def table(self) -> Dict[str, Command]:
        return {
            "start": Command(self.start, admin_only=False),
            "help": Command(self.help, admin_only=False),
            "target": Command(self.target, "optional"),
            "review": Command(self.review, "optional"),
            "welcome": Command(self.welcome, "optional"),
            "allowlist_mode": Command(self.toggle_allowlist_mode),
            "strict": Command(self.toggle_strict),
            "threshold": Command(self.threshold, "optional"),
            "admins": Command(self.admins),
            "admin_add": Command(self.admin_add, "required", "Send the user ID of the new admin."),
            "admin_del": Command(self.admin_del, "required", "Send the user ID of the admin to remove."),
            "buttons": Command(self.buttons),
            "button_add": Command(self.button_add, "required", 'Send: "text" url order\nExample: "Site" https://example.com 1'),
            "button_set": Command(self.button_set, "required", 'Send: number "text" url order'),
            "button_del": Command(self.button_del, "required", "Send the number of the button to remove."),
            "templates": Command(self.templates),
            "tpl_add": Command(self.tpl_add, "required", 'Send: "name" "content" [threshold 0~1]'),
            "tpl_set": Command(self.tpl_set, "required", 'Send: number "name" "content" [threshold 0~1]'),
            "tpl_del": Command(self.tpl_del, "required", "Send the number of the template to remove."),
            "tpl_test": Command(self.tpl_test, "required", "Send the text to score against the templates."),
            "allow": Command(self.allow, "required", "Send the user ID to allow."),
            "unallow": Command(self.unallow, "required", "Send the user ID to remove from the allow list."),
            "block": Command(self.block, "required", "Send the user ID to block."),
            "unblock": Command(self.unblock, "required", "Send the user ID to unblock."),
            "sources": Command(self.sources),
            "source_add": Command(self.source_add, "required", "Send the chat ID or @username to allow."),
            "source_del": Command(self.source_del, "required", "Send the chat ID or @username to remove."),
            "sources_clear": Command(self.sources_clear),
            "stats": Command(self.stats),
        }


def split_command(text: str) -> Optional[Tuple[str, str]]:
    """Return (name, argument text) for a slash command, dropping @botname."""

    match = _COMMAND_RE.match((text or "").strip())
    if match is None:
        return None
    return match.group(1).lower(), (match.group(2) or "").strip()


class AdminConsole:
    """Route slash commands and prompted replies to AdminCommands."""

    def __init__(self, session: ModeratorSession, transport: TransportPort) -> None:
        self._session = session
        self._transport = transport
        self._commands = AdminCommands(session).table()

    async def handle(self, post: InboundPost) -> bool:
        """Return True when the post was consumed as admin input."""

        sender = post.from_id
        if sender and self._session.is_admin(sender) and post.reply_to_message_id:
            prompt = self._session.prompts.resolve(sender, post.reply_to_message_id)
            if prompt is not None:
                await self._run(post, prompt.kind, post.text)
                return True

        parsed = split_command(post.text)
        if parsed is None or parsed[0] not in self._commands:
            return False
        name, raw = parsed
        command = self._commands[name]

        if command.admin_only and not self._session.is_admin(sender):
            await self._transport.send_message(post.chat_id, "🚫 You are not authorized to do that.")
            return True

        if command.args == "required" and not raw:
            result = await self._transport.send_message(
                post.chat_id,
                f"{html.escape(command.prompt)}\n\n(reply directly to this message)",
                force_reply=True,
            )
            if result.ok and result.value is not None and sender:
                self._session.prompts.ask(sender, name, int(result.value))
            return True

        await self._run(post, name, raw)
        return True

    async def _run(self, post: InboundPost, name: str, raw: str) -> None:
        try:
            reply = self._commands[name].handler(raw)
        except ValidationError as exc:
            reply = Reply(str(exc))
        else:
            LOGGER.info("Admin %s ran /%s", post.from_id, name)
        await self._transport.send_message(post.chat_id, reply.text, buttons=reply.buttons)
