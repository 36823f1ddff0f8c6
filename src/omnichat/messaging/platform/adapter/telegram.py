import threading
import time
from collections.abc import Callable
from typing import Any

import requests
import structlog
import telebot
from telebot import types as tg
from telebot.apihelper import ApiException

from omnichat.errors import CapabilityNotSupportedError, ValidationError
from omnichat.messaging.platform.capabilities import merge_capabilities
from omnichat.messaging.platform.codec import TelegramIdCodec
from omnichat.messaging.platform.config import TelegramConfig
from omnichat.messaging.platform.normalizer.telegram import (
    TelegramCallbackEvent,
    TelegramMessageEvent,
    TelegramNormalizer,
    TelegramRawEvent,
    TelegramReactionEvent,
)
from omnichat.messaging.platform.platform import AbstractPlatform
from omnichat.messaging.platform.resolver import TargetTypeResolver, infer_telegram_target
from omnichat.messaging.platform.result import (
    ForumTopicInfo,
    InviteInfo,
    InviteOptions,
    MemberInfo,
    ModerationOptions,
    MuteOptions,
    PinOptions,
    UnifiedResult,
    unified_call,
)
from omnichat.messaging.platform.types import (
    CompoundMessageId,
    MediaType,
    ParseMode,
    Participant,
    PlatformType,
    SendContent,
    SendOptions,
    SendResult,
    TargetType,
    compound_message_id,
)

_logger = structlog.get_logger()

# network failures surface as raw requests exceptions, not ApiException
_CLIENT_ERRORS: tuple[type[BaseException], ...] = (ApiException, requests.exceptions.RequestException)

_PARSE_MODES: dict[ParseMode, str | None] = {
    ParseMode.MARKDOWN: "MarkdownV2",
    ParseMode.HTML: "HTML",
    ParseMode.PLAIN: None,
}

_ADMIN_STATUSES = frozenset({"creator", "administrator"})

_CHAT_ACTIONS = frozenset(
    {
        "typing",
        "upload_photo",
        "record_video",
        "upload_video",
        "record_voice",
        "upload_voice",
        "upload_document",
        "choose_sticker",
        "find_location",
        "record_video_note",
        "upload_video_note",
    }
)

_MUTED = tg.ChatPermissions(
    can_send_messages=False,
    can_send_audios=False,
    can_send_documents=False,
    can_send_photos=False,
    can_send_videos=False,
    can_send_video_notes=False,
    can_send_voice_notes=False,
    can_send_polls=False,
    can_send_other_messages=False,
    can_add_web_page_previews=False,
)

_UNMUTED = tg.ChatPermissions(
    can_send_messages=True,
    can_send_audios=True,
    can_send_documents=True,
    can_send_photos=True,
    can_send_videos=True,
    can_send_video_notes=True,
    can_send_voice_notes=True,
    can_send_polls=True,
    can_send_other_messages=True,
    can_add_web_page_previews=True,
)

_CAPABILITIES = merge_capabilities(
    {
        "base": {"send_text": True, "send_media": True, "receive": True},
        "conversation": {"reply": True, "edit": True, "delete": True, "threads": True},
        "interaction": {"buttons": True, "polls": True, "reactions": True, "stickers": True},
        "discovery": {
            "pin_message": True,
            "unpin_message": True,
            "member_info": True,
            "member_count": True,
            "administrators": True,
        },
        "management": {
            "kick": True,
            "ban": True,
            "unban": True,
            "mute": True,
            "set_chat_title": True,
            "set_chat_description": True,
        },
        # no API lists a chat's invite links; see export_invite_link
        "advanced": {
            "create_invite": True,
            "revoke_invite": True,
            "topics": True,
            "dm_channels": True,
        },
    }
)


class TelegramPlatform(AbstractPlatform):
    """Telegram messaging platform adapter.

    Uses pyTelegramBotAPI which is natively synchronous (no async wrappers needed).
    Chat ids leave this adapter in the codec's public form; compound message ids
    carry the native chat id so they can be handed straight back to the API.
    """

    config: TelegramConfig
    capabilities = _CAPABILITIES
    codec: TelegramIdCodec

    def __init__(self, config: TelegramConfig, bot: telebot.TeleBot | None = None) -> None:
        super().__init__(config)
        # unthreaded: handlers run on the polling thread in update order
        self._bot = bot or telebot.TeleBot(config.bot_token, threaded=False)
        self.codec = TelegramIdCodec()
        self.resolver = TargetTypeResolver(infer_telegram_target)
        self.resolver.seed(config.target_types)
        self._normalizer = TelegramNormalizer(self.codec)
        self._bot_username: str = ""
        self._bot_user_id: str = ""
        self._polling_thread: threading.Thread | None = None

    def identify(self) -> PlatformType:
        return PlatformType.TELEGRAM

    def get_bot_user_id(self) -> str:
        self._require_initialized()
        return self.codec.to_public_id(self._bot_user_id)

    # -- Lifecycle -------------------------------------------------------------

    def start(self) -> None:
        if self._initialized:
            return
        _logger.info("telegram_platform_starting")
        # pyTelegramBotAPI reads its HTTP timeouts from module globals
        telebot.apihelper.CONNECT_TIMEOUT = self.config.request_timeout
        telebot.apihelper.READ_TIMEOUT = self.config.request_timeout

        bot_info = self._bot.get_me()
        self._bot_username = bot_info.username or ""
        self._bot_user_id = str(bot_info.id)
        _logger.info(
            "telegram_bot_identified",
            username=self._bot_username,
            bot_user_id=self._bot_user_id,
        )

        content_types = telebot.util.content_type_media
        self._bot.register_message_handler(self._handle_message, content_types=content_types)
        self._bot.register_channel_post_handler(self._handle_message, content_types=content_types)
        self._bot.register_callback_query_handler(self._handle_callback, func=lambda _: True)
        self._bot.register_message_reaction_handler(self._handle_reaction, func=lambda _: True)
        self._initialized = True

        self._polling_thread = threading.Thread(
            target=self._poll,
            name="telegram-polling",
            daemon=True,
        )
        self._polling_thread.start()
        _logger.info("telegram_platform_started")

    def _poll(self) -> None:
        self._bot.infinity_polling(
            timeout=self.config.polling_timeout,
            allowed_updates=telebot.util.update_types,
        )

    def _teardown(self) -> None:
        self._bot.stop_polling()
        self._bot.message_handlers.clear()
        self._bot.channel_post_handlers.clear()
        self._bot.callback_query_handlers.clear()
        self._bot.message_reaction_handlers.clear()
        if self._polling_thread is not None:
            self._polling_thread.join(timeout=self.config.request_timeout)
            self._polling_thread = None

    # -- Inbound ---------------------------------------------------------------

    def _handle_message(self, message: tg.Message) -> None:
        self._deliver(TelegramMessageEvent(message))

    def _handle_callback(self, query: tg.CallbackQuery) -> None:
        if query.message is None:
            _logger.debug("telegram_inline_callback_skipped", callback_id=query.id)
            return
        try:
            self._deliver(TelegramCallbackEvent(query))
        finally:
            try:
                self._bot.answer_callback_query(query.id)
            except _CLIENT_ERRORS:
                _logger.warning("telegram_answer_callback_failed", callback_id=query.id)

    def _handle_reaction(self, reaction: tg.MessageReactionUpdated) -> None:
        self._deliver(TelegramReactionEvent(reaction))

    def _deliver(self, event: TelegramRawEvent) -> None:
        if self._normalizer.author_id(event) == self._bot_user_id:
            return
        try:
            message = self._normalizer.normalize(event)
        except Exception:
            _logger.exception("telegram_normalize_failed", event_type=type(event).__name__)
            return
        self._remember_kinds(message.sender, message.recipient)
        self._dispatch(message)

    def _remember_kinds(self, *participants: Participant) -> None:
        """Record the chat kinds inbound events reveal.

        A group's public id is the bare absolute value, which format inference
        would read as a user; sending back to it must still reach the group.
        """
        for participant in participants:
            if participant.type is not None:
                self.resolver.remember(participant.id, participant.type)

    # -- Messaging -------------------------------------------------------------

    def send(
        self,
        target: str,
        content: SendContent,
        options: SendOptions | None = None,
    ) -> SendResult:
        self._require_initialized()
        self._require_content(content)
        if content.buttons and not (content.text or content.media_url or content.sticker_id):
            msg = "Telegram needs text or media to attach buttons to"
            raise ValidationError(msg)
        opts = options or SendOptions()
        target_type = self.resolver.resolve(target, opts.target_type)
        chat_id = self._native_target(target, target_type)

        _logger.debug(
            "telegram_sending_message",
            chat_id=chat_id,
            target_type=target_type.value,
            thread_id=opts.thread_id,
        )
        result = self._logged_call(
            "send",
            lambda: self._send_native(chat_id, content, opts),
            chat_id=chat_id,
        )
        return self._send_result(result)

    def _send_native(self, chat_id: str, content: SendContent, opts: SendOptions) -> tg.Message:
        kwargs = self._common_kwargs(opts)
        if content.buttons:
            kwargs["reply_markup"] = _inline_keyboard(content)

        if content.sticker_id:
            return self._bot.send_sticker(chat_id, content.sticker_id, **kwargs)
        if content.poll:
            return self._bot.send_poll(
                chat_id,
                content.poll.question,
                [tg.InputPollOption(text=option) for option in content.poll.options],
                allows_multiple_answers=content.poll.multi,
                **kwargs,
            )

        parse_mode = _PARSE_MODES.get(opts.parse_mode) if opts.parse_mode else None
        if content.media_url:
            sender = self._media_sender(content.media_type)
            return sender(chat_id, content.media_url, caption=content.text, parse_mode=parse_mode, **kwargs)

        return self._bot.send_message(chat_id, content.text, parse_mode=parse_mode, **kwargs)

    def _media_sender(self, media_type: MediaType | None) -> Callable[..., tg.Message]:
        match media_type:
            case MediaType.IMAGE:
                return self._bot.send_photo
            case MediaType.VIDEO:
                return self._bot.send_video
            case MediaType.AUDIO:
                return self._bot.send_audio
            case _:
                return self._bot.send_document

    def _common_kwargs(self, opts: SendOptions) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if opts.reply_to_message_id:
            kwargs["reply_parameters"] = tg.ReplyParameters(
                message_id=int(opts.reply_to_message_id),
                allow_sending_without_reply=True,
            )
        if opts.thread_id:
            kwargs["message_thread_id"] = int(opts.thread_id)
        if opts.silent:
            kwargs["disable_notification"] = True
        kwargs.update(opts.platform_options)
        return kwargs

    def edit(
        self,
        message_id: str,
        new_text: str,
        options: SendOptions | None = None,
    ) -> SendResult:
        self._require_initialized()
        compound = CompoundMessageId.parse(message_id)
        opts = options or SendOptions()
        parse_mode = _PARSE_MODES.get(opts.parse_mode) if opts.parse_mode else None

        result = self._logged_call(
            "edit",
            lambda: self._bot.edit_message_text(
                new_text,
                chat_id=compound.chat_id,
                message_id=int(compound.message_id),
                parse_mode=parse_mode,
            ),
            message_id=message_id,
        )
        if isinstance(result, bool):
            # inline messages come back as a bare success flag
            return SendResult(
                platform=PlatformType.TELEGRAM,
                message_id=message_id,
                chat_id=self.codec.to_public_id(compound.chat_id),
                timestamp=int(time.time() * 1000),
            )
        return self._send_result(result)

    def delete(self, message_id: str) -> None:
        self._require_initialized()
        compound = CompoundMessageId.parse(message_id)
        self._logged_call(
            "delete",
            lambda: self._bot.delete_message(compound.chat_id, int(compound.message_id)),
            message_id=message_id,
        )

    def add_reaction(self, message_id: str, emoji: str) -> None:
        self._require_initialized()
        compound = CompoundMessageId.parse(message_id)
        self._logged_call(
            "add_reaction",
            lambda: self._bot.set_message_reaction(
                compound.chat_id,
                int(compound.message_id),
                reaction=[tg.ReactionTypeEmoji(emoji=emoji)],
            ),
            message_id=message_id,
            emoji=emoji,
        )

    def remove_reaction(self, message_id: str, emoji: str) -> None:
        # a bot holds at most one reaction per message, so removing clears it
        self._require_initialized()
        compound = CompoundMessageId.parse(message_id)
        self._logged_call(
            "remove_reaction",
            lambda: self._bot.set_message_reaction(
                compound.chat_id,
                int(compound.message_id),
                reaction=[],
            ),
            message_id=message_id,
            emoji=emoji,
        )

    # -- Administration ----------------------------------------------------------

    def kick(
        self, chat_id: str, user_id: str, options: ModerationOptions | None = None
    ) -> UnifiedResult[None]:
        self._require_capability("management.kick")
        self._require_initialized()
        chat, user = self._native_chat(chat_id), self._native_user(user_id)

        # Telegram has no kick: ban, then lift the ban so the user may rejoin
        banned = self._unified(
            "kick_ban",
            lambda: self._bot.ban_chat_member(chat, user),
            chat_id=chat_id,
            user_id=user_id,
        )
        if not banned.success:
            return UnifiedResult.fail(banned.error or "kick failed")

        lifted = self._unified(
            "kick_unban",
            lambda: self._bot.unban_chat_member(chat, user, only_if_banned=True),
            chat_id=chat_id,
            user_id=user_id,
        )
        if not lifted.success:
            _logger.warning("telegram_kick_left_user_banned", chat_id=chat_id, user_id=user_id)
            return UnifiedResult.fail(f"{lifted.error} (user remains banned)")
        return UnifiedResult.ok()

    def ban(
        self, chat_id: str, user_id: str, options: ModerationOptions | None = None
    ) -> UnifiedResult[None]:
        self._require_capability("management.ban")
        self._require_initialized()
        chat, user = self._native_chat(chat_id), self._native_user(user_id)
        opts = options or ModerationOptions()

        until_date = opts.telegram_until_date
        if until_date is None and opts.duration_seconds:
            until_date = int(time.time()) + opts.duration_seconds

        return self._unified(
            "ban",
            lambda: self._bot.ban_chat_member(
                chat,
                user,
                until_date=until_date,
                revoke_messages=opts.delete_messages or None,
            ),
            chat_id=chat_id,
            user_id=user_id,
        )

    def unban(self, chat_id: str, user_id: str) -> UnifiedResult[None]:
        self._require_capability("management.unban")
        self._require_initialized()
        chat, user = self._native_chat(chat_id), self._native_user(user_id)
        return self._unified(
            "unban",
            lambda: self._bot.unban_chat_member(chat, user, only_if_banned=True),
            chat_id=chat_id,
            user_id=user_id,
        )

    def mute(self, chat_id: str, user_id: str, options: MuteOptions) -> UnifiedResult[None]:
        self._require_capability("management.mute")
        self._require_initialized()
        if options.duration_seconds <= 0:
            msg = f"Mute duration must be positive, got {options.duration_seconds}"
            raise ValidationError(msg)
        chat, user = self._native_chat(chat_id), self._native_user(user_id)
        until_date = int(time.time()) + options.duration_seconds
        return self._unified(
            "mute",
            lambda: self._bot.restrict_chat_member(chat, user, until_date=until_date, permissions=_MUTED),
            chat_id=chat_id,
            user_id=user_id,
            duration_seconds=options.duration_seconds,
        )

    def unmute(self, chat_id: str, user_id: str) -> UnifiedResult[None]:
        self._require_capability("management.mute")
        self._require_initialized()
        chat, user = self._native_chat(chat_id), self._native_user(user_id)

        def _unmute() -> None:
            # back to whatever the chat grants ordinary members
            permissions = self._bot.get_chat(chat).permissions or _UNMUTED
            self._bot.restrict_chat_member(chat, user, permissions=permissions)

        return self._unified("unmute", _unmute, chat_id=chat_id, user_id=user_id)

    def pin_message(
        self, chat_id: str, message_id: str, options: PinOptions | None = None
    ) -> UnifiedResult[None]:
        self._require_capability("discovery.pin_message")
        self._require_initialized()
        chat, native_message_id = self._native_chat(chat_id), _native_message_id(message_id)
        silent = options.silent if options else False
        return self._unified(
            "pin_message",
            lambda: self._bot.pin_chat_message(chat, native_message_id, disable_notification=silent),
            chat_id=chat_id,
            message_id=message_id,
        )

    def unpin_message(self, chat_id: str, message_id: str) -> UnifiedResult[None]:
        self._require_capability("discovery.unpin_message")
        self._require_initialized()
        chat, native_message_id = self._native_chat(chat_id), _native_message_id(message_id)
        return self._unified(
            "unpin_message",
            lambda: self._bot.unpin_chat_message(chat, native_message_id),
            chat_id=chat_id,
            message_id=message_id,
        )

    def create_invite(
        self, chat_id: str, options: InviteOptions | None = None
    ) -> UnifiedResult[InviteInfo]:
        self._require_capability("advanced.create_invite")
        self._require_initialized()
        chat = self._native_chat(chat_id)
        opts = options or InviteOptions()
        expire_date = int(time.time()) + opts.expires_in_seconds if opts.expires_in_seconds else None

        def _create() -> InviteInfo:
            link = self._bot.create_chat_invite_link(
                chat,
                name=opts.name,
                expire_date=expire_date,
                member_limit=opts.max_uses,
                creates_join_request=opts.telegram_creates_join_request,
            )
            return self._invite_info(link)

        return self._unified("create_invite", _create, chat_id=chat_id)

    def get_invites(self, chat_id: str) -> UnifiedResult[list[InviteInfo]]:
        raise CapabilityNotSupportedError(self.identify().value, "advanced.get_invites")

    def export_invite_link(self, chat_id: str) -> UnifiedResult[InviteInfo]:
        """Replace and return the chat's primary invite link.

        Telegram-only.  The Bot API cannot list a chat's invite links, so this
        is the closest thing to ``get_invites`` it offers: one link, and
        exporting it revokes the previous primary link.
        """
        self._require_initialized()
        chat = self._native_chat(chat_id)

        def _export() -> InviteInfo:
            url = self._bot.export_chat_invite_link(chat)
            return InviteInfo(url=url, code=_invite_code(url), is_primary=True, is_revoked=False)

        return self._unified("export_invite_link", _export, chat_id=chat_id)

    def revoke_invite(self, chat_id: str, invite: str) -> UnifiedResult[None]:
        self._require_capability("advanced.revoke_invite")
        self._require_initialized()
        chat = self._native_chat(chat_id)
        invite_link = invite if invite.startswith("https://") else f"https://t.me/+{invite}"
        return self._unified(
            "revoke_invite",
            lambda: self._bot.revoke_chat_invite_link(chat, invite_link),
            chat_id=chat_id,
        )

    def set_title(self, chat_id: str, title: str) -> UnifiedResult[None]:
        self._require_capability("management.set_chat_title")
        self._require_initialized()
        chat = self._native_chat(chat_id)
        return self._unified(
            "set_title",
            lambda: self._bot.set_chat_title(chat, title),
            chat_id=chat_id,
        )

    def set_description(self, chat_id: str, description: str) -> UnifiedResult[None]:
        self._require_capability("management.set_chat_description")
        self._require_initialized()
        chat = self._native_chat(chat_id)
        return self._unified(
            "set_description",
            lambda: self._bot.set_chat_description(chat, description),
            chat_id=chat_id,
        )

    # -- Discovery ---------------------------------------------------------------

    def get_member(self, chat_id: str, user_id: str) -> MemberInfo:
        self._require_capability("discovery.member_info")
        self._require_initialized()
        chat, user = self._native_chat(chat_id), self._native_user(user_id)
        member = self._logged_call(
            "get_member",
            lambda: self._bot.get_chat_member(chat, user),
            chat_id=chat_id,
            user_id=user_id,
        )
        return self._member_info(member)

    def get_member_count(self, chat_id: str) -> int:
        self._require_capability("discovery.member_count")
        self._require_initialized()
        chat = self._native_chat(chat_id)
        return self._logged_call(
            "get_member_count",
            lambda: int(self._bot.get_chat_member_count(chat)),
            chat_id=chat_id,
        )

    def get_administrators(self, chat_id: str) -> list[MemberInfo]:
        self._require_capability("discovery.administrators")
        self._require_initialized()
        chat = self._native_chat(chat_id)
        admins = self._logged_call(
            "get_administrators",
            lambda: self._bot.get_chat_administrators(chat),
            chat_id=chat_id,
        )
        return [self._member_info(admin) for admin in admins]

    def create_dm_channel(self, user_id: str) -> str:
        # a private chat shares its id with the user
        self._require_capability("advanced.dm_channels")
        self._require_initialized()
        return self.codec.to_public_id(self._native_user(user_id))

    # -- Telegram-only ---------------------------------------------------------

    def forward_message(
        self,
        target: str,
        message_id: str,
        options: SendOptions | None = None,
    ) -> SendResult:
        """Forward the message behind a compound id to *target*.

        A messaging call like ``send``: platform failures are logged and raised.
        """
        self._require_initialized()
        source = CompoundMessageId.parse(message_id)
        opts = options or SendOptions()
        chat_id = self._native_target(target, self.resolver.resolve(target, opts.target_type))
        kwargs: dict[str, Any] = {}
        if opts.thread_id:
            kwargs["message_thread_id"] = int(opts.thread_id)
        if opts.silent:
            kwargs["disable_notification"] = True

        forwarded = self._logged_call(
            "forward_message",
            lambda: self._bot.forward_message(
                chat_id,
                source.chat_id,
                _native_message_id(source.message_id),
                **kwargs,
            ),
            target=target,
            message_id=message_id,
        )
        return self._send_result(forwarded)

    def send_chat_action(
        self, chat_id: str, action: str, thread_id: str | None = None
    ) -> UnifiedResult[None]:
        """Show a transient status such as ``typing`` or ``upload_photo``."""
        self._require_initialized()
        if action not in _CHAT_ACTIONS:
            msg = f"Unknown Telegram chat action {action!r}"
            raise ValidationError(msg)
        chat = self._native_target(chat_id, self.resolver.resolve(chat_id))
        thread = int(thread_id) if thread_id else None
        return self._unified(
            "send_chat_action",
            lambda: self._bot.send_chat_action(chat, action, message_thread_id=thread),
            chat_id=chat_id,
            action=action,
        )

    def approve_join_request(self, chat_id: str, user_id: str) -> UnifiedResult[None]:
        self._require_initialized()
        chat, user = self._native_chat(chat_id), self._native_user(user_id)
        return self._unified(
            "approve_join_request",
            lambda: self._bot.approve_chat_join_request(chat, user),
            chat_id=chat_id,
            user_id=user_id,
        )

    def decline_join_request(self, chat_id: str, user_id: str) -> UnifiedResult[None]:
        self._require_initialized()
        chat, user = self._native_chat(chat_id), self._native_user(user_id)
        return self._unified(
            "decline_join_request",
            lambda: self._bot.decline_chat_join_request(chat, user),
            chat_id=chat_id,
            user_id=user_id,
        )

    def create_forum_topic(
        self,
        chat_id: str,
        name: str,
        icon_color: int | None = None,
        icon_custom_emoji_id: str | None = None,
    ) -> UnifiedResult[ForumTopicInfo]:
        self._require_capability("advanced.topics")
        self._require_initialized()
        chat = self._native_chat(chat_id)

        def _create() -> ForumTopicInfo:
            topic = self._bot.create_forum_topic(
                chat,
                name,
                icon_color=icon_color,
                icon_custom_emoji_id=icon_custom_emoji_id,
            )
            return ForumTopicInfo(
                thread_id=str(topic.message_thread_id),
                name=topic.name,
                icon_color=topic.icon_color,
                icon_custom_emoji_id=topic.icon_custom_emoji_id,
                raw=topic,
            )

        return self._unified("create_forum_topic", _create, chat_id=chat_id, name=name)

    def edit_forum_topic(
        self,
        chat_id: str,
        thread_id: str,
        name: str | None = None,
        icon_custom_emoji_id: str | None = None,
    ) -> UnifiedResult[None]:
        self._require_capability("advanced.topics")
        self._require_initialized()
        chat, thread = self._native_chat(chat_id), _native_message_id(thread_id)
        return self._unified(
            "edit_forum_topic",
            lambda: self._bot.edit_forum_topic(
                chat,
                thread,
                name=name,
                icon_custom_emoji_id=icon_custom_emoji_id,
            ),
            chat_id=chat_id,
            thread_id=thread_id,
        )

    def close_forum_topic(self, chat_id: str, thread_id: str) -> UnifiedResult[None]:
        return self._topic_call("close_forum_topic", self._bot.close_forum_topic, chat_id, thread_id)

    def reopen_forum_topic(self, chat_id: str, thread_id: str) -> UnifiedResult[None]:
        return self._topic_call("reopen_forum_topic", self._bot.reopen_forum_topic, chat_id, thread_id)

    def delete_forum_topic(self, chat_id: str, thread_id: str) -> UnifiedResult[None]:
        return self._topic_call("delete_forum_topic", self._bot.delete_forum_topic, chat_id, thread_id)

    def _topic_call(
        self,
        operation: str,
        call: Callable[[str, int], Any],
        chat_id: str,
        thread_id: str,
    ) -> UnifiedResult[None]:
        self._require_capability("advanced.topics")
        self._require_initialized()
        chat, thread = self._native_chat(chat_id), _native_message_id(thread_id)
        return self._unified(operation, lambda: call(chat, thread), chat_id=chat_id, thread_id=thread_id)

    # -- Helpers -----------------------------------------------------------------

    def _unified[T](self, operation: str, call: Callable[[], T], **context: Any) -> UnifiedResult[T]:
        return unified_call("telegram", operation, call, _CLIENT_ERRORS, **context)

    def _native_target(self, target: str, target_type: TargetType) -> str:
        if target.startswith("@"):
            return target
        return self.codec.to_native_id(target, target_type)

    def _native_chat(self, chat_id: str) -> str:
        """Native id of a chat being administered; these are always groups or channels."""
        if chat_id.startswith("@"):
            return chat_id
        return self.codec.to_native_id(chat_id, TargetType.GROUP)

    def _native_user(self, user_id: str) -> int:
        return int(self.codec.to_native_id(user_id, TargetType.USER))

    def _send_result(self, message: Any) -> SendResult:
        return SendResult(
            platform=PlatformType.TELEGRAM,
            message_id=compound_message_id(message.chat.id, message.message_id),
            chat_id=self.codec.to_public_id(message.chat.id),
            timestamp=int(message.date) * 1000,
        )

    def _participant(self, user: Any) -> Participant:
        full_name = " ".join(n for n in (user.first_name, user.last_name) if n)
        return Participant(
            id=self.codec.to_public_id(user.id),
            name=full_name or user.username or str(user.id),
            username=user.username,
            type=TargetType.USER,
        )

    def _member_info(self, member: Any) -> MemberInfo:
        participant = self._participant(member.user)
        return MemberInfo(
            id=participant.id,
            name=participant.name,
            username=participant.username,
            roles=(member.status,),
            is_admin=member.status in _ADMIN_STATUSES,
            is_owner=member.status == "creator",
            custom_title=getattr(member, "custom_title", None),
            raw=member,
        )

    def _invite_info(self, link: Any) -> InviteInfo:
        return InviteInfo(
            url=link.invite_link,
            code=_invite_code(link.invite_link),
            creator=self._participant(link.creator) if link.creator else None,
            max_uses=link.member_limit,
            expires_at=link.expire_date * 1000 if link.expire_date else None,
            is_revoked=link.is_revoked,
            is_primary=link.is_primary,
            raw=link,
        )


def _inline_keyboard(content: SendContent) -> tg.InlineKeyboardMarkup:
    markup = tg.InlineKeyboardMarkup()
    for row in content.buttons or []:
        markup.row(*(tg.InlineKeyboardButton(button.text, callback_data=button.data) for button in row))
    return markup


def _native_message_id(message_id: str) -> int:
    """Accept either a compound id or a bare native message id."""
    if ":" in message_id:
        message_id = CompoundMessageId.parse(message_id).message_id
    try:
        return int(message_id)
    except ValueError:
        msg = f"Invalid Telegram message id: {message_id!r}"
        raise ValidationError(msg) from None


def _invite_code(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1]
