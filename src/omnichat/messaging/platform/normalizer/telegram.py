import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from telebot import types as tg

from omnichat.messaging.platform.codec import TelegramIdCodec
from omnichat.messaging.platform.types import (
    CallbackContent,
    ContactContent,
    EmptyContent,
    LocationContent,
    MediaContent,
    MediaType,
    Message,
    MessageContent,
    Participant,
    PlatformType,
    PollContent,
    ReactionContent,
    ReplyReference,
    StickerContent,
    TargetType,
    TextContent,
    ThreadInfo,
    VoiceContent,
    compound_message_id,
)

_CHAT_KINDS: dict[str, TargetType] = {
    "private": TargetType.USER,
    "group": TargetType.GROUP,
    "supergroup": TargetType.GROUP,
    "channel": TargetType.CHANNEL,
}


@dataclass(frozen=True)
class TelegramMessageEvent:
    message: tg.Message


@dataclass(frozen=True)
class TelegramCallbackEvent:
    query: tg.CallbackQuery


@dataclass(frozen=True)
class TelegramReactionEvent:
    reaction: tg.MessageReactionUpdated


type TelegramRawEvent = TelegramMessageEvent | TelegramCallbackEvent | TelegramReactionEvent


def _field(obj: Any, name: str) -> Any:
    return getattr(obj, name, None)


class TelegramNormalizer:
    """Turns pyTelegramBotAPI update objects into canonical Messages.

    Chat and user ids are exposed through :class:`TelegramIdCodec`; compound
    message ids keep the native chat id so they can be replied to directly.
    """

    def __init__(self, codec: TelegramIdCodec, clock: Callable[[], float] = time.time) -> None:
        self._codec = codec
        self._clock = clock

    def normalize(self, event: TelegramRawEvent) -> Message:
        match event:
            case TelegramMessageEvent(message=message):
                return self._from_message(message)
            case TelegramCallbackEvent(query=query):
                return self._from_callback(query)
            case TelegramReactionEvent(reaction=reaction):
                return self._from_reaction(reaction)
        msg = f"Unsupported Telegram event: {type(event).__name__}"
        raise TypeError(msg)

    def author_id(self, event: TelegramRawEvent) -> str | None:
        """Native id of whoever produced *event*, if known."""
        match event:
            case TelegramMessageEvent(message=message):
                author = _field(message, "from_user")
            case TelegramCallbackEvent(query=query):
                author = _field(query, "from_user")
            case TelegramReactionEvent(reaction=reaction):
                author = _field(reaction, "user")
            case _:
                author = None
        return str(author.id) if author is not None else None

    # -- Event kinds ---------------------------------------------------------

    def _from_message(self, message: Any) -> Message:
        chat = message.chat
        content = self._content(message)
        reply_source = _field(message, "reply_to_message")
        thread = self._thread(message, reply_source)

        # Inside a forum topic every message "replies" to the topic's creation
        # service message; that link is the thread, not a reply.
        if thread is not None and reply_source is not None:
            if _field(reply_source, "forum_topic_created") is not None:
                reply_source = None

        return Message(
            platform=PlatformType.TELEGRAM,
            type=content.kind,
            sender=self._sender(message),
            recipient=self._chat_participant(chat),
            content=content,
            reply_to=self._reply(chat, reply_source),
            thread=thread,
            message_id=compound_message_id(chat.id, message.message_id),
            timestamp=int(message.date) * 1000,
            raw=message,
        )

    def _from_callback(self, query: Any) -> Message:
        source = query.message
        chat = source.chat
        return Message(
            platform=PlatformType.TELEGRAM,
            type=CallbackContent.kind,
            sender=self._user_participant(query.from_user),
            recipient=self._chat_participant(chat),
            content=CallbackContent(data=_field(query, "data") or ""),
            reply_to=ReplyReference(
                message_id=compound_message_id(chat.id, source.message_id),
                text=_field(source, "text"),
            ),
            message_id=compound_message_id(chat.id, source.message_id),
            timestamp=int(self._clock() * 1000),
            raw=query,
        )

    def _from_reaction(self, reaction: Any) -> Message:
        chat = reaction.chat
        new = list(_field(reaction, "new_reaction") or [])
        old = list(_field(reaction, "old_reaction") or [])
        if new:
            content = ReactionContent(emoji=_reaction_emoji(new[0]))
        else:
            content = ReactionContent(emoji=_reaction_emoji(old[0]) if old else "", removed=True)

        user = _field(reaction, "user")
        sender = (
            self._user_participant(user)
            if user is not None
            else self._chat_participant(_field(reaction, "actor_chat") or chat)
        )
        return Message(
            platform=PlatformType.TELEGRAM,
            type=content.kind,
            sender=sender,
            recipient=self._chat_participant(chat),
            content=content,
            reply_to=ReplyReference(message_id=compound_message_id(chat.id, reaction.message_id)),
            message_id=compound_message_id(chat.id, reaction.message_id),
            timestamp=int(reaction.date) * 1000,
            raw=reaction,
        )

    # -- Pieces --------------------------------------------------------------

    def _content(self, message: Any) -> MessageContent:
        # One variant only, in fixed priority order.
        caption = _field(message, "caption")
        if text := _field(message, "text"):
            return TextContent(text=text)
        if photo := _field(message, "photo"):
            # PhotoSize list, largest last
            return MediaContent(url=photo[-1].file_id, media_type=MediaType.IMAGE, caption=caption)
        if video := _field(message, "video"):
            return MediaContent(url=video.file_id, media_type=MediaType.VIDEO, caption=caption)
        if voice := _field(message, "voice"):
            return VoiceContent(url=voice.file_id, duration=_field(voice, "duration"), caption=caption)
        if audio := _field(message, "audio"):
            return MediaContent(url=audio.file_id, media_type=MediaType.AUDIO, caption=caption)
        if document := _field(message, "document"):
            return MediaContent(url=document.file_id, media_type=MediaType.FILE, caption=caption)
        if sticker := _field(message, "sticker"):
            return StickerContent(sticker_id=sticker.file_id)
        if location := _field(message, "location"):
            venue = _field(message, "venue")
            return LocationContent(
                latitude=location.latitude,
                longitude=location.longitude,
                title=_field(venue, "title") if venue is not None else None,
            )
        if contact := _field(message, "contact"):
            return ContactContent(
                phone_number=contact.phone_number,
                first_name=contact.first_name,
                last_name=_field(contact, "last_name"),
            )
        if poll := _field(message, "poll"):
            return PollContent(
                poll_id=str(poll.id),
                question=poll.question,
                options=tuple(option.text for option in poll.options or []),
            )
        return EmptyContent()

    def _thread(self, message: Any, reply_source: Any) -> ThreadInfo | None:
        thread_id = _field(message, "message_thread_id")
        if not thread_id:
            return None
        title = None
        if reply_source is not None:
            created = _field(reply_source, "forum_topic_created")
            title = _field(created, "name") if created is not None else None
        return ThreadInfo(id=str(thread_id), title=title)

    def _reply(self, chat: Any, reply_source: Any) -> ReplyReference | None:
        if reply_source is None:
            return None
        author = _field(reply_source, "from_user")
        return ReplyReference(
            message_id=compound_message_id(chat.id, reply_source.message_id),
            text=_field(reply_source, "text") or _field(reply_source, "caption"),
            sender=self._user_participant(author) if author is not None else None,
        )

    def _sender(self, message: Any) -> Participant:
        if (user := _field(message, "from_user")) is not None:
            return self._user_participant(user)
        # channel posts and anonymous admins speak as a chat
        return self._chat_participant(_field(message, "sender_chat") or message.chat)

    def _user_participant(self, user: Any) -> Participant:
        names = [_field(user, "first_name"), _field(user, "last_name")]
        full_name = " ".join(n for n in names if n)
        username = _field(user, "username")
        return Participant(
            id=self._codec.to_public_id(user.id),
            name=full_name or username or str(user.id),
            username=username,
            type=TargetType.USER,
        )

    def _chat_participant(self, chat: Any) -> Participant:
        public_id = self._codec.to_public_id(chat.id)
        return Participant(
            id=public_id,
            name=_field(chat, "title")
            or _field(chat, "username")
            or _field(chat, "first_name")
            or public_id,
            username=_field(chat, "username"),
            type=_CHAT_KINDS.get(_field(chat, "type") or "", TargetType.USER),
        )


def _reaction_emoji(reaction_type: Any) -> str:
    return _field(reaction_type, "emoji") or _field(reaction_type, "custom_emoji_id") or ""
