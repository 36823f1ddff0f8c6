import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import discord

from omnichat.messaging.platform.types import (
    CallbackContent,
    EmptyContent,
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

_THREAD_TYPES = frozenset(
    {
        discord.ChannelType.public_thread,
        discord.ChannelType.private_thread,
        discord.ChannelType.news_thread,
    }
)

# attachment kinds, best first
_MEDIA_PRIORITY = (MediaType.IMAGE, MediaType.VIDEO, "voice", MediaType.AUDIO, MediaType.FILE)


@dataclass(frozen=True)
class DiscordMessageEvent:
    message: discord.Message


@dataclass(frozen=True)
class DiscordReactionEvent:
    reaction: discord.Reaction
    user: discord.abc.User
    removed: bool = False


@dataclass(frozen=True)
class DiscordComponentEvent:
    interaction: discord.Interaction


type DiscordRawEvent = DiscordMessageEvent | DiscordReactionEvent | DiscordComponentEvent


def _field(obj: Any, name: str) -> Any:
    return getattr(obj, name, None)


def _attachment_kind(attachment: Any) -> MediaType | str:
    is_voice = _field(attachment, "is_voice_message")
    if callable(is_voice) and is_voice():
        return "voice"
    content_type = _field(attachment, "content_type") or ""
    if content_type.startswith("image/"):
        return MediaType.IMAGE
    if content_type.startswith("video/"):
        return MediaType.VIDEO
    if content_type.startswith("audio/"):
        return MediaType.AUDIO
    return MediaType.FILE


class DiscordNormalizer:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def normalize(self, event: DiscordRawEvent) -> Message:
        match event:
            case DiscordMessageEvent(message=message):
                return self._from_message(message)
            case DiscordReactionEvent(reaction=reaction, user=user, removed=removed):
                return self._from_reaction(reaction, user, removed)
            case DiscordComponentEvent(interaction=interaction):
                return self._from_interaction(interaction)
        msg = f"Unsupported Discord event: {type(event).__name__}"
        raise TypeError(msg)

    def author_id(self, event: DiscordRawEvent) -> str | None:
        match event:
            case DiscordMessageEvent(message=message):
                author = _field(message, "author")
            case DiscordReactionEvent(user=user):
                author = user
            case DiscordComponentEvent(interaction=interaction):
                author = _field(interaction, "user")
            case _:
                author = None
        return str(author.id) if author is not None else None

    # -- Event kinds ---------------------------------------------------------

    def _from_message(self, message: Any) -> Message:
        channel = message.channel
        content = self._content(message)
        return Message(
            platform=PlatformType.DISCORD,
            type=content.kind,
            sender=self._user_participant(message.author),
            recipient=self._channel_participant(channel),
            content=content,
            reply_to=self._reply(message),
            thread=self._thread(channel),
            message_id=compound_message_id(channel.id, message.id),
            timestamp=int(message.created_at.timestamp() * 1000),
            raw=message,
        )

    def _from_reaction(self, reaction: Any, user: Any, removed: bool) -> Message:
        message = reaction.message
        channel = message.channel
        content = ReactionContent(emoji=str(reaction.emoji), removed=removed)
        return Message(
            platform=PlatformType.DISCORD,
            type=content.kind,
            sender=self._user_participant(user),
            recipient=self._channel_participant(channel),
            content=content,
            reply_to=ReplyReference(
                message_id=compound_message_id(channel.id, message.id),
                text=_field(message, "content") or None,
            ),
            thread=self._thread(channel),
            message_id=compound_message_id(channel.id, message.id),
            timestamp=int(self._clock() * 1000),
            raw=reaction,
        )

    def _from_interaction(self, interaction: Any) -> Message:
        channel = _field(interaction, "channel")
        channel_id = channel.id if channel is not None else interaction.channel_id
        source = interaction.message
        data = _field(interaction, "data") or {}
        recipient = (
            self._channel_participant(channel)
            if channel is not None
            else Participant(id=str(channel_id), name=str(channel_id), type=TargetType.CHANNEL)
        )
        return Message(
            platform=PlatformType.DISCORD,
            type=CallbackContent.kind,
            sender=self._user_participant(interaction.user),
            recipient=recipient,
            content=CallbackContent(data=str(data.get("custom_id", ""))),
            reply_to=ReplyReference(
                message_id=compound_message_id(channel_id, source.id),
                text=_field(source, "content") or None,
            ),
            message_id=compound_message_id(channel_id, source.id),
            timestamp=int(self._clock() * 1000),
            raw=interaction,
        )

    # -- Pieces --------------------------------------------------------------

    def _content(self, message: Any) -> MessageContent:
        text = _field(message, "content") or None
        attachments = list(_field(message, "attachments") or [])
        if attachments:
            # text rides along as the caption when files are attached
            ranked = sorted(attachments, key=lambda a: _MEDIA_PRIORITY.index(_attachment_kind(a)))
            best = ranked[0]
            kind = _attachment_kind(best)
            if kind == "voice":
                duration = _field(best, "duration")
                return VoiceContent(
                    url=best.url,
                    duration=int(duration) if duration is not None else None,
                    caption=text,
                )
            return MediaContent(url=best.url, media_type=MediaType(kind), caption=text)
        if text:
            return TextContent(text=text)
        if stickers := _field(message, "stickers"):
            return StickerContent(sticker_id=str(stickers[0].id))
        if (poll := _field(message, "poll")) is not None:
            return PollContent(
                poll_id=str(message.id),
                question=str(_field(poll, "question") or ""),
                options=tuple(answer.text for answer in _field(poll, "answers") or []),
            )
        return EmptyContent()

    def _reply(self, message: Any) -> ReplyReference | None:
        reference = _field(message, "reference")
        if reference is None or _field(reference, "message_id") is None:
            return None
        resolved = _field(reference, "resolved")
        text = None
        sender = None
        if isinstance(resolved, discord.Message):
            text = resolved.content or None
            sender = self._user_participant(resolved.author)
        return ReplyReference(
            message_id=compound_message_id(message.channel.id, reference.message_id),
            text=text,
            sender=sender,
        )

    def _thread(self, channel: Any) -> ThreadInfo | None:
        if _field(channel, "type") in _THREAD_TYPES:
            return ThreadInfo(id=str(channel.id), title=_field(channel, "name"))
        return None

    def _user_participant(self, user: Any) -> Participant:
        avatar = _field(user, "display_avatar")
        return Participant(
            id=str(user.id),
            name=_field(user, "display_name") or _field(user, "name") or str(user.id),
            username=_field(user, "name"),
            avatar=str(avatar.url) if avatar is not None else None,
            type=TargetType.USER,
        )

    def _channel_participant(self, channel: Any) -> Participant:
        channel_type = _field(channel, "type")
        if channel_type == discord.ChannelType.private:
            target_type = TargetType.USER
            recipient = _field(channel, "recipient")
            name = _field(recipient, "display_name") if recipient is not None else None
        elif channel_type == discord.ChannelType.group or channel_type in _THREAD_TYPES:
            target_type = TargetType.GROUP
            name = _field(channel, "name")
        else:
            target_type = TargetType.CHANNEL
            name = _field(channel, "name")
        return Participant(id=str(channel.id), name=name or str(channel.id), type=target_type)
