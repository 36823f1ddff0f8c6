from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import discord

from omnichat.messaging.platform.normalizer.discord import (
    DiscordComponentEvent,
    DiscordMessageEvent,
    DiscordNormalizer,
    DiscordReactionEvent,
)
from omnichat.messaging.platform.types import (
    CallbackContent,
    EmptyContent,
    MediaContent,
    MediaType,
    MessageType,
    PollContent,
    ReactionContent,
    StickerContent,
    TargetType,
    TextContent,
    VoiceContent,
)

_CREATED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _make_author(author_id: int = 80351110224678912) -> SimpleNamespace:
    return SimpleNamespace(
        id=author_id,
        name="nelly",
        display_name="Nelly",
        display_avatar=SimpleNamespace(url="https://cdn.discordapp.com/avatars/1/a.png"),
    )


def _make_channel(
    channel_id: int = 1172614783120457801,
    channel_type: discord.ChannelType = discord.ChannelType.text,
    name: str | None = "general",
) -> SimpleNamespace:
    return SimpleNamespace(id=channel_id, type=channel_type, name=name)


def _make_attachment(content_type: str | None, url: str = "https://cdn/x", voice: bool = False) -> SimpleNamespace:
    return SimpleNamespace(
        url=url,
        content_type=content_type,
        duration=4.2 if voice else None,
        is_voice_message=lambda: voice,
    )


def _make_message(**overrides: Any) -> SimpleNamespace:
    fields: dict[str, Any] = {
        "id": 1234,
        "content": "",
        "channel": _make_channel(),
        "author": _make_author(),
        "attachments": [],
        "stickers": [],
        "poll": None,
        "reference": None,
        "created_at": _CREATED_AT,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _normalize(message: SimpleNamespace) -> Any:
    return DiscordNormalizer().normalize(DiscordMessageEvent(message))


class TestMessage:
    def test_text_in_guild_channel(self) -> None:
        result = _normalize(_make_message(content="hello"))

        assert result.content == TextContent(text="hello")
        assert result.type == MessageType.TEXT
        assert result.recipient.id == "1172614783120457801"
        assert result.recipient.type == TargetType.CHANNEL
        assert result.recipient.name == "general"
        assert result.message_id == "1172614783120457801:1234"
        assert result.timestamp == int(_CREATED_AT.timestamp() * 1000)
        assert result.thread is None

    def test_sender(self) -> None:
        result = _normalize(_make_message(content="hello"))

        assert result.sender.id == "80351110224678912"
        assert result.sender.name == "Nelly"
        assert result.sender.username == "nelly"
        assert result.sender.avatar == "https://cdn.discordapp.com/avatars/1/a.png"

    def test_dm_is_user(self) -> None:
        channel = SimpleNamespace(
            id=55,
            type=discord.ChannelType.private,
            recipient=SimpleNamespace(display_name="Nelly"),
        )

        result = _normalize(_make_message(content="psst", channel=channel))

        assert result.recipient.type == TargetType.USER
        assert result.recipient.name == "Nelly"

    def test_group_dm_is_group(self) -> None:
        channel = _make_channel(56, discord.ChannelType.group, name="friends")

        result = _normalize(_make_message(content="hey", channel=channel))

        assert result.recipient.type == TargetType.GROUP

    def test_thread_sets_thread_info(self) -> None:
        channel = _make_channel(77, discord.ChannelType.public_thread, name="release-notes")

        result = _normalize(_make_message(content="done", channel=channel))

        assert result.recipient.type == TargetType.GROUP
        assert result.thread is not None
        assert result.thread.id == "77"
        assert result.thread.title == "release-notes"
        assert result.message_id == "77:1234"


class TestContent:
    def test_image_attachment_with_caption(self) -> None:
        result = _normalize(
            _make_message(content="look", attachments=[_make_attachment("image/png", url="https://cdn/a.png")])
        )

        assert result.content == MediaContent(url="https://cdn/a.png", media_type=MediaType.IMAGE, caption="look")
        assert result.type == MessageType.MEDIA

    def test_best_attachment_wins(self) -> None:
        attachments = [
            _make_attachment("application/pdf", url="https://cdn/doc.pdf"),
            _make_attachment("video/mp4", url="https://cdn/clip.mp4"),
        ]

        result = _normalize(_make_message(attachments=attachments))

        assert result.content == MediaContent(url="https://cdn/clip.mp4", media_type=MediaType.VIDEO)

    def test_voice_message(self) -> None:
        result = _normalize(_make_message(attachments=[_make_attachment("audio/ogg", voice=True)]))

        assert result.content == VoiceContent(url="https://cdn/x", duration=4)
        assert result.type == MessageType.VOICE

    def test_audio_and_unknown_types(self) -> None:
        assert _normalize(_make_message(attachments=[_make_attachment("audio/mpeg")])).content.media_type == (
            MediaType.AUDIO
        )
        assert _normalize(_make_message(attachments=[_make_attachment(None)])).content.media_type == (
            MediaType.FILE
        )

    def test_sticker(self) -> None:
        result = _normalize(_make_message(stickers=[SimpleNamespace(id=749054660769218631)]))

        assert result.content == StickerContent(sticker_id="749054660769218631")

    def test_poll(self) -> None:
        poll = SimpleNamespace(
            question="Lunch?",
            answers=[SimpleNamespace(text="Pizza"), SimpleNamespace(text="Sushi")],
        )

        result = _normalize(_make_message(poll=poll))

        assert result.content == PollContent(poll_id="1234", question="Lunch?", options=("Pizza", "Sushi"))

    def test_empty(self) -> None:
        result = _normalize(_make_message())

        assert result.content == EmptyContent()


class TestReply:
    def test_resolved_reference(self) -> None:
        parent = MagicMock(spec=discord.Message)
        parent.content = "original"
        parent.author = _make_author(42)
        reference = SimpleNamespace(message_id=999, resolved=parent)

        result = _normalize(_make_message(content="answer", reference=reference))

        assert result.reply_to is not None
        assert result.reply_to.message_id == "1172614783120457801:999"
        assert result.reply_to.text == "original"
        assert result.reply_to.sender is not None
        assert result.reply_to.sender.id == "42"

    def test_unresolved_reference(self) -> None:
        reference = SimpleNamespace(message_id=999, resolved=None)

        result = _normalize(_make_message(content="answer", reference=reference))

        assert result.reply_to is not None
        assert result.reply_to.text is None

    def test_reference_without_message(self) -> None:
        reference = SimpleNamespace(message_id=None, resolved=None)

        assert _normalize(_make_message(content="x", reference=reference)).reply_to is None


class TestReactionAndInteraction:
    def test_reaction(self) -> None:
        reaction = SimpleNamespace(emoji="🎉", message=_make_message(content="we shipped"))
        normalizer = DiscordNormalizer(clock=lambda: 1_700_000_000.0)

        result = normalizer.normalize(DiscordReactionEvent(reaction, _make_author(7)))

        assert result.type == MessageType.REACTION
        assert result.content == ReactionContent(emoji="🎉")
        assert result.sender.id == "7"
        assert result.reply_to is not None
        assert result.reply_to.text == "we shipped"
        assert result.timestamp == 1_700_000_000_000

    def test_reaction_removed(self) -> None:
        reaction = SimpleNamespace(emoji="🎉", message=_make_message())

        result = DiscordNormalizer().normalize(DiscordReactionEvent(reaction, _make_author(), removed=True))

        assert result.content == ReactionContent(emoji="🎉", removed=True)

    def test_component_interaction(self) -> None:
        interaction = SimpleNamespace(
            user=_make_author(7),
            channel=_make_channel(),
            channel_id=1172614783120457801,
            message=SimpleNamespace(id=1234, content="Pick one"),
            data={"custom_id": "choice:a", "component_type": 2},
        )

        result = DiscordNormalizer().normalize(DiscordComponentEvent(interaction))

        assert result.type == MessageType.CALLBACK
        assert result.content == CallbackContent(data="choice:a")
        assert result.message_id == "1172614783120457801:1234"

    def test_interaction_without_cached_channel(self) -> None:
        interaction = SimpleNamespace(
            user=_make_author(7),
            channel=None,
            channel_id=99,
            message=SimpleNamespace(id=1, content=""),
            data={"custom_id": "x"},
        )

        result = DiscordNormalizer().normalize(DiscordComponentEvent(interaction))

        assert result.recipient.id == "99"
        assert result.recipient.type == TargetType.CHANNEL

    def test_author_ids(self) -> None:
        normalizer = DiscordNormalizer()
        reaction = SimpleNamespace(emoji="x", message=_make_message())

        assert normalizer.author_id(DiscordMessageEvent(_make_message())) == "80351110224678912"
        assert normalizer.author_id(DiscordReactionEvent(reaction, _make_author(3))) == "3"
