import asyncio
import threading
import time
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from omnichat.errors import (
    CapabilityNotSupportedError,
    ConfigurationError,
    NotInitializedError,
    ValidationError,
)
from omnichat.messaging.platform.adapter.discord import DiscordPlatform
from omnichat.messaging.platform.config import DiscordConfig
from omnichat.messaging.platform.normalizer.discord import DiscordMessageEvent
from omnichat.messaging.platform.result import ModerationOptions, MuteOptions
from omnichat.messaging.platform.types import (
    Button,
    MediaType,
    PollInput,
    SendContent,
    SendOptions,
    TargetType,
)

_BOT_ID = 1
_CHANNEL_ID = 1172614783120457801
_GUILD_ID = 81384788765712384
_USER_ID = 80351110224678912
_CREATED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def loop() -> Iterator[asyncio.AbstractEventLoop]:
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    yield loop
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()


def _make_sent(channel_id: int = _CHANNEL_ID, message_id: int = 500) -> SimpleNamespace:
    return SimpleNamespace(id=message_id, channel=SimpleNamespace(id=channel_id), created_at=_CREATED_AT)


def _make_channel(channel_id: int = _CHANNEL_ID) -> MagicMock:
    channel = MagicMock(spec=discord.TextChannel)
    channel.id = channel_id
    channel.send = AsyncMock(return_value=_make_sent(channel_id))
    return channel


def _make_client(channel: MagicMock | None = None) -> MagicMock:
    client = MagicMock()
    client.user = SimpleNamespace(id=_BOT_ID)
    client.get_channel.return_value = None
    client.get_guild.return_value = None
    client.fetch_channel = AsyncMock(return_value=channel or _make_channel())
    client.close = AsyncMock()
    return client


def _make_platform(loop: asyncio.AbstractEventLoop, client: MagicMock | None = None) -> DiscordPlatform:
    platform = DiscordPlatform(DiscordConfig(bot_token="token", request_timeout=5.0), client=client or _make_client())
    platform._loop = loop
    platform._bot_user_id = str(_BOT_ID)
    platform._initialized = True
    return platform


def _forbidden() -> discord.Forbidden:
    return discord.Forbidden(MagicMock(status=403, reason="Forbidden"), "Missing Permissions")


def _not_found() -> discord.NotFound:
    return discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Channel")


def _make_guild(member: Any = None) -> MagicMock:
    guild = MagicMock()
    guild.owner_id = _USER_ID
    guild.kick = AsyncMock()
    guild.ban = AsyncMock()
    guild.unban = AsyncMock()
    guild.fetch_member = AsyncMock(return_value=member)
    return guild


def _make_message(text: str, message_id: int = 1, author_id: int = _USER_ID) -> SimpleNamespace:
    return SimpleNamespace(
        id=message_id,
        content=text,
        channel=SimpleNamespace(id=_CHANNEL_ID, type=discord.ChannelType.text, name="general"),
        author=SimpleNamespace(id=author_id, name="nelly", display_name="Nelly", display_avatar=None),
        attachments=[],
        stickers=[],
        poll=None,
        reference=None,
        created_at=_CREATED_AT,
    )


class TestLifecycle:
    def test_operations_before_start_raise(self) -> None:
        platform = DiscordPlatform(DiscordConfig(bot_token="token"), client=_make_client())

        with pytest.raises(NotInitializedError):
            platform.send("channel:1", SendContent(text="hi"))

    def test_stop_closes_client_and_clears_cache(self, loop: asyncio.AbstractEventLoop) -> None:
        client = _make_client()
        platform = _make_platform(loop, client)
        platform.resolver.resolve("42", TargetType.USER)

        platform.stop()

        client.close.assert_awaited_once()
        assert len(platform.resolver) == 0
        assert not platform.is_initialized

    def test_restart_after_stop_does_not_reuse_stale_identity(self, loop: asyncio.AbstractEventLoop) -> None:
        client = _make_client()
        client.is_closed.return_value = True
        # a closed client's start() returns without ever firing on_ready
        client.start = AsyncMock(return_value=None)
        platform = _make_platform(loop, client)
        platform.stop()

        with pytest.raises(ConfigurationError):
            platform.start()

        client.clear.assert_called_once()
        assert not platform.is_initialized
        assert platform._loop is None

    def test_capabilities(self, loop: asyncio.AbstractEventLoop) -> None:
        platform = _make_platform(loop)
        caps = platform.get_capabilities()

        assert caps is platform.get_capabilities()
        assert caps.supports("management.timeout")
        assert not caps.supports("interaction.stickers")


class TestSend:
    def test_send_to_channel(self, loop: asyncio.AbstractEventLoop) -> None:
        channel = _make_channel()
        platform = _make_platform(loop, _make_client(channel))

        result = platform.send(f"channel:{_CHANNEL_ID}", SendContent(text="hello"))

        channel.send.assert_awaited_once_with(content="hello")
        assert result.message_id == f"{_CHANNEL_ID}:500"
        assert result.chat_id == str(_CHANNEL_ID)
        assert result.timestamp == int(_CREATED_AT.timestamp() * 1000)

    def test_bare_snowflake_tries_channel_first(self, loop: asyncio.AbstractEventLoop) -> None:
        platform = _make_platform(loop)

        platform.send(str(_CHANNEL_ID), SendContent(text="hello"))

        assert platform.resolver.cached(str(_CHANNEL_ID)) == TargetType.CHANNEL

    def test_unknown_channel_falls_back_to_dm(self, loop: asyncio.AbstractEventLoop) -> None:
        client = _make_client()
        client.fetch_channel = AsyncMock(side_effect=_not_found())
        dm = MagicMock(spec=discord.DMChannel)
        dm.id = 77
        dm.send = AsyncMock(return_value=_make_sent(77))
        client.fetch_user = AsyncMock(return_value=SimpleNamespace(create_dm=AsyncMock(return_value=dm)))
        platform = _make_platform(loop, client)

        result = platform.send(str(_USER_ID), SendContent(text="psst"))

        client.fetch_user.assert_awaited_once_with(_USER_ID)
        assert result.chat_id == "77"
        assert platform.resolver.cached(str(_USER_ID)) == TargetType.USER

    def test_known_user_goes_straight_to_dm(self, loop: asyncio.AbstractEventLoop) -> None:
        client = _make_client()
        dm = MagicMock(spec=discord.DMChannel)
        dm.id = 77
        dm.send = AsyncMock(return_value=_make_sent(77))
        client.fetch_user = AsyncMock(return_value=SimpleNamespace(create_dm=AsyncMock(return_value=dm)))
        platform = _make_platform(loop, client)

        platform.send_to_user(f"<@{_USER_ID}>", "hi")

        client.fetch_channel.assert_not_awaited()
        dm.send.assert_awaited_once()

    def test_reply_sets_message_reference(self, loop: asyncio.AbstractEventLoop) -> None:
        channel = _make_channel()
        platform = _make_platform(loop, _make_client(channel))

        platform.reply(f"{_CHANNEL_ID}:999", SendContent(text="ok"), SendOptions(target_type=TargetType.CHANNEL))

        reference = channel.send.await_args.kwargs["reference"]
        assert reference.message_id == 999
        assert reference.channel_id == _CHANNEL_ID

    def test_image_goes_into_embed(self, loop: asyncio.AbstractEventLoop) -> None:
        channel = _make_channel()
        platform = _make_platform(loop, _make_client(channel))

        platform.send(
            f"channel:{_CHANNEL_ID}",
            SendContent(media_url="https://example.com/a.png", media_type=MediaType.IMAGE),
        )

        embed = channel.send.await_args.kwargs["embed"]
        assert embed.image.url == "https://example.com/a.png"

    def test_other_media_is_linked(self, loop: asyncio.AbstractEventLoop) -> None:
        channel = _make_channel()
        platform = _make_platform(loop, _make_client(channel))

        platform.send(
            f"channel:{_CHANNEL_ID}",
            SendContent(text="clip", media_url="https://example.com/a.mp4", media_type=MediaType.VIDEO),
        )

        assert channel.send.await_args.kwargs["content"] == "clip\nhttps://example.com/a.mp4"

    def test_buttons_and_poll(self, loop: asyncio.AbstractEventLoop) -> None:
        channel = _make_channel()
        platform = _make_platform(loop, _make_client(channel))

        platform.send(
            f"channel:{_CHANNEL_ID}",
            SendContent(
                text="Vote",
                buttons=[[Button("Yes", "vote:yes")]],
                poll=PollInput("Lunch?", ["Pizza", "Sushi"]),
            ),
        )

        kwargs = channel.send.await_args.kwargs
        assert [item.custom_id for item in kwargs["view"].children] == ["vote:yes"]
        assert [answer.text for answer in kwargs["poll"].answers] == ["Pizza", "Sushi"]

    def test_stickers_are_unsupported(self, loop: asyncio.AbstractEventLoop) -> None:
        platform = _make_platform(loop)

        with pytest.raises(CapabilityNotSupportedError, match='Platform "discord" does not support'):
            platform.send(f"channel:{_CHANNEL_ID}", SendContent(sticker_id="123"))

    def test_invalid_target(self, loop: asyncio.AbstractEventLoop) -> None:
        platform = _make_platform(loop)

        with pytest.raises(ValidationError):
            platform.send("general", SendContent(text="hi"))

    def test_platform_errors_propagate(self, loop: asyncio.AbstractEventLoop) -> None:
        channel = _make_channel()
        channel.send = AsyncMock(side_effect=_forbidden())
        platform = _make_platform(loop, _make_client(channel))

        with pytest.raises(discord.Forbidden):
            platform.send(f"channel:{_CHANNEL_ID}", SendContent(text="hi"))


class TestEditDeleteReact:
    def _setup(self, loop: asyncio.AbstractEventLoop) -> tuple[DiscordPlatform, MagicMock]:
        message = MagicMock()
        message.edit = AsyncMock(return_value=_make_sent(message_id=9))
        message.delete = AsyncMock()
        message.add_reaction = AsyncMock()
        message.remove_reaction = AsyncMock()
        channel = _make_channel()
        channel.fetch_message = AsyncMock(return_value=message)
        return _make_platform(loop, _make_client(channel)), message

    def test_edit(self, loop: asyncio.AbstractEventLoop) -> None:
        platform, message = self._setup(loop)

        result = platform.edit(f"{_CHANNEL_ID}:9", "fixed")

        message.edit.assert_awaited_once_with(content="fixed")
        assert result.message_id == f"{_CHANNEL_ID}:9"

    def test_delete(self, loop: asyncio.AbstractEventLoop) -> None:
        platform, message = self._setup(loop)

        platform.delete(f"{_CHANNEL_ID}:9")

        message.delete.assert_awaited_once()

    def test_reactions(self, loop: asyncio.AbstractEventLoop) -> None:
        platform, message = self._setup(loop)

        platform.add_reaction(f"{_CHANNEL_ID}:9", "🎉")
        platform.remove_reaction(f"{_CHANNEL_ID}:9", "🎉")

        message.add_reaction.assert_awaited_once_with("🎉")
        message.remove_reaction.assert_awaited_once()


class TestModeration:
    def test_kick(self, loop: asyncio.AbstractEventLoop) -> None:
        guild = _make_guild()
        client = _make_client()
        client.fetch_guild = AsyncMock(return_value=guild)
        platform = _make_platform(loop, client)

        result = platform.kick(str(_GUILD_ID), str(_USER_ID), ModerationOptions(reason="spam"))

        assert result.success
        target = guild.kick.await_args.args[0]
        assert target.id == _USER_ID
        assert guild.kick.await_args.kwargs["reason"] == "spam"

    def test_forbidden_becomes_failed_result(self, loop: asyncio.AbstractEventLoop) -> None:
        guild = _make_guild()
        guild.ban = AsyncMock(side_effect=_forbidden())
        client = _make_client()
        client.fetch_guild = AsyncMock(return_value=guild)
        platform = _make_platform(loop, client)

        result = platform.ban(str(_GUILD_ID), str(_USER_ID))

        assert result.success is False
        assert result.error == "Missing Permissions"

    def test_timed_ban_is_unsupported(self, loop: asyncio.AbstractEventLoop) -> None:
        platform = _make_platform(loop)

        with pytest.raises(CapabilityNotSupportedError):
            platform.ban(str(_GUILD_ID), str(_USER_ID), ModerationOptions(duration_seconds=60))

    def test_ban_deletes_recent_messages(self, loop: asyncio.AbstractEventLoop) -> None:
        guild = _make_guild()
        client = _make_client()
        client.fetch_guild = AsyncMock(return_value=guild)
        platform = _make_platform(loop, client)

        platform.ban(str(_GUILD_ID), str(_USER_ID), ModerationOptions(delete_messages=True))

        assert guild.ban.await_args.kwargs["delete_message_seconds"] == 7 * 24 * 60 * 60

    def test_mute_is_capped_at_28_days(self, loop: asyncio.AbstractEventLoop) -> None:
        member = MagicMock()
        member.timeout = AsyncMock()
        client = _make_client()
        client.fetch_guild = AsyncMock(return_value=_make_guild(member))
        platform = _make_platform(loop, client)

        result = platform.mute(str(_GUILD_ID), str(_USER_ID), MuteOptions(duration_seconds=60 * 24 * 60 * 60))

        assert result.success
        assert member.timeout.await_args.args[0] == timedelta(days=28)

    def test_unmute_clears_timeout(self, loop: asyncio.AbstractEventLoop) -> None:
        member = MagicMock()
        member.timeout = AsyncMock()
        client = _make_client()
        client.fetch_guild = AsyncMock(return_value=_make_guild(member))
        platform = _make_platform(loop, client)

        platform.unmute(str(_GUILD_ID), str(_USER_ID))

        member.timeout.assert_awaited_once_with(None)

    def test_timeout_becomes_failed_result(self, loop: asyncio.AbstractEventLoop) -> None:
        async def _hang(*_: Any, **__: Any) -> None:
            await asyncio.sleep(10)

        client = _make_client()
        client.fetch_guild = AsyncMock(side_effect=_hang)
        platform = DiscordPlatform(DiscordConfig(bot_token="token", request_timeout=0.05), client=client)
        platform._loop = loop
        platform._initialized = True

        result = platform.unban(str(_GUILD_ID), str(_USER_ID))

        assert result.success is False


class TestInvitesAndChannels:
    def test_get_invites(self, loop: asyncio.AbstractEventLoop) -> None:
        invite = SimpleNamespace(
            url="https://discord.gg/abc",
            code="abc",
            inviter=None,
            max_uses=0,
            uses=3,
            expires_at=None,
            revoked=False,
        )
        channel = _make_channel()
        channel.invites = AsyncMock(return_value=[invite])
        platform = _make_platform(loop, _make_client(channel))

        result = platform.get_invites(str(_CHANNEL_ID))

        assert result.success
        assert result.data is not None
        assert [i.code for i in result.data] == ["abc"]
        assert result.data[0].use_count == 3

    def test_revoke_invite(self, loop: asyncio.AbstractEventLoop) -> None:
        client = _make_client()
        client.delete_invite = AsyncMock()
        platform = _make_platform(loop, client)

        result = platform.revoke_invite(str(_CHANNEL_ID), "abc")

        assert result.success
        client.delete_invite.assert_awaited_once_with("abc")

    def test_set_title_and_description(self, loop: asyncio.AbstractEventLoop) -> None:
        channel = _make_channel()
        channel.edit = AsyncMock()
        platform = _make_platform(loop, _make_client(channel))

        platform.set_title(str(_CHANNEL_ID), "releases")
        platform.set_description(str(_CHANNEL_ID), "ship log")

        first, second = channel.edit.await_args_list
        assert first.kwargs == {"name": "releases"}
        assert second.kwargs == {"topic": "ship log"}

    def test_administrators_unsupported(self, loop: asyncio.AbstractEventLoop) -> None:
        platform = _make_platform(loop)

        with pytest.raises(CapabilityNotSupportedError):
            platform.get_administrators(str(_GUILD_ID))


class TestInbound:
    def test_own_messages_are_discarded(self, loop: asyncio.AbstractEventLoop) -> None:
        platform = _make_platform(loop)
        handler = MagicMock()
        platform.on_message(handler)
        message = _make_message("echo", author_id=_BOT_ID)

        asyncio.run_coroutine_threadsafe(platform._deliver(DiscordMessageEvent(message)), loop).result(5)

        handler.assert_not_called()

    def test_handler_sees_messages_in_delivery_order(self, loop: asyncio.AbstractEventLoop) -> None:
        platform = _make_platform(loop)
        seen: list[str] = []

        def _handler(message: Any) -> None:
            if message.content.text == "first":
                time.sleep(0.2)
            seen.append(message.content.text)

        platform.on_message(_handler)
        futures = [
            asyncio.run_coroutine_threadsafe(
                platform._deliver(DiscordMessageEvent(_make_message(text, message_id=i))),
                loop,
            )
            for i, text in enumerate(["first", "second"], start=1)
        ]
        for future in futures:
            future.result(5)

        assert seen == ["first", "second"]
        platform.stop()

    def test_component_interaction_is_deferred_and_delivered(self, loop: asyncio.AbstractEventLoop) -> None:
        platform = _make_platform(loop)
        handler = MagicMock()
        platform.on_message(handler)
        interaction = SimpleNamespace(
            id=5,
            type=discord.InteractionType.component,
            user=SimpleNamespace(id=_USER_ID, name="nelly", display_name="Nelly", display_avatar=None),
            channel=SimpleNamespace(id=_CHANNEL_ID, type=discord.ChannelType.text, name="general"),
            channel_id=_CHANNEL_ID,
            message=SimpleNamespace(id=1234, content="Vote"),
            data={"custom_id": "vote:yes"},
            response=SimpleNamespace(defer=AsyncMock()),
        )

        asyncio.run_coroutine_threadsafe(platform._handle_interaction(interaction), loop).result(5)

        interaction.response.defer.assert_awaited_once()
        handler.assert_called_once()
        assert handler.call_args.args[0].content.data == "vote:yes"
