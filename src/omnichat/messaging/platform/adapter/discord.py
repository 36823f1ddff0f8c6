import asyncio
import re
import threading
from collections.abc import Callable, Coroutine
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any

import discord
import structlog

from omnichat.errors import (
    CapabilityNotSupportedError,
    ConfigurationError,
    NotInitializedError,
    ValidationError,
)
from omnichat.messaging.platform.capabilities import merge_capabilities
from omnichat.messaging.platform.codec import SnowflakeIdCodec
from omnichat.messaging.platform.config import DiscordConfig
from omnichat.messaging.platform.normalizer.discord import (
    DiscordComponentEvent,
    DiscordMessageEvent,
    DiscordNormalizer,
    DiscordRawEvent,
    DiscordReactionEvent,
)
from omnichat.messaging.platform.platform import AbstractPlatform
from omnichat.messaging.platform.resolver import TargetTypeResolver, infer_discord_target
from omnichat.messaging.platform.result import (
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

_CLIENT_ERRORS: tuple[type[BaseException], ...] = (discord.DiscordException, TimeoutError)

_MAX_TIMEOUT = timedelta(days=28)
_MAX_BAN_DELETE_SECONDS = 7 * 24 * 60 * 60
_POLL_DURATION = timedelta(hours=24)

_TARGET_PATTERN = re.compile(r"^(?:channel:|user:)?<?[#@]?!?(\d+)>?$")

_CAPABILITIES = merge_capabilities(
    {
        "base": {"send_text": True, "send_media": True, "receive": True},
        "conversation": {"reply": True, "edit": True, "delete": True, "threads": True},
        "interaction": {"buttons": True, "polls": True, "reactions": True},
        "discovery": {
            "pin_message": True,
            "unpin_message": True,
            "member_info": True,
            "member_count": True,
        },
        "management": {
            "kick": True,
            "ban": True,
            "unban": True,
            "mute": True,
            "timeout": True,
            "set_chat_title": True,
            "set_chat_description": True,
        },
        "advanced": {
            "create_invite": True,
            "get_invites": True,
            "revoke_invite": True,
            "dm_channels": True,
        },
    }
)


class DiscordPlatform(AbstractPlatform):
    """Discord messaging platform adapter.

    discord.py is async-only, so we run its event loop on a background thread
    and use run_coroutine_threadsafe() for sync calls from the main thread.
    Inbound messages are handed to the application handler on a single worker
    thread, so the handler may call back into this adapter without blocking
    the loop and still sees events in the order the gateway delivered them.

    Moderation and member lookups take the guild id as ``chat_id``; pins,
    invites, titles and descriptions take the channel id.
    """

    config: DiscordConfig
    capabilities = _CAPABILITIES
    codec: SnowflakeIdCodec

    def __init__(self, config: DiscordConfig, client: discord.Client | None = None) -> None:
        super().__init__(config)
        if client is None:
            intents = discord.Intents.default()
            intents.message_content = True
            client = discord.Client(intents=intents)
        self._client = client
        self.codec = SnowflakeIdCodec()
        self.resolver = TargetTypeResolver(infer_discord_target)
        self.resolver.seed(config.target_types)
        self._normalizer = DiscordNormalizer()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ready = threading.Event()
        self._thread: threading.Thread | None = None
        self._bot_user_id: str = ""
        self._dispatcher: ThreadPoolExecutor | None = None

    def identify(self) -> PlatformType:
        return PlatformType.DISCORD

    def get_bot_user_id(self) -> str:
        self._require_initialized()
        return self._bot_user_id

    # -- Lifecycle -------------------------------------------------------------

    def start(self) -> None:
        if self._initialized:
            return
        _logger.info("discord_platform_starting")
        if self._client.is_closed():
            # a stopped client must be reset before it can log in again
            self._client.clear()
        self._bot_user_id = ""
        self._ready.clear()
        self._register_events()

        loop = asyncio.new_event_loop()
        self._loop = loop

        def _thread_target() -> None:
            asyncio.set_event_loop(loop)
            try:
                loop.run_until_complete(self._client.start(self.config.bot_token))
            except Exception:
                _logger.exception("discord_client_crashed")
            finally:
                # unblocks start() when login fails before on_ready
                self._ready.set()

        self._thread = threading.Thread(target=_thread_target, name="discord-client", daemon=True)
        self._thread.start()
        self._ready.wait()

        if not self._bot_user_id:
            self._thread.join(timeout=self.config.request_timeout)
            self._thread = None
            if not loop.is_running():
                loop.close()
            self._loop = None
            msg = "Discord client stopped before becoming ready"
            raise ConfigurationError(msg)
        self._initialized = True
        _logger.info("discord_platform_started")

    def _register_events(self) -> None:
        @self._client.event
        async def on_ready() -> None:
            user = self._client.user
            self._bot_user_id = str(user.id) if user else ""
            _logger.info("discord_client_ready", user=str(user), bot_user_id=self._bot_user_id)
            self._ready.set()

        @self._client.event
        async def on_message(message: discord.Message) -> None:
            await self._deliver(DiscordMessageEvent(message))

        @self._client.event
        async def on_reaction_add(reaction: discord.Reaction, user: discord.abc.User) -> None:
            await self._deliver(DiscordReactionEvent(reaction, user))

        @self._client.event
        async def on_reaction_remove(reaction: discord.Reaction, user: discord.abc.User) -> None:
            await self._deliver(DiscordReactionEvent(reaction, user, removed=True))

        if self.config.handle_interactions:

            @self._client.event
            async def on_interaction(interaction: discord.Interaction) -> None:
                await self._handle_interaction(interaction)

    def _teardown(self) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            future = asyncio.run_coroutine_threadsafe(self._client.close(), loop)
            try:
                future.result(timeout=self.config.request_timeout)
            except TimeoutError:
                _logger.warning("discord_close_timed_out")
        if self._thread is not None:
            self._thread.join(timeout=self.config.request_timeout)
            self._thread = None
        if loop is not None and not loop.is_running() and not loop.is_closed():
            loop.close()
        self._loop = None
        self._ready.clear()
        self._bot_user_id = ""
        if self._dispatcher is not None:
            # wait=False: stop() may be called from inside a handler
            self._dispatcher.shutdown(wait=False)
            self._dispatcher = None

    # -- Inbound ---------------------------------------------------------------

    async def _handle_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type != discord.InteractionType.component or interaction.message is None:
            return
        # acknowledge within Discord's three second window
        try:
            await interaction.response.defer()
        except discord.HTTPException:
            _logger.warning("discord_interaction_defer_failed", interaction_id=interaction.id)
        await self._deliver(DiscordComponentEvent(interaction))

    async def _deliver(self, event: DiscordRawEvent) -> None:
        if self._normalizer.author_id(event) == self._bot_user_id:
            return
        try:
            message = self._normalizer.normalize(event)
        except Exception:
            _logger.exception("discord_normalize_failed", event_type=type(event).__name__)
            return
        await asyncio.get_running_loop().run_in_executor(self._dispatch_pool(), self._dispatch, message)

    def _dispatch_pool(self) -> ThreadPoolExecutor:
        if self._dispatcher is None:
            self._dispatcher = ThreadPoolExecutor(max_workers=1, thread_name_prefix="discord-dispatch")
        return self._dispatcher

    # -- Messaging -------------------------------------------------------------

    def send(
        self,
        target: str,
        content: SendContent,
        options: SendOptions | None = None,
    ) -> SendResult:
        self._require_initialized()
        self._require_content(content)
        if content.sticker_id:
            raise CapabilityNotSupportedError(self.identify().value, "interaction.stickers")
        opts = options or SendOptions()
        target_type = self.resolver.resolve(target, opts.target_type)
        # a defaulted type was never cached: look up a channel before assuming a user
        known_type = target_type if self.resolver.cached(target) is not None else None
        target_id = _target_snowflake(target)

        async def _send() -> discord.Message:
            channel = await self._destination(target, target_id, known_type, opts.thread_id)
            kwargs = self._send_kwargs(content, opts)
            if opts.reply_to_message_id:
                kwargs["reference"] = discord.MessageReference(
                    message_id=int(opts.reply_to_message_id),
                    channel_id=channel.id,
                    fail_if_not_exists=False,
                )
            return await channel.send(**kwargs)

        _logger.debug("discord_sending_message", target=target, target_type=target_type.value)
        message = self._logged_call("send", lambda: self._run(_send()), target=target)
        return _send_result(message)

    async def _destination(
        self,
        target: str,
        target_id: int,
        target_type: TargetType | None,
        thread_id: str | None,
    ) -> discord.abc.Messageable:
        if target_type == TargetType.USER and not thread_id:
            return await self._dm_channel(target_id)

        channel_id = int(thread_id) if thread_id else target_id
        try:
            channel = await self._messageable(channel_id)
        except discord.NotFound:
            if thread_id:
                raise
            # no channel by that id; it may be a user
            channel = await self._dm_channel(target_id)
            self.resolver.remember(target, TargetType.USER)
            _logger.info("discord_send_fell_back_to_dm", target=target)
            return channel

        if target_type is None and not thread_id:
            self.resolver.remember(target, TargetType.CHANNEL)
        return channel

    def _send_kwargs(self, content: SendContent, opts: SendOptions) -> dict[str, Any]:
        """Build ``channel.send`` arguments. Must run on the client's loop."""
        text = content.text
        if text and opts.parse_mode == ParseMode.PLAIN:
            text = discord.utils.escape_markdown(text)

        kwargs: dict[str, Any] = {}
        if content.media_url:
            if content.media_type == MediaType.IMAGE:
                embed = discord.Embed()
                embed.set_image(url=content.media_url)
                kwargs["embed"] = embed
            else:
                # Discord unfurls other media from the link itself
                text = f"{text}\n{content.media_url}" if text else content.media_url
        if text:
            kwargs["content"] = text

        if content.buttons:
            view = discord.ui.View(timeout=None)
            for row_index, row in enumerate(content.buttons):
                for button in row:
                    view.add_item(discord.ui.Button(label=button.text, custom_id=button.data, row=row_index))
            kwargs["view"] = view

        if content.poll:
            poll = discord.Poll(
                question=content.poll.question,
                duration=_POLL_DURATION,
                multiple=content.poll.multi,
            )
            for option in content.poll.options:
                poll.add_answer(text=option)
            kwargs["poll"] = poll

        if opts.silent:
            kwargs["silent"] = True
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
        if options and options.parse_mode == ParseMode.PLAIN:
            new_text = discord.utils.escape_markdown(new_text)

        async def _edit() -> discord.Message:
            message = await self._fetch_message(compound)
            return await message.edit(content=new_text)

        edited = self._logged_call("edit", lambda: self._run(_edit()), message_id=message_id)
        return _send_result(edited)

    def delete(self, message_id: str) -> None:
        self._require_initialized()
        compound = CompoundMessageId.parse(message_id)

        async def _delete() -> None:
            message = await self._fetch_message(compound)
            await message.delete()

        self._logged_call("delete", lambda: self._run(_delete()), message_id=message_id)

    def add_reaction(self, message_id: str, emoji: str) -> None:
        self._require_initialized()
        compound = CompoundMessageId.parse(message_id)

        async def _react() -> None:
            message = await self._fetch_message(compound)
            await message.add_reaction(emoji)

        self._logged_call("add_reaction", lambda: self._run(_react()), message_id=message_id, emoji=emoji)

    def remove_reaction(self, message_id: str, emoji: str) -> None:
        self._require_initialized()
        compound = CompoundMessageId.parse(message_id)

        async def _unreact() -> None:
            message = await self._fetch_message(compound)
            await message.remove_reaction(emoji, self._client.user)

        self._logged_call(
            "remove_reaction",
            lambda: self._run(_unreact()),
            message_id=message_id,
            emoji=emoji,
        )

    # -- Administration ----------------------------------------------------------

    def kick(
        self, chat_id: str, user_id: str, options: ModerationOptions | None = None
    ) -> UnifiedResult[None]:
        self._require_capability("management.kick")
        self._require_initialized()
        guild_id, member_id = self._snowflake(chat_id), self._snowflake(user_id)
        reason = options.reason if options else None

        async def _kick() -> None:
            guild = await self._guild(guild_id)
            await guild.kick(discord.Object(id=member_id), reason=reason)

        return self._unified("kick", _kick, chat_id=chat_id, user_id=user_id)

    def ban(
        self, chat_id: str, user_id: str, options: ModerationOptions | None = None
    ) -> UnifiedResult[None]:
        self._require_capability("management.ban")
        self._require_initialized()
        opts = options or ModerationOptions()
        if opts.duration_seconds:
            raise CapabilityNotSupportedError(self.identify().value, "management.timed_ban")
        guild_id, member_id = self._snowflake(chat_id), self._snowflake(user_id)

        delete_seconds = opts.discord_delete_message_seconds
        if delete_seconds is None:
            delete_seconds = _MAX_BAN_DELETE_SECONDS if opts.delete_messages else 0

        async def _ban() -> None:
            guild = await self._guild(guild_id)
            await guild.ban(
                discord.Object(id=member_id),
                reason=opts.reason,
                delete_message_seconds=min(delete_seconds, _MAX_BAN_DELETE_SECONDS),
            )

        return self._unified("ban", _ban, chat_id=chat_id, user_id=user_id)

    def unban(self, chat_id: str, user_id: str) -> UnifiedResult[None]:
        self._require_capability("management.unban")
        self._require_initialized()
        guild_id, member_id = self._snowflake(chat_id), self._snowflake(user_id)

        async def _unban() -> None:
            guild = await self._guild(guild_id)
            await guild.unban(discord.Object(id=member_id))

        return self._unified("unban", _unban, chat_id=chat_id, user_id=user_id)

    def mute(self, chat_id: str, user_id: str, options: MuteOptions) -> UnifiedResult[None]:
        self._require_capability("management.timeout")
        self._require_initialized()
        if options.duration_seconds <= 0:
            msg = f"Mute duration must be positive, got {options.duration_seconds}"
            raise ValidationError(msg)
        guild_id, member_id = self._snowflake(chat_id), self._snowflake(user_id)

        duration = timedelta(seconds=options.duration_seconds)
        if duration > _MAX_TIMEOUT:
            _logger.info("discord_timeout_capped", requested_seconds=options.duration_seconds)
            duration = _MAX_TIMEOUT

        async def _mute() -> None:
            guild = await self._guild(guild_id)
            member = await guild.fetch_member(member_id)
            await member.timeout(duration, reason=options.reason)

        return self._unified("mute", _mute, chat_id=chat_id, user_id=user_id)

    def unmute(self, chat_id: str, user_id: str) -> UnifiedResult[None]:
        self._require_capability("management.timeout")
        self._require_initialized()
        guild_id, member_id = self._snowflake(chat_id), self._snowflake(user_id)

        async def _unmute() -> None:
            guild = await self._guild(guild_id)
            member = await guild.fetch_member(member_id)
            await member.timeout(None)

        return self._unified("unmute", _unmute, chat_id=chat_id, user_id=user_id)

    def pin_message(
        self, chat_id: str, message_id: str, options: PinOptions | None = None
    ) -> UnifiedResult[None]:
        self._require_capability("discovery.pin_message")
        self._require_initialized()
        compound = self._channel_message(chat_id, message_id)
        reason = options.reason if options else None

        async def _pin() -> None:
            message = await self._fetch_message(compound)
            await message.pin(reason=reason)

        return self._unified("pin_message", _pin, chat_id=chat_id, message_id=message_id)

    def unpin_message(self, chat_id: str, message_id: str) -> UnifiedResult[None]:
        self._require_capability("discovery.unpin_message")
        self._require_initialized()
        compound = self._channel_message(chat_id, message_id)

        async def _unpin() -> None:
            message = await self._fetch_message(compound)
            await message.unpin()

        return self._unified("unpin_message", _unpin, chat_id=chat_id, message_id=message_id)

    def create_invite(
        self, chat_id: str, options: InviteOptions | None = None
    ) -> UnifiedResult[InviteInfo]:
        self._require_capability("advanced.create_invite")
        self._require_initialized()
        channel_id = self._snowflake(chat_id)
        opts = options or InviteOptions()

        async def _create() -> InviteInfo:
            channel = await self._guild_channel(channel_id)
            invite = await channel.create_invite(
                max_age=opts.expires_in_seconds or 0,
                max_uses=opts.max_uses or 0,
                temporary=opts.discord_temporary,
                unique=opts.discord_unique,
                reason=opts.reason,
            )
            return self._invite_info(invite)

        return self._unified("create_invite", _create, chat_id=chat_id)

    def get_invites(self, chat_id: str) -> UnifiedResult[list[InviteInfo]]:
        self._require_capability("advanced.get_invites")
        self._require_initialized()
        channel_id = self._snowflake(chat_id)

        async def _list() -> list[InviteInfo]:
            channel = await self._guild_channel(channel_id)
            return [self._invite_info(invite) for invite in await channel.invites()]

        return self._unified("get_invites", _list, chat_id=chat_id)

    def revoke_invite(self, chat_id: str, invite: str) -> UnifiedResult[None]:
        self._require_capability("advanced.revoke_invite")
        self._require_initialized()

        async def _revoke() -> None:
            # accepts a bare code or a discord.gg URL
            await self._client.delete_invite(invite)

        return self._unified("revoke_invite", _revoke, chat_id=chat_id, invite=invite)

    def set_title(self, chat_id: str, title: str) -> UnifiedResult[None]:
        self._require_capability("management.set_chat_title")
        self._require_initialized()
        channel_id = self._snowflake(chat_id)

        async def _rename() -> None:
            channel = await self._guild_channel(channel_id)
            await channel.edit(name=title)

        return self._unified("set_title", _rename, chat_id=chat_id)

    def set_description(self, chat_id: str, description: str) -> UnifiedResult[None]:
        self._require_capability("management.set_chat_description")
        self._require_initialized()
        channel_id = self._snowflake(chat_id)

        async def _describe() -> None:
            channel = await self._guild_channel(channel_id)
            await channel.edit(topic=description)

        return self._unified("set_description", _describe, chat_id=chat_id)

    # -- Discovery ---------------------------------------------------------------

    def get_member(self, chat_id: str, user_id: str) -> MemberInfo:
        self._require_capability("discovery.member_info")
        self._require_initialized()
        guild_id, member_id = self._snowflake(chat_id), self._snowflake(user_id)

        async def _member() -> MemberInfo:
            guild = await self._guild(guild_id)
            member = await guild.fetch_member(member_id)
            return _member_info(guild, member)

        return self._logged_call("get_member", lambda: self._run(_member()), chat_id=chat_id, user_id=user_id)

    def get_member_count(self, chat_id: str) -> int:
        self._require_capability("discovery.member_count")
        self._require_initialized()
        guild_id = self._snowflake(chat_id)

        async def _count() -> int:
            guild = await self._client.fetch_guild(guild_id, with_counts=True)
            return guild.approximate_member_count or guild.member_count or 0

        return self._logged_call("get_member_count", lambda: self._run(_count()), chat_id=chat_id)

    def get_administrators(self, chat_id: str) -> list[MemberInfo]:
        # listing members needs the privileged members intent
        raise CapabilityNotSupportedError(self.identify().value, "discovery.administrators")

    def create_dm_channel(self, user_id: str) -> str:
        self._require_capability("advanced.dm_channels")
        self._require_initialized()
        member_id = self._snowflake(user_id)

        async def _open() -> str:
            channel = await self._dm_channel(member_id)
            return str(channel.id)

        return self._logged_call("create_dm_channel", lambda: self._run(_open()), user_id=user_id)

    # -- Helpers -----------------------------------------------------------------

    def _run[T](self, coro: Coroutine[Any, Any, T]) -> T:
        if self._loop is None:
            coro.close()
            raise NotInitializedError(self.identify().value)
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout=self.config.request_timeout)
        except TimeoutError:
            future.cancel()
            raise

    def _unified[T](
        self,
        operation: str,
        factory: Callable[[], Coroutine[Any, Any, T]],
        **context: Any,
    ) -> UnifiedResult[T]:
        return unified_call("discord", operation, lambda: self._run(factory()), _CLIENT_ERRORS, **context)

    def _snowflake(self, value: str) -> int:
        return int(self.codec.to_native_id(value))

    def _channel_message(self, chat_id: str, message_id: str) -> CompoundMessageId:
        if ":" in message_id:
            return CompoundMessageId.parse(message_id)
        return CompoundMessageId(str(self._snowflake(chat_id)), str(self._snowflake(message_id)))

    async def _messageable(self, channel_id: int) -> Any:
        channel = self._client.get_channel(channel_id)
        if not channel:
            channel = await self._client.fetch_channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            msg = f"Discord channel {channel_id} cannot receive messages"
            raise ValidationError(msg)
        return channel

    async def _guild_channel(self, channel_id: int) -> Any:
        channel = self._client.get_channel(channel_id)
        if not channel:
            channel = await self._client.fetch_channel(channel_id)
        if not isinstance(channel, discord.abc.GuildChannel):
            msg = f"Discord channel {channel_id} does not belong to a guild"
            raise ValidationError(msg)
        return channel

    async def _dm_channel(self, user_id: int) -> discord.DMChannel:
        user = await self._client.fetch_user(user_id)
        return await user.create_dm()

    async def _guild(self, guild_id: int) -> discord.Guild:
        guild = self._client.get_guild(guild_id)
        if not guild:
            guild = await self._client.fetch_guild(guild_id)
        return guild

    async def _fetch_message(self, compound: CompoundMessageId) -> discord.Message:
        channel = await self._messageable(self._snowflake(compound.chat_id))
        return await channel.fetch_message(self._snowflake(compound.message_id))

    def _invite_info(self, invite: discord.Invite) -> InviteInfo:
        inviter = invite.inviter
        return InviteInfo(
            url=invite.url,
            code=invite.code,
            creator=Participant(
                id=str(inviter.id),
                name=inviter.display_name,
                username=inviter.name,
                type=TargetType.USER,
            )
            if inviter
            else None,
            max_uses=invite.max_uses,
            use_count=invite.uses,
            expires_at=int(invite.expires_at.timestamp() * 1000) if invite.expires_at else None,
            is_revoked=invite.revoked,
            raw=invite,
        )


def _target_snowflake(target: str) -> int:
    match = _TARGET_PATTERN.match(target.strip())
    if not match:
        msg = f"Invalid Discord target: {target!r}"
        raise ValidationError(msg)
    return int(match.group(1))


def _send_result(message: discord.Message) -> SendResult:
    return SendResult(
        platform=PlatformType.DISCORD,
        message_id=compound_message_id(message.channel.id, message.id),
        chat_id=str(message.channel.id),
        timestamp=int(message.created_at.timestamp() * 1000),
    )


def _member_info(guild: discord.Guild, member: discord.Member) -> MemberInfo:
    return MemberInfo(
        id=str(member.id),
        name=member.display_name,
        username=member.name,
        avatar=str(member.display_avatar.url),
        roles=tuple(role.name for role in member.roles if not role.is_default()),
        joined_at=int(member.joined_at.timestamp() * 1000) if member.joined_at else None,
        is_admin=member.guild_permissions.administrator,
        is_owner=guild.owner_id == member.id,
        raw=member,
    )
