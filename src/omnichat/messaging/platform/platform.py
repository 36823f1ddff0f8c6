from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import replace
from typing import Any

import structlog

from omnichat.errors import CapabilityNotSupportedError, NotInitializedError, ValidationError
from omnichat.messaging.platform.capabilities import Capabilities, has_capability
from omnichat.messaging.platform.codec import AbstractIdCodec
from omnichat.messaging.platform.config import AbstractPlatformConfig
from omnichat.messaging.platform.resolver import TargetTypeResolver
from omnichat.messaging.platform.result import (
    InviteInfo,
    InviteOptions,
    MemberInfo,
    ModerationOptions,
    MuteOptions,
    PinOptions,
    UnifiedResult,
)
from omnichat.messaging.platform.types import (
    CompoundMessageId,
    Message,
    PlatformType,
    SendContent,
    SendOptions,
    SendResult,
    TargetType,
)

_logger = structlog.get_logger()

type MessageHandler = Callable[[Message], None]


class AbstractPlatform(ABC):
    """One chat platform behind the common vocabulary.

    Subclasses declare their static ``capabilities`` matrix and build a codec
    and a target-type resolver in ``__init__``.  Messaging operations
    (``send``/``reply``/``edit``/``delete``) log and re-raise platform errors;
    administrative operations return :class:`UnifiedResult` instead.
    """

    capabilities: Capabilities
    codec: AbstractIdCodec
    resolver: TargetTypeResolver

    def __init__(self, config: AbstractPlatformConfig) -> None:
        self.config = config
        self._message_handler: MessageHandler | None = None
        self._initialized = False

    @abstractmethod
    def identify(self) -> PlatformType: ...

    def get_capabilities(self) -> Capabilities:
        return self.capabilities

    def on_message(self, handler: MessageHandler) -> None:
        """Register the single handler invoked with every canonical Message.

        A later call replaces the earlier handler.
        """
        self._message_handler = handler

    @abstractmethod
    def get_bot_user_id(self) -> str:
        """Return the bot's own user id (public form) on this platform."""
        ...

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @abstractmethod
    def start(self) -> None:
        """Connect, subscribe to raw events and identify the bot user"""
        ...

    def stop(self) -> None:
        """Tear down the adapter.

        Drops the message handler and clears the target-type cache so nothing
        classified in this session survives a reconnect.
        """
        if not self._initialized:
            return
        platform = self.identify().value
        _logger.info("platform_stopping", platform=platform)
        try:
            self._teardown()
        finally:
            self._message_handler = None
            self.resolver.clear()
            self._initialized = False
        _logger.info("platform_stopped", platform=platform)

    def _teardown(self) -> None:
        """Platform-specific cleanup, called by ``stop``"""
        return None

    # -- Messaging -------------------------------------------------------------

    @abstractmethod
    def send(
        self,
        target: str,
        content: SendContent,
        options: SendOptions | None = None,
    ) -> SendResult: ...

    def reply(
        self,
        message_id: str,
        content: SendContent,
        options: SendOptions | None = None,
    ) -> SendResult:
        compound = CompoundMessageId.parse(message_id)
        opts = replace(options or SendOptions(), reply_to_message_id=compound.message_id)
        return self.send(compound.chat_id, content, opts)

    @abstractmethod
    def edit(
        self,
        message_id: str,
        new_text: str,
        options: SendOptions | None = None,
    ) -> SendResult: ...

    @abstractmethod
    def delete(self, message_id: str) -> None: ...

    @abstractmethod
    def add_reaction(self, message_id: str, emoji: str) -> None: ...

    @abstractmethod
    def remove_reaction(self, message_id: str, emoji: str) -> None: ...

    def send_to_user(self, user_id: str, text: str, options: SendOptions | None = None) -> SendResult:
        return self._send_text_as(user_id, text, TargetType.USER, options)

    def send_to_group(self, group_id: str, text: str, options: SendOptions | None = None) -> SendResult:
        return self._send_text_as(group_id, text, TargetType.GROUP, options)

    def send_to_channel(
        self, channel_id: str, text: str, options: SendOptions | None = None
    ) -> SendResult:
        return self._send_text_as(channel_id, text, TargetType.CHANNEL, options)

    def _send_text_as(
        self,
        target: str,
        text: str,
        target_type: TargetType,
        options: SendOptions | None,
    ) -> SendResult:
        opts = replace(options or SendOptions(), target_type=target_type)
        return self.send(target, SendContent(text=text), opts)

    # -- Administration ----------------------------------------------------------

    @abstractmethod
    def kick(
        self, chat_id: str, user_id: str, options: ModerationOptions | None = None
    ) -> UnifiedResult[None]: ...

    @abstractmethod
    def ban(
        self, chat_id: str, user_id: str, options: ModerationOptions | None = None
    ) -> UnifiedResult[None]: ...

    @abstractmethod
    def unban(self, chat_id: str, user_id: str) -> UnifiedResult[None]: ...

    @abstractmethod
    def mute(self, chat_id: str, user_id: str, options: MuteOptions) -> UnifiedResult[None]: ...

    @abstractmethod
    def unmute(self, chat_id: str, user_id: str) -> UnifiedResult[None]: ...

    @abstractmethod
    def pin_message(
        self, chat_id: str, message_id: str, options: PinOptions | None = None
    ) -> UnifiedResult[None]: ...

    @abstractmethod
    def unpin_message(self, chat_id: str, message_id: str) -> UnifiedResult[None]: ...

    @abstractmethod
    def create_invite(
        self, chat_id: str, options: InviteOptions | None = None
    ) -> UnifiedResult[InviteInfo]: ...

    @abstractmethod
    def get_invites(self, chat_id: str) -> UnifiedResult[list[InviteInfo]]: ...

    @abstractmethod
    def revoke_invite(self, chat_id: str, invite: str) -> UnifiedResult[None]: ...

    @abstractmethod
    def set_title(self, chat_id: str, title: str) -> UnifiedResult[None]: ...

    @abstractmethod
    def set_description(self, chat_id: str, description: str) -> UnifiedResult[None]: ...

    # -- Discovery ---------------------------------------------------------------

    @abstractmethod
    def get_member(self, chat_id: str, user_id: str) -> MemberInfo: ...

    @abstractmethod
    def get_member_count(self, chat_id: str) -> int: ...

    @abstractmethod
    def get_administrators(self, chat_id: str) -> list[MemberInfo]: ...

    @abstractmethod
    def create_dm_channel(self, user_id: str) -> str: ...

    # -- Helpers -----------------------------------------------------------------

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError(self.identify().value)

    def _require_capability(self, path: str) -> None:
        category, _, flag = path.partition(".")
        if not has_capability(self.capabilities, category, flag):
            raise CapabilityNotSupportedError(self.identify().value, path)

    def _require_content(self, content: SendContent) -> None:
        if content.is_empty():
            msg = "Either text, media_url, sticker_id, buttons or poll is required"
            raise ValidationError(msg)

    def _dispatch(self, message: Message) -> None:
        """Hand a normalized message to the registered handler.

        Handler failures are logged and contained so one bad message does not
        stop the platform's event stream.
        """
        if not self._message_handler:
            return
        try:
            self._message_handler(message)
        except Exception:
            _logger.exception(
                "message_handler_failed",
                platform=message.platform.value,
                message_id=message.message_id,
            )

    def _logged_call[T](self, operation: str, call: Callable[[], T], **context: Any) -> T:
        """Run a messaging or discovery call; log platform failures and re-raise."""
        try:
            return call()
        except Exception:
            _logger.exception(f"{self.identify().value}_{operation}_failed", **context)
            raise
