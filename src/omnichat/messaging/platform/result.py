from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from omnichat.messaging.platform.types import Participant

_logger = structlog.get_logger()


@dataclass(frozen=True)
class UnifiedResult[T]:
    """Outcome of an administrative operation.

    ``error`` is always human-readable text, never the exception object.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    raw: Any = field(default=None, repr=False, compare=False)

    @classmethod
    def ok(cls, data: T | None = None, raw: Any = None) -> "UnifiedResult[T]":
        return cls(success=True, data=data, raw=raw)

    @classmethod
    def fail(cls, error: str) -> "UnifiedResult[T]":
        return cls(success=False, error=error)


def describe_error(exc: BaseException) -> str:
    """Best human-readable message a platform exception carries.

    pyTelegramBotAPI puts the API's text in ``description``; discord.py puts it
    in ``text``.  Anything else falls back to ``str(exc)`` or the class name.
    """
    for attr in ("description", "text"):
        value = getattr(exc, attr, None)
        if isinstance(value, str) and value:
            return value
    return str(exc) or type(exc).__name__


def unified_call[T](
    platform: str,
    operation: str,
    call: Callable[[], T],
    errors: tuple[type[BaseException], ...],
    **context: Any,
) -> UnifiedResult[T]:
    """Run *call*, turning the platform's own failures into a failed result.

    Only exceptions listed in *errors* are captured.  Everything else, notably
    omnichat's validation and not-initialized errors, propagates.
    """
    try:
        data = call()
    except errors as e:
        message = describe_error(e)
        _logger.warning(
            f"{platform}_{operation}_failed",
            error=message,
            error_type=type(e).__name__,
            **context,
        )
        return UnifiedResult.fail(message)
    _logger.info(f"{platform}_{operation}_succeeded", **context)
    return UnifiedResult.ok(data)


# -- Options -----------------------------------------------------------------


@dataclass
class ModerationOptions:
    reason: str | None = None
    duration_seconds: int | None = None
    delete_messages: bool = False
    telegram_until_date: int | None = None
    discord_delete_message_seconds: int | None = None


@dataclass
class MuteOptions:
    duration_seconds: int
    reason: str | None = None


@dataclass
class PinOptions:
    silent: bool = False
    reason: str | None = None


@dataclass
class InviteOptions:
    max_uses: int | None = None
    expires_in_seconds: int | None = None
    name: str | None = None
    reason: str | None = None
    telegram_creates_join_request: bool | None = None
    discord_temporary: bool = False
    discord_unique: bool = True


# -- Results -----------------------------------------------------------------


@dataclass(frozen=True)
class InviteInfo:
    url: str
    code: str
    creator: Participant | None = None
    max_uses: int | None = None
    use_count: int | None = None
    expires_at: int | None = None
    is_revoked: bool | None = None
    is_primary: bool | None = None
    raw: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class ForumTopicInfo:
    """A Telegram forum topic; ``thread_id`` is what ``SendOptions.thread_id`` takes."""

    thread_id: str
    name: str
    icon_color: int | None = None
    icon_custom_emoji_id: str | None = None
    raw: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class MemberInfo:
    id: str
    name: str
    username: str | None = None
    avatar: str | None = None
    roles: tuple[str, ...] = ()
    joined_at: int | None = None
    is_admin: bool = False
    is_owner: bool = False
    custom_title: str | None = None
    raw: Any = field(default=None, repr=False, compare=False)
