"""Chat identifier codecs.

Telegram addresses private chats with positive ids and groups, supergroups
and channels with negative ids.  Callers get one flat, non-negative public id
space instead:

- private chat ``123``  -> ``TAG_BIT | 123``  (always >= 2**62)
- group chat   ``-456`` -> ``456``            (always <  2**62)

The two images never overlap because no native id reaches 2**62 in magnitude.
Going back, an untagged value is ambiguous on its own ("positive native id"
vs "absolute value of a group id"), so :meth:`TelegramIdCodec.to_native_id`
only restores the negative sign when the caller states the chat kind.

Discord snowflakes live in a single unambiguous space and pass through.
"""

from abc import ABC, abstractmethod
from enum import StrEnum

from omnichat.errors import ValidationError
from omnichat.messaging.platform.types import TargetType

TAG_BIT = 1 << 62
ABS_MASK = TAG_BIT - 1


class IdKind(StrEnum):
    USER = "user"
    GROUP = "group"
    UNKNOWN = "unknown"


def _parse_int(value: str | int, what: str) -> int:
    if isinstance(value, bool):
        msg = f"Invalid {what}: {value!r}"
        raise ValidationError(msg)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip(), 10)
    except ValueError:
        msg = f"Invalid {what}: {value!r} is not an integer"
        raise ValidationError(msg) from None


class AbstractIdCodec(ABC):
    @abstractmethod
    def to_public_id(self, native_id: str | int) -> str: ...

    @abstractmethod
    def to_native_id(self, public_id: str | int, target_type: TargetType | None = None) -> str: ...

    @abstractmethod
    def get_type(self, public_id: str | int) -> IdKind: ...


class TelegramIdCodec(AbstractIdCodec):
    def to_public_id(self, native_id: str | int) -> str:
        value = _parse_int(native_id, "native chat id")
        if abs(value) >= TAG_BIT:
            msg = f"Native chat id {value} is outside the representable range"
            raise ValidationError(msg)

        if value > 0:
            return str(TAG_BIT | (value & ABS_MASK))
        return str(abs(value))

    def to_native_id(self, public_id: str | int, target_type: TargetType | None = None) -> str:
        """Map a public id back to the id Telegram expects.

        Tagged ids are private chats and come back positive.  An untagged
        positive value is returned as-is unless *target_type* says the chat is
        a group or channel, in which case it is negated.  Negative input is
        already native and is returned unchanged.
        """
        value = _parse_int(public_id, "public chat id")
        if value < 0:
            return str(value)

        if value & TAG_BIT:
            return str(value & ABS_MASK)

        if target_type in (TargetType.GROUP, TargetType.CHANNEL) and value > 0:
            return str(-value)
        return str(value)

    def get_type(self, public_id: str | int) -> IdKind:
        try:
            value = _parse_int(public_id, "public chat id")
        except ValidationError:
            return IdKind.UNKNOWN

        if value < 0:
            return IdKind.GROUP
        if value & TAG_BIT:
            return IdKind.USER
        # untagged positive ids are plain native user ids
        if 0 < value < TAG_BIT:
            return IdKind.USER
        return IdKind.GROUP

    def is_user_id(self, public_id: str | int) -> bool:
        return self.get_type(public_id) == IdKind.USER

    def is_group_id(self, public_id: str | int) -> bool:
        return self.get_type(public_id) == IdKind.GROUP


class SnowflakeIdCodec(AbstractIdCodec):
    """Discord snowflakes are already globally unique; only validate them."""

    def to_public_id(self, native_id: str | int) -> str:
        value = _parse_int(native_id, "snowflake")
        if value < 0:
            msg = f"Invalid snowflake: {value} is negative"
            raise ValidationError(msg)
        return str(value)

    def to_native_id(self, public_id: str | int, target_type: TargetType | None = None) -> str:
        return self.to_public_id(public_id)

    def get_type(self, public_id: str | int) -> IdKind:
        # a snowflake does not encode what it points at
        return IdKind.UNKNOWN
