import re
from collections.abc import Callable, MutableMapping

import structlog

from omnichat.messaging.platform.types import TargetType

_logger = structlog.get_logger()

type TargetInference = Callable[[str], TargetType | None]

_SIGNED_INT = re.compile(r"^[+-]?\d+$")
_DISCORD_CHANNEL_MENTION = re.compile(r"^<#(\d+)>$")
_DISCORD_USER_MENTION = re.compile(r"^<@!?(\d+)>$")


def infer_telegram_target(target: str) -> TargetType | None:
    """Classify a Telegram target from its format alone.

    ``@handle`` is a public channel/group username.  Integers are positive for
    private chats and negative for groups; a tagged public id is a private
    chat.
    """
    if target.startswith("@"):
        return TargetType.CHANNEL
    if not _SIGNED_INT.match(target):
        return None

    value = int(target)
    if value < 0:
        return TargetType.GROUP
    if value > 0:
        # covers tagged public ids too: TAG_BIT only ever marks private chats
        return TargetType.USER
    return None


def infer_discord_target(target: str) -> TargetType | None:
    if target.startswith("channel:") or _DISCORD_CHANNEL_MENTION.match(target):
        return TargetType.CHANNEL
    if target.startswith("user:") or _DISCORD_USER_MENTION.match(target):
        return TargetType.USER
    # a bare snowflake says nothing about what it addresses
    return None


class TargetTypeResolver:
    """Answers "user, group or channel?" for outbound targets.

    Order: explicit type (recorded, overwriting any earlier entry), cached
    entry, format inference (cached), then *default* (never cached).  The
    store is owned by one platform adapter and cleared on its teardown.
    """

    def __init__(
        self,
        infer: TargetInference,
        default: TargetType = TargetType.USER,
        store: MutableMapping[str, TargetType] | None = None,
    ) -> None:
        self._infer = infer
        self._default = default
        self._store: MutableMapping[str, TargetType] = store if store is not None else {}

    def resolve(self, target: str, explicit_type: TargetType | None = None) -> TargetType:
        if explicit_type is not None:
            self._store[target] = explicit_type
            return explicit_type

        cached = self._store.get(target)
        if cached is not None:
            return cached

        inferred = self._infer(target)
        if inferred is not None:
            self._store[target] = inferred
            return inferred

        _logger.debug("target_type_defaulted", target=target, default=self._default.value)
        return self._default

    def remember(self, target: str, target_type: TargetType) -> None:
        self._store[target] = target_type

    def seed(self, entries: dict[str, TargetType]) -> None:
        for target, target_type in entries.items():
            self._store[target] = target_type

    def cached(self, target: str) -> TargetType | None:
        return self._store.get(target)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
