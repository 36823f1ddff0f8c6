"""Static per-platform feature matrix.

A flag is ``True`` only when the adapter fully implements the operation with
the meaning of the common vocabulary.  Partial platform support stays ``False``
and, when offered at all, lives behind a platform-specific method.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any


@dataclass(frozen=True)
class BaseCapabilities:
    send_text: bool = False
    send_media: bool = False
    receive: bool = False


@dataclass(frozen=True)
class ConversationCapabilities:
    reply: bool = False
    edit: bool = False
    delete: bool = False
    threads: bool = False
    quote: bool = False


@dataclass(frozen=True)
class InteractionCapabilities:
    buttons: bool = False
    polls: bool = False
    reactions: bool = False
    stickers: bool = False
    effects: bool = False


@dataclass(frozen=True)
class DiscoveryCapabilities:
    history: bool = False
    search: bool = False
    pins: bool = False
    pin_message: bool = False
    unpin_message: bool = False
    member_info: bool = False
    member_count: bool = False
    administrators: bool = False
    channel_info: bool = False


@dataclass(frozen=True)
class ManagementCapabilities:
    kick: bool = False
    ban: bool = False
    mute: bool = False
    timeout: bool = False
    unban: bool = False
    channel_create: bool = False
    channel_edit: bool = False
    channel_delete: bool = False
    permissions: bool = False
    set_chat_title: bool = False
    set_chat_description: bool = False


@dataclass(frozen=True)
class AdvancedCapabilities:
    inline: bool = False
    deep_links: bool = False
    create_invite: bool = False
    get_invites: bool = False
    revoke_invite: bool = False
    mini_apps: bool = False
    topics: bool = False
    batch: bool = False
    payments: bool = False
    games: bool = False
    video_chat: bool = False
    stories: bool = False
    custom_emoji: bool = False
    webhooks: bool = False
    menu_button: bool = False
    dm_channels: bool = False


@dataclass(frozen=True)
class Capabilities:
    base: BaseCapabilities = field(default_factory=BaseCapabilities)
    conversation: ConversationCapabilities = field(default_factory=ConversationCapabilities)
    interaction: InteractionCapabilities = field(default_factory=InteractionCapabilities)
    discovery: DiscoveryCapabilities = field(default_factory=DiscoveryCapabilities)
    management: ManagementCapabilities = field(default_factory=ManagementCapabilities)
    advanced: AdvancedCapabilities = field(default_factory=AdvancedCapabilities)

    def supports(self, path: str) -> bool:
        """Look up a flag by ``"category.flag"`` path, e.g. ``"management.timeout"``."""
        category, _, flag = path.partition(".")
        return has_capability(self, category, flag)

    def as_dict(self) -> dict[str, dict[str, bool]]:
        return asdict(self)


_CATEGORIES = frozenset(f.name for f in fields(Capabilities))


def has_capability(caps: Capabilities, category: str, flag: str) -> bool:
    if category not in _CATEGORIES:
        return False
    return bool(getattr(getattr(caps, category), flag, False))


def merge_capabilities(
    *overrides: dict[str, dict[str, bool]],
    base: Capabilities | None = None,
) -> Capabilities:
    """Build a matrix from all-``False`` defaults (or *base*) plus overrides.

    Each override maps a category to the flags it turns on or off.  Unknown
    categories or flags raise :class:`ValueError`: the schema is closed.
    """
    result = base or Capabilities()
    for override in overrides:
        for category, flags in override.items():
            if category not in _CATEGORIES:
                msg = f"Unknown capability category: {category}"
                raise ValueError(msg)
            current: Any = getattr(result, category)
            known = {f.name for f in fields(current)}
            unknown = set(flags) - known
            if unknown:
                msg = f"Unknown {category} capabilities: {sorted(unknown)}"
                raise ValueError(msg)
            result = replace(result, **{category: replace(current, **flags)})
    return result
