from omnichat.messaging.platform.normalizer.discord import (
    DiscordComponentEvent,
    DiscordMessageEvent,
    DiscordNormalizer,
    DiscordRawEvent,
    DiscordReactionEvent,
)
from omnichat.messaging.platform.normalizer.telegram import (
    TelegramCallbackEvent,
    TelegramMessageEvent,
    TelegramNormalizer,
    TelegramRawEvent,
    TelegramReactionEvent,
)

__all__ = [
    "DiscordComponentEvent",
    "DiscordMessageEvent",
    "DiscordNormalizer",
    "DiscordRawEvent",
    "DiscordReactionEvent",
    "TelegramCallbackEvent",
    "TelegramMessageEvent",
    "TelegramNormalizer",
    "TelegramRawEvent",
    "TelegramReactionEvent",
]
