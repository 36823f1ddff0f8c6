from omnichat.messaging.platform.adapter.discord import DiscordPlatform
from omnichat.messaging.platform.adapter.telegram import TelegramPlatform

__all__ = [
    "DiscordPlatform",
    "TelegramPlatform",
]
