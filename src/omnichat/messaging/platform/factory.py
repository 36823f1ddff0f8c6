from omnichat.messaging.platform.adapter import DiscordPlatform, TelegramPlatform
from omnichat.messaging.platform.config import (
    AbstractPlatformConfig,
    DiscordConfig,
    TelegramConfig,
)
from omnichat.messaging.platform.platform import AbstractPlatform


class PlatformFactory:
    def from_config(self, config: AbstractPlatformConfig) -> AbstractPlatform:
        match config:
            case TelegramConfig():
                return TelegramPlatform(config)
            case DiscordConfig():
                return DiscordPlatform(config)
            case _:
                raise ValueError(f"Unknown platform config class: {config}")
