from omnichat.messaging.platform.capabilities import Capabilities
from omnichat.messaging.platform.codec import SnowflakeIdCodec, TelegramIdCodec
from omnichat.messaging.platform.config import (
    AbstractPlatformConfig,
    DiscordConfig,
    TelegramConfig,
)
from omnichat.messaging.platform.factory import PlatformFactory
from omnichat.messaging.platform.platform import AbstractPlatform
from omnichat.messaging.platform.resolver import TargetTypeResolver
from omnichat.messaging.platform.result import UnifiedResult
from omnichat.messaging.platform.types import (
    CompoundMessageId,
    Message,
    Participant,
    PlatformType,
    SendContent,
    SendOptions,
    SendResult,
    TargetType,
)

__all__ = [
    "AbstractPlatform",
    "AbstractPlatformConfig",
    "Capabilities",
    "CompoundMessageId",
    "DiscordConfig",
    "Message",
    "Participant",
    "PlatformFactory",
    "PlatformType",
    "SendContent",
    "SendOptions",
    "SendResult",
    "SnowflakeIdCodec",
    "TargetType",
    "TargetTypeResolver",
    "TelegramConfig",
    "TelegramIdCodec",
    "UnifiedResult",
]
