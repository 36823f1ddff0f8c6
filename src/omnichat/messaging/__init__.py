from omnichat.messaging.platform import (
    AbstractPlatform,
    Message,
    PlatformType,
    TargetType,
)

__all__ = [
    "AbstractPlatform",
    "Message",
    "PlatformType",
    "TargetType",
]
