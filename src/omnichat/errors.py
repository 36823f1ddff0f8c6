class OmnichatError(Exception):
    """Base class for every error raised by omnichat itself."""


class ConfigurationError(OmnichatError):
    pass


class NotInitializedError(ConfigurationError):
    def __init__(self, platform: str) -> None:
        super().__init__(f"{platform} platform has not been started, call start() first")
        self.platform = platform


class ValidationError(OmnichatError, ValueError):
    """Malformed caller input. Never retried, never wrapped into a result."""


class MessageIdFormatError(ValidationError):
    def __init__(self, value: str) -> None:
        super().__init__(f"Invalid message id {value!r}, expected format chatId:messageId")
        self.value = value


class CapabilityNotSupportedError(OmnichatError, NotImplementedError):
    def __init__(self, platform: str, capability: str) -> None:
        super().__init__(f'Platform "{platform}" does not support capability "{capability}"')
        self.platform = platform
        self.capability = capability


class PlatformNotFoundError(OmnichatError, LookupError):
    def __init__(self, platform: str) -> None:
        super().__init__(f'Platform "{platform}" not found or not registered')
        self.platform = platform
