from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypedDict

import structlog

from omnichat.messaging.platform.types import PlatformType, TargetType
from omnichat.util import PROJECT_ROOT, load_yaml_config

_logger = structlog.get_logger()
_DEFAULT_CONFIG = PROJECT_ROOT / "config" / "platforms.yaml"
_DEFAULT_REQUEST_TIMEOUT = 10.0


class _ConfigDict(TypedDict):
    request_timeout: float
    target_types: dict[str, TargetType]


@dataclass
class AbstractPlatformConfig(ABC):
    """Settings shared by every platform adapter."""

    bot_token: str
    request_timeout: float = _DEFAULT_REQUEST_TIMEOUT
    target_types: dict[str, TargetType] = field(default_factory=dict)

    @classmethod
    def _read_common_config(cls, yaml_config: dict[str, Any], platform_name: str) -> _ConfigDict:
        """Read the fields every platform section may carry.

        ``target_types`` pre-seeds the adapter's target-type cache, for targets
        whose kind cannot be inferred from their format::

            target_types:
              "1001234567": group
        """
        raw_types: dict[str, str] = yaml_config.get("target_types") or {}
        target_types: dict[str, TargetType] = {}
        for target, raw_type in raw_types.items():
            try:
                target_types[str(target)] = TargetType(raw_type)
            except ValueError:
                msg = f"Invalid {platform_name}.target_types entry {target!r}: {raw_type!r}"
                raise ValueError(msg) from None

        timeout = float(yaml_config.get("request_timeout", _DEFAULT_REQUEST_TIMEOUT))
        if timeout <= 0:
            msg = f"{platform_name}.request_timeout must be positive"
            raise ValueError(msg)

        return _ConfigDict(request_timeout=timeout, target_types=target_types)

    @staticmethod
    def _require_token(yaml_config: dict[str, Any], platform_name: str) -> str:
        bot_token = yaml_config.get("bot_token", "")
        if not bot_token:
            msg = f"Missing {platform_name}.bot_token"
            raise ValueError(msg)
        return str(bot_token)

    @classmethod
    @abstractmethod
    def from_yaml(cls, config: dict[str, Any]) -> "AbstractPlatformConfig":
        """Factory method: Create config from resolved YAML dict"""
        ...


@dataclass
class TelegramConfig(AbstractPlatformConfig):
    polling_timeout: int = 20

    @classmethod
    def from_yaml(cls, config: dict[str, Any]) -> "TelegramConfig":
        common = cls._read_common_config(config, "telegram")
        return cls(
            bot_token=cls._require_token(config, "telegram"),
            polling_timeout=int(config.get("polling_timeout", 20)),
            **common,
        )


@dataclass
class DiscordConfig(AbstractPlatformConfig):
    handle_interactions: bool = True

    @classmethod
    def from_yaml(cls, config: dict[str, Any]) -> "DiscordConfig":
        common = cls._read_common_config(config, "discord")
        return cls(
            bot_token=cls._require_token(config, "discord"),
            handle_interactions=bool(config.get("handle_interactions", True)),
            **common,
        )


class PlatformConfigGenerator:
    def __init__(self, config_location: Path = _DEFAULT_CONFIG) -> None:
        self.config = load_yaml_config(config_location)

    def generate(self) -> Iterator[AbstractPlatformConfig]:
        for platform_key, platform_config in self.config.items():
            try:
                match PlatformType(platform_key):
                    case PlatformType.TELEGRAM:
                        yield TelegramConfig.from_yaml(platform_config or {})
                    case PlatformType.DISCORD:
                        yield DiscordConfig.from_yaml(platform_config or {})
            except (ValueError, KeyError) as e:
                _logger.debug("platform_skipped", platform=platform_key, reason=str(e))
