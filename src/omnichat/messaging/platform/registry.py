from collections.abc import Iterable

import structlog

from omnichat.errors import PlatformNotFoundError
from omnichat.messaging.platform.config import AbstractPlatformConfig, PlatformConfigGenerator
from omnichat.messaging.platform.factory import PlatformFactory
from omnichat.messaging.platform.platform import AbstractPlatform
from omnichat.messaging.platform.types import PlatformType

_logger = structlog.get_logger()


class PlatformRegistry:
    def __init__(
        self,
        configs: Iterable[AbstractPlatformConfig] | None = None,
        factory: PlatformFactory | None = None,
    ) -> None:
        self.platforms: dict[PlatformType, AbstractPlatform] = {}
        self._factory = factory or PlatformFactory()
        self._build(configs if configs is not None else PlatformConfigGenerator().generate())

    def get(self, platform_type: PlatformType) -> AbstractPlatform:
        if platform_type not in self.platforms:
            raise PlatformNotFoundError(platform_type.value)
        return self.platforms[platform_type]

    def get_all(self) -> list[AbstractPlatform]:
        return list(self.platforms.values())

    def supporting(self, capability: str) -> list[AbstractPlatform]:
        """Platforms whose capability matrix enables *capability*, e.g. ``"management.timeout"``."""
        return [p for p in self.platforms.values() if p.get_capabilities().supports(capability)]

    def stop_all(self) -> None:
        for platform in self.platforms.values():
            try:
                platform.stop()
            except Exception:
                _logger.exception("platform_stop_failed", platform=platform.identify().value)

    def _build(self, configs: Iterable[AbstractPlatformConfig]) -> None:
        for platform_config in configs:
            try:
                platform = self._factory.from_config(platform_config)
                self._register_platform(platform.identify(), platform)
            except (ValueError, ConnectionError, TimeoutError) as e:
                _logger.error(
                    "platform_registration_failed",
                    error=str(e),
                )

        if not self.platforms:
            raise ValueError("no_platform_registered")
        _logger.info("registry_initialized", platform_count=len(self.platforms))

    def _register_platform(
        self,
        identifier: PlatformType,
        platform: AbstractPlatform,
    ) -> None:
        self.platforms[identifier] = platform
        _logger.info("platform_registered", identifier=identifier.value)


_platform_registry: PlatformRegistry | None = None


def get_platform_registry() -> PlatformRegistry:
    global _platform_registry
    if _platform_registry is None:
        _platform_registry = PlatformRegistry()
    return _platform_registry
