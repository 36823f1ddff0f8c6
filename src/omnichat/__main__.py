import signal
import threading

import structlog

from omnichat.messaging.platform.platform import AbstractPlatform
from omnichat.messaging.platform.registry import get_platform_registry
from omnichat.messaging.platform.types import Message
from omnichat.util import PROJECT_ROOT, configure_logging, load_yaml_config

_logger = structlog.get_logger()
_OBSERVABILITY_CONFIG_PATH = PROJECT_ROOT / "config" / "observability.yaml"


def _init_logging() -> None:
    try:
        obs_config = load_yaml_config(_OBSERVABILITY_CONFIG_PATH)
        logging_config = obs_config.get("logging", {})
    except Exception:
        configure_logging()
        return

    json_output = logging_config.get("json_output", True)
    log_level = logging_config.get("log_level", "INFO")
    configure_logging(json_output=bool(json_output), log_level=str(log_level))


def _log_message(message: Message) -> None:
    _logger.info(
        "message_received",
        platform=message.platform.value,
        type=message.type.value,
        message_id=message.message_id,
        sender=message.sender.id,
        recipient=message.recipient.id,
        recipient_type=message.recipient.type.value if message.recipient.type else None,
    )


def _start(platform: AbstractPlatform) -> None:
    try:
        platform.start()
    except Exception:
        _logger.exception("platform_start_failed", platform=platform.identify().value)


def main() -> None:
    _init_logging()

    platform_registry = get_platform_registry()

    for platform in platform_registry.get_all():
        platform_name = platform.identify().value
        platform.on_message(_log_message)
        t = threading.Thread(target=_start, args=(platform,), name=f"platform-{platform_name}", daemon=True)
        t.start()

    _logger.info("all_platforms_started")

    shutdown = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: shutdown.set())
    signal.signal(signal.SIGTERM, lambda *_: shutdown.set())
    shutdown.wait()

    platform_registry.stop_all()
    _logger.info("all_platforms_stopped")


if __name__ == "__main__":
    main()
