from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar, NamedTuple

from omnichat.errors import MessageIdFormatError


class PlatformType(StrEnum):
    TELEGRAM = "telegram"
    DISCORD = "discord"


class TargetType(StrEnum):
    USER = "user"
    GROUP = "group"
    CHANNEL = "channel"


class MessageType(StrEnum):
    TEXT = "text"
    MEDIA = "media"
    STICKER = "sticker"
    VOICE = "voice"
    LOCATION = "location"
    CONTACT = "contact"
    POLL = "poll"
    REACTION = "reaction"
    CALLBACK = "callback"


class MediaType(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"


class ParseMode(StrEnum):
    MARKDOWN = "markdown"
    HTML = "html"
    PLAIN = "plain"


class CompoundMessageId(NamedTuple):
    """``chatId:messageId`` pair.

    Message ids on some platforms are only unique inside their chat, so they
    always travel together with the chat id.  The string form is a public
    contract: callers persist it and hand it back to ``reply``/``edit``/``delete``.
    """

    chat_id: str
    message_id: str

    @classmethod
    def parse(cls, value: str) -> "CompoundMessageId":
        parts = value.split(":")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise MessageIdFormatError(value)
        return cls(chat_id=parts[0], message_id=parts[1])

    def __str__(self) -> str:
        return f"{self.chat_id}:{self.message_id}"


def compound_message_id(chat_id: str | int, message_id: str | int) -> str:
    return str(CompoundMessageId(str(chat_id), str(message_id)))


@dataclass(frozen=True)
class Participant:
    id: str
    name: str
    username: str | None = None
    avatar: str | None = None
    type: TargetType | None = None


# -- Message content ---------------------------------------------------------
#
# Exactly one variant describes an inbound message.  ``kind`` is fixed per
# variant so callers can switch on it (or use ``match``) without probing fields.


@dataclass(frozen=True)
class TextContent:
    kind: ClassVar[MessageType] = MessageType.TEXT
    text: str


@dataclass(frozen=True)
class MediaContent:
    kind: ClassVar[MessageType] = MessageType.MEDIA
    url: str
    media_type: MediaType
    caption: str | None = None


@dataclass(frozen=True)
class VoiceContent:
    kind: ClassVar[MessageType] = MessageType.VOICE
    url: str
    duration: int | None = None
    caption: str | None = None


@dataclass(frozen=True)
class StickerContent:
    kind: ClassVar[MessageType] = MessageType.STICKER
    sticker_id: str


@dataclass(frozen=True)
class LocationContent:
    kind: ClassVar[MessageType] = MessageType.LOCATION
    latitude: float
    longitude: float
    title: str | None = None


@dataclass(frozen=True)
class ContactContent:
    kind: ClassVar[MessageType] = MessageType.CONTACT
    phone_number: str
    first_name: str
    last_name: str | None = None


@dataclass(frozen=True)
class PollContent:
    kind: ClassVar[MessageType] = MessageType.POLL
    poll_id: str
    question: str
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReactionContent:
    kind: ClassVar[MessageType] = MessageType.REACTION
    emoji: str
    removed: bool = False


@dataclass(frozen=True)
class CallbackContent:
    kind: ClassVar[MessageType] = MessageType.CALLBACK
    data: str


@dataclass(frozen=True)
class EmptyContent:
    """An event with no payload the canonical model recognizes."""

    kind: ClassVar[MessageType] = MessageType.TEXT


type MessageContent = (
    TextContent
    | MediaContent
    | VoiceContent
    | StickerContent
    | LocationContent
    | ContactContent
    | PollContent
    | ReactionContent
    | CallbackContent
    | EmptyContent
)


@dataclass(frozen=True)
class ReplyReference:
    message_id: str
    text: str | None = None
    sender: Participant | None = None


@dataclass(frozen=True)
class ThreadInfo:
    id: str
    title: str | None = None


@dataclass(frozen=True)
class Message:
    """Canonical inbound message, identical in shape for every platform.

    ``sender``/``recipient`` are the ``from``/``to`` participants.  ``raw`` is
    the untouched platform payload; nothing in omnichat reads it back.
    """

    platform: PlatformType
    type: MessageType
    sender: Participant
    recipient: Participant
    content: MessageContent
    message_id: str
    timestamp: int
    reply_to: ReplyReference | None = None
    thread: ThreadInfo | None = None
    raw: Any = field(default=None, repr=False, compare=False)

    @property
    def compound_id(self) -> CompoundMessageId:
        return CompoundMessageId.parse(self.message_id)


# -- Outbound ----------------------------------------------------------------


@dataclass(frozen=True)
class Button:
    text: str
    data: str


@dataclass(frozen=True)
class PollInput:
    question: str
    options: list[str]
    multi: bool = False


@dataclass
class SendContent:
    text: str | None = None
    media_url: str | None = None
    media_type: MediaType | None = None
    buttons: list[list[Button]] | None = None
    sticker_id: str | None = None
    poll: PollInput | None = None

    def is_empty(self) -> bool:
        return not (self.text or self.media_url or self.sticker_id or self.buttons or self.poll)


@dataclass
class SendOptions:
    target_type: TargetType | None = None
    reply_to_message_id: str | None = None
    thread_id: str | None = None
    silent: bool = False
    parse_mode: ParseMode | None = None
    platform_options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SendResult:
    platform: PlatformType
    message_id: str
    chat_id: str
    timestamp: int
