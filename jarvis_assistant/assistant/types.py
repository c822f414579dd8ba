"""
Data model shared by the orchestrator, history formatter and hosts.

Records are plain dataclasses. Media travels as raw bytes plus a mime type;
base64 encoding is the gateway's concern.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

CONSENT_ACKNOWLEDGEMENT = "\n\n*Access granted. Proceeding...*"


class Author(Enum):
    """Who wrote a chat message."""

    USER = "user"
    AI = "ai"


class MediaKind(Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class VideoState(Enum):
    GENERATING = "generating"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class MediaPayload:
    """Binary media attached to a user turn."""

    kind: MediaKind
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str = "image/jpeg"


@dataclass
class GeneratedVideo:
    """Handle for an asynchronously generated video."""

    state: VideoState = VideoState.GENERATING
    url: Optional[str] = None
    operation_name: Optional[str] = None


@dataclass(frozen=True)
class GroundingSource:
    uri: str
    title: str = ""


@dataclass(frozen=True)
class PendingAction:
    """A tool call held back until the user grants consent."""

    tool_name: str
    tool_args: dict = field(default_factory=dict)


@dataclass
class ChatMessage:
    """One message of a conversation session.

    A message that requires consent must carry the action it gates. The only
    mutation allowed after creation is :meth:`grant_consent`.
    """

    author: Author
    text: str = ""
    media: Optional[MediaPayload] = None
    generated_image: Optional[GeneratedImage] = None
    generated_video: Optional[GeneratedVideo] = None
    grounding_sources: list[GroundingSource] = field(default_factory=list)
    requires_consent: bool = False
    consent_granted: bool = False
    action: Optional[PendingAction] = None

    def __post_init__(self) -> None:
        if self.requires_consent and self.action is None:
            raise ValueError("A message that requires consent must carry an action")

    def grant_consent(self) -> None:
        """Mark the gated action as approved and acknowledge it in the text."""
        if not self.requires_consent:
            raise ValueError("Message does not request consent")
        if self.consent_granted:
            return
        self.consent_granted = True
        self.text = f"{self.text}{CONSENT_ACKNOWLEDGEMENT}"


@dataclass(frozen=True)
class TurnOptions:
    aspect_ratio: Optional[str] = None


@dataclass(frozen=True)
class ConversationTurn:
    """Immutable user input for one call to the orchestrator."""

    prompt: str
    media: Optional[MediaPayload] = None
    options: TurnOptions = field(default_factory=TurnOptions)


@dataclass
class AiResponse:
    """Terminal result of one orchestrator invocation.

    Exactly one shape is populated: consent request, billing required,
    generated media, or plain text.
    """

    text: str
    generated_image: Optional[GeneratedImage] = None
    generated_video: Optional[GeneratedVideo] = None
    grounding_sources: list[GroundingSource] = field(default_factory=list)
    requires_consent: bool = False
    action: Optional[PendingAction] = None
    requires_billing_project: bool = False
    learned_facts: list[str] = field(default_factory=list)
    error: Optional[Any] = None  # ErrorKind when the response reports a failure

    def to_message(self) -> ChatMessage:
        """Build the assistant chat message for this response."""
        return ChatMessage(
            author=Author.AI,
            text=self.text,
            generated_image=self.generated_image,
            generated_video=self.generated_video,
            grounding_sources=list(self.grounding_sources),
            requires_consent=self.requires_consent,
            action=self.action,
        )


@dataclass
class ToolResultEnvelope:
    """Uniform result of a tool execution, fed back to the model."""

    tool_name: str
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_response(self) -> dict:
        if self.error is not None:
            return {"error": self.error}
        return {"result": self.result}


@dataclass
class SpeechAudio:
    """Synthesized speech as 16-bit little-endian mono PCM."""

    pcm: bytes
    sample_rate: int = 24000
    mime_type: str = "audio/pcm;rate=24000"


@dataclass
class SpeechJob:
    """Chunks queued for one call to ``SpeechPipeline.speak``."""

    generation_id: int
    chunks: list[str]
    cursor: int = 0
    _finished: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job has finished or been abandoned."""
        return self._finished.wait(timeout)

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def mark_finished(self) -> None:
        self._finished.set()


@dataclass(frozen=True)
class ServiceAccount:
    id: str
    connected: bool = False


@dataclass(frozen=True)
class ServiceConnection:
    """Snapshot of one integration as seen by the orchestrator."""

    id: str
    connected: bool = False
    accounts: tuple[ServiceAccount, ...] = ()
    name: str = ""
    description: str = ""

    def connected_account_ids(self) -> list[str]:
        return [a.id for a in self.accounts if a.connected]
