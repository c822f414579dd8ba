"""
Conversation host - owns one session and wires orchestrator, memory and speech.

This is the single writer of the session's message list. Hosts (the CLI,
an app) drive it with :meth:`Conversation.send` and :meth:`Conversation.approve`.
"""

import logging
from dataclasses import replace
from typing import Optional, Sequence

from jarvis_assistant.assistant.context import toggle_integration
from jarvis_assistant.assistant.memory import MemoryStore
from jarvis_assistant.assistant.orchestrator import Orchestrator
from jarvis_assistant.assistant.speech import SpeechPipeline
from jarvis_assistant.assistant.types import (
    AiResponse,
    Author,
    ChatMessage,
    ConversationTurn,
    MediaPayload,
    ServiceConnection,
    SpeechJob,
    TurnOptions,
    VideoState,
)

logger = logging.getLogger(__name__)


class Conversation:
    """A chat session with an assistant."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        speech: Optional[SpeechPipeline] = None,
        integrations: Sequence[ServiceConnection] = (),
        memory: Optional[MemoryStore] = None,
        greeting: Optional[str] = None,
    ):
        self.orchestrator = orchestrator
        self.speech = speech
        self.integrations: list[ServiceConnection] = list(integrations)
        self.memory = memory if memory is not None else MemoryStore()
        self.messages: list[ChatMessage] = []
        self.voice_enabled = speech is not None
        self.last_speech_job: Optional[SpeechJob] = None
        if greeting:
            self.messages.append(ChatMessage(author=Author.AI, text=greeting))

    def send(
        self,
        prompt: str,
        media: Optional[MediaPayload] = None,
        options: Optional[TurnOptions] = None,
    ) -> AiResponse:
        """Run one user turn and append both sides to the session."""
        turn = ConversationTurn(prompt=prompt, media=media, options=options or TurnOptions())
        session = list(self.messages)
        self.messages.append(ChatMessage(author=Author.USER, text=prompt, media=media))

        response = self.orchestrator.respond(turn, session, self.integrations, self.memory.facts())
        return self._finish(response)

    def pending_consent(self) -> Optional[ChatMessage]:
        """The most recent consent request still waiting for approval."""
        for message in reversed(self.messages):
            if message.requires_consent and not message.consent_granted:
                return message
        return None

    def approve(self, message: Optional[ChatMessage] = None) -> AiResponse:
        """
        Grant a consent request and run the gated tool.

        Args:
            message: The consent message; defaults to the pending one

        Raises:
            ValueError: If there is nothing to approve
        """
        message = message or self.pending_consent()
        if message is None or not message.requires_consent:
            raise ValueError("No consent request to approve")
        if message.consent_granted:
            raise ValueError("Consent was already granted for this request")

        index = next(i for i, m in enumerate(self.messages) if m is message)
        message.grant_consent()
        logger.info("Consent granted for %s", message.action.tool_name)

        session = self.messages[: index + 1]
        response = self.orchestrator.respond_after_consent(
            message.action, session, self.integrations, self.memory.facts(),
        )
        return self._finish(response)

    def toggle_integration(self, service_id: str, account_id: Optional[str] = None) -> None:
        self.integrations = toggle_integration(self.integrations, service_id, account_id)

    def refresh_videos(self) -> int:
        """Poll generating videos; returns how many are still generating."""
        pending = 0
        for i, message in enumerate(self.messages):
            video = message.generated_video
            if video is None or video.state is not VideoState.GENERATING:
                continue
            updated = self.orchestrator.refresh_video(video)
            if updated != video:
                self.messages[i] = replace(message, generated_video=updated)
            if updated.state is VideoState.GENERATING:
                pending += 1
        return pending

    def stop_speaking(self) -> None:
        if self.speech is not None:
            self.speech.stop()

    def close(self) -> None:
        if self.speech is not None:
            self.speech.close()

    def _finish(self, response: AiResponse) -> AiResponse:
        if response.learned_facts:
            self.memory.extend(response.learned_facts)
            logger.info("Learned %d new fact(s)", len(response.learned_facts))

        self.messages.append(response.to_message())

        if self._should_speak(response):
            self.last_speech_job = self.speech.speak(response.text)
        return response

    def _should_speak(self, response: AiResponse) -> bool:
        if self.speech is None or not self.voice_enabled or not response.text:
            return False
        # Only plain replies are read aloud
        return not (
            response.requires_consent
            or response.requires_billing_project
            or response.generated_image is not None
            or response.generated_video is not None
        )
