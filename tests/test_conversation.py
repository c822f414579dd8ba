"""Tests for the conversation host."""

from unittest.mock import MagicMock

import pytest

from fakes import FakeGateway, call_result, text_result

from jarvis_assistant.assistant.builtin_tools import build_tool_registry
from jarvis_assistant.assistant.conversation import Conversation
from jarvis_assistant.assistant.demo_data import demo_integrations
from jarvis_assistant.assistant.memory import MemoryStore
from jarvis_assistant.assistant.orchestrator import Orchestrator
from jarvis_assistant.assistant.tools import CONSENT_TOOL
from jarvis_assistant.assistant.types import (
    CONSENT_ACKNOWLEDGEMENT,
    Author,
    GeneratedImage,
    GeneratedVideo,
    SpeechJob,
    VideoState,
)
from jarvis_assistant.config import Config, GatewayConfig


def _conversation(script, speech=None, memory=None, **gateway_kwargs):
    gateway = FakeGateway(script, **gateway_kwargs)
    orchestrator = Orchestrator(
        gateway,
        build_tool_registry(),
        config=Config(gateway=GatewayConfig(backend="simple")),
        sleep=lambda s: None,
    )
    conversation = Conversation(
        orchestrator,
        speech=speech,
        integrations=demo_integrations(),
        memory=memory,
        greeting="Hello! I'm J.A.R.V.I.S.",
    )
    return conversation, gateway


def _speech():
    speech = MagicMock()
    speech.speak.side_effect = lambda text: SpeechJob(generation_id=1, chunks=[text])
    return speech


class TestSend:
    def test_messages_are_appended(self):
        conversation, gateway = _conversation([text_result("Hi there!")])

        response = conversation.send("hello")

        assert response.text == "Hi there!"
        assert [(m.author, m.text) for m in conversation.messages] == [
            (Author.AI, "Hello! I'm J.A.R.V.I.S."),
            (Author.USER, "hello"),
            (Author.AI, "Hi there!"),
        ]
        # The new user turn is sent once, not duplicated from the session
        contents = gateway.generate_calls[0]["contents"]
        assert [c.parts[0].text for c in contents] == ["hello"]

    def test_plain_reply_is_spoken(self):
        speech = _speech()
        conversation, _ = _conversation([text_result("Hi there!")], speech=speech)

        conversation.send("hello")

        speech.speak.assert_called_once_with("Hi there!")
        assert conversation.last_speech_job is not None

    def test_consent_request_is_not_spoken(self):
        speech = _speech()
        conversation, _ = _conversation(
            [call_result(CONSENT_TOOL, {"tool_to_call": "get_calendar_events", "reason": "May I?"})],
            speech=speech,
        )

        conversation.send("what's on my calendar")

        speech.speak.assert_not_called()

    def test_media_reply_is_not_spoken(self):
        speech = _speech()
        conversation, _ = _conversation(
            [call_result("generate_image", {"prompt": "fox"}), text_result("Here you go.")],
            speech=speech,
            media=GeneratedImage(data=b"jpeg"),
        )

        response = conversation.send("draw a fox for me")

        assert response.generated_image is not None
        assert conversation.messages[-1].generated_image is not None
        speech.speak.assert_not_called()

    def test_voice_toggle(self):
        speech = _speech()
        conversation, _ = _conversation([text_result("Hi!")], speech=speech)
        conversation.voice_enabled = False

        conversation.send("hello")

        speech.speak.assert_not_called()

    def test_learned_facts_go_to_memory(self):
        memory = MemoryStore()
        conversation, gateway = _conversation(
            [call_result("remember_fact", {"fact": "Has a dog named Rex"}), text_result("Got it.")],
            memory=memory,
        )

        conversation.send("my dog is called Rex")
        assert memory.facts() == ["Has a dog named Rex"]

        conversation.send("what's my dog's name")
        assert "Has a dog named Rex" in gateway.generate_calls[-1]["system_instruction"]


class TestApprove:
    def test_approve_runs_tool_and_marks_message(self):
        conversation, gateway = _conversation([
            call_result(CONSENT_TOOL, {"tool_to_call": "get_calendar_events", "reason": "May I check your calendar?"}),
            text_result("You have a design review at 9."),
        ])

        first = conversation.send("what's on my calendar")
        assert first.requires_consent
        consent_message = conversation.pending_consent()
        assert consent_message is conversation.messages[-1]

        response = conversation.approve()

        assert response.text == "You have a design review at 9."
        assert consent_message.consent_granted
        assert consent_message.text.endswith(CONSENT_ACKNOWLEDGEMENT)
        assert conversation.pending_consent() is None
        assert conversation.messages[-1].text == "You have a design review at 9."

        fed = gateway.generate_calls[-1]["contents"][-1].parts[0].function_response
        assert fed["granted"] is True
        assert fed["result"][0]["title"] == "Design Review"

    def test_approve_without_pending_request(self):
        conversation, _ = _conversation([text_result("Hi!")])
        conversation.send("hello")
        with pytest.raises(ValueError):
            conversation.approve()

    def test_cannot_approve_twice(self):
        conversation, _ = _conversation([
            call_result(CONSENT_TOOL, {"tool_to_call": "get_calendar_events", "reason": "May I?"}),
            text_result("Done."),
        ])
        conversation.send("what's on my calendar")
        message = conversation.pending_consent()
        conversation.approve(message)
        with pytest.raises(ValueError):
            conversation.approve(message)


class TestIntegrationsAndVideo:
    def test_toggle_account(self):
        conversation, _ = _conversation([text_result("ok")])
        conversation.toggle_integration("email", "work@example.com")
        email = next(s for s in conversation.integrations if s.id == "email")
        assert email.connected
        assert email.connected_account_ids() == ["work@example.com"]

    def test_refresh_videos(self):
        video = GeneratedVideo(state=VideoState.GENERATING, operation_name="operations/9")
        conversation, gateway = _conversation(
            [call_result("generate_video", {"prompt": "waves"}), text_result("Rendering...")],
            media=video,
        )
        conversation.send("make a video of waves")

        gateway.video_state = VideoState.GENERATING
        assert conversation.refresh_videos() == 1

        gateway.video_state = VideoState.READY
        assert conversation.refresh_videos() == 0
        assert conversation.messages[-1].generated_video.url == "https://video.example/v.mp4"
        assert conversation.refresh_videos() == 0
        assert gateway.poll_calls == ["operations/9", "operations/9"]
