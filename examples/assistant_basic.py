#!/usr/bin/env python3
"""
Basic Assistant Example

Runs a few turns against Gemini, including a permission request for
personal data, and speaks the plain replies.

Requirements:
    pip install jarvis-assistant
    export GEMINI_API_KEY=...

Usage:
    python assistant_basic.py
"""

import logging

from jarvis_assistant.assistant import Conversation, Orchestrator, SpeechPipeline, build_tool_registry, create_gateway
from jarvis_assistant.assistant.audio_io import AudioOutput
from jarvis_assistant.assistant.demo_data import SERVICE_SUMMARIES, demo_integrations
from jarvis_assistant.config import Config


def main():
    logging.basicConfig(level=logging.INFO)
    config = Config()

    gateway = create_gateway("gemini", timeout_s=config.gateway.request_timeout_s)
    orchestrator = Orchestrator(
        gateway,
        build_tool_registry(),
        config=config,
        service_summaries=SERVICE_SUMMARIES,
    )
    speech = SpeechPipeline(gateway, AudioOutput(), voice=config.speech.voice)
    conversation = Conversation(orchestrator, speech=speech, integrations=demo_integrations())

    # Email accounts start disconnected
    conversation.toggle_integration("email", "personal@example.com")

    try:
        for prompt in ("Hi!", "What does my day look like?", "Do I have any new emails?"):
            print(f"\nYou: {prompt}")
            response = conversation.send(prompt)
            print(f"Assistant: {response.text}")

            if response.requires_consent:
                print(f"(approving {response.action.tool_name})")
                response = conversation.approve()
                print(f"Assistant: {response.text}")

            if conversation.last_speech_job is not None:
                conversation.last_speech_job.wait()
    finally:
        conversation.close()


if __name__ == "__main__":
    main()
