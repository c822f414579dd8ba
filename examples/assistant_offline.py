#!/usr/bin/env python3
"""
Offline Assistant Example

Uses the rule-based gateway: no API key, no network, no audio device.
Handy for trying the conversation flow and the integrations model.

Usage:
    python assistant_offline.py
"""

from jarvis_assistant.assistant import Conversation, Orchestrator, build_tool_registry, create_gateway
from jarvis_assistant.assistant.context import build_context_graph
from jarvis_assistant.assistant.demo_data import SERVICE_SUMMARIES, demo_integrations
from jarvis_assistant.config import Config, GatewayConfig


def main():
    config = Config(gateway=GatewayConfig(backend="simple"))
    orchestrator = Orchestrator(
        create_gateway("simple"),
        build_tool_registry(),
        config=config,
        service_summaries=SERVICE_SUMMARIES,
    )
    conversation = Conversation(orchestrator, integrations=demo_integrations())

    conversation.toggle_integration("smarthome")
    print(build_context_graph(conversation.integrations, service_summaries=SERVICE_SUMMARIES))

    for prompt in ("hello", "tell me a joke", "thanks, bye"):
        response = conversation.send(prompt)
        print(f"You: {prompt}\nAssistant: {response.text}\n")


if __name__ == "__main__":
    main()
