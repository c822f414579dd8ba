"""
Persona and context graph for the system instruction.

The context graph is a plain-text snapshot of what the assistant knows about
the user right now: connected services, connected email accounts and learned
facts. It is rebuilt on every turn from the host's current state.
"""

import logging
from dataclasses import replace
from typing import Mapping, Optional, Sequence

from jarvis_assistant.assistant.tools import CONSENT_TOOL, MEMORY_TOOL
from jarvis_assistant.assistant.types import ServiceConnection

logger = logging.getLogger(__name__)

DEFAULT_ASSISTANT_NAME = "J.A.R.V.I.S."

PERSONA_INSTRUCTIONS = """\
You are {name}, a personal AI assistant. You are calm, intelligent and proactive, \
and a patient guide who can explain any topic in simple, everyday language.

When explaining a topic:
1. Open with a simple analogy or real-world comparison.
2. Use short sentences and explain any jargon right away.
3. Structure longer answers with markdown bullet points or bold text.
4. Finish a main explanation by checking that it made sense.

As a personal assistant you help the user organize their mind, work and wellbeing:
- Anticipate needs using the context graph below, and prefer acting through your tools.
- Before accessing personal data from any service such as email or calendar, you MUST \
call the '{consent_tool}' tool to ask for consent for that specific action, saying what \
you want to do and why.
- If a service needed for a request is not connected, tell the user and suggest connecting it.
- If several accounts are connected for a service, ask which one to use.
- When the user shares a lasting preference or personal detail, store it with '{memory_tool}'.
- Refer to yourself as "I" or "{name}". Never say you are a large language model.
- Never give financial, medical or legal advice.
"""

_GRAPH_HEADER = (
    "Here is a snapshot of the user's current context graph. "
    "Use this information to answer the user's prompts realistically.\n"
)

_NO_SERVICES = (
    "- No personal services are currently connected. Tell the user if they ask "
    "something that needs personal data.\n"
)


def build_persona(name: str = DEFAULT_ASSISTANT_NAME) -> str:
    return PERSONA_INSTRUCTIONS.format(name=name, consent_tool=CONSENT_TOOL, memory_tool=MEMORY_TOOL)


def build_context_graph(
    connections: Sequence[ServiceConnection],
    memory: Sequence[str] = (),
    service_summaries: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Render the context graph for the current turn.

    Args:
        connections: Current integrations
        memory: Facts learned in earlier turns
        service_summaries: Per-service text shown when that service is connected

    Returns:
        Multi-line text block
    """
    service_summaries = service_summaries or {}
    graph = _GRAPH_HEADER

    connected = [c for c in connections if c.connected]
    if not connected:
        graph += _NO_SERVICES

    for service in connected:
        if service.accounts:
            account_ids = service.connected_account_ids()
            if account_ids:
                graph += f"- Connected {service.name or service.id} accounts: {', '.join(account_ids)}\n"
        elif service.id in service_summaries:
            graph += service_summaries[service.id]

    if memory:
        graph += "- Things you have learned about the user:\n"
        for fact in memory:
            graph += f"  - {fact}\n"

    return graph


def build_system_instruction(
    connections: Sequence[ServiceConnection],
    memory: Sequence[str] = (),
    service_summaries: Optional[Mapping[str, str]] = None,
    assistant_name: str = DEFAULT_ASSISTANT_NAME,
) -> str:
    """Persona followed by the context graph."""
    return f"{build_persona(assistant_name)}\n{build_context_graph(connections, memory, service_summaries)}"


def toggle_integration(
    integrations: Sequence[ServiceConnection],
    service_id: str,
    account_id: Optional[str] = None,
) -> list[ServiceConnection]:
    """Return a new integrations list with one service or account toggled.

    Toggling an account recomputes the service's ``connected`` flag as
    "any account connected". Unknown ids leave the list unchanged.
    """
    updated: list[ServiceConnection] = []
    for service in integrations:
        if service.id != service_id:
            updated.append(service)
            continue

        if account_id is not None and service.accounts:
            accounts = tuple(
                replace(a, connected=not a.connected) if a.id == account_id else a
                for a in service.accounts
            )
            service = replace(service, accounts=accounts, connected=any(a.connected for a in accounts))
        else:
            service = replace(service, connected=not service.connected)

        logger.info("Integration %s%s -> %s", service_id,
                    f"/{account_id}" if account_id else "", "on" if service.connected else "off")
        updated.append(service)
    return updated
