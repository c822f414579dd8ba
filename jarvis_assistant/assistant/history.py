"""
Conversation history -> wire format.

Applies the context window, makes the history start on a user turn and
rebuilds consent requests as tool invocations so the backend sees every
function call paired with a response.
"""

import logging
from typing import Sequence

from jarvis_assistant.assistant.llm import Content, Part
from jarvis_assistant.assistant.tools import CONSENT_TOOL
from jarvis_assistant.assistant.types import Author, ChatMessage

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 30


def consent_call_id(position: int) -> str:
    """Stable call id for the consent request at ``position`` in the output."""
    return f"consent_{position}"


def _user_content(message: ChatMessage) -> Content | None:
    parts: list[Part] = []
    if message.text:
        parts.append(Part.from_text(message.text))
    if message.media is not None:
        parts.append(Part.from_media(message.media.data, message.media.mime_type))
    if not parts:
        return None
    return Content(role="user", parts=parts)


def format_history(
    messages: Sequence[ChatMessage],
    window: int = HISTORY_WINDOW,
    leave_last_consent_open: bool = False,
) -> list[Content]:
    """
    Convert a session into the turn sequence the gateway expects.

    Args:
        messages: Session messages, oldest first
        window: Number of most recent messages to keep
        leave_last_consent_open: Leave a consent request that closes the
            session unanswered, for a caller about to answer it itself.
            Otherwise every request is answered with its granted state.

    Returns:
        List of Content, oldest first. Malformed messages are omitted.
    """
    retained = list(messages[-window:]) if window > 0 else []
    while retained and getattr(retained[0], "author", None) is Author.AI:
        retained.pop(0)

    contents: list[Content] = []
    last_index = len(retained) - 1
    for index, message in enumerate(retained):
        try:
            if message.author is Author.USER:
                content = _user_content(message)
                if content is not None:
                    contents.append(content)
                continue

            if message.requires_consent and message.action is not None:
                call_id = consent_call_id(len(contents))
                contents.append(Content(role="model", parts=[Part.from_function_call(
                    CONSENT_TOOL,
                    {
                        "reason": message.text,
                        "tool_to_call": message.action.tool_name,
                        "tool_args": dict(message.action.tool_args),
                    },
                    call_id=call_id,
                )]))
                if not (leave_last_consent_open and index == last_index):
                    contents.append(Content(role="user", parts=[Part.from_function_response(
                        CONSENT_TOOL, {"granted": bool(message.consent_granted)}, call_id=call_id,
                    )]))
                continue

            if message.text:
                contents.append(Content(role="model", parts=[Part.from_text(message.text)]))
        except (AttributeError, TypeError) as e:
            logger.debug("Skipping malformed history message: %s", e)

    return contents
