"""
Builtin tools for the assistant.

Personal-data tools are registered as closures over the data sources found in
the context dict, following the same ``register_*(registry, context)`` pattern
external tool plugins use. Tools the orchestrator handles itself (consent
gate, memory, generation, grounding, location) are declaration-only.

Context dict keys consumed by builtin tools:

    emails          callable(list[str])     Fetch emails for account ids
    calendar        callable()              Today's calendar events
    wellbeing       callable()              Latest wearable data
    smart_home      callable()              Smart-home device status

Missing keys fall back to :mod:`jarvis_assistant.assistant.demo_data`.
"""

import logging
from typing import Annotated, Optional

from jarvis_assistant.assistant import demo_data
from jarvis_assistant.assistant.tools import (
    CONSENT_TOOL,
    IMAGE_TOOL,
    LOCATION_TOOL,
    MAPS_SEARCH_TOOL,
    MEMORY_TOOL,
    VIDEO_TOOL,
    WEB_SEARCH_TOOL,
    ToolRegistry,
)

logger = logging.getLogger(__name__)


def register_builtin_tools(registry: ToolRegistry, context: Optional[dict] = None) -> None:
    """Register all builtin tools with the given registry.

    Args:
        registry: ToolRegistry instance to register tools on.
        context: Dict of data sources that tools need.
    """
    context = context or {}
    _register_personal_data_tools(registry, context)
    declare_orchestrator_tools(registry)


def build_tool_registry(context: Optional[dict] = None, external_tools: Optional[list[str]] = None) -> ToolRegistry:
    """Build and freeze the tool catalog used by the orchestrator.

    Args:
        context: Data sources for the builtin tools.
        external_tools: Importable module paths exposing ``register_tools(registry, context)``.
    """
    registry = ToolRegistry()
    register_builtin_tools(registry, context)

    if external_tools:
        import importlib

        for module_path in external_tools:
            try:
                mod = importlib.import_module(module_path)
                mod.register_tools(registry, context or {})
                logger.info("Loaded external tools from %s", module_path)
            except Exception as e:
                logger.error("Failed to load external tools from %s: %s", module_path, e)

    return registry.freeze()


# ---------------------------------------------------------------------------
# Personal data tools (gated by request_permission in the persona)
# ---------------------------------------------------------------------------

def _register_personal_data_tools(registry: ToolRegistry, context: dict) -> None:
    fetch_emails = context.get("emails", demo_data.get_emails)
    fetch_calendar = context.get("calendar", demo_data.get_calendar_events)
    fetch_wellbeing = context.get("wellbeing", demo_data.get_wellbeing_data)
    fetch_smart_home = context.get("smart_home", demo_data.get_smart_home_status)

    @registry.register(
        "Fetches the user's unread emails from their connected accounts to summarize "
        "or answer questions about them.",
        scope=("account_ids", "email"),
    )
    def get_emails(
        account_ids: Annotated[Optional[list[str]], (
            "Optional. The specific email accounts to check (e.g. ['personal@example.com']). "
            "If not provided, all connected accounts are checked."
        )] = None,
    ):
        account_ids = list(account_ids or [])
        logger.info("Tool called: get_emails(%s)", ", ".join(account_ids))
        return fetch_emails(account_ids)

    @registry.register("Fetches the user's upcoming calendar events for today.")
    def get_calendar_events():
        logger.info("Tool called: get_calendar_events()")
        return fetch_calendar()

    @registry.register("Fetches the user's latest wellbeing and health data from their wearable device.")
    def get_wellbeing_data():
        logger.info("Tool called: get_wellbeing_data()")
        return fetch_wellbeing()

    @registry.register("Fetches the current status of the user's connected smart home devices.")
    def get_smart_home_status():
        logger.info("Tool called: get_smart_home_status()")
        return fetch_smart_home()


# ---------------------------------------------------------------------------
# Declaration-only tools
# ---------------------------------------------------------------------------

def declare_orchestrator_tools(registry: ToolRegistry) -> None:
    """Declare the tools whose calls the orchestrator handles itself."""
    registry.declare(
        CONSENT_TOOL,
        "Must be called before using any other tool that accesses the user's private data. "
        "Explain why you need access and which tool you intend to use.",
        {
            "tool_to_call": {
                "type": "string",
                "description": "The tool to use after permission is granted (e.g. 'get_emails').",
            },
            "tool_args": {
                "type": "object",
                "description": "The arguments that will be passed to that tool.",
            },
            "reason": {
                "type": "string",
                "description": "A friendly, user-facing explanation of why access is needed.",
            },
        },
        required=["tool_to_call", "reason"],
    )
    registry.declare(
        MEMORY_TOOL,
        "Remember a lasting fact about the user (preferences, names, routines) for future conversations.",
        {"fact": {"type": "string", "description": "The fact to remember, as a short sentence."}},
        required=["fact"],
    )
    registry.declare(
        IMAGE_TOOL,
        "Generate an image from a text description when the user asks for a picture, drawing or image.",
        {
            "prompt": {"type": "string", "description": "Detailed description of the image."},
            "aspect_ratio": {"type": "string", "description": "Optional aspect ratio such as '1:1' or '16:9'."},
        },
        required=["prompt"],
    )
    registry.declare(
        VIDEO_TOOL,
        "Generate a short video from a text description when the user asks for a video or animation.",
        {
            "prompt": {"type": "string", "description": "Detailed description of the video."},
            "aspect_ratio": {"type": "string", "description": "Optional aspect ratio, '16:9' or '9:16'."},
        },
        required=["prompt"],
    )
    registry.declare(
        WEB_SEARCH_TOOL,
        "Search the web for recent events, news, or facts that need up-to-date information.",
        {"query": {"type": "string", "description": "The search query."}},
        required=["query"],
    )
    registry.declare(
        MAPS_SEARCH_TOOL,
        "Find places, restaurants, directions or anything location based.",
        {"query": {"type": "string", "description": "What to look for, e.g. 'coffee shops near me'."}},
        required=["query"],
    )
    registry.declare(
        LOCATION_TOOL,
        "Get the user's current location (asks the device for location permission).",
    )
