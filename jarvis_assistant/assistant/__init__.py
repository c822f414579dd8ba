"""
Conversational core: tool orchestration loop and speech pipeline.
"""

from jarvis_assistant.assistant.builtin_tools import build_tool_registry
from jarvis_assistant.assistant.conversation import Conversation
from jarvis_assistant.assistant.errors import ErrorKind, GatewayError
from jarvis_assistant.assistant.llm import ModelGateway, create_gateway
from jarvis_assistant.assistant.memory import MemoryStore
from jarvis_assistant.assistant.orchestrator import Orchestrator, OrchestratorState
from jarvis_assistant.assistant.router import ModelTier, select_model
from jarvis_assistant.assistant.speech import SpeechPipeline
from jarvis_assistant.assistant.tools import ToolKind, ToolRegistry
from jarvis_assistant.assistant.types import AiResponse, ChatMessage, ConversationTurn

__all__ = [
    "AiResponse",
    "ChatMessage",
    "Conversation",
    "ConversationTurn",
    "ErrorKind",
    "GatewayError",
    "MemoryStore",
    "ModelGateway",
    "ModelTier",
    "Orchestrator",
    "OrchestratorState",
    "SpeechPipeline",
    "ToolKind",
    "ToolRegistry",
    "build_tool_registry",
    "create_gateway",
    "select_model",
]
