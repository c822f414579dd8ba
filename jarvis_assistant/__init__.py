"""
Jarvis Assistant - tool-using conversational agent with streamed speech.
"""

# Suppress noisy HTTP client logging for cleaner output
import logging
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("google_genai").setLevel(logging.WARNING)

__version__ = "0.1.0"

from jarvis_assistant.assistant.conversation import Conversation
from jarvis_assistant.assistant.orchestrator import Orchestrator

__all__ = ["Conversation", "Orchestrator", "__version__"]
