"""Shared utilities."""

from jarvis_assistant.core.text import clean_text_for_speech, prepare_for_speech, split_utterances, strip_emphasis

__all__ = ["clean_text_for_speech", "prepare_for_speech", "split_utterances", "strip_emphasis"]
