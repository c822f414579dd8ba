"""LRU cache for synthesized speech, avoids re-synthesizing repeated phrases."""

import hashlib
import threading
from collections import OrderedDict
from typing import Optional

from jarvis_assistant.assistant.types import SpeechAudio


class TTSCache:
    """Thread-safe LRU cache of synthesized chunks keyed by text and voice."""

    def __init__(self, max_entries: int = 32, max_text_len: int = 200):
        self._max_entries = max_entries
        self._max_text_len = max_text_len
        self._cache: OrderedDict[str, SpeechAudio] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _key(text: str, voice: str) -> str:
        raw = f"{text}|{voice}"
        return hashlib.md5(raw.encode()).hexdigest()

    def get(self, text: str, voice: str) -> Optional[SpeechAudio]:
        if self._max_entries <= 0 or len(text) > self._max_text_len:
            return None
        key = self._key(text, voice)
        with self._lock:
            audio = self._cache.get(key)
            if audio is not None:
                self._cache.move_to_end(key)
            return audio

    def put(self, text: str, voice: str, audio: SpeechAudio) -> None:
        if self._max_entries <= 0 or len(text) > self._max_text_len:
            return
        key = self._key(text, voice)
        with self._lock:
            self._cache[key] = audio
            self._cache.move_to_end(key)
            while len(self._cache) > self._max_entries:
                self._cache.popitem(last=False)

    def __len__(self) -> int:
        return len(self._cache)
