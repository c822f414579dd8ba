"""Append-only store of facts learned about the user."""

import json
import logging
import threading
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class MemoryStore:
    """Learned facts, optionally persisted to a JSON file."""

    def __init__(self, path: Optional[str | Path] = None, facts: Optional[Iterable[str]] = None):
        self._path = Path(path).expanduser() if path else None
        self._lock = threading.Lock()
        self._facts: list[str] = list(facts or [])

        if self._path is not None and self._path.exists():
            try:
                loaded = json.loads(self._path.read_text())
                if isinstance(loaded, list):
                    self._facts = [str(f) for f in loaded] + self._facts
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Could not read memory file %s: %s", self._path, e)

    def facts(self) -> list[str]:
        """Snapshot of all facts, oldest first."""
        with self._lock:
            return list(self._facts)

    def extend(self, facts: Iterable[str]) -> None:
        """Append new facts, skipping blanks and exact duplicates."""
        with self._lock:
            added = False
            for fact in facts:
                fact = fact.strip()
                if fact and fact not in self._facts:
                    self._facts.append(fact)
                    added = True
            if added:
                self._save()

    def add(self, fact: str) -> None:
        self.extend([fact])

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(self._facts, indent=2))
        except OSError as e:
            logger.error("Could not write memory file %s: %s", self._path, e)

    def __len__(self) -> int:
        return len(self._facts)
