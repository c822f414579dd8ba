"""
Text processing utilities for speech output.

Assistant replies are written as light markdown; these helpers turn them
into speakable sentence chunks.
"""

import re

_EMPHASIS = re.compile(r"[*_`]")
_HEADING = re.compile(r"^\s*#{1,6}\s*", re.MULTILINE)
_SENTENCE = re.compile(r"[^.!?]+[.!?]+|[^.!?]+$")


def strip_emphasis(text: str) -> str:
    """
    Remove markdown emphasis markup.

    Drops ``*``, ``_`` and backticks, and heading hashes at line starts.
    """
    text = _HEADING.sub("", text)
    return _EMPHASIS.sub("", text)


def split_utterances(text: str) -> list[str]:
    """
    Split text into sentence chunks for streaming synthesis.

    Sentence-ending punctuation (``.``, ``!``, ``?``) stays with its chunk.
    A trailing fragment without punctuation is kept as the last chunk.

    Args:
        text: Text to split

    Returns:
        Non-empty chunks in reading order
    """
    # Normalize: add space after sentence-ending punctuation if missing
    text = re.sub(r"([.!?])([A-Z])", r"\1 \2", text)

    chunks = []
    # Line breaks end a chunk too (list items rarely carry punctuation)
    for line in text.splitlines():
        for match in _SENTENCE.finditer(line):
            chunk = " ".join(match.group(0).split()).lstrip("-• ")
            if chunk and re.search(r"\w", chunk):
                chunks.append(chunk)
    return chunks


def clean_text_for_speech(text: str) -> str:
    """
    Clean text for better TTS output.

    Args:
        text: Raw text

    Returns:
        Cleaned text suitable for speech synthesis
    """
    # Remove URLs
    text = re.sub(r"https?://\S+", "", text)

    # Remove emoji and pictographs
    text = re.sub(r"[\U0001F000-\U0001FAFF\u2600-\u27BF\uFE0F]", "", text)

    # Normalize whitespace within lines, keep line breaks as sentence hints
    text = re.sub(r"[ \t]+", " ", text)

    return text.strip()


def prepare_for_speech(text: str) -> list[str]:
    """Strip markup, clean, and split into chunks."""
    return split_utterances(clean_text_for_speech(strip_emphasis(text)))
