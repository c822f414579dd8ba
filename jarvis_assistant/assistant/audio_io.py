"""
Audio output for spoken responses.

Plays 16-bit PCM from the speech model through sounddevice. Playback is
blocking per clip and can be interrupted from another thread with
:meth:`AudioOutput.stop`.
"""

import logging
import threading
from typing import Callable, Optional

import numpy as np

from jarvis_assistant.assistant.types import SpeechAudio

logger = logging.getLogger(__name__)


def pcm16_to_float(pcm: bytes) -> np.ndarray:
    """Convert little-endian 16-bit PCM bytes to float32 samples in [-1, 1]."""
    if len(pcm) % 2:
        pcm = pcm[:-1]
    return np.frombuffer(pcm, dtype="<i2").astype(np.float32) / 32768.0


class AudioOutput:
    """
    Speaker output, one clip at a time.

    Only one clip is ever audible: the speech pipeline plays chunks
    sequentially and calls :meth:`stop` to preempt.
    """

    def __init__(self, sample_rate: int = 24000, device: Optional[int] = None):
        """
        Initialize audio output.

        Args:
            sample_rate: Default sample rate for playback
            device: Output device index (None for default)
        """
        self.sample_rate = sample_rate
        self.device = device
        self._lock = threading.Lock()
        self._playing = False

        try:
            import sounddevice as sd
        except ImportError as e:
            raise ImportError(
                "sounddevice not installed. "
                "Install with: pip install sounddevice"
            ) from e
        self._sd = sd

        try:
            if self.device is None:
                device_info = sd.query_devices(kind="output")
            else:
                device_info = sd.query_devices(self.device)
            logger.info("Audio output: %s", device_info["name"])
        except Exception as e:
            logger.warning("Could not query output device: %s", e)

    def play(self, audio: SpeechAudio, is_current: Optional[Callable[[], bool]] = None) -> None:
        """
        Play a clip and wait for completion.

        Args:
            audio: Clip to play
            is_current: Checked under the output lock right before playback
                starts; the clip is skipped when it returns False

        Returns early if :meth:`stop` is called meanwhile.
        """
        samples = pcm16_to_float(audio.pcm)
        if samples.size == 0:
            return

        # Check and start under one lock so a concurrent stop() either
        # prevents playback or interrupts it
        with self._lock:
            if is_current is not None and not is_current():
                logger.debug("Skipping superseded clip")
                return
            self._playing = True
            try:
                self._sd.play(samples, audio.sample_rate or self.sample_rate, device=self.device)
            except Exception:
                self._playing = False
                raise
        try:
            self._sd.wait()
        finally:
            with self._lock:
                self._playing = False

    def stop(self) -> None:
        """Interrupt the clip currently playing, if any."""
        with self._lock:
            if self._playing:
                self._sd.stop()

    def is_playing(self) -> bool:
        with self._lock:
            return self._playing
