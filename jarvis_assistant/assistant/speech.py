"""
Speech pipeline - chunked, cancellable speech for assistant replies.

``speak()`` returns immediately. A single worker thread takes jobs off a
queue and, chunk by chunk, synthesizes and then plays. Every ``speak()`` or
``stop()`` bumps a generation counter; the worker checks it before each
synthesis attempt and again as playback starts, so only the newest job is
ever audible. Retry backoff for a superseded job is cut short.
"""

import logging
import queue
import threading
from typing import Callable, Optional

from jarvis_assistant.assistant.audio_io import AudioOutput
from jarvis_assistant.assistant.llm import ModelGateway
from jarvis_assistant.assistant.retry import with_retry
from jarvis_assistant.assistant.tts_cache import TTSCache
from jarvis_assistant.assistant.types import SpeechAudio, SpeechJob
from jarvis_assistant.core.text import prepare_for_speech

logger = logging.getLogger(__name__)


class SpeechCancelled(Exception):
    """Raised inside the worker when its job has been superseded."""


class SpeechPipeline:
    """
    Speaks text through a model gateway and an audio output.

    Usage:
        pipeline = SpeechPipeline(gateway, AudioOutput())
        job = pipeline.speak("Hello there. How can I help?")
        job.wait()
        pipeline.close()
    """

    def __init__(
        self,
        gateway: ModelGateway,
        output: AudioOutput,
        voice: str = "Kore",
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        cache: Optional[TTSCache] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.gateway = gateway
        self.output = output
        self.voice = voice
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.cache = cache if cache is not None else TTSCache()

        self._lock = threading.Lock()
        self._generation = 0
        # Set by speak()/stop(); wakes the worker out of retry backoff
        self._interrupted = threading.Event()
        self._sleep = sleep if sleep is not None else self._interrupted.wait
        self._queue: queue.Queue[Optional[SpeechJob]] = queue.Queue()
        self._closed = False
        self._thread = threading.Thread(target=self._worker, name="speech-pipeline", daemon=True)
        self._thread.start()

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def _is_current(self, job: SpeechJob) -> bool:
        with self._lock:
            return job.generation_id == self._generation

    def speak(self, text: str) -> SpeechJob:
        """
        Queue text for speech, preempting anything currently being spoken.

        Args:
            text: Reply text, markdown allowed

        Returns:
            SpeechJob; ``job.wait()`` blocks until it finished or was superseded
        """
        chunks = prepare_for_speech(text)
        with self._lock:
            if self._closed:
                raise RuntimeError("Speech pipeline is closed")
            self._generation += 1
            job = SpeechJob(generation_id=self._generation, chunks=chunks)

        self._interrupted.set()
        self.output.stop()

        if not chunks:
            job.mark_finished()
            return job

        logger.debug("Speech job %d: %d chunks", job.generation_id, len(chunks))
        self._queue.put(job)
        return job

    def stop(self) -> None:
        """Silence current speech and drop any queued chunks."""
        with self._lock:
            self._generation += 1
        self._interrupted.set()
        self.output.stop()

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Stop speaking and shut the worker thread down."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.stop()
        self._queue.put(None)
        self._thread.join(timeout=timeout)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        while True:
            job = self._queue.get()
            if job is None:
                break
            try:
                self._run(job)
            except SpeechCancelled:
                logger.debug("Speech job %d superseded during synthesis", job.generation_id)
            except Exception as e:
                logger.error("Speech job %d failed: %s", job.generation_id, e)
            finally:
                job.mark_finished()

    def _run(self, job: SpeechJob) -> None:
        # Clear before the first generation check; a later speak()/stop() sets it again
        self._interrupted.clear()

        def is_current() -> bool:
            return self._is_current(job)

        for index, chunk in enumerate(job.chunks):
            if not is_current():
                logger.debug("Speech job %d superseded at chunk %d", job.generation_id, index)
                return

            audio = self._synthesize(chunk, is_current)

            if audio is not None:
                try:
                    self.output.play(audio, is_current=is_current)
                except Exception as e:
                    logger.error("Playback failed for chunk %d: %s", index, e)

            if not is_current():
                logger.debug("Speech job %d superseded at chunk %d", job.generation_id, index)
                return
            job.cursor = index + 1

    def _synthesize(self, chunk: str, is_current: Callable[[], bool]) -> Optional[SpeechAudio]:
        cached = self.cache.get(chunk, self.voice)
        if cached is not None:
            return cached

        def attempt() -> SpeechAudio:
            if not is_current():
                raise SpeechCancelled(chunk)
            return self.gateway.synthesize_speech(chunk, self.voice)

        try:
            audio = with_retry(
                attempt,
                max_retries=self.max_retries,
                base_delay_ms=self.base_delay_ms,
                sleep=self._sleep,
            )
        except SpeechCancelled:
            raise
        except Exception as e:
            logger.error("Speech synthesis failed for %r: %s", chunk[:40], e)
            return None
        self.cache.put(chunk, self.voice, audio)
        return audio
