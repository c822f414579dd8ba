"""Tests for the speech pipeline, TTS cache and audio helpers."""

import sys
import threading
from types import SimpleNamespace

import numpy as np
import pytest

from fakes import FakeGateway, FakeOutput

from jarvis_assistant.assistant.audio_io import AudioOutput, pcm16_to_float
from jarvis_assistant.assistant.errors import ErrorKind, GatewayError
from jarvis_assistant.assistant.speech import SpeechPipeline
from jarvis_assistant.assistant.tts_cache import TTSCache
from jarvis_assistant.assistant.types import SpeechAudio


@pytest.fixture
def events():
    return []


def _pipeline(gateway, output, **kwargs):
    return SpeechPipeline(gateway, output, sleep=lambda s: None, **kwargs)


class TestSpeechPipeline:
    def test_chunks_play_in_order(self, events):
        gateway = FakeGateway(events=events)
        output = FakeOutput(events=events)
        pipeline = _pipeline(gateway, output)
        try:
            job = pipeline.speak("A. B! C?")
            assert job.wait(timeout=5)
        finally:
            pipeline.close()

        assert job.chunks == ["A.", "B!", "C?"]
        assert events == [
            ("synth", "A."), ("play", "A."), ("done", "A."),
            ("synth", "B!"), ("play", "B!"), ("done", "B!"),
            ("synth", "C?"), ("play", "C?"), ("done", "C?"),
        ]
        assert job.cursor == 3

    def test_markup_is_not_spoken(self, events):
        gateway = FakeGateway(events=events)
        output = FakeOutput(events=events)
        pipeline = _pipeline(gateway, output)
        try:
            pipeline.speak("**Good news:** your `build` passed!").wait(timeout=5)
        finally:
            pipeline.close()

        assert output.played() == ["Good news: your build passed!"]

    def test_new_speech_cancels_old(self, events):
        gateway = FakeGateway(events=events)
        output = FakeOutput(events=events, block_first=True)
        pipeline = _pipeline(gateway, output)
        try:
            first = pipeline.speak("One. Two. Three.")
            assert output.started.wait(timeout=5)

            second = pipeline.speak("Four.")
            assert second.wait(timeout=5)
            assert first.wait(timeout=5)
        finally:
            pipeline.close()

        assert output.played() == ["One.", "Four."]
        assert "Two." not in gateway.speech_calls
        assert first.cursor <= 1
        assert second.generation_id > first.generation_id

    def test_stop_silences_current_job(self, events):
        gateway = FakeGateway(events=events)
        output = FakeOutput(events=events, block_first=True)
        pipeline = _pipeline(gateway, output)
        try:
            job = pipeline.speak("One. Two.")
            assert output.started.wait(timeout=5)
            pipeline.stop()
            assert job.wait(timeout=5)
        finally:
            pipeline.close()

        assert output.played() == ["One."]

    def test_failed_chunk_is_skipped(self, events):
        gateway = FakeGateway(events=events, failing_chunks={"B!"})
        output = FakeOutput(events=events)
        pipeline = _pipeline(gateway, output)
        try:
            job = pipeline.speak("A. B! C?")
            assert job.wait(timeout=5)
        finally:
            pipeline.close()

        assert output.played() == ["A.", "C?"]

    def test_transient_synthesis_errors_are_retried(self, events):
        class FlakySpeech(FakeGateway):
            def __init__(self, **kwargs):
                super().__init__(**kwargs)
                self.failures = 2

            def synthesize_speech(self, text, voice):
                if self.failures:
                    self.failures -= 1
                    raise GatewayError("busy", ErrorKind.OVERLOADED, status=503)
                return super().synthesize_speech(text, voice)

        output = FakeOutput(events=events)
        pipeline = _pipeline(FlakySpeech(events=events), output)
        try:
            pipeline.speak("Hello.").wait(timeout=5)
        finally:
            pipeline.close()

        assert output.played() == ["Hello."]

    def test_superseded_job_stops_retrying(self, events):
        """A new speak() ends the old chunk's retries instead of waiting them out."""
        failed_once = threading.Event()
        resume = threading.Event()
        old_calls = []

        class BusyForOld(FakeGateway):
            def synthesize_speech(self, text, voice):
                if text == "Old.":
                    old_calls.append(text)
                    failed_once.set()
                    raise GatewayError("busy", ErrorKind.OVERLOADED, status=503)
                return super().synthesize_speech(text, voice)

        output = FakeOutput(events=events)
        pipeline = SpeechPipeline(
            BusyForOld(events=events), output, max_retries=5, sleep=lambda s: resume.wait(timeout=5),
        )
        try:
            old = pipeline.speak("Old.")
            assert failed_once.wait(timeout=5)
            new = pipeline.speak("New.")
            resume.set()
            assert new.wait(timeout=5)
            assert old.wait(timeout=5)
        finally:
            pipeline.close()

        assert old_calls == ["Old."]
        assert output.played() == ["New."]

    def test_default_backoff_is_cut_short_by_speak(self, events):
        class AlwaysBusy(FakeGateway):
            def synthesize_speech(self, text, voice):
                if text == "Old.":
                    events.append(("busy", text))
                    raise GatewayError("busy", ErrorKind.OVERLOADED, status=503)
                return super().synthesize_speech(text, voice)

        output = FakeOutput(events=events)
        # Backoff of minutes per retry; only an interrupt lets the new job through
        pipeline = SpeechPipeline(AlwaysBusy(events=events), output, max_retries=3, base_delay_ms=600_000)
        try:
            pipeline.speak("Old.")
            new = pipeline.speak("New.")
            assert new.wait(timeout=5)
        finally:
            pipeline.close()

        assert output.played() == ["New."]
        assert events.count(("busy", "Old.")) <= 1

    def test_stop_racing_playback_start_is_silent(self, events):
        """A stop() landing after the last check but before playback still wins."""
        holder = {}
        output = FakeOutput(events=events, before_play=lambda: holder["pipeline"].stop())
        gateway = FakeGateway(events=events)
        pipeline = _pipeline(gateway, output)
        holder["pipeline"] = pipeline
        try:
            job = pipeline.speak("One. Two.")
            assert job.wait(timeout=5)
        finally:
            pipeline.close()

        assert output.played() == []
        assert ("skip", "One.") in events
        assert gateway.speech_calls == ["One."]
        assert job.cursor == 0

    def test_repeated_chunks_come_from_cache(self, events):
        gateway = FakeGateway(events=events)
        output = FakeOutput(events=events)
        pipeline = _pipeline(gateway, output, cache=TTSCache(max_entries=4))
        try:
            pipeline.speak("Hi. Hi.").wait(timeout=5)
        finally:
            pipeline.close()

        assert gateway.speech_calls == ["Hi."]
        assert output.played() == ["Hi.", "Hi."]

    def test_voice_is_passed_through(self):
        voices = []

        class VoiceGateway(FakeGateway):
            def synthesize_speech(self, text, voice):
                voices.append(voice)
                return super().synthesize_speech(text, voice)

        pipeline = _pipeline(VoiceGateway(), FakeOutput(), voice="Puck")
        try:
            pipeline.speak("Hello.").wait(timeout=5)
        finally:
            pipeline.close()
        assert voices == ["Puck"]

    def test_empty_text_finishes_immediately(self):
        pipeline = _pipeline(FakeGateway(), FakeOutput())
        try:
            job = pipeline.speak("  ** ")
            assert job.finished
            assert job.chunks == []
        finally:
            pipeline.close()

    def test_speak_after_close_fails(self):
        pipeline = _pipeline(FakeGateway(), FakeOutput())
        pipeline.close()
        with pytest.raises(RuntimeError):
            pipeline.speak("Hello.")

    def test_speak_preempts_output(self):
        output = FakeOutput()
        pipeline = _pipeline(FakeGateway(), output)
        try:
            pipeline.speak("Hello.").wait(timeout=5)
        finally:
            pipeline.close()
        assert output.stop_calls >= 1


class TestTTSCache:
    def test_miss_returns_none(self):
        assert TTSCache().get("hello", "Kore") is None

    def test_hit(self):
        cache = TTSCache(max_entries=4)
        audio = SpeechAudio(pcm=b"\x01\x00")
        cache.put("hello", "Kore", audio)
        assert cache.get("hello", "Kore") is audio

    def test_voices_are_separate(self):
        cache = TTSCache(max_entries=4)
        cache.put("hello", "Kore", SpeechAudio(pcm=b"a"))
        assert cache.get("hello", "Puck") is None

    def test_evicts_least_recently_used(self):
        cache = TTSCache(max_entries=2)
        cache.put("one", "v", SpeechAudio(pcm=b"1"))
        cache.put("two", "v", SpeechAudio(pcm=b"2"))
        cache.get("one", "v")
        cache.put("three", "v", SpeechAudio(pcm=b"3"))  # evicts "two"
        assert cache.get("one", "v") is not None
        assert cache.get("two", "v") is None
        assert len(cache) == 2

    def test_skips_long_text(self):
        cache = TTSCache(max_entries=4, max_text_len=10)
        cache.put("x" * 20, "v", SpeechAudio(pcm=b"x"))
        assert cache.get("x" * 20, "v") is None

    def test_disabled_cache(self):
        cache = TTSCache(max_entries=0)
        cache.put("hi", "v", SpeechAudio(pcm=b"x"))
        assert cache.get("hi", "v") is None


class TestPcmConversion:
    def test_int16_to_float(self):
        pcm = np.array([0, 16384, -32768], dtype="<i2").tobytes()
        samples = pcm16_to_float(pcm)
        assert samples.dtype == np.float32
        assert np.allclose(samples, [0.0, 0.5, -1.0])

    def test_odd_byte_is_dropped(self):
        assert pcm16_to_float(b"\x00\x00\x01").shape == (1,)


@pytest.fixture
def fake_sounddevice(monkeypatch):
    calls = []
    sd = SimpleNamespace(
        query_devices=lambda *args, **kwargs: {"name": "test speaker"},
        play=lambda samples, rate, device=None: calls.append(("play", rate)),
        wait=lambda: calls.append(("wait",)),
        stop=lambda: calls.append(("stop",)),
    )
    monkeypatch.setitem(sys.modules, "sounddevice", sd)
    return calls


class TestAudioOutput:
    def test_plays_and_waits(self, fake_sounddevice):
        output = AudioOutput()
        output.play(SpeechAudio(pcm=b"\x00\x10" * 4, sample_rate=16000))
        assert fake_sounddevice == [("play", 16000), ("wait",)]
        assert not output.is_playing()

    def test_superseded_clip_never_starts(self, fake_sounddevice):
        output = AudioOutput()
        output.play(SpeechAudio(pcm=b"\x00\x10" * 4), is_current=lambda: False)
        assert fake_sounddevice == []

    def test_stop_when_idle_does_nothing(self, fake_sounddevice):
        AudioOutput().stop()
        assert fake_sounddevice == []
