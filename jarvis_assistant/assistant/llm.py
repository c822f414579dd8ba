"""
Model gateway integration for the assistant.

Supports:
- Google Gemini (chat + tools, grounding, Imagen, Veo, TTS)
- OpenAI API (chat + tools, web search, images, TTS)
- Simple rule-based gateway for offline use

Gateways are stateless: the orchestrator owns the multi-turn exchange as a
list of :class:`Content` and passes it in on every call. Every failure is
raised as a classified :class:`GatewayError`.
"""

import base64
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from jarvis_assistant.assistant.errors import ErrorKind, GatewayError, classify_status
from jarvis_assistant.assistant.types import (
    GeneratedImage,
    GeneratedVideo,
    GroundingSource,
    MediaKind,
    SpeechAudio,
    TurnOptions,
    VideoState,
)

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    """A tool call returned by the model."""

    name: str
    arguments: dict = field(default_factory=dict)
    id: str = ""


@dataclass
class Part:
    """One content part: text, inline media, a function call or its response."""

    text: Optional[str] = None
    data: Optional[bytes] = None
    mime_type: Optional[str] = None
    function_call: Optional[ToolCall] = None
    function_response: Optional[dict] = None
    function_name: Optional[str] = None
    call_id: str = ""

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(text=text)

    @classmethod
    def from_media(cls, data: bytes, mime_type: str) -> "Part":
        return cls(data=data, mime_type=mime_type)

    @classmethod
    def from_function_call(cls, name: str, args: dict, call_id: str = "") -> "Part":
        return cls(function_call=ToolCall(name=name, arguments=dict(args), id=call_id))

    @classmethod
    def from_function_response(cls, name: str, response: dict, call_id: str = "") -> "Part":
        return cls(function_name=name, function_response=response, call_id=call_id)


@dataclass
class Content:
    """A single turn of the wire history."""

    role: str  # "user" or "model"
    parts: list[Part] = field(default_factory=list)
    raw: Any = field(default=None, repr=False, compare=False)  # vendor object, replayed as-is


@dataclass
class GenerateResult:
    """Response from a gateway ``generate`` call."""

    text: str
    model: str
    tool_call: Optional[ToolCall] = None
    grounding_sources: list[GroundingSource] = field(default_factory=list)
    content: Optional[Content] = None


_SAMPLE_RATE_PATTERN = re.compile(r"rate=(\d+)")


def _sample_rate_from_mime(mime_type: Optional[str], default: int = 24000) -> int:
    m = _SAMPLE_RATE_PATTERN.search(mime_type or "")
    return int(m.group(1)) if m else default


class ModelGateway(ABC):
    """Abstract base class for generative backends."""

    name = "base"

    @abstractmethod
    def generate(
        self,
        model: str,
        system_instruction: str,
        contents: list[Content],
        tools: Optional[list[dict]] = None,
        thinking_budget: Optional[int] = None,
    ) -> GenerateResult:
        """
        Run one multi-turn request.

        Args:
            model: Backend model name
            system_instruction: Persona + context graph
            contents: Full exchange so far, oldest first
            tools: OpenAI-format tool definitions
            thinking_budget: Optional reasoning token hint

        Returns:
            GenerateResult with text and at most one pending tool call
        """

    @abstractmethod
    def generate_grounded(
        self,
        model: str,
        system_instruction: str,
        prompt: str,
        source: str = "web",
        location: Optional[dict] = None,
    ) -> GenerateResult:
        """Single-turn request with web ("web") or maps ("maps") grounding."""

    @abstractmethod
    def generate_media(
        self, kind: MediaKind, prompt: str, options: Optional[TurnOptions] = None
    ) -> GeneratedImage | GeneratedVideo:
        """Generate an image (materialized) or start a video (async handle)."""

    @abstractmethod
    def poll_video(self, operation_name: str) -> GeneratedVideo:
        """Return the current state of a video generation handle."""

    @abstractmethod
    def synthesize_speech(self, text: str, voice: str) -> SpeechAudio:
        """Synthesize ``text`` to 16-bit PCM."""


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

class GeminiGateway(ModelGateway):
    """
    Gateway for the Gemini API via the google-genai SDK.

    Requires GEMINI_API_KEY (or GOOGLE_API_KEY / API_KEY) in the environment.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        image_model: str = "imagen-4.0-generate-001",
        video_model: str = "veo-3.0-fast-generate-001",
        tts_model: str = "gemini-2.5-flash-preview-tts",
        timeout_s: float = 60.0,
        **_kwargs,
    ):
        try:
            from google import genai
            from google.genai import types
        except ImportError as e:
            raise ImportError(
                "google-genai not installed. Install with: pip install google-genai"
            ) from e

        import os

        api_key = (
            api_key
            or os.environ.get("GEMINI_API_KEY")
            or os.environ.get("GOOGLE_API_KEY")
            or os.environ.get("API_KEY")
        )
        if not api_key:
            raise ValueError("Gemini API key required. Set GEMINI_API_KEY environment variable.")

        self._types = types
        self._client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_s * 1000)),
        )
        self.image_model = image_model
        self.video_model = video_model
        self.tts_model = tts_model

        logger.info("Gemini gateway ready (timeout %.0fs)", timeout_s)

    def _call(self, fn, *args, **kwargs):
        from google.genai import errors as genai_errors

        try:
            return fn(*args, **kwargs)
        except genai_errors.APIError as e:
            message = e.message or str(e)
            kind = classify_status(e.code, f"{e.status or ''} {message}")
            raise GatewayError(message, kind, status=e.code) from e

    def _to_content(self, content: Content):
        if content.raw is not None:
            return content.raw
        types = self._types
        parts = []
        for part in content.parts:
            if part.function_call is not None:
                parts.append(types.Part.from_function_call(
                    name=part.function_call.name, args=part.function_call.arguments,
                ))
            elif part.function_response is not None:
                parts.append(types.Part.from_function_response(
                    name=part.function_name, response=part.function_response,
                ))
            elif part.data is not None:
                parts.append(types.Part.from_bytes(data=part.data, mime_type=part.mime_type))
            elif part.text:
                parts.append(types.Part(text=part.text))
        return types.Content(role=content.role, parts=parts)

    def _to_declarations(self, tools: list[dict]):
        types = self._types
        declarations = []
        for defn in tools:
            func = defn["function"]
            declarations.append(types.FunctionDeclaration(
                name=func["name"],
                description=func.get("description", ""),
                parameters_json_schema=func.get("parameters"),
            ))
        return [types.Tool(function_declarations=declarations)]

    @staticmethod
    def _candidate(response):
        candidates = getattr(response, "candidates", None) or []
        return candidates[0] if candidates else None

    def _parse(self, response, model: str) -> GenerateResult:
        candidate = self._candidate(response)
        texts: list[str] = []
        tool_call = None
        if candidate is not None and candidate.content is not None:
            for i, part in enumerate(candidate.content.parts or []):
                if getattr(part, "thought", False):
                    continue
                if part.function_call is not None and tool_call is None:
                    fc = part.function_call
                    tool_call = ToolCall(
                        name=fc.name or "", arguments=dict(fc.args or {}), id=fc.id or f"call_{i}",
                    )
                elif part.text:
                    texts.append(part.text)

        sources: list[GroundingSource] = []
        metadata = getattr(candidate, "grounding_metadata", None) if candidate else None
        for chunk in (getattr(metadata, "grounding_chunks", None) or []):
            ref = getattr(chunk, "web", None) or getattr(chunk, "maps", None)
            if ref is not None and getattr(ref, "uri", None):
                sources.append(GroundingSource(uri=ref.uri, title=ref.title or ref.uri))

        content = None
        if candidate is not None and candidate.content is not None:
            content = Content(role="model", parts=[], raw=candidate.content)

        return GenerateResult(
            text="".join(texts).strip(),
            model=model,
            tool_call=tool_call,
            grounding_sources=sources,
            content=content,
        )

    def generate(
        self,
        model: str,
        system_instruction: str,
        contents: list[Content],
        tools: Optional[list[dict]] = None,
        thinking_budget: Optional[int] = None,
    ) -> GenerateResult:
        types = self._types
        config_kwargs: dict = {"system_instruction": system_instruction}
        if tools:
            config_kwargs["tools"] = self._to_declarations(tools)
        if thinking_budget is not None:
            config_kwargs["thinking_config"] = types.ThinkingConfig(thinking_budget=thinking_budget)

        response = self._call(
            self._client.models.generate_content,
            model=model,
            contents=[self._to_content(c) for c in contents],
            config=types.GenerateContentConfig(**config_kwargs),
        )
        return self._parse(response, model)

    def generate_grounded(
        self,
        model: str,
        system_instruction: str,
        prompt: str,
        source: str = "web",
        location: Optional[dict] = None,
    ) -> GenerateResult:
        types = self._types
        if source == "maps":
            tool = types.Tool(google_maps=types.GoogleMaps())
        else:
            tool = types.Tool(google_search=types.GoogleSearch())

        config_kwargs: dict = {"system_instruction": system_instruction, "tools": [tool]}
        if source == "maps" and location:
            config_kwargs["tool_config"] = types.ToolConfig(
                retrieval_config=types.RetrievalConfig(
                    lat_lng=types.LatLng(
                        latitude=location["latitude"], longitude=location["longitude"],
                    ),
                ),
            )

        response = self._call(
            self._client.models.generate_content,
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(**config_kwargs),
        )
        return self._parse(response, model)

    def generate_media(
        self, kind: MediaKind, prompt: str, options: Optional[TurnOptions] = None
    ) -> GeneratedImage | GeneratedVideo:
        types = self._types
        aspect_ratio = options.aspect_ratio if options else None

        if kind is MediaKind.IMAGE:
            response = self._call(
                self._client.models.generate_images,
                model=self.image_model,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=1,
                    output_mime_type="image/jpeg",
                    aspect_ratio=aspect_ratio or "1:1",
                ),
            )
            images = response.generated_images or []
            if not images or images[0].image is None or not images[0].image.image_bytes:
                raise GatewayError("No image returned by the image model.")
            image = images[0].image
            return GeneratedImage(data=image.image_bytes, mime_type=image.mime_type or "image/jpeg")

        if kind is MediaKind.VIDEO:
            operation = self._call(
                self._client.models.generate_videos,
                model=self.video_model,
                prompt=prompt,
                config=types.GenerateVideosConfig(
                    number_of_videos=1,
                    aspect_ratio=aspect_ratio or "16:9",
                ),
            )
            return GeneratedVideo(state=VideoState.GENERATING, operation_name=operation.name)

        raise GatewayError(f"Unsupported media kind: {kind.value}")

    def poll_video(self, operation_name: str) -> GeneratedVideo:
        types = self._types
        operation = self._call(
            self._client.operations.get,
            types.GenerateVideosOperation(name=operation_name),
        )
        if not operation.done:
            return GeneratedVideo(state=VideoState.GENERATING, operation_name=operation_name)
        if operation.error:
            logger.error("Video generation failed: %s", operation.error)
            return GeneratedVideo(state=VideoState.ERROR, operation_name=operation_name)

        videos = (operation.response.generated_videos if operation.response else None) or []
        if not videos or videos[0].video is None:
            return GeneratedVideo(state=VideoState.ERROR, operation_name=operation_name)
        return GeneratedVideo(
            state=VideoState.READY, url=videos[0].video.uri, operation_name=operation_name,
        )

    def synthesize_speech(self, text: str, voice: str) -> SpeechAudio:
        types = self._types
        response = self._call(
            self._client.models.generate_content,
            model=self.tts_model,
            contents=text,
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                    ),
                ),
            ),
        )
        candidate = self._candidate(response)
        parts = (candidate.content.parts if candidate and candidate.content else None) or []
        inline = parts[0].inline_data if parts else None
        if inline is None or not inline.data:
            raise GatewayError("No audio data received from the speech model.")

        data = inline.data
        if isinstance(data, str):
            data = base64.b64decode(data)
        mime_type = inline.mime_type or "audio/pcm;rate=24000"
        return SpeechAudio(pcm=data, sample_rate=_sample_rate_from_mime(mime_type), mime_type=mime_type)


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class OpenAIGateway(ModelGateway):
    """
    Gateway using the OpenAI API.

    Requires OPENAI_API_KEY environment variable. Video generation is not
    available on this backend.
    """

    name = "openai"

    VOICES = frozenset({"alloy", "ash", "ballad", "coral", "echo", "fable", "nova", "onyx", "sage", "shimmer"})

    _IMAGE_SIZES = {"1:1": "1024x1024", "16:9": "1536x1024", "4:3": "1536x1024",
                    "9:16": "1024x1536", "3:4": "1024x1536"}

    def __init__(
        self,
        api_key: Optional[str] = None,
        image_model: str = "gpt-image-1",
        tts_model: str = "gpt-4o-mini-tts",
        search_model: str = "gpt-4o-search-preview",
        default_voice: str = "alloy",
        timeout_s: float = 60.0,
        **_kwargs,
    ):
        try:
            from openai import OpenAI
        except ImportError as e:
            raise ImportError(
                "OpenAI client not installed. "
                "Install with: pip install openai"
            ) from e

        import os

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key required. Set OPENAI_API_KEY environment variable.")

        self.image_model = image_model
        self.tts_model = tts_model
        self.search_model = search_model
        self.default_voice = default_voice
        self._client = OpenAI(api_key=api_key, timeout=timeout_s, max_retries=0)

        logger.info("OpenAI gateway ready")

    def _call(self, fn, *args, **kwargs):
        import openai

        try:
            return fn(*args, **kwargs)
        except openai.APIStatusError as e:
            kind = classify_status(e.status_code, str(e.message))
            raise GatewayError(str(e.message), kind, status=e.status_code) from e
        except openai.APIError as e:
            raise GatewayError(str(e), ErrorKind.FATAL) from e

    @staticmethod
    def _user_parts(content: Content) -> list[dict]:
        parts: list[dict] = []
        for part in content.parts:
            if part.text:
                parts.append({"type": "text", "text": part.text})
            elif part.data is not None and (part.mime_type or "").startswith("image/"):
                b64 = base64.b64encode(part.data).decode()
                parts.append({
                    "type": "image_url",
                    "image_url": {"url": f"data:{part.mime_type};base64,{b64}"},
                })
            elif part.data is not None and (part.mime_type or "").startswith("audio/"):
                fmt = "mp3" if "mp3" in part.mime_type or "mpeg" in part.mime_type else "wav"
                parts.append({
                    "type": "input_audio",
                    "input_audio": {"data": base64.b64encode(part.data).decode(), "format": fmt},
                })
            elif part.data is not None:
                logger.warning("OpenAI gateway: %s input not supported, skipped", part.mime_type)
        return parts

    def _to_messages(self, system_instruction: str, contents: list[Content]) -> list[dict]:
        messages: list[dict] = [{"role": "system", "content": system_instruction}]
        for content in contents:
            if content.raw is not None:
                messages.append(content.raw)
                continue

            calls = [p.function_call for p in content.parts if p.function_call is not None]
            responses = [p for p in content.parts if p.function_response is not None]

            if calls:
                text = "".join(p.text for p in content.parts if p.text)
                messages.append({
                    "role": "assistant",
                    "content": text or None,
                    "tool_calls": [{
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                    } for tc in calls],
                })
            elif responses:
                for p in responses:
                    messages.append({
                        "role": "tool",
                        "tool_call_id": p.call_id,
                        "content": json.dumps(p.function_response, default=str),
                    })
            elif content.role == "model":
                text = "".join(p.text for p in content.parts if p.text)
                messages.append({"role": "assistant", "content": text})
            else:
                parts = self._user_parts(content)
                if parts:
                    messages.append({"role": "user", "content": parts})
        return messages

    def generate(
        self,
        model: str,
        system_instruction: str,
        contents: list[Content],
        tools: Optional[list[dict]] = None,
        thinking_budget: Optional[int] = None,
    ) -> GenerateResult:
        kwargs: dict = {
            "model": model,
            "messages": self._to_messages(system_instruction, contents),
        }
        if tools:
            kwargs["tools"] = tools
        if thinking_budget is not None:
            kwargs["reasoning_effort"] = "high"

        response = self._call(self._client.chat.completions.create, **kwargs)
        msg = response.choices[0].message

        tool_call = None
        raw: dict = {"role": "assistant", "content": msg.content or ""}
        if msg.tool_calls:
            tc = msg.tool_calls[0]
            try:
                args = json.loads(tc.function.arguments) if tc.function.arguments else {}
            except (json.JSONDecodeError, AttributeError):
                args = {}
            tool_call = ToolCall(name=tc.function.name, arguments=args, id=tc.id)
            raw["tool_calls"] = [{
                "id": tc.id,
                "type": "function",
                "function": {"name": tc.function.name, "arguments": tc.function.arguments or "{}"},
            }]

        return GenerateResult(
            text=(msg.content or "").strip(),
            model=model,
            tool_call=tool_call,
            content=Content(role="model", raw=raw),
        )

    def generate_grounded(
        self,
        model: str,
        system_instruction: str,
        prompt: str,
        source: str = "web",
        location: Optional[dict] = None,
    ) -> GenerateResult:
        search_options: dict = {}
        if location:
            search_options["user_location"] = {
                "type": "approximate",
                "approximate": {"latitude": location["latitude"], "longitude": location["longitude"]},
            }
        response = self._call(
            self._client.chat.completions.create,
            model=self.search_model,
            web_search_options=search_options,
            messages=[
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt},
            ],
        )
        msg = response.choices[0].message
        sources = []
        for annotation in getattr(msg, "annotations", None) or []:
            citation = getattr(annotation, "url_citation", None)
            if citation is not None and citation.url:
                sources.append(GroundingSource(uri=citation.url, title=citation.title or citation.url))
        return GenerateResult(text=(msg.content or "").strip(), model=self.search_model,
                              grounding_sources=sources)

    def generate_media(
        self, kind: MediaKind, prompt: str, options: Optional[TurnOptions] = None
    ) -> GeneratedImage | GeneratedVideo:
        if kind is not MediaKind.IMAGE:
            raise GatewayError(f"{kind.value} generation is not supported by the OpenAI gateway.")

        aspect_ratio = (options.aspect_ratio if options else None) or "1:1"
        response = self._call(
            self._client.images.generate,
            model=self.image_model,
            prompt=prompt,
            size=self._IMAGE_SIZES.get(aspect_ratio, "1024x1024"),
            n=1,
        )
        if not response.data or not response.data[0].b64_json:
            raise GatewayError("No image returned by the image model.")
        return GeneratedImage(data=base64.b64decode(response.data[0].b64_json), mime_type="image/png")

    def poll_video(self, operation_name: str) -> GeneratedVideo:
        raise GatewayError("Video generation is not supported by the OpenAI gateway.")

    def synthesize_speech(self, text: str, voice: str) -> SpeechAudio:
        voice = voice.lower() if voice.lower() in self.VOICES else self.default_voice
        response = self._call(
            self._client.audio.speech.create,
            model=self.tts_model,
            voice=voice,
            input=text,
            response_format="pcm",
        )
        return SpeechAudio(pcm=response.content, sample_rate=24000)


# ---------------------------------------------------------------------------
# Simple (offline)
# ---------------------------------------------------------------------------

class SimpleGateway(ModelGateway):
    """
    Simple rule-based gateway for running without a backend.

    Handles basic phrases with canned replies, never calls tools, and
    "speaks" short stretches of silence.
    """

    name = "simple"

    RESPONSES = {
        "hello": "Hello! How can I help you today?",
        "hi": "Hi there! What can I do for you?",
        "how are you": "I'm doing great, thanks for asking!",
        "tell me a joke": "Why do programmers prefer dark mode? Because light attracts bugs!",
        "thank you": "You're welcome!",
        "thanks": "Happy to help!",
        "goodbye": "Goodbye! Have a great day!",
        "bye": "See you later!",
    }

    FALLBACK = "I'm not sure how to respond to that. Try asking me something else!"

    def __init__(self, **_kwargs):
        logger.info("Using simple rule-based responses (no model backend)")

    @staticmethod
    def _last_user_text(contents: list[Content]) -> str:
        for content in reversed(contents):
            if content.role == "user":
                text = " ".join(p.text for p in content.parts if p.text)
                if text:
                    return text
        return ""

    def _reply(self, prompt: str) -> str:
        prompt_lower = prompt.lower().strip()
        for key, response in self.RESPONSES.items():
            if re.search(rf"\b{re.escape(key)}\b", prompt_lower):
                return response
        return self.FALLBACK

    def generate(
        self,
        model: str,
        system_instruction: str,
        contents: list[Content],
        tools: Optional[list[dict]] = None,
        thinking_budget: Optional[int] = None,
    ) -> GenerateResult:
        text = self._reply(self._last_user_text(contents))
        return GenerateResult(
            text=text, model="simple", content=Content(role="model", parts=[Part.from_text(text)]),
        )

    def generate_grounded(
        self,
        model: str,
        system_instruction: str,
        prompt: str,
        source: str = "web",
        location: Optional[dict] = None,
    ) -> GenerateResult:
        return GenerateResult(text="I can't search while running offline.", model="simple")

    def generate_media(
        self, kind: MediaKind, prompt: str, options: Optional[TurnOptions] = None
    ) -> GeneratedImage | GeneratedVideo:
        raise GatewayError("Media generation is not available offline.")

    def poll_video(self, operation_name: str) -> GeneratedVideo:
        return GeneratedVideo(state=VideoState.ERROR, operation_name=operation_name)

    def synthesize_speech(self, text: str, voice: str) -> SpeechAudio:
        # 60ms of silence per word keeps playback timing roughly realistic
        samples = 24000 * 60 // 1000 * max(1, len(text.split()))
        return SpeechAudio(pcm=b"\x00\x00" * samples, sample_rate=24000)


def create_gateway(backend: str = "gemini", **kwargs) -> ModelGateway:
    """
    Factory function to create a model gateway.

    Args:
        backend: "gemini", "openai", or "simple"
        **kwargs: Backend-specific options

    Returns:
        ModelGateway instance
    """
    if backend == "gemini":
        return GeminiGateway(**kwargs)
    elif backend == "openai":
        return OpenAIGateway(**kwargs)
    elif backend == "simple":
        return SimpleGateway(**kwargs)
    else:
        raise ValueError(f"Unknown gateway backend: {backend}")
