"""
Orchestrator - the agentic tool loop behind every assistant turn.

One call to :meth:`Orchestrator.respond` takes a user turn through:
- model routing
- a multi-turn exchange with the gateway, executing tool calls in between
- exactly one terminal response (consent request, billing required,
  generated media, or plain text)

Retries belong to :func:`with_retry`; the orchestrator never retries on its
own. Any exception that reaches the public entry points is turned into a
final response with a user-safe message.
"""

import logging
import time
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional, Sequence

from jarvis_assistant.assistant.context import build_system_instruction
from jarvis_assistant.assistant.errors import ErrorKind, GatewayError
from jarvis_assistant.assistant.history import consent_call_id, format_history
from jarvis_assistant.assistant.llm import Content, GenerateResult, ModelGateway, Part, ToolCall
from jarvis_assistant.assistant.retry import with_retry
from jarvis_assistant.assistant.router import ModelTier, select_model, thinking_budget
from jarvis_assistant.assistant.tools import CONSENT_TOOL, ToolContext, ToolKind, ToolRegistry
from jarvis_assistant.assistant.types import (
    AiResponse,
    ChatMessage,
    ConversationTurn,
    GeneratedImage,
    GeneratedVideo,
    GroundingSource,
    MediaKind,
    PendingAction,
    ServiceConnection,
    ToolResultEnvelope,
    TurnOptions,
    VideoState,
)
from jarvis_assistant.config import Config, get_config

logger = logging.getLogger(__name__)

OVERLOADED_MESSAGE = "I'm sorry, the AI service is overloaded right now. Please try again in a moment."
RATE_LIMITED_MESSAGE = "I'm sorry, I've hit my request limit. Please wait a little while and try again."
GENERIC_ERROR_MESSAGE = "I'm sorry, I encountered an error."
LOOP_LIMIT_MESSAGE = "I'm sorry, I couldn't finish that request. Could you try asking in a different way?"
BILLING_MESSAGE = (
    "Generating this requires a project with billing enabled. "
    "Please select a paid API key and try again."
)
MEDIA_FAILED_MESSAGE = "I wasn't able to generate that, sorry."
MEMORY_ACKNOWLEDGEMENT = "Fact remembered."

_ERROR_MESSAGES = {
    ErrorKind.OVERLOADED: OVERLOADED_MESSAGE,
    ErrorKind.RATE_LIMITED: RATE_LIMITED_MESSAGE,
}

_MEDIA_KINDS = {
    ToolKind.IMAGE_GENERATION: MediaKind.IMAGE,
    ToolKind.VIDEO_GENERATION: MediaKind.VIDEO,
}


class OrchestratorState(Enum):
    """Orchestrator state machine states."""

    AWAITING_RESPONSE = "awaiting_response"
    TOOL_REQUESTED = "tool_requested"  # Non-terminal, loops back
    CONSENT_REQUESTED = "consent_requested"
    BILLING_REQUIRED = "billing_required"
    FINAL = "final"


def dedupe_sources(sources: Iterable[GroundingSource]) -> list[GroundingSource]:
    """Drop sources without a uri and repeated uris, keeping first occurrence."""
    seen: set[str] = set()
    unique: list[GroundingSource] = []
    for source in sources:
        if not source.uri or source.uri in seen:
            continue
        seen.add(source.uri)
        unique.append(source)
    return unique


def error_message(error: BaseException) -> str:
    """User-safe text for an exception that ended a turn."""
    kind = error.kind if isinstance(error, GatewayError) else ErrorKind.FATAL
    return _ERROR_MESSAGES.get(kind, GENERIC_ERROR_MESSAGE)


class Orchestrator:
    """
    Runs assistant turns against a model gateway and a tool catalog.

    Usage:
        tools = build_tool_registry()
        orchestrator = Orchestrator(create_gateway("gemini"), tools)
        response = orchestrator.respond(ConversationTurn("What's on my calendar?"), session)
    """

    def __init__(
        self,
        gateway: ModelGateway,
        tools: ToolRegistry,
        config: Optional[Config] = None,
        service_summaries: Optional[Mapping[str, str]] = None,
        location_provider: Optional[Callable[[], dict]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self.tools = tools if tools.frozen else tools.freeze()
        self.config = config or get_config()
        self.service_summaries = dict(service_summaries or {})
        self.location_provider = location_provider
        self._sleep = sleep
        self.state = OrchestratorState.FINAL

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_state(self, new_state: OrchestratorState) -> None:
        old_state = self.state
        self.state = new_state
        logger.debug("Orchestrator: %s -> %s", old_state.value, new_state.value)

    def _retry(self, operation: Callable):
        retry = self.config.retry
        return with_retry(
            operation,
            max_retries=retry.max_retries,
            base_delay_ms=retry.base_delay_ms,
            sleep=self._sleep,
        )

    def _model_for(self, tier: ModelTier) -> str:
        gateway = self.config.gateway
        if tier is ModelTier.LOW_LATENCY:
            return gateway.low_latency_model
        if tier is ModelTier.DEEP_REASONING:
            return gateway.deep_reasoning_model
        return gateway.default_model

    def _system_instruction(self, connections: Sequence[ServiceConnection], memory: Sequence[str]) -> str:
        return build_system_instruction(
            connections,
            memory,
            self.service_summaries,
            assistant_name=self.config.orchestrator.assistant_name,
        )

    def _generate(
        self,
        model: str,
        system_instruction: str,
        contents: list[Content],
        budget: Optional[int] = None,
    ) -> GenerateResult:
        definitions = self.tools.definitions()
        return self._retry(lambda: self.gateway.generate(
            model,
            system_instruction,
            list(contents),
            tools=definitions,
            thinking_budget=budget,
        ))

    @staticmethod
    def _user_turn(turn: ConversationTurn) -> Content:
        parts: list[Part] = []
        if turn.prompt or turn.media is None:
            parts.append(Part.from_text(turn.prompt))
        if turn.media is not None:
            parts.append(Part.from_media(turn.media.data, turn.media.mime_type))
        return Content(role="user", parts=parts)

    @staticmethod
    def _feed(contents: list[Content], result: GenerateResult, call: ToolCall,
              response: dict) -> None:
        """Append the model's tool call and our response to the exchange."""
        if result.content is not None:
            contents.append(result.content)
        else:
            contents.append(Content(role="model", parts=[
                Part.from_function_call(call.name, call.arguments, call_id=call.id),
            ]))
        contents.append(Content(role="user", parts=[
            Part.from_function_response(call.name, response, call_id=call.id),
        ]))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def respond(
        self,
        turn: ConversationTurn,
        session: Sequence[ChatMessage],
        connections: Sequence[ServiceConnection] = (),
        memory: Sequence[str] = (),
    ) -> AiResponse:
        """
        Produce the assistant's response to a user turn.

        Args:
            turn: The user's input for this turn
            session: Messages before this turn, oldest first
            connections: Current integrations (read-only)
            memory: Facts learned in earlier turns

        Returns:
            AiResponse with exactly one terminal shape
        """
        try:
            return self._respond(turn, session, connections, memory)
        except Exception as e:
            return self._failure(e)

    def respond_after_consent(
        self,
        action: PendingAction,
        session: Sequence[ChatMessage],
        connections: Sequence[ServiceConnection] = (),
        memory: Sequence[str] = (),
    ) -> AiResponse:
        """
        Execute a tool the user just approved and let the model answer with its result.

        The tool runs exactly once. ``session`` should end with the consent
        request being approved.
        """
        try:
            return self._respond_after_consent(action, session, connections, memory)
        except Exception as e:
            return self._failure(e)

    def refresh_video(self, video: GeneratedVideo) -> GeneratedVideo:
        """Poll a generating video handle; finished or broken handles are returned as-is."""
        if video.state is not VideoState.GENERATING or not video.operation_name:
            return video
        try:
            return self._retry(lambda: self.gateway.poll_video(video.operation_name))
        except GatewayError as e:
            logger.error("Video status check failed: %s", e)
            return GeneratedVideo(state=VideoState.ERROR, operation_name=video.operation_name)

    def _failure(self, error: Exception) -> AiResponse:
        logger.exception("Assistant turn failed: %s", error)
        self._set_state(OrchestratorState.FINAL)
        kind = error.kind if isinstance(error, GatewayError) else ErrorKind.FATAL
        return AiResponse(text=error_message(error), error=kind)

    # ------------------------------------------------------------------
    # Tool loop
    # ------------------------------------------------------------------

    def _respond(
        self,
        turn: ConversationTurn,
        session: Sequence[ChatMessage],
        connections: Sequence[ServiceConnection],
        memory: Sequence[str],
    ) -> AiResponse:
        tier = select_model(turn.prompt, turn.media)
        model = self._model_for(tier)
        budget = thinking_budget(tier)
        logger.info("Routing turn to %s (%s)", model, tier.value)

        system_instruction = self._system_instruction(connections, memory)
        contents = format_history(session, self.config.orchestrator.history_window)
        contents.append(self._user_turn(turn))
        context = ToolContext(connections=tuple(connections), location_provider=self.location_provider)
        learned_facts: list[str] = []

        for round_no in range(1, self.config.orchestrator.max_tool_rounds + 1):
            self._set_state(OrchestratorState.AWAITING_RESPONSE)
            result = self._generate(model, system_instruction, contents, budget)

            call = result.tool_call
            if call is None:
                self._set_state(OrchestratorState.FINAL)
                return AiResponse(
                    text=result.text,
                    grounding_sources=dedupe_sources(result.grounding_sources),
                    learned_facts=learned_facts,
                )

            kind = self.tools.kind_of(call.name)
            logger.info("Tool call %d: %s (%s)", round_no, call.name, kind.value)

            if kind is ToolKind.MEMORY_WRITE:
                fact = str(call.arguments.get("fact", "")).strip()
                if fact:
                    learned_facts.append(fact)
                    envelope = ToolResultEnvelope(call.name, result=MEMORY_ACKNOWLEDGEMENT)
                else:
                    envelope = ToolResultEnvelope(call.name, error="No fact was provided.")
                self._set_state(OrchestratorState.TOOL_REQUESTED)
                self._feed(contents, result, call, envelope.to_response())
                continue

            if kind is ToolKind.CONSENT_GATE:
                response = self._consent_request(call, result, learned_facts)
                if response is not None:
                    self._set_state(OrchestratorState.CONSENT_REQUESTED)
                    return response
                self._set_state(OrchestratorState.TOOL_REQUESTED)
                envelope = ToolResultEnvelope(call.name, error="'tool_to_call' is required.")
                self._feed(contents, result, call, envelope.to_response())
                continue

            if kind in _MEDIA_KINDS:
                return self._generate_media(
                    _MEDIA_KINDS[kind], call, result, turn, model, system_instruction,
                    contents, learned_facts,
                )

            if kind in (ToolKind.WEB_SEARCH, ToolKind.MAPS_SEARCH):
                return self._grounded_search(kind, call, turn, model, system_instruction,
                                             context, learned_facts)

            # LOCATION, REGISTERED and UNKNOWN all go through the executor
            self._set_state(OrchestratorState.TOOL_REQUESTED)
            envelope = self.tools.execute(call.name, call.arguments, context)
            if not envelope.ok:
                logger.info("Tool %s returned error: %s", call.name, envelope.error)
            self._feed(contents, result, call, envelope.to_response())

        logger.warning("Tool loop exceeded %d rounds", self.config.orchestrator.max_tool_rounds)
        self._set_state(OrchestratorState.FINAL)
        return AiResponse(text=LOOP_LIMIT_MESSAGE, learned_facts=learned_facts)

    @staticmethod
    def _consent_request(call: ToolCall, result: GenerateResult,
                         learned_facts: list[str]) -> Optional[AiResponse]:
        tool_name = call.arguments.get("tool_to_call")
        if not tool_name or not isinstance(tool_name, str):
            logger.warning("Consent request without a tool name: %s", call.arguments)
            return None
        tool_args = call.arguments.get("tool_args") or {}
        if not isinstance(tool_args, dict):
            tool_args = {}
        reason = str(call.arguments.get("reason") or result.text
                     or f"May I use {tool_name} to help with this?")
        return AiResponse(
            text=reason,
            requires_consent=True,
            action=PendingAction(tool_name=tool_name, tool_args=dict(tool_args)),
            learned_facts=learned_facts,
        )

    def _generate_media(
        self,
        media_kind: MediaKind,
        call: ToolCall,
        result: GenerateResult,
        turn: ConversationTurn,
        model: str,
        system_instruction: str,
        contents: list[Content],
        learned_facts: list[str],
    ) -> AiResponse:
        self._set_state(OrchestratorState.TOOL_REQUESTED)
        prompt = str(call.arguments.get("prompt") or turn.prompt)
        options = TurnOptions(
            aspect_ratio=call.arguments.get("aspect_ratio") or turn.options.aspect_ratio,
        )

        try:
            media = self._retry(lambda: self.gateway.generate_media(media_kind, prompt, options))
        except GatewayError as e:
            if e.kind is ErrorKind.BILLING_REQUIRED:
                logger.warning("%s generation needs a billing project: %s", media_kind.value, e)
                self._set_state(OrchestratorState.BILLING_REQUIRED)
                return AiResponse(
                    text=BILLING_MESSAGE, requires_billing_project=True, learned_facts=learned_facts,
                )
            logger.error("%s generation failed: %s", media_kind.value, e)
            envelope = ToolResultEnvelope(call.name, error=f"The {media_kind.value} could not be generated.")
            self._feed(contents, result, call, envelope.to_response())
            self._set_state(OrchestratorState.AWAITING_RESPONSE)
            follow_up = self._generate(model, system_instruction, contents)
            self._set_state(OrchestratorState.FINAL)
            return AiResponse(text=follow_up.text or MEDIA_FAILED_MESSAGE, learned_facts=learned_facts)

        status = "generating" if isinstance(media, GeneratedVideo) else "generated"
        envelope = ToolResultEnvelope(call.name, result={"status": status, "prompt": prompt})
        self._feed(contents, result, call, envelope.to_response())
        self._set_state(OrchestratorState.AWAITING_RESPONSE)
        follow_up = self._generate(model, system_instruction, contents)
        self._set_state(OrchestratorState.FINAL)

        return AiResponse(
            text=follow_up.text,
            generated_image=media if isinstance(media, GeneratedImage) else None,
            generated_video=media if isinstance(media, GeneratedVideo) else None,
            learned_facts=learned_facts,
        )

    def _grounded_search(
        self,
        kind: ToolKind,
        call: ToolCall,
        turn: ConversationTurn,
        model: str,
        system_instruction: str,
        context: ToolContext,
        learned_facts: list[str],
    ) -> AiResponse:
        self._set_state(OrchestratorState.TOOL_REQUESTED)
        query = str(call.arguments.get("query") or turn.prompt)
        source = "maps" if kind is ToolKind.MAPS_SEARCH else "web"

        location = None
        if source == "maps" and context.location_provider is not None:
            try:
                location = context.location_provider()
            except Exception as e:
                logger.warning("Location unavailable for maps search: %s", e)

        self._set_state(OrchestratorState.AWAITING_RESPONSE)
        result = self._retry(lambda: self.gateway.generate_grounded(
            model, system_instruction, query, source=source, location=location,
        ))
        self._set_state(OrchestratorState.FINAL)
        return AiResponse(
            text=result.text,
            grounding_sources=dedupe_sources(result.grounding_sources),
            learned_facts=learned_facts,
        )

    # ------------------------------------------------------------------
    # Consent follow-up
    # ------------------------------------------------------------------

    def _respond_after_consent(
        self,
        action: PendingAction,
        session: Sequence[ChatMessage],
        connections: Sequence[ServiceConnection],
        memory: Sequence[str],
    ) -> AiResponse:
        model = self._model_for(ModelTier.DEFAULT)
        system_instruction = self._system_instruction(connections, memory)
        contents = format_history(
            session, self.config.orchestrator.history_window, leave_last_consent_open=True,
        )
        context = ToolContext(connections=tuple(connections), location_provider=self.location_provider)

        self._set_state(OrchestratorState.TOOL_REQUESTED)
        envelope = self.tools.execute(action.tool_name, dict(action.tool_args), context)
        logger.info("Approved tool %s executed (ok=%s)", action.tool_name, envelope.ok)

        call_id = self._pending_consent_call(contents, action)
        response = {"granted": True, "tool": action.tool_name, **envelope.to_response()}
        contents.append(Content(role="user", parts=[
            Part.from_function_response(CONSENT_TOOL, response, call_id=call_id),
        ]))

        self._set_state(OrchestratorState.AWAITING_RESPONSE)
        result = self._generate(model, system_instruction, contents)
        self._set_state(OrchestratorState.FINAL)
        return AiResponse(text=result.text, grounding_sources=dedupe_sources(result.grounding_sources))

    @staticmethod
    def _pending_consent_call(contents: list[Content], action: PendingAction) -> str:
        """Call id of the unanswered consent request closing the history.

        When the history does not end with one, a matching request is added
        so the response we send is always paired.
        """
        if contents and contents[-1].role == "model":
            for part in contents[-1].parts:
                if part.function_call is not None and part.function_call.name == CONSENT_TOOL:
                    return part.function_call.id

        call_id = consent_call_id(len(contents))
        contents.append(Content(role="model", parts=[Part.from_function_call(
            CONSENT_TOOL,
            {"reason": "", "tool_to_call": action.tool_name, "tool_args": dict(action.tool_args)},
            call_id=call_id,
        )]))
        return call_id
