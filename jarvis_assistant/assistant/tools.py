"""
ToolRegistry: auto-generates tool schemas from Python type hints and
executes tool calls into a uniform result envelope.

Handlers are registered with a decorator; their signature also yields a
pydantic model that validates model-supplied arguments before dispatch.
"""

import inspect
import logging
import re
from dataclasses import dataclass
from enum import Enum
from types import UnionType
from typing import Annotated, Any, Callable, Iterable, Optional, Sequence, Union, get_args, get_origin

from pydantic import BaseModel, ConfigDict, ValidationError, create_model

from jarvis_assistant.assistant.types import ServiceConnection, ToolResultEnvelope

logger = logging.getLogger(__name__)

CONSENT_TOOL = "request_permission"
MEMORY_TOOL = "remember_fact"
IMAGE_TOOL = "generate_image"
VIDEO_TOOL = "generate_video"
WEB_SEARCH_TOOL = "web_search"
MAPS_SEARCH_TOOL = "maps_search"
LOCATION_TOOL = "get_current_location"


class ToolKind(Enum):
    """How the orchestrator handles a tool call."""

    MEMORY_WRITE = "memory_write"
    CONSENT_GATE = "consent_gate"
    IMAGE_GENERATION = "image_generation"
    VIDEO_GENERATION = "video_generation"
    WEB_SEARCH = "web_search"
    MAPS_SEARCH = "maps_search"
    LOCATION = "location"
    REGISTERED = "registered"
    UNKNOWN = "unknown"


SPECIAL_TOOLS: dict[str, ToolKind] = {
    CONSENT_TOOL: ToolKind.CONSENT_GATE,
    MEMORY_TOOL: ToolKind.MEMORY_WRITE,
    IMAGE_TOOL: ToolKind.IMAGE_GENERATION,
    VIDEO_TOOL: ToolKind.VIDEO_GENERATION,
    WEB_SEARCH_TOOL: ToolKind.WEB_SEARCH,
    MAPS_SEARCH_TOOL: ToolKind.MAPS_SEARCH,
    LOCATION_TOOL: ToolKind.LOCATION,
}


# Python type -> JSON Schema
_TYPE_MAP: dict[type, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
}


def _json_schema_for(hint: Any) -> dict:
    origin = get_origin(hint)
    if origin in (Union, UnionType):
        # Optional[X] is described as X
        members = [a for a in get_args(hint) if a is not type(None)]
        if len(members) == 1:
            return _json_schema_for(members[0])
        return {"type": "string"}
    if origin in (list, tuple, Sequence):
        args = get_args(hint)
        item = _TYPE_MAP.get(args[0], "string") if args else "string"
        return {"type": "array", "items": {"type": item}}
    if origin is dict:
        return {"type": "object"}
    return {"type": _TYPE_MAP.get(hint, "string")}


def _parse_google_docstring_args(fn: Callable) -> dict[str, str]:
    """Extract parameter descriptions from Google-style docstring Args: section."""
    doc = inspect.getdoc(fn)
    if not doc:
        return {}

    descriptions: dict[str, str] = {}
    in_args = False
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped.lower().startswith("args:"):
            in_args = True
            continue
        if in_args:
            if not stripped:
                break
            m = re.match(r"(\w+)(?:\s*\([^)]*\))?\s*:\s*(.+)", stripped)
            if m:
                descriptions[m.group(1)] = m.group(2).strip()
    return descriptions


def sanitize_scope(requested: Optional[Iterable[str]], connected: Sequence[str]) -> list[str]:
    """Restrict a requested account scope to what the user has connected.

    An empty request expands to every connected account; otherwise only the
    requested accounts that are connected survive, in request order.
    """
    requested = list(requested or [])
    if not requested:
        return list(connected)
    allowed = set(connected)
    return [account for account in requested if account in allowed]


@dataclass
class ToolContext:
    """Per-call state a tool execution may read."""

    connections: Sequence[ServiceConnection] = ()
    location_provider: Optional[Callable[[], dict]] = None

    def connected_accounts(self, service_id: str) -> list[str]:
        for connection in self.connections:
            if connection.id == service_id and connection.connected:
                return connection.connected_account_ids()
        return []


@dataclass
class _Entry:
    schema: dict
    fn: Optional[Callable] = None
    args_model: Optional[type[BaseModel]] = None
    scope: Optional[tuple[str, str]] = None  # (argument name, service id)


class ToolRegistry:
    """Registry that turns decorated Python functions into tool schemas."""

    def __init__(self) -> None:
        self._tools: dict[str, _Entry] = {}
        self._frozen = False

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("Tool registry is frozen")

    def register(self, description: str, scope: Optional[tuple[str, str]] = None) -> Callable:
        """Decorator that registers a function as a model-callable tool.

        Inspects the function's type hints to build a JSON Schema and a pydantic
        argument model. Parameter descriptions come from ``Annotated[type, "desc"]``
        (priority) or from the Google-style docstring ``Args:`` section.

        Args:
            description: Human-readable description of what the tool does.
            scope: Optional ``(argument, service_id)``; the argument is rewritten
                to the caller's connected accounts for that service before dispatch.
        """
        def decorator(fn: Callable) -> Callable:
            self._check_mutable()
            sig = inspect.signature(fn)
            hints = getattr(fn, "__annotations__", {})
            docstring_args = _parse_google_docstring_args(fn)

            properties: dict = {}
            required: list[str] = []
            model_fields: dict = {}

            for name, param in sig.parameters.items():
                hint = hints.get(name)
                if hint is None:
                    continue

                param_desc: Optional[str] = None
                actual_type = hint
                if get_origin(hint) is Annotated:
                    args = get_args(hint)
                    actual_type = args[0]
                    for a in args[1:]:
                        if isinstance(a, str):
                            param_desc = a
                            break

                if param_desc is None:
                    param_desc = docstring_args.get(name)

                prop = _json_schema_for(actual_type)
                if param_desc:
                    prop["description"] = param_desc
                properties[name] = prop

                if param.default is inspect.Parameter.empty:
                    required.append(name)
                    model_fields[name] = (actual_type, ...)
                else:
                    model_fields[name] = (actual_type, param.default)

            schema: dict = {
                "type": "function",
                "function": {
                    "name": fn.__name__,
                    "description": description,
                    "parameters": {
                        "type": "object",
                        "properties": properties,
                    },
                },
            }
            if required:
                schema["function"]["parameters"]["required"] = required

            args_model = create_model(
                f"{fn.__name__}_args",
                __config__=ConfigDict(extra="ignore"),
                **model_fields,
            )
            self._tools[fn.__name__] = _Entry(schema=schema, fn=fn, args_model=args_model, scope=scope)
            return fn

        return decorator

    def declare(self, name: str, description: str, parameters: Optional[dict] = None,
                required: Optional[list[str]] = None) -> None:
        """Declare a tool the orchestrator handles itself (no handler here)."""
        self._check_mutable()
        params: dict = {"type": "object", "properties": parameters or {}}
        if required:
            params["required"] = required
        self._tools[name] = _Entry(
            schema={
                "type": "function",
                "function": {"name": name, "description": description, "parameters": params},
            },
        )

    def freeze(self) -> "ToolRegistry":
        """Make the catalog immutable; returns self."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def definitions(self) -> list[dict]:
        """Return OpenAI-format tool list for the model."""
        return [entry.schema for entry in self._tools.values()]

    def kind_of(self, name: str) -> ToolKind:
        if name in SPECIAL_TOOLS:
            return SPECIAL_TOOLS[name]
        entry = self._tools.get(name)
        if entry is None or entry.fn is None:
            return ToolKind.UNKNOWN
        return ToolKind.REGISTERED

    def execute(self, name: str, args: Optional[dict], context: Optional[ToolContext] = None) -> ToolResultEnvelope:
        """Route and execute a tool call.

        Never raises: unknown tools, invalid arguments and handler failures
        all come back as error envelopes.
        """
        context = context or ToolContext()
        args = dict(args or {})

        if name == LOCATION_TOOL:
            return self._execute_location(context)

        entry = self._tools.get(name)
        if entry is None or entry.fn is None:
            logger.warning("Unknown tool '%s'", name)
            return ToolResultEnvelope(tool_name=name, error=f"Tool '{name}' not found.")

        if entry.scope is not None:
            arg_name, service_id = entry.scope
            connected = context.connected_accounts(service_id)
            args[arg_name] = sanitize_scope(args.get(arg_name), connected)
            logger.debug("Scoped %s.%s to %s", name, arg_name, args[arg_name])

        try:
            validated = entry.args_model.model_validate(args)
        except ValidationError as e:
            logger.warning("Invalid arguments for %s: %s", name, e)
            return ToolResultEnvelope(tool_name=name, error=f"Invalid arguments for tool '{name}'.")

        try:
            result = entry.fn(**validated.model_dump())
            logger.debug("Tool: %s(%s)", name, args)
            return ToolResultEnvelope(tool_name=name, result=result)
        except Exception as e:
            logger.error("Tool error: %s: %s", name, e)
            return ToolResultEnvelope(tool_name=name, error=f"Tool '{name}' failed to execute.")

    @staticmethod
    def _execute_location(context: ToolContext) -> ToolResultEnvelope:
        if context.location_provider is None:
            return ToolResultEnvelope(tool_name=LOCATION_TOOL, error="Location is not available.")
        try:
            return ToolResultEnvelope(tool_name=LOCATION_TOOL, result=context.location_provider())
        except Exception as e:
            logger.error("Location provider error: %s", e)
            return ToolResultEnvelope(tool_name=LOCATION_TOOL, error="Location permission was not granted.")

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __bool__(self) -> bool:
        return len(self._tools) > 0

    def __len__(self) -> int:
        return len(self._tools)
