"""
Tool Registry - Tool Dispatch surface for Nova.

The advertised catalog (what the models see) and the handler map (what
actually runs) are registered separately and cross-checked at startup by
validate(), so an advertised tool can never be missing an implementation.

Tool input arrives from the model as a string-keyed map of strings; this
module is the one place that coerces and checks it before a handler runs.

Usage:
    from tools.registry import ToolSpec, tool_registry

    tool_registry.register(
        ToolSpec(
            name="read_page",
            description="Read a page's content\\nReturns the page HTML.",
            input_schema={
                "type": "object",
                "properties": {"path": {"type": "string"}},
                "required": ["path"],
            },
        ),
        read_page,
    )
    tool_registry.validate()
    result = await tool_registry.execute("read_page", {"path": "/index"}, context)
"""

import importlib
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from errors import ConfigurationError, ErrorCode, NovaError, ToolExecutionError, ToolInputError

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, str], "ToolContext"], Union[Any, Awaitable[Any]]]


@dataclass
class ToolSpec:
    """Advertised catalog entry."""

    name: str
    description: str
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    @property
    def summary(self) -> str:
        """First line of the description."""
        return self.description.strip().split("\n", 1)[0]

    @property
    def required(self) -> List[str]:
        return list(self.input_schema.get("required") or [])

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


@dataclass
class ToolContext:
    """Per-request collaborators handed to every tool.

    Built by the caller; the orchestration engine only passes it through.
    """

    user_id: str
    project_id: str
    db: Any = None
    vector_index: Any = None
    embedder: Any = None
    content_client: Any = None
    credentials: Dict[str, str] = field(default_factory=dict)


def coerce_input_value(value: Any) -> str:
    """Coerce one model-supplied value to the string wire form."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def format_tool_catalog(specs: Iterable[ToolSpec]) -> str:
    """One line per tool for prompts: '- name: first description line'."""
    return "\n".join(f"- {spec.name}: {spec.summary}" for spec in specs)


class ToolRegistry:
    """
    Catalog plus handler map.

    Usage:
        registry = ToolRegistry()
        registry.register(spec, handler)
        registry.validate()
        text = await registry.execute("tool_name", {"arg": "value"}, context)
    """

    def __init__(self):
        self._specs: Dict[str, ToolSpec] = {}
        self._handlers: Dict[str, ToolHandler] = {}

    def advertise(self, spec: ToolSpec) -> None:
        """Add a catalog entry (visible to the models)."""
        self._specs[spec.name] = spec
        logger.debug(f"Advertised tool: {spec.name}")

    def register_handler(self, name: str, handler: ToolHandler) -> None:
        """Bind the implementation for a tool name."""
        self._handlers[name] = handler
        logger.debug(f"Registered handler: {name}")

    def register(self, spec: ToolSpec, handler: ToolHandler) -> None:
        """Advertise a tool and bind its handler in one call."""
        self.advertise(spec)
        self.register_handler(spec.name, handler)

    def get_spec(self, name: str) -> Optional[ToolSpec]:
        return self._specs.get(name)

    def list_tools(self) -> List[ToolSpec]:
        """Advertised catalog, in registration order."""
        return list(self._specs.values())

    def get_tools_schema(self) -> List[Dict[str, Any]]:
        """Catalog in Messages API tool format."""
        return [
            {"name": spec.name, "description": spec.description, "input_schema": spec.input_schema}
            for spec in self._specs.values()
        ]

    def catalog_summary(self) -> str:
        return format_tool_catalog(self._specs.values())

    def validate(self) -> None:
        """
        Check every advertised tool has a handler.

        Raises:
            ConfigurationError: Listing each unhandled tool name
        """
        missing = sorted(name for name in self._specs if name not in self._handlers)
        if missing:
            raise ConfigurationError(
                f"Advertised tools without a handler: {', '.join(missing)}",
                code=ErrorCode.CONFIG_TOOL_UNHANDLED,
                tools=missing,
            )
        orphaned = sorted(name for name in self._handlers if name not in self._specs)
        if orphaned:
            logger.warning(f"Handlers registered for unadvertised tools: {', '.join(orphaned)}")
        logger.info(f"Tool registry validated: {len(self._specs)} tools")

    def coerce_input(self, name: str, tool_input: Optional[Dict[str, Any]]) -> Dict[str, str]:
        """
        Coerce model input to a string map and check required keys.

        Raises:
            ToolInputError: Input is not an object, or required keys are missing
        """
        if tool_input is None:
            tool_input = {}
        if not isinstance(tool_input, dict):
            raise ToolInputError(name, f"Tool input must be an object, got {type(tool_input).__name__}")

        coerced = {str(k): coerce_input_value(v) for k, v in tool_input.items()}

        spec = self._specs.get(name)
        if spec:
            missing = [key for key in spec.required if not coerced.get(key)]
            if missing:
                raise ToolInputError(name, f"Missing required input: {', '.join(missing)}", missing=missing)
        return coerced

    async def execute(self, name: str, tool_input: Optional[Dict[str, Any]], context: ToolContext) -> str:
        """
        Run a tool by name.

        Returns:
            Tool result as a string (non-string results are JSON-encoded)

        Raises:
            ToolExecutionError: Unknown tool, bad input, or handler failure
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise ToolExecutionError(name, f"Unknown tool: {name}", code=ErrorCode.TOOL_NOT_FOUND)

        coerced = self.coerce_input(name, tool_input)

        try:
            result = handler(coerced, context)
            if inspect.isawaitable(result):
                result = await result
        except ToolExecutionError:
            raise
        except NovaError as e:
            raise ToolExecutionError(name, e.message, details=e.details) from e
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}", exc_info=True)
            raise ToolExecutionError(name, str(e) or type(e).__name__) from e

        if result is None:
            return ""
        if isinstance(result, str):
            return result
        return json.dumps(result, default=str)

    def clear(self) -> None:
        """Remove all tools (for testing)."""
        self._specs.clear()
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, name: str) -> bool:
        return name in self._specs


def load_tool_modules(registry: ToolRegistry, module_paths: Iterable[str]) -> int:
    """
    Import each module and call its register_tools(registry).

    Import or registration failures are logged and skipped; validate()
    still catches any tool left without a handler.

    Returns:
        Number of modules loaded
    """
    loaded = 0
    for path in module_paths:
        try:
            module = importlib.import_module(path)
            register = getattr(module, "register_tools")
            register(registry)
            loaded += 1
            logger.info(f"Loaded tool module: {path}")
        except Exception as exc:
            logger.warning(f"Tool module load failed for {path}: {exc}")
    return loaded


# Global registry used by the service
tool_registry = ToolRegistry()
