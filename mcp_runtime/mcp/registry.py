"""Capability registry: tools, prompts, resources, templates and completions."""

import importlib
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mcp_runtime.mcp.models import (
    Prompt,
    PromptArgumentInfo,
    Resource,
    ResourceTemplate,
    Tool,
    ToolAnnotations,
)
from mcp_runtime.mcp.uri_template import UriTemplate, is_template

if TYPE_CHECKING:
    from mcp_runtime.mcp.features import McpRequest

logger = logging.getLogger(__name__)

# Type alias for capability handlers
Handler = Callable[["McpRequest"], Awaitable[Any]]

EMPTY_OBJECT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}

REF_PROMPT = "ref/prompt"
REF_RESOURCE = "ref/resource"

BUNDLED_PROVIDERS = "mcp_runtime.providers"


def _parse_schema(schema: str | dict[str, Any] | None) -> dict[str, Any]:
    if not schema:
        return dict(EMPTY_OBJECT_SCHEMA)
    if isinstance(schema, str):
        return json.loads(schema)
    return dict(schema)


@dataclass(frozen=True)
class ToolDefinition:
    """A registered tool with its metadata and handler."""

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: Handler
    annotations: ToolAnnotations | None = None

    def to_mcp_tool(self, protocol_version: str | None = None) -> Tool:
        """Convert to MCP Tool model.

        Annotations exist from protocol version 2025 on; an unknown version is
        treated as the latest.
        """
        annotations = self.annotations
        if protocol_version is not None and protocol_version.startswith("2024"):
            annotations = None
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_schema,
            annotations=annotations,
        )


@dataclass(frozen=True)
class PromptArgument:
    name: str
    description: str = ""
    required: bool = False


@dataclass(frozen=True)
class PromptDefinition:
    name: str
    description: str
    handler: Handler
    arguments: tuple[PromptArgument, ...] = ()

    def to_mcp_prompt(self) -> Prompt:
        return Prompt(
            name=self.name,
            description=self.description,
            arguments=[
                PromptArgumentInfo(name=a.name, description=a.description, required=a.required)
                for a in self.arguments
            ],
        )


@dataclass(frozen=True)
class ResourceDefinition:
    """A resource at a fixed URI."""

    uri: str
    name: str
    description: str
    handler: Handler
    mime_type: str = "text/plain"

    def to_mcp_resource(self) -> Resource:
        return Resource(
            uri=self.uri,
            name=self.name,
            description=self.description,
            mimeType=self.mime_type,
        )


@dataclass(frozen=True)
class ResourceTemplateDefinition:
    """A resource whose URI contains ``{variable}`` placeholders."""

    uri: str
    name: str
    description: str
    handler: Handler
    mime_type: str = "text/plain"
    template: UriTemplate = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "template", UriTemplate(self.uri))

    def matches(self, uri: str) -> bool:
        return self.template.matches(uri)

    def to_mcp_resource_template(self) -> ResourceTemplate:
        return ResourceTemplate(
            uriTemplate=self.uri,
            name=self.name,
            description=self.description,
            mimeType=self.mime_type,
        )


@dataclass(frozen=True)
class CompletionDefinition:
    """Completes arguments of the prompt or resource named by ``reference``."""

    reference: str
    handler: Handler
    reference_type: str = REF_PROMPT


@dataclass(frozen=True)
class SubscriberDefinition:
    """Application hook run on ``resources/subscribe`` or ``resources/unsubscribe``."""

    uri: str
    handler: Handler


class CapabilityRegistry:
    """Registry for MCP capabilities with plugin-style provider loading.

    Registration happens at startup; afterwards the registry is only read.
    Resource templates are matched in registration order.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._prompts: dict[str, PromptDefinition] = {}
        self._resources: dict[str, ResourceDefinition] = {}
        self._templates: dict[str, ResourceTemplateDefinition] = {}
        self._completions: dict[str, CompletionDefinition] = {}
        self._subscribers: dict[str, SubscriberDefinition] = {}
        self._unsubscribers: dict[str, SubscriberDefinition] = {}
        self._providers: set[str] = set()

    # ---------------------------------------------------------------------
    # Registration
    # ---------------------------------------------------------------------

    def register_tool(
        self,
        name: str,
        description: str,
        handler: Handler,
        input_schema: str | dict[str, Any] | None = None,
        annotations: ToolAnnotations | None = None,
    ) -> ToolDefinition:
        """Register a tool with the registry."""
        if name in self._tools:
            logger.warning(f"Tool '{name}' already registered, overwriting")
        tool = ToolDefinition(
            name=name,
            description=description or "No description available",
            input_schema=_parse_schema(input_schema),
            handler=handler,
            annotations=annotations,
        )
        self._tools[name] = tool
        logger.info(f"Registered tool: {name}")
        return tool

    def register_prompt(
        self,
        name: str,
        description: str,
        handler: Handler,
        arguments: list[PromptArgument] | None = None,
    ) -> PromptDefinition:
        if name in self._prompts:
            logger.warning(f"Prompt '{name}' already registered, overwriting")
        prompt = PromptDefinition(name, description, handler, tuple(arguments or ()))
        self._prompts[name] = prompt
        logger.info(f"Registered prompt: {name}")
        return prompt

    def register_resource(
        self,
        uri: str,
        name: str,
        description: str,
        handler: Handler,
        mime_type: str = "text/plain",
    ) -> ResourceDefinition | ResourceTemplateDefinition:
        """Register a resource; URIs with placeholders become templates.

        A malformed template raises ``TemplateSyntaxError`` here, at startup.
        """
        if is_template(uri):
            template = ResourceTemplateDefinition(uri, name, description, handler, mime_type)
            if uri in self._templates:
                logger.warning(f"Resource template '{uri}' already registered, overwriting")
            self._templates[uri] = template
            logger.info(f"Registered resource template: {uri}")
            return template

        if uri in self._resources:
            logger.warning(f"Resource '{uri}' already registered, overwriting")
        resource = ResourceDefinition(uri, name, description, handler, mime_type)
        self._resources[uri] = resource
        logger.info(f"Registered resource: {uri}")
        return resource

    def register_completion(
        self, reference: str, handler: Handler, reference_type: str = REF_PROMPT
    ) -> CompletionDefinition:
        completion = CompletionDefinition(reference, handler, reference_type)
        self._completions[reference] = completion
        logger.info(f"Registered completion: {reference}")
        return completion

    def register_subscriber(self, uri: str, handler: Handler) -> SubscriberDefinition:
        subscriber = SubscriberDefinition(uri, handler)
        self._subscribers[uri] = subscriber
        return subscriber

    def register_unsubscriber(self, uri: str, handler: Handler) -> SubscriberDefinition:
        unsubscriber = SubscriberDefinition(uri, handler)
        self._unsubscribers[uri] = unsubscriber
        return unsubscriber

    # ---------------------------------------------------------------------
    # Lookup
    # ---------------------------------------------------------------------

    def get_tool(self, name: str) -> ToolDefinition | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def get_prompt(self, name: str) -> PromptDefinition | None:
        return self._prompts.get(name)

    def get_completion(self, reference: str) -> CompletionDefinition | None:
        return self._completions.get(reference)

    def get_subscriber(self, uri: str) -> SubscriberDefinition | None:
        return self._subscribers.get(uri)

    def get_unsubscriber(self, uri: str) -> SubscriberDefinition | None:
        return self._unsubscribers.get(uri)

    def find_resource(
        self, uri: str
    ) -> tuple[ResourceDefinition | ResourceTemplateDefinition | None, dict[str, str]]:
        """Resolve a concrete URI.

        Exact static resources win; otherwise the first template, in
        registration order, that matches. Returns the entry and the extracted
        template variables.
        """
        resource = self._resources.get(uri)
        if resource is not None:
            return resource, {}
        for template in self._templates.values():
            if template.matches(uri):
                return template, template.template.extract(uri)
        return None, {}

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def list_prompts(self) -> list[PromptDefinition]:
        return list(self._prompts.values())

    def list_resources(self) -> list[ResourceDefinition]:
        return list(self._resources.values())

    def list_resource_templates(self) -> list[ResourceTemplateDefinition]:
        return list(self._templates.values())

    # ---------------------------------------------------------------------
    # Providers
    # ---------------------------------------------------------------------

    def load_provider(self, module_path: str) -> bool:
        """
        Load a provider module and register its capabilities.

        Providers are modules with a ``register(registry)`` function. A bare
        name refers to a bundled provider in ``mcp_runtime.providers``; a
        dotted path is imported as-is.
        """
        if module_path in self._providers:
            logger.debug(f"Provider '{module_path}' already loaded")
            return True

        target = module_path if "." in module_path else f"{BUNDLED_PROVIDERS}.{module_path}"
        try:
            module = importlib.import_module(target)
        except ImportError as e:
            logger.warning(f"Could not import provider '{module_path}': {e}")
            return False

        register = getattr(module, "register", None)
        if register is None:
            logger.warning(f"Provider '{module_path}' has no register function")
            return False

        register(self)
        self._providers.add(module_path)
        logger.info(f"Loaded provider: {module_path}")
        return True

    def load_providers(self, module_paths: list[str]) -> dict[str, bool]:
        """Load multiple providers, returning success status for each."""
        results = {}
        for path in module_paths:
            results[path] = self.load_provider(path)
        return results

    @property
    def tool_count(self) -> int:
        """Return the number of registered tools."""
        return len(self._tools)

    @property
    def prompt_count(self) -> int:
        return len(self._prompts)

    @property
    def resource_count(self) -> int:
        """Static resources plus templates."""
        return len(self._resources) + len(self._templates)

    @property
    def provider_count(self) -> int:
        """Return the number of loaded providers."""
        return len(self._providers)


# Global registry instance
_registry: CapabilityRegistry | None = None


def get_registry() -> CapabilityRegistry:
    """Get the global capability registry, creating it if necessary."""
    global _registry
    if _registry is None:
        _registry = CapabilityRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (useful for testing)."""
    global _registry
    _registry = None
