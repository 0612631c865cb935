"""
Pattern Server Dispatcher

Transport-independent request handling for a pattern server. The FastMCP
binding in pattern_tools.py forwards every protocol request here.

Every operation first calls ensure_ready(), which populates the catalog the
first time and is a no-op afterwards. Resource reads and prompt lookups
raise on failure; tool calls never raise and return an isError envelope
instead.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from manifest_index import Complexity, DependencyValidator, ManifestIndex, load_manifest
from pattern_errors import InvalidArgumentsError, InvalidURIError, NotFoundError
from prompt_templates import PromptRegistry
from resource_store import ResourceGroup, ResourceStore
from response_composer import ResponseComposer
from search_engine import SearchEngine
from server_config import ServerConfig, build_groups

logger = logging.getLogger(__name__)


class CatalogState(str, Enum):
    UNINITIALIZED = "uninitialized"
    POPULATING = "populating"
    READY = "ready"


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}, "required": []})

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


def _schema(properties: Optional[Dict[str, Any]] = None, required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {"type": "object", "properties": properties or {}, "required": required or []}


_NAME = {"type": "string", "description": "Resource name (e.g., multi-step-forms)"}

TOOL_DEFINITIONS: List[ToolDefinition] = [
    ToolDefinition(
        name="get_overview",
        description="Get a complete overview of the server, its categories and all available resources",
    ),
    ToolDefinition(
        name="get_quick_reference",
        description="Get the quick reference guide for the key patterns of this server",
    ),
    ToolDefinition(
        name="get_resource",
        description="Get one resource with its metadata and full content",
        input_schema=_schema({
            "name": _NAME,
            "sections": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Top-level content sections to extract (e.g., bestPractices, examples)",
            },
        }, ["name"]),
    ),
    ToolDefinition(
        name="get_resources",
        description="Get several resources at once; unknown names are reported, not fatal",
        input_schema=_schema({
            "names": {"type": "array", "items": {"type": "string"}, "description": "Resource names"},
        }, ["names"]),
    ),
    ToolDefinition(
        name="get_category",
        description="List the resources of one category with their metadata",
        input_schema=_schema({
            "category": {"type": "string", "description": "Category name (see get_overview)"},
        }, ["category"]),
    ),
    ToolDefinition(
        name="list_by_tag",
        description="List resources carrying a tag",
        input_schema=_schema({"tag": {"type": "string", "description": "Tag to filter by"}}, ["tag"]),
    ),
    ToolDefinition(
        name="list_by_complexity",
        description="List resources at a complexity level",
        input_schema=_schema({
            "complexity": {
                "type": "string",
                "enum": [c.value for c in Complexity],
                "description": "Complexity level",
            },
        }, ["complexity"]),
    ),
    ToolDefinition(
        name="search_patterns",
        description="Search patterns by keyword, optionally filtered by category and complexity",
        input_schema=_schema({
            "query": {"type": "string", "description": "Search query for patterns, components, or workflows"},
            "category": {"type": "string", "description": "Filter by specific category"},
            "complexity": {
                "type": "string",
                "enum": [c.value for c in Complexity],
                "description": "Filter by complexity level",
            },
        }, ["query"]),
    ),
    ToolDefinition(
        name="get_resource_metadata",
        description="Get the manifest metadata of a resource, including availability and dependency status",
        input_schema=_schema({"name": _NAME}, ["name"]),
    ),
    ToolDefinition(
        name="validate_dependencies",
        description="Check whether the declared dependencies of a resource are available",
        input_schema=_schema({"name": _NAME}, ["name"]),
    ),
    ToolDefinition(
        name="get_bundle",
        description="Get a resource together with all of its (transitive) dependencies",
        input_schema=_schema({"name": _NAME}, ["name"]),
    ),
    ToolDefinition(
        name="get_assembly",
        description="Get a named assembly of related resources defined by this server",
        input_schema=_schema({
            "name": {"type": "string", "description": "Assembly name (see get_quick_reference)"},
        }, ["name"]),
    ),
]

_JSON_TYPES = {
    "string": str,
    "array": list,
    "object": dict,
    "boolean": bool,
    "integer": int,
    "number": (int, float),
}


def validate_arguments(definition: ToolDefinition, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check tool arguments against the tool's input schema.

    Only the schema features the tool table uses are checked: required keys,
    primitive types, array item types and enums. Unknown keys are dropped.

    Raises:
        InvalidArgumentsError: on the first violation
    """
    schema = definition.input_schema
    properties = schema.get("properties", {})

    if not isinstance(args, dict):
        raise InvalidArgumentsError(definition.name, "arguments must be an object")

    missing = [key for key in schema.get("required", []) if args.get(key) in (None, "")]
    if missing:
        raise InvalidArgumentsError(definition.name, f"missing required argument(s): {', '.join(missing)}")

    cleaned = {}
    for key, value in args.items():
        if key not in properties or value is None:
            continue
        prop = properties[key]
        expected = _JSON_TYPES.get(prop.get("type"))
        if expected and not isinstance(value, expected):
            raise InvalidArgumentsError(definition.name, f"'{key}' must be of type {prop['type']}")
        item_type = _JSON_TYPES.get(prop.get("items", {}).get("type"))
        if item_type and not all(isinstance(item, item_type) for item in value):
            raise InvalidArgumentsError(definition.name, f"'{key}' items must be of type {prop['items']['type']}")
        if "enum" in prop and value not in prop["enum"]:
            raise InvalidArgumentsError(
                definition.name, f"'{key}' must be one of: {', '.join(map(str, prop['enum']))}"
            )
        cleaned[key] = value
    return cleaned


# ============================================================================
# Catalog Context
# ============================================================================

@dataclass
class PatternCatalog:
    """Everything one pattern server instance serves, wired together."""
    config: ServerConfig
    store: ResourceStore
    manifest: ManifestIndex
    prompts: PromptRegistry
    validator: DependencyValidator = field(init=False)
    search: SearchEngine = field(init=False)
    composer: ResponseComposer = field(init=False)

    def __post_init__(self):
        self.validator = DependencyValidator(self.manifest, self.store)
        self.search = SearchEngine(self.store, self.manifest, self.validator)
        self.composer = ResponseComposer(self.store, self.manifest, self.validator, self.config)


def build_catalog(config: ServerConfig, groups: Optional[List[ResourceGroup]] = None) -> PatternCatalog:
    """
    Wire a catalog for a server profile.

    Args:
        config: Loaded server profile
        groups: Resource groups to use instead of the profile's own

    Returns:
        Unpopulated PatternCatalog
    """
    return PatternCatalog(
        config=config,
        store=ResourceStore(groups if groups is not None else build_groups(config)),
        manifest=load_manifest(config.manifest_path),
        prompts=PromptRegistry.from_config(config.prompts, config.prompts_dir),
    )


# ============================================================================
# Dispatcher
# ============================================================================

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class PatternDispatcher:
    def __init__(self, catalog: PatternCatalog):
        self.catalog = catalog
        self.state = CatalogState.UNINITIALIZED
        self._populate_lock = asyncio.Lock()
        self._uri_pattern = re.compile(rf"^{re.escape(catalog.config.scheme)}://resource/(.+)$")
        self._tool_definitions: Dict[str, ToolDefinition] = {t.name: t for t in TOOL_DEFINITIONS}

        self._handlers: Dict[str, ToolHandler] = {
            "get_overview": self._get_overview,
            "get_quick_reference": self._get_quick_reference,
            "get_resource": self._get_resource,
            "get_resources": self._get_resources,
            "get_category": self._get_category,
            "list_by_tag": self._list_by_tag,
            "list_by_complexity": self._list_by_complexity,
            "search_patterns": self._search_patterns,
            "get_resource_metadata": self._get_resource_metadata,
            "validate_dependencies": self._validate_dependencies,
            "get_bundle": self._get_bundle,
            "get_assembly": self._get_assembly,
        }

        if set(self._handlers) != set(self._tool_definitions):
            raise ValueError(
                "Tool handlers and tool definitions disagree: "
                f"{sorted(set(self._handlers) ^ set(self._tool_definitions))}"
            )

    @property
    def composer(self) -> ResponseComposer:
        return self.catalog.composer

    async def ensure_ready(self) -> None:
        """
        Populate the catalog once.

        Concurrent first callers wait on the same population instead of
        starting their own.
        """
        if self.state is CatalogState.READY:
            return

        async with self._populate_lock:
            if self.state is CatalogState.READY:
                return

            logger.info(f"Initializing {self.catalog.config.name}...")
            self.state = CatalogState.POPULATING
            try:
                await self.catalog.store.populate()
            except Exception:
                self.state = CatalogState.UNINITIALIZED
                raise
            self.state = CatalogState.READY
            logger.info(f"{self.catalog.config.name} ready")

    # ------------------------------------------------------------------
    # URIs
    # ------------------------------------------------------------------

    def resource_uri(self, name: str) -> str:
        return f"{self.catalog.config.scheme}://resource/{name}"

    def parse_uri(self, uri: str) -> str:
        """
        Extract the resource name from <scheme>://resource/<name>.

        Raises:
            InvalidURIError: if the URI does not match this server's pattern
        """
        match = self._uri_pattern.match(uri or "")
        if not match:
            raise InvalidURIError(uri)
        return match.group(1)

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def list_resources(self) -> Dict[str, Any]:
        await self.ensure_ready()

        resources = []
        for name, resource in self.catalog.store.get_all():
            entry = self.catalog.manifest.describe(name)
            summary = self.composer.summary(name)
            annotations = {}
            if entry is not None:
                annotations = {
                    "category": summary["category"],
                    "complexity": summary["complexity"],
                    "tags": summary["tags"],
                }
            resources.append({
                "uri": self.resource_uri(name),
                "name": summary["title"],
                "description": summary["description"],
                "mimeType": resource.mime_type,
                "annotations": annotations,
            })
        return {"resources": resources}

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        """
        Read one resource.

        Raises:
            InvalidURIError: malformed URI
            NotFoundError: no resource with that name
        """
        await self.ensure_ready()

        name = self.parse_uri(uri)
        resource = self.catalog.store.get(name)
        if isinstance(resource.payload, str):
            text = resource.payload
        else:
            text = json.dumps(resource.payload, indent=2)
        return {"contents": [{"uri": uri, "mimeType": resource.mime_type, "text": text}]}

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def tool_definitions(self) -> List[ToolDefinition]:
        return list(self._tool_definitions.values())

    def list_tools(self) -> Dict[str, Any]:
        return {"tools": [t.to_dict() for t in self._tool_definitions.values()]}

    async def call_tool(self, name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a tool.

        Never raises: any failure is returned as {"content": [...], "isError": True}
        whose text is the error body from ResponseComposer.for_error().
        """
        try:
            await self.ensure_ready()

            definition = self._tool_definitions.get(name)
            if definition is None:
                raise NotFoundError("tool", name, list(self._tool_definitions))

            cleaned = validate_arguments(definition, args or {})
            logger.debug(f"Calling tool {name} with {cleaned}")
            result = await self._handlers[name](cleaned)
            return {"content": [{"type": "text", "text": json.dumps(result, indent=2)}]}

        except Exception as e:
            logger.warning(f"Tool {name} failed: {e}")
            error = self.composer.for_error(str(e), name)
            return {
                "content": [{"type": "text", "text": json.dumps(error, indent=2)}],
                "isError": True,
            }

    async def _get_overview(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.composer.for_overview()

    async def _get_quick_reference(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.composer.for_quick_reference()

    async def _get_resource(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.composer.for_resource(args["name"], args.get("sections"))

    async def _get_resources(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.composer.for_resources(args["names"])

    async def _get_category(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.composer.for_category(args["category"])

    async def _list_by_tag(self, args: Dict[str, Any]) -> Dict[str, Any]:
        tag = args["tag"]
        return self.composer.for_listing("tag", tag, self.catalog.manifest.by_tag(tag))

    async def _list_by_complexity(self, args: Dict[str, Any]) -> Dict[str, Any]:
        level = args["complexity"]
        return self.composer.for_listing("complexity", level, self.catalog.manifest.by_complexity(level))

    async def _search_patterns(self, args: Dict[str, Any]) -> Dict[str, Any]:
        query = args["query"]
        results = self.catalog.search.search(query, args.get("category"), args.get("complexity"))
        return self.composer.for_search(query, results)

    async def _get_resource_metadata(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.composer.for_metadata(args["name"])

    async def _validate_dependencies(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.composer.for_dependencies(args["name"])

    async def _get_bundle(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.composer.for_bundle(args["name"])

    async def _get_assembly(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.composer.for_assembly(args["name"])

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def list_prompts(self) -> Dict[str, Any]:
        return {"prompts": [p.to_dict() for p in self.catalog.prompts.list()]}

    async def get_prompt(self, name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Render a prompt.

        Raises:
            NotFoundError: unknown prompt
            InvalidArgumentsError: missing required argument
        """
        await self.ensure_ready()
        return self.catalog.prompts.render(name, args)

    def status(self) -> Dict[str, Any]:
        return {"state": self.state.value, **self.catalog.store.get_stats()}
