"""
Pattern Server - FastMCP Binding

Registers the dispatcher's resources, tools and prompts on a FastMCP
instance. All behaviour lives in PatternDispatcher; the functions here only
translate between FastMCP's decorators and the dispatcher's dict results.

The mcp instance is passed in via register_*() to avoid circular imports.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from fastmcp.exceptions import ToolError
from fastmcp.prompts.prompt import Prompt
from fastmcp.prompts.prompt import PromptArgument as MCPPromptArgument
from mcp.types import PromptMessage, TextContent
from pydantic import Field

from pattern_dispatcher import PatternDispatcher

logger = logging.getLogger(__name__)

ComplexityLevel = Literal["basic", "intermediate", "advanced", "enterprise", "foundational"]


# ============================================================================
# Resource Registration
# ============================================================================

def _resource_reader(dispatcher: PatternDispatcher, uri: str):
    async def read() -> str:
        result = await dispatcher.read_resource(uri)
        return result["contents"][0]["text"]
    return read


async def register_resources(mcp, dispatcher: PatternDispatcher) -> int:
    """
    Register every catalog resource with the MCP server instance.

    The catalog is populated first so FastMCP can list concrete resources.
    A URI template catches names that are not in the catalog; reading one
    fails with the dispatcher's not-found message.

    Args:
        mcp: FastMCP server instance
        dispatcher: Dispatcher for this server profile

    Returns:
        Number of concrete resources registered
    """
    listing = await dispatcher.list_resources()

    for item in listing["resources"]:
        annotations = item["annotations"]
        tags = set(annotations.get("tags") or [])
        if annotations.get("category"):
            tags.add(annotations["category"])
        if annotations.get("complexity"):
            tags.add(annotations["complexity"])

        mcp.resource(
            item["uri"],
            name=item["name"],
            description=item["description"] or None,
            mime_type=item["mimeType"],
            tags=tags,
        )(_resource_reader(dispatcher, item["uri"]))

    scheme = dispatcher.catalog.config.scheme

    @mcp.resource(
        f"{scheme}://resource/{{name*}}",
        name="resource-by-name",
        description=f"Any {dispatcher.catalog.config.name} resource by name",
    )
    async def read_resource_by_name(name: str) -> str:
        result = await dispatcher.read_resource(dispatcher.resource_uri(name))
        return result["contents"][0]["text"]

    logger.info(f"Registered {len(listing['resources'])} resources under {scheme}://resource/")
    return len(listing["resources"])


# ============================================================================
# Tool Registration
# ============================================================================

def register_tools(mcp, dispatcher: PatternDispatcher):
    """
    Register all tools with the MCP server instance.

    Each wrapper forwards its arguments to PatternDispatcher.call_tool(). An
    error envelope is re-raised as ToolError so the client sees isError with
    the same JSON body.

    Args:
        mcp: FastMCP server instance
        dispatcher: Dispatcher for this server profile
    """
    definitions = {d.name: d for d in dispatcher.tool_definitions()}
    registered: List[str] = []

    def tool(name: str):
        registered.append(name)
        return mcp.tool(name=name, description=definitions[name].description)

    async def call(tool_name: str, /, **kwargs) -> str:
        args = {k: v for k, v in kwargs.items() if v is not None}
        result = await dispatcher.call_tool(tool_name, args)
        text = result["content"][0]["text"]
        if result.get("isError"):
            raise ToolError(text)
        return text

    @tool("get_overview")
    async def get_overview() -> str:
        return await call("get_overview")

    @tool("get_quick_reference")
    async def get_quick_reference() -> str:
        return await call("get_quick_reference")

    @tool("get_resource")
    async def get_resource(name: str, sections: Optional[List[str]] = None) -> str:
        return await call("get_resource", name=name, sections=sections)

    @tool("get_resources")
    async def get_resources(names: List[str]) -> str:
        return await call("get_resources", names=names)

    @tool("get_category")
    async def get_category(category: str) -> str:
        return await call("get_category", category=category)

    @tool("list_by_tag")
    async def list_by_tag(tag: str) -> str:
        return await call("list_by_tag", tag=tag)

    @tool("list_by_complexity")
    async def list_by_complexity(complexity: ComplexityLevel) -> str:
        return await call("list_by_complexity", complexity=complexity)

    @tool("search_patterns")
    async def search_patterns(
        query: str,
        category: Optional[str] = None,
        complexity: Optional[ComplexityLevel] = None
    ) -> str:
        return await call("search_patterns", query=query, category=category, complexity=complexity)

    @tool("get_resource_metadata")
    async def get_resource_metadata(name: str) -> str:
        return await call("get_resource_metadata", name=name)

    @tool("validate_dependencies")
    async def validate_dependencies(name: str) -> str:
        return await call("validate_dependencies", name=name)

    @tool("get_bundle")
    async def get_bundle(name: str) -> str:
        return await call("get_bundle", name=name)

    @tool("get_assembly")
    async def get_assembly(name: str) -> str:
        return await call("get_assembly", name=name)

    if set(registered) != set(definitions):
        raise ValueError(
            f"FastMCP tools and tool definitions disagree: {sorted(set(registered) ^ set(definitions))}"
        )


# ============================================================================
# Prompt Registration
# ============================================================================

class CatalogPrompt(Prompt):
    """A profile prompt rendered by the dispatcher."""

    dispatcher: Any = Field(exclude=True)

    async def render(self, arguments: Optional[Dict[str, Any]] = None) -> List[PromptMessage]:
        result = await self.dispatcher.get_prompt(self.name, arguments)
        return [
            PromptMessage(
                role=message["role"],
                content=TextContent(type="text", text=message["content"]["text"]),
            )
            for message in result["messages"]
        ]


def register_prompts(mcp, dispatcher: PatternDispatcher) -> int:
    """Register every profile prompt with the MCP server instance."""
    prompts = dispatcher.list_prompts()["prompts"]
    for spec in prompts:
        mcp.add_prompt(CatalogPrompt(
            name=spec["name"],
            description=spec["description"],
            arguments=[
                MCPPromptArgument(name=a["name"], description=a["description"], required=a["required"])
                for a in spec["arguments"]
            ],
            dispatcher=dispatcher,
        ))
    return len(prompts)
