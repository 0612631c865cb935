#!/usr/bin/env python3
"""
MCP Pattern Server - Entry Point

An MCP server that hands AI agents the reference patterns of one profile:
business models, configuration systems, component templates and the
documentation that goes with them.

This server provides:
- Resources: one per catalog entry under <scheme>://resource/<name>
- Tools: overview, lookup, search and dependency queries over the catalog
- Prompts: Jinja2 prompt templates declared by the profile

Transport: HTTP (Streamable HTTP via FastMCP) or stdio

Tool implementations are in pattern_dispatcher.py, the FastMCP binding in
pattern_tools.py
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Tuple

from fastmcp import FastMCP

from pattern_dispatcher import PatternDispatcher, build_catalog
from pattern_errors import ConfigError
from pattern_tools import register_prompts, register_resources, register_tools
from server_config import ServerConfig, list_profiles, load_server_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s:     %(message)s',
    handlers=[logging.StreamHandler(sys.stderr)]
)
logger = logging.getLogger(__name__)

# Suppress noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)

# Custom filter to exclude health check endpoints from access logs
class HealthCheckFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Exclude health check paths from access logs
        return not any(path in record.getMessage() for path in ["/healthz", "/readyz", "/health"])

# ============================================================================
# FastMCP Server
# ============================================================================

INSTRUCTIONS = """
You are a pattern reference server for {name}. {description}

Available tools:
- get_overview: Server statistics, categories and every available resource
- get_quick_reference: The key patterns at a glance
- search_patterns: Keyword search with optional category and complexity filters
- get_resource / get_resources: Full resource content
- get_category, list_by_tag, list_by_complexity: Browse the catalog
- get_resource_metadata, validate_dependencies: Manifest metadata and dependency status
- get_bundle: A resource with everything it depends on
- get_assembly: Curated groups of resources

When looking for a pattern:
1. Use get_overview or search_patterns to find candidates
2. Use get_resource (optionally with sections) to read one
3. Use get_bundle when you also need its dependencies
"""


async def build_server(config: ServerConfig) -> Tuple[FastMCP, PatternDispatcher]:
    """
    Create the FastMCP instance for a profile and register everything on it.

    Args:
        config: Loaded server profile

    Returns:
        (mcp, dispatcher)
    """
    dispatcher = PatternDispatcher(build_catalog(config))
    mcp = FastMCP(
        config.name,
        instructions=INSTRUCTIONS.format(name=config.name, description=config.description),
    )

    await register_resources(mcp, dispatcher)
    register_tools(mcp, dispatcher)
    register_prompts(mcp, dispatcher)
    return mcp, dispatcher

# ============================================================================
# Server Entry Point
# ============================================================================

def run_http_transport(mcp: FastMCP, dispatcher: PatternDispatcher, port: int = 4208, host: str = "0.0.0.0"):
    """Run the MCP server with HTTP transport."""
    import uvicorn
    from starlette.responses import JSONResponse

    server_name = dispatcher.catalog.config.name

    async def health_check(request):
        """Health check endpoint."""
        return JSONResponse({"status": "healthy", "server": server_name})

    async def liveness_check(request):
        """Kubernetes liveness probe endpoint."""
        return JSONResponse({"status": "alive"})

    async def readiness_check(request):
        """Kubernetes readiness probe endpoint."""
        status = dispatcher.status()
        ready = status["state"] == "ready"
        return JSONResponse(
            {"status": "ready" if ready else "not ready", **status},
            status_code=200 if ready else 503,
        )

    app = mcp.http_app(transport="http", path="/mcp")

    # Add health check routes
    app.add_route("/health", health_check, methods=["GET"])
    app.add_route("/healthz", liveness_check, methods=["GET"])
    app.add_route("/readyz", readiness_check, methods=["GET"])

    stats = dispatcher.status()
    logger.info("")
    logger.info("=" * 80)
    logger.info("Server Configuration:")
    logger.info("=" * 80)
    logger.info(f"  Profile: {server_name}")
    logger.info(f"  Listening on: {host}:{port}")
    logger.info(f"  MCP Endpoint: /mcp")
    logger.info(f"  Resources: {stats['resource_count']} from {stats['group_count']} groups")
    if stats["failed_groups"]:
        logger.info(f"  Failed groups: {', '.join(stats['failed_groups'])}")
    logger.info("=" * 80)
    logger.info("")
    logger.info("To test:")
    logger.info(f"  ./test/test-mcp.py --url http://{host}:{port}/mcp")
    logger.info("")

    # Add health check filter to uvicorn access logger
    logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter())

    uvicorn.run(app, host=host, port=port, log_level="info", ws="none")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="MCP Pattern Server - Serves reference patterns to AI agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run HTTP server with the default profile
  mcp-pattern-server --port 4208

  # Run another profile over stdio
  mcp-pattern-server --profile crm-template-base --transport stdio

  # Show the profiles that can be served
  mcp-pattern-server --list-profiles

Environment Variables:
  PORT                          Default HTTP port (default: 4208)
  HOST                          Default host binding (default: 0.0.0.0)
  PATTERN_SERVER_PROFILE        Default profile (default: erp-business-patterns)
  PATTERN_SERVER_PROFILES_DIR   Directory holding the profiles
  LOG_LEVEL                     Default log level (default: INFO)
        """
    )

    parser.add_argument(
        "--profile",
        default=os.environ.get("PATTERN_SERVER_PROFILE"),
        help="Server profile to serve (default: erp-business-patterns)"
    )
    parser.add_argument(
        "--profiles-dir",
        default=os.environ.get("PATTERN_SERVER_PROFILES_DIR"),
        help="Directory holding the server profiles"
    )
    parser.add_argument(
        "--transport",
        choices=["http", "stdio"],
        default="http",
        help="Transport to serve on (default: http)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", 4208)),
        help="HTTP server port (default: 4208)"
    )
    parser.add_argument(
        "--host",
        default=os.environ.get("HOST", "0.0.0.0"),
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.environ.get("LOG_LEVEL", "INFO").upper(),
        help="Log level (default: INFO)"
    )
    parser.add_argument(
        "--list-profiles",
        action="store_true",
        help="List available profiles and exit"
    )

    args = parser.parse_args()
    logging.getLogger().setLevel(args.log_level)

    if args.list_profiles:
        for name in list_profiles(args.profiles_dir):
            print(name)
        return

    try:
        config = load_server_config(args.profile, args.profiles_dir)
        mcp, dispatcher = asyncio.run(build_server(config))
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    try:
        if args.transport == "stdio":
            mcp.run(transport="stdio")
        else:
            run_http_transport(mcp, dispatcher, port=args.port, host=args.host)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
