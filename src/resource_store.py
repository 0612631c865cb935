"""
Resource Store for Pattern Payloads

Provides in-memory storage for the documentation, configuration snippets and
code templates a pattern server hands out. Payloads are opaque: the store
decodes JSON/YAML files into structures and keeps everything else as text.

Resources are loaded in groups. Each group is a loader registered under a
group id; a group that fails to load is logged and skipped so the rest of
the catalog is still served.

Usage:
    store = ResourceStore([
        ResourceGroup("business", directory_loader(profile / "resources" / "business")),
        ResourceGroup("components", module_loader("my_payloads:COMPONENTS")),
    ])
    await store.populate()

    resource = store.get("multi-step-forms")
    names = store.names()
"""

import asyncio
import importlib
import json
import logging
import warnings
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Tuple

import yaml

from pattern_errors import NotFoundError, PartialLoadWarning

logger = logging.getLogger(__name__)

# Only the most recent load errors are kept
MAX_LOAD_ERRORS = 100

STRUCTURED_MIME_TYPES = ("application/json", "text/x-yaml")


class LoadedPayload(NamedTuple):
    """One payload produced by a group loader."""
    name: str
    payload: Any
    mime_type: str = "application/json"
    source: Optional[str] = None


GroupLoader = Callable[[], Awaitable[List[LoadedPayload]]]


@dataclass(frozen=True)
class Resource:
    """Represents a loaded resource."""
    name: str
    payload: Any
    group: str
    mime_type: str
    loaded_at: datetime
    source: Optional[str] = None

    @property
    def is_structured(self) -> bool:
        return not isinstance(self.payload, str)


@dataclass(frozen=True)
class ResourceGroup:
    """A named loader that contributes resources to the store."""
    group_id: str
    loader: GroupLoader


class ResourceStore:
    """
    In-memory store for pattern resources.

    Resources are keyed by name. Names are unique: a second resource with a
    name that is already loaded is refused and logged. Enumeration follows
    load order.
    """

    def __init__(self, groups: Optional[List[ResourceGroup]] = None):
        self._groups: List[ResourceGroup] = list(groups or [])
        self._resources: Dict[str, Resource] = {}
        self._load_errors: List[Dict[str, str]] = []
        self._populated = False
        self.populate_count = 0

    @property
    def populated(self) -> bool:
        return self._populated

    @property
    def groups(self) -> List[ResourceGroup]:
        return list(self._groups)

    async def populate(self) -> int:
        """
        Load every registered group.

        A failing group is recorded in load_errors and reported with a
        PartialLoadWarning; it never stops the remaining groups. Calling
        populate() on a populated store does nothing.

        Returns:
            Number of resources in the store
        """
        if self._populated:
            return len(self._resources)

        self.populate_count += 1
        for group in self._groups:
            try:
                items = await group.loader()
            except Exception as e:
                self._record_load_error(group.group_id, e)
                continue

            for item in items:
                self._register(group.group_id, item)

        self._populated = True
        failed = len({err["group"] for err in self._load_errors})
        logger.info(
            f"Loaded {len(self._resources)} resources from "
            f"{len(self._groups) - failed}/{len(self._groups)} groups"
        )
        return len(self._resources)

    def _register(self, group_id: str, item: LoadedPayload) -> None:
        if item.name in self._resources:
            existing = self._resources[item.name]
            logger.warning(
                f"Duplicate resource '{item.name}' in group '{group_id}' "
                f"ignored (already loaded from group '{existing.group}')"
            )
            return

        self._resources[item.name] = Resource(
            name=item.name,
            payload=item.payload,
            group=group_id,
            mime_type=item.mime_type,
            loaded_at=datetime.now(timezone.utc),
            source=item.source,
        )

    def _record_load_error(self, group_id: str, error: Exception) -> None:
        logger.warning(f"Could not load resource group '{group_id}': {type(error).__name__}: {error}")
        message = describe_load_error(error)
        warnings.warn(
            PartialLoadWarning(f"Resource group '{group_id}' failed to load: {message}"),
            stacklevel=3,
        )
        self._load_errors.append({
            "group": group_id,
            "error": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        if len(self._load_errors) > MAX_LOAD_ERRORS:
            self._load_errors.pop(0)

    def get(self, name: str) -> Resource:
        """
        Get a resource by name.

        Args:
            name: Resource name

        Returns:
            The loaded Resource

        Raises:
            NotFoundError: if no resource with that name is loaded
        """
        resource = self._resources.get(name)
        if resource is None:
            raise NotFoundError("resource", name, self.names())
        return resource

    def get_all(self) -> List[Tuple[str, Resource]]:
        """List all (name, resource) pairs in load order."""
        return list(self._resources.items())

    def has(self, name: str) -> bool:
        return name in self._resources

    def names(self) -> List[str]:
        return list(self._resources.keys())

    def load_errors(self) -> List[Dict[str, str]]:
        return list(self._load_errors)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get storage statistics.

        Returns:
            Dict with resource_count, group_count, failed_groups and populated
        """
        return {
            "resource_count": len(self._resources),
            "group_count": len(self._groups),
            "failed_groups": sorted({err["group"] for err in self._load_errors}),
            "populated": self._populated,
        }

    def __contains__(self, name: object) -> bool:
        return name in self._resources

    def __len__(self) -> int:
        return len(self._resources)


# ============================================================================
# Group Loaders
# ============================================================================

def get_mime_type_for_path(path: str) -> str:
    """
    Determine MIME type based on file extension.

    Args:
        path: File path

    Returns:
        MIME type string
    """
    ext_map = {
        ".json": "application/json",
        ".yaml": "text/x-yaml",
        ".yml": "text/x-yaml",
        ".md": "text/markdown",
        ".txt": "text/plain",
        ".py": "text/x-python",
        ".tf": "text/x-terraform",
        ".sh": "text/x-shellscript",
        ".j2": "text/x-jinja2",
        ".html": "text/html",
        ".css": "text/css",
        ".js": "text/javascript",
        ".ts": "text/typescript",
        ".tsx": "text/typescript",
        ".toml": "text/x-toml",
        "Dockerfile": "text/x-dockerfile",
        "Makefile": "text/x-makefile",
    }

    # Check for exact filename matches first
    filename = path.split("/")[-1]
    if filename in ext_map:
        return ext_map[filename]

    for ext, mime in ext_map.items():
        if ext.startswith(".") and path.endswith(ext):
            return mime

    return "text/plain"


def describe_load_error(error: Exception) -> str:
    """Client-safe description of a group load failure. OS errors keep only the file name."""
    if isinstance(error, OSError) and error.filename:
        reason = error.strerror or "I/O error"
        return f"{type(error).__name__}: {reason}: {Path(error.filename).name}"
    return f"{type(error).__name__}: {error}"


def read_payload_file(path: Path) -> LoadedPayload:
    """
    Read a single payload file.

    JSON and YAML files are decoded; every other file is returned as text.
    The resource name is the file stem.
    """
    mime_type = get_mime_type_for_path(path.name)
    text = path.read_text(encoding="utf-8")

    if mime_type == "application/json":
        payload = json.loads(text)
    elif mime_type == "text/x-yaml":
        payload = yaml.safe_load(text)
        if isinstance(payload, (dict, list)):
            mime_type = "application/json"
        else:
            # scalar document, serve it as written
            payload = text
    else:
        payload = text

    return LoadedPayload(name=path.stem, payload=payload, mime_type=mime_type, source=path.name)


def directory_loader(directory: Path, prefix: str = "") -> GroupLoader:
    """
    Build a loader that turns every file in a directory into a resource.

    Args:
        directory: Directory holding the payload files
        prefix: Optional name prefix (e.g., "architecture/")

    Returns:
        Async loader for a ResourceGroup
    """
    directory = Path(directory)

    def _read_all() -> List[LoadedPayload]:
        if not directory.is_dir():
            raise FileNotFoundError(f"Resource directory not found: {directory.name}")

        items = []
        for path in sorted(directory.iterdir()):
            if path.name.startswith(".") or not path.is_file():
                continue
            item = read_payload_file(path)
            items.append(item._replace(name=f"{prefix}{item.name}"))
        return items

    async def load() -> List[LoadedPayload]:
        return await asyncio.to_thread(_read_all)

    return load


def module_loader(target: str, prefix: str = "") -> GroupLoader:
    """
    Build a loader that imports a mapping of payloads from a Python module.

    Args:
        target: "package.module:attribute" naming a dict of name -> payload
        prefix: Optional name prefix

    Returns:
        Async loader for a ResourceGroup
    """
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Module target must look like 'module:attribute', got '{target}'")

    async def load() -> List[LoadedPayload]:
        module = importlib.import_module(module_name)
        payloads = getattr(module, attribute)
        items = []
        for name, payload in payloads.items():
            mime_type = "text/markdown" if isinstance(payload, str) else "application/json"
            items.append(LoadedPayload(
                name=f"{prefix}{name}",
                payload=payload,
                mime_type=mime_type,
                source=target,
            ))
        return items

    return load
