"""
Manifest Index and Dependency Validation

The manifest is a static table describing each resource: title, description,
category, tags, complexity and declared dependencies. It is configuration,
not runtime state; nothing here mutates it after loading.

Manifest entries may name resources that never loaded. Such entries are
orphaned metadata: allowed, reported as unavailable, never fatal.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from pattern_errors import ManifestError
from resource_store import ResourceStore

logger = logging.getLogger(__name__)


class Complexity(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    ENTERPRISE = "enterprise"
    FOUNDATIONAL = "foundational"


@dataclass(frozen=True)
class ManifestEntry:
    """Static metadata for one resource."""
    name: str
    title: str
    description: str = ""
    category: str = ""
    tags: Tuple[str, ...] = ()
    complexity: Optional[Complexity] = None
    dependencies: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DependencyReport:
    """Advisory result of a dependency check. Never raised."""
    valid: bool
    missing: List[str] = field(default_factory=list)
    declared: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "missing": list(self.missing), "declared": list(self.declared)}


def _unique(values) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(values))


class ManifestIndex:
    """Read-only lookups over the manifest table. Results follow manifest order."""

    def __init__(self, entries: Optional[List[ManifestEntry]] = None):
        self._entries: Dict[str, ManifestEntry] = {}
        for entry in entries or []:
            if entry.name in self._entries:
                raise ManifestError(f"Duplicate manifest entry: {entry.name}")
            self._entries[entry.name] = entry

    def describe(self, name: str) -> Optional[ManifestEntry]:
        return self._entries.get(name)

    def by_category(self, category: str) -> List[str]:
        return [e.name for e in self._entries.values() if e.category == category]

    def by_tag(self, tag: str) -> List[str]:
        return [e.name for e in self._entries.values() if tag in e.tags]

    def by_complexity(self, level: Union[Complexity, str]) -> List[str]:
        try:
            level = Complexity(level)
        except ValueError:
            return []
        return [e.name for e in self._entries.values() if e.complexity == level]

    def names(self) -> List[str]:
        return list(self._entries.keys())

    def entries(self) -> List[ManifestEntry]:
        return list(self._entries.values())

    def categories(self) -> List[str]:
        return list(_unique(e.category for e in self._entries.values() if e.category))

    def tags(self) -> List[str]:
        return list(_unique(tag for e in self._entries.values() for tag in e.tags))

    def complexity_levels(self) -> List[str]:
        return list(_unique(e.complexity.value for e in self._entries.values() if e.complexity))

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def parse_manifest_entry(name: str, fields: Dict[str, Any]) -> ManifestEntry:
    """
    Build a ManifestEntry from its manifest.yaml fields.

    Raises:
        ManifestError: if a field has the wrong shape or an unknown complexity
    """
    if not isinstance(fields, dict):
        raise ManifestError(f"Manifest entry '{name}' must be a mapping")

    tags = fields.get("tags") or []
    dependencies = fields.get("dependencies") or []
    for key, value in (("tags", tags), ("dependencies", dependencies)):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ManifestError(f"Manifest entry '{name}': {key} must be a list of strings")

    complexity = fields.get("complexity")
    if complexity is not None:
        try:
            complexity = Complexity(complexity)
        except ValueError:
            valid = ", ".join(c.value for c in Complexity)
            raise ManifestError(
                f"Manifest entry '{name}': unknown complexity '{complexity}' (expected one of: {valid})"
            )

    return ManifestEntry(
        name=name,
        title=str(fields.get("title") or name),
        description=str(fields.get("description") or ""),
        category=str(fields.get("category") or ""),
        tags=_unique(tags),
        complexity=complexity,
        dependencies=_unique(dependencies),
    )


def load_manifest(path: Path) -> ManifestIndex:
    """
    Load a manifest.yaml file.

    The file is a mapping of resource name to entry fields. A missing file
    yields an empty manifest.

    Args:
        path: Path to manifest.yaml

    Returns:
        ManifestIndex over the parsed entries
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"No manifest found at {path.name}, resources will be unannotated")
        return ManifestIndex()

    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ManifestError(f"Manifest {path.name} is not valid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise ManifestError(f"Manifest {path.name} must map resource names to entries")

    index = ManifestIndex([parse_manifest_entry(name, fields) for name, fields in raw.items()])
    logger.info(f"Loaded manifest with {len(index)} entries")
    return index


class DependencyValidator:
    """
    Checks declared dependencies against the loaded store.

    Advisory only: a resource with missing dependencies is still served, the
    gap is surfaced through metadata queries.
    """

    def __init__(self, manifest: ManifestIndex, store: ResourceStore):
        self.manifest = manifest
        self.store = store

    def validate(self, name: str) -> DependencyReport:
        entry = self.manifest.describe(name)
        if entry is None or not entry.dependencies:
            return DependencyReport(valid=True, missing=[], declared=[])

        declared = list(entry.dependencies)
        missing = [dep for dep in declared if not self.store.has(dep)]
        return DependencyReport(valid=not missing, missing=missing, declared=declared)

    def metadata(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Annotated metadata for a manifest entry.

        Returns:
            Metadata dict with dependency report and availability, or None
            when the name has no manifest entry
        """
        entry = self.manifest.describe(name)
        if entry is None:
            return None

        return {
            "name": entry.name,
            "title": entry.title,
            "description": entry.description,
            "category": entry.category,
            "tags": list(entry.tags),
            "complexity": entry.complexity.value if entry.complexity else None,
            "dependencies": self.validate(name).to_dict(),
            "available": self.store.has(name),
        }

    def orphaned(self) -> List[str]:
        """Manifest names with no loaded resource."""
        return [name for name in self.manifest.names() if not self.store.has(name)]
