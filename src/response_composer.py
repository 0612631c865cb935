"""
Response Composition

Builds the JSON-serializable bodies returned by the pattern tools. Every
function here is a read-only view over the catalog; lookups of unknown
names raise NotFoundError and the dispatcher turns that into an error
envelope with for_error().
"""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from manifest_index import DependencyValidator, ManifestIndex
from pattern_errors import NotFoundError
from resource_store import ResourceStore
from search_engine import SearchResult, resource_description, resource_title
from server_config import ServerConfig

NOT_FOUND_SUGGESTION = "Use the get_overview tool to see all available resources"


class ResponseComposer:
    def __init__(
        self,
        store: ResourceStore,
        manifest: ManifestIndex,
        validator: DependencyValidator,
        config: ServerConfig,
    ):
        self.store = store
        self.manifest = manifest
        self.validator = validator
        self.config = config

    def summary(self, name: str) -> Dict[str, Any]:
        """Title/description/annotations for a name that may or may not be loaded."""
        entry = self.manifest.describe(name)
        available = self.store.has(name)
        if available:
            resource = self.store.get(name)
            title = resource_title(resource, entry) or name
            description = resource_description(resource, entry)
        else:
            title = entry.title if entry else name
            description = entry.description if entry else ""

        return {
            "name": name,
            "title": title,
            "description": description,
            "category": entry.category if entry else None,
            "complexity": entry.complexity.value if entry and entry.complexity else None,
            "tags": list(entry.tags) if entry else [],
            "available": available,
        }

    def for_resource(self, name: str, sections: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Single resource with its annotations and full payload.

        Args:
            name: Resource name
            sections: Top-level payload keys to lift into a "sections" field
        """
        resource = self.store.get(name)
        summary = self.summary(name)
        response = {
            "name": name,
            "resource": summary["title"],
            "description": summary["description"],
            "category": summary["category"],
            "complexity": summary["complexity"],
            "tags": summary["tags"],
            "mimeType": resource.mime_type,
            "content": resource.payload,
        }

        if sections:
            payload = resource.payload if isinstance(resource.payload, dict) else {}
            response["sections"] = {key: payload[key] for key in sections if key in payload}
            missing = [key for key in sections if key not in payload]
            if missing:
                response["missingSections"] = missing

        return response

    def for_resources(self, names: List[str]) -> Dict[str, Any]:
        responses = []
        errors = []
        for name in names:
            try:
                responses.append(self.for_resource(name))
            except NotFoundError as e:
                errors.append({"resource": name, "error": str(e)})

        response = {"resources": responses, "count": len(responses)}
        if errors:
            response["errors"] = errors
        return response

    def for_search(self, query: str, results: List[SearchResult]) -> Dict[str, Any]:
        items = []
        for result in results:
            summary = self.summary(result.name)
            items.append({
                "name": result.name,
                "resource": summary["title"],
                "description": summary["description"],
                "category": summary["category"],
                "tags": summary["tags"],
                "complexity": summary["complexity"],
                "relevance": result.relevance,
            })
        return {"query": query, "results": items, "count": len(items)}

    def for_category(self, category: str) -> Dict[str, Any]:
        categories = self.manifest.categories()
        if category not in categories:
            raise NotFoundError("category", category, categories)

        names = [name for name in self.manifest.by_category(category) if self.store.has(name)]
        resources = []
        for name in names:
            summary = self.summary(name)
            resources.append({
                "name": name,
                "title": summary["title"],
                "description": summary["description"],
                "metadata": self.validator.metadata(name),
            })
        return {"category": category, "resources": resources, "count": len(resources)}

    def for_listing(self, kind: str, value: str, names: List[str]) -> Dict[str, Any]:
        resources = [self.summary(name) for name in names]
        return {
            kind: value,
            "resources": resources,
            "count": len(resources),
            "availableCount": sum(1 for r in resources if r["available"]),
        }

    def for_overview(self) -> Dict[str, Any]:
        categories = self.manifest.categories()
        orphaned = self.validator.orphaned()
        load_errors = self.store.load_errors()

        overview = {
            "server": {
                "name": self.config.name,
                "version": self.config.version,
                "description": self.config.description,
                "metadata": self.config.metadata,
            },
            "statistics": {
                "totalResources": len(self.store),
                "categories": len(categories),
                "tags": len(self.manifest.tags()),
                "complexityLevels": len(self.manifest.complexity_levels()),
                "failedGroups": len({err["group"] for err in load_errors}),
                "orphanedEntries": len(orphaned),
            },
            "categories": [
                {
                    "name": category,
                    "count": sum(1 for n in self.manifest.by_category(category) if self.store.has(n)),
                }
                for category in categories
            ],
            "resources": [],
        }

        for name, _ in self.store.get_all():
            summary = self.summary(name)
            summary.pop("available")
            overview["resources"].append(summary)

        if orphaned:
            overview["orphanedEntries"] = orphaned
        if load_errors:
            overview["loadErrors"] = load_errors
        return overview

    def for_quick_reference(self) -> Dict[str, Any]:
        reference = copy.deepcopy(self.config.quick_reference)
        for items in reference.values():
            if not isinstance(items, list):
                continue
            for item in items:
                if isinstance(item, dict) and "key" in item:
                    item["available"] = self.store.has(item["key"])
        return {"server": self.config.name, **reference}

    def for_metadata(self, name: str) -> Dict[str, Any]:
        metadata = self.validator.metadata(name)
        if metadata is not None:
            return metadata
        if not self.store.has(name):
            raise NotFoundError("resource", name, self.store.names())

        summary = self.summary(name)
        summary["dependencies"] = self.validator.validate(name).to_dict()
        return summary

    def for_dependencies(self, name: str) -> Dict[str, Any]:
        if not self.store.has(name) and name not in self.manifest:
            raise NotFoundError("resource", name, self.store.names())

        report = self.validator.validate(name)
        return {"resource": name, "available": self.store.has(name), **report.to_dict()}

    def for_bundle(self, name: str) -> Dict[str, Any]:
        """
        A resource together with everything it depends on.

        Dependencies are followed transitively in declaration order; the ones
        that are not loaded are listed under "missing" instead of failing.
        """
        root = self.for_resource(name)

        ordered: List[str] = []
        missing: List[str] = []
        seen = {name}
        pending = list(self.validator.validate(name).declared)
        while pending:
            dep = pending.pop(0)
            if dep in seen:
                continue
            seen.add(dep)
            if not self.store.has(dep):
                missing.append(dep)
                continue
            ordered.append(dep)
            pending.extend(self.validator.validate(dep).declared)

        return {
            "resource": root,
            "dependencies": [self.for_resource(dep) for dep in ordered],
            "validation": {"valid": not missing, "missing": missing, "resolved": ordered},
        }

    def for_assembly(self, name: str) -> Dict[str, Any]:
        assembly = self.config.assemblies.get(name)
        if assembly is None:
            raise NotFoundError("assembly", name, list(self.config.assemblies))

        members = list(assembly.get("resources") or [])
        response = {
            "assembly": name,
            "title": assembly.get("title", name),
            "description": assembly.get("description", ""),
        }
        response.update(self.for_resources(members))
        return response

    def for_error(self, message: str, context: Optional[str] = None) -> Dict[str, Any]:
        error = {
            "error": True,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        if context:
            error["context"] = context

        if "not found" in message:
            error["suggestion"] = NOT_FOUND_SUGGESTION
            error["availableResources"] = self.store.names()

        return error
