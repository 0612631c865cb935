"""
Pattern Search

Case-insensitive substring search over the catalog with an additive
relevance score. The weights are fixed so results stay comparable across
server profiles:

    name equals query       100
    name contains query      75
    title contains query     50
    description contains     25
    any tag contains         15
    category contains        10

Only name, title, description and tag matches admit an entry; a category
match adds to the score of an admitted entry.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from manifest_index import DependencyValidator, ManifestEntry, ManifestIndex
from resource_store import Resource, ResourceStore

EXACT_NAME_WEIGHT = 100
NAME_WEIGHT = 75
TITLE_WEIGHT = 50
DESCRIPTION_WEIGHT = 25
TAG_WEIGHT = 15
CATEGORY_WEIGHT = 10


@dataclass
class SearchResult:
    """A ranked match. Derived on each search, never stored."""
    name: str
    resource: Resource
    metadata: Optional[Dict[str, Any]]
    relevance: int


def resource_title(resource: Resource, entry: Optional[ManifestEntry]) -> str:
    """Manifest title, else the payload's own name field."""
    if entry is not None:
        return entry.title
    if isinstance(resource.payload, dict) and isinstance(resource.payload.get("name"), str):
        return resource.payload["name"]
    return ""


def resource_description(resource: Resource, entry: Optional[ManifestEntry]) -> str:
    """Manifest description, else the payload's own description field."""
    if entry is not None and entry.description:
        return entry.description
    if isinstance(resource.payload, dict) and isinstance(resource.payload.get("description"), str):
        return resource.payload["description"]
    return ""


class SearchEngine:
    def __init__(self, store: ResourceStore, manifest: ManifestIndex, validator: DependencyValidator):
        self.store = store
        self.manifest = manifest
        self.validator = validator

    @staticmethod
    def score(query: str, name: str, resource: Resource, entry: Optional[ManifestEntry]) -> int:
        """
        Relevance of one catalog entry for a query.

        Returns 0 when neither name, title, description nor any tag contains
        the query.
        """
        q = query.lower()
        tags = entry.tags if entry is not None else ()
        category = entry.category if entry is not None else ""

        score = 0
        if name.lower() == q:
            score += EXACT_NAME_WEIGHT
        if q in name.lower():
            score += NAME_WEIGHT
        if q in resource_title(resource, entry).lower():
            score += TITLE_WEIGHT
        if q in resource_description(resource, entry).lower():
            score += DESCRIPTION_WEIGHT
        if any(q in tag.lower() for tag in tags):
            score += TAG_WEIGHT

        if score == 0:
            return 0

        if category and q in category.lower():
            score += CATEGORY_WEIGHT
        return score

    def search(
        self,
        query: str,
        category: Optional[str] = None,
        complexity: Optional[str] = None,
    ) -> List[SearchResult]:
        """
        Search the catalog.

        Args:
            query: Free-text query, matched as a case-insensitive substring
            category: Only keep entries in this category
            complexity: Only keep entries at this complexity level

        Returns:
            Matches ordered by descending relevance, ties in catalog order
        """
        if not query:
            return []

        results = []
        for name, resource in self.store.get_all():
            entry = self.manifest.describe(name)
            relevance = self.score(query, name, resource, entry)
            if relevance == 0:
                continue
            if category and (entry is None or entry.category != category):
                continue
            if complexity and (entry is None or entry.complexity is None or entry.complexity.value != complexity):
                continue
            results.append(SearchResult(
                name=name,
                resource=resource,
                metadata=self.validator.metadata(name),
                relevance=relevance,
            ))

        # sorted() is stable, ties keep catalog order
        return sorted(results, key=lambda r: r.relevance, reverse=True)
