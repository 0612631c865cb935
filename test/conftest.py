"""
Shared fixtures: a small in-memory catalog and helpers to build groups.
"""

from pathlib import Path

import pytest

from manifest_index import DependencyValidator, ManifestIndex, parse_manifest_entry
from pattern_dispatcher import PatternCatalog, PatternDispatcher
from prompt_templates import PromptRegistry
from resource_store import LoadedPayload, ResourceGroup, ResourceStore
from response_composer import ResponseComposer
from server_config import ServerConfig

REPO_ROOT = Path(__file__).parent.parent
PROFILES_DIR = REPO_ROOT / "profiles"


class CountingLoader:
    """Group loader that returns fixed payloads and counts its calls."""

    def __init__(self, items):
        self.items = list(items)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return list(self.items)


class FailingLoader:
    def __init__(self, message="boom"):
        self.message = message
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        raise RuntimeError(self.message)


def memory_group(group_id, payloads):
    """ResourceGroup over a {name: payload} dict. Strings become Markdown."""
    items = [
        LoadedPayload(name, payload, "text/markdown" if isinstance(payload, str) else "application/json")
        for name, payload in payloads.items()
    ]
    return ResourceGroup(group_id, CountingLoader(items))


PATTERNS = {
    "a": {"name": "Alpha", "description": "First pattern for forms", "steps": [1, 2, 3]},
    "b": {"name": "Beta", "description": "Second pattern", "bestPractices": ["keep it small"]},
}

DOCS = {
    "notes": "# Notes\n\nPlain markdown, left exactly as written.\n",
}

MANIFEST = {
    "a": {
        "title": "Alpha Pattern",
        "description": "First pattern for forms",
        "category": "Forms",
        "tags": ["x"],
        "complexity": "basic",
    },
    "b": {
        "title": "Beta Pattern",
        "description": "Second pattern",
        "category": "Layout",
        "tags": ["x", "y"],
        "complexity": "advanced",
        "dependencies": ["a", "missing-dep"],
    },
    "ghost": {
        "title": "Ghost",
        "description": "Listed in the manifest but never shipped",
        "category": "Forms",
        "tags": ["x"],
        "complexity": "basic",
    },
}


def make_manifest(raw=None):
    raw = MANIFEST if raw is None else raw
    return ManifestIndex([parse_manifest_entry(name, fields) for name, fields in raw.items()])


@pytest.fixture
def server_config(tmp_path):
    return ServerConfig(
        name="test-patterns",
        version="0.1.0",
        scheme="test",
        profile_dir=tmp_path,
        description="Patterns for tests",
        quick_reference={
            "core": [{"key": "a", "summary": "Alpha"}, {"key": "ghost", "summary": "Never loaded"}],
            "rules": ["Keep it small"],
        },
        assemblies={
            "starter": {"title": "Starter", "description": "A and B", "resources": ["a", "b"]},
            "broken": {"resources": ["a", "ghost"]},
        },
    )


@pytest.fixture
def groups():
    return [memory_group("patterns", PATTERNS), memory_group("docs", DOCS)]


@pytest.fixture
def store(groups):
    return ResourceStore(groups)


@pytest.fixture
def manifest():
    return make_manifest()


@pytest.fixture
def validator(manifest, store):
    return DependencyValidator(manifest, store)


@pytest.fixture
def composer(store, manifest, validator, server_config):
    return ResponseComposer(store, manifest, validator, server_config)


@pytest.fixture
def catalog(server_config, store, manifest):
    return PatternCatalog(config=server_config, store=store, manifest=manifest, prompts=PromptRegistry())


@pytest.fixture
def dispatcher(catalog):
    return PatternDispatcher(catalog)
