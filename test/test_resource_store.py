import json
import logging

import pytest

from conftest import DOCS, PATTERNS, FailingLoader, memory_group
from pattern_errors import NotFoundError, PartialLoadWarning
from resource_store import (
    ResourceGroup,
    ResourceStore,
    directory_loader,
    get_mime_type_for_path,
    module_loader,
)


@pytest.mark.asyncio
async def test_populate_loads_every_group_in_order(store):
    count = await store.populate()

    assert count == 3
    assert store.names() == ["a", "b", "notes"]
    assert store.get("a").group == "patterns"
    assert store.get("notes").group == "docs"
    assert store.get("a").payload == PATTERNS["a"]
    assert store.get("notes").payload == DOCS["notes"]
    assert store.populated


@pytest.mark.asyncio
async def test_populate_is_idempotent(store, groups):
    await store.populate()
    await store.populate()
    await store.populate()

    assert store.populate_count == 1
    assert all(group.loader.calls == 1 for group in groups)


@pytest.mark.asyncio
async def test_failing_group_does_not_stop_the_others(caplog):
    failing = FailingLoader("disk on fire")
    store = ResourceStore([
        ResourceGroup("broken", failing),
        memory_group("patterns", PATTERNS),
    ])

    with caplog.at_level(logging.WARNING), pytest.warns(PartialLoadWarning, match="broken"):
        await store.populate()

    assert store.names() == ["a", "b"]
    assert store.get("b").payload == PATTERNS["b"]
    assert failing.calls == 1
    assert "disk on fire" in caplog.text

    errors = store.load_errors()
    assert len(errors) == 1
    assert errors[0]["group"] == "broken"
    assert errors[0]["error"] == "RuntimeError: disk on fire"
    assert store.get_stats()["failed_groups"] == ["broken"]


@pytest.mark.asyncio
async def test_duplicate_names_keep_the_first(caplog):
    store = ResourceStore([
        memory_group("first", {"a": {"v": 1}}),
        memory_group("second", {"a": {"v": 2}, "c": {"v": 3}}),
    ])

    with caplog.at_level(logging.WARNING):
        await store.populate()

    assert store.names() == ["a", "c"]
    assert store.get("a").payload == {"v": 1}
    assert store.get("a").group == "first"
    assert "Duplicate resource 'a'" in caplog.text


@pytest.mark.asyncio
async def test_get_unknown_lists_available_names(store):
    await store.populate()

    with pytest.raises(NotFoundError) as exc_info:
        store.get("zzz")

    message = str(exc_info.value)
    assert "not found" in message
    assert "a, b, notes" in message
    assert exc_info.value.available == ["a", "b", "notes"]


@pytest.mark.asyncio
async def test_store_lookups(store):
    await store.populate()

    assert "a" in store
    assert "zzz" not in store
    assert store.has("notes")
    assert len(store) == 3
    assert [name for name, _ in store.get_all()] == ["a", "b", "notes"]
    assert store.get("a").is_structured
    assert not store.get("notes").is_structured
    assert store.get_stats() == {
        "resource_count": 3,
        "group_count": 2,
        "failed_groups": [],
        "populated": True,
    }


def test_mime_types():
    assert get_mime_type_for_path("a/b/pattern.json") == "application/json"
    assert get_mime_type_for_path("pattern.yml") == "text/x-yaml"
    assert get_mime_type_for_path("guide.md") == "text/markdown"
    assert get_mime_type_for_path("docker/Dockerfile") == "text/x-dockerfile"
    assert get_mime_type_for_path("unknown.bin") == "text/plain"


@pytest.mark.asyncio
async def test_directory_loader_reads_and_decodes_files(tmp_path):
    (tmp_path / "forms.json").write_text(json.dumps({"name": "Forms"}))
    (tmp_path / "layout.yaml").write_text("name: Layout\ncolumns: 3\n")
    (tmp_path / "guide.md").write_text("# Guide\n")
    (tmp_path / ".hidden.json").write_text("{}")
    (tmp_path / "nested").mkdir()

    items = await directory_loader(tmp_path, prefix="ui/")()

    by_name = {item.name: item for item in items}
    assert sorted(by_name) == ["ui/forms", "ui/guide", "ui/layout"]
    assert by_name["ui/forms"].payload == {"name": "Forms"}
    assert by_name["ui/layout"].payload == {"name": "Layout", "columns": 3}
    assert by_name["ui/layout"].mime_type == "application/json"
    assert by_name["ui/guide"].payload == "# Guide\n"
    assert by_name["ui/guide"].mime_type == "text/markdown"
    assert by_name["ui/guide"].source == "guide.md"


@pytest.mark.asyncio
async def test_directory_loader_missing_directory(tmp_path):
    loader = directory_loader(tmp_path / "nope")
    with pytest.raises(FileNotFoundError):
        await loader()


@pytest.mark.asyncio
async def test_missing_directory_is_a_partial_load(tmp_path):
    (tmp_path / "ok").mkdir()
    (tmp_path / "ok" / "kept.json").write_text("{}")
    store = ResourceStore([
        ResourceGroup("missing", directory_loader(tmp_path / "missing")),
        ResourceGroup("ok", directory_loader(tmp_path / "ok")),
    ])

    with pytest.warns(PartialLoadWarning):
        await store.populate()

    assert store.names() == ["kept"]
    assert "FileNotFoundError" in store.load_errors()[0]["error"]


@pytest.mark.asyncio
async def test_directory_loader_keeps_yaml_scalars_as_text(tmp_path):
    (tmp_path / "motto.yaml").write_text("just one line\n")

    (item,) = await directory_loader(tmp_path)()

    assert item.payload == "just one line\n"
    assert item.mime_type == "text/x-yaml"


@pytest.mark.asyncio
async def test_load_errors_hide_file_paths(caplog):
    class DeniedLoader:
        async def __call__(self):
            raise PermissionError(13, "Permission denied", "/srv/private/profiles/forms.json")

    store = ResourceStore([ResourceGroup("denied", DeniedLoader())])

    with caplog.at_level(logging.WARNING), pytest.warns(PartialLoadWarning):
        await store.populate()

    error = store.load_errors()[0]["error"]
    assert error == "PermissionError: Permission denied: forms.json"
    assert "/srv/private" not in error
    assert "/srv/private" in caplog.text


@pytest.mark.asyncio
async def test_module_loader(tmp_path, monkeypatch):
    (tmp_path / "sample_payloads.py").write_text(
        "PAYLOADS = {'intro': '# Intro', 'table': {'columns': 2}}\n"
    )
    monkeypatch.syspath_prepend(str(tmp_path))

    items = await module_loader("sample_payloads:PAYLOADS", prefix="docs/")()

    by_name = {item.name: item for item in items}
    assert by_name["docs/intro"].mime_type == "text/markdown"
    assert by_name["docs/table"].payload == {"columns": 2}
    assert by_name["docs/table"].mime_type == "application/json"


def test_module_loader_rejects_bad_target():
    with pytest.raises(ValueError):
        module_loader("no_attribute_here")
