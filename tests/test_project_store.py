"""
Unit tests for the project store backends (in-memory and SQLite)
"""
import asyncio
from datetime import timedelta

import pytest

from config.settings import Settings
from crud.project_store import (
    InMemoryProjectStore,
    SqlProjectStore,
    create_project_store,
    next_timestamp,
    utc_now,
)
from models.project import ProjectMetadata, ProjectUpdate
from utils.errors import ValidationError


@pytest.mark.asyncio
async def test_create_and_get_round_trip(store):
    metadata = ProjectMetadata.from_wire({"description": "demo app", "tags": ["react"]})
    created = await store.create("Demo", {"App.js": "x", "src/util.js": "y"}, metadata)

    fetched = await store.get(created.id)

    assert fetched is not None
    assert fetched.name == "Demo"
    assert fetched.files == {"App.js": "x", "src/util.js": "y"}
    assert fetched.metadata.description == "demo app"
    assert fetched.metadata.tags == ["react"]
    assert fetched.metadata.is_public is False
    assert fetched.created_at == fetched.updated_at


@pytest.mark.asyncio
async def test_create_assigns_unique_ids(store):
    ids = {(await store.create(f"Project {i}")).id for i in range(5)}
    assert len(ids) == 5


@pytest.mark.asyncio
async def test_create_rejects_blank_name(store):
    with pytest.raises(ValidationError):
        await store.create("   ", {})
    assert await store.list() == []


@pytest.mark.asyncio
async def test_list_excludes_file_contents(store):
    await store.create("One", {"index.js": "console.log(1)"})

    summaries = await store.list()

    assert len(summaries) == 1
    wire = summaries[0].to_wire()
    assert "files" not in wire
    assert set(wire) == {"id", "name", "createdAt", "updatedAt", "metadata"}


@pytest.mark.asyncio
async def test_empty_update_only_advances_updated_at(store):
    created = await store.create("Demo", {"App.js": "x"})

    updated = await store.update(created.id, ProjectUpdate())

    assert updated.updated_at > created.updated_at
    assert updated.created_at == created.created_at
    assert updated.name == created.name
    assert updated.files == created.files
    assert updated.metadata == created.metadata


@pytest.mark.asyncio
async def test_update_replaces_files_and_keeps_name(store):
    created = await store.create("Demo", {"App.js": "x", "App.css": ""})

    updated = await store.update(created.id, ProjectUpdate(files={"a.js": "y"}))

    assert updated.name == "Demo"
    assert updated.files == {"a.js": "y"}
    assert (await store.get(created.id)).files == {"a.js": "y"}


@pytest.mark.asyncio
async def test_update_missing_project_returns_none(store):
    assert await store.update("missing", ProjectUpdate(name="x")) is None


@pytest.mark.asyncio
async def test_replace_files(store):
    created = await store.create("Demo", {"App.js": "x"})

    saved = await store.replace_files(created.id, {"index.js": "boot()"})

    assert saved.files == {"index.js": "boot()"}
    assert saved.updated_at > created.updated_at
    assert await store.replace_files("missing", {}) is None


@pytest.mark.asyncio
async def test_replace_files_rejects_non_text_values(store):
    created = await store.create("Demo", {"App.js": "x"})

    with pytest.raises(ValidationError):
        await store.replace_files(created.id, {"App.js": 42})

    assert (await store.get(created.id)).files == {"App.js": "x"}


@pytest.mark.asyncio
async def test_delete_then_get_is_not_found(store):
    created = await store.create("Doomed")

    assert await store.delete(created.id) is True
    assert await store.get(created.id) is None
    assert await store.delete(created.id) is False


@pytest.mark.asyncio
async def test_metadata_extensions_survive_storage(store):
    metadata = ProjectMetadata.from_wire({"isPublic": True, "framework": "react", "stars": 3})
    created = await store.create("Ext", {}, metadata)

    fetched = await store.get(created.id)

    assert fetched.metadata.is_public is True
    assert fetched.metadata.extensions == {"framework": "react", "stars": 3}


@pytest.mark.asyncio
async def test_memory_store_returns_copies(memory_store):
    created = await memory_store.create("Demo", {"App.js": "x"})
    created.files["App.js"] = "mutated"

    fetched = await memory_store.get(created.id)
    assert fetched.files == {"App.js": "x"}


@pytest.mark.asyncio
async def test_memory_store_concurrent_creates(memory_store):
    projects = await asyncio.gather(*(memory_store.create(f"P{i}") for i in range(20)))

    assert len({p.id for p in projects}) == 20
    assert len(await memory_store.list()) == 20


def test_next_timestamp_is_strictly_after_previous():
    future = utc_now() + timedelta(days=365)
    assert next_timestamp(future) > future


@pytest.mark.asyncio
async def test_store_factory_without_database_url_uses_memory():
    store = await create_project_store(Settings(_env_file=None, DATABASE_URL=None))
    assert isinstance(store, InMemoryProjectStore)


@pytest.mark.asyncio
async def test_store_factory_uses_database_when_reachable(tmp_path):
    settings = Settings(_env_file=None, DATABASE_URL=f"sqlite:///{tmp_path / 'app.db'}")
    store = await create_project_store(settings)
    try:
        assert isinstance(store, SqlProjectStore)
        assert store.backend == "database"
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_store_factory_falls_back_when_database_unreachable(tmp_path):
    # Parent directory does not exist, so SQLite cannot open the file
    url = f"sqlite:///{tmp_path / 'missing' / 'nested' / 'app.db'}"
    store = await create_project_store(Settings(_env_file=None, DATABASE_URL=url))

    assert isinstance(store, InMemoryProjectStore)
    created = await store.create("Still works")
    assert (await store.get(created.id)).name == "Still works"
