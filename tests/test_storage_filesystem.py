"""Tests for FilesystemProfileStore."""

import pytest

from hierarchical_memory.registry import MemoryRegistry
from hierarchical_memory.storage.filesystem import FilesystemProfileStore
from hierarchical_memory.types import CorruptStateError


async def make_profile(config):
    registry = MemoryRegistry(config=config)
    for text in ("The ledger moves to postgres", "Friday is the cutover"):
        await registry.add_message("alice", "user", text)
    registry.emotions("alice").apply("content", 0.3, "glad")
    return registry.export_profile("alice")


@pytest.mark.asyncio
async def test_save_and_load(tmp_store_dir, config):
    profile = await make_profile(config)
    store = FilesystemProfileStore(tmp_store_dir)
    path = store.save(profile)
    assert path.name == "alice.profile.json"

    loaded = store.load("alice")
    assert loaded is not None
    assert loaded.entity_id == "alice"
    assert loaded.memory.active_ids == profile.memory.active_ids
    assert loaded.memory.next_id == profile.memory.next_id
    assert [i.text for i in loaded.memory.items] == [i.text for i in profile.memory.items]
    assert loaded.emotions["emotions"] == {"content": 0.3}


@pytest.mark.asyncio
async def test_loaded_profile_imports(tmp_store_dir, config):
    profile = await make_profile(config)
    store = FilesystemProfileStore(tmp_store_dir)
    store.save(profile)
    registry = MemoryRegistry(config=config)
    await registry.import_profile(store.load("alice"))
    assert registry.get_stats("alice").total_messages == 2


def test_missing_profile(tmp_store_dir):
    store = FilesystemProfileStore(tmp_store_dir)
    assert store.load("nobody") is None
    assert not store.delete("nobody")


@pytest.mark.asyncio
async def test_entity_ids_are_quoted(tmp_store_dir, config):
    profile = await make_profile(config)
    store = FilesystemProfileStore(tmp_store_dir)
    profile.entity_id = "team/alice"
    profile.memory.entity_id = "team/alice"
    path = store.save(profile)
    assert path.parent == tmp_store_dir
    assert store.list_entities() == ["team/alice"]
    assert store.load("team/alice").entity_id == "team/alice"


@pytest.mark.asyncio
async def test_delete(tmp_store_dir, config):
    profile = await make_profile(config)
    store = FilesystemProfileStore(tmp_store_dir)
    store.save(profile)
    assert store.delete("alice")
    assert store.list_entities() == []
    assert store.load("alice") is None


@pytest.mark.asyncio
async def test_overwrite_leaves_no_temp_files(tmp_store_dir, config):
    profile = await make_profile(config)
    store = FilesystemProfileStore(tmp_store_dir)
    store.save(profile)
    store.save(profile)
    assert [p.name for p in tmp_store_dir.iterdir()] == ["alice.profile.json"]


def test_corrupt_json(tmp_store_dir):
    store = FilesystemProfileStore(tmp_store_dir)
    (tmp_store_dir / "alice.profile.json").write_text("{not json")
    with pytest.raises(CorruptStateError):
        store.load("alice")


def test_undecodable_profile(tmp_store_dir):
    store = FilesystemProfileStore(tmp_store_dir)
    (tmp_store_dir / "alice.profile.json").write_bytes(b"\xff\xfe{\x80 not utf-8")
    with pytest.raises(CorruptStateError):
        store.load("alice")


def test_malformed_profile(tmp_store_dir):
    store = FilesystemProfileStore(tmp_store_dir)
    (tmp_store_dir / "alice.profile.json").write_text('{"entity_id": "alice"}')
    with pytest.raises(CorruptStateError):
        store.load("alice")


@pytest.mark.asyncio
async def test_entity_mismatch(tmp_store_dir, config):
    profile = await make_profile(config)
    store = FilesystemProfileStore(tmp_store_dir)
    path = store.save(profile)
    path.rename(tmp_store_dir / "bob.profile.json")
    with pytest.raises(CorruptStateError):
        store.load("bob")
