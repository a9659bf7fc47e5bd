"""Tests for core/config.py: AtomicConfigStore and ConfigManager."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import aiofiles.os
import pytest

from termhost.core.config import DEFAULT_SETTINGS, AtomicConfigStore, ConfigManager
from termhost.core.exceptions import ConfigurationError, FileOperationError


@pytest.fixture()
def store(tmp_path: Path) -> AtomicConfigStore:
    return AtomicConfigStore(tmp_path / "app" / "config.yaml")


def track_writes(store: AtomicConfigStore, events: list, fail_on: str | None = None) -> dict:
    """Wrap the store's write sequence to record overlap and order."""
    original = store._write_sequence
    stats = {"active": 0, "max_active": 0}

    async def tracked(content: str) -> None:
        stats["active"] += 1
        stats["max_active"] = max(stats["max_active"], stats["active"])
        events.append(f"start:{content}")
        try:
            await asyncio.sleep(0.01)
            if content == fail_on:
                raise FileOperationError(store.config_path, "Simulated failure")
            await original(content)
            events.append(f"done:{content}")
        finally:
            stats["active"] -= 1

    store._write_sequence = tracked  # type: ignore[method-assign]
    return stats


class TestLoad:
    @pytest.mark.asyncio
    async def test_first_run_returns_empty_string(self, store: AtomicConfigStore) -> None:
        assert await store.load() == ""

    @pytest.mark.asyncio
    async def test_load_after_save(self, store: AtomicConfigStore) -> None:
        await store.save("theme: dark\n")
        assert await store.load() == "theme: dark\n"

    @pytest.mark.asyncio
    async def test_content_is_kept_verbatim(self, store: AtomicConfigStore) -> None:
        content = "a: 1\r\nb: 'ünïcode'\n\n"
        await store.save(content)
        assert await store.load() == content
        assert store.config_path.read_bytes() == content.encode("utf-8")

    @pytest.mark.asyncio
    async def test_undecodable_file_raises_with_path(self, store: AtomicConfigStore) -> None:
        store.config_path.parent.mkdir(parents=True)
        store.config_path.write_bytes(b"theme: \xff\xfe dark\n")
        with pytest.raises(FileOperationError) as exc_info:
            await store.load()
        assert exc_info.value.path == str(store.config_path)


class TestSave:
    @pytest.mark.asyncio
    async def test_writes_backup_and_removes_temp(self, store: AtomicConfigStore) -> None:
        await store.save("one")
        await store.save("two")
        assert store.config_path.read_text(encoding="utf-8") == "two"
        assert store.backup_path.read_text(encoding="utf-8") == "two"
        assert store.backup_path.name == "config.yaml.backup"
        assert store.temp_path.name == "config.yaml.new"
        assert not store.temp_path.exists()

    @pytest.mark.asyncio
    async def test_creates_missing_directory(self, store: AtomicConfigStore) -> None:
        assert not store.config_path.parent.exists()
        await store.save("x")
        assert store.config_path.exists()

    @pytest.mark.asyncio
    async def test_concurrent_saves_never_overlap(self, store: AtomicConfigStore) -> None:
        events: list = []
        stats = track_writes(store, events)
        await asyncio.gather(store.save("a"), store.save("b"), store.save("c"))
        assert stats["max_active"] == 1
        assert events == ["start:a", "done:a", "start:b", "done:b", "start:c", "done:c"]
        assert await store.load() == "c"

    @pytest.mark.asyncio
    async def test_failed_save_does_not_block_later_ones(self, store: AtomicConfigStore) -> None:
        events: list = []
        track_writes(store, events, fail_on="bad")
        results = await asyncio.gather(
            store.save("good"), store.save("bad"), store.save("after"), return_exceptions=True
        )
        assert results[0] is None
        assert isinstance(results[1], FileOperationError)
        assert results[2] is None
        assert await store.load() == "after"

    @pytest.mark.asyncio
    async def test_save_resolves_after_its_own_write(self, store: AtomicConfigStore) -> None:
        events: list = []
        track_writes(store, events)
        first = asyncio.ensure_future(store.save("first"))
        second = asyncio.ensure_future(store.save("second"))
        await first
        assert "done:first" in events
        assert "done:second" not in events
        await second
        assert events[-1] == "done:second"

    @pytest.mark.asyncio
    async def test_interrupted_before_rename_keeps_previous(
        self, store: AtomicConfigStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await store.save("stable")
        real_replace = aiofiles.os.replace

        async def crash(src, dst):
            raise OSError(5, "simulated crash before rename")

        monkeypatch.setattr(aiofiles.os, "replace", crash)
        with pytest.raises(FileOperationError):
            await store.save("half-done")

        assert await store.load() == "stable"
        assert store.temp_path.read_text(encoding="utf-8") == "half-done"

        monkeypatch.setattr(aiofiles.os, "replace", real_replace)
        await store.save("recovered")
        assert await store.load() == "recovered"

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_write(self, store: AtomicConfigStore) -> None:
        task = asyncio.ensure_future(store.save("kept"))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.wait({store._save_in_progress})
        assert await store.load() == "kept"


class TestConfigManager:
    def test_defaults_when_missing(self, tmp_path: Path) -> None:
        cm = ConfigManager(tmp_path / "settings.json")
        assert cm.get_all() == DEFAULT_SETTINGS
        assert cm.chunk_size == 256 * 1024
        assert cm.ignore_patterns == (".DS_Store",)

    def test_set_persists_to_disk(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.json"
        ConfigManager(path).set("transfer_chunk_size", 4096)
        assert ConfigManager(path).chunk_size == 4096
        assert json.loads(path.read_text(encoding="utf-8"))["transfer_chunk_size"] == 4096
        assert not path.with_name("settings.json.tmp").exists()

    def test_settings_synced_before_rename(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        events = []
        real_fsync, real_replace = os.fsync, os.replace

        def fsync(fd):
            events.append("fsync")
            real_fsync(fd)

        def replace(src, dst):
            events.append("replace")
            real_replace(src, dst)

        monkeypatch.setattr(os, "fsync", fsync)
        monkeypatch.setattr(os, "replace", replace)
        ConfigManager(tmp_path / "settings.json").set("log_level", "DEBUG")
        assert events == ["fsync", "replace"]

    def test_missing_keys_fall_back_to_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"log_level": "DEBUG"}), encoding="utf-8")
        cm = ConfigManager(path)
        assert cm.get("log_level") == "DEBUG"
        assert cm.get("transfer_ignore_patterns") == [".DS_Store"]

    @pytest.mark.parametrize("raw", ["{ not json", "[1, 2, 3]"])
    def test_corrupt_file_uses_defaults(self, tmp_path: Path, raw: str) -> None:
        path = tmp_path / "settings.json"
        path.write_text(raw, encoding="utf-8")
        assert ConfigManager(path).get_all() == DEFAULT_SETTINGS

    def test_invalid_chunk_size_uses_default(self, tmp_path: Path) -> None:
        cm = ConfigManager(tmp_path / "settings.json")
        cm.set("transfer_chunk_size", -1)
        assert cm.chunk_size == 256 * 1024

    def test_reset_to_defaults(self, tmp_path: Path) -> None:
        cm = ConfigManager(tmp_path / "settings.json")
        cm.set("transfer_ignore_patterns", ["*.log"])
        assert cm.ignore_patterns == ("*.log",)
        cm.reset_to_defaults()
        assert cm.ignore_patterns == (".DS_Store",)

    def test_defaults_are_not_shared(self, tmp_path: Path) -> None:
        cm = ConfigManager(tmp_path / "settings.json")
        cm.get("transfer_ignore_patterns").append("*.bak")
        assert DEFAULT_SETTINGS["transfer_ignore_patterns"] == [".DS_Store"]

    def test_unwritable_location_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        cm = ConfigManager(blocker / "settings.json")
        with pytest.raises(ConfigurationError):
            cm.set("log_level", "DEBUG")
