"""
Tests for ConfigRegistry load/reload/remove semantics.
"""

import asyncio
import pytest
import shutil
import tempfile
from pathlib import Path

from core.errors import ConfigLoadError
from core.sync.registry import ConfigRegistry

from tests.fixtures.sync_fakes import FakeTaskFactory, make_definition, write_config


class TestConfigRegistry:
    """Test ConfigRegistry functionality"""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.root = Path(self.temp_dir).resolve()
        self.factory = FakeTaskFactory()
        self.log = []
        self.registry = ConfigRegistry(self.factory, lambda *event: self.log.append(event))

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write(self, groups, folder="proj"):
        return write_config(self.root / folder, groups)

    @pytest.mark.asyncio
    async def test_load_creates_entry_without_starting(self):
        """Test load builds handles but starts nothing"""
        path = self.write({"web": make_definition("/srv/web")})

        entry = await self.registry.load(path)

        assert path in self.registry
        assert self.registry.all()[path] is entry
        assert [group.name for group in entry.groups] == ["web"]
        assert entry.groups[0].task_handle is not None
        assert self.factory.running() == []

    @pytest.mark.asyncio
    async def test_paths_are_normalized(self):
        """Test equivalent spellings of a path share one entry"""
        path = self.write({"web": make_definition("/srv/web")})
        spelled = path.parent / ".." / "proj" / "fsconfig.json"

        await self.registry.load(path)
        await self.registry.load(spelled)

        assert len(self.registry) == 1
        assert self.registry.get(spelled) is self.registry.get(path)

    @pytest.mark.asyncio
    async def test_reload_tears_down_previous_entry(self):
        """Test reload stops old tasks before the new entry exists"""
        path = self.write({"web": make_definition("/srv/web")})
        old = await self.registry.load(path)
        await old.groups[0].task_handle.start_syncs()
        old_handle = old.groups[0].task_handle

        new = await self.registry.load(path)

        assert new is not old
        assert old_handle.is_released
        assert old.groups[0].task_handle is None
        assert self.factory.running() == []
        assert len(self.registry) == 1

    @pytest.mark.asyncio
    async def test_reload_never_runs_two_tasks_for_same_definition(self):
        """Test at most one running task per definition across a reload"""
        path = self.write({"web": make_definition("/srv/web")})
        entry = await self.registry.load(path)
        await entry.groups[0].task_handle.start_syncs()

        entry = await self.registry.load(path)
        await entry.groups[0].task_handle.start_syncs()

        assert self.factory.running_sources() == ["web"]
        assert len(self.factory.tasks) == 2

    @pytest.mark.asyncio
    async def test_parse_failure_after_teardown_leaves_path_absent(self):
        """Test a corrupted file stops prior syncs and drops the entry"""
        path = self.write({"web": make_definition("/srv/web")})
        entry = await self.registry.load(path)
        await entry.groups[0].task_handle.start_syncs()

        path.write_text("{ not json", encoding="utf-8")
        with pytest.raises(ConfigLoadError) as exc_info:
            await self.registry.load(path)

        assert exc_info.value.path == path
        assert path not in self.registry
        assert self.factory.running() == []
        assert self.registry.get_status()["load_failures"] == 1

    @pytest.mark.asyncio
    async def test_missing_file_raises_config_load_error(self):
        with pytest.raises(ConfigLoadError, match="unreadable"):
            await self.registry.load(self.root / "absent" / "fsconfig.json")
        assert len(self.registry) == 0

    @pytest.mark.asyncio
    async def test_custom_reader(self):
        """Test the file read is pluggable"""
        async def reader(path):
            return '{"configs": [{"name": "mem", "sync": {"src": "./a", "dest": "./b"}}]}'

        registry = ConfigRegistry(self.factory, lambda *event: None, reader=reader)
        entry = await registry.load(self.root / "virtual" / "fsconfig.json")

        assert entry.groups[0].name == "mem"
        assert entry.groups[0].sync_definitions[0].source_path == (self.root / "virtual" / "a").resolve()

    @pytest.mark.asyncio
    async def test_remove_stops_and_drops_entry(self):
        """Test remove releases every handle"""
        path = self.write({"web": make_definition("/srv/web"), "docs": make_definition("/srv/docs")})
        entry = await self.registry.load(path)
        handles = entry.handles()
        for handle in handles:
            await handle.start_syncs()

        removed = await self.registry.remove(path)

        assert removed is True
        assert path not in self.registry
        assert self.factory.running() == []
        assert all(handle.is_released for handle in handles)
        assert entry.handles() == []

    @pytest.mark.asyncio
    async def test_remove_absent_path_is_noop(self):
        assert await self.registry.remove(self.root / "nothing.json") is False

    @pytest.mark.asyncio
    async def test_path_locks_dropped_after_use(self):
        """Test per-path locks do not accumulate for removed or failed paths"""
        path = self.write({"web": make_definition("/srv/web")})
        await self.registry.load(path)
        await self.registry.remove(path)
        with pytest.raises(ConfigLoadError):
            await self.registry.load(self.root / "missing" / "fsconfig.json")

        assert len(self.registry._path_locks) == 0

    @pytest.mark.asyncio
    async def test_teardown_stop_failure_is_logged(self):
        """Test a failing stop during teardown is reported, entry still removed"""
        path = self.write({"web": make_definition("/srv/web")})
        entry = await self.registry.load(path)
        await entry.groups[0].task_handle.start_syncs()
        self.factory.fail_stop.add(str(Path("/srv/web").resolve()))

        assert await self.registry.remove(path) is True

        assert path not in self.registry
        assert ("configChange", "TaskStopError") in [event[:2] for event in self.log]

    @pytest.mark.asyncio
    async def test_entries_snapshot_and_predicate(self):
        """Test entries() returns a filtered snapshot"""
        first = self.write({"a": make_definition("/srv/a")}, folder="one")
        second = self.write({"b": make_definition("/srv/b")}, folder="two")
        await self.registry.load(first)
        await self.registry.load(second)

        snapshot = self.registry.entries()
        await self.registry.remove(first)

        assert len(snapshot) == 2
        assert [e.path for e in self.registry.entries()] == [second]
        assert self.registry.entries(lambda e: e.path == first) == []

    def test_all_is_read_only(self):
        with pytest.raises(TypeError):
            self.registry.all()[Path("/x")] = None

    @pytest.mark.asyncio
    async def test_concurrent_loads_of_same_path_are_serialized(self):
        """Test two overlapping loads leave exactly one entry and no leaked task"""
        path = self.write({"web": make_definition("/srv/web")})
        first = await self.registry.load(path)
        await first.groups[0].task_handle.start_syncs()

        gate = asyncio.Event()
        reads = []

        async def slow_reader(p):
            reads.append(p)
            if len(reads) == 1:
                await gate.wait()
            return p.read_text(encoding="utf-8")

        self.registry.reader = slow_reader
        load_a = asyncio.create_task(self.registry.load(path))
        load_b = asyncio.create_task(self.registry.load(path))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        # Second load waits for the first one's read
        assert len(reads) == 1
        gate.set()
        entry_a, entry_b = await asyncio.gather(load_a, load_b)

        assert self.registry.get(path) is entry_b
        assert entry_a.handles() == []
        assert self.factory.running() == []

    @pytest.mark.asyncio
    async def test_clear_releases_everything(self):
        for folder in ("one", "two", "three"):
            entry = await self.registry.load(self.write({folder: make_definition(f"/srv/{folder}")}, folder=folder))
            await entry.handles()[0].start_syncs()

        assert self.registry.running_count == 3
        assert await self.registry.clear() == 3
        assert len(self.registry) == 0
        assert self.factory.running() == []
