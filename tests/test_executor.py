"""Tests for applying changesets to the cache directory."""

import pytest

from modcache.core import executor as executor_module
from modcache.core.diff import diff
from modcache.core.executor import ExecutionResult, ReconciliationExecutor
from modcache.exceptions import (
    AggregateReconciliationError,
    FilesystemError,
    NotFoundError,
)
from modcache.models.changeset import Changeset, Fetch
from modcache.models.manifest import ManifestEntry
from modcache.models.stats import ReconcileStats


def _entries(*pairs):
    return [ManifestEntry(aid, vid) for aid, vid in pairs]


def _files(cache_dir):
    return sorted(p.name for p in cache_dir.iterdir())


async def _apply(source, cache_dir, entries, old_state, **kwargs):
    executor = ReconciliationExecutor(source, cache_dir, max_workers=4, **kwargs)
    result = await executor.execute(diff(entries, old_state), old_state)
    return executor, result


class TestExecute:
    @pytest.mark.asyncio
    async def test_fresh_cache(self, source, cache_dir):
        _, result = await _apply(source, cache_dir, _entries(("A", "1"), ("B", "2")), {})

        assert result.ok
        assert _files(cache_dir) == ["A-1.jar", "B-2.jar"]
        assert (cache_dir / "A-1.jar").read_bytes() == b"A:1"
        assert {aid: r.version_id for aid, r in result.state.items()} == {
            "A": "1",
            "B": "2",
        }
        assert all(r.file_name for r in result.state.values())

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, source, cache_dir, state_factory):
        old = state_factory(cache_dir, ("A", "1"))
        _, result = await _apply(source, cache_dir, _entries(("A", "1")), old)

        assert result.state == old
        assert source.calls == []
        assert _files(cache_dir) == ["A-1.jar"]

    @pytest.mark.asyncio
    async def test_old_version_is_removed_before_new_one_is_fetched(
        self, source, cache_dir, state_factory
    ):
        old = state_factory(cache_dir, ("A", "1"), ("B", "2"))
        seen_on_disk = []
        source.on_resolve = lambda aid, vid: seen_on_disk.append(
            (cache_dir / f"{aid}-1.jar").exists()
        )

        _, result = await _apply(source, cache_dir, _entries(("A", "2"), ("B", "2")), old)

        assert result.ok
        assert seen_on_disk == [False]
        assert source.calls == [("A", "2")]
        assert _files(cache_dir) == ["A-2.jar", "B-2.jar"]
        assert result.state["A"].version_id == "2"
        assert result.state["B"] == old["B"]

    @pytest.mark.asyncio
    async def test_dropped_artifact_is_deleted(self, source, cache_dir, state_factory):
        old = state_factory(cache_dir, ("A", "1"), ("B", "2"))
        _, result = await _apply(source, cache_dir, _entries(("B", "2")), old)

        assert result.ok
        assert list(result.state) == ["B"]
        assert _files(cache_dir) == ["B-2.jar"]

    @pytest.mark.asyncio
    async def test_dropped_artifact_frees_its_file_name(
        self, source, cache_dir, state_factory
    ):
        old = state_factory(cache_dir, ("1", "10"))
        source.names = {"2": "1-10.jar"}

        _, result = await _apply(source, cache_dir, _entries(("2", "20")), old)

        assert result.ok
        assert list(result.state) == ["2"]
        assert result.state["2"].file_name == "1-10.jar"
        assert (cache_dir / "1-10.jar").read_bytes() == b"2:20"

    @pytest.mark.asyncio
    async def test_all_removals_finish_before_any_fetch(
        self, source, cache_dir, state_factory
    ):
        old = state_factory(cache_dir, ("A", "1"), ("B", "1"), ("C", "1"))
        leftovers = []
        source.on_resolve = lambda aid, vid: leftovers.append(_files(cache_dir))

        _, result = await _apply(
            source, cache_dir, _entries(("D", "1"), ("E", "1"), ("A", "2")), old
        )

        assert result.ok
        old_files = {"A-1.jar", "B-1.jar", "C-1.jar"}
        assert len(leftovers) == 3
        assert all(not old_files & set(listing) for listing in leftovers)

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_others(
        self, source, cache_dir, network_error
    ):
        source.fail["B"] = network_error
        _, result = await _apply(
            source, cache_dir, _entries(("A", "1"), ("B", "1"), ("C", "1")), {}
        )

        assert not result.ok
        assert [f.artifact_id for f in result.failures] == ["B"]
        assert result.failures[0].cause is network_error
        assert result.failures[0].__cause__ is network_error
        assert list(result.state) == ["A", "C"]
        assert _files(cache_dir) == ["A-1.jar", "C-1.jar"]

    @pytest.mark.asyncio
    async def test_failed_update_leaves_no_record(
        self, source, cache_dir, state_factory
    ):
        old = state_factory(cache_dir, ("A", "1"))
        source.fail["A"] = NotFoundError("file 2 is gone")

        _, result = await _apply(source, cache_dir, _entries(("A", "2")), old)

        assert "A" not in result.state
        assert _files(cache_dir) == []

    @pytest.mark.asyncio
    async def test_failed_removal_skips_the_fetch(
        self, source, cache_dir, state_factory, monkeypatch
    ):
        old = state_factory(cache_dir, ("A", "1"), ("B", "1"))
        real_unlink = executor_module._unlink_if_exists

        def flaky_unlink(path):
            if path.name == "A-1.jar":
                raise PermissionError("read-only")
            return real_unlink(path)

        monkeypatch.setattr(executor_module, "_unlink_if_exists", flaky_unlink)
        _, result = await _apply(
            source, cache_dir, _entries(("A", "2"), ("B", "2")), old
        )

        assert [f.artifact_id for f in result.failures] == ["A"]
        assert isinstance(result.failures[0].cause, FilesystemError)
        assert ("A", "2") not in source.calls
        assert result.state["A"] == old["A"]
        assert result.state["B"].version_id == "2"

    @pytest.mark.asyncio
    async def test_removing_a_missing_file_succeeds(
        self, source, cache_dir, state_factory
    ):
        old = state_factory(cache_dir, ("A", "1"))
        (cache_dir / "A-1.jar").unlink()

        _, result = await _apply(source, cache_dir, [], old)

        assert result.ok
        assert result.state == {}

    @pytest.mark.asyncio
    async def test_file_name_claimed_by_another_artifact(self, source, cache_dir):
        source.names = {"A": "shared.jar", "B": "shared.jar"}
        _, result = await _apply(source, cache_dir, _entries(("A", "1"), ("B", "1")), {})

        assert len(result.failures) == 1
        assert isinstance(result.failures[0].cause, FilesystemError)
        winner = next(iter(result.state.values()))
        assert len(result.state) == 1
        assert winner.file_name == "shared.jar"
        assert (cache_dir / "shared.jar").read_bytes() == (
            f"{winner.artifact_id}:1".encode()
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_name", ["", ".hidden.jar", "mod.jar.part"])
    async def test_unusable_file_names(self, source, cache_dir, bad_name):
        source.names = {"A": bad_name}
        _, result = await _apply(source, cache_dir, _entries(("A", "1")), {})

        assert isinstance(result.failures[0].cause, FilesystemError)
        assert result.state == {}

    @pytest.mark.asyncio
    async def test_no_partial_files_are_left(self, source, cache_dir):
        await _apply(source, cache_dir, _entries(("A", "1"), ("B", "1")), {})
        assert not [name for name in _files(cache_dir) if name.endswith(".part")]

    @pytest.mark.asyncio
    async def test_unusable_cache_dir(self, source, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        executor = ReconciliationExecutor(source, blocker / "modcache")
        with pytest.raises(FilesystemError):
            await executor.execute(diff(_entries(("A", "1")), {}), {})

    @pytest.mark.asyncio
    async def test_counts_work(self, source, cache_dir, state_factory, network_error):
        old = state_factory(cache_dir, ("A", "1"), ("B", "1"), ("C", "1"))
        source.fail["E"] = network_error
        stats = ReconcileStats()

        await _apply(
            source,
            cache_dir,
            _entries(("A", "2"), ("C", "1"), ("D", "1"), ("E", "1")),
            old,
            stats=stats,
        )

        assert stats.artifacts_removed == 2
        assert stats.artifacts_fetched == 2
        assert stats.artifacts_updated == 1
        assert stats.artifacts_failed == 1
        assert stats.artifacts_unchanged == 1
        assert stats.bytes_written == len(b"A:2") + len(b"D:1")


class TestReplaceWithoutRemoval:
    @pytest.mark.asyncio
    async def test_superseded_file_is_discarded(self, source, cache_dir, state_factory):
        old = state_factory(cache_dir, ("A", "1"))
        changeset = Changeset(to_fetch=(Fetch("A", "2", is_update=True),))

        executor = ReconciliationExecutor(source, cache_dir)
        result = await executor.execute(changeset, old)

        assert result.ok
        assert result.state["A"].file_name == "A-2.jar"
        assert _files(cache_dir) == ["A-2.jar"]

    @pytest.mark.asyncio
    async def test_failed_fetch_keeps_previous_record(
        self, source, cache_dir, state_factory, network_error
    ):
        old = state_factory(cache_dir, ("A", "1"))
        source.fail["A"] = network_error
        changeset = Changeset(to_fetch=(Fetch("A", "2", is_update=True),))

        executor = ReconciliationExecutor(source, cache_dir, on_checkpoint=lambda s: None)
        result = await executor.execute(changeset, old)

        assert result.state == old
        assert _files(cache_dir) == ["A-1.jar"]


class TestCheckpoint:
    @pytest.mark.asyncio
    async def test_snapshot_after_every_artifact(self, source, cache_dir):
        snapshots = []
        _, result = await _apply(
            source,
            cache_dir,
            _entries(("A", "1"), ("B", "1"), ("C", "1")),
            {},
            on_checkpoint=snapshots.append,
        )

        assert len(snapshots) == 3
        assert snapshots[-1] == result.state
        for snapshot in snapshots:
            for record in snapshot.values():
                if record.file_name:
                    assert (cache_dir / record.file_name).exists()

    @pytest.mark.asyncio
    async def test_checkpoint_failure_is_not_fatal(self, source, cache_dir):
        def broken(state):
            raise OSError("disk full")

        _, result = await _apply(
            source, cache_dir, _entries(("A", "1")), {}, on_checkpoint=broken
        )
        assert result.ok


class TestSweepOrphans:
    @pytest.mark.asyncio
    async def test_removes_unreferenced_files(self, source, cache_dir, state_factory):
        old = state_factory(cache_dir, ("A", "1"))
        (cache_dir / "stray.jar").write_bytes(b"?")
        (cache_dir / ".B-1.jar.part").write_bytes(b"half")

        executor, result = await _apply(source, cache_dir, _entries(("A", "1")), old)
        removed = executor.sweep_orphans(result.state)

        assert sorted(removed) == [".B-1.jar.part", "stray.jar"]
        assert _files(cache_dir) == ["A-1.jar"]
        assert executor.stats.orphans_removed == 2

    def test_missing_cache_dir(self, source, tmp_path):
        executor = ReconciliationExecutor(source, tmp_path / "absent")
        assert executor.sweep_orphans({}) == []


class TestExecutionResult:
    def test_raise_for_failures(self):
        ExecutionResult(state={}).raise_for_failures()

    @pytest.mark.asyncio
    async def test_aggregate_error_carries_state(self, source, cache_dir, network_error):
        source.fail["B"] = network_error
        _, result = await _apply(source, cache_dir, _entries(("A", "1"), ("B", "1")), {})

        with pytest.raises(AggregateReconciliationError) as exc_info:
            result.raise_for_failures()
        assert exc_info.value.state == result.state
        assert [f.artifact_id for f in exc_info.value.failures] == ["B"]
