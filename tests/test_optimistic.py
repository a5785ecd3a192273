"""Tests for the optimistic update helper."""

import pytest

from file_picker.indexing.optimistic import OptimisticUpdate


class Box:
    def __init__(self, value):
        self.value = value

    def get(self):
        return self.value

    def set(self, value):
        self.value = value


class TestOptimisticUpdate:
    """Snapshot, apply, then commit or revert."""

    @pytest.mark.asyncio
    async def test_success_keeps_applied_value(self):
        box = Box({"a"})

        async with OptimisticUpdate(box.get, box.set) as update:
            update.apply(lambda members: members | {"b"})
            assert box.value == {"a", "b"}

        assert box.value == {"a", "b"}

    @pytest.mark.asyncio
    async def test_commit_replaces_optimistic_value(self):
        box = Box({"a"})

        async with OptimisticUpdate(box.get, box.set) as update:
            update.apply(lambda members: members | {"b"})
            update.commit({"a", "b", "c"})

        assert box.value == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_failure_reverts_and_reraises(self):
        box = Box({"a", "b"})

        with pytest.raises(RuntimeError, match="rejected"):
            async with OptimisticUpdate(box.get, box.set) as update:
                update.apply(lambda members: members - {"b"})
                assert box.value == {"a"}
                raise RuntimeError("rejected")

        assert box.value == {"a", "b"}
        assert update.value == {"a", "b"}

    @pytest.mark.asyncio
    async def test_failure_discards_commit(self):
        box = Box(1)

        with pytest.raises(ValueError):
            async with OptimisticUpdate(box.get, box.set) as update:
                update.apply(lambda v: v + 1)
                update.commit(5)
                raise ValueError()

        assert box.value == 1
