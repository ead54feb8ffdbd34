"""Unit tests for task listing filters."""

import pytest
from tsk.domain.models import TaskStatus
from tsk.infrastructure.exceptions import NotFoundError
from tsk.services.task_query import StatusScope, TaskFilter, TaskQuery


class TestTaskFilter:
    def test_default_scope_is_active(self):
        where_sql, params = TaskFilter().build_where_clause()
        assert where_sql == "status IN (?,?)"
        assert params == ["pending", "in_progress"]

    def test_all_scope_has_no_status_clause(self):
        where_sql, params = TaskFilter(scope=StatusScope.ALL).build_where_clause()
        assert where_sql == ""
        assert params == []

    def test_parent_clause(self):
        where_sql, params = TaskFilter(scope=StatusScope.DONE, parent_id="abc123").build_where_clause()
        assert where_sql == "status IN (?) AND parent_id = ?"
        assert params == ["done", "abc123"]

    @pytest.mark.parametrize(
        ("scope", "expected"),
        [
            (StatusScope.ACTIVE, [TaskStatus.PENDING, TaskStatus.IN_PROGRESS]),
            (StatusScope.PENDING, [TaskStatus.PENDING]),
            (StatusScope.IN_PROGRESS, [TaskStatus.IN_PROGRESS]),
            (StatusScope.DONE, [TaskStatus.DONE]),
            (StatusScope.ALL, list(TaskStatus)),
        ],
    )
    def test_scope_statuses(self, scope, expected):
        assert scope.statuses() == expected


@pytest.fixture
async def populated(memory_db):
    """pppppp (done) with children c1 (pending), c2 (in_progress); loose (pending)."""
    await memory_db.insert_task("pppppp", "Parent", "")
    await memory_db.insert_task("cccc01", "Child 1", "", parent_id="pppppp")
    await memory_db.insert_task("loose1", "Loose", "")
    await memory_db.insert_task("cccc02", "Child 2", "", parent_id="pppppp")
    await memory_db.set_status("cccc02", TaskStatus.IN_PROGRESS)
    await memory_db.set_status("pppppp", TaskStatus.DONE)
    return memory_db


@pytest.mark.asyncio
class TestTaskQuery:
    async def _ids(self, db, task_filter=None):
        async with db.transaction(write=False) as tx:
            return [t.id for t in await TaskQuery().list(tx, task_filter)]

    async def test_default_hides_done(self, populated):
        assert await self._ids(populated) == ["cccc01", "loose1", "cccc02"]

    async def test_all_in_creation_order(self, populated):
        ids = await self._ids(populated, TaskFilter(scope=StatusScope.ALL))
        assert ids == ["pppppp", "cccc01", "loose1", "cccc02"]

    async def test_in_progress_only(self, populated):
        assert await self._ids(populated, TaskFilter(scope=StatusScope.IN_PROGRESS)) == ["cccc02"]

    async def test_done_only(self, populated):
        assert await self._ids(populated, TaskFilter(scope=StatusScope.DONE)) == ["pppppp"]

    async def test_direct_children(self, populated):
        ids = await self._ids(populated, TaskFilter(parent_id="pppppp"))
        assert ids == ["cccc01", "cccc02"]

    async def test_missing_parent(self, populated):
        with pytest.raises(NotFoundError):
            await self._ids(populated, TaskFilter(parent_id="zzzzzz"))

    async def test_listing_carries_dependencies(self, populated):
        await populated.add_dependency("loose1", "cccc01")
        async with populated.transaction(write=False) as tx:
            tasks = await TaskQuery().list(tx)
        by_id = {t.id: t for t in tasks}
        assert by_id["loose1"].dependencies == ["cccc01"]
        assert by_id["cccc01"].dependencies == []
