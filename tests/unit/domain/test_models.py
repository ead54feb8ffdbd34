"""Unit tests for domain models."""

import pytest
from pydantic import ValidationError
from tsk.domain.models import ALLOWED_TRANSITIONS, Task, TaskStatus, is_valid_task_id


class TestTaskId:
    @pytest.mark.parametrize("value", ["abc123", "000000", "zzzzzz"])
    def test_valid_ids(self, value):
        assert is_valid_task_id(value)

    @pytest.mark.parametrize("value", ["", "abc12", "abc1234", "ABC123", "abc-12", "abc 12"])
    def test_invalid_ids(self, value):
        assert not is_valid_task_id(value)

    def test_task_rejects_malformed_id(self):
        with pytest.raises(ValidationError):
            Task(id="TOOLONG1", title="x")


class TestTransitions:
    """Lifecycle is monotonic with a pending -> done shortcut."""

    def test_pending_can_start_or_finish(self):
        assert TaskStatus.PENDING.can_transition_to(TaskStatus.IN_PROGRESS)
        assert TaskStatus.PENDING.can_transition_to(TaskStatus.DONE)

    def test_in_progress_only_finishes(self):
        assert TaskStatus.IN_PROGRESS.can_transition_to(TaskStatus.DONE)
        assert not TaskStatus.IN_PROGRESS.can_transition_to(TaskStatus.IN_PROGRESS)
        assert not TaskStatus.IN_PROGRESS.can_transition_to(TaskStatus.PENDING)

    def test_done_is_terminal(self):
        assert ALLOWED_TRANSITIONS[TaskStatus.DONE] == frozenset()
        for target in TaskStatus:
            assert not TaskStatus.DONE.can_transition_to(target)

    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(TaskStatus)


def test_task_json_dump_uses_plain_values():
    task = Task(id="abc123", title="Write docs", dependencies=["def456"])
    data = task.model_dump(mode="json")
    assert data["status"] == "pending"
    assert data["dependencies"] == ["def456"]
    assert isinstance(data["created_at"], str)
