"""Integration tests for the tsk CLI against a real store in a temp project."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tsk import __version__
from tsk.cli.main import app
from tsk.domain.models import is_valid_task_id

runner = CliRunner()


def _ok(*args: str) -> str:
    result = runner.invoke(app, list(args))
    assert result.exit_code == 0, result.output
    return result.output


def _create(*args: str) -> str:
    task_id = _ok("create", *args).strip()
    assert is_valid_task_id(task_id)
    return task_id


@pytest.fixture
def initialized(project_dir: Path) -> Path:
    _ok("init")
    return project_dir


class TestInit:
    def test_init_creates_store(self, project_dir: Path):
        output = _ok("init")

        assert "Initialized tsk" in output
        assert (project_dir / ".tsk" / "tsk.sqlite").exists()

    def test_init_twice(self, initialized: Path):
        assert "Already initialized" in _ok("init")

    def test_init_with_rules(self, project_dir: Path):
        output = _ok("init", "--rules", "claude,cursor")

        assert "Created: CLAUDE.md" in output
        assert "Created: .cursorrules" in output
        assert "## Task Management" in (project_dir / "CLAUDE.md").read_text()

    def test_init_with_unknown_rules(self, project_dir: Path):
        result = runner.invoke(app, ["init", "--rules", "emacs"])
        assert result.exit_code != 0

    def test_commands_need_init(self, project_dir: Path):
        result = runner.invoke(app, ["list"])

        assert result.exit_code == 1
        assert "Error: NotInitialized:" in result.output
        assert not (project_dir / ".tsk").exists()

    def test_unreadable_store(self, project_dir: Path):
        (project_dir / ".tsk" / "tsk.sqlite").mkdir(parents=True)

        result = runner.invoke(app, ["list"])

        assert result.exit_code == 1
        assert "Error: StoreCorrupt:" in result.output

    def test_ids_quiet_when_not_initialized(self, project_dir: Path):
        result = runner.invoke(app, ["ids"])

        assert result.exit_code == 0
        assert result.output == ""


def test_version():
    assert __version__ in _ok("version")


class TestWorkflow:
    def test_example_scenario(self, initialized: Path):
        auth = _create("User Auth", "")
        login = _create("Login form", "", "--parent", auth)
        validation = _create("Validation", "", "--parent", auth, "--depend", login)

        lines = _ok("list").splitlines()
        assert lines == [
            f"{auth}  [ ]  User Auth",
            f"{login}  [ ]  Login form ^{auth}",
            f"{validation}  [ ]  Validation ^{auth} @{login}",
        ]

        blocked = runner.invoke(app, ["done", validation])
        assert blocked.exit_code == 1
        assert "Error: DependencyNotSatisfied:" in blocked.output
        assert login in blocked.output

        assert _ok("start", login).strip() == f"{login}  [>]  Login form ^{auth}"
        assert _ok("done", login).strip() == f"{login}  [x]  Login form ^{auth}"
        assert _ok("done", validation).strip() == f"{validation}  [x]  Validation ^{auth} @{login}"

    def test_list_scopes(self, initialized: Path):
        a = _create("A", "")
        b = _create("B", "")
        c = _create("C", "")
        _ok("start", b)
        _ok("done", c)

        assert _ok("list").splitlines() == [f"{a}  [ ]  A", f"{b}  [>]  B"]
        assert _ok("list", "--inprogress").splitlines() == [f"{b}  [>]  B"]
        assert _ok("list", "--done").splitlines() == [f"{c}  [x]  C"]
        assert _ok("list", "--pending").splitlines() == [f"{a}  [ ]  A"]
        assert len(_ok("list", "--all").splitlines()) == 3
        assert _ok("list", "--status", "done").splitlines() == [f"{c}  [x]  C"]

    def test_conflicting_scope_flags(self, initialized: Path):
        result = runner.invoke(app, ["list", "--done", "--all"])
        assert result.exit_code == 2

    def test_list_parent_filter(self, initialized: Path):
        parent = _create("Parent", "")
        child = _create("Child", "", "--parent", parent)
        _create("Other", "")

        assert _ok("list", "--parent", parent).splitlines() == [f"{child}  [ ]  Child ^{parent}"]

        missing = runner.invoke(app, ["list", "--parent", "zzzzzz"])
        assert missing.exit_code == 1
        assert "Error: NotFound:" in missing.output

    def test_list_json(self, initialized: Path):
        task_id = _create("Json", "body")

        data = json.loads(_ok("list", "--json"))

        assert data[0]["id"] == task_id
        assert data[0]["status"] == "pending"
        assert data[0]["description"] == "body"

    def test_list_tree(self, initialized: Path):
        parent = _create("Parent", "")
        child = _create("Child", "", "--parent", parent)

        output = _ok("list", "--tree")
        assert parent in output
        assert child in output

    def test_show(self, initialized: Path):
        parent = _create("Parent", "")
        task_id = _create("Child", "Details here", "--parent", parent)

        output = _ok("show", task_id)
        assert f"ID:          {task_id}" in output
        assert "Status:      pending" in output
        assert f"Parent:      {parent}" in output
        assert output.rstrip().endswith("Details here")

        parent_view = _ok("show", parent)
        assert "Subtasks:" in parent_view
        assert task_id in parent_view

    def test_show_json(self, initialized: Path):
        task_id = _create("Task", "")
        data = json.loads(_ok("show", task_id, "--json"))
        assert data["task"]["id"] == task_id
        assert data["children"] == []

    def test_update(self, initialized: Path):
        task_id = _create("Task", "old")
        assert _ok("update", task_id, "new").strip() == f"{task_id}  [ ]  Task"
        assert _ok("show", task_id).rstrip().endswith("new")

    def test_start_twice(self, initialized: Path):
        task_id = _create("Task", "")
        _ok("start", task_id)

        result = runner.invoke(app, ["start", task_id])
        assert result.exit_code == 1
        assert "Error: InvalidTransition:" in result.output

    def test_remove(self, initialized: Path):
        parent = _create("Parent", "")
        child = _create("Child", "", "--parent", parent)
        dependent = _create("Dependent", "", "--depend", parent)

        assert _ok("remove", parent).strip() == f"Removed: {parent}"
        assert _ok("list").splitlines() == [f"{child}  [ ]  Child", f"{dependent}  [ ]  Dependent"]

        again = runner.invoke(app, ["remove", parent])
        assert again.exit_code == 1
        assert "Error: NotFound:" in again.output

    def test_depend_and_cycle(self, initialized: Path):
        a = _create("A", "")
        b = _create("B", "")

        assert _ok("depend", a, b).strip() == f"{a}  [ ]  A @{b}"

        cycle = runner.invoke(app, ["depend", b, a])
        assert cycle.exit_code == 1
        assert "Error: CycleDetected:" in cycle.output

        self_dep = runner.invoke(app, ["depend", a, a])
        assert "Error: SelfDependency:" in self_dep.output

    def test_multiple_depend_flags(self, initialized: Path):
        a = _create("A", "")
        b = _create("B", "")
        c = _create("C", "", "--depend", a, "--depend", b)

        assert _ok("list").splitlines()[-1] == f"{c}  [ ]  C @{a} @{b}"

    def test_parent_set_and_clear(self, initialized: Path):
        a = _create("A", "")
        b = _create("B", "")

        assert _ok("parent", b, a).strip() == f"{b}  [ ]  B ^{a}"
        assert _ok("parent", b, "--clear").strip() == f"{b}  [ ]  B"

        cycle = runner.invoke(app, ["parent", a, a])
        assert "Error: SelfParent:" in cycle.output

        neither = runner.invoke(app, ["parent", b])
        assert neither.exit_code == 2

    def test_ids_in_creation_order(self, initialized: Path):
        created = [_create(f"T{i}", "") for i in range(5)]
        _ok("done", created[1])

        assert _ok("ids").splitlines() == created

    def test_invalid_id(self, initialized: Path):
        result = runner.invoke(app, ["show", "NOPE"])

        assert result.exit_code == 1
        assert "Error: InvalidId: Invalid task ID 'NOPE'. Must be 6 characters [a-z0-9]." in result.output
