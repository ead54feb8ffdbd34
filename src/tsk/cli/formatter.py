"""Plain-text and Rich renderings of tasks.

The one-line form is a stable contract read by agents and scripts:

    <id>  [<glyph>]  <title>[ ^<parent_id>][ @<dep_id>]...
"""

from collections import defaultdict
from datetime import datetime

from rich.text import Text
from rich.tree import Tree as RichTree

from tsk.domain.models import Task, TaskStatus

STATUS_GLYPHS: dict[TaskStatus, str] = {
    TaskStatus.PENDING: " ",
    TaskStatus.IN_PROGRESS: ">",
    TaskStatus.DONE: "x",
}

TASK_STATUS_COLORS: dict[TaskStatus, str] = {
    TaskStatus.PENDING: "blue",
    TaskStatus.IN_PROGRESS: "magenta",
    TaskStatus.DONE: "bright_green",
}

_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_task_line(task: Task) -> str:
    """Format a task as its one-line listing form."""
    line = f"{task.id}  [{STATUS_GLYPHS[task.status]}]  {task.title}"
    if task.parent_id:
        line += f" ^{task.parent_id}"
    for dep_id in task.dependencies:
        line += f" @{dep_id}"
    return line


def _timestamp(value: datetime) -> str:
    return value.strftime(_TIMESTAMP_FORMAT)


def format_task_detail(task: Task, children: list[Task] | None = None) -> str:
    """Multi-line detail view used by `tsk show`."""
    lines = [
        f"ID:          {task.id}",
        f"Title:       {task.title}",
        f"Status:      {task.status.value}",
    ]
    if task.parent_id:
        lines.append(f"Parent:      {task.parent_id}")
    if task.dependencies:
        lines.append(f"Depends on:  {', '.join(task.dependencies)}")
    lines.append(f"Created:     {_timestamp(task.created_at)}")
    if task.started_at:
        lines.append(f"Started:     {_timestamp(task.started_at)}")
    if task.completed_at:
        lines.append(f"Completed:   {_timestamp(task.completed_at)}")
    lines.append("")
    lines.append(task.description)
    if children:
        lines.append("")
        lines.append("Subtasks:")
        lines.extend(f"  {format_task_line(child)}" for child in children)
    return "\n".join(lines)


def format_task_tree(tasks: list[Task]) -> RichTree:
    """Build a parent/child tree from a task list, in creation order.

    Tasks whose parent is not in the list are shown at the root.
    """
    root_tree = RichTree("tasks", guide_style="tree.line", hide_root=True)

    if not tasks:
        root_tree.add(Text("No tasks found", style="dim"))
        return root_tree

    task_ids = {task.id for task in tasks}
    children_map: dict[str, list[Task]] = defaultdict(list)
    for task in tasks:
        if task.parent_id and task.parent_id in task_ids:
            children_map[task.parent_id].append(task)

    def add_subtree(parent_widget: RichTree, task: Task) -> None:
        label = Text(format_task_line(task), style=TASK_STATUS_COLORS[task.status])
        subtree = parent_widget.add(label)
        for child in children_map.get(task.id, []):
            add_subtree(subtree, child)

    # Parent links are acyclic, so every task hangs off exactly one root
    for task in tasks:
        if not task.parent_id or task.parent_id not in task_ids:
            add_subtree(root_tree, task)

    return root_tree
