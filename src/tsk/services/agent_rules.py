"""Install tsk usage instructions into coding-agent rule files."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel

from tsk.infrastructure.logger import get_logger

logger = get_logger(__name__)

RULES_MARKER = "## Task Management"

TSK_INSTRUCTIONS = """## Task Management

This project uses `tsk` for task tracking.

### Task Commands
- `tsk create "<title>" "<description>"`: create task, prints its ID
- `tsk create "<title>" "<desc>" --parent <id>`: create subtask
- `tsk create "<title>" "<desc>" --depend <id>`: task with dependency (repeatable)
- `tsk list`: show pending and in-progress tasks
- `tsk list --inprogress`: show in-progress tasks
- `tsk list --all`: show all tasks
- `tsk list --parent <id>`: show subtasks only
- `tsk show <id>`: task details
- `tsk update <id> "<description>"`: replace description
- `tsk start <id>`: mark as in progress
- `tsk done <id>`: mark complete (all dependencies must be done)
- `tsk depend <id> <other>`: add a dependency
- `tsk remove <id>`: delete task

### Output format
`abc123  [ ]  Pending task ^parent @dependency`
`abc123  [>]  In progress task`
`abc123  [x]  Done task`
"""


class Agent(str, Enum):
    """Coding agents whose rule files we know how to write."""

    CLAUDE = "claude"
    COPILOT = "copilot"
    CURSOR = "cursor"
    WINDSURF = "windsurf"

    @property
    def rules_path(self) -> Path:
        return {
            Agent.CLAUDE: Path("CLAUDE.md"),
            Agent.COPILOT: Path(".github") / "copilot-instructions.md",
            Agent.CURSOR: Path(".cursorrules"),
            Agent.WINDSURF: Path(".windsurfrules"),
        }[self]


class RulesAction(str, Enum):
    CREATED = "Created"
    UPDATED = "Updated"
    SKIPPED = "Skipped"


class RulesResult(BaseModel):
    agent: Agent
    path: Path
    action: RulesAction


def parse_rules_arg(rules: str) -> list[Agent]:
    """Parse a comma-separated agent list; "all" selects every agent.

    Unknown names are ignored, duplicates collapse.
    """
    selected: list[Agent] = []
    for part in rules.lower().split(","):
        name = part.strip()
        if name == "all":
            return list(Agent)
        try:
            agent = Agent(name)
        except ValueError:
            continue
        if agent not in selected:
            selected.append(agent)
    return selected


def install_agent_rules(project_root: Path, agents: list[Agent]) -> list[RulesResult]:
    """Write the instruction block for each agent.

    Existing files get the block appended unless they already contain it.
    """
    results = []
    for agent in agents:
        path = project_root / agent.rules_path
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.exists():
            existing = path.read_text()
            if RULES_MARKER in existing:
                action = RulesAction.SKIPPED
            else:
                path.write_text(f"{existing.rstrip()}\n\n{TSK_INSTRUCTIONS}")
                action = RulesAction.UPDATED
        else:
            path.write_text(TSK_INSTRUCTIONS)
            action = RulesAction.CREATED

        logger.info("agent_rules_installed", agent=agent.value, path=str(path), action=action.value)
        results.append(RulesResult(agent=agent, path=path, action=action))
    return results
