"""tsk - agent-first task tracker with dependency-aware status tracking."""

__version__ = "0.1.0"
