"""Command-line interface for tsk."""
