"""MCP (Model Context Protocol) front end for tsk."""
