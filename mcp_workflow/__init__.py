"""Workflow tooling for the project's MCP servers and MySQL database."""

__version__ = "1.0.0"
