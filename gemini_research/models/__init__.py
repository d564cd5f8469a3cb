"""Pydantic models shared by the orchestrator, the API and the CLI."""
