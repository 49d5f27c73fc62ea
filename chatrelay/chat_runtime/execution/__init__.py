"""Execution pipeline for the chat runtime.

This package contains the per-turn execution components:

- **history**: Message mapping (role-tagged history -> pydantic-ai message history)
- **engine**: Agent adapter (RelaySettings -> Agent -> AgentEvent stream)
- **relay**: Turn orchestration (persist -> acquire -> decode -> emit frames)
"""
