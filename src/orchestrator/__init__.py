"""Orchestrator - conversation session and chat backend.

Keeps the conversation history, reconnects MCP tool servers after idle
periods, drives the LLM via LlamaIndex and logs a readable transcript.
"""

from orchestrator.llm import BackendError, LLMProvider, create_llm_provider
from orchestrator.backend import ChatBackend, FunctionInvokingBackend
from orchestrator.renderer import render_message
from orchestrator.session import SessionOrchestrator

__all__ = [
    "BackendError",
    "LLMProvider",
    "create_llm_provider",
    "ChatBackend",
    "FunctionInvokingBackend",
    "render_message",
    "SessionOrchestrator",
]
