"""
Agent invocation: the natural-language action executor used by the chat
server and the portfolio scanner.
"""

from .base import AgentInvoker, CompletionAgent, ExecutionOutcome, get_agent, set_agent

__all__ = [
    "AgentInvoker",
    "CompletionAgent",
    "ExecutionOutcome",
    "get_agent",
    "set_agent",
]
