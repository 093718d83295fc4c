"""
Core Agent

The Agent Invocation Target: turns a natural-language instruction into an
ExecutionOutcome by calling the completion service, with every provider
call wrapped in the backoff executor.
"""

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from ...providers.llm.base import LLMMessage
from ...services.completion import CompletionService
from ..recovery.backoff import BackoffExecutor, RetryPolicy

DEFAULT_THREAD = "default"


class ExecutionOutcome(BaseModel):
    """Result of a single agent invocation"""

    instruction: str = Field(description="Instruction the agent acted on")
    output: str = Field(description="Agent's natural language result")
    thread_id: str = Field(default=DEFAULT_THREAD, description="Conversation thread the turn belongs to")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class AgentInvoker(Protocol):
    """Opaque natural-language action executor."""

    async def invoke(self, instruction: str, *, thread_id: Optional[str] = None) -> ExecutionOutcome: ...


class CompletionAgent:
    """
    Agent backed by a CompletionService.

    Keeps a bounded per-thread memory so follow-up instructions ("based on
    the analysis...") see the earlier turns of the same thread. Turns on one
    thread are serialized; different threads run concurrently.
    """

    def __init__(
        self,
        completion: CompletionService,
        *,
        system_prompt: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
        executor: Optional[BackoffExecutor] = None,
        max_history_messages: int = 20,
        max_threads: int = 256,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.completion = completion
        self.system_prompt = system_prompt
        self.retry_policy = retry_policy or RetryPolicy(
            on_failure_message="Agent invocation failed after multiple retries"
        )
        self.logger = logger or logging.getLogger(__name__)
        self.executor = executor or BackoffExecutor(logger=self.logger)
        self.max_history_messages = max_history_messages
        self.max_threads = max_threads
        self._threads: "OrderedDict[str, List[LLMMessage]]" = OrderedDict()
        self._thread_locks: Dict[str, asyncio.Lock] = {}

    async def invoke(self, instruction: str, *, thread_id: Optional[str] = None) -> ExecutionOutcome:
        thread = thread_id or DEFAULT_THREAD
        lock = self._thread_locks.setdefault(thread, asyncio.Lock())
        async with lock:
            history = list(self._threads.get(thread, []))

            async def call() -> str:
                return await self.completion.generate_completion(
                    instruction,
                    system_prompt=self.system_prompt,
                    history=history,
                )

            output = await self.executor.execute(
                call,
                self.retry_policy,
                operation_name=f"agent invoke ({self.completion.kind.value})",
            )
            self._remember(thread, instruction, output)

        self.logger.info("Agent answered on thread %s (%d chars)", thread, len(output))
        return ExecutionOutcome(instruction=instruction, output=output, thread_id=thread)

    def history(self, thread_id: str = DEFAULT_THREAD) -> List[LLMMessage]:
        return list(self._threads.get(thread_id, []))

    def forget(self, thread_id: str) -> None:
        self._threads.pop(thread_id, None)
        lock = self._thread_locks.get(thread_id)
        if lock is not None and not lock.locked():
            self._thread_locks.pop(thread_id, None)

    def _remember(self, thread: str, instruction: str, output: str) -> None:
        messages = self._threads.setdefault(thread, [])
        messages.append(LLMMessage(role="user", content=instruction))
        messages.append(LLMMessage(role="assistant", content=output))
        if len(messages) > self.max_history_messages:
            del messages[: len(messages) - self.max_history_messages]
        self._threads.move_to_end(thread)
        while len(self._threads) > self.max_threads:
            evicted, _ = self._threads.popitem(last=False)
            self._thread_locks.pop(evicted, None)


_agent: Optional[CompletionAgent] = None


def get_agent() -> Optional[CompletionAgent]:
    """
    Shared agent built from settings, or None when no provider key is configured.
    """
    global _agent
    if _agent is not None:
        return _agent

    from ...config import settings
    from ...services.completion import build_completion_service

    if not settings.has_llm_key:
        logging.getLogger(__name__).warning(
            "No API key configured for provider %s; agent disabled", settings.llm_provider
        )
        return None

    _agent = CompletionAgent(
        build_completion_service(),
        system_prompt=settings.agent_system_prompt,
        retry_policy=settings.default_retry_policy("Agent invocation failed after multiple retries"),
    )
    return _agent


def set_agent(agent: Optional[CompletionAgent]) -> None:
    global _agent
    _agent = agent
