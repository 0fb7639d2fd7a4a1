"""codeloop_ai.

This package contains the governed action-execution core of an autonomous
coding assistant: the loop that alternates between a reasoning backend and the
actions it requests, and the pipeline every action must pass through before it
touches the filesystem or a shell.

High-level architecture
-----------------------

- **Control loop** (``agent_core.runtime``): a LangGraph state graph that calls
  the reasoning backend, feeds requested actions to the pipeline one at a time
  and appends their results to the conversation.
- **Execution pipeline** (``agent_core.pipeline``): seven ordered stages
  (discovery, permission, hook, confirmation, execution, post hook,
  formatting) operating on one mutable execution record per action call.
- **Permission engine** (``agent_core.policy``): allow/deny/ask rules, mode
  overrides and sensitive-path detection.
- **Hook orchestrator** (``agent_core.hooks``): externally configured commands
  run as child processes at lifecycle events.
- **Tool registry** (``agent_core.capabilities``): builtin and externally
  supplied action definitions.

Typical workflow
----------------

Most integrations should use ``codeloop_ai.agent_core.factory.build_agent_service``
and then ``AgentService.chat``.
"""
