import logging
from typing import AsyncIterator, Dict, Optional, Protocol, Sequence, Tuple, Union

from langchain.agents import create_agent
from langchain.agents.middleware import ModelCallLimitMiddleware
from langchain.chat_models import init_chat_model
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage

from wander_chat.tools.policy import NO_TOOLS, ToolPolicy

logger = logging.getLogger(__name__)

Turns = Sequence[Dict[str, str]]


class ModelClient(Protocol):
    """What the orchestrator needs from the hosted model."""

    async def complete_once(self, turns: Turns, tools: Optional[ToolPolicy] = None) -> Optional[str]: ...

    def complete_streaming(self, turns: Turns, tools: Optional[ToolPolicy] = None) -> AsyncIterator[str]: ...


def extract_text(content) -> str:
    """Extract plain text from a content field that may be a string or a list of blocks."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


class AgentModelClient:
    """
    ModelClient backed by a LangChain agent graph.

    The agent runs requested tools itself and feeds their output back into the
    same generation, so callers only ever see the final assistant text. One
    compiled graph is cached per tool policy.
    """

    def __init__(self, model: Union[str, BaseChatModel]):
        self._model = init_chat_model(model) if isinstance(model, str) else model
        self._agents: Dict[Tuple[Tuple[str, ...], int], object] = {}

    def _agent_for(self, policy: Optional[ToolPolicy]):
        policy = policy or NO_TOOLS
        key = (policy.names, policy.max_model_calls)
        agent = self._agents.get(key)
        if agent is None:
            logger.info(
                "Building agent with tools=%s max_model_calls=%d",
                list(policy.names), policy.max_model_calls,
            )
            agent = create_agent(
                model=self._model,
                tools=list(policy.tools),
                middleware=[ModelCallLimitMiddleware(run_limit=policy.max_model_calls, exit_behavior="end")],
            )
            self._agents[key] = agent
        return agent

    async def complete_once(self, turns: Turns, tools: Optional[ToolPolicy] = None) -> Optional[str]:
        result = await self._agent_for(tools).ainvoke({"messages": list(turns)})
        # Earlier assistant turns are part of the input; only look at new messages.
        for message in reversed(result["messages"][len(turns):]):
            if isinstance(message, AIMessage) and not message.tool_calls:
                return extract_text(message.content)
        return None

    async def complete_streaming(self, turns: Turns, tools: Optional[ToolPolicy] = None) -> AsyncIterator[str]:
        agent = self._agent_for(tools)
        tool_call_message_ids = set()
        async for chunk, metadata in agent.astream({"messages": list(turns)}, stream_mode="messages"):
            # Tool results and middleware messages come from other nodes.
            if metadata.get("langgraph_node") != "model" or not isinstance(chunk, AIMessage):
                continue
            # Text that travels with a tool call is not part of the final reply,
            # matching what complete_once returns.
            if getattr(chunk, "tool_call_chunks", None) or chunk.tool_calls:
                tool_call_message_ids.add(chunk.id)
                continue
            if chunk.id is not None and chunk.id in tool_call_message_ids:
                continue
            text = extract_text(chunk.content)
            if text:
                yield text
