from dataclasses import dataclass, field
from typing import Tuple

from langchain_core.tools import BaseTool

from wander_chat.tools.external.weather import get_weather


@dataclass(frozen=True)
class ToolPolicy:
    """
    Capabilities the model may call on its own during one turn.

    ``max_model_calls`` bounds the agent loop: the default of 2 allows a single
    call-and-resume cycle (request the tool, then answer with its result).
    Tool results stay inside the turn; only the final reply reaches history.
    """
    tools: Tuple[BaseTool, ...] = field(default_factory=tuple)
    max_model_calls: int = 2

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(t.name for t in self.tools)


NO_TOOLS = ToolPolicy(tools=(), max_model_calls=1)


def default_tool_policy() -> ToolPolicy:
    return ToolPolicy(tools=(get_weather,))
