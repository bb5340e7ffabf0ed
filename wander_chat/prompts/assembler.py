"""Builds the exact message list handed to the model for one turn.

The system prompt is rebuilt from scratch every turn: fixed instructions plus an
optional per-request context block. Stored history is appended after it
unchanged, so the model always sees the full conversation.
"""

from typing import Dict, List, Optional

from wander_chat.conversations.store import ConversationStore
from wander_chat.models import MeasurementSystem, RequestContext
from wander_chat.prompts.system_prompt import (
    ACTIVITIES_LINE,
    IMPERIAL_LINE,
    LOCATION_LINE,
    METRIC_LINE,
    SYSTEM_PROMPT,
    USER_CONTEXT_HEADER,
)


def build_context_block(context: RequestContext) -> str:
    lines = [USER_CONTEXT_HEADER]

    if context.measurement_system == MeasurementSystem.METRIC:
        lines.append(METRIC_LINE)
    else:
        lines.append(IMPERIAL_LINE)

    if context.activities:
        lines.append(ACTIVITIES_LINE.format(activities=", ".join(context.activities)))

    if context.has_location:
        lines.append(LOCATION_LINE.format(latitude=context.latitude, longitude=context.longitude))

    return "\n".join(lines)


def build_system_prompt(context: Optional[RequestContext] = None) -> str:
    if context is None:
        return SYSTEM_PROMPT
    return f"{SYSTEM_PROMPT}\n{build_context_block(context)}\n"


def build_history(
    store: ConversationStore,
    user_id: str,
    context: Optional[RequestContext] = None,
) -> List[Dict[str, str]]:
    """System prompt first, then every stored message in append order."""
    turns = [{"role": "system", "content": build_system_prompt(context)}]
    turns.extend({"role": m.role, "content": m.content} for m in store.messages(user_id))
    return turns
