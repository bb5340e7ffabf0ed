import logging
from contextlib import aclosing
from typing import AsyncIterator, List, Optional, Tuple

from wander_chat.agent import ModelClient, Turns
from wander_chat.conversations.models import Conversation
from wander_chat.conversations.store import ConversationStore, normalize_user_id
from wander_chat.middleware.request_context import bind_user
from wander_chat.models import RequestContext
from wander_chat.prompts.assembler import build_history
from wander_chat.tools.policy import ToolPolicy, default_tool_policy

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    """
    Runs one chat turn: record the user message, rebuild the prompt from
    history, call the model, record the reply.

    The user message is never rolled back. If the model fails, history keeps the
    user turn without an assistant reply.
    """

    def __init__(
        self,
        store: ConversationStore,
        model: ModelClient,
        tool_policy: Optional[ToolPolicy] = None,
    ):
        self.store = store
        self.model = model
        self.tool_policy = tool_policy if tool_policy is not None else default_tool_policy()

    def _begin_turn(
        self, user_id: Optional[str], message: str, context: Optional[RequestContext]
    ) -> Tuple[Conversation, Turns]:
        user_id = normalize_user_id(user_id)
        bind_user(user_id)
        conversation = self.store.get_or_create(user_id)
        self.store.append_to(conversation, "user", message)
        history = build_history(self.store, user_id, context)
        logger.info("Starting turn for user_id=%s with %d prompt turn(s)", user_id, len(history))
        return conversation, history

    async def respond(
        self, user_id: Optional[str], message: str, context: Optional[RequestContext] = None
    ) -> str:
        conversation, history = self._begin_turn(user_id, message, context)
        reply = await self.model.complete_once(history, self.tool_policy) or ""
        self._store_reply(conversation, reply)
        logger.info(
            "Turn completed for user_id=%s (reply length=%d chars)", conversation.user_id, len(reply)
        )
        return reply

    async def respond_streaming(
        self, user_id: Optional[str], message: str, context: Optional[RequestContext] = None
    ) -> AsyncIterator[str]:
        """
        Yield the reply fragment by fragment.

        Whatever the consumer received is stored as a single assistant message
        once the stream ends, whether it finished, was closed early, was
        cancelled or failed. Nothing is stored if no fragment was produced.
        Empty fragments are dropped.
        """
        conversation, history = self._begin_turn(user_id, message, context)
        accumulated: List[str] = []
        finished = False
        try:
            async with aclosing(self.model.complete_streaming(history, self.tool_policy)) as fragments:
                async for fragment in fragments:
                    if not fragment:
                        continue
                    try:
                        yield fragment
                    finally:
                        # Runs even when the consumer closes us at this yield,
                        # since it has already seen the fragment.
                        accumulated.append(fragment)
            finished = True
        finally:
            self._commit_reply(conversation, accumulated, finished)

    def _store_reply(self, conversation: Conversation, reply: str) -> None:
        self.store.append_to(conversation, "assistant", reply)
        if not self.store.is_registered(conversation):
            logger.info(
                "Conversation for user_id=%s was evicted during the turn; reply not kept", conversation.user_id
            )

    def _commit_reply(self, conversation: Conversation, accumulated: List[str], finished: bool) -> None:
        user_id = conversation.user_id
        if not accumulated:
            if not finished:
                logger.warning("Stream for user_id=%s ended before any content; no reply stored", user_id)
            return
        reply = "".join(accumulated)
        self._store_reply(conversation, reply)
        if finished:
            logger.info(
                "Stream completed for user_id=%s: %d fragment(s), %d chars",
                user_id, len(accumulated), len(reply),
            )
        else:
            logger.warning(
                "Stream for user_id=%s interrupted after %d fragment(s); stored partial reply (%d chars)",
                user_id, len(accumulated), len(reply),
            )
