import logging
from contextlib import AsyncExitStack
from typing import Literal, TypedDict, Annotated, Any

from langgraph.graph import StateGraph, END, START
from langgraph.types import Command
from langgraph.checkpoint.memory import MemorySaver
from langgraph.checkpoint.redis.aio import AsyncRedisSaver
from langchain_core.messages import HumanMessage, AIMessage, AnyMessage, RemoveMessage
from langgraph.graph.message import add_messages

from telehealth.config import settings
from telehealth.agent.chatbot_ai import chatbot_ai

logger = logging.getLogger(__name__)


# --- STATE ---

class ChatAgentState(TypedDict):
    """The agent state, using add_messages for history persistence."""

    user_message: str
    user_profile: dict
    analysis: dict | None
    response: dict | None
    # Conversation memory, trimmed to the configured number of exchanges
    messages: Annotated[list[AnyMessage], add_messages]


# --- NODES ---

async def read_request(state: ChatAgentState) -> dict:
    """Adds the current user_message to the message history."""
    return {
        "messages": [HumanMessage(content=state["user_message"])]
    }


async def classify_intent(state: ChatAgentState) -> Command[Literal["emergency_response", "respond"]]:
    """Keyword intent and urgency classification, no LLM call."""
    analysis = chatbot_ai.analyze_message_intent(state["user_message"])
    goto = "emergency_response" if analysis["is_emergency"] else "respond"
    return Command(
        update={"analysis": analysis},
        goto=goto
    )


async def emergency_response(state: ChatAgentState) -> dict:
    """Fixed emergency guidance; the LLM is never consulted for these."""
    response = chatbot_ai.emergency_response()
    return {
        "messages": [AIMessage(content=response["message"])] + _trim(state["messages"]),
        "response": response,
    }


async def respond(state: ChatAgentState) -> dict:
    """Structured healthcare reply using the stored conversation as context."""
    history = _exchanges(state["messages"][:-1])
    response = await chatbot_ai.generate_healthcare_response(
        state["user_message"],
        state["analysis"],
        history,
        state.get("user_profile") or {},
    )
    return {
        "messages": [AIMessage(content=response.get("message", ""))] + _trim(state["messages"]),
        "response": response,
    }


def _exchanges(messages: list[AnyMessage]) -> list[tuple[str, str]]:
    """Pair up human/AI messages into (user, assistant) exchanges"""
    pairs = []
    pending = None
    for msg in messages:
        if isinstance(msg, HumanMessage):
            pending = msg.content
        elif isinstance(msg, AIMessage) and pending is not None:
            pairs.append((pending, msg.content))
            pending = None
    return pairs


def _trim(messages: list[AnyMessage]) -> list[RemoveMessage]:
    """Removals that keep the last CONVERSATION_HISTORY_LIMIT exchanges once the reply is added"""
    keep = settings.CONVERSATION_HISTORY_LIMIT * 2
    excess = len(messages) + 1 - keep
    if excess <= 0:
        return []
    return [RemoveMessage(id=msg.id) for msg in messages[:excess]]


# --- GRAPH COMPILATION ---

def build_chat_graph(checkpointer):
    workflow = StateGraph(ChatAgentState)
    workflow.add_node("read_request", read_request)
    workflow.add_node("classify_intent", classify_intent)
    workflow.add_node("emergency_response", emergency_response)
    workflow.add_node("respond", respond)

    workflow.add_edge(START, "read_request")
    workflow.add_edge("read_request", "classify_intent")
    workflow.add_edge("emergency_response", END)
    workflow.add_edge("respond", END)

    return workflow.compile(checkpointer=checkpointer)


async def open_checkpointer(stack: AsyncExitStack):
    """AsyncRedisSaver when REDIS_URL is configured, otherwise in-process memory"""
    if settings.REDIS_URL:
        saver = await stack.enter_async_context(AsyncRedisSaver.from_conn_string(settings.REDIS_URL))
        await saver.asetup()
        logger.info("Conversation memory stored in Redis")
        return saver
    logger.info("Conversation memory kept in process")
    return MemorySaver()


class ConversationAgent:
    """Per-user chat threads on top of the compiled graph"""

    def __init__(self, graph=None, checkpointer=None):
        self.checkpointer = checkpointer if checkpointer is not None else MemorySaver()
        self.graph = graph if graph is not None else build_chat_graph(self.checkpointer)
        self._active_users: set[str] = set()

    @staticmethod
    def thread_config(user_id: str) -> dict:
        return {"configurable": {"thread_id": f"chat:{user_id}"}}

    @property
    def active_conversations(self) -> int:
        return len(self._active_users)

    async def chat(self, user_id: str, message: str, user_profile: dict | None = None) -> dict[str, Any]:
        """Run one turn and return the structured response"""
        result = await self.graph.ainvoke(
            {"user_message": message, "user_profile": user_profile or {}},
            self.thread_config(user_id),
        )
        self._active_users.add(user_id)
        return result["response"]

    async def history(self, user_id: str) -> list[AnyMessage]:
        snapshot = await self.graph.aget_state(self.thread_config(user_id))
        return list(snapshot.values.get("messages", [])) if snapshot.values else []

    async def clear(self, user_id: str) -> None:
        await self.checkpointer.adelete_thread(f"chat:{user_id}")
        self._active_users.discard(user_id)
