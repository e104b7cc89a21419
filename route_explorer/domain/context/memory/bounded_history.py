from typing import Callable, Dict, List, Sequence, Union
from collections import Counter

import structlog
from langchain_core.messages import BaseMessage

from route_explorer.domain.models.agent_state import MessageRole

logger = structlog.get_logger(__name__)

DEFAULT_MESSAGE_LIMIT = 10

_ROLE_BY_TYPE = {
    "system": MessageRole.SYSTEM,
    "human": MessageRole.USER,
    "ai": MessageRole.ASSISTANT,
    "tool": MessageRole.TOOL,
}

MessageUpdate = Union[BaseMessage, Sequence[BaseMessage]]


def classify_message(message: BaseMessage) -> MessageRole:
    """Map a LangChain message onto a history role"""

    return _ROLE_BY_TYPE.get(getattr(message, "type", None), MessageRole.OTHER)


def limited_message_reducer(
    existing: Sequence[BaseMessage],
    incoming: MessageUpdate,
    limit: int = DEFAULT_MESSAGE_LIMIT
) -> List[BaseMessage]:
    """
    Merge new messages into a history, keeping at most ``limit`` messages per role.

    Output order: system messages, then user/tool/assistant interleaved by
    position within their bucket, then any other messages. A limit of 0
    keeps the system messages and drops everything else.
    """

    if limit < 0:
        raise ValueError("limit must be >= 0")

    if isinstance(incoming, BaseMessage):
        incoming = [incoming]

    buckets: Dict[MessageRole, List[BaseMessage]] = {role: [] for role in MessageRole}
    for message in list(existing or []) + list(incoming or []):
        buckets[classify_message(message)].append(message)

    if limit == 0:
        return list(buckets[MessageRole.SYSTEM])

    kept = {role: bucket[-limit:] for role, bucket in buckets.items()}

    result: List[BaseMessage] = list(kept[MessageRole.SYSTEM])

    users = kept[MessageRole.USER]
    tools = kept[MessageRole.TOOL]
    assistants = kept[MessageRole.ASSISTANT]

    for i in range(max(len(users), len(tools), len(assistants))):
        if i < len(users):
            result.append(users[i])
        if i < len(tools):
            result.append(tools[i])
        if i < len(assistants):
            result.append(assistants[i])

    result.extend(kept[MessageRole.OTHER])

    logger.debug(
        "History reduced",
        before=len(existing or []) + len(incoming or []),
        after=len(result),
        limit=limit
    )

    return result


def make_history_reducer(limit: int = DEFAULT_MESSAGE_LIMIT) -> Callable[[Sequence[BaseMessage], MessageUpdate], List[BaseMessage]]:
    """Two-argument reducer bound to a limit, for use as a LangGraph channel reducer"""

    if limit < 0:
        raise ValueError("limit must be >= 0")

    def reducer(existing: Sequence[BaseMessage], incoming: MessageUpdate) -> List[BaseMessage]:
        return limited_message_reducer(existing, incoming, limit)

    return reducer


class BoundedHistory:
    """Immutable message log capped per role"""

    def __init__(self, messages: Sequence[BaseMessage] = (), limit: int = DEFAULT_MESSAGE_LIMIT):
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self._messages = tuple(messages)
        self.limit = limit

    @property
    def messages(self) -> List[BaseMessage]:
        return list(self._messages)

    def append(self, incoming: MessageUpdate) -> "BoundedHistory":
        """Return a new history with ``incoming`` folded in"""

        return BoundedHistory(
            limited_message_reducer(self._messages, incoming, self.limit),
            self.limit
        )

    def count_by_role(self) -> Dict[MessageRole, int]:
        """Number of retained messages per role"""

        counts = Counter(classify_message(message) for message in self._messages)
        return {role: counts.get(role, 0) for role in MessageRole}

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(self._messages)
