from .bounded_history import (
    BoundedHistory,
    DEFAULT_MESSAGE_LIMIT,
    classify_message,
    limited_message_reducer,
    make_history_reducer,
)

__all__ = [
    "BoundedHistory",
    "DEFAULT_MESSAGE_LIMIT",
    "classify_message",
    "limited_message_reducer",
    "make_history_reducer",
]
