"""Bounded, in-process conversation memory owned by a single agent."""

import logging
from typing import (
    List,
    Optional,
    Tuple,
)

from tripflow.config import settings
from tripflow.core.schema import (
    Message,
    Role,
)

logger = logging.getLogger(__name__)


class MemoryStore:
    """
    Ordered, size-bounded message log.

    The agent keeps its system prompt at position 0.  Once the log grows past *max_messages*, the
    oldest non-system message is evicted; system messages are never evicted.
    """

    def __init__(self, max_messages: int | None = None) -> None:
        self.max_messages = max_messages if max_messages is not None else settings.MAX_MESSAGES
        if self.max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self._messages: List[Message] = []

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def messages(self) -> Tuple[Message, ...]:
        """Snapshot of the current log."""
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def has_system_message(self) -> bool:
        return bool(self._messages) and self._messages[0].role is Role.SYSTEM

    def add_message(self, message: Message) -> None:
        """Append *message*, evicting the oldest non-system message when over the bound."""
        self._messages.append(message)
        if len(self._messages) > self.max_messages:
            self._evict_oldest()

    def ensure_system_prompt(self, prompt: str) -> None:
        """Insert *prompt* at position 0 unless a system message already leads the log."""
        if not self.has_system_message():
            self._messages.insert(0, Message.system(prompt))
            if len(self._messages) > self.max_messages:
                self._evict_oldest()

    def last(self, role: Role | None = None) -> Optional[Message]:
        """Most recent message, optionally restricted to *role*."""
        for message in reversed(self._messages):
            if role is None or message.role is role:
                return message
        return None

    def get_context(self) -> str:
        """Flattened ``role: content`` transcript."""
        return "\n\n".join(f"{m.role.value}: {m.content}" for m in self._messages)

    def clear(self) -> None:
        """Drop every non-system message."""
        self._messages = [m for m in self._messages if m.role is Role.SYSTEM]

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _evict_oldest(self) -> None:
        for index, message in enumerate(self._messages):
            if message.role is not Role.SYSTEM:
                del self._messages[index]
                logger.debug(
                    "Memory full (%d); evicted oldest %s message",
                    self.max_messages,
                    message.role.value,
                )
                return
        logger.warning("Memory holds only system messages; nothing to evict")
