"""Conversation messages and the ordered history log."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
import json
from typing import Any

from .exceptions import HistoryError


class MessageOrigin(str, Enum):
    """Who produced a message."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """A single conversation turn.

    ``text`` grows through ``AssistantMessageHandle.append`` while an assistant
    reply is streaming and is frozen once the turn completes.
    """

    origin: MessageOrigin
    text: str = ""
    attachments: tuple[Any, ...] = field(default_factory=tuple)
    frozen: bool = True

    @classmethod
    def user(cls, text: str, attachments: Iterable[Any] = ()) -> Message:
        return cls(MessageOrigin.USER, text, tuple(attachments))

    @classmethod
    def assistant(cls, text: str = "") -> Message:
        return cls(MessageOrigin.ASSISTANT, text)

    @property
    def role(self) -> str:
        """Wire role name for chat-completion style payloads."""
        return self.origin.value


class AssistantMessageHandle:
    """Write access to an in-progress assistant message."""

    def __init__(self, message: Message) -> None:
        self._message = message

    @property
    def message(self) -> Message:
        return self._message

    @property
    def text(self) -> str:
        return self._message.text

    def append(self, delta: str) -> None:
        if self._message.frozen:
            raise HistoryError("Cannot append to a frozen assistant message.")
        self._message.text += delta

    def freeze(self) -> Message:
        self._message.frozen = True
        return self._message


class ConversationHistory:
    """Ordered, append-only log of conversation messages.

    Callers outside the session only ever receive snapshots, which are tuples
    of detached copies.
    """

    def __init__(self, messages: Iterable[Message] | None = None) -> None:
        self._messages: list[Message] = []
        if messages is not None:
            self.replace(messages)

    def __len__(self) -> int:
        return len(self._messages)

    def append_user(self, text: str, attachments: Iterable[Any] = ()) -> Message:
        """Append a frozen user message and return it."""
        message = Message.user(text, attachments)
        self._messages.append(message)
        return message

    def append_assistant(self, text: str = "") -> AssistantMessageHandle:
        """Append an open assistant message and return its write handle."""
        message = Message(MessageOrigin.ASSISTANT, text, frozen=False)
        self._messages.append(message)
        return AssistantMessageHandle(message)

    def rollback_last_user_append(self) -> None:
        """Remove the last message if it is a user message.

        Used to undo a user-message append when a turn fails before it
        produced an answer, so the history never ends with two user turns.
        """
        if self._messages and self._messages[-1].origin is MessageOrigin.USER:
            self._messages.pop()

    def snapshot(self) -> tuple[Message, ...]:
        """Return detached copies of every message in conversation order."""
        return tuple(replace(message) for message in self._messages)

    def replace(self, messages: Iterable[Message]) -> None:
        """Replace the whole history, freezing every incoming message."""
        normalized: list[Message] = []
        for message in messages:
            if not isinstance(message, Message):
                raise HistoryError(f"Expected Message, got {type(message).__name__}.")
            normalized.append(replace(message, frozen=True))
        self._messages = normalized

    def clear(self) -> None:
        self._messages = []

    def export_json(self) -> str:
        """Export current history using stable list and field ordering."""
        stable_messages = [
            {"origin": message.origin.value, "text": message.text}
            for message in self._messages
        ]
        return json.dumps(
            stable_messages, ensure_ascii=False, separators=(",", ":"), sort_keys=False
        )

