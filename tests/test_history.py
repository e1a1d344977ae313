"""Tests for conversation messages and the history log."""

from __future__ import annotations

import json
import unittest

from dualchat.exceptions import HistoryError
from dualchat.history import ConversationHistory, Message, MessageOrigin


class ConversationHistoryTests(unittest.TestCase):
    """Validate ordering, snapshots and assistant message handles."""

    def test_appends_preserve_order(self) -> None:
        history = ConversationHistory()
        history.append_user("hi")
        handle = history.append_assistant()
        handle.append("hel")
        handle.append("lo")
        handle.freeze()

        snapshot = history.snapshot()
        self.assertEqual(len(history), 2)
        self.assertEqual(
            [(m.origin, m.text) for m in snapshot],
            [(MessageOrigin.USER, "hi"), (MessageOrigin.ASSISTANT, "hello")],
        )
        self.assertEqual(snapshot[0].role, "user")
        self.assertEqual(snapshot[1].role, "assistant")

    def test_frozen_assistant_message_rejects_appends(self) -> None:
        history = ConversationHistory()
        handle = history.append_assistant("done")
        handle.freeze()
        with self.assertRaises(HistoryError):
            handle.append("more")
        self.assertEqual(handle.text, "done")

    def test_snapshot_is_detached(self) -> None:
        history = ConversationHistory()
        history.append_user("original")
        snapshot = history.snapshot()
        snapshot[0].text = "tampered"
        self.assertEqual(history.snapshot()[0].text, "original")

    def test_replace_freezes_and_validates(self) -> None:
        history = ConversationHistory()
        open_message = Message(MessageOrigin.ASSISTANT, "partial", frozen=False)
        history.replace([Message.user("q"), open_message])
        self.assertTrue(all(m.frozen for m in history.snapshot()))
        self.assertFalse(open_message.frozen)

        with self.assertRaises(HistoryError):
            history.replace([{"origin": "user", "text": "nope"}])  # type: ignore[list-item]

    def test_rollback_only_removes_trailing_user_message(self) -> None:
        history = ConversationHistory([Message.user("a"), Message.assistant("b")])
        history.rollback_last_user_append()
        self.assertEqual(len(history), 2)

        history.append_user("c")
        history.rollback_last_user_append()
        self.assertEqual([m.text for m in history.snapshot()], ["a", "b"])

    def test_clear_and_export_json(self) -> None:
        history = ConversationHistory()
        history.append_user("héllo", attachments=["img.png"])
        history.append_assistant("world").freeze()

        exported = json.loads(history.export_json())
        self.assertEqual(
            exported,
            [
                {"origin": "user", "text": "héllo"},
                {"origin": "assistant", "text": "world"},
            ],
        )
        self.assertEqual(history.snapshot()[0].attachments, ("img.png",))

        history.clear()
        self.assertEqual(len(history), 0)
        self.assertEqual(history.export_json(), "[]")


if __name__ == "__main__":
    unittest.main()
