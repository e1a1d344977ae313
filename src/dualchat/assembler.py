"""Reassembly of streamed tool-call fragments into complete calls."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import Any

from .events import ToolCallFragment
from .exceptions import ToolAssemblyError

LOGGER = logging.getLogger(__name__)


@dataclass
class ToolCallRecord:
    """Partial tool call accumulated from fragments sharing one index."""

    index: int
    call_id: str | None = None
    name: str = ""
    arguments_json: str = ""


@dataclass(frozen=True)
class ToolCall:
    """A finalized tool call ready for execution."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str | None = None


class ToolCallAssembler:
    """Accumulate tool-call fragments for one turn.

    Argument text is concatenated verbatim and only parsed by ``finalize``,
    because providers split JSON at arbitrary byte positions.
    """

    def __init__(self) -> None:
        # dicts keep insertion order, i.e. first-fragment-seen order.
        self._records: dict[int, ToolCallRecord] = {}
        self.errors: list[ToolAssemblyError] = []

    @property
    def has_fragments(self) -> bool:
        return bool(self._records)

    def add(self, fragment: ToolCallFragment) -> None:
        record = self._records.get(fragment.index)
        if record is None:
            record = ToolCallRecord(index=fragment.index)
            self._records[fragment.index] = record
        if fragment.call_id:
            record.call_id = fragment.call_id
        record.name += fragment.name
        record.arguments_json += fragment.arguments

    def finalize(self) -> list[ToolCall]:
        """Parse every record; malformed ones are dropped and noted in ``errors``."""
        calls: list[ToolCall] = []
        for record in self._records.values():
            try:
                calls.append(self._finalize_record(record))
            except ToolAssemblyError as exc:
                self.errors.append(exc)
                LOGGER.warning(
                    "assembler.call.dropped",
                    extra={
                        "event": "assembler.call.dropped",
                        "index": record.index,
                        "tool": record.name,
                        "error": str(exc),
                    },
                )
        return calls

    @staticmethod
    def _finalize_record(record: ToolCallRecord) -> ToolCall:
        name = record.name.strip()
        if not name:
            raise ToolAssemblyError(
                f"Tool call #{record.index} has no function name."
            )
        raw = record.arguments_json.strip()
        if not raw:
            return ToolCall(name=name, call_id=record.call_id)
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ToolAssemblyError(
                f"Tool call {name!r} has unparseable arguments: {exc}"
            ) from exc
        if not isinstance(arguments, dict):
            raise ToolAssemblyError(
                f"Tool call {name!r} arguments must be a JSON object."
            )
        return ToolCall(name=name, arguments=arguments, call_id=record.call_id)
