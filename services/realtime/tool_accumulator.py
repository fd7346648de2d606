"""Reassembly of streamed function-call arguments."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple


class ToolCallAccumulator:
	"""Concatenate argument fragments per call id in arrival order."""

	def __init__(self) -> None:
		self._fragments: Dict[str, List[str]] = {}
		self._names: Dict[str, str] = {}

	def __contains__(self, call_id: object) -> bool:
		return call_id in self._fragments

	def __len__(self) -> int:
		return len(self._fragments)

	def register(self, call_id: str, name: Optional[str]) -> None:
		"""Remember the tool name announced for `call_id`."""
		if name:
			self._names[call_id] = name
		self._fragments.setdefault(call_id, [])

	def append(self, call_id: str, fragment: Optional[str]) -> None:
		self._fragments.setdefault(call_id, []).append(fragment or "")

	def finish(self, call_id: str, fallback: Optional[str] = None) -> Tuple[Optional[str], str]:
		"""Remove the entry and return (tool name, full argument text).

		When no fragments arrived, `fallback` (the done event's own arguments)
		is used instead.
		"""
		fragments = self._fragments.pop(call_id, [])
		name = self._names.pop(call_id, None)
		text = "".join(fragments)
		if not text:
			text = fallback or ""
		return name, text

	def clear(self) -> None:
		self._fragments.clear()
		self._names.clear()
