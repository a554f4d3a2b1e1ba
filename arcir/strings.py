"""Interning table that maps strings to compact integer ids."""

from __future__ import annotations

from typing import Dict, List

INVALID_STRING_ID = 2**32 - 1


class StringTable:
    """Stores each distinct string once and hands out stable integer ids."""

    INVALID_STRING_ID = INVALID_STRING_ID

    def __init__(self) -> None:
        self._ids: Dict[str, int] = {}
        self._strings: List[str] = []

    def intern(self, text: str) -> int:
        """Return the id of ``text``, adding it to the table if it is new."""
        existing = self._ids.get(text)
        if existing is not None:
            return existing
        if len(self._strings) >= INVALID_STRING_ID:
            raise OverflowError("string table is full")
        string_id = len(self._strings)
        self._strings.append(text)
        self._ids[text] = string_id
        return string_id

    def get(self, string_id: int) -> str:
        """Return the interned string; the invalid id yields an empty string."""
        if string_id == INVALID_STRING_ID:
            return ""
        if 0 <= string_id < len(self._strings):
            return self._strings[string_id]
        raise KeyError(f"unknown string id {string_id}")

    def contains(self, text: str) -> bool:
        """Whether ``text`` has been interned."""
        return text in self._ids

    def clear(self) -> None:
        """Forget every interned string."""
        self._ids.clear()
        self._strings.clear()

    def __len__(self) -> int:
        return len(self._strings)

    def __contains__(self, text: object) -> bool:
        return isinstance(text, str) and text in self._ids