# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Immutable index over a tokenized script.

An index is built once per script selection or edit and never mutated;
editing the script means building a new index.
"""

from collections.abc import Iterable, Sequence

from .errors import InvalidScriptState
from .script_parser import ANCHOR_MIN_LENGTH, Token, split_lines, tokenize


class ScriptIndex:
    """Owns the token sequence of one script and answers window queries."""

    __slots__ = ("_tokens", "_lines", "_line_count")

    def __init__(self, tokens: Iterable[Token], lines: Sequence[str] | None = None) -> None:
        self._tokens: tuple[Token, ...] = tuple(tokens)
        self._lines: tuple[str, ...] = tuple(lines) if lines is not None else ()
        derived: int = self._tokens[-1].line_index + 1 if self._tokens else 0
        self._line_count: int = max(derived, len(self._lines))

    @classmethod
    def build(cls, tokens: Iterable[Token], lines: Sequence[str] | None = None) -> "ScriptIndex":
        """Build an index from already tokenized text."""
        return cls(tokens, lines)

    @classmethod
    def from_text(cls, text: str, anchor_length: int = ANCHOR_MIN_LENGTH) -> "ScriptIndex":
        """Tokenize script text and build an index from it."""
        return cls(tokenize(text, anchor_length), split_lines(text))

    @property
    def tokens(self) -> tuple[Token, ...]:
        return self._tokens

    @property
    def token_count(self) -> int:
        return len(self._tokens)

    @property
    def line_count(self) -> int:
        return self._line_count

    @property
    def lines(self) -> tuple[str, ...]:
        """Line texts for rendering (empty if built from tokens only)."""
        return self._lines

    def line_text(self, line_index: int) -> str | None:
        if 0 <= line_index < len(self._lines):
            return self._lines[line_index]
        return None

    def __len__(self) -> int:
        return len(self._tokens)

    def __bool__(self) -> bool:
        return bool(self._tokens)

    def query(self, window_start: int, window_end: int) -> tuple[Token, ...]:
        """
        Return the tokens with index in [window_start, window_end).

        Bounds are clamped to the token range. Slicing keeps each query
        proportional to the window size rather than the script length.

        Raises:
            InvalidScriptState: If the index holds no tokens.
        """
        if not self._tokens:
            raise InvalidScriptState("Script has no tokens to search")
        start: int = max(0, window_start)
        end: int = min(len(self._tokens), window_end)
        if end <= start:
            return ()
        return self._tokens[start:end]
