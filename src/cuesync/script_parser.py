# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script parsing module that turns raw script text into matchable tokens.

Only lines with visible content are kept. Each kept line is lowercased and
split on every run of non-alphanumeric characters, so "Don't-stop!" becomes
["don", "t", "stop"]. Longer words are flagged as anchors because they are
less likely to be filler and so carry more weight when matching speech.
"""

import re
from dataclasses import dataclass

# Words longer than this many characters are anchors
ANCHOR_MIN_LENGTH: int = 6

# Anything that is not a letter or digit (str.isalnum semantics, Unicode aware)
_NON_ALNUM_RE = re.compile(r"[\W_]+")


@dataclass(frozen=True)
class Token:
    """A single matchable word of the script."""
    word: str  # Lowercase, alphanumeric only
    line_index: int  # Index into the filtered (non-blank) line list
    is_anchor: bool

    def __repr__(self) -> str:
        anchor: str = "*" if self.is_anchor else ""
        return f"Token({self.word}{anchor} @ line {self.line_index})"


def split_lines(text: str) -> list[str]:
    """Return the script lines that have visible content, in order.

    Blank and whitespace-only lines are dropped entirely, so the returned
    list index is the line index every Token refers to.
    """
    return [line for line in text.splitlines() if line.strip()]


def normalize_words(text: str) -> list[str]:
    """Lowercase text and split it into alphanumeric words."""
    return [w for w in _NON_ALNUM_RE.split(text.lower()) if w]


def is_anchor_word(word: str, anchor_length: int = ANCHOR_MIN_LENGTH) -> bool:
    """Check whether a word is long enough to be an anchor."""
    return len(word) > anchor_length


def tokenize(text: str, anchor_length: int = ANCHOR_MIN_LENGTH) -> list[Token]:
    """
    Tokenize script text for voice matching.

    Args:
        text: The full script text
        anchor_length: Words longer than this are marked as anchors

    Returns:
        Tokens in document order with non-decreasing line indices.
    """
    tokens: list[Token] = []
    for line_index, line in enumerate(split_lines(text)):
        for word in normalize_words(line):
            tokens.append(Token(
                word=word,
                line_index=line_index,
                is_anchor=is_anchor_word(word, anchor_length)
            ))
    return tokens
