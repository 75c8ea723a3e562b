# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Voice matching module that advances the scroll position from speech.

Every recognition update (partial or final) is matched against a small
window of script tokens around the current line. Matches are scored, with
long "anchor" words and words ahead of the current line weighted higher,
and the best one is only acted on if it passes the anti-jitter rules:
- updates are rate limited
- the jump must go forward
- the jump must be at most a few lines
- the score must clear a confidence floor

Failing any rule is a silent no-op; noisy recognition makes that the common
case, not an error.
"""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from . import debug_log
from .errors import InvalidScriptState
from .script_index import ScriptIndex
from .script_parser import Token, normalize_words
from .scroll_state import line_for_offset

logger = logging.getLogger(__name__)

BASE_SCORE: float = 0.7
ANCHOR_BONUS: float = 0.2
FORWARD_BONUS: float = 0.1


class ScrollTarget(Protocol):
    """The part of the scroll state the matcher reads and drives."""
    line_height: float

    @property
    def offset(self) -> float: ...

    def go_to_offset(self, target: float) -> None: ...


@dataclass(frozen=True)
class JumpCommand:
    """An accepted voice match."""
    line_index: int
    offset: float
    score: float
    token_index: int
    from_line: int


@dataclass(frozen=True)
class MatchCandidate:
    """Best scoring token found in the search window."""
    token: Token
    token_index: int
    score: float


class MatchEngine:
    """
    Converts a rolling window of recognised words into forward line jumps.

    The engine holds no tracking state beyond the time of the last accepted
    sync and the last confidence; each update is evaluated from scratch
    against the current scroll offset.
    """

    def __init__(
        self,
        index: ScriptIndex | None,
        scroll: ScrollTarget,
        min_sync_interval: float = 0.3,
        lookbehind: int = 1,
        lookahead: int = 20,
        recent_words: int = 10,
        max_line_jump: int = 3,
        min_score: float = 0.6,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Initialize the match engine.

        Args:
            index: Tokenized script to match against (None before a script is loaded)
            scroll: Scroll state providing the offset and receiving jumps
            min_sync_interval: Minimum seconds between accepted syncs
            lookbehind: Window positions searched before the current line
            lookahead: Window positions searched from the current line onwards
            recent_words: How many of the most recent spoken words are candidates
            max_line_jump: Largest forward jump in lines that is accepted
            min_score: Scores must be strictly above this to be accepted
            clock: Monotonic time source (injectable for tests)
        """
        self.index: ScriptIndex | None = index
        self.scroll: ScrollTarget = scroll
        self.min_sync_interval: float = min_sync_interval
        self.lookbehind: int = lookbehind
        self.lookahead: int = lookahead
        self.recent_words: int = recent_words
        self.max_line_jump: int = max_line_jump
        self.min_score: float = min_score
        self._clock = clock

        self.last_sync_time: float | None = None
        self.confidence: float = 0.0
        self.last_words: list[str] = []

    def resync(self) -> None:
        """Forget the last sync so the next update is evaluated immediately."""
        self.last_sync_time = None
        self.last_words = []

    def on_recognized_words(self, words: Sequence[str]) -> JumpCommand | None:
        """
        Evaluate a recognition update and jump if it is a confident match.

        Args:
            words: The transcript so far as word strings, oldest first

        Returns:
            The jump that was applied, or None if nothing changed.
        """
        now: float = self._clock()
        if (self.last_sync_time is not None
                and now - self.last_sync_time < self.min_sync_interval):
            return None

        spoken: list[str] = self._candidate_words(words)
        self.last_words = spoken
        if not spoken or not self.index:
            return None

        current_line: int = line_for_offset(self.scroll.offset, self.scroll.line_height)
        best: MatchCandidate | None = self.find_best_match(spoken, current_line)
        if best is None:
            return None

        best_line: int = best.token.line_index
        distance: int = best_line - current_line
        if best_line <= 0 or best.score <= self.min_score:
            logger.debug("Rejected '%s' at line %d: score %.2f",
                         best.token.word, best_line, best.score)
            return None
        if not 0 < distance <= self.max_line_jump:
            logger.debug("Rejected '%s': jump of %d lines from line %d",
                         best.token.word, distance, current_line)
            debug_log.log_rejected(current_line, best_line, best.token.word,
                                   best.score, f"distance {distance}")
            return None

        target: float = best_line * self.scroll.line_height
        self.scroll.go_to_offset(target)
        self.last_sync_time = now
        self.confidence = best.score

        logger.info("Voice sync: line %d -> %d on '%s' (score %.2f)",
                    current_line, best_line, best.token.word, best.score)
        debug_log.log_sync(current_line, best_line, best.token.word, best.score, spoken)
        return JumpCommand(
            line_index=best_line,
            offset=target,
            score=best.score,
            token_index=best.token_index,
            from_line=current_line
        )

    def _candidate_words(self, words: Sequence[str]) -> list[str]:
        """Lowercase alphanumeric words from the end of the transcript."""
        normalized: list[str] = []
        for word in words:
            normalized.extend(normalize_words(word))
        if self.recent_words <= 0:
            return []
        return normalized[-self.recent_words:]

    def search_window(self, current_line: int) -> tuple[int, int]:
        """
        Token positions searched for a given current line.

        The bounds are derived from the line number but applied to token
        positions, giving a short lookbehind for recognition lag and a
        bounded lookahead against far-off common-word hits.
        """
        token_count: int = self.index.token_count if self.index else 0
        start: int = max(0, current_line - self.lookbehind)
        end: int = min(token_count, current_line + self.lookahead)
        return start, end

    def score(self, token: Token, current_line: int) -> float:
        """Score one token that matched a spoken word."""
        value: float = BASE_SCORE
        if token.is_anchor:
            value += ANCHOR_BONUS
        if token.line_index > current_line:
            value += FORWARD_BONUS
        return value

    def find_best_match(self, spoken: Sequence[str], current_line: int) -> MatchCandidate | None:
        """
        Find the highest scoring window token equal to any spoken word.

        Ties keep the earliest token in the window.
        """
        if self.index is None:
            return None
        start, end = self.search_window(current_line)
        try:
            window: tuple[Token, ...] = self.index.query(start, end)
        except InvalidScriptState:
            logger.debug("No script tokens to match against")
            return None

        candidates: frozenset[str] = frozenset(spoken)
        best: MatchCandidate | None = None
        for offset, token in enumerate(window):
            if token.word not in candidates:
                continue
            token_score: float = self.score(token, current_line)
            if best is None or token_score > best.score:
                best = MatchCandidate(token=token, token_index=start + offset, score=token_score)
        return best
