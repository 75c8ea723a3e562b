# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug logging of voice sync decisions.

Writes logs/matches.log with one entry per accepted or rejected jump and per
manual jump, so a session can be reviewed after the fact.

Logging is disabled by default. Call enable() to turn it on.
"""

from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

# Log files location (in project root)
LOG_DIR: Path = Path(__file__).parent.parent.parent / "logs"
MATCH_LOG: Path = LOG_DIR / "matches.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    LOG_DIR.mkdir(exist_ok=True)


def _timestamp() -> str:
    """Get current timestamp."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _write(line: str) -> None:
    _ensure_log_dir()
    with open(MATCH_LOG, 'a', encoding='utf-8') as f:
        f.write(f"[{_timestamp()}] {line}\n")


def clear_logs() -> None:
    """Start a fresh match log for a new script."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(MATCH_LOG, 'w', encoding='utf-8') as f:
        f.write(f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_sync(
    from_line: int,
    to_line: int,
    word: str,
    score: float,
    spoken: Sequence[str]
) -> None:
    """
    Log an accepted voice sync.

    Args:
        from_line: Line the scroll position was on
        to_line: Line jumped to
        word: Script word that matched
        score: Match score
        spoken: Candidate words the match was made from
    """
    if not _ENABLED:
        return
    _write(f"{'sync':10} line {from_line:4d} -> {to_line:4d} word=\"{word}\" "
           f"score={score:.2f} spoken={list(spoken)}")


def log_rejected(from_line: int, to_line: int, word: str, score: float, reason: str) -> None:
    """Log a match that scored but failed the jump constraints."""
    if not _ENABLED:
        return
    _write(f"{'rejected':10} line {from_line:4d} -> {to_line:4d} word=\"{word}\" "
           f"score={score:.2f} ({reason})")


def log_manual_jump(line_index: int, source: str = "click") -> None:
    """Log a jump requested from outside the matcher."""
    if not _ENABLED:
        return
    _write(f"{source:10} jump to line {line_index:4d}")
