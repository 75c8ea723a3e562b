# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug tool for replaying a transcript through voice sync.

This CLI tool takes a transcript file and a script file, feeds the
transcript to the match engine on a simulated clock (so rate limiting and
auto-resume behave as they would live) and reports every jump.
"""

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, TextIO

from .config import DEFAULT_CONFIG, MatchingSettings, ScrollSettings
from .match_engine import JumpCommand, MatchEngine
from .scheduler import ManualScheduler
from .script_index import ScriptIndex
from .script_parser import normalize_words
from .scroll_state import ScrollState

EventType = Literal["jump", "no_change"]


@dataclass
class SyncEvent:
    """One recognition update during replay."""
    transcript_line: int
    spoken: str
    time: float
    line_before: int
    line_after: int
    event_type: EventType
    score: float = 0.0


def load_transcript(path: Path) -> list[str]:
    """Load transcript lines, skipping blank lines and '===' metadata lines."""
    lines: list[str] = []
    with open(path, encoding='utf-8') as f:
        for line in f:
            stripped_line: str = line.strip()
            if stripped_line.startswith('===') or not stripped_line:
                continue
            lines.append(stripped_line)
    return lines


def load_script(path: Path) -> str:
    """Load script file content."""
    with open(path, encoding='utf-8') as f:
        return f.read()


def _updates_for_line(words: list[str], word_by_word: bool) -> list[list[str]]:
    if not word_by_word:
        return [words]
    # Cumulative partials, as a streaming recognizer reports them
    return [words[:i] for i in range(1, len(words) + 1)]


def replay_transcript(
    transcript_lines: list[str],
    script_text: str,
    output: TextIO,
    verbose: bool = False,
    word_by_word: bool = False,
    seconds_per_word: float = 0.4,
    auto_scroll: bool = False,
    scroll_settings: ScrollSettings | None = None,
    matching_settings: MatchingSettings | None = None
) -> list[SyncEvent]:
    """
    Replay a transcript through the matcher and log what happened.

    Args:
        transcript_lines: Lines of transcript text (one utterance each)
        script_text: The script content
        output: File handle to write log output
        verbose: If True, log every update, not just jumps
        word_by_word: Feed each line as growing partial transcripts
        seconds_per_word: Simulated speaking time per word
        auto_scroll: Start with the scroll animation running

    Returns:
        List of all sync events
    """
    s: ScrollSettings = {**DEFAULT_CONFIG["scroll"], **(scroll_settings or {})}  # type: ignore[typeddict-item]
    m: MatchingSettings = {**DEFAULT_CONFIG["matching"], **(matching_settings or {})}  # type: ignore[typeddict-item]

    clock = ManualScheduler()
    index = ScriptIndex.from_text(script_text, anchor_length=m["anchor_length"])
    scroll = ScrollState(
        content_height=index.line_count * s["line_height"],
        visible_height=s["visible_height"],
        line_height=s["line_height"],
        speed=s["speed"],
        speed_min=s["speed_min"],
        speed_max=s["speed_max"],
        highlight_duration=s["highlight_duration"],
        scheduler=clock
    )
    engine = MatchEngine(
        index, scroll,
        min_sync_interval=m["min_sync_interval"],
        lookbehind=m["lookbehind"],
        lookahead=m["lookahead"],
        recent_words=m["recent_words"],
        max_line_jump=m["max_line_jump"],
        min_score=m["min_score"],
        clock=clock.time
    )
    if auto_scroll:
        scroll.resume()

    events: list[SyncEvent] = []

    output.write("=" * 80 + "\n")
    output.write("VOICE SYNC REPLAY LOG\n")
    output.write(f"Generated: {datetime.now().isoformat()}\n")
    output.write(f"Script lines: {index.line_count}  tokens: {index.token_count}\n")
    output.write(f"Transcript lines: {len(transcript_lines)}\n")
    output.write("=" * 80 + "\n\n")

    for line_num, line in enumerate(transcript_lines, start=1):
        words: list[str] = normalize_words(line)
        output.write(f"--- Line {line_num}: \"{line[:60]}{'...' if len(line) > 60 else ''}\" ---\n")

        for update in _updates_for_line(words, word_by_word):
            step: float = seconds_per_word * (1 if word_by_word else max(1, len(update)))
            clock.advance(step)
            scroll.tick(step)

            line_before: int = scroll.current_line_index
            jump: JumpCommand | None = engine.on_recognized_words(update)
            line_after: int = scroll.current_line_index

            event = SyncEvent(
                transcript_line=line_num,
                spoken=" ".join(update),
                time=clock.time(),
                line_before=line_before,
                line_after=line_after,
                event_type="jump" if jump else "no_change",
                score=jump.score if jump else 0.0
            )
            events.append(event)

            if jump:
                output.write(
                    f"  [{event.time:7.2f}s] JUMP line {line_before} -> {line_after} "
                    f"(score {jump.score:.2f}) \"{index.line_text(line_after) or ''}\"\n")
            elif verbose:
                output.write(
                    f"  [{event.time:7.2f}s] no change at line {line_after} "
                    f"<- \"{event.spoken[-50:]}\"\n")

    jumps: list[SyncEvent] = [e for e in events if e.event_type == "jump"]
    output.write("\n" + "=" * 80 + "\n")
    output.write("SUMMARY:\n")
    output.write("-" * 40 + "\n")
    output.write(f"Updates processed: {len(events)}\n")
    output.write(f"Jumps: {len(jumps)}\n")
    output.write(f"Final line: {scroll.current_line_index} / {index.line_count}\n")
    output.write(f"Simulated time: {clock.time():.1f}s\n")
    return events


def main() -> None:
    """CLI entry point for the replay tool."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Replay a transcript through voice sync and log every jump"
    )
    parser.add_argument("transcript", type=Path, help="Path to transcript file")
    parser.add_argument("script", type=Path, help="Path to script file")
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output log file path (default: stdout)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every update, not just jumps"
    )
    parser.add_argument(
        "-w", "--word-by-word",
        action="store_true",
        help="Feed the transcript word-by-word (simulates partial results)"
    )
    parser.add_argument(
        "--seconds-per-word",
        type=float,
        default=0.4,
        help="Simulated speaking time per word (default: 0.4)"
    )
    parser.add_argument(
        "--auto-scroll",
        action="store_true",
        help="Run the scroll animation during the replay"
    )

    args: argparse.Namespace = parser.parse_args()

    for path, label in ((args.transcript, "Transcript"), (args.script, "Script")):
        if not path.exists():
            print(f"Error: {label} file not found: {path}", file=sys.stderr)
            sys.exit(1)

    try:
        transcript_lines: list[str] = load_transcript(args.transcript)
        script_text: str = load_script(args.script)
    except OSError as e:
        print(f"Error loading files: {e}", file=sys.stderr)
        sys.exit(1)

    if not transcript_lines:
        print("Error: No transcript lines found", file=sys.stderr)
        sys.exit(1)

    def run(out: TextIO) -> None:
        replay_transcript(
            transcript_lines, script_text, out,
            verbose=args.verbose,
            word_by_word=args.word_by_word,
            seconds_per_word=args.seconds_per_word,
            auto_scroll=args.auto_scroll
        )

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            run(f)
        print(f"Replay log written to: {args.output}")
    else:
        run(sys.stdout)


if __name__ == "__main__":
    main()
