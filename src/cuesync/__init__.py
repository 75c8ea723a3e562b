"""
Cuesync - Teleprompter scrolling core with voice sync.

Scrolls a script at a steady speed and, while speech recognition is running,
keeps the scroll position in step with what the speaker is actually saying.
"""

__version__ = "0.1.0"

from .errors import CuesyncError, InvalidScriptState, RecognitionUnavailable
from .frame_clock import FrameClock
from .match_engine import JumpCommand, MatchEngine
from .scheduler import DeferredAction, ManualScheduler, Scheduler, ThreadScheduler
from .script_index import ScriptIndex
from .script_parser import Token, tokenize
from .scroll_state import ScrollSnapshot, ScrollState
from .session import PrompterSession
from .speech import RecognizerSpeechSource, SpeechSource

__all__ = [
    "CuesyncError",
    "InvalidScriptState",
    "RecognitionUnavailable",
    "Token",
    "tokenize",
    "ScriptIndex",
    "FrameClock",
    "DeferredAction",
    "Scheduler",
    "ThreadScheduler",
    "ManualScheduler",
    "ScrollSnapshot",
    "ScrollState",
    "JumpCommand",
    "MatchEngine",
    "PrompterSession",
    "SpeechSource",
    "RecognizerSpeechSource",
]
