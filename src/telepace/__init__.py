"""
Telepace - presentation pacing for a teleprompter.

Drives a script through continuous scrolling, paging, RSVP or voice-following
playback, where voice mode aligns local speech recognition (Vosk) against the
script and scrolls to the line being read.
"""

__version__ = "0.1.0"

from .alignment import AlignmentEngine
from .errors import (
    CapabilityError,
    MicrophonePermissionError,
    RecoveryExhaustedError,
    TransientSessionError,
    UnsupportedError,
    VoiceError,
)
from .kinematics import KinematicScroller
from .paginator import Paginator
from .playback import PlaybackMode, PlaybackStateMachine
from .rsvp import RSVPScheduler
from .scheduler import AsyncioScheduler, ManualScheduler
from .script_index import ScriptIndex

__all__ = [
    "AlignmentEngine",
    "AsyncioScheduler",
    "CapabilityError",
    "KinematicScroller",
    "ManualScheduler",
    "MicrophonePermissionError",
    "Paginator",
    "PlaybackMode",
    "PlaybackStateMachine",
    "RSVPScheduler",
    "RecoveryExhaustedError",
    "ScriptIndex",
    "TransientSessionError",
    "UnsupportedError",
    "VoiceError",
]
