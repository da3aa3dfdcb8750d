"""Process-wide mutable state shared by the dispatcher and admin commands.

Everything here is mutated synchronously between ``await`` points on the
single event loop, so plain sets and attributes need no locking.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Set

from src.models.message import BotMode


@dataclass
class DispatcherState:
    # Users with a text dispatch in flight.
    in_flight: Set[str] = field(default_factory=set)
    # Users with a voice note being transcribed and answered.
    voice_in_flight: Set[str] = field(default_factory=set)
    mode: BotMode = BotMode.NORMAL
    # Numbers whose traffic is logged verbosely.
    debug_users: Set[str] = field(default_factory=set)
    # Strong references so background voice tasks are not garbage collected.
    background_tasks: Set[asyncio.Task] = field(default_factory=set)
