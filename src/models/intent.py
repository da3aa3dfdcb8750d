"""Natural-language shortcut results.

A detector either returns ``None`` (no match) or an :class:`Intent` whose
``reply`` is the text sent to the user. ``value`` keeps the bare formatted
result (for example ``"20"`` for ``12 + 8``) so callers and tests can read it
without parsing the reply.
"""

from dataclasses import dataclass
from typing import Literal, Optional


IntentKind = Literal[
    "conversion",
    "calculation",
    "coin_flip",
    "random_number",
    "random_choice",
    "password",
    "note",
    "list",
    "datetime",
]


@dataclass(frozen=True)
class Intent:
    kind: IntentKind
    reply: str
    value: Optional[str] = None
