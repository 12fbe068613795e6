"""
Listener Registry - Tracks every listener a sensor installs so it can
remove exactly those listeners again
"""

import logging
from typing import List, Tuple

from ..environment import EventHandler, EventTarget

logger = logging.getLogger(__name__)


class ListenerRegistry:
    """Subscribe/unsubscribe bookkeeping for one sensor"""

    def __init__(self):
        self._entries: List[Tuple[EventTarget, str, EventHandler, bool]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def listen(self, target: EventTarget, event_type: str, handler: EventHandler, capture: bool = False):
        target.add_event_listener(event_type, handler, capture)
        self._entries.append((target, event_type, handler, capture))

    def remove_all(self):
        """Remove every tracked listener. Safe to call repeatedly."""
        entries, self._entries = self._entries, []
        for target, event_type, handler, capture in entries:
            try:
                target.remove_event_listener(event_type, handler, capture)
            except Exception as e:
                logger.warning(f"Could not remove '{event_type}' listener: {e}")
