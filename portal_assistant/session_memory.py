"""
Session Memory: Short-term interaction log for a single portal session.

This memory is:
- SHORT-TERM: Lives only as long as the session object
- EXPLICIT: Visible in code, no magic
- BOUNDED: Fixed size, auto-evicting (oldest goes first)
- NOT LEARNING: No embeddings, no summarization, no persistence

Written by the session controller after a handler returns, read by the
proactive suggestion engine.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from portal_assistant.policy import SESSION_MEMORY_CAPACITY


@dataclass(frozen=True)
class IntentLogEntry:
    """Single interaction: prompt -> response (+ optional route)."""
    timestamp: str
    prompt: str
    response: str
    success: bool
    route: Optional[str] = None


class SessionMemory:
    """
    Bounded most-recent-first log of completed interactions.

    Insertion prepends; when full the oldest entry is evicted.
    """

    DEFAULT_CAPACITY = SESSION_MEMORY_CAPACITY

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """
        Initialize session memory.

        Args:
            capacity: Max interactions to store (default 20)
        """
        if capacity < 1:
            raise ValueError("Capacity must be >= 1")

        self.capacity = capacity
        # Index 0 is the newest entry
        self.entries: deque = deque(maxlen=capacity)
        self.created_at = datetime.now()

    def record(
        self,
        prompt: str,
        response: str,
        success: bool,
        route: Optional[str] = None,
    ) -> IntentLogEntry:
        """
        Add interaction to memory.

        Args:
            prompt: Raw user input
            response: Text spoken or displayed
            success: Whether an intent/command was confidently resolved
            route: Navigation target for this interaction, if any

        Returns:
            The stored entry
        """
        entry = IntentLogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            prompt=prompt,
            response=response,
            success=bool(success),
            route=route or None,
        )
        self.entries.appendleft(entry)
        return entry

    def most_recent(self) -> Optional[IntentLogEntry]:
        """Newest entry, or None when empty."""
        return self.entries[0] if self.entries else None

    def recent(self, n: Optional[int] = None) -> List[IntentLogEntry]:
        """
        Get recent entries (newest first).

        Args:
            n: How many to return (default all)
        """
        entries = list(self.entries)
        if n is not None:
            entries = entries[:max(n, 0)]
        return entries

    def most_recent_route(self) -> Optional[str]:
        """
        Route of the newest entry that carries one.

        Walks back past route-less interactions; None only when no stored
        entry has a route.
        """
        for entry in self.entries:
            if entry.route:
                return entry.route
        return None

    def __len__(self) -> int:
        return len(self.entries)

    def is_empty(self) -> bool:
        return len(self.entries) == 0

    def is_full(self) -> bool:
        return len(self.entries) == self.capacity

    def get_stats(self) -> Dict[str, Any]:
        """
        Get memory statistics.

        Returns dict with:
        - capacity: Max interactions
        - count: Current interactions
        - full: Whether at capacity
        - session_age_seconds: Time since session started
        """
        session_age = (datetime.now() - self.created_at).total_seconds()

        return {
            "capacity": self.capacity,
            "count": len(self.entries),
            "full": self.is_full(),
            "empty": self.is_empty(),
            "session_age_seconds": round(session_age, 2),
        }

    def clear(self) -> None:
        """
        Clear all memory.

        Called when the session is disposed.
        """
        self.entries.clear()
        self.created_at = datetime.now()

    def __str__(self) -> str:
        stats = self.get_stats()
        return (
            f"SessionMemory(capacity={stats['capacity']}, "
            f"count={stats['count']}, "
            f"full={stats['full']})"
        )

    def __repr__(self) -> str:
        return self.__str__()
