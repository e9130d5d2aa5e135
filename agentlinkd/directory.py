"""In-memory directory of discovered agents."""

import logging
import threading
from datetime import datetime, timedelta
from typing import Optional

from .models import AgentCard, DirectoryEntry, utc_now

logger = logging.getLogger(__name__)


class AgentDirectory:
    """Maps public identifiers to the most recently observed AgentCard.

    Two clocks are kept per entry. ``last_seen`` is the sender's signed
    timestamp and decides which of two cards is newer. ``received_at`` is the
    local receipt time and decides age, so a peer with a skewed clock is not
    reported stale (or fresh) because of it.

    Staleness is decided by readers; the directory never drops an entry on its
    own. ``prune`` exists for operators who want an explicit eviction policy.
    """

    def __init__(self):
        self._entries: dict[str, DirectoryEntry] = {}
        self._lock = threading.Lock()

    def upsert(self, card: AgentCard, observed_at: datetime, received_at: Optional[datetime] = None) -> bool:
        """Insert or refresh a card. Returns False if a newer record is already held."""
        with self._lock:
            existing = self._entries.get(card.public_key)
            if existing is not None and existing.last_seen > observed_at:
                logger.debug(
                    f"Ignoring out-of-order card for {card.public_key[:16]} "
                    f"({observed_at.isoformat()} < {existing.last_seen.isoformat()})"
                )
                return False
            self._entries[card.public_key] = DirectoryEntry(
                card=card, last_seen=observed_at, received_at=received_at or utc_now()
            )
        return True

    def get(self, public_id: str) -> Optional[DirectoryEntry]:
        with self._lock:
            return self._entries.get(public_id)

    def snapshot(self, max_age: Optional[float] = None, now: Optional[datetime] = None) -> list[DirectoryEntry]:
        """Entries received within ``max_age`` seconds of ``now``, newest first."""
        with self._lock:
            entries = list(self._entries.values())
        if max_age is not None:
            cutoff = (now or utc_now()) - timedelta(seconds=max_age)
            entries = [e for e in entries if e.received_at >= cutoff]
        return sorted(entries, key=lambda e: e.last_seen, reverse=True)

    def prune(self, older_than: float, now: Optional[datetime] = None) -> int:
        """Remove entries last received more than ``older_than`` seconds ago."""
        cutoff = (now or utc_now()) - timedelta(seconds=older_than)
        with self._lock:
            stale = [pid for pid, e in self._entries.items() if e.received_at < cutoff]
            for pid in stale:
                del self._entries[pid]
        if stale:
            logger.info(f"Pruned {len(stale)} directory entries")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, public_id: str) -> bool:
        with self._lock:
            return public_id in self._entries
