"""
Pool Account Allocator

Maps certificate identities onto a fixed range of pool account slots. The
mapping table is the only state: it is read, pruned and rewritten under an
exclusive lock on every allocation, so any number of processes can share it.

Entries are reclaimed when their slot falls outside the configured range or
when they are older than the validity window.
"""

import logging
import time
from typing import Dict, List, Optional, Tuple

from ..config import CertAuthConfig
from ..errors import EncodingError, PoolExhausted
from .store import MappingStore, PoolEntry

logger = logging.getLogger(__name__)


class PoolAllocator:
    """
    Allocates pool slots to identities.

    Usage:
        allocator = PoolAllocator(MappingStore("/var/lib/sshcertauth/pool.map"),
                                  id_low=0, id_high=99, validity_seconds=3600)
        slot_id = allocator.allocate("/C=IT/O=INFN/CN=Jane Doe")
    """

    def __init__(self, store: MappingStore, id_low: int, id_high: int, validity_seconds: int):
        if id_low > id_high:
            raise ValueError(f"Empty pool range: {id_low} > {id_high}")
        self.store = store
        self.id_low = id_low
        self.id_high = id_high
        self.validity_seconds = validity_seconds

    @classmethod
    def from_config(cls, config: CertAuthConfig) -> "PoolAllocator":
        """Build an allocator over the configured mapping table."""
        return cls(
            MappingStore(config.map_file, lock_timeout=config.lock_timeout),
            id_low=config.id_low,
            id_high=config.id_high,
            validity_seconds=config.map_validity_seconds,
        )

    @property
    def capacity(self) -> int:
        """Number of slots in the pool"""
        return self.id_high - self.id_low + 1

    def _is_live(self, entry: PoolEntry, now: int) -> bool:
        if entry.slot_id < self.id_low or entry.slot_id > self.id_high:
            return False
        return (now - entry.assigned_at) <= self.validity_seconds

    def _prune(self, entries: List[PoolEntry], now: int, identity: Optional[str] = None) -> Tuple[Dict[int, PoolEntry], Optional[int]]:
        """
        Keep live entries, keyed by slot id.

        Returns:
            (live entries by slot, slot of identity or None)
        """
        by_slot: Dict[int, PoolEntry] = {}
        for entry in entries:
            if not self._is_live(entry, now):
                logger.debug(f"Reclaiming slot {entry.slot_id} from {entry.identity}")
                continue
            # Later lines win for a repeated slot
            by_slot[entry.slot_id] = entry

        # Every identity keeps a single slot: the lowest one it holds
        live: Dict[int, PoolEntry] = {}
        seen = set()
        for slot_id in sorted(by_slot):
            entry = by_slot[slot_id]
            if entry.identity in seen:
                logger.debug(f"Dropping duplicate slot {slot_id} of {entry.identity}")
                continue
            seen.add(entry.identity)
            live[slot_id] = entry

        for slot_id, entry in live.items():
            if entry.identity == identity:
                return live, slot_id
        return live, None

    def _first_free(self, live: Dict[int, PoolEntry]) -> Optional[int]:
        for slot_id in range(self.id_low, self.id_high + 1):
            if slot_id not in live:
                return slot_id
        return None

    @staticmethod
    def check_identity(identity: str) -> None:
        """Reject identities the mapping table grammar cannot hold."""
        if not identity:
            raise EncodingError("Empty identity")
        if '"' in identity or "\n" in identity or "\r" in identity:
            raise EncodingError("Identity contains characters not allowed in the mapping table")

    def allocate(self, identity: str, now: Optional[int] = None) -> int:
        """
        Return the slot assigned to identity, assigning the lowest free one if needed.

        Args:
            identity: Certificate subject
            now: Current unix time in seconds, defaults to time.time()

        Returns:
            Slot id in [id_low, id_high]

        Raises:
            EncodingError: identity cannot be stored
            PoolExhausted: every slot is taken by a live entry
            LockAcquisitionFailure: the table lock could not be obtained
            StoreIOError: the table could not be read or written
        """
        self.check_identity(identity)
        if now is None:
            now = int(time.time())

        with self.store.locked():
            live, slot_id = self._prune(self.store.read(), now, identity)

            if slot_id is None:
                slot_id = self._first_free(live)
                if slot_id is None:
                    logger.warning(f"No pool accounts available for {identity}")
                    raise PoolExhausted("No pool accounts are available at this time")
                logger.info(f"Assigned pool slot {slot_id} to {identity}")
            else:
                logger.debug(f"Refreshing pool slot {slot_id} for {identity}")

            live[slot_id] = PoolEntry(identity=identity, slot_id=slot_id, assigned_at=now)
            self.store.replace(live.values())

        return slot_id

    def entries(self, now: Optional[int] = None) -> List[PoolEntry]:
        """Live entries sorted by slot id, read under the lock without rewriting."""
        if now is None:
            now = int(time.time())

        with self.store.locked():
            live, _ = self._prune(self.store.read(), now)

        return [live[slot_id] for slot_id in sorted(live)]

    def get_status(self, now: Optional[int] = None) -> dict:
        """Occupancy summary for health reporting"""
        used = len(self.entries(now))
        return {
            "map_file": str(self.store.path),
            "id_low": self.id_low,
            "id_high": self.id_high,
            "capacity": self.capacity,
            "in_use": used,
            "available": self.capacity - used,
        }
