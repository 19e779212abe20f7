"""
Pool account resolver: every subject gets the first free pool account.
"""

import logging

from ..config import CertAuthConfig
from ..pool import PoolAllocator
from .base import IdentityResolver, Resolution

logger = logging.getLogger(__name__)


class PoolIdentityResolver(IdentityResolver):
    """
    Binds subjects to pool accounts through a PoolAllocator.

    The username is user_format applied to the slot id, e.g. "pool%03d" gives
    "pool007" for slot 7. Pool accounts must exist on every node.
    """

    name = "pool"

    def __init__(self, allocator: PoolAllocator, user_format: str):
        self.allocator = allocator
        self.user_format = user_format

    @classmethod
    def from_config(cls, config: CertAuthConfig) -> "PoolIdentityResolver":
        return cls(PoolAllocator.from_config(config), config.user_format)

    def resolve(self, subject: str) -> Resolution:
        slot_id = self.allocator.allocate(subject)
        username = self.user_format % slot_id
        logger.info(f"Subject {subject} mapped to pool account {username}")
        return Resolution(username=username, validity_seconds=0)

    def get_status(self) -> dict:
        status = super().get_status()
        status["pool"] = self.allocator.get_status()
        return status
